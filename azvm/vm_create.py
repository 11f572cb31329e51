#!/usr/bin/env python3
#
# azvm/vm_create.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Create a VM with boot diagnostics enabled.

VmCreator assembles the create request from a caller-supplied VM
description and submits it. When the description does not say where
boot diagnostics go, a storage account is found or provisioned
through azvm.diagnostics.StorageAccountResolver.

Command line:
  python -m azvm.vm_create --resource_group RG --vm_description vm.yaml [--vm_name NAME] [--tag KEY=VALUE ...] [--nowait]
'''
import copy
import logging

import yaml

import azure.core.exceptions
from azure.mgmt.compute.models import (BootDiagnostics,
                                       DiagnosticsProfile,
                                       VirtualMachine,
                                      )

import azvm.azure_tool
from azvm.azresourceid import (tags_check,
                               vm_name_check,
                              )
import azvm.common
from azvm.command import Command
from azvm.exceptions import ApplicationExit
from azvm.models import OperationStatus
from azvm.msapicall import LOGGER_NAME_DEFAULT
from azvm.operation import (lro_wait,
                            operation_status_failed,
                            operation_status_from_poller,
                            utcnow,
                           )
from azvm.util import (getframe,
                       tags_from_strings,
                      )

def os_disk_uri_from_vm(vm_desc):
    '''
    Return the URI of the OS disk VHD blob of vm_desc, or None.
    Managed-disk VMs have no such URI.
    '''
    storage_profile = getattr(vm_desc, 'storage_profile', None)
    os_disk = getattr(storage_profile, 'os_disk', None) if storage_profile else None
    vhd = getattr(os_disk, 'vhd', None) if os_disk else None
    return getattr(vhd, 'uri', None) if vhd else None

class VmCreator():
    '''
    Build and submit VM create requests.
    compute_client is azure.mgmt.compute.ComputeManagementClient (or
    anything providing virtual_machines.begin_create_or_update).
    resolver is azvm.diagnostics.StorageAccountResolver.
    '''
    def __init__(self, compute_client, resolver, logger=None):
        self.compute_client = compute_client
        self.resolver = resolver
        self.logger = logger or logging.getLogger(LOGGER_NAME_DEFAULT)

    def __repr__(self):
        return "<%s,%r>" % (type(self).__name__, self.resolver)

    def diagnostics_profile_effective(self, resource_group, location, vm_desc) -> DiagnosticsProfile:
        '''
        Return the diagnostics profile to send for vm_desc.
        No profile at all becomes enabled boot diagnostics pointing at a
        resolved storage endpoint. A supplied profile that enables boot
        diagnostics without a storage URI gets a resolved URI. Any other
        supplied profile, including one with no boot_diagnostics, is sent
        as supplied.
        '''
        dp = getattr(vm_desc, 'diagnostics_profile', None)
        if dp is None:
            storage_uri = self._endpoint_resolve(resource_group, location, vm_desc)
            return DiagnosticsProfile(boot_diagnostics=BootDiagnostics(enabled=True, storage_uri=storage_uri))
        dp = copy.deepcopy(dp)
        bd = dp.boot_diagnostics
        if (bd is not None) and bd.enabled and (not bd.storage_uri):
            bd.storage_uri = self._endpoint_resolve(resource_group, location, vm_desc)
        return dp

    def _endpoint_resolve(self, resource_group, location, vm_desc):
        '''
        Resolve the diagnostics endpoint for vm_desc
        '''
        ret = self.resolver.resolve_diagnostics_endpoint(resource_group, location, os_disk_uri=os_disk_uri_from_vm(vm_desc))
        if not ret:
            raise ValueError("no blob endpoint for boot diagnostics in resource_group %r" % resource_group)
        self.logger.debug("%s boot diagnostics storage_uri=%r", getframe(0), ret)
        return ret

    def request_build(self, resource_group, location, vm_desc, tags=None) -> VirtualMachine:
        '''
        Return a new azure.mgmt.compute.models.VirtualMachine to submit.
        vm_desc is azure.mgmt.compute.models.VirtualMachine; it is not modified.
        location: explicit location; when empty, vm_desc.location is used
        tags: explicit tags; when None, vm_desc.tags is used
        '''
        location = location or getattr(vm_desc, 'location', None)
        if not location:
            raise ValueError("location not specified and the VM description has none")
        if tags is None:
            tags = getattr(vm_desc, 'tags', None)
        tags = dict(tags) if tags is not None else None
        tags_check(tags)
        diagnostics_profile = self.diagnostics_profile_effective(resource_group, location, vm_desc)
        return VirtualMachine(location=location,
                              tags=tags,
                              plan=copy.deepcopy(vm_desc.plan),
                              hardware_profile=copy.deepcopy(vm_desc.hardware_profile),
                              storage_profile=copy.deepcopy(vm_desc.storage_profile),
                              os_profile=copy.deepcopy(vm_desc.os_profile),
                              network_profile=copy.deepcopy(vm_desc.network_profile),
                              diagnostics_profile=diagnostics_profile,
                              availability_set=copy.deepcopy(vm_desc.availability_set))

    def submit(self, resource_group, vm_name, request:VirtualMachine):
        '''
        Issue the create request. Returns the LRO handle (azure.core.polling.LROPoller).
        '''
        vm_name_check(vm_name)
        bd = request.diagnostics_profile.boot_diagnostics if request.diagnostics_profile else None
        if bd and bd.enabled and (not bd.storage_uri):
            raise ValueError("boot diagnostics enabled for %r with no storage_uri" % vm_name)
        self.logger.info("%s create VM %r resource_group=%r location=%r", getframe(0), vm_name, resource_group, request.location)
        return self.compute_client.virtual_machines.begin_create_or_update(resource_group, vm_name, request)

    def create(self, resource_group, location, vm_desc, tags=None, vm_name=None, wait=False) -> OperationStatus:
        '''
        Build and submit the create request for vm_desc. Returns OperationStatus.
        vm_name defaults to vm_desc.name. It is checked before anything
        else happens, since building the request may create a storage account.
        If wait is set, wait for the operation to complete and report the
        final status; a failure reported by Azure is returned in the status.
        '''
        vm_name = vm_name_check(vm_name or getattr(vm_desc, 'name', None))
        request = self.request_build(resource_group, location, vm_desc, tags=tags)
        start_time = utcnow()
        op = self.submit(resource_group, vm_name, request)
        exc = None
        if wait:
            try:
                lro_wait(op, 'virtual_machines.begin_create_or_update', self.logger)
            except azure.core.exceptions.HttpResponseError as e:
                self.logger.warning("%s create VM %r failed: %r", getframe(0), vm_name, e)
                exc = e
        return operation_status_from_poller(op, "create_or_update %s" % vm_name, start_time, exc=exc)

class VmCreate(azvm.common.ApplicationWithResourceGroup):
    '''
    Create a VM from a description file
    '''
    MANAGER_CLASS = azvm.azure_tool.Manager

    def __init__(self,
                 location='',
                 tag=None,
                 vm_description='',
                 vm_name='',
                 wait=True,
                 **kwargs):
        super().__init__(**kwargs)
        self.location = location or ''
        self.tags = tags_check(tags_from_strings(tag, exc_value=self.exc_value), exc_value=self.exc_value)
        self.vm_description = vm_description
        self.vm_name = vm_name or ''
        self.wait = wait
        if not self.vm_description:
            raise self.exc_value("'vm_description' not specified")
        if self.vm_name:
            vm_name_check(self.vm_name, exc_value=self.exc_value)

    RESOURCE_GROUP_REQUIRED = True

    @classmethod
    def main_add_parser_args(cls, ap_parser):
        super().main_add_parser_args(ap_parser)
        group = ap_parser.add_argument_group('vm_create')
        group.add_argument('--location', type=str, default='',
                           help='Azure location (default: location of the VM description)')
        group.add_argument('--vm_description', type=str, required=True,
                           help='YAML or JSON file describing the VM (azure.mgmt.compute.models.VirtualMachine)')
        group.add_argument('--vm_name', type=str, default='',
                           help='VM name (default: name from the VM description)')
        group.add_argument('--tag', type=str, action='append', default=None,
                           help='KEY=VALUE tag for the VM (repeatable; default: tags from the VM description)')
        group.add_argument('--wait', dest='wait', action='store_true', default=True,
                           help='wait for the create to complete (default)')
        group.add_argument('--nowait', dest='wait', action='store_false',
                           help='return once the create is accepted')

    def vm_description_load(self) -> VirtualMachine:
        '''
        Load the VM description file. Accepts ARM ('properties': {...})
        or SDK attribute form. JSON is a subset of YAML.
        '''
        try:
            with open(self.vm_description, 'r') as f:
                data = yaml.safe_load(f)
        except OSError as exc:
            raise self.exc_value("cannot read vm_description %r: %s" % (self.vm_description, exc)) from exc
        except yaml.error.YAMLError as exc:
            raise self.exc_value("cannot parse vm_description %r: %s" % (self.vm_description, exc)) from exc
        if not isinstance(data, dict):
            raise self.exc_value("vm_description %r has type %s; expected dict" % (self.vm_description, type(data)))
        return VirtualMachine.from_dict(data)

    def az_mgr_generate(self, **kwargs):
        '''
        New MANAGER_CLASS sharing this application's subscription, logger and resource group
        '''
        return self.MANAGER_CLASS(**self.manager_kwargs(location=self.location, **kwargs))

    def main_execute(self):
        resource_group = self.resource_group_effective(self.resource_group, exc_value=self.exc_value)
        vm_desc = self.vm_description_load()
        vm_name = self.vm_name or vm_desc.name
        if not vm_name:
            raise self.exc_value("'vm_name' not specified and the VM description has none")
        vm_name_check(vm_name, exc_value=self.exc_value)
        az_mgr = self.az_mgr_generate()
        creator = az_mgr.vm_creator_get()
        status = creator.create(resource_group, self.location, vm_desc, tags=self.tags, vm_name=vm_name, wait=self.wait)
        Command.print_json(status)
        if operation_status_failed(status):
            raise ApplicationExit(1)
        raise ApplicationExit(0)

VmCreate.main(__name__)
