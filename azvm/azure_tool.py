#!/usr/bin/env python3
#
# azvm/azure_tool.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Manager: the azvm handle on one subscription's storage and compute.

It builds the management clients (wrapped for retries), applies
config defaults, and exposes the diagnostics-storage and VM
operations. Decorated methods are also command-line actions:

  python -m azvm.azure_tool ACTION [--resource_group RG] [...]
'''
import threading

from tabulate import tabulate

import azure.core.exceptions
import azure.identity
from azure.mgmt.compute import ComputeManagementClient
from azure.mgmt.storage import StorageManagementClient

import azvm
from azvm.azresourceid import (RE_STORAGE_ACCOUNT_ABS,
                               tags_check,
                              )
from azvm.base_defaults import (DIAGNOSTICS_STORAGE_KIND_DEFAULT,
                                LOCATION_DEFAULT_FALLBACK,
                                STORAGE_ACCOUNT_NAME_ATTEMPTS_MAX,
                                VM_ACCESS_EXTENSION_NAME_DEFAULT,
                               )
from azvm.btypes import DIAGNOSTICS_STORAGE_ACCOUNT_TYPE_DEFAULT
from azvm.command import Command
import azvm.common
from azvm.diagnostics import (StorageAccountRef,
                              StorageAccountResolver,
                             )
from azvm.exceptions import ApplicationExit
from azvm.msapicall import (Caught,
                            RetryingClient,
                            msapicall,
                           )
from azvm.models import OperationStatus
from azvm.operation import (lro_wait,
                            operation_status_failed,
                            operation_status_from_poller,
                            utcnow,
                           )
import azvm.util

command = Command()

class Manager(azvm.common.ApplicationWithResourceGroup):
    '''
    Storage and compute operations for one subscription.
    resource_group, location, vm_name, and friends are defaults
    for the per-call arguments of the same names.
    '''
    def __init__(self,
                 extension_name='',
                 force=False,
                 location='',
                 managed_identity_client_id='',
                 os_disk_uri='',
                 storage_account='',
                 vm_name='',
                 **kwargs):
        super().__init__(**kwargs)
        self.location = self.location_effective(location)
        self.extension_name = extension_name or VM_ACCESS_EXTENSION_NAME_DEFAULT
        self.force = bool(force)
        self.os_disk_uri = os_disk_uri or ''
        self.storage_account_name = storage_account or ''
        self.vm_name = vm_name or ''
        self.managed_identity_client_id = managed_identity_client_id or ''
        if self.managed_identity_client_id:
            self.managed_identity_client_id = azvm.util.uuid_normalize(self.managed_identity_client_id, key='managed_identity_client_id', exc_value=self.exc_value)

        self._client_lock = threading.RLock()
        # Built on first use; see _az_compute_client and _az_storage_client.
        # Tests put fakes here.
        self._az_compute_cachedclient = None
        self._az_storage_cachedclient = None

    def __repr__(self):
        return "<%s,subscription_id=%r>" % (type(self).__name__, self.subscription_id)

    ######################################################################
    # reads that treat a missing resource as None
    #
    # Retries happen inside the wrapped clients (azvm.msapicall).

    def _cw_get(self, call, *args, **kwargs):
        '''
        call(*args, **kwargs), or None when the resource does not exist
        '''
        try:
            return call(*args, **kwargs)
        except azure.core.exceptions.HttpResponseError as exc:
            if Caught(exc).is_missing():
                return None
            raise

    def _cw_list(self, call, *args, **kwargs):
        '''
        list(call(*args, **kwargs)); [] when the resource group does not exist.
        Paging happens while iterating, so the whole listing is retried together.
        '''
        try:
            return msapicall(self.logger, lambda: list(call(*args, **kwargs) or list()))
        except azure.core.exceptions.HttpResponseError as exc:
            if Caught(exc).is_missing():
                return list()
            raise

    ######################################################################
    # tags

    def tags_get(self, *args, **kwargs):
        '''
        Tags for new resources: configured tags, updated by each dict in args, then by kwargs
        '''
        ret = dict(azvm.scfg.get('tags', dict()))
        for d in args:
            ret.update(d or dict())
        ret.update(kwargs)
        tags_check(ret, exc_value=self.exc_value)
        return ret

    ######################################################################
    # storage_account mgmt

    def storage_account_name_effective(self, storage_account_name):
        '''
        Return storage_account_name defaulted to self.storage_account_name.
        Raises exc_value when neither is a valid name.
        '''
        storage_account_name = storage_account_name or self.storage_account_name
        if not storage_account_name:
            raise self.exc_value("'storage_account' not specified")
        if not RE_STORAGE_ACCOUNT_ABS.search(storage_account_name):
            raise self.exc_value("invalid storage_account name %r" % storage_account_name)
        return storage_account_name

    @command.printable_json
    def storage_account_get(self, storage_account_name=None, resource_group=None):
        '''
        Return azure.mgmt.storage.models.StorageAccount or None
        '''
        storage_account_name = self.storage_account_name_effective(storage_account_name)
        resource_group = self.resource_group_effective(resource_group, exc_value=self.exc_value)
        return self._cw_get(self._az_storage_client.storage_accounts.get_properties, resource_group, storage_account_name)

    @command.printable
    def storage_account_list(self, resource_group=None) -> list:
        '''
        Return a list of azure.mgmt.storage.models.StorageAccount
        for the accounts in resource_group
        '''
        resource_group = self.resource_group_effective(resource_group, exc_value=self.exc_value)
        return self._cw_list(self._az_storage_client.storage_accounts.list_by_resource_group, resource_group)

    @command.simple
    def storage_accounts_print(self):
        '''
        Show a table of storage accounts in the resource group.
        '''
        refs = [StorageAccountRef.from_sdk(x, self.resource_group) for x in self.storage_account_list()]
        vals = [[x.name, x.sku_name, x.location, x.blob_endpoint] for x in refs]
        print(tabulate(vals, headers=['name', 'sku', 'location', 'blob_endpoint'], tablefmt='plain', numalign='left', stralign='left'))

    ######################################################################
    # boot diagnostics storage

    def diagnostics_resolver_get(self) -> StorageAccountResolver:
        '''
        Return StorageAccountResolver bound to this Manager's storage client and config
        '''
        return StorageAccountResolver(self._az_storage_client,
                                      self.subscription_id,
                                      logger=self.logger,
                                      name_attempts_max=azvm.scfg.get('storage_account_name_attempts_max', STORAGE_ACCOUNT_NAME_ATTEMPTS_MAX),
                                      sku_name=azvm.scfg.get('diagnostics_storage_sku', DIAGNOSTICS_STORAGE_ACCOUNT_TYPE_DEFAULT.value),
                                      kind=azvm.scfg.get('diagnostics_storage_kind', DIAGNOSTICS_STORAGE_KIND_DEFAULT),
                                      tags=self.tags_get())

    @command.printable
    def diagnostics_storage_find(self, resource_group=None, os_disk_uri=None):
        '''
        Return StorageAccountRef for an existing account usable for boot diagnostics,
        or None. Never creates anything.
        '''
        resource_group = self.resource_group_effective(resource_group, exc_value=self.exc_value)
        os_disk_uri = os_disk_uri or self.os_disk_uri or None
        return self.diagnostics_resolver_get().find_existing(resource_group, os_disk_uri=os_disk_uri)

    @command.printable
    def diagnostics_endpoint_resolve(self, resource_group=None, location=None, os_disk_uri=None):
        '''
        Return the blob endpoint to use for boot diagnostics.
        This creates a storage account if no suitable one exists.
        '''
        resource_group = self.resource_group_effective(resource_group, exc_value=self.exc_value)
        location = self.location_effective(location)
        os_disk_uri = os_disk_uri or self.os_disk_uri or None
        return self.diagnostics_resolver_get().resolve_diagnostics_endpoint(resource_group, location, os_disk_uri=os_disk_uri)

    ######################################################################
    # VM operations

    def vm_creator_get(self):
        '''
        Return azvm.vm_create.VmCreator bound to this Manager's clients
        '''
        from azvm.vm_create import VmCreator # pylint: disable=import-outside-toplevel
        return VmCreator(self._az_compute_client, self.diagnostics_resolver_get(), logger=self.logger)

    def vm_name_effective(self, vm_name):
        '''
        Return vm_name defaulted to self.vm_name. Raises exc_value if neither is set.
        '''
        vm_name = vm_name or self.vm_name
        if not vm_name:
            raise self.exc_value("'vm_name' not specified")
        return vm_name

    @command.printable_json
    def vm_get(self, vm_name=None, resource_group=None):
        '''
        Retrieve VM info. Returns azure.mgmt.compute.models.VirtualMachine or None.
        '''
        vm_name = self.vm_name_effective(vm_name)
        resource_group = self.resource_group_effective(resource_group, exc_value=self.exc_value)
        return self._cw_get(self._az_compute_client.virtual_machines.get, resource_group, vm_name)

    def vm_extension_delete(self, vm_name, extension_name, resource_group=None, wait=True) -> OperationStatus:
        '''
        Remove extension_name from vm_name.
        Returns OperationStatus. When wait is set, the status describes
        the completed operation, including any failure reported by Azure.
        '''
        resource_group = self.resource_group_effective(resource_group, exc_value=self.exc_value)
        opname = "delete %s/%s" % (vm_name, extension_name)
        start_time = utcnow()
        op = self._az_compute_client.virtual_machine_extensions.begin_delete(resource_group, vm_name, extension_name)
        exc = None
        if wait:
            try:
                lro_wait(op, 'virtual_machine_extensions.begin_delete', self.logger)
            except azure.core.exceptions.HttpResponseError as e:
                self.logger.warning("%s %s failed: %r", self.mth(), opname, e)
                exc = e
        return operation_status_from_poller(op, opname, start_time, exc=exc)

    def confirm(self, prompt) -> bool:
        '''
        Ask the user to confirm an action on stdin. Returns True iff they agree.
        '''
        if self.force:
            return True
        answer = input("%s [y/N] " % prompt)
        return answer.strip().lower() in ('y', 'yes')

    @command.simple
    def vm_access_extension_remove(self, vm_name=None, extension_name=None, resource_group=None):
        '''
        Remove the VM access extension (extension_name) from vm_name.
        Prints the resulting OperationStatus. Asks for confirmation unless force is set.
        '''
        vm_name = self.vm_name_effective(vm_name)
        extension_name = extension_name or self.extension_name
        resource_group = self.resource_group_effective(resource_group, exc_value=self.exc_value)
        if not self.confirm("Remove extension %r from VM %r in resource group %r?" % (extension_name, vm_name, resource_group)):
            self.logger.info("%s not removing %r from %r", self.mth(), extension_name, vm_name)
            return None
        status = self.vm_extension_delete(vm_name, extension_name, resource_group=resource_group)
        command.print_json(status)
        if operation_status_failed(status):
            raise ApplicationExit(1)
        return status


    ######################################################################
    # SDK clients

    @property
    def _az_compute_client(self) -> ComputeManagementClient:
        '''
        ComputeManagementClient for this subscription, built on first use
        '''
        return self._client_get('_az_compute_cachedclient', ComputeManagementClient)

    @property
    def _az_storage_client(self) -> StorageManagementClient:
        '''
        StorageManagementClient for this subscription, built on first use
        '''
        return self._client_get('_az_storage_cachedclient', StorageManagementClient)

    def _client_get(self, attr, client_class):
        with self._client_lock:
            ret = getattr(self, attr)
            if ret is None:
                ret = self._client_create(client_class)
                setattr(self, attr, ret)
            return ret

    # Unit tests set this so that nothing reaches Azure by accident.
    CLIENT_CREATE_DISABLED = False

    def _client_create(self, client_class):
        '''
        Return client_class for self.subscription_id wrapped in RetryingClient
        '''
        if self.CLIENT_CREATE_DISABLED:
            raise AssertionError("%s: creating %s is disabled" % (self.mth(), client_class.__name__))
        self.logger.debug("%s create %s subscription_id=%s", self.mth(), client_class.__name__, self.subscription_id)
        return RetryingClient(client_class(self.azure_credential_generate(), self.subscription_id), self.logger)

    def azure_credential_generate(self):
        '''
        Credential for the management clients: the managed identity
        managed_identity_client_id when set, falling back to az login
        '''
        credentials = list()
        if self.managed_identity_client_id:
            credentials.append(azure.identity.ManagedIdentityCredential(client_id=self.managed_identity_client_id))
        credentials.append(azure.identity.AzureCliCredential())
        if self.debug:
            self.logger.debug("%s managed_identity_client_id=%r credentials=%d", self.mth(), self.managed_identity_client_id, len(credentials))
        if len(credentials) == 1:
            return credentials[0]
        return azure.identity.ChainedTokenCredential(*credentials)

    ######################################################################
    # command-line

    @classmethod
    def main_add_parser_args(cls, ap_parser):
        super().main_add_parser_args(ap_parser)
        ap_parser.add_argument('action', type=str,
                               help='one of: %s' % ' '.join(command.actions))
        group = ap_parser.add_argument_group('azure_tool')
        group.add_argument('--extension_name', type=str, default=VM_ACCESS_EXTENSION_NAME_DEFAULT,
                           help='name of VM extension (default %(default)s)')
        group.add_argument('--force', action='store_true',
                           help='do not ask for confirmation')
        group.add_argument('--location', type=str, default='',
                           help="Azure location (default: location_default from config, otherwise %s)" % LOCATION_DEFAULT_FALLBACK)
        group.add_argument('--managed_identity_client_id', type=str, default='',
                           help='client id for managed identity credentials')
        group.add_argument('--os_disk_uri', type=str, default='',
                           help='URI of an OS disk VHD blob whose storage account is preferred for diagnostics')
        group.add_argument('--storage_account', type=str, default='',
                           help='name of storage account')
        group.add_argument('--vm_name', type=str, default='',
                           help='VM name')

    ARGS_SAVE = ('action',)

    def main_execute(self):
        action = self._args_saved['action']
        if command.handle(action, self):
            raise ApplicationExit(0)
        self.logger.error("unknown action %r (known actions: %s)", action, ' '.join(command.actions))
        raise ApplicationExit(1)

Manager.main(__name__)
