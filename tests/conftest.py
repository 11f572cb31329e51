#
# tests/conftest.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Shared fixtures and in-memory fakes for the Azure management clients.
Nothing here talks to Azure.
'''
import logging
import os
from types import SimpleNamespace

import pytest

import azure.core.exceptions
from azure.mgmt.storage.models import StorageAccount

import azvm
import azvm.azure_tool
import azvm.common

SUBSCRIPTION_ID = '11111111-2222-3333-4444-555555555555'
RESOURCE_GROUP = 'rg-diag'
LOCATION = 'westus2'
POLLING_URL_FMT = 'https://management.azure.com/subscriptions/' + SUBSCRIPTION_ID + '/providers/Microsoft.Compute/locations/' + LOCATION + '/operations/%s?api-version=2021-07-01'

def storage_account_obj(name, sku_name='Standard_LRS', location=LOCATION, blob=None):
    '''
    Return azure.mgmt.storage.models.StorageAccount as the service would hand it back
    '''
    if blob is None:
        blob = "https://%s.blob.core.windows.net/" % name
    data = {'name' : name,
            'location' : location,
            'kind' : 'StorageV2',
            'properties' : {'primaryEndpoints' : {'blob' : blob}},
           }
    if sku_name is not None:
        data['sku'] = {'name' : sku_name}
    return StorageAccount.from_dict(data)

class FakePoller():
    '''
    Minimal stand-in for azure.core.polling.LROPoller
    '''
    def __init__(self, status='Succeeded', done=True, exc=None, operation_id=None, result=None):
        self._status = status
        self._done = done
        self._exc = exc
        self._operation_id = operation_id
        self._result = result
        self.wait_calls = 0

    def status(self):
        return self._status

    def done(self):
        return self._done

    def wait(self, timeout=None):
        self.wait_calls += 1
        if self._exc is not None:
            self._done = True
            self._status = 'Failed'
            raise self._exc
        self._done = True

    def result(self, timeout=None):
        self.wait(timeout=timeout)
        return self._result

    def polling_method(self):
        '''
        Only the polling URL is modeled; with no operation_id there is none
        '''
        operation = None
        if self._operation_id:
            url = POLLING_URL_FMT % self._operation_id
            operation = SimpleNamespace(get_polling_url=lambda: url)
        return SimpleNamespace(_operation=operation)

class FakeStorageAccounts():
    '''
    Stand-in for StorageManagementClient.storage_accounts.
    accounts: dict of resource_group -> list of StorageAccount-like objects (listing order)
    unavailable: names for which check_name_availability reports unavailable
    '''
    def __init__(self, accounts=None, unavailable=None, all_unavailable=False):
        self.accounts = {rg : list(objs) for rg, objs in (accounts or dict()).items()}
        self.unavailable = set(unavailable or list())
        self.all_unavailable = all_unavailable
        self.calls = list()
        self.created = list()

    def _find(self, resource_group, name):
        for obj in self.accounts.get(resource_group, list()):
            if obj.name == name:
                return obj
        return None

    def get_properties(self, resource_group, name):
        self.calls.append(('get_properties', resource_group, name))
        obj = self._find(resource_group, name)
        if obj is None:
            raise azure.core.exceptions.ResourceNotFoundError(message="The storage account %s was not found." % name)
        return obj

    def list_by_resource_group(self, resource_group):
        self.calls.append(('list_by_resource_group', resource_group))
        return iter(list(self.accounts.get(resource_group, list())))

    def check_name_availability(self, params):
        self.calls.append(('check_name_availability', params.name))
        available = (not self.all_unavailable) and (params.name not in self.unavailable)
        return SimpleNamespace(name_available=available)

    def begin_create(self, resource_group, name, params, **kwargs):
        self.calls.append(('begin_create', resource_group, name))
        self.created.append((resource_group, name, params))
        obj = storage_account_obj(name, sku_name=params.sku.name, location=params.location)
        self.accounts.setdefault(resource_group, list()).append(obj)
        return FakePoller(result=obj)

    def call_names(self):
        '''
        Return the names of the operations invoked, in order
        '''
        return [x[0] for x in self.calls]

class FakeStorageClient():
    '''
    Stand-in for azure.mgmt.storage.StorageManagementClient
    '''
    def __init__(self, **kwargs):
        self.storage_accounts = FakeStorageAccounts(**kwargs)

class FakeVirtualMachines():
    '''
    Stand-in for ComputeManagementClient.virtual_machines
    '''
    def __init__(self, poller=None):
        self.poller = poller or FakePoller(status='InProgress', done=False, operation_id='op-create-1')
        self.calls = list()
        self.vms = dict()

    def begin_create_or_update(self, resource_group, vm_name, parameters, **kwargs):
        self.calls.append((resource_group, vm_name, parameters))
        return self.poller

    def get(self, resource_group, vm_name, **kwargs):
        try:
            return self.vms[(resource_group, vm_name)]
        except KeyError as exc:
            raise azure.core.exceptions.ResourceNotFoundError(message="vm %s not found" % vm_name) from exc

class FakeVirtualMachineExtensions():
    '''
    Stand-in for ComputeManagementClient.virtual_machine_extensions
    '''
    def __init__(self, poller=None):
        self.poller = poller or FakePoller(operation_id='op-delete-1')
        self.calls = list()

    def begin_delete(self, resource_group, vm_name, extension_name, **kwargs):
        self.calls.append((resource_group, vm_name, extension_name))
        return self.poller

class FakeComputeClient():
    '''
    Stand-in for azure.mgmt.compute.ComputeManagementClient
    '''
    def __init__(self, poller=None, extension_poller=None):
        self.virtual_machines = FakeVirtualMachines(poller=poller)
        self.virtual_machine_extensions = FakeVirtualMachineExtensions(poller=extension_poller)

@pytest.fixture(autouse=True)
def azvm_reset(tmp_path, monkeypatch):
    '''
    Point config at a file that does not exist, discard cached config,
    and make sure nothing builds a real SDK client.
    '''
    monkeypatch.setenv('AZVM_CONFIG', os.path.join(str(tmp_path), 'no-such-config.yaml'))
    monkeypatch.delenv('AZVM_RESOURCE_GROUP', raising=False)
    monkeypatch.delenv('AZVM_DEBUG', raising=False)
    monkeypatch.setattr(azvm.azure_tool.Manager, 'CLIENT_CREATE_DISABLED', True)
    monkeypatch.setattr(azvm.common.Application, 'LOG_LEVEL_PYTEST', 'debug')
    azvm.reset_caches()
    yield
    azvm.reset_caches()

@pytest.fixture
def logger():
    '''
    Logger for components that take one
    '''
    ret = logging.getLogger('azvm.test')
    ret.setLevel(logging.DEBUG)
    return ret

@pytest.fixture
def manager():
    '''
    Manager with fake clients injected
    '''
    mgr = azvm.azure_tool.Manager(subscription_id=SUBSCRIPTION_ID, resource_group=RESOURCE_GROUP, location=LOCATION)
    mgr._az_storage_cachedclient = FakeStorageClient() # pylint: disable=protected-access
    mgr._az_compute_cachedclient = FakeComputeClient() # pylint: disable=protected-access
    return mgr
