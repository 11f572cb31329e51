#
# tests/test_vm_create.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Unit tests for azvm.vm_create
'''
import json
from unittest.mock import MagicMock

import azure.core.exceptions
import pytest
import yaml
from azure.mgmt.compute.models import (BootDiagnostics,
                                       DiagnosticsProfile,
                                       HardwareProfile,
                                       OSDisk,
                                       StorageProfile,
                                       VirtualHardDisk,
                                       VirtualMachine,
                                      )
from azure.mgmt.storage import StorageManagementClient

from azvm.azure_tool import Manager
from azvm.diagnostics import StorageAccountResolver
from azvm.exceptions import ApplicationExit
from azvm.vm_create import (VmCreate,
                            VmCreator,
                            os_disk_uri_from_vm,
                           )

from conftest import (LOCATION,
                      RESOURCE_GROUP,
                      SUBSCRIPTION_ID,
                      FakeComputeClient,
                      FakePoller,
                      FakeStorageClient,
                      storage_account_obj,
                     )

OS_DISK_URI = 'https://osdisk123.blob.core.windows.net/vhds/vm1.vhd'
ENDPOINT = 'https://diag123.blob.core.windows.net/'

def _vm_desc(location='eastus', tags=None, diagnostics_profile=None, os_disk_uri=OS_DISK_URI):
    vhd = VirtualHardDisk(uri=os_disk_uri) if os_disk_uri else None
    return VirtualMachine(location=location,
                          tags=tags,
                          hardware_profile=HardwareProfile(vm_size='Standard_D2s_v3'),
                          storage_profile=StorageProfile(os_disk=OSDisk(create_option='FromImage', name='osdisk', vhd=vhd)),
                          diagnostics_profile=diagnostics_profile)

def _resolver_mock(endpoint=ENDPOINT):
    resolver = MagicMock(spec=StorageAccountResolver)
    resolver.resolve_diagnostics_endpoint.return_value = endpoint
    return resolver

class TestRequestBuild:
    """Assembling the create request"""

    def test_diagnostics_defaulted(self):
        """No diagnostics profile: enabled boot diagnostics at the resolved endpoint"""
        resolver = _resolver_mock()
        creator = VmCreator(FakeComputeClient(), resolver)
        req = creator.request_build(RESOURCE_GROUP, LOCATION, _vm_desc())
        assert req.diagnostics_profile.boot_diagnostics.enabled is True
        assert req.diagnostics_profile.boot_diagnostics.storage_uri == ENDPOINT
        resolver.resolve_diagnostics_endpoint.assert_called_once_with(RESOURCE_GROUP, LOCATION, os_disk_uri=OS_DISK_URI)

    def test_explicit_diagnostics_kept(self):
        """A complete diagnostics profile is sent as supplied and nothing is resolved"""
        resolver = _resolver_mock()
        dp = DiagnosticsProfile(boot_diagnostics=BootDiagnostics(enabled=True, storage_uri='https://mine1.blob.core.windows.net/'))
        req = VmCreator(FakeComputeClient(), resolver).request_build(RESOURCE_GROUP, LOCATION, _vm_desc(diagnostics_profile=dp))
        assert req.diagnostics_profile.boot_diagnostics.storage_uri == 'https://mine1.blob.core.windows.net/'
        resolver.resolve_diagnostics_endpoint.assert_not_called()

    def test_disabled_diagnostics_kept(self):
        """Disabled boot diagnostics need no endpoint"""
        resolver = _resolver_mock()
        dp = DiagnosticsProfile(boot_diagnostics=BootDiagnostics(enabled=False))
        req = VmCreator(FakeComputeClient(), resolver).request_build(RESOURCE_GROUP, LOCATION, _vm_desc(diagnostics_profile=dp))
        assert req.diagnostics_profile.boot_diagnostics.enabled is False
        assert req.diagnostics_profile.boot_diagnostics.storage_uri is None
        resolver.resolve_diagnostics_endpoint.assert_not_called()

    def test_profile_without_boot_diagnostics_kept(self):
        """A supplied profile with no boot_diagnostics is sent as supplied"""
        resolver = _resolver_mock()
        compute = FakeComputeClient()
        desc = _vm_desc(diagnostics_profile=DiagnosticsProfile())
        creator = VmCreator(compute, resolver)
        req = creator.request_build(RESOURCE_GROUP, LOCATION, desc)
        assert req.diagnostics_profile is not None
        assert req.diagnostics_profile.boot_diagnostics is None
        assert req.diagnostics_profile is not desc.diagnostics_profile
        resolver.resolve_diagnostics_endpoint.assert_not_called()
        creator.submit(RESOURCE_GROUP, 'vm1', req)
        assert len(compute.virtual_machines.calls) == 1

    def test_enabled_without_uri_resolved(self):
        """Enabled boot diagnostics with no storage URI gets one"""
        dp = DiagnosticsProfile(boot_diagnostics=BootDiagnostics(enabled=True))
        desc = _vm_desc(diagnostics_profile=dp)
        req = VmCreator(FakeComputeClient(), _resolver_mock()).request_build(RESOURCE_GROUP, LOCATION, desc)
        assert req.diagnostics_profile.boot_diagnostics.storage_uri == ENDPOINT
        assert desc.diagnostics_profile.boot_diagnostics.storage_uri is None

    def test_location_and_tags_default_to_description(self):
        """Empty location and absent tags come from the description"""
        desc = _vm_desc(location='centralus', tags={'a' : 'b'})
        req = VmCreator(FakeComputeClient(), _resolver_mock()).request_build(RESOURCE_GROUP, '', desc)
        assert req.location == 'centralus'
        assert req.tags == {'a' : 'b'}
        assert req.tags is not desc.tags

    def test_explicit_location_and_tags_win(self):
        """Explicit values override the description"""
        desc = _vm_desc(location='centralus', tags={'a' : 'b'})
        req = VmCreator(FakeComputeClient(), _resolver_mock()).request_build(RESOURCE_GROUP, LOCATION, desc, tags={'c' : 'd'})
        assert req.location == LOCATION
        assert req.tags == {'c' : 'd'}

    def test_empty_tags_are_explicit(self):
        """An empty tag mapping is not the same as no tags"""
        desc = _vm_desc(tags={'a' : 'b'})
        req = VmCreator(FakeComputeClient(), _resolver_mock()).request_build(RESOURCE_GROUP, LOCATION, desc, tags={})
        assert req.tags == {}

    def test_no_location(self):
        """No location anywhere is an error"""
        with pytest.raises(ValueError):
            VmCreator(FakeComputeClient(), _resolver_mock()).request_build(RESOURCE_GROUP, '', _vm_desc(location=None))

    def test_description_not_modified(self):
        """The request shares no mutable state with the description"""
        desc = _vm_desc()
        req = VmCreator(FakeComputeClient(), _resolver_mock()).request_build(RESOURCE_GROUP, LOCATION, desc)
        assert desc.diagnostics_profile is None
        assert req.hardware_profile is not desc.hardware_profile
        req.hardware_profile.vm_size = 'Standard_B1s'
        assert desc.hardware_profile.vm_size == 'Standard_D2s_v3'

    def test_empty_endpoint_rejected(self):
        """A resolver that produces no endpoint stops the request"""
        with pytest.raises(ValueError):
            VmCreator(FakeComputeClient(), _resolver_mock(endpoint=None)).request_build(RESOURCE_GROUP, LOCATION, _vm_desc())

    def test_os_disk_uri(self):
        """Managed-disk VMs have no OS disk URI"""
        assert os_disk_uri_from_vm(_vm_desc()) == OS_DISK_URI
        assert os_disk_uri_from_vm(_vm_desc(os_disk_uri=None)) is None
        assert os_disk_uri_from_vm(VirtualMachine(location=LOCATION)) is None

    def test_real_resolver(self):
        """End to end with the resolver reusing the OS disk account"""
        storage = FakeStorageClient(accounts={RESOURCE_GROUP : [storage_account_obj('osdisk123')]})
        resolver = StorageAccountResolver(storage, SUBSCRIPTION_ID)
        req = VmCreator(FakeComputeClient(), resolver).request_build(RESOURCE_GROUP, LOCATION, _vm_desc())
        assert req.diagnostics_profile.boot_diagnostics.storage_uri == 'https://osdisk123.blob.core.windows.net/'
        assert not storage.storage_accounts.created

class TestSubmit:
    """Submitting the request"""

    def test_refuses_enabled_without_uri(self):
        """Boot diagnostics enabled with no storage URI is never submitted"""
        compute = FakeComputeClient()
        req = VirtualMachine(location=LOCATION,
                             diagnostics_profile=DiagnosticsProfile(boot_diagnostics=BootDiagnostics(enabled=True)))
        with pytest.raises(ValueError):
            VmCreator(compute, _resolver_mock()).submit(RESOURCE_GROUP, 'vm1', req)
        assert not compute.virtual_machines.calls

    @pytest.mark.parametrize('vm_name', ['', None, '-vm', 'vm_1'])
    def test_bad_vm_name(self, vm_name):
        """VM names are validated before submission"""
        compute = FakeComputeClient()
        with pytest.raises(ValueError):
            VmCreator(compute, _resolver_mock()).submit(RESOURCE_GROUP, vm_name, VirtualMachine(location=LOCATION))
        assert not compute.virtual_machines.calls

class TestCreate:
    """Build, submit, and report"""

    def test_no_wait(self):
        """Without waiting, the status reflects the accepted operation"""
        compute = FakeComputeClient()
        status = VmCreator(compute, _resolver_mock()).create(RESOURCE_GROUP, LOCATION, _vm_desc(), vm_name='vm1')
        assert len(compute.virtual_machines.calls) == 1
        rg, vm_name, req = compute.virtual_machines.calls[0]
        assert (rg, vm_name) == (RESOURCE_GROUP, 'vm1')
        assert req.diagnostics_profile.boot_diagnostics.storage_uri == ENDPOINT
        assert status.name == 'op-create-1'
        assert status.status == 'InProgress'
        assert status.start_time is not None
        assert status.end_time is None
        assert status.error is None
        assert compute.virtual_machines.poller.wait_calls == 0

    def test_wait_success(self):
        """Waiting reports the terminal status"""
        compute = FakeComputeClient(poller=FakePoller(status='Succeeded', done=False))
        status = VmCreator(compute, _resolver_mock()).create(RESOURCE_GROUP, LOCATION, _vm_desc(), vm_name='vm1', wait=True)
        assert status.status == 'Succeeded'
        assert status.end_time is not None
        assert status.name == 'create_or_update vm1'
        assert status.end_time >= status.start_time

    def test_wait_failure(self):
        """A failed operation is reported in the status rather than raised"""
        exc = azure.core.exceptions.HttpResponseError(message='quota exceeded')
        compute = FakeComputeClient(poller=FakePoller(status='InProgress', done=False, exc=exc))
        status = VmCreator(compute, _resolver_mock()).create(RESOURCE_GROUP, LOCATION, _vm_desc(), vm_name='vm1', wait=True)
        assert status.status == 'Failed'
        assert status.error is not None
        assert status.error.code == 'HttpResponseError'
        assert 'quota exceeded' in status.error.message

    @pytest.mark.parametrize('vm_name', ['bad name!', None, 'x' * 65])
    def test_bad_vm_name_creates_nothing(self, vm_name):
        """An unusable VM name fails before any storage account is looked up or created"""
        storage = FakeStorageClient()
        compute = FakeComputeClient()
        creator = VmCreator(compute, StorageAccountResolver(storage, SUBSCRIPTION_ID))
        with pytest.raises(ValueError):
            creator.create(RESOURCE_GROUP, LOCATION, _vm_desc(os_disk_uri=None), vm_name=vm_name)
        assert storage.storage_accounts.created == []
        assert storage.storage_accounts.calls == []
        assert not compute.virtual_machines.calls

    def test_name_from_description(self):
        """vm_name defaults to the description's name"""
        compute = FakeComputeClient()
        desc = VirtualMachine.from_dict({'location' : LOCATION, 'name' : 'vmfromdesc'})
        VmCreator(compute, _resolver_mock()).create(RESOURCE_GROUP, '', desc)
        assert compute.virtual_machines.calls[0][1] == 'vmfromdesc'

class TestVmCreateApp:
    """Command-line application"""

    def _desc_file(self, tmp_path, data):
        path = tmp_path / 'vm.yaml'
        path.write_text(yaml.safe_dump(data))
        return str(path)

    def test_required_args(self):
        """resource_group and vm_description are required"""
        with pytest.raises(ValueError):
            VmCreate(subscription_id=SUBSCRIPTION_ID, vm_description='x.yaml')
        with pytest.raises(ValueError):
            VmCreate(subscription_id=SUBSCRIPTION_ID, resource_group=RESOURCE_GROUP)

    def test_tags_parsed(self):
        """--tag KEY=VALUE pairs become the tag mapping"""
        app = VmCreate(subscription_id=SUBSCRIPTION_ID, resource_group=RESOURCE_GROUP, vm_description='x.yaml', tag=['a=b', 'c=d=e'])
        assert app.tags == {'a' : 'b', 'c' : 'd=e'}
        app = VmCreate(subscription_id=SUBSCRIPTION_ID, resource_group=RESOURCE_GROUP, vm_description='x.yaml')
        assert app.tags is None
        with pytest.raises(ValueError):
            VmCreate(subscription_id=SUBSCRIPTION_ID, resource_group=RESOURCE_GROUP, vm_description='x.yaml', tag=['novalue'])

    def test_description_load(self, tmp_path):
        """ARM-shaped YAML is accepted"""
        path = self._desc_file(tmp_path, {'name' : 'vm1',
                                          'location' : 'eastus',
                                          'properties' : {'hardwareProfile' : {'vmSize' : 'Standard_D2s_v3'}}})
        app = VmCreate(subscription_id=SUBSCRIPTION_ID, resource_group=RESOURCE_GROUP, vm_description=path)
        desc = app.vm_description_load()
        assert desc.location == 'eastus'
        assert desc.hardware_profile.vm_size == 'Standard_D2s_v3'

    def test_description_errors(self, tmp_path):
        """Unreadable or non-mapping descriptions raise exc_value"""
        app = VmCreate(subscription_id=SUBSCRIPTION_ID, resource_group=RESOURCE_GROUP, vm_description=str(tmp_path / 'missing.yaml'))
        with pytest.raises(ValueError):
            app.vm_description_load()
        path = tmp_path / 'list.yaml'
        path.write_text('- 1\n- 2\n')
        app = VmCreate(subscription_id=SUBSCRIPTION_ID, resource_group=RESOURCE_GROUP, vm_description=str(path))
        with pytest.raises(ValueError):
            app.vm_description_load()

    def test_main_execute(self, tmp_path, capsys, manager):
        """main_execute prints the status and exits 0"""
        path = self._desc_file(tmp_path, {'name' : 'vm1', 'location' : 'eastus'})
        manager._az_compute_cachedclient = FakeComputeClient() # pylint: disable=protected-access
        manager._az_storage_cachedclient = FakeStorageClient(accounts={RESOURCE_GROUP : [storage_account_obj('diag123')]}) # pylint: disable=protected-access
        app = VmCreate(subscription_id=SUBSCRIPTION_ID, resource_group=RESOURCE_GROUP, vm_description=path, wait=False)
        app.az_mgr_generate = lambda **kwargs: manager
        with pytest.raises(ApplicationExit) as exc_info:
            app.main_execute()
        assert exc_info.value.code == 0
        out = capsys.readouterr().out
        assert '"name": "op-create-1"' in out
        assert '"startTime"' in out
        calls = manager._az_compute_cachedclient.virtual_machines.calls # pylint: disable=protected-access
        assert calls[0][2].diagnostics_profile.boot_diagnostics.storage_uri == 'https://diag123.blob.core.windows.net/'

    def test_bad_vm_name_rejected(self, tmp_path, manager):
        """Invalid names from the command line or the description never reach storage"""
        with pytest.raises(ValueError):
            VmCreate(subscription_id=SUBSCRIPTION_ID, resource_group=RESOURCE_GROUP, vm_description='x.yaml', vm_name='bad name!')
        path = self._desc_file(tmp_path, {'name' : 'bad name!', 'location' : 'eastus'})
        app = VmCreate(subscription_id=SUBSCRIPTION_ID, resource_group=RESOURCE_GROUP, vm_description=path)
        app.az_mgr_generate = lambda **kwargs: manager
        with pytest.raises(ValueError):
            app.main_execute()
        assert manager._az_storage_cachedclient.storage_accounts.calls == [] # pylint: disable=protected-access

    def test_description_load_arm_json(self, tmp_path):
        """An ARM-form JSON description (as exported from the portal) loads"""
        path = tmp_path / 'vm.json'
        path.write_text(json.dumps({'name' : 'vm1',
                                    'location' : 'eastus',
                                    'tags' : {'env' : 'test'},
                                    'properties' : {'hardwareProfile' : {'vmSize' : 'Standard_D2s_v3'},
                                                    'storageProfile' : {'osDisk' : {'name' : 'osdisk',
                                                                                    'createOption' : 'FromImage',
                                                                                    'vhd' : {'uri' : OS_DISK_URI}}},
                                                    'diagnosticsProfile' : {'bootDiagnostics' : {'enabled' : True}},
                                                   },
                                   }))
        app = VmCreate(subscription_id=SUBSCRIPTION_ID, resource_group=RESOURCE_GROUP, vm_description=str(path))
        desc = app.vm_description_load()
        assert isinstance(desc, VirtualMachine)
        assert desc.name == 'vm1'
        assert desc.tags == {'env' : 'test'}
        assert desc.hardware_profile.vm_size == 'Standard_D2s_v3'
        assert os_disk_uri_from_vm(desc) == OS_DISK_URI
        assert desc.diagnostics_profile.boot_diagnostics.enabled is True
        assert desc.diagnostics_profile.boot_diagnostics.storage_uri is None

    def test_main_with_args_json(self, tmp_path, monkeypatch, capsys):
        """The command line creates a VM from a JSON description, reusing the OS disk account"""
        path = tmp_path / 'vm.json'
        path.write_text(json.dumps({'name' : 'vm1',
                                    'location' : 'eastus',
                                    'properties' : {'storageProfile' : {'osDisk' : {'createOption' : 'FromImage',
                                                                                    'vhd' : {'uri' : OS_DISK_URI}}}},
                                   }))
        storage = FakeStorageClient(accounts={RESOURCE_GROUP : [storage_account_obj('osdisk123')]})
        compute = FakeComputeClient()
        def _create(self, client_class):
            return storage if client_class is StorageManagementClient else compute
        monkeypatch.setattr(Manager, '_client_create', _create)
        with pytest.raises(SystemExit) as exc_info:
            VmCreate.main_with_args(['--subscription_id', SUBSCRIPTION_ID, '--resource_group', RESOURCE_GROUP,
                                     '--vm_description', str(path), '--nowait'])
        assert exc_info.value.code == 0
        assert json.loads(capsys.readouterr().out)['name'] == 'op-create-1'
        rg, vm_name, req = compute.virtual_machines.calls[0]
        assert (rg, vm_name) == (RESOURCE_GROUP, 'vm1')
        assert req.diagnostics_profile.boot_diagnostics.storage_uri == 'https://osdisk123.blob.core.windows.net/'
        assert storage.storage_accounts.created == []
