#
# azvm/diagnostics.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Locate or provision the storage account that receives VM boot diagnostics.

Resolution happens in two phases:
  find_existing() is read-only: reuse the account that holds the OS disk,
    else the first suitable account in the resource group.
  provision() creates a new account with a generated, available name.
resolve_diagnostics_endpoint() composes the two and returns the blob endpoint.
'''
import logging

from azure.mgmt.storage.models import (Sku,
                                       StorageAccountCheckNameAvailabilityParameters,
                                       StorageAccountCreateParameters,
                                      )

from azvm.base_defaults import (DIAGNOSTICS_STORAGE_KIND_DEFAULT,
                                STORAGE_ACCOUNT_NAME_ATTEMPTS_MAX,
                               )
from azvm.btypes import (DIAGNOSTICS_STORAGE_ACCOUNT_TYPE_DEFAULT,
                         DIAGNOSTICS_STORAGE_ACCOUNT_TYPE_EXCLUDED,
                         StorageAccountType,
                        )
from azvm.exceptions import StorageAccountNameExhausted
from azvm.msapicall import (LOGGER_NAME_DEFAULT,
                            Caught,
                           )
from azvm.operation import lro_wait
from azvm.storagenaming import (storage_account_name_from_uri,
                                storage_account_name_generate,
                               )
from azvm.util import getframe

STORAGE_ACCOUNT_RESOURCE_TYPE = 'Microsoft.Storage/storageAccounts'

class StorageAccountRef():
    '''
    The subset of a storage account that diagnostics resolution cares about.
    '''
    def __init__(self, name, resource_group, location=None, sku_name=None, blob_endpoint=None):
        self.name = name
        self.resource_group = resource_group
        self.location = location
        self.sku_name = sku_name
        self.blob_endpoint = blob_endpoint

    def __repr__(self):
        return "%s(%r, %r, location=%r, sku_name=%r, blob_endpoint=%r)" % (type(self).__name__, self.name, self.resource_group, self.location, self.sku_name, self.blob_endpoint)

    def __eq__(self, other):
        if not isinstance(other, StorageAccountRef):
            return False
        return (self.name, self.resource_group, self.location, self.sku_name, self.blob_endpoint) == (other.name, other.resource_group, other.location, other.sku_name, other.blob_endpoint)

    def __hash__(self):
        return hash((self.name, self.resource_group))

    @classmethod
    def from_sdk(cls, obj, resource_group):
        '''
        Given azure.mgmt.storage.models.StorageAccount (or something shaped like it),
        return StorageAccountRef
        '''
        sku = getattr(obj, 'sku', None)
        sku_name = getattr(sku, 'name', None) if sku is not None else None
        if sku_name is not None:
            # The SDK may hand back an enum or a str
            sku_name = getattr(sku_name, 'value', sku_name)
        endpoints = getattr(obj, 'primary_endpoints', None)
        blob_endpoint = getattr(endpoints, 'blob', None) if endpoints is not None else None
        return cls(obj.name,
                   resource_group,
                   location=getattr(obj, 'location', None),
                   sku_name=sku_name,
                   blob_endpoint=blob_endpoint)

    @property
    def storage_account_type(self):
        '''
        Return the SKU as StorageAccountType, or None if it is not set or not recognized
        '''
        if not self.sku_name:
            return None
        return StorageAccountType.from_str_nocase(self.sku_name)

    def sku_is(self, storage_account_type):
        '''
        Return whether this account has the given StorageAccountType. Ignores case.
        '''
        if not self.sku_name:
            return False
        return self.sku_name.lower() == storage_account_type.value.lower()

class StorageAccountResolver():
    '''
    Find or create a storage account for boot diagnostics.
    storage_client is azure.mgmt.storage.StorageManagementClient or
    anything else providing its storage_accounts operations.
    '''
    def __init__(self,
                 storage_client,
                 subscription_id,
                 logger=None,
                 name_attempts_max=STORAGE_ACCOUNT_NAME_ATTEMPTS_MAX,
                 sku_name=DIAGNOSTICS_STORAGE_ACCOUNT_TYPE_DEFAULT.value,
                 kind=DIAGNOSTICS_STORAGE_KIND_DEFAULT,
                 tags=None,
                 name_generator=None):
        if name_attempts_max < 1:
            raise ValueError("invalid name_attempts_max %r" % name_attempts_max)
        self.storage_client = storage_client
        self.subscription_id = subscription_id
        self.logger = logger or logging.getLogger(LOGGER_NAME_DEFAULT)
        self.name_attempts_max = name_attempts_max
        self.sku_name = getattr(sku_name, 'value', sku_name)
        self.kind = kind
        self.tags = dict(tags) if tags else None
        self.name_generator = name_generator or storage_account_name_generate

    def __repr__(self):
        return "<%s,subscription_id=%r>" % (type(self).__name__, self.subscription_id)

    @classmethod
    def usable_for_diagnostics(cls, ref:StorageAccountRef) -> bool:
        '''
        Return whether ref may receive boot diagnostics.
        Premium_LRS accounts cannot hold diagnostics blobs.
        '''
        return not ref.sku_is(DIAGNOSTICS_STORAGE_ACCOUNT_TYPE_EXCLUDED)

    def resolve_diagnostics_endpoint(self, resource_group, location, os_disk_uri=None) -> str:
        '''
        Return the blob endpoint for boot diagnostics in resource_group,
        reusing an existing account when one is suitable and provisioning
        one in location otherwise.
        '''
        ref = self.find_existing(resource_group, os_disk_uri=os_disk_uri)
        if ref is None:
            ref = self.provision(resource_group, location)
        return ref.blob_endpoint

    def find_existing(self, resource_group, os_disk_uri=None):
        '''
        Read-only search for a reusable account.
        Returns StorageAccountRef or None.
        '''
        candidate = storage_account_name_from_uri(os_disk_uri) if os_disk_uri else None
        if candidate:
            ref = self._candidate_get(resource_group, candidate)
            if ref is not None:
                if self.usable_for_diagnostics(ref) and ref.blob_endpoint:
                    self.logger.debug("%s reuse os disk storage account %r", getframe(0), ref.name)
                    return ref
                self.logger.debug("%s os disk storage account %r not usable (sku_name=%r)", getframe(0), ref.name, ref.sku_name)
        elif os_disk_uri:
            self.logger.debug("%s no storage account name in os_disk_uri %r", getframe(0), os_disk_uri)
        for ref in self._list(resource_group):
            if ref.sku_name and self.usable_for_diagnostics(ref) and ref.blob_endpoint:
                self.logger.debug("%s reuse storage account %r from resource_group %r", getframe(0), ref.name, resource_group)
                return ref
        return None

    def _candidate_get(self, resource_group, storage_account_name):
        '''
        Fetch properties for the candidate. Returns None if the account does not exist.
        '''
        try:
            obj = self.storage_client.storage_accounts.get_properties(resource_group, storage_account_name)
        except Exception as exc:
            caught = Caught(exc)
            if caught.is_missing():
                self.logger.debug("%s candidate %r not found in resource_group %r", getframe(0), storage_account_name, resource_group)
                return None
            raise
        if not obj:
            return None
        return StorageAccountRef.from_sdk(obj, resource_group)

    def _list(self, resource_group) -> list:
        '''
        Return a list of StorageAccountRef for resource_group in listing order
        '''
        pager = self.storage_client.storage_accounts.list_by_resource_group(resource_group)
        if not pager:
            return list()
        return [StorageAccountRef.from_sdk(obj, resource_group) for obj in pager]

    def name_available(self, storage_account_name) -> bool:
        '''
        Return whether storage_account_name is available for a new account
        '''
        params = StorageAccountCheckNameAvailabilityParameters(name=storage_account_name, type=STORAGE_ACCOUNT_RESOURCE_TYPE)
        res = self.storage_client.storage_accounts.check_name_availability(params)
        return bool(res.name_available)

    def name_choose(self, resource_group) -> str:
        '''
        Generate names until one is available.
        Raises StorageAccountNameExhausted after name_attempts_max tries.
        '''
        for attempt in range(1, self.name_attempts_max+1):
            name = self.name_generator(self.subscription_id, resource_group)
            if self.name_available(name):
                return name
            self.logger.debug("%s attempt %d/%d: %r is not available", getframe(0), attempt, self.name_attempts_max, name)
        self.logger.error("%s no storage account name available for resource_group %r after %d attempt(s)",
                          getframe(0), resource_group, self.name_attempts_max)
        raise StorageAccountNameExhausted(resource_group, self.name_attempts_max)

    def provision(self, resource_group, location) -> StorageAccountRef:
        '''
        Create a new account for diagnostics and return it as re-fetched after creation.
        '''
        name = self.name_choose(resource_group)
        params = StorageAccountCreateParameters(sku=Sku(name=self.sku_name),
                                                kind=self.kind,
                                                location=location,
                                                tags=self.tags)
        self.logger.info("%s create storage account %r resource_group=%r location=%r sku_name=%r",
                         getframe(0), name, resource_group, location, self.sku_name)
        op = self.storage_client.storage_accounts.begin_create(resource_group, name, params)
        lro_wait(op, 'storage_accounts.begin_create', self.logger)
        obj = self.storage_client.storage_accounts.get_properties(resource_group, name)
        return StorageAccountRef.from_sdk(obj, resource_group)
