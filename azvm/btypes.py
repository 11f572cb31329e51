#
# azvm/btypes.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Storage tier names and the read-only mapping that holds config values.
'''
import enum

from azvm.base_defaults import EXC_VALUE_DEFAULT

class StorageAccountType(enum.Enum):
    '''
    Storage account SKU names, spelled as Azure spells them
    '''
    PREMIUM_LRS = 'Premium_LRS'
    PREMIUM_ZRS = 'Premium_ZRS'
    STANDARD_GRS = 'Standard_GRS'
    STANDARD_LRS = 'Standard_LRS'
    STANDARD_RAGRS = 'Standard_RAGRS'
    STANDARD_ZRS = 'Standard_ZRS'

    @classmethod
    def from_str_nocase(cls, value):
        '''
        Return the member named by value, ignoring case, or None.
        value may be a member, a str, or an SDK enum (SkuName) carrying the str as .value.
        Azure does not always hand back SKU names in canonical case.
        '''
        if isinstance(value, cls):
            return value
        value = getattr(value, 'value', value)
        if not isinstance(value, str):
            return None
        return {x.value.lower(): x for x in cls}.get(value.lower())

    @classmethod
    def coerce(cls, value, exc_value=EXC_VALUE_DEFAULT, prefix=''):
        '''
        Like from_str_nocase(), but raises exc_value when value names no SKU
        '''
        ret = cls.from_str_nocase(value)
        if ret is None:
            choices = ', '.join(sorted(x.value for x in cls))
            msg = f"{value!r} is not a storage account type (expected one of {choices})"
            raise exc_value(f"{prefix}: {msg}" if prefix else msg)
        return ret

# Boot diagnostics blobs may not live in this tier.
DIAGNOSTICS_STORAGE_ACCOUNT_TYPE_EXCLUDED = StorageAccountType.PREMIUM_LRS

# Tier for diagnostics storage accounts azvm creates.
DIAGNOSTICS_STORAGE_ACCOUNT_TYPE_DEFAULT = StorageAccountType.STANDARD_GRS

class ReadOnlyDict(dict):
    '''
    Mapping for loaded config values. Every mutator raises TypeError.
    '''
    def _refuse(self, *args, **kwargs):
        raise TypeError(f"{type(self).__name__} is read-only")

    __setitem__ = __delitem__ = _refuse
    clear = pop = popitem = setdefault = update = _refuse
