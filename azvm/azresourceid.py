#
# azvm/azresourceid.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Name rules for the Azure resources azvm touches: resource groups,
storage accounts, VMs and tags.
See https://docs.microsoft.com/en-us/azure/azure-resource-manager/management/resource-name-rules

RE_*_TXT is unanchored text; RE_*_ABS is compiled and must match the whole name.
'''
import re

from azvm.base_defaults import STORAGE_ACCOUNT_NAME_LEN_MAX
from azvm.util import re_abs

RE_RESOURCE_GROUP_TXT = r'([a-zA-Z0-9][a-zA-Z0-9\-\._]{0,78}[a-zA-Z0-9]{0,1})'
RE_RESOURCE_GROUP_ABS = re.compile(re_abs(RE_RESOURCE_GROUP_TXT))

RE_STORAGE_ACCOUNT_TXT = r'([a-z0-9]{3,' + str(STORAGE_ACCOUNT_NAME_LEN_MAX) + r'})'
RE_STORAGE_ACCOUNT_ABS = re.compile(re_abs(RE_STORAGE_ACCOUNT_TXT))

# Linux VM names go up to 64; Windows to 15. Enforce the looser bound here.
VM_NAME_LEN_MAX = 64
RE_VM_NAME_TXT = r'([a-zA-Z0-9][a-zA-Z0-9\-\.]{0,' + str(VM_NAME_LEN_MAX-2) + r'}[a-zA-Z0-9]{0,1})'
RE_VM_NAME_ABS = re.compile(re_abs(RE_VM_NAME_TXT))

RE_TAG_KEY_TXT = r'([^<>%\&\\\?/]{1,512})'
RE_TAG_KEY_ABS = re.compile(re_abs(RE_TAG_KEY_TXT))

RE_TAG_VALUE_TXT = r'(.{0,256})'
RE_TAG_VALUE_ABS = re.compile(re_abs(RE_TAG_VALUE_TXT))

def vm_name_check(vm_name, exc_value=ValueError):
    '''
    Raise exc_value unless vm_name is a usable VM name. Returns vm_name.
    '''
    if not (isinstance(vm_name, str) and RE_VM_NAME_ABS.search(vm_name)):
        raise exc_value("invalid vm_name %r" % (vm_name,))
    return vm_name

def tags_check(tags, exc_value=ValueError):
    '''
    Raise exc_value if tags (dict) contains keys or values Azure rejects.
    Returns tags.
    '''
    if tags is None:
        return tags
    if not isinstance(tags, dict):
        raise TypeError("tags must be dict, not %s" % type(tags))
    for k, v in tags.items():
        if not (isinstance(k, str) and RE_TAG_KEY_ABS.search(k)):
            raise exc_value("invalid tag key %r" % k)
        if not (isinstance(v, str) and RE_TAG_VALUE_ABS.search(v)):
            raise exc_value("invalid value for tag %r" % k)
    return tags
