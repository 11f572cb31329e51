#
# azvm/base_defaults.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Built-in constants for VM creation and diagnostics storage.
Config (azvm.scfg) may override some of these; nothing here imports azvm.
'''
EXC_VALUE_DEFAULT = ValueError

# Used when neither the command line, the VM description, nor config names a location.
LOCATION_DEFAULT_FALLBACK = 'eastus2'

STORAGE_ACCOUNT_NAME_LEN_MAX = 24

# Generate-and-check rounds before giving up on a diagnostics account name.
STORAGE_ACCOUNT_NAME_ATTEMPTS_MAX = 16

DIAGNOSTICS_STORAGE_KIND_DEFAULT = 'StorageV2'

VM_ACCESS_EXTENSION_NAME_DEFAULT = 'VMAccessForLinux'
