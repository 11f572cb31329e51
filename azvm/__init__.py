#
# azvm/__init__.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
azvm: create Azure VMs with boot diagnostics, resolving the
diagnostics storage account when the description names none.

azvm.scfg is the process-wide configuration loaded from YAML.
'''
from ._scfg import scfg

__all__ = ['reset_caches',
           'scfg',
          ]

def reset_caches(config_filename=''):
    '''
    Forget loaded configuration and test values. With config_filename,
    configuration is read from that file the next time it is wanted.
    Unit tests call this between cases.
    '''
    scfg.reset(filename=config_filename)
