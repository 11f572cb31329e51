#
# azvm/exceptions.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Errors raised by azvm itself. Errors from the Azure SDKs propagate as the SDKs raise them.
'''

class ApplicationException(Exception):
    '''
    Base class for azvm errors
    '''

class ApplicationExit(ApplicationException):
    '''
    Ends a command-line run. code is the exit status; a str code
    is logged and the process exits 1.
    '''
    def __init__(self, code):
        super().__init__(code)
        self.code = code

    def __str__(self):
        return str(self.code)

class ConfigError(ApplicationExit):
    '''
    The azvm config file cannot be loaded, or holds a value of the wrong shape
    '''

class StorageAccountNameExhausted(ApplicationException):
    '''
    Every generated diagnostics storage account name was unavailable
    '''
    def __init__(self, resource_group, attempts):
        super().__init__("no available storage account name for resource_group %r after %d attempt(s)" % (resource_group, attempts))
        self.resource_group = resource_group
        self.attempts = attempts
