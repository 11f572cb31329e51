#
# azvm/msapicall.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Retries around Azure management SDK calls.

Manager hands out StorageManagementClient and ComputeManagementClient
wrapped in RetryingClient. Every method call on an operation group
(client.storage_accounts.get_properties(...),
client.virtual_machines.begin_create_or_update(...)) then goes
through msapicall(). Pollers and pagers come back unwrapped;
only the call that returns them is retried.
'''
import collections
import functools
import random
import time

import azure.core.exceptions
import urllib3.exceptions

from azvm.util import getframe

LOGGER_NAME_DEFAULT = 'azvm'

URLLIB3_SDK_EXCEPTIONS = (urllib3.exceptions.HTTPError,
                          urllib3.exceptions.HTTPWarning,
                         )

AZURE_SDK_EXCEPTIONS = (azure.core.exceptions.HttpResponseError,
                        azure.core.exceptions.ServiceRequestError,
                        azure.core.exceptions.ServiceResponseError,
                       ) + URLLIB3_SDK_EXCEPTIONS

class CallPolicy():
    '''
    Attempt budgets for one msapicall(). Throttling has its own, larger budget.
    '''
    def __init__(self, attempts=5, attempts_throttled=100):
        self.attempts = attempts
        self.attempts_throttled = attempts_throttled

    def attempts_for(self, reason):
        '''
        Budget for failures with the given Caught.reason()
        '''
        return self.attempts_throttled if reason == 'throttle' else self.attempts

class Caught():
    '''
    What went wrong with a storage or compute management call
    '''
    # ARM and storage resource provider codes that fail identically on every retry.
    # Not-found codes are covered by is_missing().
    FINAL_CODES = frozenset(x.lower() for x in ('AccountNameInvalid',
                                                'AuthenticationFailed',
                                                'ExpiredAuthenticationToken',
                                                'InvalidParameter',
                                                'OperationNotAllowed',
                                                'QuotaExceeded',
                                                'SkuNotAvailable',
                                                'StorageAccountAlreadyExists',
                                                'StorageAccountAlreadyTaken',
                                               ))

    MISSING_CODES = frozenset(('notfound',
                               'resourcegroupnotfound',
                               'resourcenotfound',
                               'storageaccountnotfound',
                              ))

    FINAL_TYPES = (azure.core.exceptions.ClientAuthenticationError,
                   azure.core.exceptions.DeserializationError,
                   azure.core.exceptions.ResourceExistsError,
                   azure.core.exceptions.ResourceNotFoundError,
                   azure.core.exceptions.SerializationError,
                  )

    def __init__(self, exc):
        self.exc = exc
        try:
            self.status_code = int(getattr(exc, 'status_code', None))
        except (TypeError, ValueError):
            self.status_code = None
        code = getattr(exc, 'error_code', None) or getattr(getattr(exc, 'error', None), 'code', None)
        self.error_code = str(code).lower() if code else ''

    def is_missing(self):
        '''
        The resource (or its resource group) does not exist
        '''
        return isinstance(self.exc, azure.core.exceptions.ResourceNotFoundError) \
          or (self.status_code == 404) \
          or (self.error_code in self.MISSING_CODES)

    def is_final(self):
        '''
        Retrying cannot help
        '''
        return isinstance(self.exc, self.FINAL_TYPES) \
          or (self.error_code in self.FINAL_CODES) \
          or self.is_missing()

    def is_transport(self):
        '''
        No usable response came back
        '''
        return isinstance(self.exc, (azure.core.exceptions.ServiceRequestError,
                                     azure.core.exceptions.ServiceResponseError,
                                    ) + URLLIB3_SDK_EXCEPTIONS)

    def is_throttle(self):
        return self.status_code == 429

    def is_conflict(self):
        return self.status_code == 409

    def reason(self):
        '''
        Short name for the kind of failure; 'other' when nothing specific applies
        '''
        for name in ('missing', 'transport', 'throttle', 'conflict'):
            if getattr(self, 'is_' + name)():
                return name
        return 'other'

    def retry_time(self):
        '''
        Seconds to sleep before retrying, or None to give up now
        '''
        if self.is_final():
            return None
        if self.is_transport():
            return random.uniform(5, 10)
        if self.is_throttle() or self.is_conflict():
            # jittered so concurrent callers spread out
            return random.uniform(28, 32)
        if (self.status_code is not None) and (400 <= self.status_code < 500):
            return None
        return random.uniform(1, 3)

def msapicall(logger, op, *args, azvm_callpolicy=None, **kwargs):
    '''
    Return op(*args, **kwargs), retrying transient SDK failures.
    When the error is final or the budget for its reason is spent,
    the SDK exception propagates as raised.
    '''
    policy = azvm_callpolicy or CallPolicy()
    failures = collections.Counter()
    while True:
        try:
            return op(*args, **kwargs)
        except AZURE_SDK_EXCEPTIONS as exc:
            caught = Caught(exc)
            delay = caught.retry_time()
            reason = caught.reason()
            failures[reason] += 1
            budget = policy.attempts_for(reason)
            if (delay is None) or (failures[reason] >= budget):
                raise
            logger.warning("%s %s failed [%s %d/%d], retry in %.1fs: %r",
                           getframe(0), getattr(op, '__qualname__', op), reason, failures[reason], budget, delay, exc)
            time.sleep(delay)

class RetryingOperations():
    '''
    Proxy for one operation group of a management client, such as
    client.storage_accounts. Public methods run through msapicall().
    '''
    def __init__(self, wrapped, logger):
        self._azvm_wrapped = wrapped
        self._azvm_logger = logger

    def __repr__(self):
        return "<%s %r>" % (type(self).__name__, self._azvm_wrapped)

    def __getattr__(self, name):
        attr = getattr(self._azvm_wrapped, name)
        if name.startswith('_') or (not callable(attr)):
            return attr
        return functools.partial(msapicall, self._azvm_logger, attr)

class RetryingClient():
    '''
    Proxy for a management client. Public non-callable attributes
    are operation groups and come back as RetryingOperations.
    '''
    def __init__(self, wrapped, logger):
        self._azvm_wrapped = wrapped
        self._azvm_logger = logger

    def __repr__(self):
        return "<%s %r>" % (type(self).__name__, self._azvm_wrapped)

    def __getattr__(self, name):
        attr = getattr(self._azvm_wrapped, name)
        if name.startswith('_') or callable(attr):
            return attr
        return RetryingOperations(attr, self._azvm_logger)
