#
# azvm/operation.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Support for long-running operations (LROs): waiting on them and
projecting them into azvm.models.OperationStatus.
'''
import datetime
import logging
import time
import urllib.parse

from azvm.models import (ApiError,
                         ApiErrorBase,
                         InnerError,
                         OperationStatus,
                        )
from azvm.msapicall import LOGGER_NAME_DEFAULT
from azvm.util import (elapsed,
                       getframe,
                      )

# Terminal LRO states as reported by ARM
OPERATION_STATUS_SUCCEEDED = 'Succeeded'
OPERATION_STATUS_FAILED = 'Failed'
OPERATION_STATUS_CANCELED = 'Canceled'

OPERATION_STATUS_FAILED_STATES = (OPERATION_STATUS_FAILED.lower(),
                                  OPERATION_STATUS_CANCELED.lower(),
                                 )

def utcnow():
    '''
    Return the current time as an aware datetime in UTC
    '''
    return datetime.datetime.now(datetime.timezone.utc)

OPERATION_PATH_SEGMENTS = ('operations', 'operationstatuses')

def operation_id_from_url(url):
    '''
    ARM polling URLs end in /operations/<id> or /operationStatuses/<id>.
    Return <id>, or None for any other URL.
    '''
    if not isinstance(url, str):
        return None
    segments = urllib.parse.urlsplit(url).path.rstrip('/').split('/')
    if (len(segments) >= 2) and (segments[-2].lower() in OPERATION_PATH_SEGMENTS) and segments[-1]:
        return segments[-1]
    return None

def operation_id_for_poller(op):
    '''
    Best-effort ARM operation ID of LRO op (azure.core.polling.LROPoller), or None.
    An operation that completed synchronously has no polling URL and so no ID.
    '''
    try:
        url = op.polling_method()._operation.get_polling_url() # pylint: disable=protected-access
    except (AttributeError, NotImplementedError, ValueError):
        return None
    return operation_id_from_url(url)

def api_error_from_exception(exc):
    '''
    Given an exception raised by an SDK call or LRO, return ApiError.
    Uses the structured error body when the SDK parsed one.
    '''
    err = getattr(exc, 'error', None)
    if err is None:
        message = getattr(exc, 'message', None) or str(exc)
        return ApiError(code=type(exc).__name__, message=message)
    details = list()
    for detail in getattr(err, 'details', None) or list():
        details.append(ApiErrorBase(code=getattr(detail, 'code', None),
                                    target=getattr(detail, 'target', None),
                                    message=getattr(detail, 'message', None)))
    innererror = None
    inner = getattr(err, 'innererror', None)
    if isinstance(inner, dict) and inner:
        innererror = InnerError(exceptiontype=inner.get('exceptiontype', inner.get('code', None)),
                                errordetail=inner.get('errordetail', inner.get('message', None)))
    return ApiError(code=getattr(err, 'code', None),
                    target=getattr(err, 'target', None),
                    message=getattr(err, 'message', None),
                    details=details or None,
                    innererror=innererror)

def operation_status_from_poller(op, name, start_time, exc=None) -> OperationStatus:
    '''
    Project an LRO handle (azure.core.polling.LROPoller) into OperationStatus.
    name: used when the ARM operation ID cannot be determined
    start_time: when the operation was submitted
    exc: the exception that ended the operation, if any
    '''
    status = op.status()
    end_time = None
    error = None
    if exc is not None:
        error = api_error_from_exception(exc)
        if (not status) or (status.lower() not in OPERATION_STATUS_FAILED_STATES):
            status = OPERATION_STATUS_FAILED
        end_time = utcnow()
    elif op.done():
        end_time = utcnow()
    return OperationStatus(name=operation_id_for_poller(op) or name,
                           status=status,
                           start_time=start_time,
                           end_time=end_time,
                           error=error)

def operation_status_failed(status:OperationStatus) -> bool:
    '''
    Return whether status describes a failed operation
    '''
    if status.error is not None:
        return True
    return bool(status.status) and (status.status.lower() in OPERATION_STATUS_FAILED_STATES)

LRO_WAIT_LOG_INTERVAL = 60.0

def lro_wait(op, opname, logger=None, log_interval=LRO_WAIT_LOG_INTERVAL):
    '''
    Wait for LRO op to complete. Logs progress every log_interval seconds.
    If the operation fails, the poller's exception propagates.
    '''
    logger = logger or logging.getLogger(LOGGER_NAME_DEFAULT)
    t0 = time.time()
    while True:
        op.wait(timeout=log_interval)
        if op.done():
            break
        logger.info("%s still waiting for %s operation_id=%s status=%s elapsed=%.1f",
                    getframe(0), opname, operation_id_for_poller(op), op.status(), elapsed(t0))
    logger.debug("%s %s complete status=%s elapsed=%.1f", getframe(0), opname, op.status(), elapsed(t0))
