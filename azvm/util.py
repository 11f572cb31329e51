#
# azvm/util.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Small helpers shared by the azvm modules.
'''
import logging
import sys
import time
import uuid

from azvm.base_defaults import EXC_VALUE_DEFAULT

def re_abs(txt):
    '''
    Anchor regexp text so it must match a whole string
    '''
    return f'^{txt}$'

def getframe(idx):
    '''
    "function:line" of a frame on the stack, for log prefixes.
    idx 0 is the caller of getframe, 1 is its caller, and so on.
    '''
    frame = sys._getframe(idx + 1) # pylint: disable=protected-access
    return f"{frame.f_code.co_name}:{frame.f_lineno}"

def elapsed(ts0, ts1=None):
    '''
    Seconds from ts0 to ts1 (default: now), never negative
    '''
    return max((time.time() if ts1 is None else ts1) - ts0, 0.0)

def uuid_normalize(val, key='uuid', exc_value=EXC_VALUE_DEFAULT) -> str:
    '''
    Return val (str or uuid.UUID) in the lowercase hyphenated form.
    A bad val raises exc_value, or returns '' when exc_value is None.
    '''
    try:
        if isinstance(val, uuid.UUID):
            return str(val)
        if isinstance(val, str):
            return str(uuid.UUID(val.strip()))
        problem = f"unexpected type {type(val)}"
    except ValueError as exc:
        if exc_value:
            raise exc_value(f"invalid {key}: {val!r}") from exc
        return ''
    if exc_value:
        raise exc_value(f"invalid {key}: {problem}")
    return ''

_LOG_LEVEL_NAMES = {'critical' : logging.CRITICAL,
                    'debug' : logging.DEBUG,
                    'error' : logging.ERROR,
                    'info' : logging.INFO,
                    'warning' : logging.WARNING,
                   }

def log_level_normalize(log_level):
    '''
    Given log_level as an int or a name ('info', 'DEBUG', ...),
    return the numeric log level.
    '''
    if isinstance(log_level, bool):
        raise TypeError("invalid log_level type %s" % type(log_level))
    if isinstance(log_level, int):
        return log_level
    if isinstance(log_level, str):
        try:
            return _LOG_LEVEL_NAMES[log_level.strip().lower()]
        except KeyError as exc:
            raise ValueError("invalid log_level %r" % log_level) from exc
    raise TypeError("invalid log_level type %s" % type(log_level))

def tags_from_strings(items, exc_value=EXC_VALUE_DEFAULT):
    '''
    Given an iterable of 'key=value' strings as passed on the command line,
    return a dict. Returns None when items is None so callers can
    distinguish "no tags supplied" from "empty tags".
    '''
    if items is None:
        return None
    ret = dict()
    for item in items:
        key, sep, value = item.partition('=')
        key = key.strip()
        if not (sep and key):
            raise exc_value("invalid tag %r (expected KEY=VALUE)" % item)
        ret[key] = value
    return ret
