#
# azvm/models/_models.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Serialization containers for operation status results.
The _attribute_map of each class binds Python attribute names
to the JSON property names used on the wire.
'''
from msrest.serialization import Model

class ApiErrorBase(Model):
    """Api error base.

    :param code: The error code.
    :type code: str
    :param target: The target of the particular error.
    :type target: str
    :param message: The error message.
    :type message: str
    """

    _attribute_map = {
        'code': {'key': 'code', 'type': 'str'},
        'target': {'key': 'target', 'type': 'str'},
        'message': {'key': 'message', 'type': 'str'},
    }

    def __init__(self, *, code=None, target=None, message=None, **kwargs):
        super().__init__(**kwargs)
        self.code = code
        self.target = target
        self.message = message

class InnerError(Model):
    """Inner error details.

    :param exceptiontype: The exception type.
    :type exceptiontype: str
    :param errordetail: The internal error message or exception dump.
    :type errordetail: str
    """

    _attribute_map = {
        'exceptiontype': {'key': 'exceptiontype', 'type': 'str'},
        'errordetail': {'key': 'errordetail', 'type': 'str'},
    }

    def __init__(self, *, exceptiontype=None, errordetail=None, **kwargs):
        super().__init__(**kwargs)
        self.exceptiontype = exceptiontype
        self.errordetail = errordetail

class ApiError(Model):
    """Api error.

    :param details: The Api error details
    :type details: list[~azvm.models.ApiErrorBase]
    :param innererror: The Api inner error
    :type innererror: ~azvm.models.InnerError
    :param code: The error code.
    :type code: str
    :param target: The target of the particular error.
    :type target: str
    :param message: The error message.
    :type message: str
    """

    _attribute_map = {
        'details': {'key': 'details', 'type': '[ApiErrorBase]'},
        'innererror': {'key': 'innererror', 'type': 'InnerError'},
        'code': {'key': 'code', 'type': 'str'},
        'target': {'key': 'target', 'type': 'str'},
        'message': {'key': 'message', 'type': 'str'},
    }

    def __init__(self, *, details=None, innererror=None, code=None, target=None, message=None, **kwargs):
        super().__init__(**kwargs)
        self.details = details
        self.innererror = innererror
        self.code = code
        self.target = target
        self.message = message

class OperationStatus(Model):
    """Operation status response.

    :param name: Operation ID
    :type name: str
    :param status: Operation status
    :type status: str
    :param start_time: Start time of the operation
    :type start_time: datetime
    :param end_time: End time of the operation
    :type end_time: datetime
    :param error: Api error
    :type error: ~azvm.models.ApiError
    """

    _attribute_map = {
        'name': {'key': 'name', 'type': 'str'},
        'status': {'key': 'status', 'type': 'str'},
        'start_time': {'key': 'startTime', 'type': 'iso-8601'},
        'end_time': {'key': 'endTime', 'type': 'iso-8601'},
        'error': {'key': 'error', 'type': 'ApiError'},
    }

    def __init__(self, *, name=None, status=None, start_time=None, end_time=None, error=None, **kwargs):
        super().__init__(**kwargs)
        self.name = name
        self.status = status
        self.start_time = start_time
        self.end_time = end_time
        self.error = error
