#
# azvm/models/__init__.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Data models
'''
from ._models import (ApiError,
                      ApiErrorBase,
                      InnerError,
                      OperationStatus,
                     )

__all__ = ['ApiError',
           'ApiErrorBase',
           'InnerError',
           'OperationStatus',
          ]
