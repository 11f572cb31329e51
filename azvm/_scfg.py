#
# azvm/_scfg.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
"scfg" is roughly "subscription configuration": defaults that apply
to every azvm run, read once from a YAML file.

The file holds a single top-level 'defaults' mapping:
    defaults:
      subscription_id_default: 11111111-1111-1111-1111-111111111111
      tenant_id_default: 22222222-2222-2222-2222-222222222222
      location_default: westus2
      storage_account_name_attempts_max: 16
      diagnostics_storage_sku: Standard_GRS
      diagnostics_storage_kind: StorageV2
      tags:
        owner: someone

Keys listed in _Scfg.VALIDATORS are checked when the file loads.
Other keys are kept as loaded.
'''
import os
import threading

import yaml

from azvm.base_defaults import EXC_VALUE_DEFAULT
from azvm.btypes import (ReadOnlyDict,
                         StorageAccountType,
                        )
from azvm.exceptions import ConfigError
import azvm.util

CONFIG_PATH_ENV = 'AZVM_CONFIG'
CONFIG_PATH_DEFAULT = os.path.join('~', '.azvm', 'config.yaml')

def config_filename_default():
    '''
    $AZVM_CONFIG if set, else ~/.azvm/config.yaml
    '''
    return os.environ.get(CONFIG_PATH_ENV, '') or os.path.expanduser(CONFIG_PATH_DEFAULT)

def _check_uuid(key, value):
    return azvm.util.uuid_normalize(value, key=key, exc_value=ConfigError)

def _check_str(key, value):
    if not (isinstance(value, str) and value.strip()):
        raise ConfigError(f"{key} must be a non-empty string, not {value!r}")
    return value.strip()

def _check_positive_int(key, value):
    if isinstance(value, bool) or (not isinstance(value, int)) or (value <= 0):
        raise ConfigError(f"{key} must be a positive integer, not {value!r}")
    return value

def _check_storage_sku(key, value):
    return StorageAccountType.coerce(value, exc_value=ConfigError, prefix=key).value

def _check_tags(key, value):
    if not isinstance(value, dict):
        raise ConfigError(f"{key} must be a mapping, not {type(value)}")
    for k, v in value.items():
        if not (isinstance(k, str) and isinstance(v, str)):
            raise ConfigError(f"{key} must map str to str (bad entry {k!r})")
    return ReadOnlyDict(value)

class _Scfg():
    '''
    Lazily loaded, read-only view of the azvm config file
    '''
    VALIDATORS = {'subscription_id_default' : _check_uuid,
                  'tenant_id_default' : _check_uuid,
                  'location_default' : _check_str,
                  'storage_account_name_attempts_max' : _check_positive_int,
                  'diagnostics_storage_sku' : _check_storage_sku,
                  'diagnostics_storage_kind' : _check_str,
                  'tags' : _check_tags,
                 }

    def __init__(self):
        self._lock = threading.RLock()
        self._filename_override = ''
        self._loaded_from = None
        self._values = None

        # Unit tests put values here; they win over the file.
        self.test_values = dict()

    def reset(self, filename=''):
        '''
        Forget loaded values and test_values
        '''
        with self._lock:
            self.filename_set(filename)
            self.test_values = dict()

    def filename_set(self, filename):
        '''
        Load from filename (empty: the default) next time a value is wanted
        '''
        with self._lock:
            self._filename_override = filename or ''
            self._loaded_from = None
            self._values = None

    @property
    def filename(self):
        '''
        The file values were loaded from, or will be
        '''
        with self._lock:
            return self._loaded_from or self._filename_override or config_filename_default()

    @classmethod
    def _parse(cls, filename):
        '''
        Return the validated 'defaults' mapping of filename.
        A missing file, or one without 'defaults', gives an empty mapping.
        '''
        try:
            with open(filename, 'r') as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            return ReadOnlyDict()
        except yaml.error.MarkedYAMLError as exc:
            raise ConfigError(f"cannot parse {filename!r}: error line {exc.problem_mark.line} column {exc.problem_mark.column}") from exc
        except yaml.error.YAMLError as exc:
            raise ConfigError(f"cannot parse {filename!r}: {exc}") from exc
        if data is None:
            data = dict()
        if not isinstance(data, dict):
            raise ConfigError(f"{filename!r} has type {type(data)}; expected mapping")
        defaults = data.get('defaults', None) or dict()
        if not isinstance(defaults, dict):
            raise ConfigError(f"defaults in {filename!r} has type {type(defaults)}; expected mapping")
        ret = dict()
        for key, value in defaults.items():
            check = cls.VALIDATORS.get(key, None)
            ret[key] = check(f"defaults[{key}]", value) if check else value
        return ReadOnlyDict(ret)

    def _loaded(self):
        '''
        Return the validated values, loading them on first use
        '''
        with self._lock:
            if self._values is None:
                filename = self.filename
                self._values = self._parse(filename)
                self._loaded_from = filename
            return self._values

    @staticmethod
    def _key_valid(name):
        return isinstance(name, str) and bool(name) and (not name.startswith('_'))

    def to_dict(self) -> dict:
        '''
        Return everything configured, test_values included
        '''
        with self._lock:
            ret = dict(self._loaded())
            ret.update(self.test_values)
            return ret

    def get(self, name, defaultvalue):
        '''
        Return the value configured for name, or defaultvalue
        '''
        if not self._key_valid(name):
            return defaultvalue
        with self._lock:
            if name in self.test_values:
                return self.test_values[name]
            return self._loaded().get(name, defaultvalue)

    def tget(self, key, dtype, exc_value=EXC_VALUE_DEFAULT):
        '''
        Return the value configured for key, which must be a dtype.
        Returns dtype() when key is not configured.
        '''
        if not self._key_valid(key):
            return dtype()
        with self._lock:
            if key in self.test_values:
                return self.test_values[key]
            try:
                ret = self._loaded()[key]
            except KeyError:
                return dtype()
            if not isinstance(ret, dtype):
                raise exc_value(f"{self._loaded_from!r}[{key!r}] has unexpected type {type(ret)}")
            return ret

scfg = _Scfg()
