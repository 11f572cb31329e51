#
# azvm/common.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Command-line application scaffolding shared by azure_tool and vm_create.

An Application is constructed from keyword arguments, either by a
caller or by main() from the parsed command line. Subclasses add
their arguments in main_add_parser_args() and do their work in
main_execute(), which finishes by raising ApplicationExit.
'''
import argparse
import logging
import os
import sys
import traceback

import azvm
from azvm._scfg import CONFIG_PATH_ENV
from azvm.azresourceid import RE_RESOURCE_GROUP_ABS
from azvm.base_defaults import (EXC_VALUE_DEFAULT,
                                LOCATION_DEFAULT_FALLBACK,
                               )
from azvm.exceptions import ApplicationExit
import azvm.util

class Application():
    '''
    Base for azvm command-line programs. exc_value is raised for bad
    construction arguments; main() passes ApplicationExit so a bad
    argument ends the run with a message rather than a traceback.
    '''
    def __init__(self,
                 debug=0,
                 exc_value=EXC_VALUE_DEFAULT,
                 log_file=None,
                 log_level=None,
                 log_to='stderr',
                 logger=None,
                 **kwargs):
        if kwargs:
            raise TypeError("%s: unexpected keyword arguments %s" % (type(self).__name__, ','.join(sorted(kwargs))))
        self.debug = debug
        self.exc_value = exc_value
        self._args_saved = dict()
        self.log_level = self.log_level_effective(log_level)
        self.logger = logger or self.logger_setup(self.log_level, log_to=log_to, log_file=log_file)

    LOGGER_NAME = 'azvm'
    LOG_FORMAT = "%(asctime)s %(levelname).3s %(message)s"
    LOG_LEVEL_DEFAULT = 'info'
    LOG_LEVEL_CHOICES = ('debug', 'info', 'warning', 'error', 'critical')
    LOG_TO_CHOICES = ('stderr', 'stdout')

    # Unit tests set this to force a more verbose level.
    LOG_LEVEL_PYTEST = ''

    # The Azure SDKs log every request at INFO.
    SDK_LOGGER_LEVELS = {'azure.core.pipeline.policies.http_logging_policy' : logging.WARNING,
                         'azure.identity' : logging.ERROR,
                        }

    @classmethod
    def log_level_effective(cls, log_level):
        '''
        Numeric level for log_level (name or number; None for the default)
        '''
        ret = azvm.util.log_level_normalize(cls.LOG_LEVEL_DEFAULT if log_level is None else log_level)
        if cls.LOG_LEVEL_PYTEST:
            ret = min(ret, azvm.util.log_level_normalize(cls.LOG_LEVEL_PYTEST))
        return ret

    @classmethod
    def logger_setup(cls, log_level, log_to='stderr', log_file=None):
        '''
        Configure root logging to log_file or the log_to stream and
        return the azvm logger at log_level
        '''
        if log_file:
            logging.basicConfig(format=cls.LOG_FORMAT, filename=log_file)
        else:
            logging.basicConfig(format=cls.LOG_FORMAT, stream=sys.stdout if log_to == 'stdout' else sys.stderr)
        for name, level in cls.SDK_LOGGER_LEVELS.items():
            logging.getLogger(name).setLevel(level)
        logger = logging.getLogger(cls.LOGGER_NAME)
        logger.setLevel(log_level)
        return logger

    def mth(self):
        '''
        "Class.method" naming the caller, for log lines
        '''
        return "%s.%s" % (type(self).__name__, sys._getframe(1).f_code.co_name) # pylint: disable=protected-access

    def location_effective(self, *args):
        '''
        First non-empty location in args, else self.location,
        else the configured location_default, else LOCATION_DEFAULT_FALLBACK
        '''
        for location in args + (getattr(self, 'location', ''),):
            if location:
                return location
        return azvm.scfg.get('location_default', '') or LOCATION_DEFAULT_FALLBACK

    # Parsed arguments that are not constructor arguments. main() moves
    # them to self._args_saved.
    ARGS_SAVE = ()

    @classmethod
    def main_add_parser_args(cls, ap_parser):
        '''
        Add command-line arguments. Subclasses extend this and call super().
        '''
        group = ap_parser.add_argument_group('logging and config')
        group.add_argument('--debug', type=int, default=int(os.environ.get('AZVM_DEBUG', '') or 0),
                           help='debug level (default $AZVM_DEBUG or 0)')
        group.add_argument('--log_level', type=str, default=cls.LOG_LEVEL_DEFAULT, choices=cls.LOG_LEVEL_CHOICES,
                           help='log level (default %(default)s)')
        group.add_argument('--log_to', type=str, default='stderr', choices=cls.LOG_TO_CHOICES,
                           help='log destination (default %(default)s)')
        group.add_argument('--log_file', type=str, default=None,
                           help='log to this file instead of --log_to')
        group.add_argument('--config_path', type=str, default=None,
                           help='azvm config file (default $%s or ~/.azvm/config.yaml)' % CONFIG_PATH_ENV)

    @classmethod
    def app_from_args(cls, cmd_args):
        '''
        Parse cmd_args (list of str) and return the application they describe
        '''
        ap_parser = argparse.ArgumentParser(allow_abbrev=False)
        cls.main_add_parser_args(ap_parser)
        kwargs = vars(ap_parser.parse_args(args=cmd_args))
        config_path = kwargs.pop('config_path', None)
        if config_path:
            azvm.scfg.filename_set(config_path)
        saved = {k : kwargs.pop(k) for k in cls.ARGS_SAVE if k in kwargs}
        app = cls(exc_value=ApplicationExit, **kwargs)
        app._args_saved = saved # pylint: disable=protected-access
        return app

    @classmethod
    def main(cls, name):
        '''
        Call as cls.main(__name__) at the bottom of a runnable module
        '''
        if name == '__main__':
            cls.main_with_args(sys.argv[1:])

    @classmethod
    def main_with_args(cls, cmd_args):
        '''
        Run the application for cmd_args. Always raises SystemExit:
        0 for success and 1 for any failure. A str ApplicationExit
        code is logged as the error message.
        '''
        logger = logging.getLogger(cls.LOGGER_NAME)
        try:
            app = cls.app_from_args(cmd_args)
            logger = app.logger
            app.main_execute()
            logger.error("%s.main_execute returned without exiting", type(app).__name__)
            code = 1
        except ApplicationExit as exc:
            code = exc.code
            if not isinstance(code, (bool, int, type(None))):
                logger.error("%s", code)
        except Exception as exc: # pylint: disable=broad-except
            logger.error("%s failed: %r\n%s", cls.__name__, exc, traceback.format_exc())
            code = 1
        raise SystemExit(int(bool(code)))

    def main_execute(self):
        '''
        Do the work; subclasses override this
        '''
        raise ApplicationExit(0)

class ApplicationWithResourceGroup(Application):
    '''
    Application bound to a subscription and, optionally, a resource group.
    subscription_id and tenant_id default from config.
    '''
    def __init__(self, subscription_id='', tenant_id='', resource_group='', **kwargs):
        super().__init__(**kwargs)
        if subscription_id in ('', None, 'default'):
            subscription_id = azvm.scfg.get('subscription_id_default', '')
        if not subscription_id:
            raise self.exc_value("'subscription_id' not specified and no subscription_id_default is configured")
        self.subscription_id = azvm.util.uuid_normalize(subscription_id, key='subscription_id', exc_value=self.exc_value)
        tenant_id = tenant_id or azvm.scfg.get('tenant_id_default', '')
        self.tenant_id = azvm.util.uuid_normalize(tenant_id, key='tenant_id', exc_value=self.exc_value) if tenant_id else ''
        self.resource_group = resource_group or ''
        if self.RESOURCE_GROUP_REQUIRED and (not self.resource_group):
            raise self.exc_value("'resource_group' not specified")

    RESOURCE_GROUP_REQUIRED = False

    @classmethod
    def main_add_parser_args(cls, ap_parser):
        super().main_add_parser_args(ap_parser)
        group = ap_parser.add_argument_group('azure')
        group.add_argument('--subscription_id', type=str, default='default',
                           help='subscription ID (default: subscription_id_default from config)')
        group.add_argument('--tenant_id', type=str, default='',
                           help='Azure tenant_id (default: tenant_id_default from config)')
        group.add_argument('--resource_group', type=str, default=os.environ.get('AZVM_RESOURCE_GROUP', ''),
                           help='resource group (default $AZVM_RESOURCE_GROUP)')

    def manager_kwargs(self, **kwargs):
        '''
        Constructor arguments for an azure_tool.Manager that
        shares this application's subscription and logger
        '''
        ret = {'debug' : self.debug,
               'log_level' : self.log_level,
               'logger' : self.logger,
               'resource_group' : self.resource_group,
               'subscription_id' : self.subscription_id,
               'tenant_id' : self.tenant_id,
              }
        ret.update(kwargs)
        return ret

    def resource_group_effective(self, resource_group, required=True, exc_value=ValueError):
        '''
        resource_group defaulted to self.resource_group and checked
        against the naming rules. Returns '' only when not required.
        '''
        resource_group = resource_group or self.resource_group
        if not resource_group:
            if required:
                raise exc_value("'resource_group' not specified")
            return ''
        if not isinstance(resource_group, str):
            raise TypeError("invalid resource_group type %s" % type(resource_group))
        if not RE_RESOURCE_GROUP_ABS.search(resource_group):
            raise exc_value("invalid resource_group name %r" % resource_group)
        return resource_group
