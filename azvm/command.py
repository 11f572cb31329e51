#
# azvm/command.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Command-line actions for azvm.

A Manager method becomes an action by decorating it:

    command = Command()

    class Manager(...):
        @command.printable
        def storage_account_list(self):
            ...

The action name is the method name, so "azure_tool.py storage_account_list"
runs it. The decoration says what happens to the return value:
    simple          discarded; the method does its own output
    printable       printed, one line per element when it is a list
    printable_json  printed as JSON with REST property names
'''
import json

class Command():
    '''
    Registry of decorated actions
    '''
    KINDS = ('simple', 'printable', 'printable_json')

    def __init__(self):
        self._actions = dict() # name -> (kind, func)

    def _register(self, kind, func):
        name = func.__name__
        if name.startswith('_'):
            raise ValueError("action name %r may not start with '_'" % name)
        if name in self._actions:
            raise ValueError("duplicate action %r" % name)
        self._actions[name] = (kind, func)
        return func

    def simple(self, func):
        '''
        Decorator: func is an action whose return value is discarded
        '''
        return self._register('simple', func)

    def printable(self, func):
        '''
        Decorator: func is an action whose return value is printed
        '''
        return self._register('printable', func)

    def printable_json(self, func):
        '''
        Decorator: func is an action whose return value is printed as JSON
        '''
        return self._register('printable_json', func)

    @property
    def actions(self):
        '''
        Sorted action names
        '''
        return sorted(self._actions)

    def kind(self, name):
        '''
        Decoration of action name, or None if there is no such action
        '''
        entry = self._actions.get(name, None)
        return entry[0] if entry else None

    def _bound(self, name, target):
        '''
        The action method name bound to target, or None when target's
        class does not carry that registered method
        '''
        entry = self._actions.get(name, None)
        if entry is None:
            return None
        meth = getattr(target, name, None)
        if getattr(meth, '__func__', None) is not entry[1]:
            return None
        return meth

    def can_handle(self, name, target):
        '''
        Whether handle(name, target) would run something
        '''
        return self._bound(name, target) is not None

    def handle(self, name, target, **kwargs):
        '''
        Run action name on target and print its result as its decoration says.
        Returns False (running nothing) when target has no such action.
        '''
        meth = self._bound(name, target)
        if meth is None:
            return False
        ret = meth(**kwargs)
        kind = self.kind(name)
        if kind == 'printable_json':
            self.print_json(ret)
        elif kind == 'printable':
            self.print_lines(ret)
        return True

    @staticmethod
    def print_lines(item):
        '''
        print() item, or each element of a list/tuple.
        SDK models print as compact JSON; other objects as repr().
        '''
        for x in (item if isinstance(item, (list, tuple)) else [item]):
            if isinstance(x, str):
                print(x)
            elif callable(getattr(x, 'serialize', None)):
                print(json.dumps(_jsonable(x), sort_keys=True, default=str))
            else:
                print(repr(x))

    @staticmethod
    def print_json(item):
        '''
        print() item as indented JSON. SDK models and azvm.models
        use their REST (wire) property names.
        '''
        print(json.dumps(_jsonable(item), indent=2, sort_keys=True, default=str))

def _jsonable(item):
    '''
    item with every model replaced by its serialized dict
    '''
    if isinstance(item, (list, set, tuple)):
        return [_jsonable(x) for x in item]
    if isinstance(item, dict):
        return {k : _jsonable(v) for k, v in item.items()}
    serialize = getattr(item, 'serialize', None)
    if callable(serialize):
        return serialize(keep_readonly=True)
    return item
