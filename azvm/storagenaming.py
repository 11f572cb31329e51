#
# azvm/storagenaming.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Storage account names: validity, extraction from blob URIs, and generation.
'''
import base64
import datetime
import hashlib
import urllib.parse
import uuid

from azvm.azresourceid import RE_STORAGE_ACCOUNT_ABS
from azvm.base_defaults import STORAGE_ACCOUNT_NAME_LEN_MAX

def storage_account_name_valid(name):
    '''
    Return whether name (str) is a valid bare storage account name
    '''
    return isinstance(name, str) and bool(RE_STORAGE_ACCOUNT_ABS.search(name))

def storage_account_name_from_uri(uri):
    '''
    Given the URI of a blob (typically a VM OS disk VHD such as
    https://mystorage123.blob.core.windows.net/vhds/os.vhd), return
    the storage account name taken from the authority up to the first '.'.
    Returns None if uri is empty, cannot be parsed, or does not
    carry a plausible account name. Never raises for a bad uri.
    '''
    if not (uri and isinstance(uri, str)):
        return None
    try:
        parsed = urllib.parse.urlsplit(uri.strip())
        host = parsed.hostname
    except ValueError:
        return None
    if not host:
        return None
    name, dot, _ = host.partition('.')
    if not (dot and storage_account_name_valid(name)):
        return None
    return name

# The timestamp component uses invariant-culture formatting (MM/DD/YYYY HH:MM:SS)
STORAGE_ACCOUNT_NAME_TIMESTAMP_FORMAT = '%m/%d/%Y %H:%M:%S'

def storage_account_name_generate(subscription_id, resource_group, now=None, uuid_gen=None):
    '''
    Generate a random storage account name.
    The name is derived from the MD5 digest of a fresh uuid, the local
    time, subscription_id, and resource_group. The digest is base64-encoded,
    stripped of non-alphanumerics, truncated to STORAGE_ACCOUNT_NAME_LEN_MAX,
    and lowercased.
    now and uuid_gen exist for unit testing.
    '''
    now = now if now is not None else datetime.datetime.now()
    uuid_gen = uuid_gen or uuid.uuid4
    txt = uuid_gen().hex + now.strftime(STORAGE_ACCOUNT_NAME_TIMESTAMP_FORMAT) + (subscription_id or '') + (resource_group or '')
    digest = hashlib.md5(txt.encode('utf-8')).digest()
    encoded = base64.b64encode(digest).decode('ascii')
    stripped = ''.join(c for c in encoded if c.isalnum())
    return stripped[:STORAGE_ACCOUNT_NAME_LEN_MAX].lower()
