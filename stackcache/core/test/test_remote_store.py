import os
import stat
import hashlib
import subprocess
from os.path import join as pjoin

import mock

from .. import remote_store
from ..remote_store import (DirectoryRemoteStore, S3RemoteStore, SSHRemoteStore, RemoteStoreError,
                            create_remote_store, remote_cache_status)

from .utils import temp_dir, cat, assert_raises, logger, make_config


def md5(data):
    return hashlib.md5(data).hexdigest()


#
# directory store
#

def test_directory_store():
    with temp_dir() as d:
        store = DirectoryRemoteStore(pjoin(d, 'bucket'), logger)
        store.ensure_bucket()
        store.ensure_bucket()
        assert store.list_keys() == []
        store.put('b-1-abc', b'second', md5(b'second'))
        store.put('a-1-def', b'first', md5(b'first'))
        assert store.list_keys() == ['a-1-def', 'b-1-abc']
        assert store.list_keys(prefix='b-') == ['b-1-abc']
        assert cat(pjoin(d, 'bucket', 'a-1-def')) == 'first'
        mode = os.stat(pjoin(d, 'bucket', 'a-1-def')).st_mode
        assert mode & stat.S_IROTH
        # same content again is harmless
        store.put('a-1-def', b'first', md5(b'first'))
        assert store.list_keys() == ['a-1-def', 'b-1-abc']


def test_directory_store_refuses_wrong_checksum():
    with temp_dir() as d:
        store = DirectoryRemoteStore(d, logger)
        with assert_raises(RemoteStoreError):
            store.put('a-1-abc', b'data', md5(b'other data'))
        assert store.list_keys() == []


def test_directory_store_missing_bucket():
    with temp_dir() as d:
        store = DirectoryRemoteStore(pjoin(d, 'nowhere'), logger)
        with assert_raises(RemoteStoreError):
            store.list_keys()


#
# S3 store, with a mock client
#

class MockClientError(Exception):
    pass


def make_s3_store(client):
    return S3RemoteStore('bucket', logger, client=client, client_errors=(MockClientError,))


def test_s3_put():
    client = mock.Mock()
    store = make_s3_store(client)
    store.put('hello-1-5d41402abc4b2a76b9719d911017c592', b'hello', '5d41402abc4b2a76b9719d911017c592')
    client.put_object.assert_called_once_with(
        Bucket='bucket', Key='hello-1-5d41402abc4b2a76b9719d911017c592', Body=b'hello',
        ACL='public-read', ContentMD5='XUFAKrxLKna5cZ2REBfFkg==')


def test_s3_list_keys_paginates():
    client = mock.Mock()
    client.get_paginator.return_value.paginate.return_value = [
        {'Contents': [{'Key': 'b-1-x'}, {'Key': 'a-1-y'}]},
        {'Contents': [{'Key': 'c-1-z'}]},
        {},
    ]
    store = make_s3_store(client)
    assert store.list_keys() == ['a-1-y', 'b-1-x', 'c-1-z']
    client.get_paginator.assert_called_once_with('list_objects_v2')
    client.get_paginator.return_value.paginate.assert_called_once_with(Bucket='bucket', Prefix='')


def test_s3_ensure_bucket():
    client = mock.Mock()
    make_s3_store(client).ensure_bucket()
    client.head_bucket.assert_called_once_with(Bucket='bucket')
    assert not client.create_bucket.called

    client = mock.Mock()
    client.head_bucket.side_effect = MockClientError('404')
    make_s3_store(client).ensure_bucket()
    client.create_bucket.assert_called_once_with(Bucket='bucket')


def test_s3_errors():
    client = mock.Mock()
    client.head_bucket.side_effect = MockClientError('403')
    client.create_bucket.side_effect = MockClientError('403')
    client.put_object.side_effect = MockClientError('500')
    client.get_paginator.side_effect = MockClientError('500')
    store = make_s3_store(client)
    with assert_raises(RemoteStoreError):
        store.ensure_bucket()
    with assert_raises(RemoteStoreError):
        store.list_keys()
    with assert_raises(RemoteStoreError) as e:
        store.put('a-1-5d41402abc4b2a76b9719d911017c592', b'hello', '5d41402abc4b2a76b9719d911017c592')
    assert 'a-1-5d41402abc4b2a76b9719d911017c592' in str(e.exc_val)


#
# ssh store, with subprocess mocked out
#

def completed(stdout=b'', returncode=0):
    return subprocess.CompletedProcess([], returncode, stdout, b'ssh: failure')


def test_ssh_store():
    store = SSHRemoteStore('user@host:/srv/cache/', logger)
    assert store.describe() == 'user@host:/srv/cache'
    with mock.patch.object(remote_store.subprocess, 'run') as run:
        run.return_value = completed(b'b-1-x\na-1-y\n.uploading-c-1-z\n')
        assert store.list_keys() == ['a-1-y', 'b-1-x']
        args = run.call_args[0][0]
        assert args[:2] == ['ssh', '-o'] and args[3] == 'user@host'

        run.return_value = completed()
        store.put('a-1-y', b'data', md5(b'data'))
        command = run.call_args[0][0][-1]
        assert "mv -f '/srv/cache/.uploading-a-1-y' '/srv/cache/a-1-y'" in command
        assert run.call_args[1]['input'] == b'data'

        run.return_value = completed(returncode=255)
        with assert_raises(RemoteStoreError):
            store.ensure_bucket()


def test_ssh_store_bad_location():
    with assert_raises(RemoteStoreError):
        SSHRemoteStore('no-colon-here', logger)


#
# capability check
#

def test_remote_cache_status():
    with temp_dir() as d:
        available, reason = remote_cache_status(make_config(d))
        assert not available
        assert 'disabled' in reason

        available, reason = remote_cache_status(make_config(d, use_remote_cache=True))
        assert not available
        assert 'bucket' in reason

        config = make_config(d, use_remote_cache=True, bucket=pjoin(d, 'bucket'))
        assert remote_cache_status(config) == (True, None)
        assert isinstance(create_remote_store(config, logger), DirectoryRemoteStore)

        config = make_config(d, use_remote_cache=True, remote_type='s3', bucket='b')
        with mock.patch.object(remote_store.importlib.util, 'find_spec', return_value=None):
            available, reason = remote_cache_status(config)
            assert not available
            assert 'boto3' in reason
            with assert_raises(RemoteStoreError):
                create_remote_store(config, logger)
