"""
Interface to the remote object store holding cached source archives

A store only needs three operations: make sure the bucket exists, list
the keys in it, and put bytes under a key tagged with their MD5
checksum and readable by everyone. Three handlers are provided:

``s3``
    Amazon S3 or any S3-compatible service, through boto3 (installed
    with the ``s3`` extra). ``bucket`` is the bucket name.

``dir``
    A directory, e.g. on a shared filesystem or served by a web
    server. ``bucket`` is the directory path.

``ssh``
    A directory on another machine reached with passwordless
    ``ssh``; uploads are streamed over its stdin. ``bucket`` is
    ``user@host:remote_dir``.

Whether remote caching can be used at all is decided up front by
:func:`remote_cache_status`, not by trying and failing.
"""

import hashlib
import importlib.util
import os
import stat
import subprocess
import tempfile
from os.path import join as pjoin

from .hasher import content_md5
from .fileutils import silent_makedirs, silent_unlink


class RemoteStoreError(Exception):
    pass


class RemoteStoreBase(object):
    def ensure_bucket(self):
        raise NotImplementedError()
    def list_keys(self, prefix=''):
        raise NotImplementedError()
    def put(self, key, data, checksum):
        raise NotImplementedError()
    def describe(self):
        raise NotImplementedError()


def _check_data(key, data, checksum):
    actual = hashlib.md5(data).hexdigest()
    if actual != checksum.lower():
        raise RemoteStoreError('refusing to store %s: content has checksum %s, tagged %s' %
                               (key, actual, checksum))


class DirectoryRemoteStore(RemoteStoreBase):
    """
    Use a directory as the bucket
    """
    def __init__(self, path, logger):
        self.path = os.path.abspath(path)
        self.logger = logger

    def describe(self):
        return self.path

    def ensure_bucket(self):
        try:
            silent_makedirs(self.path)
        except OSError as e:
            raise RemoteStoreError('cannot create %s: %s' % (self.path, e))

    def list_keys(self, prefix=''):
        try:
            names = os.listdir(self.path)
        except OSError as e:
            raise RemoteStoreError('cannot list %s: %s' % (self.path, e))
        return sorted(name for name in names
                      if name.startswith(prefix) and not name.startswith('.uploading-'))

    def put(self, key, data, checksum):
        _check_data(key, data, checksum)
        try:
            fd, temp_path = tempfile.mkstemp(prefix='.uploading-', dir=self.path)
            try:
                with os.fdopen(fd, 'wb') as f:
                    f.write(data)
                os.chmod(temp_path, stat.S_IRUSR | stat.S_IWUSR | stat.S_IRGRP | stat.S_IROTH)
                os.replace(temp_path, pjoin(self.path, key))
            finally:
                silent_unlink(temp_path)
        except OSError as e:
            raise RemoteStoreError('cannot store %s in %s: %s' % (key, self.path, e))


class SSHRemoteStore(RemoteStoreBase):
    """
    Use a directory on a server reached with passwordless ssh
    """
    def __init__(self, location, logger, timeout=None):
        try:
            self.sshserver, self.remote_root = location.split(':', 1)
        except ValueError:
            raise RemoteStoreError('ssh store must be given as user@host:remote_dir, got %r' % location)
        self.remote_root = self.remote_root.rstrip('/') or '.'
        self.logger = logger
        self.timeout = timeout

    def describe(self):
        return '%s:%s' % (self.sshserver, self.remote_root)

    def _ssh(self, command, input=None):
        cmd = ['ssh', '-o', 'BatchMode=yes', self.sshserver, command]
        self.logger.debug('running: %s' % cmd)
        try:
            p = subprocess.run(cmd, input=input, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
                               timeout=self.timeout)
        except subprocess.TimeoutExpired:
            raise RemoteStoreError('ssh call %r timed out' % command)
        except OSError as e:
            raise RemoteStoreError('unable to run ssh: %s' % e)
        if p.returncode != 0:
            raise RemoteStoreError('ssh call %r failed with code %d:\n%s' %
                                   (command, p.returncode, p.stderr.decode('utf-8', 'replace')))
        return p.stdout.decode('utf-8')

    def ensure_bucket(self):
        self._ssh("mkdir -p '%s'" % self.remote_root)

    def list_keys(self, prefix=''):
        out = self._ssh("ls -1A '%s'" % self.remote_root)
        return sorted(name for name in out.splitlines()
                      if name and name.startswith(prefix) and not name.startswith('.uploading-'))

    def put(self, key, data, checksum):
        _check_data(key, data, checksum)
        target = '%s/%s' % (self.remote_root, key)
        temp = '%s/.uploading-%s' % (self.remote_root, key)
        self._ssh("cat - > '%s' && chmod 644 '%s' && mv -f '%s' '%s'" % (temp, temp, temp, target),
                  input=data)


class S3RemoteStore(RemoteStoreBase):
    """
    Use an S3 bucket, through boto3

    `client` may be passed in directly (with the exception classes it
    raises as `client_errors`); otherwise one is created from the
    credentials.
    """
    def __init__(self, bucket, logger, access_key=None, secret_key=None, endpoint_url=None,
                 timeout=None, client=None, client_errors=None):
        self.bucket = bucket
        self.logger = logger
        if client is None:
            import boto3
            from botocore.config import Config
            from botocore.exceptions import BotoCoreError, ClientError
            client = boto3.client('s3',
                                  aws_access_key_id=access_key,
                                  aws_secret_access_key=secret_key,
                                  endpoint_url=endpoint_url,
                                  config=Config(connect_timeout=timeout, read_timeout=timeout,
                                                retries={'max_attempts': 1}))
            client_errors = (BotoCoreError, ClientError)
        self.client = client
        self.client_errors = tuple(client_errors or ())

    def describe(self):
        return 's3://%s' % self.bucket

    def ensure_bucket(self):
        try:
            self.client.head_bucket(Bucket=self.bucket)
            return
        except self.client_errors as e:
            self.logger.info('Bucket %s not accessible (%s), trying to create it' % (self.bucket, e))
        try:
            self.client.create_bucket(Bucket=self.bucket)
        except self.client_errors as e:
            raise RemoteStoreError('cannot create bucket %s: %s' % (self.bucket, e))

    def list_keys(self, prefix=''):
        keys = []
        try:
            paginator = self.client.get_paginator('list_objects_v2')
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys.extend(obj['Key'] for obj in page.get('Contents', []))
        except self.client_errors as e:
            raise RemoteStoreError('cannot list bucket %s: %s' % (self.bucket, e))
        return sorted(keys)

    def put(self, key, data, checksum):
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data,
                                   ACL='public-read', ContentMD5=content_md5(checksum))
        except self.client_errors as e:
            raise RemoteStoreError('cannot upload %s to bucket %s: %s' % (key, self.bucket, e))


def remote_cache_status(config):
    """
    Whether remote caching can be used with `config`

    Returns
    -------
    (available, reason) : (bool, str or None)
        `reason` explains why it is not available.
    """
    if not config.use_remote_cache:
        return False, 'remote caching is disabled (remote_cache.enabled is false)'
    if not config.bucket:
        return False, 'no bucket configured (remote_cache.bucket)'
    if config.remote_type == 's3' and importlib.util.find_spec('boto3') is None:
        return False, 'the boto3 package is required to cache source packages in S3 (pip install stackcache[s3])'
    return True, None


def create_remote_store(config, logger):
    """Creates the store handler configured in `config`"""
    available, reason = remote_cache_status(config)
    if not available:
        raise RemoteStoreError(reason)
    if config.remote_type == 's3':
        return S3RemoteStore(config.bucket, logger,
                             access_key=config.access_key,
                             secret_key=config.secret_key,
                             endpoint_url=config.endpoint_url,
                             timeout=config.fetch_timeout)
    elif config.remote_type == 'ssh':
        return SSHRemoteStore(config.bucket, logger, timeout=config.fetch_timeout)
    else:
        return DirectoryRemoteStore(config.bucket, logger)
