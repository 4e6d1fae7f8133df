"""
Handles reading the stackcache configuration file. By default this is
``~/.stackcache/config.yaml``::

    cache_dir: ./cache
    build_dir: ./build
    registry: ./registry
    fetch_timeout: 300
    remote_cache:
      enabled: true
      type: s3
      bucket: my-source-cache
      access_key: AKIA...
      secret_key: ...
      public_url: https://my-source-cache.s3.amazonaws.com

The file is loaded once, at start-up, into an immutable
:class:`ProcessConfig` which is then handed to everything that needs
it.
"""

import os
import json
from os.path import join as pjoin

from .marked_yaml import load_yaml_from_file, validate_yaml, raw_tree, ValidationError

DEFAULT_STORE_DIR = os.path.expanduser('~/.stackcache')
DEFAULT_CONFIG_FILENAME_REPR = '~/.stackcache/config.yaml'
DEFAULT_CONFIG_FILENAME = os.path.expanduser(DEFAULT_CONFIG_FILENAME_REPR)
CONFIG_ENV_VAR = 'STACKCACHE_CONFIG'

DEFAULT_FETCH_TIMEOUT = 300
REMOTE_STORE_TYPES = ('s3', 'dir', 'ssh')

config_schema = {
    "$schema": "http://json-schema.org/draft-04/schema#",
    "title": "stackcache configuration file schema",
    "type": "object",
    "properties": {
        "cache_dir": {"type": "string"},
        "build_dir": {"type": "string"},
        "registry": {"type": "string"},
        "fetch_timeout": {"type": "number", "minimum": 1},
        "remote_cache": {
            "type": "object",
            "properties": {
                "enabled": {"type": "boolean"},
                "type": {"enum": list(REMOTE_STORE_TYPES)},
                "bucket": {"type": "string"},
                "access_key": {"type": "string"},
                "secret_key": {"type": "string"},
                "endpoint_url": {"type": "string"},
                "public_url": {"type": "string"},
            },
            "additionalProperties": False,
        },
    },
    "required": ["cache_dir"],
    "additionalProperties": False,
}


class ProcessConfig(object):
    """
    Process-wide settings, read-only after construction

    Attributes
    ----------

    cache_dir : str
        Where fetched sources are kept (see :mod:`stackcache.core.fetcher`)

    build_dir : str
        Where sources are extracted and built

    registry : str or None
        Default location of the software/project declarations

    fetch_timeout : float
        Timeout in seconds for network operations

    use_remote_cache : bool
        The remote caching feature toggle

    remote_type, bucket, access_key, secret_key, endpoint_url, public_url
        Settings of the remote object store; see
        :mod:`stackcache.core.remote_store`
    """

    _fields = ('cache_dir', 'build_dir', 'registry', 'fetch_timeout',
               'use_remote_cache', 'remote_type', 'bucket', 'access_key',
               'secret_key', 'endpoint_url', 'public_url')

    def __init__(self, cache_dir, build_dir=None, registry=None,
                 fetch_timeout=DEFAULT_FETCH_TIMEOUT, use_remote_cache=False,
                 remote_type='s3', bucket=None, access_key=None, secret_key=None,
                 endpoint_url=None, public_url=None):
        if remote_type not in REMOTE_STORE_TYPES:
            raise ValueError('unknown remote store type: %s' % remote_type)
        values = dict(cache_dir=cache_dir,
                      build_dir=build_dir if build_dir is not None else pjoin(cache_dir, 'build'),
                      registry=registry,
                      fetch_timeout=fetch_timeout,
                      use_remote_cache=bool(use_remote_cache),
                      remote_type=remote_type,
                      bucket=bucket,
                      access_key=access_key,
                      secret_key=secret_key,
                      endpoint_url=endpoint_url,
                      public_url=public_url.rstrip('/') if public_url else None)
        for key, value in values.items():
            object.__setattr__(self, key, value)

    def __setattr__(self, key, value):
        raise AttributeError('ProcessConfig is read-only')

    def __delattr__(self, key):
        raise AttributeError('ProcessConfig is read-only')

    def __eq__(self, other):
        if not isinstance(other, ProcessConfig):
            return NotImplemented
        return self.as_dict() == other.as_dict()

    def __ne__(self, other):
        return not self == other

    __hash__ = None

    def __repr__(self):
        d = self.as_dict()
        if d['secret_key'] is not None:
            d['secret_key'] = '***'
        return 'ProcessConfig(%s)' % ', '.join('%s=%r' % (key, d[key]) for key in self._fields)

    def as_dict(self):
        return dict((key, getattr(self, key)) for key in self._fields)

    @staticmethod
    def from_document(doc, basedir, logger):
        """
        Creates a ProcessConfig from a validated configuration document,
        resolving relative paths against `basedir` and creating missing
        directories.
        """
        remote = doc.get('remote_cache', {})
        build_dir = doc.get('build_dir', pjoin(basedir, 'build'))
        registry = doc.get('registry')
        bucket = remote.get('bucket')
        if bucket is not None and remote.get('type') == 'dir':
            bucket = _make_abs(basedir, bucket)
        return ProcessConfig(
            cache_dir=_ensure_dir(_make_abs(basedir, doc['cache_dir']), logger),
            build_dir=_ensure_dir(_make_abs(basedir, build_dir), logger),
            registry=_make_abs(basedir, registry) if registry is not None else None,
            fetch_timeout=doc.get('fetch_timeout', DEFAULT_FETCH_TIMEOUT),
            use_remote_cache=remote.get('enabled', False),
            remote_type=remote.get('type', 's3'),
            bucket=bucket,
            access_key=remote.get('access_key'),
            secret_key=remote.get('secret_key'),
            endpoint_url=remote.get('endpoint_url'),
            public_url=remote.get('public_url'))


def _ensure_dir(path, logger):
    if not os.path.isdir(path):
        logger.info('%s does not exist, creating it.' % path)
        os.makedirs(path)
    return path

def _make_abs(cwd, path):
    path = os.path.expanduser(path)
    if not os.path.isabs(path):
        return os.path.realpath(os.path.join(cwd, path))
    else:
        return path

def load_config_file(filename, logger):
    """
    Load a config.yaml file, validate it, and create missing directories.
    """
    basedir = os.path.dirname(os.path.realpath(filename))
    doc = load_yaml_from_file(filename)
    if doc is None:
        raise ValidationError(None, '%s is empty' % filename)
    validate_yaml(doc, config_schema)
    return ProcessConfig.from_document(raw_tree(doc), basedir, logger)

def load_config_from_env(env, logger):
    """
    Load the configuration from the JSON document in ``$STACKCACHE_CONFIG``.

    Relative paths are resolved against the current directory. Returns
    `None` if the variable is not set.
    """
    if CONFIG_ENV_VAR not in env:
        return None
    try:
        doc = json.loads(env[CONFIG_ENV_VAR])
    except ValueError as e:
        raise ValidationError(None, 'invalid JSON in $%s: %s' % (CONFIG_ENV_VAR, e))
    validate_yaml(doc, config_schema)
    return ProcessConfig.from_document(doc, os.getcwd(), logger)

def get_config_example_filename():
    return pjoin(os.path.dirname(__file__), 'config.example.yaml')
