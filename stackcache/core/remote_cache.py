"""
:mod:`stackcache.core.remote_cache` --- Content-addressed remote source cache
=============================================================================

Keeps a remote object store in sync with the software of a registry
whose sources are fetched by URL. Each archive is stored under its cache
key ``{name}-{version}-{checksum}`` (see :mod:`.cache_key`), so the same
content always lands under the same key and new content never
overwrites old content::

    cache = RemoteSourceCache(registry, create_remote_store(config, logger),
                              config, logger)
    cache.missing()      # url software not in the store yet
    report = cache.populate()
    report.failed        # [(spec, exception), ...]

Only ``url`` software is cacheable. A url software without a checksum
has no key; it is never listed as cached and :meth:`populate` reports
it as a failure.

Two independent ``populate`` runs against the same store may both
upload the same missing archive. Since both uploads carry identical
content under an identical key, the store ends up the same either way;
there is no locking beyond that.
"""

from .cache_key import key_for, InsufficientSpecificationError
from .archives import ArchiveError
from .fetcher import create_fetcher, ChecksumMismatchError, SourceUnavailableError
from .hasher import file_checksum
from .remote_store import RemoteStoreError

CACHE_ERRORS = (InsufficientSpecificationError, ChecksumMismatchError, SourceUnavailableError,
                RemoteStoreError, ArchiveError, OSError)


class PopulateReport(object):
    """
    Outcome of :meth:`RemoteSourceCache.populate`

    Attributes
    ----------
    uploaded : list of (spec, key)

    failed : list of (spec, exception)
    """
    def __init__(self):
        self.uploaded = []
        self.failed = []

    @property
    def ok(self):
        return not self.failed

    def __repr__(self):
        return '<PopulateReport uploaded=%d failed=%d>' % (len(self.uploaded), len(self.failed))


class RemoteSourceCache(object):
    """
    Synchronizes the url software of `registry` with `store`

    Parameters
    ----------
    registry : :class:`~stackcache.spec.software.Registry`

    store : remote store handler (see :mod:`.remote_store`)

    config : :class:`~stackcache.formats.config.ProcessConfig`

    logger : Logger

    fetcher_factory : callable (optional)
        ``fetcher_factory(spec, config, logger)``; defaults to
        :func:`~.fetcher.create_fetcher`
    """
    def __init__(self, registry, store, config, logger, fetcher_factory=create_fetcher):
        self.registry = registry
        self.store = store
        self.config = config
        self.logger = logger
        self.fetcher_factory = fetcher_factory
        self._bucket_ready = False

    def key_for(self, spec):
        return key_for(spec)

    def remote_keys(self):
        """The set of keys currently in the store"""
        if not self._bucket_ready:
            self.store.ensure_bucket()
            self._bucket_ready = True
        return set(self.store.list_keys())

    def cacheable_software(self):
        return self.registry.url_software()

    def _partition(self):
        keys = self.remote_keys()
        cached, missing = [], []
        for spec in self.cacheable_software():
            try:
                key = key_for(spec)
            except InsufficientSpecificationError:
                missing.append(spec)
                continue
            if key in keys:
                cached.append(spec)
            else:
                missing.append(spec)
        return cached, missing

    def list(self):
        """Url software whose archive is in the store"""
        return self._partition()[0]

    def missing(self):
        """Url software whose archive is not in the store (or cannot be keyed)"""
        return self._partition()[1]

    def list_by_key(self):
        """All keys in the store, sorted"""
        return sorted(self.remote_keys())

    def _fetch(self, spec):
        fetcher = self.fetcher_factory(spec, self.config, self.logger)
        return fetcher.fetch_and_verify(spec)

    def fetch_missing(self):
        """
        Fetches and verifies every missing software locally; the store is
        not touched. The first failure propagates.

        Returns
        -------
        list of (spec, local_path)
        """
        fetched = []
        for spec in self.missing():
            fetched.append((spec, self._fetch(spec)))
        return fetched

    def upload(self, spec):
        """Fetches `spec` locally and puts its archive in the store; returns the key"""
        key = key_for(spec)
        path = self._fetch(spec)
        with open(path, 'rb') as f:
            data = f.read()
        self.logger.info('Uploading %s (%d bytes) to %s' % (key, len(data), self.store.describe()))
        self.store.put(key, data, file_checksum(path))
        return key

    def populate(self, keep_going=True):
        """
        Uploads every missing software

        With `keep_going` a failure for one software is logged and
        recorded in the report, and the others are still processed;
        otherwise the first failure propagates.

        Returns
        -------
        :class:`PopulateReport`
        """
        report = PopulateReport()
        for spec in self.missing():
            try:
                key = self.upload(spec)
            except CACHE_ERRORS as e:
                if not keep_going:
                    raise
                self.logger.error('Could not cache %s: %s' % (spec.name, e))
                report.failed.append((spec, e))
            else:
                report.uploaded.append((spec, key))
        return report
