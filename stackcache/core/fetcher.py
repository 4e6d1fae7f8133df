"""
:mod:`stackcache.core.fetcher` --- Source fetchers
==================================================

A fetcher makes sure the sources of one software are present in the
local cache directory and are what the declaration says they are.
There is one fetcher class per source kind, chosen by
:func:`create_fetcher` from ``spec.source.kind``:

``url`` (:class:`UrlFetcher`)
    Downloads an archive over HTTP(S)/FTP, or reads a ``file:`` URL, to
    ``<cache_dir>/packs/<name>-<version>/<file name from URL>``.

``vcs`` (:class:`GitFetcher`)
    Clones the git repository to ``<cache_dir>/git/<name>`` and checks
    out ``ref``. The checksum of a git source is the commit.

``path`` (:class:`PathFetcher`)
    Copies a vendored file or directory to
    ``<cache_dir>/vendor/<name>-<version>``. A checksum is optional.

All fetchers share the same protocol::

    fetcher = create_fetcher(spec, config, logger)
    if fetcher.should_fetch(spec):
        path = fetcher.fetch(spec)
        fetcher.verify_checksum(spec, path)

which :meth:`SourceFetcher.fetch_and_verify` wraps. A local copy whose
checksum does not match is removed before :class:`ChecksumMismatchError`
is raised, so it is never trusted later. Failures to reach a source
raise :class:`SourceUnavailableError`; nothing is retried.

The cache directory has no locking; two processes fetching the same
software into the same directory at the same time may trip over each
other.
"""

import os
import re
import shutil
import socket
import subprocess
import tempfile
from http.client import HTTPException
from os.path import join as pjoin
from urllib.error import HTTPError, URLError
from urllib.parse import urlparse
from urllib.request import urlopen, url2pathname

from .archives import guess_archive_type, create_archive_handler, unpack_archive
from .cache_key import key_for
from .fileutils import silent_makedirs, silent_unlink, remove_artifact, copy_tree
from .hasher import artifact_checksum

CHUNK_SIZE = 16 * 1024

FILE_URL_RE = re.compile(r'^file:')

MIN_ABBREVIATED_COMMIT = 7


class SourceUnavailableError(Exception):
    pass


class ChecksumMismatchError(Exception):
    def __init__(self, spec, expected, actual, path):
        Exception.__init__(self, 'checksum mismatch for %s: expected %s, got %s (removed %s)' %
                           (spec, expected, actual, path))
        self.spec = spec
        self.expected = expected
        self.actual = actual
        self.path = path


class SourceFetcher(object):
    """
    Base class of the fetchers; see module documentation
    """
    kind = None

    def __init__(self, config, logger):
        self.config = config
        self.logger = logger
        self.cache_dir = config.cache_dir

    def local_path(self, spec):
        """Where the fetched artifact of `spec` lives"""
        raise NotImplementedError()

    def fetch(self, spec):
        """Retrieves the artifact to :meth:`local_path`, returns that path"""
        raise NotImplementedError()

    def compute_checksum(self, local_path):
        return artifact_checksum(local_path)

    def checksum_matches(self, actual, expected):
        return actual is not None and actual.lower() == expected.lower()

    def should_fetch(self, spec, local_path=None):
        """
        False exactly when a local copy exists and its checksum matches
        the declared one; a software without a checksum is always fetched.
        """
        if local_path is None:
            local_path = self.local_path(spec)
        if not os.path.exists(local_path) or not spec.checksum:
            return True
        return not self.checksum_matches(self.compute_checksum(local_path), spec.checksum)

    def verify_checksum(self, spec, local_path):
        """
        Raises :class:`ChecksumMismatchError`, after removing the local
        copy, if the artifact does not match the declared checksum.
        """
        if not spec.checksum:
            self.logger.warning('%s declares no checksum, cannot verify %s' % (spec.name, local_path))
            return
        actual = self.compute_checksum(local_path)
        if not self.checksum_matches(actual, spec.checksum):
            remove_artifact(local_path)
            self.logger.error('Checksum of %s is %s, expected %s' % (spec.name, actual, spec.checksum))
            raise ChecksumMismatchError(spec, spec.checksum, actual, local_path)

    def fetch_and_verify(self, spec):
        """Fetches `spec` unless an up to date copy exists; returns the local path"""
        local_path = self.local_path(spec)
        if self.should_fetch(spec, local_path):
            self.logger.info('Fetching %s' % spec.name)
            try:
                local_path = self.fetch(spec)
            except SourceUnavailableError as e:
                raise SourceUnavailableError('cannot fetch %s: %s' % (spec, e))
            self.verify_checksum(spec, local_path)
        else:
            self.logger.info('Cached copy of %s up to date, skipping.' % spec.name)
        return local_path

    def project_dir(self, spec, build_dir):
        return pjoin(build_dir, spec.relative_path or str(spec))

    def extract(self, spec, local_path, build_dir):
        """
        Makes the sources available under `build_dir` and returns the
        directory the build steps should run in.
        """
        raise NotImplementedError()

    def _extract_file_or_tree(self, spec, local_path, build_dir):
        project_dir = self.project_dir(spec, build_dir)
        if os.path.exists(project_dir):
            remove_artifact(project_dir)
        if os.path.isdir(local_path):
            copy_tree(local_path, project_dir)
        elif guess_archive_type(local_path) is not None:
            unpack_archive(local_path, build_dir, self.logger)
        else:
            silent_makedirs(project_dir)
            shutil.copy2(local_path, project_dir)
        return project_dir


class UrlFetcher(SourceFetcher):
    kind = 'url'

    def local_path(self, spec):
        filename = os.path.basename(urlparse(spec.source.location).path) or 'download'
        return pjoin(self.cache_dir, 'packs', str(spec), filename)

    def _open(self, url):
        if FILE_URL_RE.match(url):
            parsed = urlparse(url)
            if parsed.netloc not in ('', 'localhost'):
                raise SourceUnavailableError('cannot read remote file URL: %s' % url)
            path = url2pathname(parsed.path)
            try:
                return open(path, 'rb'), None
            except IOError as e:
                raise SourceUnavailableError('cannot read %s: %s' % (url, e))
        try:
            stream = urlopen(url, timeout=self.config.fetch_timeout)
        except HTTPError as e:
            raise SourceUnavailableError('failed to download (code: %d): %s' % (e.code, url))
        except URLError as e:
            raise SourceUnavailableError('failed to download (reason: %s): %s' % (e.reason, url))
        except (socket.timeout, OSError, ValueError) as e:
            raise SourceUnavailableError('failed to download (%s): %s' % (e, url))
        return stream, stream.headers.get('Content-Length')

    def _download(self, url, dest):
        """Downloads `url` to a temporary file next to `dest`, then renames it"""
        dest_dir = os.path.dirname(dest)
        silent_makedirs(dest_dir)
        stream, length = self._open(url)
        self.logger.info('Downloading %s%s' % (url, ' (%s bytes)' % length if length else ''))
        temp_fd, temp_path = tempfile.mkstemp(prefix='downloading-', dir=dest_dir)
        try:
            with os.fdopen(temp_fd, 'wb') as f:
                try:
                    while True:
                        chunk = stream.read(CHUNK_SIZE)
                        if not chunk:
                            break
                        f.write(chunk)
                finally:
                    stream.close()
        except (socket.timeout, OSError, HTTPException) as e:
            silent_unlink(temp_path)
            raise SourceUnavailableError('download of %s interrupted: %s' % (url, e))
        type = guess_archive_type(dest)
        if type is not None and not create_archive_handler(type, self.logger).verify(temp_path):
            silent_unlink(temp_path)
            raise SourceUnavailableError("File downloaded from '%s' is not a valid %s archive" % (url, type))
        os.replace(temp_path, dest)
        return dest

    def _fetch_from_mirror(self, spec, dest):
        url = '%s/%s' % (self.config.public_url, key_for(spec))
        try:
            self._download(url, dest)
        except SourceUnavailableError as e:
            self.logger.info('%s not in the remote cache (%s), using upstream' % (spec.name, e))
            return False
        if not self.checksum_matches(self.compute_checksum(dest), spec.checksum):
            self.logger.warning('Remote cache copy of %s has the wrong checksum, using upstream' % spec.name)
            silent_unlink(dest)
            return False
        return True

    def fetch(self, spec):
        dest = self.local_path(spec)
        if self.config.public_url and spec.checksum:
            if self._fetch_from_mirror(spec, dest):
                return dest
        return self._download(spec.source.location, dest)

    def extract(self, spec, local_path, build_dir):
        return self._extract_file_or_tree(spec, local_path, build_dir)


class GitFetcher(SourceFetcher):
    kind = 'vcs'

    def local_path(self, spec):
        return pjoin(self.cache_dir, 'git', spec.name)

    def git(self, repo, *args):
        cmd = ['git'] + list(args)
        env = dict(os.environ)
        env['GIT_TERMINAL_PROMPT'] = '0'
        self.logger.debug('running: %s' % cmd)
        try:
            p = subprocess.run(cmd, cwd=repo, env=env, stdin=subprocess.DEVNULL,
                               stdout=subprocess.PIPE, stderr=subprocess.PIPE,
                               timeout=self.config.fetch_timeout, universal_newlines=True)
        except subprocess.TimeoutExpired:
            raise SourceUnavailableError('git call %r timed out after %s seconds' %
                                         (args, self.config.fetch_timeout))
        except OSError as e:
            raise SourceUnavailableError('unable to run git: %s' % e)
        return p.returncode, p.stdout, p.stderr

    def checked_git(self, repo, *args):
        retcode, out, err = self.git(repo, *args)
        if retcode != 0:
            msg = 'git call %r failed with code %d:\n%s' % (args, retcode, err)
            self.logger.error(msg)
            raise SourceUnavailableError(msg)
        return out

    def compute_checksum(self, local_path):
        retcode, out, err = self.git(local_path, 'rev-parse', 'HEAD')
        return out.strip() if retcode == 0 else None

    def checksum_matches(self, actual, expected):
        # abbreviated commits are accepted down to MIN_ABBREVIATED_COMMIT digits
        if actual is None or len(expected) < MIN_ABBREVIATED_COMMIT:
            return False
        return actual.lower().startswith(expected.lower())

    def _resolve_ref(self, repo, spec):
        ref = spec.source.ref or spec.checksum
        if ref is None:
            return 'origin/HEAD'
        for candidate in ['origin/%s' % ref, ref]:
            retcode, out, err = self.git(repo, 'rev-parse', '--verify', '--quiet',
                                         '%s^{commit}' % candidate)
            if retcode == 0:
                return out.strip()
        raise SourceUnavailableError('"%s" not found in git repository %s' % (ref, spec.source.location))

    def fetch(self, spec):
        repo = self.local_path(spec)
        if os.path.isdir(pjoin(repo, '.git')):
            self.checked_git(repo, 'fetch', '--quiet', '--tags', 'origin')
        else:
            if os.path.exists(repo):
                remove_artifact(repo)
            silent_makedirs(os.path.dirname(repo))
            self.checked_git(None, 'clone', '--quiet', spec.source.location, repo)
        self.checked_git(repo, 'checkout', '--quiet', '--force', self._resolve_ref(repo, spec))
        return repo

    def extract(self, spec, local_path, build_dir):
        project_dir = self.project_dir(spec, build_dir)
        if os.path.exists(project_dir):
            remove_artifact(project_dir)
        copy_tree(local_path, project_dir, ignore_names=('.git',))
        return project_dir


class PathFetcher(SourceFetcher):
    kind = 'path'

    def local_path(self, spec):
        location = spec.source.location
        vendor_dir = pjoin(self.cache_dir, 'vendor', str(spec))
        if os.path.isfile(location):
            return pjoin(vendor_dir, os.path.basename(location))
        return vendor_dir

    def fetch(self, spec):
        location = spec.source.location
        if not os.path.exists(location):
            raise SourceUnavailableError('vendored source not found: %s' % location)
        dest = self.local_path(spec)
        vendor_dir = pjoin(self.cache_dir, 'vendor', str(spec))
        if os.path.exists(vendor_dir):
            remove_artifact(vendor_dir)
        if os.path.isdir(location):
            silent_makedirs(os.path.dirname(dest))
            copy_tree(location, dest)
        else:
            silent_makedirs(vendor_dir)
            shutil.copy2(location, dest)
        return dest

    def verify_checksum(self, spec, local_path):
        if not spec.checksum:
            self.logger.debug('%s is vendored without checksum' % spec.name)
            return
        SourceFetcher.verify_checksum(self, spec, local_path)

    def extract(self, spec, local_path, build_dir):
        return self._extract_file_or_tree(spec, local_path, build_dir)


FETCHERS = {
    'url': UrlFetcher,
    'vcs': GitFetcher,
    'path': PathFetcher,
}


def create_fetcher(spec, config, logger):
    """The fetcher for the source kind of `spec`"""
    if spec.source is None:
        raise ValueError('%s declares no source' % spec.name)
    return FETCHERS[spec.source.kind](config, logger)
