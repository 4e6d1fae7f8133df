import os
import tempfile
import shutil
import functools
import contextlib
import hashlib
import tarfile
from textwrap import dedent
from contextlib import closing

from ..fileutils import silent_makedirs
from ...formats.config import ProcessConfig

import logging
from stackcache.util.logger_setup import configure_logging

from os.path import join as pjoin

def which(filename):
    """Checks PATH for the location of filename"""

    locations = os.environ.get("PATH").split(os.pathsep)
    for location in locations:
        candidate = os.path.join(location, filename)
        if os.path.isfile(candidate):
            return candidate
    return None


def make_abs_temp_dir():
    """Create a temporary directory and get its absolute path"""
    return os.path.realpath(tempfile.mkdtemp())


# We always use the context manager form
class AssertRaisesResult(object):
    pass

@contextlib.contextmanager
def assert_raises(wanted_exc_type):
    r = AssertRaisesResult()
    try:
        yield r
    except wanted_exc_type as e:
        r.exc_type = type(e)
        r.exc_val = e
        r.exc_tb = e.__traceback__
    else:
        assert False, 'Expected exception not raised'


@contextlib.contextmanager
def temp_dir():
    tempdir = make_abs_temp_dir()
    try:
        yield tempdir
    finally:
        shutil.rmtree(tempdir)

@contextlib.contextmanager
def temp_working_dir():
    tempdir = make_abs_temp_dir()
    try:
        with working_directory(tempdir):
            yield tempdir
    finally:
        shutil.rmtree(tempdir)

@contextlib.contextmanager
def working_directory(path):
    old = os.getcwd()
    try:
        os.chdir(path)
        yield
    finally:
        os.chdir(old)

def cat(filename):
    with open(filename) as f:
        return f.read()

def dump(filename, contents):
    d = os.path.dirname(filename)
    if d:
        silent_makedirs(d)
    with open(filename, 'w') as f:
        f.write(dedent(contents))

def temp_working_dir_fixture(func):
    @functools.wraps(func)
    def replacement():
        with temp_working_dir() as d:
            return func(d)
    # pytest must not see the argument of the wrapped function
    del replacement.__wrapped__
    return replacement


VERBOSE = bool(int(os.environ.get('VERBOSE', '0')))
if VERBOSE:
    configure_logging('DEBUG')
    logger = logging.getLogger()
else:
    configure_logging('WARNING')
    logger = logging.getLogger('null_logger')


def make_config(cache_dir, **kw):
    """A ProcessConfig for tests, with a short timeout and the local
    cache and build directories below `cache_dir`"""
    kw.setdefault('fetch_timeout', 10)
    kw.setdefault('remote_type', 'dir')
    return ProcessConfig(cache_dir, **kw)


#
# Mock archives
#
def scatter_files(files, target_dir):
    """Writes `files`, a list of (relative name, contents), under `target_dir`"""
    for name, contents in files:
        path = pjoin(target_dir, name)
        silent_makedirs(os.path.dirname(path))
        with open(path, 'w') as f:
            f.write(contents)


def make_temporary_tarball(files, top='project-1.0', archive_name='archive.tar.gz'):
    """Make a tarball in a temporary directory; returns
    (name of directory, name of archive, md5 checksum)

    The files are put below the directory `top` in the archive.
    """
    container_dir = make_abs_temp_dir()
    archive_filename = pjoin(container_dir, archive_name)

    tmp_d = make_abs_temp_dir()
    try:
        scatter_files([(pjoin(top, name), contents) for name, contents in files], tmp_d)
        with closing(tarfile.open(archive_filename, 'w:gz')) as archive:
            archive.add(pjoin(tmp_d, top), arcname=top)
    finally:
        shutil.rmtree(tmp_d)
    with open(archive_filename, 'rb') as f:
        checksum = hashlib.md5(f.read()).hexdigest()
    return container_dir, archive_filename, checksum


def file_url(path):
    return 'file:' + path
