"""
Unpacking of fetched source archives

Archives are unpacked as they are, so a tarball containing
``ruby-1.9.2-p290/...`` ends up in ``<target>/ruby-1.9.2-p290``; this
is what a software's ``relative_path`` refers to. Members that would
land outside the target directory are refused.
"""

import os
import tarfile
import zipfile
from contextlib import closing

pjoin = os.path.join


class ArchiveError(Exception):
    pass


class SecurityError(ArchiveError):
    pass


def _check_member_name(name, target_dir):
    if os.path.isabs(name):
        raise SecurityError("Archive attempted to break out of target dir "
                            "with filename: %s" % name)
    dest = os.path.abspath(pjoin(target_dir, name))
    if dest != target_dir and not dest.startswith(target_dir + os.sep):
        raise SecurityError("Archive attempted to break out of target dir "
                            "with filename: %s" % name)


class TarballHandler(object):
    def __init__(self, logger):
        self.logger = logger

    def verify(self, filename):
        try:
            with closing(tarfile.open(filename, mode=self.read_mode)) as archive:
                archive.getmembers()
            return True
        except (tarfile.TarError, EOFError, OSError):
            return False

    def unpack(self, filename, target_dir):
        target_dir = os.path.abspath(target_dir)
        try:
            with closing(tarfile.open(filename, mode=self.read_mode)) as archive:
                members = archive.getmembers()
                for member in members:
                    _check_member_name(member.name, target_dir)
                    if member.issym() or member.islnk():
                        link_base = target_dir if member.islnk() else \
                            os.path.dirname(pjoin(target_dir, member.name))
                        _check_member_name(os.path.relpath(pjoin(link_base, member.linkname),
                                                           target_dir), target_dir)
                archive.extractall(target_dir, members)
        except (tarfile.TarError, EOFError) as e:
            raise ArchiveError("Archive corrupt and/or cannot be unpacked: '%s' (%s)" % (filename, e))


class TarGzHandler(TarballHandler):
    type = 'tar.gz'
    exts = ['tar.gz', 'tgz']
    read_mode = 'r:gz'


class TarBz2Handler(TarballHandler):
    type = 'tar.bz2'
    exts = ['tar.bz2', 'tb2', 'tbz2']
    read_mode = 'r:bz2'


class TarXzHandler(TarballHandler):
    type = 'tar.xz'
    exts = ['tar.xz', 'txz']
    read_mode = 'r:xz'


class PlainTarHandler(TarballHandler):
    type = 'tar'
    exts = ['tar']
    read_mode = 'r:'


class ZipHandler(object):
    type = 'zip'
    exts = ['zip']

    def __init__(self, logger):
        self.logger = logger

    def verify(self, filename):
        try:
            with closing(zipfile.ZipFile(filename)) as f:
                return f.testzip() is None # returns None if zip is OK
        except (zipfile.BadZipfile, OSError):
            return False

    def unpack(self, filename, target_dir):
        target_dir = os.path.abspath(target_dir)
        try:
            with closing(zipfile.ZipFile(filename)) as f:
                infolist = f.infolist()
                for info in infolist:
                    _check_member_name(info.filename, target_dir)
                f.extractall(target_dir, infolist)
        except zipfile.BadZipfile as e:
            raise ArchiveError("Archive corrupt and/or cannot be unpacked: '%s' (%s)" % (filename, e))


archive_ext_to_type = {}
archive_handler_classes = {}
for cls in [TarGzHandler, TarBz2Handler, TarXzHandler, PlainTarHandler, ZipHandler]:
    for ext in cls.exts:
        archive_ext_to_type[ext] = cls.type
    archive_handler_classes[cls.type] = cls
archive_types = sorted(archive_handler_classes)


def guess_archive_type(filename):
    """Archive type from the file name suffix, or `None` if not an archive"""
    # longest extensions first, so that 'tar.gz' wins over 'gz'-less 'tar'
    for ext in sorted(archive_ext_to_type, key=len, reverse=True):
        if filename.endswith('.' + ext):
            return archive_ext_to_type[ext]
    return None


def create_archive_handler(type, logger):
    return archive_handler_classes[type](logger)


def unpack_archive(filename, target_dir, logger):
    """
    Unpacks `filename` into `target_dir`, guessing the archive type from
    the file name.

    Raises
    ------
    ArchiveError
        If the type cannot be guessed or the archive is corrupt
    SecurityError
        If a member would end up outside `target_dir`
    """
    type = guess_archive_type(filename)
    if type is None:
        raise ArchiveError('Unable to guess archive type of "%s"' % filename)
    if not os.path.isdir(target_dir):
        os.makedirs(target_dir)
    logger.debug('Unpacking %s -> %s' % (filename, target_dir))
    create_archive_handler(type, logger).unpack(filename, target_dir)
