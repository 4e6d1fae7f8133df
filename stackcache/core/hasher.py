"""
:mod:`stackcache.core.hasher` -- Checksums of fetched artifacts
===============================================================

Checksums are MD5 digests in lower-case hex, the form used both in
software declarations and in the keys of the remote cache.

Files are hashed by their contents. A directory (vendored sources) is
hashed as a stream starting with the 8-byte magic string ``STKTREE1``
followed by each file sorted by its ``/``-separated relative name,
each stored as

==========================  ==============================
little-endian ``uint32_t``  length of filename
little-endian ``uint64_t``  length of contents
---                         filename (UTF-8, no terminating null)
---                         contents
==========================  ==============================

so that the checksum depends on names and contents only, not on
timestamps or permissions.
"""

import os
import base64
import hashlib
import struct

hash_type = hashlib.md5

TREE_MAGIC = b'STKTREE1'
CHUNK_SIZE = 64 * 1024


class HashingWriteStream(object):
    """
    Utility for hashing and writing to a stream at the same time.
    The `stream` may be `None` for convenience.
    """
    def __init__(self, hasher, stream):
        self.hasher = hasher
        self.stream = stream

    def write(self, x):
        self.hasher.update(x)
        if self.stream is not None:
            self.stream.write(x)

    def hexdigest(self):
        return self.hasher.hexdigest()


def file_checksum(path):
    """MD5 hex digest of the contents of the file at `path`"""
    h = hash_type()
    with open(path, 'rb') as f:
        while True:
            chunk = f.read(CHUNK_SIZE)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()


def _tree_files(path):
    result = []
    for dirpath, dirnames, filenames in os.walk(path):
        dirnames.sort()
        for fname in filenames:
            full = os.path.join(dirpath, fname)
            rel = os.path.relpath(full, path).replace(os.sep, '/')
            result.append((rel, full))
    return sorted(result)


def tree_checksum(path):
    """MD5 hex digest of the directory tree at `path`, see module docs"""
    tee = HashingWriteStream(hash_type(), None)
    tee.write(TREE_MAGIC)
    for rel, full in _tree_files(path):
        name = rel.encode('utf-8')
        tee.write(struct.pack('<IQ', len(name), os.path.getsize(full)))
        tee.write(name)
        with open(full, 'rb') as f:
            while True:
                chunk = f.read(CHUNK_SIZE)
                if not chunk:
                    break
                tee.write(chunk)
    return tee.hexdigest()


def artifact_checksum(path):
    """Checksum of a fetched artifact, be it a single file or a directory"""
    if os.path.isdir(path):
        return tree_checksum(path)
    else:
        return file_checksum(path)


def content_md5(checksum):
    """
    Converts a hex MD5 checksum to the base64 form used in the
    ``Content-MD5`` header of object store uploads.
    """
    try:
        raw = bytes.fromhex(checksum)
    except ValueError:
        raise ValueError('not a hex MD5 checksum: %r' % checksum)
    if len(raw) != hash_type().digest_size:
        raise ValueError('not a hex MD5 checksum: %r' % checksum)
    return base64.b64encode(raw).decode('ascii')
