import os
import hashlib
import struct
from os.path import join as pjoin

from .. import hasher
from .utils import assert_raises, temp_dir, dump


def test_file_checksum():
    with temp_dir() as d:
        dump(pjoin(d, 'hello'), 'hello')
        assert hasher.file_checksum(pjoin(d, 'hello')) == '5d41402abc4b2a76b9719d911017c592'
        dump(pjoin(d, 'empty'), '')
        assert hasher.file_checksum(pjoin(d, 'empty')) == 'd41d8cd98f00b204e9800998ecf8427e'


def test_tree_checksum_stream():
    with temp_dir() as d:
        dump(pjoin(d, 'b', 'x'), 'bar')
        dump(pjoin(d, 'a'), 'foo')
        expected = hashlib.md5()
        expected.update(b'STKTREE1')
        for name, contents in [(b'a', b'foo'), (b'b/x', b'bar')]:
            expected.update(struct.pack('<IQ', len(name), len(contents)) + name + contents)
        assert hasher.tree_checksum(d) == expected.hexdigest()


def test_tree_checksum_ignores_metadata():
    with temp_dir() as d:
        dump(pjoin(d, 'src', 'main.c'), 'int main() { return 0; }\n')
        dump(pjoin(d, 'README'), 'readme\n')
        h1 = hasher.tree_checksum(d)
        os.utime(pjoin(d, 'README'), (0, 0))
        os.chmod(pjoin(d, 'src', 'main.c'), 0o755)
        assert hasher.tree_checksum(d) == h1
        # renames and edits do change it
        os.rename(pjoin(d, 'README'), pjoin(d, 'README.txt'))
        h2 = hasher.tree_checksum(d)
        assert h2 != h1
        dump(pjoin(d, 'README.txt'), 'readme!\n')
        assert hasher.tree_checksum(d) != h2


def test_artifact_checksum():
    with temp_dir() as d:
        dump(pjoin(d, 'tree', 'f'), 'hello')
        assert hasher.artifact_checksum(pjoin(d, 'tree', 'f')) == '5d41402abc4b2a76b9719d911017c592'
        assert hasher.artifact_checksum(pjoin(d, 'tree')) == hasher.tree_checksum(pjoin(d, 'tree'))


def test_content_md5():
    assert hasher.content_md5('5d41402abc4b2a76b9719d911017c592') == 'XUFAKrxLKna5cZ2REBfFkg=='
    assert hasher.content_md5('5D41402ABC4B2A76B9719D911017C592') == 'XUFAKrxLKna5cZ2REBfFkg=='
    with assert_raises(ValueError):
        hasher.content_md5('not-hex')
    with assert_raises(ValueError):
        hasher.content_md5('5d41')
