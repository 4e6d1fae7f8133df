import os
import shutil
import stat
import sys
import time


def silent_makedirs(path):
    """like os.makedirs, but does not raise error in the event that the directory already exists"""
    try:
        os.makedirs(path)
    except OSError:
        if not os.path.isdir(path):
            raise

def silent_unlink(path):
    """like os.unlink but does not raise error if the file does not exist"""
    try:
        os.unlink(path)
    except OSError:
        if os.path.exists(path):
            raise

def _make_writable_and_retry(func, path, exc):
    # read-only files (e.g. git pack files) refuse deletion on some platforms
    os.chmod(path, stat.S_IWRITE | stat.S_IREAD)
    func(path)

def robust_rmtree(path, logger=None, max_retries=6):
    """Robustly tries to delete paths.

    Retries several times (with increasing delays) if an OSError
    occurs.  If the final attempt fails, the Exception is propagated
    to the caller.
    """
    dt = 1
    for i in range(max_retries):
        try:
            if sys.version_info >= (3, 12):
                shutil.rmtree(path, onexc=_make_writable_and_retry)
            else:
                shutil.rmtree(path, onerror=_make_writable_and_retry)
            return
        except OSError:
            if i == max_retries - 1:
                raise
            if logger:
                logger.info('Unable to remove path: %s' % path)
                logger.info('Retrying after %d seconds' % dt)
            time.sleep(dt)
            dt *= 2

def remove_artifact(path):
    """Removes a file or directory tree, doing nothing if it is absent"""
    if os.path.isdir(path) and not os.path.islink(path):
        robust_rmtree(path)
    else:
        silent_unlink(path)

def copy_tree(src, dst, ignore_names=()):
    """Copies the directory `src` to `dst`, which must not exist

    Entries whose base name is in `ignore_names` (e.g. ``.git``) are
    skipped at every level. Symlinks are copied as symlinks.
    """
    ignore = shutil.ignore_patterns(*ignore_names) if ignore_names else None
    shutil.copytree(src, dst, symlinks=True, ignore=ignore)
