"""Command-line tools for the remote source cache

All commands need remote caching to be enabled and usable (see
``remote_cache`` in the configuration file). When it is not, each of
them logs why and exits with status 2.
"""

from .main import register_subcommand
from ..core import RemoteSourceCache, create_remote_store, remote_cache_status
from ..util import ansi_color


class RemoteCacheCommand(object):
    """
    Base class of the cache commands; subclasses implement
    ``run_with_cache(ctx, args, cache)``
    """

    @staticmethod
    def setup(ap):
        pass

    @classmethod
    def run(cls, ctx, args):
        config = ctx.get_config()
        available, reason = remote_cache_status(config)
        if not available:
            return disabled_run(ctx, reason)
        registry = ctx.get_registry()
        store = create_remote_store(config, ctx.logger)
        cache = RemoteSourceCache(registry, store, config, ctx.logger)
        return cls.run_with_cache(ctx, args, cache)


def disabled_run(ctx, reason):
    ctx.logger.error('Remote source cache unavailable: %s' % reason)
    return 2


@register_subcommand
class CacheExisting(RemoteCacheCommand):
    """
    Lists the software whose sources are in the remote cache
    """
    command = 'cache-existing'

    @staticmethod
    def run_with_cache(ctx, args, cache):
        for spec in cache.list():
            ctx.out_stream.write('%s\n' % spec.name)


@register_subcommand
class CacheKeys(RemoteCacheCommand):
    """
    Lists all keys in the remote cache
    """
    command = 'cache-keys'

    @staticmethod
    def run_with_cache(ctx, args, cache):
        for key in cache.list_by_key():
            ctx.out_stream.write('%s\n' % key)


@register_subcommand
class CacheMissing(RemoteCacheCommand):
    """
    Lists the software with URL sources not in the remote cache yet
    """
    command = 'cache-missing'

    @staticmethod
    def run_with_cache(ctx, args, cache):
        for spec in cache.missing():
            ctx.out_stream.write('%s\n' % spec.name)


@register_subcommand
class CacheFetch(RemoteCacheCommand):
    """
    Fetches the sources missing from the remote cache, without uploading

    Each archive is downloaded to the local cache directory and its
    checksum verified; the first failure stops the command.
    """
    command = 'cache-fetch'

    @staticmethod
    def run_with_cache(ctx, args, cache):
        fetched = cache.fetch_missing()
        for spec, path in fetched:
            ctx.out_stream.write('%s %s -> %s\n' % (ansi_color.green('fetched'), spec.name, path))
        if not fetched:
            ctx.out_stream.write('Nothing to fetch\n')


@register_subcommand
class CachePopulate(RemoteCacheCommand):
    """
    Uploads the sources missing from the remote cache

    Example::

        $ stk cache-populate
        uploaded ruby-1.9.2-p290-604da71839a6ae02b5b5b5e1b792d5eb

    Every missing software is tried; the command exits with status 1
    if any of them failed, after listing the failures. With
    ``--fail-fast`` the first failure stops the command instead.
    """
    command = 'cache-populate'

    @staticmethod
    def setup(ap):
        ap.add_argument('--fail-fast', action='store_true',
                        help='Stop at the first software that cannot be cached')

    @staticmethod
    def run_with_cache(ctx, args, cache):
        report = cache.populate(keep_going=not args.fail_fast)
        for spec, key in report.uploaded:
            ctx.out_stream.write('%s %s\n' % (ansi_color.green('uploaded'), key))
        for spec, exc in report.failed:
            ctx.out_stream.write('%s %s: %s: %s\n' % (ansi_color.red('FAILED'), spec.name,
                                                     type(exc).__name__, exc))
        if not report.uploaded and not report.failed:
            ctx.out_stream.write('Remote cache up to date\n')
        return 0 if report.ok else 1
