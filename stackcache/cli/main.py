"""Main entry-point

Other ``stackcache.cli.*`` modules register their sub-commands using
:func:`register_subcommand`.
"""

import sys
import textwrap
import os
import traceback
import errno
import shutil
import argparse

import yaml

from ..formats.config import (load_config_file, load_config_from_env, DEFAULT_CONFIG_FILENAME_REPR,
                              DEFAULT_CONFIG_FILENAME, DEFAULT_STORE_DIR, get_config_example_filename)
from ..formats.marked_yaml import ValidationError
from ..spec import load_registry, PlanningError
from ..core import (InsufficientSpecificationError, ChecksumMismatchError, SourceUnavailableError,
                    RemoteStoreError, BuildFailedError, ArchiveError)

import logging
logger = logging.getLogger()
from ..util.logger_setup import set_log_level, configure_logging, has_error_occurred


#
# sub-command registration
#

_subcommands = {}

def register_subcommand(cls, command=None):
    """Register a subcommand for the ``stk`` command-line tool

    The provided `cls` should provide the following (see :cls:`Help` below
    for an example):

     - ``cls.__doc__`` is used as the help text; the first line is used as
       the one-liner in the command overview
     - ``cls.setup`` should be a function/static method that configures
       the passed-in argument parser
     - ``cls.run`` runs the command
    """
    if command is None:
        command = getattr(cls, 'command', cls.__name__.lower())
    _subcommands[command] = cls
    return cls


class StackCacheCommandContext(object):
    def __init__(self, argparser, subcommand_parsers, out_stream, config_filename, env, logger,
                 registry_path=None):
        self.argparser = argparser
        self.subcommand_parsers = subcommand_parsers
        self.out_stream = out_stream
        self.env = env
        self.logger = logger
        self._config_filename = config_filename
        self._registry_path = registry_path
        self._config = None
        self._registry = None

    def _ensure_home(self):
        InitHome.run(self, None)

    def _ensure_config(self):
        config = load_config_from_env(self.env, self.logger)
        if config is None:
            try:
                config = load_config_file(self._config_filename, self.logger)
            except IOError as e:
                if e.errno == errno.ENOENT and self._config_filename == DEFAULT_CONFIG_FILENAME:
                    self.logger.warning('Unable to find %s, running stk init-home.' % self._config_filename)
                    self._ensure_home()
                    config = load_config_file(self._config_filename, self.logger)
                else:
                    raise
        self._config = config

    def get_config(self):
        if self._config is None:
            self._ensure_config()
        return self._config

    def get_registry(self):
        if self._registry is None:
            path = self._registry_path or self.get_config().registry
            if path is None:
                self.error('No registry given; use --registry or set "registry" in %s'
                           % self._config_filename)
            self._registry = load_registry(path, self.logger)
        return self._registry

    def error(self, msg):
        self.argparser.error(msg)


def _parse_docstring(doc):
    # extract help one-liner
    for line in doc.splitlines():
        s = line.strip()
        if s:
            help = s
            break
    assert help
    # make description help text; do some light ReST->terminal for now
    description = textwrap.dedent(doc)
    description = description.replace('::\n', ':\n').replace('``', '"')
    return help, description


def command_line_entry_point(unparsed_argv, env, secondary=False):
    """
    The main ``stk`` command-line entry point

    Arguments:
    ----------

    unparsed_argv : list of str
        The unparsed command line arguments, including the program name

    env : dict
        Environment

    secondary : boolean
        When set, logging is left as it is configured
    """
    description = textwrap.dedent('''
    Fetch, cache and build the software of a stack
    ''')

    parser = argparse.ArgumentParser(description=description,
                                     formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument('--config-file',
                        help='Location of stackcache configuration file (default: %s)'
                        % DEFAULT_CONFIG_FILENAME_REPR,
                        default=DEFAULT_CONFIG_FILENAME)
    parser.add_argument('--registry', default=None,
                        help='Registry file or directory (default: "registry" in the configuration)')
    parser.add_argument('--log', default=None,
                        help='One of [DEBUG, INFO, ERROR, WARNING, CRITICAL], '
                        'or a logging configuration YAML file')

    subparser_group = parser.add_subparsers(title='subcommands')

    subcmd_parsers = {}
    for name, cls in sorted(_subcommands.items()):
        help, description = _parse_docstring(cls.__doc__)
        subcmd_parser = subparser_group.add_parser(
            name, help=help, description=description,
            formatter_class=argparse.RawDescriptionHelpFormatter)

        cls.setup(subcmd_parser)
        subcmd_parser.add_argument('-v', '--verbose', action='store_true', help='More verbose output')

        subcmd_parser.set_defaults(subcommand_handler=cls.run, parser=parser,
                                   subcommand=name)
        # Can't find an API to access subparsers through parser? Pass along explicitly in ctx
        # (needed by Help)
        subcmd_parsers[name] = subcmd_parser

    if len(unparsed_argv) == 1:
        # Print help by default rather than an error about too few arguments
        parser.print_help()
        return 1
    args = parser.parse_args(unparsed_argv[1:])
    if not hasattr(args, 'subcommand_handler'):
        parser.print_help()
        return 1

    if not secondary:
        configure_logging(args.log)
        if args.verbose:
            set_log_level('INFO')
            if args.log is not None:
                logger.warning('-v overrides --log to INFO')

    ctx = StackCacheCommandContext(parser, subcmd_parsers, sys.stdout, args.config_file, env, logger,
                                   registry_path=args.registry)

    retcode = args.subcommand_handler(ctx, args)
    if retcode is None:
        retcode = 0
    return retcode


# Errors that are reported with their kind and message only
REPORTED_ERRORS = (ValidationError, PlanningError, InsufficientSpecificationError,
                   ChecksumMismatchError, RemoteStoreError, BuildFailedError, ArchiveError, yaml.YAMLError)


def help_on_exceptions(func, *args, **kw):
    """Present exceptions in the form of a request to file an issue

    Calls func (typically a "main" function), and returns the return code.
    If an exception occurs, then a) if it is one of the known error
    kinds, or an error is logged to `logger`, we log it and return
    127, or b) otherwise, dump the stack trace and then return 127.

    If the 'DEBUG' environment variable is set then the exception is
    raised anyway.
    """
    try:
        debug = len(os.environ['DEBUG']) > 0
    except KeyError:
        debug = logging.getLogger().getEffectiveLevel() <= logging.DEBUG

    try:
        return func(*args, **kw)

    except KeyboardInterrupt:
        if debug:
            raise
        else:
            logger.info('Interrupted')
            return 127
    except SystemExit:
        raise
    except REPORTED_ERRORS as e:
        if debug:
            raise
        else:
            logger.critical('%s: %s' % (type(e).__name__, e))
            return 127
    except SourceUnavailableError as e:
        if debug:
            raise
        else:
            logger.critical('%s: %s' % (type(e).__name__, e))
            logger.critical('You may wish to check your Internet connection or the remote server')
            return 127
    except (IOError, OSError) as e:
        if debug:
            raise
        else:
            logger.critical(str(e))
            return 127
    except Exception:
        if debug:
            raise
        else:
            if not has_error_occurred():
                logger.critical('Uncaught exception:')
                for line in traceback.format_exc().splitlines():
                    logger.critical(line)
                text = """\
                This exception has not been translated to a human-friendly error
                message, please file an issue pasting this stack trace.
                """
                text = textwrap.fill(textwrap.dedent(text), width=78)
                logger.info('')
                for line in text.splitlines():
                    logger.critical(line)
            return 127

#
# help command
#

@register_subcommand
class Help(object):
    """
    Displays help about sub-commands
    """
    @staticmethod
    def setup(ap):
        ap.add_argument('command', help='The command to print help for', nargs='?')

    @staticmethod
    def run(ctx, args):
        if args.command is None:
            ctx.argparser.print_help()
        else:
            try:
                subcmd_parser = ctx.subcommand_parsers[args.command]
            except KeyError:
                ctx.error('Unknown sub-command: %s' % args.command)
            subcmd_parser.print_help()


@register_subcommand
class InitHome(object):
    __doc__ = """
    Initialize the current user's home directory for stackcache.

    Create the ~/.stackcache directory. Further configuration can
    then by done by modifying %s.
    """ % DEFAULT_CONFIG_FILENAME_REPR
    command = 'init-home'

    @staticmethod
    def setup(ap):
        pass

    @staticmethod
    def run(ctx, args):
        if os.path.exists(DEFAULT_CONFIG_FILENAME):
            ctx.logger.error('%s already exists, aborting' % DEFAULT_CONFIG_FILENAME)
            return 2
        if not os.path.isdir(DEFAULT_STORE_DIR):
            os.makedirs(DEFAULT_STORE_DIR)
            ctx.out_stream.write('Directory %s created.\n' % DEFAULT_STORE_DIR)
        shutil.copyfile(get_config_example_filename(), DEFAULT_CONFIG_FILENAME)
        ctx.out_stream.write('Default configuration file %s written.\n' % DEFAULT_CONFIG_FILENAME)


@register_subcommand
class SelfCheck(object):
    """
    Verifies the configuration file and the registry
    """
    command = 'self-check'

    @staticmethod
    def setup(ap):
        pass

    @staticmethod
    def run(ctx, args):
        # loading validates
        config = ctx.get_config()
        registry = ctx.get_registry()
        ctx.out_stream.write('Configuration and registry OK: %d software, %d projects (cache in %s)\n'
                             % (len(registry), len(registry.projects), config.cache_dir))


def main():
    sys.exit(help_on_exceptions(command_line_entry_point, sys.argv, os.environ))


if __name__ == '__main__':
    main()
