"""
Utilities to setup the Python logger

The root logger prints ``[LEVEL] message``. The ``package`` logger is
used to report progress on a single piece of software and prints the
software name instead of the level::

    >>> from stackcache.util.logger_setup import getLogger
    >>> log = getLogger('package', 'ruby')
    >>> log.logger.name
    'package'

Call :func:`configure_logging` once at program start; the command line
tool does so before dispatching to a sub-command.
"""

import logging
import logging.config
import os

import yaml

from .ansi_color import want_color, monochrome


DEFAULT_LOGGING_CONFIG = os.path.join(os.path.dirname(__file__), 'logging_config.yaml')

LOG_LEVELS = dict(
    CRITICAL=logging.CRITICAL, ERROR=logging.ERROR, WARNING=logging.WARNING,
    INFO=logging.INFO, DEBUG=logging.DEBUG)


class LogConfigurationStore(object):
    """
    Store the root logger configuration so that it can be restored
    """

    def __init__(self):
        self._logger = logging.getLogger()
        self._orig_handlers = self._logger.handlers
        self._logger.handlers = []
        self._level = self._logger.level

    def restore(self):
        self._logger.handlers = self._orig_handlers
        self._logger.level = self._level


_ERROR_OCCURRED = False

def has_error_occurred():
    """
    Return whether an error was logged previously.
    """
    return _ERROR_OCCURRED


class StackCacheFormatter(logging.Formatter):
    """
    Log formatter with an optional format string per level
    """
    def __init__(self, fmt, debug=None, info=None, warning=None, error=None, critical=None):
        m = monochrome if not want_color() else lambda x: x
        logging.Formatter.__init__(self, m(fmt))
        self._custom_fmt = f = dict()
        if debug:    f[logging.DEBUG]    = logging.Formatter(m(debug))
        if info:     f[logging.INFO]     = logging.Formatter(m(info))
        if warning:  f[logging.WARNING]  = logging.Formatter(m(warning))
        if error:    f[logging.ERROR]    = logging.Formatter(m(error))
        if critical: f[logging.CRITICAL] = logging.Formatter(m(critical))

    def format(self, record):
        if record.levelno >= logging.ERROR:
            global _ERROR_OCCURRED
            _ERROR_OCCURRED = True
        try:
            fmt = self._custom_fmt[record.levelno]
        except KeyError:
            return logging.Formatter.format(self, record)
        return fmt.format(record)


def configure_logging(config):
    """
    Configure the root and ``package`` loggers

    Arguments:
    ----------

    config : string or ``None``.
       One of
       * a log level name (``'CRITICAL'``, ``'ERROR'``, ``'WARNING'``,
         ``'INFO'``, ``'DEBUG'``).
       * the name of a logging configuration YAML file. See
         ``logging_config.yaml`` for which loggers are required.
       * ``None``. In this case the default configuration is used.
    """
    if config is None:
        _configure_logging_from_yaml(DEFAULT_LOGGING_CONFIG)
    elif config.upper() in LOG_LEVELS:
        _configure_logging_from_yaml(DEFAULT_LOGGING_CONFIG)
        set_log_level(config)
    else:
        _configure_logging_from_yaml(config)
    logging.getLogger().debug('configured logging: %s', config)


def _configure_logging_from_yaml(filename):
    with open(filename, 'r') as f:
        config_dict = yaml.safe_load(f)
    logging.config.dictConfig(config_dict)


def set_log_level(level):
    """
    Set which log messages are displayed.

    Arguments:
    ----------

    level : string or int
        The desired log level as defined by the Python logging module
    """
    if not isinstance(level, int):
        try:
            level = LOG_LEVELS[level.upper()]
        except KeyError:
            raise ValueError('level must be integer or a valid log level string')
    logging.getLogger().setLevel(level=level)
    pkg_logger = logging.getLogger('package')
    for handler in pkg_logger.handlers:
        if handler.name == 'package_handler':
            handler.setLevel(level)


def getLogger(name=None, pkg=None):
    """
    Get Logger

    Like ``logging.getLogger``, but ``getLogger('package', name)``
    returns an adapter that tags every record with the software name.
    """
    logger = logging.getLogger(name)
    if name == 'package':
        return logging.LoggerAdapter(logger, {'pkg': pkg})
    else:
        return logger


class log_to_file(object):
    """
    Context manager adding DEBUG-level file output to a logger

    Used by the builder to keep a full log of each build step next to
    the extracted sources.
    """
    def __init__(self, name, filename):
        self.filename = filename
        self.logger = logging.getLogger(name)
        self.handler = h = logging.FileHandler(filename)
        h.setLevel(logging.DEBUG)
        h.setFormatter(logging.Formatter(
            fmt='%(asctime)s - %(levelname)s: [%(name)s] %(message)s',
            datefmt='%Y/%m/%d %H:%M:%S'))

    def __enter__(self):
        self.logger.addHandler(self.handler)

    def __exit__(self, exc_type, exc_value, traceback):
        self.handler.flush()
        self.handler.close()
        self.logger.removeHandler(self.handler)
