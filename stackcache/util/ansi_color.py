r"""
Colorization of terminal output, used for the status words printed by
the cache commands. Colors are only emitted when both stdout and stderr
are terminals.

EXAMPLES::

    >>> from stackcache.util import ansi_color
    >>> ansi_color.red('FAILED')    # no ansi sequences since doctest output is redirected
    'FAILED'
"""

import os
import sys
import re

RESET = '\x1b[39;49;00m'

_ANSI_COLOR_RE = re.compile(r'\x1b\[[0-9;]*m')


def want_color():
    """Whether ansi colors should be used"""
    if 'NOCOLOR' in os.environ:
        return False
    if os.environ.get('TERM', None) in ['dumb', 'emacs']:
        return False
    try:
        return sys.stdout.isatty() and sys.stderr.isatty()
    except AttributeError:
        return False


def colorize(code, text):
    if not want_color():
        return text
    return '\x1b[%sm%s%s' % (code, text, RESET)


def red(text):
    return colorize('31;01', text)


def green(text):
    return colorize('32;01', text)


def monochrome(string):
    """
    Strip ANSI color sequences from the input

    EXAMPLES::

        >>> from stackcache.util.ansi_color import monochrome
        >>> monochrome('\x1b[31;01mhello\x1b[39;49;00m')
        'hello'
    """
    return _ANSI_COLOR_RE.sub('', string)
