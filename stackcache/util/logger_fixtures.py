"""
Log Capture for Unit Tests
==========================

The :class:`log_capture` context manager buffers everything logged to
a logger so tests can assert on it::

    with log_capture() as log:
        cache.populate()
    log.assertLogged('^INFO:Uploading')
"""

import re
import logging
import logging.handlers


class TestHandler(logging.handlers.BufferingHandler):
    """
    Log handler that buffers indefinitely.
    """

    def __init__(self):
        logging.handlers.BufferingHandler.__init__(self, 0)

    def shouldFlush(self, *args):
        return False


class TestLoggerAdapter(logging.LoggerAdapter):
    """
    Adapter exposing the captured records of a :class:`log_capture`.
    """

    def __init__(self, logger, test_handler):
        self._handler = test_handler
        logging.LoggerAdapter.__init__(self, logger, {})

    def _format_buffered_log(self):
        fmt = self._handler.formatter
        return tuple(fmt.format(record) for record in self._handler.buffer)

    def _buffered_messages(self):
        return tuple(record.getMessage() for record in self._handler.buffer)

    def _save(self):
        self._lines = self._format_buffered_log()
        self._messages = self._buffered_messages()

    @property
    def lines(self):
        """
        The log lines as ``LEVEL:message`` strings
        """
        try:
            return self._lines
        except AttributeError:
            return self._format_buffered_log()

    @property
    def messages(self):
        """
        The undecorated log messages
        """
        try:
            return self._messages
        except AttributeError:
            return self._buffered_messages()

    def assertLogged(self, search_pattern):
        """
        Raise ``AssertionError`` unless some log line matches the regex
        """
        assert any(re.search(search_pattern, line) for line in self.lines), \
            'no such log message: %r not in %r' % (search_pattern, self.lines)


class log_capture(object):
    """
    Context manager to log to a memory buffer

    Captures DEBUG and higher regardless of the configured level, and
    turns off propagation to the usual handlers while active.
    """

    def __init__(self, name=None):
        self.logger = logging.getLogger(name)
        self.handler = h = TestHandler()
        h.setLevel(logging.DEBUG)
        h.setFormatter(logging.Formatter('%(levelname)s:%(message)s'))

    def __enter__(self):
        self.orig_handlers = self.logger.handlers
        self.orig_propagate = self.logger.propagate
        self.logger.handlers = [self.handler]
        self.logger.propagate = False
        self.level = self.logger.level
        self.logger.setLevel(logging.DEBUG)
        self.test = TestLoggerAdapter(self.logger, self.handler)
        return self.test

    def __exit__(self, exc_type, exc_value, traceback):
        self.test._save()
        self.logger.handlers = self.orig_handlers
        self.logger.propagate = self.orig_propagate
        self.logger.setLevel(self.level)
