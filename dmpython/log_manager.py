#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""Logging setup shared by the migration tools

Everything goes to the log file at DEBUG level with UTC timestamps. The
console shows what the operator asked for (``-q``, default or ``-v``).
Messages emitted through CommandOutput reach the console undecorated, so
progress lines look like plain program output.
"""

import logging
import os
import time

__all__ = ['standard_logging_setup', 'CommandOutput', 'UTCFormatter',
           'LOG_TIME_FORMAT', 'FILE_FORMAT', 'CONSOLE_FORMAT',
           'VERBOSE_CONSOLE_FORMAT']

LOG_TIME_FORMAT = '%Y-%m-%dT%H:%M:%SZ'

FILE_FORMAT = '%(asctime)s %(levelname)s %(message)s'
CONSOLE_FORMAT = '%(message)s'
VERBOSE_CONSOLE_FORMAT = '%(name)s: %(levelname)s: %(message)s'

# log files are readable by root only
LOG_FILE_UMASK = 0o177


class CommandOutput:
    """Log through a logger and flag the record as operator output

    Usage:

        logger = logging.getLogger(__name__)
        logcm = CommandOutput(logger)

        logcm("Joining %s ...", domain)
    """
    __slots__ = ('_logger',)

    def __init__(self, logger):
        self._logger = logger

    def __call__(self, msg, *args, **kwargs):
        extra = kwargs.setdefault('extra', {})
        extra['cmd_output'] = True
        self._logger.log(kwargs.pop('level', logging.INFO), msg, *args,
                         **kwargs)


class UTCFormatter(logging.Formatter):
    """Formatter with UTC timestamps

    With ``plain_output`` set, INFO and higher records flagged by
    CommandOutput are rendered as the bare message.
    """
    converter = time.gmtime

    def __init__(self, fmt=FILE_FORMAT, plain_output=False):
        super(UTCFormatter, self).__init__(fmt, LOG_TIME_FORMAT)
        self.plain_output = plain_output

    def format(self, record):
        if (self.plain_output and record.levelno >= logging.INFO and
                getattr(record, 'cmd_output', False)):
            return record.getMessage()
        return super(UTCFormatter, self).format(record)


def console_level(verbose=False, debug=False):
    if debug:
        return logging.DEBUG
    if verbose:
        return logging.INFO
    return logging.ERROR


def standard_logging_setup(filename=None, verbose=False, debug=False,
                           filemode='w', console_format=None):
    """Attach a console handler and, with @filename, a file handler

    The root logger is opened up to DEBUG; the handlers filter.
    Returns the pair (file_handler, console_handler), file_handler is None
    without @filename.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    file_handler = None
    if filename is not None:
        old_umask = os.umask(LOG_FILE_UMASK)
        try:
            file_handler = logging.FileHandler(filename, mode=filemode)
        finally:
            os.umask(old_umask)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(UTCFormatter())
        root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level(verbose, debug))
    console_handler.setFormatter(
        UTCFormatter(console_format or CONSOLE_FORMAT, plain_output=True))
    root_logger.addHandler(console_handler)

    return file_handler, console_handler
