#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""Base class of the dm-* command line tools

A tool is a subclass of AdminTool. The class builds its option parser once,
``main`` parses argv into an instance and ``execute`` drives it through
validation, prompting, logging setup and ``run``. Exceptions escaping those
phases are turned into one of the exit codes below.
"""

import logging
import os
import sys
import traceback
from optparse import OptionGroup  # pylint: disable=deprecated-module

from dmpython import config, version
from dmpython.errors import CancelledByUser, MigrationError
from dmpython.log_manager import (
    standard_logging_setup, CONSOLE_FORMAT, VERBOSE_CONSOLE_FORMAT)

# Exit codes
SUCCESS = 0
MIGRATION_ERROR = 1
INVALID_ARGUMENTS = 2
NOT_ROOT = 3
REVERT_ERROR = 4
CANCELLED = 5

logger = logging.getLogger(__name__)


class ScriptError(Exception):
    """Stop the tool with a message and an exit code"""
    def __init__(self, msg='', rval=MIGRATION_ERROR):
        super(ScriptError, self).__init__(msg or '')
        self.rval = rval

    @property
    def msg(self):
        return str(self)


class AdminTool:
    """Skeleton of a migration command

    Subclasses set the class attributes and override the phase methods:

    * ``add_options`` extends the shared parser,
    * ``validate_options`` rejects bad input without touching the host,
    * ``ask_for_options`` prompts for what is still missing,
    * ``run`` does the work and returns the exit code.

    Until ``setup_logging`` runs, output goes to the console only, so a
    rejected command line never creates a log file.
    """
    command_name = None
    log_file_name = None
    usage = None
    description = None

    _option_parsers = {}

    @classmethod
    def make_parser(cls):
        """Build the parser of this class and store it as option_parser"""
        cls.option_parser = config.DMOptionParser(
            usage=cls.usage, description=cls.description,
            version=version.VERSION, formatter=config.DMFormatter())
        cls.add_options(cls.option_parser)

    @classmethod
    def add_options(cls, parser):
        group = OptionGroup(parser, "Logging and output options")
        group.add_option("-v", "--verbose", dest="verbose",
                         action="store_true", default=False,
                         help="print debugging information")
        group.add_option("-q", "--quiet", dest="quiet",
                         action="store_true", default=False,
                         help="output only errors")
        group.add_option("--log-file", dest="log_file", metavar="FILE",
                         help="log to FILE instead of %s" %
                              (cls.log_file_name or "the console only"))
        parser.add_option_group(group)

    @classmethod
    def run_cli(cls):
        """Console script entry point"""
        sys.exit(cls.main(sys.argv))

    @classmethod
    def main(cls, argv):
        """Parse @argv (program name first) and execute the command

        Returns the exit code. An option that fails its type check makes
        optparse exit with code 2.
        """
        parser = cls._option_parsers.get(cls)
        if parser is None:
            cls.make_parser()
            parser = cls._option_parsers[cls] = cls.option_parser
        cls.option_parser = parser

        options, args = parser.parse_args(argv[1:])
        return cls.get_command_class(options, args)(options, args).execute()

    @classmethod
    def get_command_class(cls, options, args):
        return cls

    def __init__(self, options, args):
        self.options = options
        self.args = args
        # what may be written to the log: no passwords
        self.safe_options = self.option_parser.get_safe_opts(options)
        self._console_handler = None

    def execute(self):
        self._setup_logging(no_file=True)
        try:
            self.validate_options()
            self.ask_for_options()
            self.setup_logging()
            return_value = self.run()
        except BaseException as exception:
            message, return_value = self.handle_error(exception)
            if return_value != SUCCESS:
                self.log_failure(message, return_value, exception,
                                 sys.exc_info()[2])
            return return_value

        if return_value:
            logger.error("The %s command failed.", self.command_name)
            return return_value
        self.log_success()
        return SUCCESS

    def validate_options(self, needs_root=False):
        """Check the command line; must not change anything on the host"""
        if needs_root and os.geteuid() != 0:
            raise ScriptError("Must be root to run %s" % self.command_name,
                              NOT_ROOT)
        if self.options.verbose and self.options.quiet:
            raise ScriptError(
                "The --quiet and --verbose options are mutually exclusive",
                INVALID_ARGUMENTS)

    def ask_for_options(self):
        """Prompt for missing input, after validation passed"""

    def setup_logging(self, log_file_mode='a'):
        """Replace the early console handler by the full logging setup

        The log file, when there is one, gets every record.
        """
        if self._console_handler is not None:
            logging.getLogger().removeHandler(self._console_handler)
            self._console_handler.close()
            self._console_handler = None
        self._setup_logging(log_file_mode=log_file_mode)

    def _setup_logging(self, log_file_mode='a', no_file=False):
        log_file_name = None if no_file else self.get_log_file_name()
        verbose = self.options.verbose
        _file_handler, console_handler = standard_logging_setup(
            log_file_name,
            verbose=verbose or not self.options.quiet, debug=verbose,
            filemode=log_file_mode,
            console_format=(VERBOSE_CONSOLE_FORMAT if verbose
                            else CONSOLE_FORMAT))
        if no_file:
            self._console_handler = console_handler
        elif log_file_name:
            logger.debug("Logging to %s", log_file_name)
        else:
            logger.debug("Not logging to a file")

    def get_log_file_name(self):
        return self.options.log_file or self.log_file_name

    def handle_error(self, exception):
        """Map an exception to (message or None, exit code)"""
        if isinstance(exception, ScriptError):
            return exception.msg, exception.rval or MIGRATION_ERROR
        if isinstance(exception, SystemExit):
            if isinstance(exception.code, int):
                return None, exception.code
            return str(exception.code), MIGRATION_ERROR
        if isinstance(exception, (KeyboardInterrupt, CancelledByUser)):
            return str(exception) or "Cancelled by user", CANCELLED
        if isinstance(exception, MigrationError):
            return str(exception), MIGRATION_ERROR
        return "%s: %s" % (type(exception).__name__, exception), \
            MIGRATION_ERROR

    def run(self):
        """Do the work and return the exit code

        Subclasses call this first; it records the invocation in the log.
        """
        logger.debug("%s", version.VENDOR_VERSION)
        logger.debug("%s invoked with arguments %s and options: %s",
                     self.command_name, self.args, self.safe_options)

    def log_failure(self, error_message, return_value, exception, backtrace):
        logger.debug("%s", ''.join(traceback.format_tb(backtrace)))
        logger.debug("%s failed with %s: %s", self.command_name,
                     type(exception).__name__, exception)
        if error_message:
            logger.error("%s", error_message)
        message = "The %s command failed." % self.command_name
        log_file_name = self.get_log_file_name()
        if log_file_name and return_value != INVALID_ARGUMENTS:
            message += " See %s for more information" % log_file_name
        logger.error("%s", message)

    def log_success(self):
        logger.info("The %s command was successful", self.command_name)
