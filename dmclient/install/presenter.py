#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""Presentation of migration events

The engine and the steps never print. They emit events to a presenter:
step start and end, informational messages, warnings, errors and simulated
actions. Prompts also go through the presenter so that unattended runs
answer every question with its default.
"""

import collections
import logging
import os
import subprocess
import sys
import time

from dmplatform.paths import paths
from dmpython import dmutil
from dmpython.log_manager import CommandOutput

logger = logging.getLogger(__name__)
logcm = CommandOutput(logger)

EVENT_STEP_START = 'step-start'
EVENT_STEP_END = 'step-end'
EVENT_INFO = 'info'
EVENT_WARNING = 'warning'
EVENT_ERROR = 'error'
EVENT_SIMULATE = 'simulate'

SIMULATION_PREFIX = '[DRY-RUN]'


class Event(collections.namedtuple('Event', 'kind step message')):
    """One thing that happened during a run"""


class Presenter:
    """Records events; subclasses render them

    :param interactive: when False every question is answered with its
        default
    """
    def __init__(self, interactive=True):
        self.interactive = interactive
        self.events = []
        self.current_step = None

    def _record(self, kind, message):
        self.events.append(Event(kind, self.current_step, message))

    def events_of(self, kind):
        return [e for e in self.events if e.kind == kind]

    @property
    def warnings(self):
        return [e.message for e in self.events_of(EVENT_WARNING)]

    @property
    def simulated(self):
        return [e.message for e in self.events_of(EVENT_SIMULATE)]

    def step_start(self, ordinal, total, name, description):
        self.current_step = name
        self._record(EVENT_STEP_START, description)

    def step_end(self, ordinal, name, status):
        self._record(EVENT_STEP_END, status)
        self.current_step = None

    def info(self, message, *args):
        self._record(EVENT_INFO, message % args if args else message)

    def warning(self, message, *args):
        self._record(EVENT_WARNING, message % args if args else message)

    def error(self, message, *args):
        self._record(EVENT_ERROR, message % args if args else message)

    def simulate(self, message, *args):
        self._record(EVENT_SIMULATE, message % args if args else message)

    def ask(self, prompt, default):
        """Ask a question; the default is the answer of unattended runs"""
        return default

    def ask_password(self, prompt):
        """Ask for a secret, None in unattended runs"""
        return None

    def acknowledge(self, message):
        """Wait until the operator has read @message"""

    def countdown(self, seconds, message):
        """Count @seconds down, raise KeyboardInterrupt to cancel"""

    def show_log(self, log_file):
        """Open @log_file for the operator, best effort"""


class ConsolePresenter(Presenter):
    """Renders events on the console through the logging setup"""

    def __init__(self, interactive=True, sleep=time.sleep):
        super(ConsolePresenter, self).__init__(interactive)
        self.sleep = sleep

    def step_start(self, ordinal, total, name, description):
        super(ConsolePresenter, self).step_start(
            ordinal, total, name, description)
        logcm("")
        logcm("[Step %d/%d] %s", ordinal, total, description)

    def step_end(self, ordinal, name, status):
        super(ConsolePresenter, self).step_end(ordinal, name, status)
        logger.debug("Step %d %s finished: %s", ordinal, name, status)

    def info(self, message, *args):
        super(ConsolePresenter, self).info(message, *args)
        logcm(message, *args)

    def warning(self, message, *args):
        super(ConsolePresenter, self).warning(message, *args)
        logger.warning("WARNING: " + message, *args)

    def error(self, message, *args):
        super(ConsolePresenter, self).error(message, *args)
        logger.error(message, *args)

    def simulate(self, message, *args):
        super(ConsolePresenter, self).simulate(message, *args)
        logcm(SIMULATION_PREFIX + " " + message, *args)

    def ask(self, prompt, default):
        if not self.interactive:
            logger.debug("%s -> %s (unattended)", prompt, default)
            return default
        answer = dmutil.user_input(prompt, default)
        logger.debug("%s -> %s", prompt, answer)
        return answer

    def ask_password(self, prompt):
        if not self.interactive:
            return None
        return dmutil.user_input_password(prompt)

    def acknowledge(self, message):
        if not self.interactive:
            return
        try:
            input("%s " % message)
        except EOFError:
            pass

    def countdown(self, seconds, message):
        for remaining in range(seconds, 0, -1):
            sys.stdout.write("\r%s in %d seconds (Ctrl+C to cancel) " %
                             (message, remaining))
            sys.stdout.flush()
            self.sleep(1)
        sys.stdout.write("\n")
        sys.stdout.flush()

    def show_log(self, log_file):
        if not self.interactive or not log_file or \
                not os.path.exists(log_file):
            return
        pager = os.environ.get('PAGER') or paths.BIN_LESS
        try:
            subprocess.call([pager, log_file])
        except OSError as e:
            logger.debug("Cannot open %s with %s: %s", log_file, pager, e)
