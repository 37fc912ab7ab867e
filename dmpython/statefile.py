#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""Persisted progress of a migration

Both records are a single line of ``KEY=value`` fields joined with ``|``::

    STEP=9|MODE=live|DOMAIN=newco.local|HOSTNAME=ws01|PHASE=MIGRATION|...
    PHASE=REBOOT_SCHEDULED|DETAILS=Reboot in 15 seconds|TIMESTAMP=1792310400

The positional ``step|mode|domain|hostname`` form written by earlier
releases is still accepted when loading.
"""

import collections
import logging
import os
import tempfile
import time

from dmpython.errors import PersistenceError

logger = logging.getLogger(__name__)

MODE_TECHNICIAN = 'technician'
MODE_LIVE = 'live'
MODE_DRY_RUN = 'dry-run'
MODE_TEST = 'test'
MODES = (MODE_TECHNICIAN, MODE_LIVE, MODE_DRY_RUN, MODE_TEST)

# Modes in which no mutating action is carried out
SIMULATED_MODES = (MODE_DRY_RUN, MODE_TEST)

PHASE_PRE_MIGRATION = 'PRE_MIGRATION'
PHASE_MIGRATION = 'MIGRATION'
PHASE_REBOOT_SCHEDULED = 'REBOOT_SCHEDULED'
PHASE_POST_REBOOT = 'POST_REBOOT'
PHASE_COMPLETE = 'COMPLETE'
PHASES = (PHASE_PRE_MIGRATION, PHASE_MIGRATION, PHASE_REBOOT_SCHEDULED,
          PHASE_POST_REBOOT, PHASE_COMPLETE)

AUTOMATION_PHASES = (
    'STARTED', 'TEST_STARTED', 'MIGRATION', 'TEST_MIGRATION',
    'MIGRATION_COMPLETE', 'MIGRATION_FAILED', 'REBOOT_SCHEDULED',
    'POST_REBOOT', 'VERIFICATION_COMPLETE', 'VERIFICATION_WARNINGS',
)

FIELD_SEPARATOR = '|'


def _clean(value):
    return str(value).replace(FIELD_SEPARATOR, ' ').replace(
        '\n', ' ').replace('\r', ' ').strip()


def _parse_fields(line):
    fields = {}
    for field in line.split(FIELD_SEPARATOR):
        key, sep, value = field.partition('=')
        if not sep:
            return None
        fields[key.strip().upper()] = value.strip()
    return fields


def _write_atomic(path, content):
    """Write @content to a temporary file beside @path and rename it"""
    directory = os.path.dirname(path) or os.curdir
    try:
        fd, tmp = tempfile.mkstemp(
            dir=directory, prefix='.%s.' % os.path.basename(path))
        try:
            with os.fdopen(fd, 'w') as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp, 0o600)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
    except OSError as e:
        raise PersistenceError("Cannot write state file %s: %s" % (path, e))


def _remove(path):
    try:
        os.unlink(path)
    except FileNotFoundError:
        return False
    except OSError as e:
        raise PersistenceError("Cannot remove state file %s: %s" % (path, e))
    return True


class MigrationState:
    """The resumability anchor of a migration run

    ``step`` is the ordinal of the last completed step. Credentials are
    never part of the record.
    """
    def __init__(self, step=0, mode=MODE_LIVE, domain='', hostname='',
                 phase=PHASE_PRE_MIGRATION, timestamp=None, old_domain=None,
                 dc=None):
        self.step = step
        self.mode = mode
        self.domain = domain
        self.hostname = hostname
        self.phase = phase
        self.timestamp = int(time.time()) if timestamp is None else timestamp
        self.old_domain = old_domain
        self.dc = dc

    def __repr__(self):
        return ('<MigrationState step=%d mode=%s domain=%s hostname=%s '
                'phase=%s>' % (self.step, self.mode, self.domain,
                               self.hostname, self.phase))

    def __eq__(self, other):
        if not isinstance(other, MigrationState):
            return NotImplemented
        return self.__dict__ == other.__dict__

    @property
    def is_post_reboot(self):
        return self.phase == PHASE_POST_REBOOT

    def format(self):
        fields = [
            ('STEP', self.step),
            ('MODE', self.mode),
            ('DOMAIN', self.domain),
            ('HOSTNAME', self.hostname),
            ('PHASE', self.phase),
            ('TIMESTAMP', self.timestamp),
        ]
        if self.old_domain:
            fields.append(('OLD_DOMAIN', self.old_domain))
        if self.dc:
            fields.append(('DC', self.dc))
        return FIELD_SEPARATOR.join(
            '%s=%s' % (key, _clean(value)) for key, value in fields) + '\n'

    @classmethod
    def parse(cls, line):
        """Parse one record, return None if it is not valid"""
        line = line.strip()
        if not line:
            return None
        fields = _parse_fields(line)
        if fields is None:
            parts = line.split(FIELD_SEPARATOR)
            if len(parts) != 4:
                return None
            fields = dict(zip(('STEP', 'MODE', 'DOMAIN', 'HOSTNAME'), parts))

        for required in ('STEP', 'MODE', 'DOMAIN', 'HOSTNAME'):
            if not fields.get(required):
                return None
        try:
            step = int(fields['STEP'])
        except ValueError:
            return None
        if step < 0 or fields['MODE'] not in MODES:
            return None

        phase = fields.get('PHASE') or PHASE_MIGRATION
        if phase not in PHASES:
            return None
        try:
            timestamp = int(fields.get('TIMESTAMP') or 0)
        except ValueError:
            return None

        return cls(step=step, mode=fields['MODE'], domain=fields['DOMAIN'],
                   hostname=fields['HOSTNAME'], phase=phase,
                   timestamp=timestamp,
                   old_domain=fields.get('OLD_DOMAIN') or None,
                   dc=fields.get('DC') or None)


class MigrationStateStore:
    """Load and persist the MigrationState"""

    def __init__(self, path):
        self.path = path

    def exists(self):
        return os.path.isfile(self.path)

    def load(self):
        """Return the persisted MigrationState or None

        A missing, unreadable or corrupt file counts as no state at all.
        """
        try:
            with open(self.path) as f:
                line = f.readline()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read state file %s: %s", self.path, e)
            return None

        state = MigrationState.parse(line)
        if state is None:
            logger.warning("Ignoring corrupt state file %s", self.path)
        return state

    def save(self, state):
        state.timestamp = int(time.time())
        _write_atomic(self.path, state.format())
        logger.debug("State saved: step %d, phase %s", state.step,
                     state.phase)

    def delete(self):
        if _remove(self.path):
            logger.debug("State file %s removed", self.path)


class AutomationState(collections.namedtuple(
        'AutomationState', 'phase details timestamp')):
    """One entry of the automation wrapper's journal"""


class AutomationStateStore:
    """Journal of the automation wrapper's progress"""

    def __init__(self, path):
        self.path = path

    def record(self, phase, details=''):
        if phase not in AUTOMATION_PHASES:
            raise ValueError("unknown automation phase %r" % phase)
        line = 'PHASE=%s|DETAILS=%s|TIMESTAMP=%d\n' % (
            phase, _clean(details), int(time.time()))
        _write_atomic(self.path, line)
        logger.debug("Automation phase: %s (%s)", phase, details)

    def load(self):
        try:
            with open(self.path) as f:
                line = f.readline().strip()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read state file %s: %s", self.path, e)
            return None
        fields = _parse_fields(line) if line else None
        if not fields or fields.get('PHASE') not in AUTOMATION_PHASES:
            return None
        try:
            timestamp = int(fields.get('TIMESTAMP') or 0)
        except ValueError:
            timestamp = 0
        return AutomationState(fields['PHASE'], fields.get('DETAILS', ''),
                               timestamp)

    def delete(self):
        _remove(self.path)
