#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""Errors raised while migrating a host between domains

The step engine is the only consumer that turns these into step results:

* PreconditionError ends the run before anything is changed.
* RecoverableError is logged as a warning and the step still succeeds.
* StepFailed (and its VerificationError and BackupError subclasses) fails
  the step; the operator or the failure policy decides what happens next.
* PersistenceError always aborts the run.
"""


class MigrationError(Exception):
    """Base class of the migration errors"""


class PreconditionError(MigrationError):
    """The host cannot be migrated: not root, missing tool, bad input"""


class RecoverableError(MigrationError):
    """Something went wrong that does not stop the migration"""


class StepFailed(MigrationError):
    """A step could not do its job"""


class VerificationError(StepFailed):
    """A check after an operation contradicts the operation's result

    For example the host is not listed as a domain member after a join
    that exited successfully.
    """


class BackupError(VerificationError):
    """A backup is missing or empty, the file must not be changed"""


class PersistenceError(MigrationError):
    """Progress cannot be recorded or the boot hook cannot be managed"""


class CancelledByUser(MigrationError):
    """The operator chose to stop"""
