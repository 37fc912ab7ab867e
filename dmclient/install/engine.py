#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""The migration state machine

MigrationEngine runs the step catalogue in ascending order. A step runs
only if its ordinal is greater than the persisted ``step`` and the state
is saved after every step, so a resumed run never repeats a completed
step. The engine is the only place where step exceptions are turned into
results and where the decision to continue or abort is made.

When the persisted phase is POST_REBOOT the engine does not run steps but
completes the migration: verification, hook removal and cleanup.
"""

import collections
import glob
import logging
import os

from dmclient.install import steps as migration_steps
from dmclient.install.verify import VerificationChecklist, OK
from dmplatform.paths import paths
from dmpython import dmutil, statefile
from dmpython.admintool import MIGRATION_ERROR, CANCELLED
from dmpython.errors import (CancelledByUser, MigrationError,
                             PersistenceError, PreconditionError,
                             RecoverableError, VerificationError)

logger = logging.getLogger(__name__)

REVERT_COMMAND = 'dm-migrate --revert'
SCRATCH_PATTERN = '*oz-automator*'

STATUS_DONE = 'done'
STATUS_WARNING = 'warning'
STATUS_FAILED = 'failed'
STATUS_CONTINUED = 'failed, continued'
STATUS_CANCELLED = 'cancelled'

POLICY_CONTINUE = 'continue'
POLICY_ABORT = 'abort'


class StepResult(collections.namedtuple('StepResult', 'step status error')):
    """What became of one step"""


class Success(collections.namedtuple('Success', 'message')):
    exit_code = 0


class Failed(collections.namedtuple('Failed', 'step_name exit_code')):
    pass


class Cancelled(collections.namedtuple('Cancelled', 'step_name')):
    """The operator stopped the run"""
    exit_code = CANCELLED


class MigrationEngine:
    """Run or continue a migration

    :param context: MigrationContext
    :param steps: the step catalogue
    :param collect_input: called with the context when a fresh run starts,
        to ask for (or fill in) domain, hostname and credentials
    :param failure_policy: 'continue' or 'abort', what unattended runs do
        when a step fails; defaults to the configured policy
    :param log_file: log shown to the operator on failure
    """
    def __init__(self, context, steps=migration_steps.STEPS,
                 collect_input=None, failure_policy=None,
                 log_file=None):
        self.context = context
        self.steps = steps
        self.collect_input = collect_input
        self.failure_policy = (failure_policy if failure_policy is not None
                               else context.config.failure_policy)
        self.log_file = log_file
        self.results = []

    @property
    def presenter(self):
        return self.context.presenter

    def run(self):
        """Run the migration to a terminal result"""
        context = self.context
        try:
            state = context.state_store.load()
            if state is not None and context.simulated and \
                    state.mode not in statefile.SIMULATED_MODES:
                return self.refuse_simulation(state)
            if state is not None and state.is_post_reboot:
                return self.continue_after_reboot(state)

            if state is not None:
                if context.ask(
                        "A migration of %s to %s stopped after step %d. "
                        "Resume it?" % (state.hostname, state.domain,
                                        state.step), True):
                    context.adopt_state(state)
                    self.presenter.info("Resuming after step %d",
                                        state.step)
                else:
                    context.state_store.delete()
                    state = None

            if state is None:
                if self.collect_input is not None:
                    self.collect_input(context)
                context.state = statefile.MigrationState(
                    step=0, mode=context.mode, domain=context.domain,
                    hostname=context.hostname,
                    phase=statefile.PHASE_PRE_MIGRATION)
                context.save_state()
                context.record(
                    'TEST_MIGRATION' if context.mode == statefile.MODE_TEST
                    else 'MIGRATION', context.domain)

            return self.run_steps()
        except CancelledByUser as e:
            self.presenter.warning("%s", str(e) or "Cancelled by user")
            return Cancelled(None)
        except PersistenceError as e:
            self.presenter.error("%s", e)
            return self.fail(None, e)
        finally:
            context.clear_credentials()

    def refuse_simulation(self, state):
        """A dry run or test never continues a run that changes the host"""
        self.presenter.error(
            "A %s migration of %s to %s stopped after step %d. A %s run "
            "cannot continue it. Finish it with dm-migrate or undo it with "
            "%s first.", state.mode, state.hostname, state.domain,
            state.step, self.context.mode, REVERT_COMMAND)
        self.context.record('MIGRATION_FAILED', 'live migration pending')
        return Failed(None, MIGRATION_ERROR)

    def run_steps(self):
        context = self.context
        total = len(self.steps)
        for step in self.steps:
            if step.ordinal <= context.state.step:
                logger.debug("Step %d %s already completed", step.ordinal,
                             step.name)
                continue

            self.presenter.step_start(step.ordinal, total, step.name,
                                      step.description)
            result = self.run_step(step)
            self.results.append(result)
            self.presenter.step_end(step.ordinal, step.name, result.status)

            if result.status == STATUS_CANCELLED:
                return Cancelled(step.name)
            if result.status == STATUS_FAILED:
                return self.fail(step, result.error)

            if context.state.is_post_reboot:
                # the reboot step persisted the continuation itself
                continue
            context.save_state(step=step.ordinal,
                               phase=statefile.PHASE_MIGRATION)

        if context.simulated:
            context.state_store.delete()
            self.presenter.info("Simulation complete, no changes were made")
            context.record('MIGRATION_COMPLETE', 'simulated')
            return Success("simulation complete")

        if context.state.is_post_reboot:
            return Success("reboot pending")
        return Success("migration complete")

    def run_step(self, step):
        """Run one step and classify its outcome"""
        try:
            step.method(self.context)
        except RecoverableError as e:
            self.presenter.warning("%s", e)
            return StepResult(step, STATUS_WARNING, e)
        except (CancelledByUser, KeyboardInterrupt) as e:
            self.presenter.warning("%s cancelled", step.name)
            return StepResult(step, STATUS_CANCELLED, e)
        except (PreconditionError, PersistenceError) as e:
            self.presenter.error("%s", e)
            return StepResult(step, STATUS_FAILED, e)
        except (MigrationError, dmutil.CalledProcessError, OSError) as e:
            logger.debug("%s failed", step.name, exc_info=True)
            self.presenter.error("%s failed: %s", step.name, e)
            if self.continue_after_failure(step, e):
                self.presenter.warning("Continuing after the failure of %s",
                                       step.name)
                return StepResult(step, STATUS_CONTINUED, e)
            return StepResult(step, STATUS_FAILED, e)
        return StepResult(step, STATUS_DONE, None)

    def continue_after_failure(self, step, error):
        if self.context.interactive:
            return self.context.ask("Continue anyway?", False)
        if isinstance(error, VerificationError):
            return False
        return self.failure_policy == POLICY_CONTINUE

    def completed_steps(self):
        done = self.context.state.step if self.context.state else 0
        return [s for s in self.steps if s.ordinal <= done]

    def pending_steps(self):
        done = self.context.state.step if self.context.state else 0
        return [s for s in self.steps if s.ordinal > done]

    def fail(self, step, error):
        """Tell the operator where the run stopped and how to go back"""
        presenter = self.presenter
        name = step.name if step is not None else None
        presenter.error("Migration failed%s: %s",
                        " at step %d (%s)" % (step.ordinal, step.name)
                        if step is not None else "", error)
        presenter.error("Completed steps: %s", ', '.join(
            s.name for s in self.completed_steps()) or 'none')
        presenter.error("Pending steps: %s", ', '.join(
            s.name for s in self.pending_steps()) or 'none')
        backups = self.context.fstore.latest_backups()
        for record in backups:
            presenter.error("Latest backup of %s: %s", record.original_path,
                            record.backup_path)
        if backups:
            presenter.error("To restore the previous configuration run: %s",
                            REVERT_COMMAND)
        else:
            presenter.error("No configuration file was backed up, nothing "
                            "needs to be restored with %s", REVERT_COMMAND)
        self.context.record('MIGRATION_FAILED', name or str(error))
        presenter.acknowledge("Press Enter to continue")
        presenter.show_log(self.log_file)
        return Failed(name, MIGRATION_ERROR)

    def continue_after_reboot(self, state):
        """Second phase: verify, remove the hook and clean up"""
        context = self.context
        context.adopt_state(state)
        self.presenter.info("Continuing the migration of %s to %s after "
                            "the reboot", context.fqdn, context.domain)
        context.record('POST_REBOOT', context.domain)
        context.bridge.settle()

        checklist = VerificationChecklist(
            self.presenter, context.domain, simulated=context.simulated,
            backup_account=context.config.backup_account)
        checks = checklist.run()
        context.verification = checks
        if any(c.status != OK for c in checks):
            context.record('VERIFICATION_WARNINGS',
                           '%d checks need attention' %
                           sum(1 for c in checks if c.status != OK))
        else:
            context.record('VERIFICATION_COMPLETE')

        try:
            context.bridge.remove()
        except PersistenceError as e:
            return self.fail(None, e)
        self.cleanup()
        state.phase = statefile.PHASE_COMPLETE
        self.presenter.info("Migration to %s complete", context.domain)
        return Success("migration complete")

    def cleanup(self):
        """Delete the state files and scratch files of the tools"""
        self.context.state_store.delete()
        if self.context.journal is not None:
            self.context.journal.delete()
        statefile.AutomationStateStore(
            self.context.config.automator_state_file).delete()
        for directory in (paths.TMP, paths.VAR_TMP):
            for path in glob.glob(os.path.join(glob.escape(directory),
                                               SCRATCH_PATTERN)):
                if os.path.isdir(path) and not os.path.islink(path):
                    dmutil.rmtree(path)
                else:
                    dmutil.remove_file(path)
                logger.debug("Removed %s", path)
