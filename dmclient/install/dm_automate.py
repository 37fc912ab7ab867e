#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""Unattended migration wrapper

Without state the wrapper runs a live migration with every question
answered by its default. Run by the continuation hook after the reboot it
completes the migration. ``--test`` runs the whole flow in test mode: all
mutations are simulated, failures are reported and skipped by default.
"""

import logging
from optparse import OptionGroup  # pylint: disable=deprecated-module

from dmclient.install import dm_migrate
from dmclient.install.engine import MigrationEngine, Success
from dmclient.install.presenter import ConsolePresenter
from dmclient.install.verify import VerificationChecklist, exit_code
from dmplatform.paths import paths
from dmpython import admintool, statefile
from dmpython.config import FAILURE_POLICIES

logger = logging.getLogger(__name__)

TEST_FAILURE_POLICY = 'continue'


class AutomateTool(dm_migrate.MigrationTool):
    command_name = 'dm-automate'
    log_file_name = paths.DM_AUTOMATE_LOG
    usage = "%prog [--auto] [--test] [--reboot-delay N] [options]"
    description = "Run or continue a domain migration without prompts."

    @classmethod
    def add_options(cls, parser):
        super(AutomateTool, cls).add_options(parser)

        group = OptionGroup(parser, "Automation options")
        group.add_option("--auto", dest="auto", action="store_true",
                         default=False,
                         help="run without any prompt, used by the "
                              "continuation hook")
        group.add_option("--test", dest="test", action="store_true",
                         default=False,
                         help="simulate the whole migration")
        group.add_option("--reboot-delay", dest="reboot_delay", type="int",
                         metavar="N",
                         help="seconds to wait before the reboot")
        group.add_option("--failure-policy", dest="failure_policy",
                         type="choice", choices=FAILURE_POLICIES,
                         help="what to do when a step fails: %s" %
                              ', '.join(FAILURE_POLICIES))
        parser.add_option_group(group)

        cls.add_target_options(parser)

    def validate_options(self, needs_root=True):
        super(AutomateTool, self).validate_options(needs_root=needs_root)
        if self.options.reboot_delay is not None and \
                self.options.reboot_delay < 0:
            raise admintool.ScriptError("--reboot-delay must not be negative",
                                        admintool.INVALID_ARGUMENTS)

    def run(self):
        super(AutomateTool, self).run()
        options = self.options
        config = self.load_config()
        presenter = ConsolePresenter(interactive=not options.auto)
        journal = statefile.AutomationStateStore(config.automator_state_file)

        if options.test:
            mode = statefile.MODE_TEST
            failure_policy = options.failure_policy or TEST_FAILURE_POLICY
            journal.record('TEST_STARTED', options.domain or '')
        else:
            mode = statefile.MODE_LIVE
            failure_policy = options.failure_policy
            journal.record('STARTED', options.domain or '')

        reboot_delay = options.reboot_delay
        if reboot_delay is None:
            reboot_delay = config.automate_reboot_delay

        context = self.make_context(mode, config, presenter,
                                    reboot_delay=reboot_delay,
                                    journal=journal)
        engine = MigrationEngine(context, collect_input=self.collect_input,
                                 failure_policy=failure_policy,
                                 log_file=self.get_log_file_name())
        result = engine.run()
        if not isinstance(result, Success) or not context.simulated:
            return dm_migrate.result_code(result)

        checklist = VerificationChecklist(
            presenter, context.domain, simulated=True,
            backup_account=config.backup_account)
        checks = checklist.run()
        if exit_code(checks):
            presenter.warning("The simulated verification found failures")
        engine.cleanup()
        return admintool.SUCCESS
