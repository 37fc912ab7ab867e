#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

import logging

from dmclient.install.presenter import ConsolePresenter
from dmclient.install.verify import VerificationChecklist, exit_code
from dmplatform.paths import paths
from dmpython import admintool
from dmpython.config import MigrationConfig

logger = logging.getLogger(__name__)


class VerifyTool(admintool.AdminTool):
    command_name = 'dm-verify'
    log_file_name = paths.DM_VERIFY_LOG
    usage = "%prog [--domain DOMAIN] [options]"
    description = "Check that this host works as a member of its domain."

    @classmethod
    def add_options(cls, parser):
        super(VerifyTool, cls).add_options(parser)
        parser.add_option("--domain", dest="domain", type="domain",
                          help="expected domain (default: the joined one)")
        parser.add_option("--config", dest="config_file", metavar="FILE",
                          help="configuration file (default: %s)" %
                               paths.DM_DEFAULT_CONF)

    def validate_options(self, needs_root=True):
        super(VerifyTool, self).validate_options(needs_root=needs_root)
        if self.args:
            raise admintool.ScriptError("Too many arguments",
                                        admintool.INVALID_ARGUMENTS)

    def run(self):
        super(VerifyTool, self).run()
        config = MigrationConfig.load(self.options.config_file)
        checklist = VerificationChecklist(
            ConsolePresenter(interactive=False), self.options.domain,
            backup_account=config.backup_account)
        rval = exit_code(checklist.run())
        if rval:
            raise admintool.ScriptError(
                "Some checks failed", admintool.MIGRATION_ERROR)
        return admintool.SUCCESS
