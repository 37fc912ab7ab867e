#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

import logging
import socket
from optparse import OptionGroup  # pylint: disable=deprecated-module

from dmclient.install.context import MigrationContext
from dmclient.install.engine import MigrationEngine, Success, Cancelled
from dmclient.install.presenter import ConsolePresenter
from dmclient.install.revert import Reverter
from dmplatform.paths import paths
from dmplatform.tasks import tasks
from dmpython import admintool, dmutil, statefile
from dmpython.config import MigrationConfig
from dmpython.errors import CancelledByUser, MigrationError

logger = logging.getLogger(__name__)

MODE_REVERT = 'revert'
MENU_MODES = (statefile.MODE_TECHNICIAN, statefile.MODE_LIVE,
              statefile.MODE_DRY_RUN)


def short_hostname(hostname):
    return hostname.split('.', 1)[0].lower()


def result_code(result):
    """Exit code of a terminal engine result"""
    if isinstance(result, Success):
        return admintool.SUCCESS
    if isinstance(result, Cancelled):
        return admintool.CANCELLED
    return result.exit_code or admintool.MIGRATION_ERROR


class MigrationTool(admintool.AdminTool):
    """Options and input handling shared by the migration tools"""

    @classmethod
    def add_target_options(cls, parser):
        group = OptionGroup(parser, "Migration options")
        group.add_option("--domain", dest="domain", type="domain",
                         help="domain to join")
        group.add_option("--hostname", dest="hostname",
                         help="short hostname of this host in the new domain")
        group.add_option("--old-domain", dest="old_domain", type="domain",
                         help="domain to leave (default: the joined one)")
        group.add_option("--principal", dest="principal",
                         help="administrator of the new domain "
                              "(user@DOMAIN)")
        group.add_option("--password", dest="password", sensitive=True,
                         help="password of the administrator")
        group.add_option("--old-principal", dest="old_principal",
                         help="administrator of the old domain, if leaving "
                              "needs credentials")
        group.add_option("--old-password", dest="old_password",
                         sensitive=True,
                         help="password of the old domain administrator")
        group.add_option("--validate-accounts", dest="validate_accounts",
                         action="store_true", default=False,
                         help="migrate only accounts known to the new "
                              "domain")
        group.add_option("--config", dest="config_file", metavar="FILE",
                         help="configuration file (default: %s)" %
                              paths.DM_DEFAULT_CONF)
        parser.add_option_group(group)

    def validate_options(self, needs_root=True):
        super(MigrationTool, self).validate_options(needs_root=needs_root)
        if self.args:
            raise admintool.ScriptError("Too many arguments",
                                        admintool.INVALID_ARGUMENTS)
        if self.options.hostname:
            hostname = short_hostname(self.options.hostname)
            if not dmutil.DOMAIN_LABEL_RE.match(hostname):
                raise admintool.ScriptError(
                    "Invalid hostname %s" % self.options.hostname,
                    admintool.INVALID_ARGUMENTS)
            self.options.hostname = hostname

    def load_config(self):
        return MigrationConfig.load(self.options.config_file)

    def make_context(self, mode, config, presenter, **kwargs):
        options = self.options
        secret = dmutil.SecretHolder(options.password)
        old_secret = dmutil.SecretHolder(options.old_password)
        options.password = options.old_password = None
        return MigrationContext(
            mode, options.domain, options.hostname, config, presenter,
            principal=options.principal, secret=secret,
            old_domain=options.old_domain,
            old_principal=options.old_principal, old_secret=old_secret,
            validate_accounts=options.validate_accounts, **kwargs)

    def collect_input(self, context):
        """Fill in what a fresh run needs and was not given"""
        interactive = context.interactive
        if not context.domain:
            if not interactive:
                raise admintool.ScriptError(
                    "--domain is required", admintool.INVALID_ARGUMENTS)
            while not context.domain:
                try:
                    context.domain = dmutil.validate_domain_name(
                        dmutil.user_input("Domain to join",
                                          allow_empty=False))
                except ValueError as e:
                    print("Invalid domain: %s" % e)

        if not context.hostname:
            current = short_hostname(socket.gethostname())
            context.hostname = short_hostname(
                context.ask("Hostname in %s" % context.domain, current))

        if context.simulated:
            return

        if not context.principal:
            if not interactive:
                raise admintool.ScriptError(
                    "--principal is required", admintool.INVALID_ARGUMENTS)
            context.principal = context.ask(
                "Administrator of %s" % context.domain,
                'administrator@%s' % context.realm)
        if not context.secret:
            secret = context.presenter.ask_password(
                "Password for %s" % context.principal)
            if secret is None:
                raise admintool.ScriptError(
                    "--password is required", admintool.INVALID_ARGUMENTS)
            context.secret = secret

        if not context.ask("Migrate %s to %s now?" % (context.fqdn,
                                                      context.domain), True):
            raise CancelledByUser("Migration cancelled")


class MigrateTool(MigrationTool):
    command_name = 'dm-migrate'
    log_file_name = paths.DM_MIGRATE_LOG
    usage = "%prog [--technician | --live | --dry-run | --revert] [options]"
    description = ("Migrate this host from one Active Directory domain to "
                   "another.")

    @classmethod
    def add_options(cls, parser):
        super(MigrateTool, cls).add_options(parser)

        group = OptionGroup(parser, "Mode")
        group.add_option("--technician", dest="modes", action="append_const",
                         const=statefile.MODE_TECHNICIAN,
                         help="migrate with a full rollback snapshot")
        group.add_option("--live", dest="modes", action="append_const",
                         const=statefile.MODE_LIVE,
                         help="migrate with file backups only")
        group.add_option("--dry-run", dest="modes", action="append_const",
                         const=statefile.MODE_DRY_RUN,
                         help="show what would be done without changing "
                              "anything")
        group.add_option("--revert", dest="modes", action="append_const",
                         const=MODE_REVERT,
                         help="restore the previous domain configuration")
        group.add_option("-U", "--unattended", dest="unattended",
                         action="store_true", default=False,
                         help="never prompt, use the default answers")
        parser.add_option_group(group)

        cls.add_target_options(parser)

    @property
    def interactive(self):
        return not self.options.unattended

    def validate_options(self, needs_root=True):
        super(MigrateTool, self).validate_options(needs_root=needs_root)
        modes = self.options.modes or []
        if len(modes) > 1:
            raise admintool.ScriptError(
                "Only one of --technician, --live, --dry-run and --revert "
                "can be used", admintool.INVALID_ARGUMENTS)
        if not modes and not self.interactive:
            raise admintool.ScriptError(
                "A mode is required in unattended mode",
                admintool.INVALID_ARGUMENTS)
        self.mode = modes[0] if modes else None

    def ask_for_options(self):
        super(MigrateTool, self).ask_for_options()
        if self.mode is not None:
            return
        print("Select the migration mode:")
        for i, mode in enumerate(MENU_MODES, 1):
            print("  %d) %s" % (i, mode))
        while self.mode is None:
            choice = dmutil.user_input("Mode", 1)
            if 1 <= choice <= len(MENU_MODES):
                self.mode = MENU_MODES[choice - 1]

    def run(self):
        super(MigrateTool, self).run()
        config = self.load_config()
        presenter = ConsolePresenter(interactive=self.interactive)

        if self.mode == MODE_REVERT:
            return self.revert(presenter, config)

        context = self.make_context(self.mode, config, presenter)
        engine = MigrationEngine(context, collect_input=self.collect_input,
                                 log_file=self.get_log_file_name())
        return result_code(engine.run())

    def revert(self, presenter, config):
        try:
            Reverter(presenter, config).run()
        except CancelledByUser as e:
            raise admintool.ScriptError(str(e), admintool.CANCELLED)
        except (MigrationError, OSError, dmutil.CalledProcessError) as e:
            raise admintool.ScriptError(str(e), admintool.REVERT_ERROR)
        if presenter.ask("Reboot now?", False):
            tasks.reboot()
        return admintool.SUCCESS
