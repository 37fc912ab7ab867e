#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""Everything a migration step needs, passed explicitly to each step"""

import logging
import time

from dmclient.install.realm import DomainTransitionDriver
from dmclient.install.reboot import RebootBridge
from dmpython import statefile
from dmpython.dmutil import SecretHolder
from dmpython.errors import BackupError
from dmpython.sysrestore import FileStore

logger = logging.getLogger(__name__)


class MigrationContext:
    """State and collaborators of one migration run

    :param mode: one of dmpython.statefile.MODES
    :param domain: target domain FQDN
    :param hostname: short host name
    :param config: dmpython.config.MigrationConfig
    :param presenter: dmclient.install.presenter.Presenter
    :param principal: administrator of the target domain, user@domain
    :param secret: SecretHolder with the administrator password
    """
    def __init__(self, mode, domain, hostname, config, presenter,
                 principal=None, secret=None, old_domain=None,
                 old_principal=None, old_secret=None, driver=None,
                 bridge=None, fstore=None, state_store=None,
                 validate_accounts=False, reboot_delay=None,
                 sleep=time.sleep, journal=None):
        self.mode = mode
        self.domain = domain
        self.hostname = hostname
        self.config = config
        self.presenter = presenter
        self.principal = principal
        self.secret = secret if secret is not None else SecretHolder()
        self.old_domain = old_domain
        self.old_principal = old_principal
        self.old_secret = (old_secret if old_secret is not None
                           else SecretHolder())
        self.state_store = (state_store if state_store is not None
                            else statefile.MigrationStateStore(
                                config.state_file))
        self.driver = (driver if driver is not None
                       else DomainTransitionDriver(
                           join_settle_delay=config.join_settle_delay,
                           computer_ou=config.computer_ou, sleep=sleep))
        self.bridge = (bridge if bridge is not None
                       else RebootBridge(self.state_store,
                                         config.post_reboot_settle_delay,
                                         sleep=sleep))
        self.fstore = fstore if fstore is not None else FileStore()
        self.validate_accounts = validate_accounts
        self.reboot_delay = (reboot_delay if reboot_delay is not None
                             else config.reboot_delay)
        self.sleep = sleep
        self.journal = journal

        self.state = None
        self.domain_controller = None
        self.dc_source = None
        self.primary_ip = None
        self.files_modified = []
        self.backups = []
        self.verification = []
        self.user_mappings = []
        self.resources_updated = []
        self.report_path = None

    def __repr__(self):
        return '<MigrationContext mode=%s domain=%s hostname=%s>' % (
            self.mode, self.domain, self.hostname)

    @property
    def fqdn(self):
        return '%s.%s' % (self.hostname, self.domain)

    @property
    def realm(self):
        return self.domain.upper()

    @property
    def simulated(self):
        return self.mode in statefile.SIMULATED_MODES

    @property
    def interactive(self):
        return self.presenter.interactive

    def ask(self, prompt, default):
        return self.presenter.ask(prompt, default)

    def clear_credentials(self):
        self.secret.clear()
        self.old_secret.clear()

    def backup_file(self, path):
        """Take a verified backup of @path before it is changed

        Returns the BackupRecord or None when @path does not exist. In
        simulated modes nothing is copied. Raises BackupError when the
        copy cannot be verified, the caller must not touch @path then.
        """
        if self.simulated:
            self.presenter.simulate("Would back up %s", path)
            return None
        record = self.fstore.backup_file(path)
        if record is None:
            self.presenter.warning("%s does not exist, nothing to back up",
                                   path)
            return None
        if not self.fstore.verify(record):
            raise BackupError("Backup of %s failed verification" % path)
        self.backups.append(record)
        return record

    def file_modified(self, path):
        if path not in self.files_modified:
            self.files_modified.append(path)

    def adopt_state(self, state):
        """Continue the run recorded in @state"""
        self.state = state
        self.mode = state.mode
        self.domain = state.domain
        self.hostname = state.hostname
        if state.old_domain and not self.old_domain:
            self.old_domain = state.old_domain
        if state.dc and not self.domain_controller:
            self.domain_controller = state.dc

    def save_state(self, **changes):
        """Persist the current state with @changes applied"""
        for key, value in changes.items():
            setattr(self.state, key, value)
        self.state.old_domain = self.old_domain
        self.state.dc = self.domain_controller
        self.state_store.save(self.state)

    def record(self, phase, details=''):
        """Note @phase in the automation journal, if there is one"""
        if self.journal is not None:
            self.journal.record(phase, details)
