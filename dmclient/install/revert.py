#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""Put the previous domain configuration back

A rollback snapshot, when one exists and the operator chooses it, is
extracted over the root directory. Otherwise the latest backup of every
tracked file is restored. Relocated home directories are moved back and
the continuation hook and state files of an unfinished run are removed.
"""

import glob
import logging

from dmclient.install.realm import RealmService
from dmclient.install.reboot import RebootBridge
from dmclient.install.relocate import revert_symlinks
from dmplatform.paths import paths
from dmplatform.services import knownservices
from dmplatform.tasks import tasks
from dmpython import dmutil, statefile
from dmpython.errors import CancelledByUser, MigrationError
from dmpython.sysrestore import FileStore, RollbackSnapshot

logger = logging.getLogger(__name__)


class Reverter:
    """Undo a migration

    :param presenter: dmclient.install.presenter.Presenter
    :param config: dmpython.config.MigrationConfig
    """
    def __init__(self, presenter, config, fstore=None, snapshot=None):
        self.presenter = presenter
        self.config = config
        self.fstore = fstore if fstore is not None else FileStore()
        self.snapshot = (snapshot if snapshot is not None
                         else RollbackSnapshot(config.rollback_dir))
        self.restored = []

    def restore_snapshot(self):
        """Offer the newest rollback snapshot; return True if restored"""
        archive = self.snapshot.latest()
        if archive is None:
            return False
        self.presenter.info("Found rollback snapshot %s", archive)
        if not self.presenter.ask("Restore the complete snapshot?", True):
            return False
        if not self.presenter.ask("This overwrites the system configuration "
                                  "and cannot be undone. Continue?", True):
            return False
        self.snapshot.restore(archive)
        self.restored.append(archive)
        self.presenter.info("System configuration restored from %s",
                            archive)
        return True

    def restore_files(self):
        records = self.fstore.latest_backups()
        if not records:
            raise MigrationError("No backup files found, cannot revert the "
                                 "migration")
        for record in records:
            self.presenter.info("%s: %s", record.original_path,
                                record.backup_path)
        if not self.presenter.ask("Restore these files?", True):
            raise CancelledByUser("Revert cancelled")
        for record in records:
            self.fstore.restore_file(record)
            self.restored.append(record.original_path)
            self.presenter.info("Restored %s", record.original_path)

        try:
            dmutil.run([paths.SBIN_SSSCTL, 'cache-remove', '-o', '--stop',
                        '--start'], stdin='y\n')
        except dmutil.CalledProcessError as e:
            self.presenter.warning("Could not clear SSSD cache: %s", e)
        try:
            knownservices.sssd.restart()
        except dmutil.CalledProcessError as e:
            self.presenter.warning("Could not restart sssd: %s", e)

    def restore_homes(self):
        for path in revert_symlinks(self.config.home_dir):
            self.presenter.info("Restored home directory %s", path)

    def remove_leftovers(self):
        """Drop the hook and state of an unfinished migration"""
        store = statefile.MigrationStateStore(self.config.state_file)
        bridge = RebootBridge(store)
        if bridge.find_installed():
            bridge.remove()
            self.presenter.info("Continuation hook removed")
        store.delete()
        statefile.AutomationStateStore(
            self.config.automator_state_file).delete()

        logs = sorted(glob.glob(paths.USER_MIGRATION_LOG_GLOB))
        if logs and self.presenter.ask(
                "Remove %d user migration logs?" % len(logs), False):
            for log in logs:
                dmutil.remove_file(log)

    def run(self):
        """Revert, return the restored files and snapshots"""
        if self.restore_snapshot():
            self.remove_leftovers()
            self.presenter.info("Reboot the system to complete the revert")
            return self.restored

        self.restore_files()
        self.restore_homes()
        self.remove_leftovers()
        if tasks.lookup_user(self.config.backup_account) is not None:
            self.presenter.info("The emergency account '%s' is still "
                                "available", self.config.backup_account)

        realms = RealmService().list_membership()
        self.presenter.info("Current domain membership: %s",
                            ', '.join(realms) or 'none')
        self.presenter.info("A reboot is recommended")
        return self.restored
