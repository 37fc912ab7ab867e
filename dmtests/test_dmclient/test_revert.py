#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""
Module provides unit tests to verify that a migration can be reverted from
a rollback snapshot or from the file backups.
"""

import os

import pytest

from dmclient.install import reboot
from dmclient.install.revert import Reverter
from dmplatform.paths import paths
from dmplatform.tasks import tasks
from dmpython import statefile
from dmpython.errors import CancelledByUser, MigrationError
from dmtests.util import ScriptedPresenter, read_file, result, write_file

pytestmark = pytest.mark.tier0


class FakeSnapshot:
    def __init__(self, archive=None):
        self.archive = archive
        self.restored = []

    def latest(self):
        return self.archive

    def restore(self, archive):
        self.restored.append(archive)


@pytest.fixture
def host(config, run, monkeypatch):
    """A host migrated from oldco.local with file backups"""
    monkeypatch.setattr(tasks, 'lookup_user', lambda name: None)
    run.respond([paths.SBIN_REALM, 'list'], result('oldco.local\n'))
    write_file(paths.HOSTS, '127.0.1.1\tws01.newco.local ws01\n')
    write_file(paths.HOSTS + '.backup.20261018_140307',
               '127.0.1.1\tws01.oldco.local ws01\n')
    return config


def make_reverter(config, answers=None, snapshot=None):
    return Reverter(ScriptedPresenter(answers), config,
                    snapshot=snapshot or FakeSnapshot())


class TestRestoreFiles:
    def test_restore(self, host, run):
        reverter = make_reverter(host)
        assert reverter.run() == [paths.HOSTS]
        assert read_file(paths.HOSTS) == \
            '127.0.1.1\tws01.oldco.local ws01\n'
        assert run.called(paths.SBIN_SSSCTL, 'cache-remove')
        assert ("Current domain membership: oldco.local" in
                reverter.presenter.events_of('info')[-2].message)

    def test_latest_backup_wins(self, host):
        write_file(paths.HOSTS + '.backup.20261018_150000',
                   '127.0.1.1\tws01.newer.local ws01\n')
        make_reverter(host).run()
        assert 'newer.local' in read_file(paths.HOSTS)

    def test_no_backups(self, config, run):
        with pytest.raises(MigrationError):
            make_reverter(config).run()

    def test_declined(self, host):
        with pytest.raises(CancelledByUser):
            make_reverter(host, {"Restore these files?": False}).run()
        assert 'newco.local' in read_file(paths.HOSTS)

    def test_sssd_failures_are_warnings(self, host, run):
        run.respond([paths.SBIN_SSSCTL], result('', 1))
        run.respond([paths.SYSTEMCTL, 'restart'], result('', 1))
        reverter = make_reverter(host)
        reverter.run()
        assert len(reverter.presenter.warnings) == 2

    def test_homes_restored(self, host):
        old = os.path.join(host.home_dir, 'alice@oldco.local')
        new = os.path.join(host.home_dir, 'alice@newco.local')
        write_file(os.path.join(new, '.profile'), 'alice\n')
        os.symlink(new, old)
        make_reverter(host).run()
        assert os.path.isdir(old) and not os.path.islink(old)
        assert not os.path.exists(new)


class TestSnapshot:
    ARCHIVE = '/var/backups/rollback-20261018_140307.tar.gz'

    def test_restore(self, host, run):
        snapshot = FakeSnapshot(self.ARCHIVE)
        reverter = make_reverter(host, snapshot=snapshot)
        assert reverter.run() == [self.ARCHIVE]
        assert snapshot.restored == [self.ARCHIVE]
        # the file backups are not used
        assert 'newco.local' in read_file(paths.HOSTS)
        assert run.calls == []

    @pytest.mark.parametrize('declined', [
        "Restore the complete snapshot?",
        "cannot be undone",
    ])
    def test_declined_falls_back_to_files(self, host, declined):
        snapshot = FakeSnapshot(self.ARCHIVE)
        reverter = make_reverter(host, {declined: False}, snapshot)
        assert reverter.run() == [paths.HOSTS]
        assert snapshot.restored == []


class TestLeftovers:
    def test_hook_and_state_removed(self, host):
        store = statefile.MigrationStateStore(host.state_file)
        store.save(statefile.MigrationState(
            step=22, phase=statefile.PHASE_POST_REBOOT,
            mode=statefile.MODE_LIVE, domain='newco.local',
            hostname='ws01'))
        journal = statefile.AutomationStateStore(host.automator_state_file)
        journal.record('REBOOT_SCHEDULED')
        write_file(paths.RC_LOCAL,
                   '#!/bin/sh -e\n%s\n%s\nexit 0\n' % (
                       reboot.RC_LOCAL_CREATED_TAG, reboot.HOOK_MARKER))

        make_reverter(host).run()
        assert store.load() is None
        assert journal.load() is None
        assert not os.path.exists(paths.RC_LOCAL)

    @pytest.mark.parametrize('remove', [True, False])
    def test_user_migration_logs(self, host, remove):
        log = write_file(paths.USER_MIGRATION_LOG_GLOB.replace('*', 'alice'),
                         'moved\n')
        make_reverter(host, {"user migration logs": remove}).run()
        assert os.path.exists(log) != remove
