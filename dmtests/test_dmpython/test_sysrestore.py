#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""
Module provides unit tests to verify that the FileStore and the rollback
snapshots work.
"""

import os
import tarfile

import pytest

from dmplatform.paths import paths
from dmpython import dmutil, sysrestore
from dmpython.errors import BackupError
from dmpython.sysrestore import BACKUP_INFIX, FileStore, RollbackSnapshot
from dmtests.util import read_file, write_file

pytestmark = pytest.mark.tier0


@pytest.fixture
def timestamps(monkeypatch):
    """Make dmutil.timestamp() return the values of the list in order"""
    values = []

    def fake_timestamp():
        return values.pop(0)

    monkeypatch.setattr(dmutil, 'timestamp', fake_timestamp)
    return values


class TestFileStore:
    def test_backup_file(self, tmpdir, timestamps):
        timestamps.append('20261018_140307')
        original = write_file(str(tmpdir.join('krb5.conf')), 'old content\n')
        os.chmod(original, 0o640)

        record = FileStore().backup_file(original)

        assert record.original_path == original
        assert record.backup_path == original + BACKUP_INFIX + \
            '20261018_140307'
        assert record.size_bytes == len('old content\n')
        assert read_file(record.backup_path) == 'old content\n'
        assert os.stat(record.backup_path).st_mode & 0o777 == 0o640

    def test_backup_missing_file(self, tmpdir):
        assert FileStore().backup_file(str(tmpdir.join('absent'))) is None

    def test_backup_relative_path(self):
        with pytest.raises(ValueError):
            FileStore().backup_file('etc/hosts')

    def test_empty_backup_fails_verification(self, tmpdir):
        original = write_file(str(tmpdir.join('empty.conf')), '')
        with pytest.raises(BackupError):
            FileStore().backup_file(original)

    def test_latest_backup(self, tmpdir, timestamps):
        timestamps.extend(['20261018_100000', '20261018_110000'])
        fstore = FileStore()
        original = write_file(str(tmpdir.join('hosts')), 'first\n')
        fstore.backup_file(original)
        write_file(original, 'second\n')
        fstore.backup_file(original)

        latest = fstore.latest_backup(original)
        assert latest.backup_path.endswith('20261018_110000')
        assert read_file(latest.backup_path) == 'second\n'

    def test_restore_file(self, tmpdir):
        fstore = FileStore()
        original = write_file(str(tmpdir.join('nsswitch.conf')), 'files\n')
        record = fstore.backup_file(original)
        write_file(original, 'files sss\n')

        fstore.restore_file(record)
        assert read_file(original) == 'files\n'

    def test_restore_from_invalid_backup(self, tmpdir):
        original = write_file(str(tmpdir.join('hosts')), 'keep\n')
        record = sysrestore.BackupRecord(
            original, original + BACKUP_INFIX + 'gone', 10, 0)
        with pytest.raises(BackupError):
            FileStore().restore_file(record)
        assert read_file(original) == 'keep\n'

    def test_latest_backups_of_tracked_files(self, sandbox):
        fstore = FileStore()
        write_file(paths.HOSTS, '127.0.0.1 localhost\n')
        write_file(paths.KRB5_CONF, '[libdefaults]\n')
        fstore.backup_file(paths.HOSTS)
        fstore.backup_file(paths.KRB5_CONF)

        records = fstore.latest_backups()
        assert [r.original_path for r in records] == [paths.HOSTS,
                                                      paths.KRB5_CONF]
        assert fstore.has_files()

    def test_no_backups(self, sandbox):
        assert FileStore().latest_backups() == []
        assert not FileStore().has_files()


class TestRollbackSnapshot:
    def test_create_and_restore(self, sandbox, timestamps):
        timestamps.append('20261018_120000')
        write_file(paths.HOSTS, '127.0.0.1 localhost\n')
        write_file(paths.SSSD_CONF, '[sssd]\n')
        write_file(os.path.join(paths.NETPLAN_DIR, '01-lan.yaml'),
                   'network: {}\n')

        snapshot = RollbackSnapshot(paths.ROLLBACK_DIR)
        record = snapshot.create('technician', 'newco.local', 'ws01')

        assert record.backup_path == os.path.join(
            paths.ROLLBACK_DIR, 'rollback-20261018_120000.tar.gz')
        assert record.is_valid()
        with tarfile.open(record.backup_path) as tar:
            names = tar.getnames()
        assert 'etc/hosts' in names
        assert 'etc/sssd/sssd.conf' in names
        assert 'etc/netplan/01-lan.yaml' in names
        assert not any(name.startswith('/') for name in names)

        info = read_file(os.path.join(paths.ROLLBACK_DIR,
                                      'rollback-20261018_120000.info'))
        assert 'Mode: technician' in info
        assert 'Domain: newco.local' in info
        assert 'dm-migrate --revert' in info

        write_file(paths.HOSTS, 'changed\n')
        os.unlink(paths.SSSD_CONF)
        assert snapshot.latest() == record.backup_path
        snapshot.restore(snapshot.latest())
        assert read_file(paths.HOSTS) == '127.0.0.1 localhost\n'
        assert read_file(paths.SSSD_CONF) == '[sssd]\n'

    def test_latest_without_snapshot(self, sandbox):
        assert RollbackSnapshot(paths.ROLLBACK_DIR).latest() is None

    def test_latest_picks_newest(self, tmpdir):
        for name in ('rollback-20261017_090000.tar.gz',
                     'rollback-20261018_090000.tar.gz',
                     'rollback-20261018_090000.info'):
            write_file(str(tmpdir.join(name)), 'x')
        assert RollbackSnapshot(str(tmpdir)).latest() == str(
            tmpdir.join('rollback-20261018_090000.tar.gz'))
