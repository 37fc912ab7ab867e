#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""
Module provides unit tests to verify that host configuration files are
backed up and rewritten for the target domain.
"""

import glob
import os
import pwd

import pytest

from dmclient.install import configure
from dmplatform.paths import paths
from dmplatform.tasks import tasks
from dmpython import statefile
from dmpython.errors import BackupError, RecoverableError, StepFailed
from dmtests.util import read_file, result, write_file

pytestmark = pytest.mark.tier0

HOSTS = """\
127.0.0.1\tlocalhost
127.0.1.1\tws01.oldco.local ws01
::1\tlocalhost ip6-localhost ip6-loopback
"""

NSSWITCH_CONF = """\
passwd:         files systemd
group:          files systemd
shadow:         files
hosts:          files dns
"""

SSSD_CONF = """\
[sssd]
domains = newco.local

[domain/newco.local]
id_provider = ad
"""


def backups_of(path):
    return glob.glob(path + '.backup.*')


class TestGenerateHosts:
    def test_replaces_host_entries(self):
        content = configure.generate_hosts(HOSTS, 'ws01.newco.local', 'ws01',
                                           '10.20.0.15')
        assert content.splitlines() == [
            '127.0.0.1\tlocalhost',
            '::1\tlocalhost ip6-localhost ip6-loopback',
            '127.0.1.1\tws01.newco.local ws01',
            '10.20.0.15\tws01.newco.local ws01',
        ]

    def test_adds_localhost(self):
        content = configure.generate_hosts('', 'ws01.newco.local', 'ws01')
        assert content == ('127.0.0.1\tlocalhost\n'
                           '127.0.1.1\tws01.newco.local ws01\n')

    def test_ignores_bad_address(self):
        content = configure.generate_hosts(HOSTS, 'ws01.newco.local', 'ws01',
                                           '127.0.0.1')
        assert content.count('ws01.newco.local') == 1


def test_generate_krb5_conf():
    content = configure.generate_krb5_conf('NewCo.Local', 'dc1.newco.local')
    assert 'default_realm = NEWCO.LOCAL' in content
    assert 'kdc = dc1.newco.local' in content
    assert '.newco.local = NEWCO.LOCAL' in content


def test_configure_hosts(make_context):
    write_file(paths.HOSTS, HOSTS)
    context = make_context()
    context.primary_ip = '10.20.0.15'
    configure.configure_hosts(context)
    content = read_file(paths.HOSTS)
    assert '127.0.1.1\tws01.newco.local ws01' in content
    assert 'oldco' not in content
    backup, = backups_of(paths.HOSTS)
    assert read_file(backup) == HOSTS
    assert context.files_modified == [paths.HOSTS]
    assert context.backups[0].backup_path == backup


def test_configure_hosts_simulated(make_context):
    write_file(paths.HOSTS, HOSTS)
    context = make_context(mode=statefile.MODE_DRY_RUN)
    context.primary_ip = '10.20.0.15'
    configure.configure_hosts(context)
    assert read_file(paths.HOSTS) == HOSTS
    assert backups_of(paths.HOSTS) == []
    assert context.presenter.simulated == [
        'Would write %s' % paths.HOSTS]


def test_configure_krb5_conf_new_file(make_context):
    context = make_context()
    context.domain_controller = 'dc2.newco.local'
    configure.configure_krb5_conf(context)
    assert 'kdc = dc2.newco.local' in read_file(paths.KRB5_CONF)
    assert backups_of(paths.KRB5_CONF) == []


def test_configure_nsswitch(make_context):
    write_file(paths.NSSWITCH_CONF, NSSWITCH_CONF)
    configure.configure_nsswitch(make_context())
    lines = read_file(paths.NSSWITCH_CONF).splitlines()
    for db in configure.NSSWITCH_DATABASES:
        entry, = [line for line in lines if line.startswith(db + ':')]
        assert entry.split(':', 1)[1].split() == ['compat', 'sss']
    assert 'hosts:          files dns' in lines
    assert len(backups_of(paths.NSSWITCH_CONF)) == 1


@pytest.mark.parametrize('step, name, content', [
    (configure.configure_hosts, 'HOSTS', HOSTS),
    (configure.configure_nsswitch, 'NSSWITCH_CONF', NSSWITCH_CONF),
], ids=['hosts', 'nsswitch'])
def test_unverified_backup_leaves_file_alone(make_context, monkeypatch,
                                             step, name, content):
    filename = getattr(paths, name)
    write_file(filename, content)
    with open(filename, 'rb') as f:
        before = f.read()
    context = make_context()
    context.primary_ip = '10.20.0.15'
    monkeypatch.setattr(context.fstore, 'verify', lambda record: False)
    with pytest.raises(BackupError):
        step(context)
    with open(filename, 'rb') as f:
        assert f.read() == before
    assert context.files_modified == []
    assert context.backups == []


def test_generate_domain_sudoers():
    content = configure.generate_domain_sudoers('newco.local')
    assert '%NEWCO.LOCAL\\domain^users ALL=(ALL) ALL\n' in content
    assert '\\\\' not in content


class TestSudo:
    def test_install_sudoers(self, make_context, run):
        configure.install_sudoers(make_context(), paths.SUDOERS_DOMAIN_USERS,
                                  'root ALL=(ALL) ALL\n')
        assert os.stat(paths.SUDOERS_DOMAIN_USERS).st_mode & 0o777 == 0o440
        assert run.commands == [[paths.SBIN_VISUDO, '-c', '-f',
                                 paths.SUDOERS_DOMAIN_USERS]]

    def test_rejected_sudoers_is_removed(self, make_context, run):
        run.respond([paths.SBIN_VISUDO], result('', 1))
        with pytest.raises(StepFailed):
            configure.install_sudoers(make_context(),
                                      paths.SUDOERS_DOMAIN_USERS,
                                      'garbage\n')
        assert not os.path.exists(paths.SUDOERS_DOMAIN_USERS)

    def test_sssd_sudo_provider(self, make_context, run):
        write_file(paths.SSSD_CONF, SSSD_CONF)
        configure.configure_sudo(make_context())
        content = read_file(paths.SSSD_CONF)
        assert 'sudo_provider = ad' in content
        assert os.stat(paths.SSSD_CONF).st_mode & 0o777 == 0o600
        assert 'NEWCO.LOCAL' in read_file(paths.SUDOERS_DOMAIN_USERS)

    def test_sssd_sudo_provider_present(self, make_context):
        write_file(paths.SSSD_CONF, SSSD_CONF + 'sudo_provider = ad\n')
        configure.configure_sssd_sudo(make_context())
        assert backups_of(paths.SSSD_CONF) == []

    def test_missing_sssd_conf(self, make_context):
        with pytest.raises(RecoverableError):
            configure.configure_sssd_sudo(make_context())


class TestBackupAccount:
    def test_create(self, make_context, run, monkeypatch):
        monkeypatch.setattr(tasks, 'lookup_user', lambda name: None)
        context = make_context()
        configure.create_backup_account(context)
        useradd = run.called(paths.SBIN_USERADD)
        assert useradd[0].args[-1] == context.config.backup_account
        assert read_file(paths.SUDOERS_BACKUP_USER) == \
            'backup ALL=(ALL) NOPASSWD:ALL\n'

    def test_reuse_existing(self, make_context, run, monkeypatch):
        entry = pwd.struct_passwd(
            ('backup', 'x', 34, 34, 'backup', '/var/backups', '/bin/sh'))
        monkeypatch.setattr(tasks, 'lookup_user', lambda name: entry)
        configure.create_backup_account(make_context())
        assert run.called(paths.SBIN_USERADD) == []
        assert os.path.exists(paths.SUDOERS_BACKUP_USER)

    def test_simulated(self, make_context, run, monkeypatch):
        monkeypatch.setattr(tasks, 'lookup_user', lambda name: None)
        configure.create_backup_account(
            make_context(mode=statefile.MODE_TEST))
        assert run.calls == []
        assert not os.path.exists(paths.SUDOERS_BACKUP_USER)

    def test_remove(self, run, sandbox, monkeypatch):
        entry = pwd.struct_passwd(
            ('backup', 'x', 1001, 1001, '', '/home/backup', '/bin/bash'))
        monkeypatch.setattr(tasks, 'lookup_user', lambda name: entry)
        write_file(paths.SUDOERS_BACKUP_USER, 'backup ALL=(ALL) ALL\n')
        assert configure.remove_backup_account('backup')
        assert run.commands[0][0] == paths.SBIN_USERDEL
        assert not os.path.exists(paths.SUDOERS_BACKUP_USER)


def test_clear_sssd_cache_failure_is_warning(make_context, run):
    run.respond([paths.SBIN_SSSCTL], result('', 1))
    context = make_context()
    configure.clear_sssd_cache(context)
    assert len(context.presenter.warnings) == 1


def test_configure_mkhomedir_failure(make_context, run):
    run.respond([paths.PAM_AUTH_UPDATE], result('', 1))
    with pytest.raises(StepFailed):
        configure.configure_mkhomedir(make_context())
