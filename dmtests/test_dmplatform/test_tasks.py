#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

import pytest

from dmplatform.paths import paths
from dmplatform.tasks import tasks
from dmtests.util import result, write_file

pytestmark = pytest.mark.tier0

SS_OUTPUT = """\
Netid State  Recv-Q Send-Q Local Address:Port  Peer Address:Port Process
udp   UNCONN 0      0      127.0.0.53%lo:53         0.0.0.0:*
tcp   LISTEN 0      4096         0.0.0.0:22         0.0.0.0:*
tcp   LISTEN 0      50              [::]:445           [::]:*
tcp   LISTEN 0      50                 *:*                *:*
"""


@pytest.mark.parametrize('files, supported', [
    ({'ETC_DEBIAN_VERSION': '12.7\n'}, True),
    ({'OS_RELEASE': 'NAME="Ubuntu"\nID=ubuntu\nID_LIKE=debian\n'}, True),
    ({'OS_RELEASE': 'NAME="Fedora Linux"\nID=fedora\n'}, False),
    ({}, False),
], ids=['debian', 'ubuntu', 'fedora', 'unknown'])
def test_is_supported_system(sandbox, files, supported):
    for name, content in files.items():
        write_file(getattr(paths, name), content)
    assert tasks.is_supported_system() is supported


def test_listening_ports(run):
    run.respond([paths.SS], result(SS_OUTPUT))
    assert tasks.listening_ports() == {53, 22, 445}


@pytest.mark.parametrize('output, returncode, expected', [
    ('kvm\n', 0, 'kvm'),
    ('none\n', 1, None),
    ('', 0, None),
], ids=['kvm', 'bare-metal', 'no-output'])
def test_detect_virtualization(run, output, returncode, expected):
    run.respond([paths.SYSTEMD_DETECT_VIRT], result(output, returncode))
    assert tasks.detect_virtualization() == expected


def test_active_sessions(run):
    run.respond([paths.BIN_WHO],
                result('alice pts/0 2026-10-18 09:00\n\n'
                       'bob   tty2  2026-10-18 08:12\n'))
    assert len(tasks.active_sessions()) == 2


def test_create_local_user_never_logs_password(run):
    tasks.create_local_user('backup', 'backup-pass', groups=('sudo',))
    useradd, chpasswd = run.calls
    assert useradd.args == [paths.SBIN_USERADD, '-m', '-s', '/bin/bash',
                            '-G', 'sudo', 'backup']
    assert chpasswd.args == [paths.SBIN_CHPASSWD]
    assert chpasswd.stdin == 'backup:backup-pass\n'
    assert chpasswd.nolog == ('backup-pass',)


def test_remove_local_user_failure(run):
    run.respond([paths.SBIN_USERDEL], result('', 6))
    assert tasks.remove_local_user('backup') is False


def test_check_sudoers(run):
    run.respond([paths.SBIN_VISUDO], result('', 1))
    assert not tasks.check_sudoers('/etc/sudoers.d/domain-users')
    assert run.commands == [[paths.SBIN_VISUDO, '-c', '-f',
                             '/etc/sudoers.d/domain-users']]


@pytest.mark.parametrize('output, returncode, found', [
    ('alice@newco.local:*:1001:1001::/home/alice@newco.local:/bin/bash\n',
     0, True),
    ('', 2, False),
], ids=['found', 'missing'])
def test_getent(run, output, returncode, found):
    run.respond([paths.BIN_GETENT], result(output, returncode))
    assert tasks.getent('passwd', 'alice@newco.local') is found


def test_install_packages(run):
    run.respond([paths.BIN_APT_GET, 'update'], result('', 100))
    assert tasks.install_packages(['sssd', 'realmd'])
    install = run.called(paths.BIN_APT_GET, 'install')
    assert install[0].args[-2:] == ['sssd', 'realmd']


def test_install_packages_failure(run):
    run.respond([paths.BIN_APT_GET, 'install'], result('', 100))
    assert not tasks.install_packages(['sssd'])


def test_enable_mkhomedir(run):
    assert tasks.enable_mkhomedir()
    assert run.commands == [[paths.PAM_AUTH_UPDATE, '--enable', 'mkhomedir',
                             '--force']]


def test_enable_time_sync_failure(run):
    run.respond([paths.TIMEDATECTL], result('', 1))
    assert tasks.enable_time_sync() is False
