#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

import pytest

from dmplatform import services
from dmplatform.base import services as base_services
from dmplatform.paths import paths
from dmpython import dmutil
from dmtests.util import result

pytestmark = pytest.mark.tier0


def test_knownservices():
    assert services.knownservices.sssd.systemd_name == 'sssd.service'
    assert services.knownservices['rc-local'].systemd_name == \
        'rc-local.service'
    assert services.knownservices.samba.systemd_name == \
        'samba-ad-dc.service'
    assert services.knownservices['domain-migrate-continue'].systemd_name \
        == 'domain-migrate-continue.service'
    for name in services.conflicting_services:
        assert name in services.knownservices


def test_knownservices_unknown_attribute():
    with pytest.raises(AttributeError):
        getattr(services.knownservices, 'httpd')


def test_service_factory():
    assert services.service('chronyd').systemd_name == 'chronyd.service'
    assert services.service('rc-local.service').systemd_name == \
        'rc-local.service'


class TestSystemdService:
    def test_restart(self, run):
        services.knownservices.sssd.restart(wait=False)
        assert run.commands == [[paths.SYSTEMCTL, 'restart', 'sssd.service']]

    def test_start_waits_for_activation(self, run, monkeypatch):
        monkeypatch.setattr(base_services, 'SERVICE_POLL_INTERVAL', 0)
        run.respond([paths.SYSTEMCTL, 'is-active'],
                    result('activating\n', 3), result('active\n', 0))
        services.knownservices.oddjobd.start()
        assert run.commands == [
            [paths.SYSTEMCTL, 'start', 'oddjobd.service'],
            [paths.SYSTEMCTL, 'is-active', 'oddjobd.service'],
            [paths.SYSTEMCTL, 'is-active', 'oddjobd.service'],
        ]

    @pytest.mark.parametrize('returncode, running', [(0, True), (3, False)],
                             ids=['active', 'inactive'])
    def test_is_running(self, run, returncode, running):
        run.respond([paths.SYSTEMCTL, 'is-active'],
                    result('inactive\n' if returncode else 'active\n',
                           returncode))
        assert services.knownservices.winbind.is_running() is running

    def test_is_installed(self, run):
        run.respond([paths.SYSTEMCTL, 'list-unit-files'],
                    result('oddjobd.service disabled enabled\n'))
        assert services.knownservices.oddjobd.is_installed()
        run.respond([paths.SYSTEMCTL, 'list-unit-files'], result(''))
        assert not services.knownservices.oddjobd.is_installed()

    def test_enable_failure_raises(self, run):
        run.respond([paths.SYSTEMCTL, 'enable'], result('', 1))
        with pytest.raises(dmutil.CalledProcessError):
            services.knownservices['rc-local'].enable()

    def test_disable_failure_is_ignored(self, run):
        run.respond([paths.SYSTEMCTL, 'disable'], result('', 1))
        services.knownservices.smbd.disable()
        assert run.commands == [[paths.SYSTEMCTL, 'disable', 'smbd.service']]


def test_daemon_reload(run):
    services.daemon_reload()
    assert run.commands == [[paths.SYSTEMCTL, '--system', 'daemon-reload']]
