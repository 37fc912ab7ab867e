#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

import os

import pytest

from dmplatform.paths import paths
from dmpython import dmutil
from dmpython.config import MigrationConfig
from dmtests.util import RunRecorder


MARKERS = [
    'tier0: basic unit tests and critical functionality',
    'tier1: tests running a complete migration flow against fakes',
]

INIVALUES = {
    'python_classes': ['test_', 'Test'],
    'python_files': ['test_*.py'],
    'python_functions': ['test_*'],
}

EXECUTABLE_DIRS = ("/bin/", "/sbin/", "/usr/bin/", "/usr/sbin/",
                   "/usr/local/bin/")

# path attributes that are directories and must exist in the sandbox
SANDBOX_DIRS = ('HOME_DIR', 'TMP', 'VAR_TMP', 'REPORT_DIR', 'SUDOERS_DIR',
                'ETC_SYSTEMD_SYSTEM_DIR', 'ETC_INITD_DIR', 'CUPS_DIR',
                'NM_SYSTEM_CONNECTIONS_DIR', 'VAR_LOG_SSSD_DIR',
                'ODDJOBD_CONF_DIR', 'DM_CONFIG_DIR', 'NETPLAN_DIR')


def pytest_configure(config):
    for marker in MARKERS:
        config.addinivalue_line('markers', marker)

    # addinivalue_line() adds duplicated entries and does not remove existing.
    for name, values in INIVALUES.items():
        current = config.getini(name)
        current[:] = values


@pytest.fixture
def run(monkeypatch):
    """dmutil.run replaced by a RunRecorder"""
    recorder = RunRecorder()
    monkeypatch.setattr(dmutil, 'run', recorder)
    return recorder


@pytest.fixture
def sandbox(tmpdir, monkeypatch):
    """Move every file location of the path namespace below tmpdir"""
    root = str(tmpdir.join('root'))
    os.makedirs(root)
    for name in dir(paths):
        if not name[0].isupper():
            continue
        value = getattr(paths, name)
        if not isinstance(value, str) or not value.startswith('/'):
            continue
        if value.startswith(EXECUTABLE_DIRS):
            continue
        monkeypatch.setattr(paths, name,
                            os.path.join(root, value.lstrip('/')))
    monkeypatch.setattr(paths, 'ROOT_DIR', root)
    for name in SANDBOX_DIRS:
        os.makedirs(getattr(paths, name), exist_ok=True)
    for name in ('HOSTS', 'DM_MIGRATE_LOG', 'USER_MAPPING'):
        os.makedirs(os.path.dirname(getattr(paths, name)), exist_ok=True)
    return root


@pytest.fixture
def config(sandbox):
    """Configuration with every path in the sandbox and no delays"""
    return MigrationConfig(join_settle_delay=0, service_settle_delay=0,
                           post_reboot_settle_delay=0, reboot_delay=0)
