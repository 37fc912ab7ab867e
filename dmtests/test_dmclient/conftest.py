#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

import logging
import os

import pytest

from dmclient.install.context import MigrationContext
from dmpython import statefile
from dmtests.util import ScriptedPresenter


@pytest.fixture
def make_context(config):
    """Factory of MigrationContext objects working in the sandbox"""
    def factory(mode=statefile.MODE_LIVE, domain='newco.local',
                hostname='ws01', presenter=None, **kwargs):
        if presenter is None:
            presenter = ScriptedPresenter()
        kwargs.setdefault('sleep', lambda seconds: None)
        return MigrationContext(mode, domain, hostname, config, presenter,
                                **kwargs)
    return factory


@pytest.fixture
def as_root(monkeypatch):
    monkeypatch.setattr(os, 'geteuid', lambda: 0)


@pytest.fixture
def log_file(tmpdir):
    """Log file of a command line tool; the logging setup is restored"""
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield str(tmpdir.join('tool.log'))
    for handler in root_logger.handlers:
        if handler not in handlers:
            handler.close()
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)
