#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""
Module provides unit tests to verify the option handling, input collection
and exit codes of the dm-migrate command.
"""

import socket

import pytest

from dmclient.install import dm_migrate, engine
from dmpython import admintool, statefile
from dmpython.errors import CancelledByUser, MigrationError
from dmtests.util import FakeEngine, ScriptedPresenter, read_file

pytestmark = pytest.mark.tier0

PASSWORD = 'Secret123'


@pytest.fixture
def fake_engine(monkeypatch):
    monkeypatch.setattr(FakeEngine, 'instances', [])
    monkeypatch.setattr(FakeEngine, 'outcome',
                        engine.Success("migration complete"))
    monkeypatch.setattr(dm_migrate, 'MigrationEngine', FakeEngine)
    return FakeEngine


def make_tool(cls, argv):
    cls.make_parser()
    options, args = cls.option_parser.parse_args(argv)
    return cls(options, args)


def migrate(*argv):
    return dm_migrate.MigrateTool.main(['dm-migrate'] + list(argv))


@pytest.mark.parametrize('argv', [
    ['--live', '--dry-run'],
    ['--unattended'],
    ['--live', 'extra'],
    ['--live', '--hostname', 'ws_01'],
    ['--live', '--verbose', '--quiet'],
], ids=['two-modes', 'unattended-without-mode', 'extra-argument',
        'bad-hostname', 'verbose-and-quiet'])
def test_invalid_arguments(as_root, log_file, argv):
    assert migrate(*argv) == admintool.INVALID_ARGUMENTS


def test_not_root(monkeypatch, log_file):
    monkeypatch.setattr('os.geteuid', lambda: 1000)
    assert migrate('--live') == admintool.NOT_ROOT


def test_invalid_domain_option():
    with pytest.raises(SystemExit) as e:
        migrate('--live', '--domain', 'newco_local')
    assert e.value.code == 2


@pytest.mark.parametrize('outcome, code', [
    (engine.Success("done"), admintool.SUCCESS),
    (engine.Failed('JoinNewDomain', admintool.MIGRATION_ERROR),
     admintool.MIGRATION_ERROR),
    (engine.Failed(None, None), admintool.MIGRATION_ERROR),
    (engine.Cancelled('Reboot'), admintool.CANCELLED),
], ids=['success', 'failed', 'failed-without-code', 'cancelled'])
def test_result_code(outcome, code):
    assert dm_migrate.result_code(outcome) == code


class TestRun:
    def test_unattended_run(self, sandbox, as_root, log_file, fake_engine):
        rval = migrate('--dry-run', '-U', '--domain', 'NewCo.Local',
                       '--hostname', 'WS01.oldco.local',
                       '--principal', 'admin@NEWCO.LOCAL',
                       '--password', PASSWORD, '--log-file', log_file)
        assert rval == admintool.SUCCESS
        eng, = fake_engine.instances
        context = eng.context
        assert context.mode == statefile.MODE_DRY_RUN
        assert context.domain == 'newco.local'
        assert context.hostname == 'ws01'
        assert context.secret.reveal() == PASSWORD
        assert not context.interactive
        assert eng.log_file == log_file
        assert PASSWORD not in read_file(log_file)

    def test_failed_run(self, sandbox, as_root, log_file, fake_engine,
                        monkeypatch):
        monkeypatch.setattr(fake_engine, 'outcome', engine.Failed(
            'JoinNewDomain', admintool.MIGRATION_ERROR))
        assert migrate('--live', '-U', '--log-file', log_file) == \
            admintool.MIGRATION_ERROR

    def test_cancelled_run(self, sandbox, as_root, log_file, fake_engine,
                           monkeypatch):
        monkeypatch.setattr(fake_engine, 'outcome', engine.Cancelled(None))
        assert migrate('--live', '-U', '--log-file', log_file) == \
            admintool.CANCELLED

    def test_mode_menu(self, sandbox, as_root, log_file, fake_engine,
                       monkeypatch):
        answers = iter([7, 3])
        monkeypatch.setattr(dm_migrate.dmutil, 'user_input',
                            lambda prompt, default=None, **kw: next(answers))
        assert migrate('--log-file', log_file) == admintool.SUCCESS
        assert fake_engine.instances[0].context.mode == \
            statefile.MODE_DRY_RUN


class TestRevert:
    @pytest.mark.parametrize('error, code', [
        (None, admintool.SUCCESS),
        (MigrationError("No backup files found"), admintool.REVERT_ERROR),
        (CancelledByUser("Revert cancelled"), admintool.CANCELLED),
        (OSError("Permission denied"), admintool.REVERT_ERROR),
    ], ids=['success', 'no-backups', 'cancelled', 'os-error'])
    def test_revert(self, sandbox, as_root, log_file, monkeypatch, error,
                    code):
        class FakeReverter:
            def __init__(self, presenter, config):
                pass

            def run(self):
                if error is not None:
                    raise error
                return []

        monkeypatch.setattr(dm_migrate, 'Reverter', FakeReverter)
        assert migrate('--revert', '-U', '--log-file', log_file) == code


class TestCollectInput:
    @pytest.fixture
    def tool(self):
        return make_tool(dm_migrate.MigrateTool, ['--live'])

    def test_domain_required_unattended(self, tool, make_context):
        context = make_context(domain=None)
        with pytest.raises(admintool.ScriptError) as e:
            tool.collect_input(context)
        assert e.value.rval == admintool.INVALID_ARGUMENTS

    def test_simulated_needs_no_credentials(self, tool, make_context,
                                            monkeypatch):
        monkeypatch.setattr(socket, 'gethostname',
                            lambda: 'WS09.oldco.local')
        context = make_context(mode=statefile.MODE_DRY_RUN, hostname=None)
        tool.collect_input(context)
        assert context.hostname == 'ws09'
        assert context.principal is None

    def test_principal_required_unattended(self, tool, make_context):
        with pytest.raises(admintool.ScriptError):
            tool.collect_input(make_context())

    def test_password_required(self, tool, make_context):
        context = make_context(principal='admin@NEWCO.LOCAL')
        with pytest.raises(admintool.ScriptError) as e:
            tool.collect_input(context)
        assert '--password' in str(e.value)

    def test_interactive(self, tool, make_context):
        presenter = ScriptedPresenter(interactive=True,
                                      passwords=[PASSWORD])
        context = make_context(presenter=presenter)
        tool.collect_input(context)
        assert context.principal == 'administrator@NEWCO.LOCAL'
        assert context.secret.reveal() == PASSWORD
        assert presenter.asked[-1] == \
            'Migrate ws01.newco.local to newco.local now?'

    def test_declined(self, tool, make_context):
        presenter = ScriptedPresenter(answers={'now?': False},
                                      interactive=True, passwords=[PASSWORD])
        with pytest.raises(CancelledByUser):
            tool.collect_input(make_context(presenter=presenter))

    def test_password_option_is_not_kept(self, tool, config):
        tool.options.password = PASSWORD
        context = tool.make_context(statefile.MODE_LIVE, config,
                                    ScriptedPresenter())
        assert tool.options.password is None
        assert context.secret.reveal() == PASSWORD
