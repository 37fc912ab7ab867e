#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""
Module provides unit tests to verify that the option parser and the
configuration file handling work.
"""

import pytest

from dmplatform.paths import paths
from dmpython.config import DMOptionParser, MigrationConfig
from dmtests.util import write_file

pytestmark = pytest.mark.tier0


@pytest.fixture
def parser():
    parser = DMOptionParser()
    parser.add_option("--domain", dest="domain", type="domain")
    parser.add_option("--ip-address", dest="ip_address", type="ip")
    parser.add_option("--principal", dest="principal")
    parser.add_option("--password", dest="password", sensitive=True)
    return parser


class TestOptionParser:
    def test_domain_is_normalized(self, parser):
        options, _args = parser.parse_args(['--domain', 'NewCo.Local.'])
        assert options.domain == 'newco.local'

    @pytest.mark.parametrize('domain', [
        'new_co.local', '-newco.local', 'newco..local', 'a' * 64 + '.local',
    ], ids=['underscore', 'leading-dash', 'empty-label', 'long-label'])
    def test_invalid_domain(self, parser, domain):
        with pytest.raises(SystemExit) as e:
            parser.parse_args(['--domain', domain])
        assert e.value.code == 2

    def test_ip_option(self, parser):
        options, _args = parser.parse_args(['--ip-address', '192.0.2.10'])
        assert str(options.ip_address) == '192.0.2.10'

    @pytest.mark.parametrize('address', ['127.0.0.1', '224.0.0.1', 'foo'],
                             ids=['loopback', 'multicast', 'garbage'])
    def test_invalid_ip_option(self, parser, address):
        with pytest.raises(SystemExit):
            parser.parse_args(['--ip-address', address])

    def test_safe_opts_hide_sensitive_options(self, parser):
        options, _args = parser.parse_args(
            ['--principal', 'admin@NEWCO.LOCAL', '--password', 'Secret123'])
        safe = parser.get_safe_opts(options)
        assert safe.principal == 'admin@NEWCO.LOCAL'
        assert not hasattr(safe, 'password')
        assert 'Secret123' not in str(safe)


class TestMigrationConfig:
    def test_defaults(self, sandbox):
        config = MigrationConfig()
        assert config.state_file == paths.MIGRATION_STATE
        assert config.automator_state_file == paths.AUTOMATOR_STATE
        assert config.reboot_delay == 10
        assert config.automate_reboot_delay == 15
        assert config.post_reboot_settle_delay == 30
        assert config.failure_policy == 'abort'
        assert config.computer_ou == 'Computers'
        assert config.backup_account == 'backup'

    def test_overrides(self):
        config = MigrationConfig(reboot_delay='3', failure_policy='continue')
        assert config.reboot_delay == 3
        assert config.failure_policy == 'continue'

    def test_unknown_attribute(self):
        config = MigrationConfig()
        with pytest.raises(AttributeError):
            getattr(config, 'no_such_setting')

    def test_bad_failure_policy(self):
        with pytest.raises(ValueError):
            MigrationConfig(failure_policy='retry')

    def test_load_from_file(self, sandbox):
        write_file(paths.DM_DEFAULT_CONF,
                   "[global]\n"
                   "reboot_delay = 30\n"
                   "computer_ou = OU=Workstations,DC=newco,DC=local\n"
                   "report_dir = /srv/reports\n"
                   "no_such_key = 1\n"
                   "join_settle_delay = soon\n")
        config = MigrationConfig.load()
        assert config.reboot_delay == 30
        assert config.computer_ou == 'OU=Workstations,DC=newco,DC=local'
        assert config.report_dir == '/srv/reports'
        # values that do not convert keep the default
        assert config.join_settle_delay == 5

    def test_merge_counts(self, sandbox):
        filename = write_file(paths.DM_DEFAULT_CONF,
                              "[global]\nreboot_delay = 1\nbogus = 2\n")
        assert MigrationConfig().merge_from_file(filename) == (1, 2)

    def test_missing_file(self, sandbox):
        assert MigrationConfig().merge_from_file(paths.DM_DEFAULT_CONF) \
            is None
        assert MigrationConfig.load().reboot_delay == 10

    def test_unparsable_file(self, sandbox):
        write_file(paths.DM_DEFAULT_CONF, "reboot_delay = 1\n")
        assert MigrationConfig.load().reboot_delay == 10

    def test_file_without_global_section(self, tmpdir):
        filename = write_file(str(tmpdir.join('default.conf')),
                              "[other]\nreboot_delay = 1\n")
        assert MigrationConfig().merge_from_file(filename) == (0, 0)
