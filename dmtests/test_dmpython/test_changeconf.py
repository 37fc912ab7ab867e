#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

import os

import pytest

from dmpython.changeconf import ChangeConf
from dmtests.util import read_file, write_file

pytestmark = pytest.mark.tier0

SSSD_CONF = """\
[sssd]
domains = oldco.local
services = nss, pam

[domain/oldco.local]
# managed by realmd
id_provider = ad
access_provider = ad

[pam]
"""

NSSWITCH_CONF = """\
# /etc/nsswitch.conf
passwd:         files systemd
group:          files systemd
hosts:          files dns
"""


class test_ChangeConf:
    def test_parse_sections(self):
        conf = ChangeConf('test')
        opts = conf.parse(SSSD_CONF.splitlines(True))
        assert conf.sections(opts) == ['sssd', 'domain/oldco.local', 'pam']
        opt = conf.find_option(opts, 'id_provider', 'domain/oldco.local')
        assert opt['value'] == 'ad'
        assert conf.find_option(opts, 'id_provider', 'sssd') is None

    def test_dump_unchanged(self):
        conf = ChangeConf('test')
        opts = conf.parse(SSSD_CONF.splitlines(True))
        assert conf.dump(opts) == SSSD_CONF

    def test_add_option_to_section(self, tmpdir):
        filename = write_file(str(tmpdir.join('sssd.conf')), SSSD_CONF)
        ChangeConf('test').change_conf(
            filename, [('domain/oldco.local', 'sudo_provider', 'ad')])
        lines = read_file(filename).splitlines()
        index = lines.index('access_provider = ad')
        assert lines[index + 1] == 'sudo_provider = ad'
        assert '# managed by realmd' in lines
        assert lines[-1] == '[pam]'

    def test_replace_option(self, tmpdir):
        filename = write_file(str(tmpdir.join('sssd.conf')), SSSD_CONF)
        ChangeConf('test').change_conf(
            filename, [('sssd', 'domains', 'newco.local')])
        content = read_file(filename)
        assert 'domains = newco.local\n' in content
        assert 'oldco.local\n' not in content.split('[domain/')[0]

    def test_add_option_to_missing_section_appends(self, tmpdir):
        filename = write_file(str(tmpdir.join('sssd.conf')), SSSD_CONF)
        ChangeConf('test').change_conf(filename, [('nss', 'filter', 'root')])
        assert read_file(filename).endswith('[pam]\n[nss]\nfilter = root\n')

    def test_file_without_sections(self, tmpdir):
        filename = write_file(str(tmpdir.join('nsswitch.conf')),
                              NSSWITCH_CONF)
        conf = ChangeConf('test', assignment=":         ",
                          section_delimiters=(None, None))
        conf.change_conf(filename, [(None, 'passwd', 'compat sss'),
                                    (None, 'group', 'compat sss'),
                                    (None, 'shadow', 'compat sss')])
        line = conf.format_option
        assert read_file(filename).splitlines() == [
            "# /etc/nsswitch.conf",
            line("passwd", "compat sss"),
            line("group", "compat sss"),
            "hosts:          files dns",
            line("shadow", "compat sss"),
        ]

    def test_new_conf(self, tmpdir):
        filename = str(tmpdir.join('krb5.conf'))
        ChangeConf('test').new_conf(filename, '[libdefaults]\n', 0o640)
        assert read_file(filename) == '[libdefaults]\n'
        assert os.stat(filename).st_mode & 0o777 == 0o640
