#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""Health checks of a migrated host

The post-reboot checklist is a flat list of independent checks. Each one
yields OK, WARNING or FAIL; the checklist fails when any check fails.
"""

import collections
import logging
import os
import socket

from dns import resolver, rdatatype
from dns.exception import DNSException

from dmclient.discovery import DCDiscovery, PROBE_PREFIXES, resolve_address
from dmclient.install import configure
from dmclient.install.realm import RealmService
from dmplatform.paths import paths
from dmplatform.services import knownservices
from dmplatform.tasks import tasks
from dmpython import dmutil
from dmpython.errors import VerificationError

logger = logging.getLogger(__name__)

OK = 'OK'
WARNING = 'WARNING'
FAIL = 'FAIL'

SSSD_LOG_TAIL = 50
CONNECTIVITY_CHECK = ('8.8.8.8', 53)
DNS_CHECK_NAME = 'google.com'
LDAP_PORT = 389
CONNECT_TIMEOUT = 5

SSSD_LOG_PATTERNS = (
    ('SSSD log errors', ('error',)),
    ('SSSD authentication failures', ('authentication failure',
                                      'auth failure')),
    ('SSSD connection timeouts', ('timeout', 'connection refused')),
)


class Check(collections.namedtuple('Check', 'name status detail')):
    """Outcome of one health check"""


def tail(filename, count):
    try:
        with open(filename, errors='replace') as f:
            return collections.deque(f, maxlen=count)
    except OSError as e:
        logger.debug("Cannot read %s: %s", filename, e)
        return None


def exit_code(checks):
    return 1 if any(c.status == FAIL for c in checks) else 0


def verify_join(context):
    """Post-configuration checks run before the user profiles are moved

    Missing membership is fatal. The other checks are reported and
    returned.
    """
    domain = context.domain
    checks = []
    if context.simulated:
        context.presenter.simulate("Would verify membership of %s", domain)
        return checks

    if domain.lower() not in RealmService().list_membership():
        raise VerificationError("%s is not listed as a joined realm" %
                                domain)
    checks.append(Check('Domain membership', OK, domain))

    result = dmutil.run([paths.SBIN_SSSCTL, 'domain-list'],
                        raiseonerr=False, capture_output=True)
    listed = domain.lower() in (result.output or '').lower()
    checks.append(Check('SSSD domain', OK if listed else WARNING,
                        domain if listed else 'not in sssctl domain-list'))

    for database in ('passwd', 'group'):
        key = 'administrator@%s' if database == 'passwd' else \
            'domain users@%s'
        found = tasks.getent(database, key % domain)
        checks.append(Check('%s lookup' % database, OK if found else WARNING,
                            key % domain))

    for name in ('sssd', 'oddjobd'):
        running = knownservices[name].is_running()
        checks.append(Check('%s service' % name, OK if running else WARNING,
                            'active' if running else 'not active'))

    for filename in (paths.KRB5_CONF, paths.SSSD_CONF, paths.NSSWITCH_CONF):
        present = os.path.exists(filename)
        checks.append(Check(filename, OK if present else WARNING,
                            'present' if present else 'missing'))

    for check in checks:
        report_check(context.presenter, check)
    context.verification.extend(checks)
    return checks


def report_check(presenter, check):
    message = "%s: %s (%s)" % (check.name, check.status, check.detail)
    if check.status == OK:
        presenter.info(message)
    elif check.status == WARNING:
        presenter.warning(message)
    else:
        presenter.error(message)


class VerificationChecklist:
    """The post-migration checklist

    :param domain: expected domain; taken from the membership list when
        not given
    :param simulated: do not start services or remove accounts
    """
    def __init__(self, presenter, domain=None, simulated=False,
                 backup_account='backup', realm_service=None):
        self.presenter = presenter
        self.domain = domain.lower() if domain else None
        self.simulated = simulated
        self.backup_account = backup_account
        self.realm_service = (realm_service if realm_service is not None
                              else RealmService())
        self.checks = []

    def add(self, name, status, detail=''):
        check = Check(name, status, detail)
        self.checks.append(check)
        report_check(self.presenter, check)
        return check

    def check_system(self):
        if tasks.is_supported_system():
            self.add('Debian system', OK)
        else:
            self.add('Debian system', WARNING, 'not a Debian based system')

    def check_membership(self):
        realms = self.realm_service.list_membership()
        if self.domain is None and realms:
            self.domain = realms[0]
        if self.domain and self.domain in realms:
            self.add('Domain membership', OK, self.domain)
        elif realms:
            self.add('Domain membership', FAIL, 'joined to %s, expected %s' %
                     (', '.join(realms), self.domain))
        else:
            self.add('Domain membership', FAIL, 'not joined to any domain')

    def check_sssd_domains(self):
        result = dmutil.run([paths.SBIN_SSSCTL, 'domain-list'],
                            raiseonerr=False, capture_output=True)
        domains = (result.output or '').split()
        if result.returncode == 0 and domains:
            self.add('SSSD domains', OK, ', '.join(domains))
        else:
            self.add('SSSD domains', WARNING, 'no SSSD domain configured')

    def check_sssd_running(self):
        sssd = knownservices.sssd
        if sssd.is_running():
            self.add('SSSD service', OK, 'running')
            return
        if self.simulated:
            self.presenter.simulate("Would start sssd")
            self.add('SSSD service', WARNING, 'not running')
            return
        try:
            sssd.start()
        except dmutil.CalledProcessError as e:
            self.add('SSSD service', FAIL, 'cannot be started: %s' % e)
            return
        self.add('SSSD service', OK, 'started')

    def _enumerate(self, database):
        result = dmutil.run([paths.BIN_GETENT, database], raiseonerr=False,
                            capture_output=True)
        suffix = '@%s' % self.domain
        return [line.split(':', 1)[0]
                for line in (result.output or '').splitlines()
                if suffix in line.split(':', 1)[0].lower()]

    def check_domain_users(self):
        if not self.domain:
            self.add('Domain users', WARNING, 'no domain detected')
            return
        users = self._enumerate('passwd')
        if users:
            self.add('Domain users', OK, ', '.join(users[:3]))
        else:
            self.add('Domain users', WARNING,
                     'none cached yet, normal before the first login')
        groups = self._enumerate('group')
        if groups:
            self.add('Domain groups', OK, ', '.join(groups[:3]))
        else:
            self.add('Domain groups', WARNING, 'none cached yet')

    def check_kerberos(self):
        if not os.path.exists(paths.BIN_KLIST):
            self.add('Kerberos tickets', WARNING, 'klist is not installed')
            return
        result = dmutil.run([paths.BIN_KLIST], raiseonerr=False,
                            capture_output=True)
        if 'krbtgt' in (result.output or ''):
            self.add('Kerberos tickets', OK, 'ticket granting ticket found')
        else:
            self.add('Kerberos tickets', OK, 'no tickets, nobody has '
                     'authenticated yet')

    def check_connectivity(self):
        host, port = CONNECTIVITY_CHECK
        if dmutil.host_port_open(host, port, socket_timeout=CONNECT_TIMEOUT):
            self.add('Internet connectivity', OK)
        else:
            self.add('Internet connectivity', FAIL,
                     'cannot reach %s:%d' % (host, port))

    def check_dns(self):
        try:
            resolver.resolve(DNS_CHECK_NAME, rdatatype.A)
        except DNSException as e:
            self.add('DNS resolution', FAIL, e.__class__.__name__)
        else:
            self.add('DNS resolution', OK)

    def check_domain_dns(self):
        if not self.domain:
            return
        addresses = resolve_address(self.domain)
        if addresses:
            self.add('Domain DNS', OK, ', '.join(addresses))
        else:
            self.add('Domain DNS', WARNING,
                     '%s does not resolve' % self.domain)

    def check_domain_controller(self):
        if not self.domain:
            return
        candidates = DCDiscovery().sssd_ad_servers(self.domain)
        if not candidates:
            candidates = ['%s.%s' % (prefix, self.domain)
                          for prefix in PROBE_PREFIXES]
        for dc in candidates:
            if dmutil.host_port_open(dc, LDAP_PORT,
                                     socket_timeout=CONNECT_TIMEOUT):
                self.add('Domain controller', OK, dc)
                return
        self.add('Domain controller', WARNING,
                 'none of %s is reachable' % ', '.join(candidates))

    def check_hostname(self):
        hostname = socket.gethostname()
        if '.' in hostname:
            self.add('FQDN hostname', OK, hostname)
        else:
            self.add('FQDN hostname', WARNING,
                     '%s is not fully qualified' % hostname)

    def check_hosts_entry(self):
        hostname = socket.gethostname()
        entries = []
        try:
            with open(paths.HOSTS) as f:
                entries = [line.strip() for line in f
                           if hostname in line.split('#', 1)[0].split()]
        except OSError as e:
            logger.debug("Cannot read %s: %s", paths.HOSTS, e)
        if entries:
            self.add('Hosts entry', OK, entries[0])
        else:
            self.add('Hosts entry', WARNING,
                     '%s has no entry for %s' % (paths.HOSTS, hostname))

    def check_krb5_conf(self):
        try:
            with open(paths.KRB5_CONF) as f:
                content = f.read()
        except FileNotFoundError:
            self.add('Kerberos configuration', WARNING,
                     '%s not found' % paths.KRB5_CONF)
            return
        if 'default_realm' in content:
            self.add('Kerberos configuration', OK, 'default_realm set')
        else:
            self.add('Kerberos configuration', WARNING,
                     'default_realm not set')

    def check_sssd_log(self):
        lines = tail(paths.SSSD_LOG, SSSD_LOG_TAIL)
        if lines is None:
            self.add('SSSD log', OK, '%s not found' % paths.SSSD_LOG)
            return
        for name, patterns in SSSD_LOG_PATTERNS:
            count = sum(1 for line in lines
                        if any(p in line.lower() for p in patterns))
            if count:
                self.add(name, WARNING, '%d in the last %d lines' %
                         (count, SSSD_LOG_TAIL))
            else:
                self.add(name, OK, 'none')

    def check_journal(self):
        if not os.path.exists(paths.JOURNALCTL):
            return
        result = dmutil.run([paths.JOURNALCTL, '-u', 'sssd', '--since',
                             '1 hour ago', '--no-pager'],
                            raiseonerr=False, capture_output=True)
        count = sum(1 for line in (result.output or '').splitlines()
                    if 'error' in line.lower())
        if count:
            self.add('SSSD journal', WARNING,
                     '%d errors in the last hour' % count)
        else:
            self.add('SSSD journal', OK, 'no errors in the last hour')

    def check_sudo(self):
        if os.path.exists(paths.SUDOERS_DOMAIN_USERS):
            self.add('Sudo configuration', OK, paths.SUDOERS_DOMAIN_USERS)
        else:
            self.add('Sudo configuration', WARNING,
                     'domain users have no sudo rule')

    def remove_backup_account(self):
        """Drop the emergency account once the host is known to work"""
        if any(c.status == FAIL for c in self.checks):
            self.presenter.warning("Emergency account '%s' is kept for "
                                   "access while the failures are fixed",
                                   self.backup_account)
            return
        if tasks.lookup_user(self.backup_account) is None and \
                not os.path.exists(paths.SUDOERS_BACKUP_USER):
            return
        if self.simulated:
            self.presenter.simulate("Would remove emergency account '%s'",
                                    self.backup_account)
            return
        if configure.remove_backup_account(self.backup_account):
            self.presenter.info("Emergency account '%s' removed",
                                self.backup_account)
        else:
            self.add('Emergency account removal', WARNING,
                     'userdel failed for %s' % self.backup_account)

    def run(self):
        """Run every check, return the list of Check results"""
        self.checks = []
        for check in (self.check_system, self.check_membership,
                      self.check_sssd_domains, self.check_sssd_running,
                      self.check_domain_users, self.check_kerberos,
                      self.check_connectivity, self.check_dns,
                      self.check_domain_dns, self.check_domain_controller,
                      self.check_hostname, self.check_hosts_entry,
                      self.check_krb5_conf, self.check_sssd_log,
                      self.check_journal, self.check_sudo):
            check()
        self.remove_backup_account()

        counts = collections.Counter(c.status for c in self.checks)
        self.presenter.info("Verification results: %d OK, %d warnings, "
                            "%d failures", counts[OK], counts[WARNING],
                            counts[FAIL])
        return self.checks
