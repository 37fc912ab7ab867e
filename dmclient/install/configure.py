#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""Writers for the host configuration the new domain needs

Every writer backs the file up (and verifies the backup) before the first
byte is changed, and only simulates the change in dry-run and test modes.
"""

import logging
import os
import socket

from dmplatform.paths import paths
from dmplatform.services import knownservices
from dmplatform.tasks import tasks
from dmpython import dmutil
from dmpython.changeconf import ChangeConf
from dmpython.errors import StepFailed, RecoverableError

logger = logging.getLogger(__name__)

PROG_NAME = "domain-migrate"

PACKAGES = (
    'realmd', 'sssd', 'sssd-tools', 'adcli', 'libnss-sss', 'libpam-sss',
    'samba-common-bin', 'packagekit', 'krb5-user', 'oddjob',
    'oddjob-mkhomedir',
)

NSSWITCH_DATABASES = ('passwd', 'group', 'shadow')
NSSWITCH_SERVICES = 'compat sss'

BACKUP_ACCOUNT_PASSWORD = 'backup'
BACKUP_ACCOUNT_GROUPS = ('sudo',)

ODDJOBD_MKHOMEDIR_CONF = """\
[oddjobd]
threads = 5

[mkhomedir]
programs = /usr/sbin/oddjobd-mkhomedir
accept = nobody
max_connections = 2
lifetime = 300
"""

KRB5_CONF_TEMPLATE = """\
# File generated by {prog}
[libdefaults]
    default_realm = {realm}
    dns_lookup_realm = false
    dns_lookup_kdc = true
    ticket_lifetime = 24h
    renew_lifetime = 7d
    forwardable = true
    rdns = false

[realms]
    {realm} = {{
        kdc = {dc}
        admin_server = {dc}
    }}

[domain_realm]
    .{domain} = {realm}
    {domain} = {realm}
"""


def write_config(context, filename, content, file_perms=0o644):
    """Back up @filename, then replace its content"""
    if context.simulated:
        context.presenter.simulate("Would write %s", filename)
        logger.debug("%s", content)
        return False
    if os.path.exists(filename):
        context.backup_file(filename)
    else:
        os.makedirs(os.path.dirname(filename), exist_ok=True)
    ChangeConf(PROG_NAME).new_conf(filename, content, file_perms)
    context.file_modified(filename)
    return True


def primary_ip_address():
    """Source address the host uses to reach the outside, or None"""
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        # connecting a UDP socket sends nothing
        s.connect(('8.8.8.8', 80))
        return s.getsockname()[0]
    except OSError as e:
        logger.debug("Cannot determine primary IP address: %s", e)
        return None
    finally:
        s.close()


def generate_hosts(content, fqdn, hostname, ip_address=None):
    """Return /etc/hosts @content with the host's entries replaced"""
    lines = []
    have_localhost = False
    for line in content.splitlines():
        tokens = line.split('#', 1)[0].split()
        if tokens and ('127.0.1.1' in tokens or fqdn in tokens or
                       hostname in tokens):
            continue
        if tokens and tokens[0] == '127.0.0.1' and 'localhost' in tokens:
            have_localhost = True
        lines.append(line)

    if not have_localhost:
        lines.insert(0, '127.0.0.1\tlocalhost')
    lines.append('127.0.1.1\t%s %s' % (fqdn, hostname))

    if ip_address:
        try:
            ip = dmutil.CheckedIPAddress(ip_address)
        except ValueError as e:
            logger.debug("Not adding %s to hosts: %s", ip_address, e)
        else:
            lines.append('%s\t%s %s' % (ip, fqdn, hostname))

    return '\n'.join(lines) + '\n'


def configure_hosts(context):
    try:
        with open(paths.HOSTS) as f:
            content = f.read()
    except FileNotFoundError:
        content = ''

    if context.primary_ip is None:
        context.primary_ip = primary_ip_address()
    new_content = generate_hosts(content, context.fqdn, context.hostname,
                                 context.primary_ip)
    if 'localhost' not in new_content or context.fqdn not in new_content:
        raise StepFailed("Generated %s is missing localhost or %s" %
                         (paths.HOSTS, context.fqdn))
    write_config(context, paths.HOSTS, new_content)
    logger.info("Configured %s for %s", paths.HOSTS, context.fqdn)


def generate_krb5_conf(domain, dc):
    return KRB5_CONF_TEMPLATE.format(prog=PROG_NAME, realm=domain.upper(),
                                     domain=domain.lower(), dc=dc)


def configure_krb5_conf(context):
    dc = context.domain_controller or 'dc1.%s' % context.domain
    write_config(context, paths.KRB5_CONF,
                 generate_krb5_conf(context.domain, dc))
    logger.info("Configured %s for realm %s", paths.KRB5_CONF, context.realm)


def clear_sssd_cache(context):
    if context.simulated:
        context.presenter.simulate("Would clear the SSSD cache")
        return
    try:
        dmutil.run([paths.SBIN_SSSCTL, 'cache-remove', '-o', '--stop',
                    '--start'], stdin='y\n')
    except dmutil.CalledProcessError as e:
        context.presenter.warning("Could not clear SSSD cache: %s", e)


def configure_nsswitch(context):
    """Resolve users, groups and shadow entries through SSSD"""
    if context.simulated:
        context.presenter.simulate("Would set %s to '%s' in %s",
                                   ', '.join(NSSWITCH_DATABASES),
                                   NSSWITCH_SERVICES, paths.NSSWITCH_CONF)
        return
    context.backup_file(paths.NSSWITCH_CONF)
    conf = ChangeConf(PROG_NAME, assignment=":         ",
                      section_delimiters=(None, None))
    conf.change_conf(paths.NSSWITCH_CONF,
                     [(None, db, NSSWITCH_SERVICES)
                      for db in NSSWITCH_DATABASES])
    context.file_modified(paths.NSSWITCH_CONF)
    logger.info("Configured %s", paths.NSSWITCH_CONF)


def configure_mkhomedir(context):
    if context.simulated:
        context.presenter.simulate("Would enable pam_mkhomedir")
        return
    if not tasks.enable_mkhomedir():
        raise StepFailed("Failed to enable home directory creation in PAM")


def configure_oddjobd(context):
    oddjobd = knownservices.oddjobd
    if context.simulated:
        context.presenter.simulate("Would enable and start oddjobd")
        return
    if oddjobd.is_installed():
        try:
            oddjobd.enable()
            oddjobd.start()
        except dmutil.CalledProcessError as e:
            raise RecoverableError("Could not start oddjobd: %s" % e)
        return
    context.presenter.warning("oddjobd is not installed, writing a basic "
                              "mkhomedir configuration")
    write_config(context, paths.ODDJOBD_MKHOMEDIR_CONF,
                 ODDJOBD_MKHOMEDIR_CONF)


def generate_domain_sudoers(domain):
    realm = domain.upper()
    return ''.join([
        "# Allow domain users to use sudo\n",
        "%%%s\\domain^users ALL=(ALL) ALL\n" % realm,
        "%%%s\\sudoers ALL=(ALL) ALL\n" % realm,
        "%%%s\\administrators ALL=(ALL) ALL\n" % realm,
    ])


def install_sudoers(context, filename, content):
    """Write a sudoers fragment, removing it again if visudo rejects it"""
    write_config(context, filename, content, file_perms=0o440)
    if context.simulated:
        return
    if not tasks.check_sudoers(filename):
        dmutil.remove_file(filename)
        raise StepFailed("visudo rejected %s, the file was removed" %
                         filename)


def configure_sssd_sudo(context):
    """Add sudo_provider = ad to every domain section of sssd.conf"""
    if not os.path.exists(paths.SSSD_CONF):
        raise RecoverableError("%s does not exist, sudo rules from the "
                               "domain are not enabled" % paths.SSSD_CONF)
    conf = ChangeConf(PROG_NAME)
    with open(paths.SSSD_CONF) as f:
        opts = conf.parse(f)
    changes = [
        (section, 'sudo_provider', 'ad')
        for section in conf.sections(opts)
        if section.startswith('domain/') and
        conf.find_option(opts, 'sudo_provider', section) is None
    ]
    if not changes:
        return
    if context.simulated:
        context.presenter.simulate("Would add sudo_provider = ad to %s",
                                   paths.SSSD_CONF)
        return
    context.backup_file(paths.SSSD_CONF)
    conf.change_conf(paths.SSSD_CONF, changes, file_perms=0o600)
    context.file_modified(paths.SSSD_CONF)


def configure_sudo(context):
    configure_sssd_sudo(context)
    install_sudoers(context, paths.SUDOERS_DOMAIN_USERS,
                    generate_domain_sudoers(context.domain))
    logger.info("Domain groups of %s may use sudo", context.realm)


def create_backup_account(context):
    """Local emergency account usable when domain logins fail"""
    name = context.config.backup_account
    if tasks.lookup_user(name) is not None:
        context.presenter.info("Emergency account '%s' already exists, "
                               "reusing it", name)
    elif context.simulated:
        context.presenter.simulate("Would create emergency account '%s'",
                                   name)
    else:
        tasks.create_local_user(name, BACKUP_ACCOUNT_PASSWORD,
                                groups=BACKUP_ACCOUNT_GROUPS)
        context.presenter.info("Created emergency account '%s'", name)
    install_sudoers(context, paths.SUDOERS_BACKUP_USER,
                    "%s ALL=(ALL) NOPASSWD:ALL\n" % name)


def remove_backup_account(name):
    """Remove the emergency account and its sudo rule

    Returns True if the account is gone.
    """
    removed = True
    if tasks.lookup_user(name) is not None:
        removed = tasks.remove_local_user(name)
    dmutil.remove_file(paths.SUDOERS_BACKUP_USER)
    return removed
