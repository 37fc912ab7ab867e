#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""The ordered catalogue of migration steps

Each step is a plain function taking the MigrationContext. A step signals
trouble by raising one of the dmpython.errors exceptions (or letting
dmutil.CalledProcessError through); the engine decides what happens next.
"""

import collections
import logging
import shutil

from dmclient.discovery import DCDiscovery, source_names, resolve_address
from dmclient.install import configure, relocate, report, resources, verify
from dmplatform.paths import paths
from dmplatform.services import conflicting_services, knownservices
from dmplatform.tasks import tasks
from dmpython import dmutil, statefile
from dmpython.dmutil import SecretHolder
from dmpython.errors import (PreconditionError, RecoverableError, StepFailed,
                             VerificationError)
from dmpython.sysrestore import RollbackSnapshot, tracked_files

logger = logging.getLogger(__name__)

REQUIRED_TOOLS = ('realm', 'sssctl', 'hostnamectl', 'apt-get')
# provided by the packages of InstallPackages
INSTALLED_TOOLS = ('realm', 'sssctl')

AD_PORTS = (53, 88, 389, 445, 464, 636, 3268)
MIN_FREE_SPACE = 1024 ** 3
CONNECTIVITY_CHECK = ('8.8.8.8', 53)


class Step(collections.namedtuple(
        'Step', 'ordinal name description method mutating')):
    """One entry of the step catalogue"""


def missing_tools(tools=REQUIRED_TOOLS):
    return [tool for tool in tools if dmutil.which(tool) is None]


def check_system(context):
    if tasks.is_supported_system():
        context.presenter.info("Detected a Debian based system")
    else:
        context.presenter.warning("This tool is designed for Debian and "
                                  "Ubuntu, some steps may not work")

    missing = missing_tools()
    if not missing:
        return
    if context.simulated:
        context.presenter.warning("Required tools not found: %s",
                                  ', '.join(missing))
        return
    fatal = [tool for tool in missing if tool not in INSTALLED_TOOLS]
    if fatal:
        raise PreconditionError("Required tools not found: %s" %
                                ', '.join(fatal))
    context.presenter.info("%s will be installed in the next step",
                           ', '.join(missing))


def install_packages(context):
    if context.simulated:
        context.presenter.simulate("Would install %s",
                                   ' '.join(configure.PACKAGES))
        return
    if not tasks.install_packages(configure.PACKAGES):
        context.presenter.warning("Some packages could not be installed")
    missing = missing_tools(INSTALLED_TOOLS)
    if missing:
        raise PreconditionError("Required tools not found after package "
                                "installation: %s" % ', '.join(missing))


def create_backup_account(context):
    configure.create_backup_account(context)


def preflight_checks(context):
    presenter = context.presenter

    host, port = CONNECTIVITY_CHECK
    if not dmutil.host_port_open(host, port, socket_timeout=5):
        presenter.warning("No network connectivity to %s", host)
    if not resolve_address(context.domain):
        presenter.warning("%s does not resolve, the join may fail",
                          context.domain)

    in_use = sorted(set(AD_PORTS) & tasks.listening_ports())
    if in_use:
        presenter.warning("Local services listen on directory ports %s",
                          ', '.join(str(p) for p in in_use))

    free = shutil.disk_usage(paths.ROOT_DIR).free
    if free < MIN_FREE_SPACE:
        raise StepFailed("Only %d MiB free on %s, at least 1024 MiB are "
                         "needed" % (free // 1024 ** 2, paths.ROOT_DIR))

    sessions = tasks.active_sessions()
    if len(sessions) > 1:
        presenter.warning("%d sessions are active", len(sessions))
        if context.simulated:
            presenter.simulate("Would notify logged in users")
        elif context.ask("Notify logged in users about the migration?",
                         True):
            tasks.broadcast("Domain migration in progress. Please save your "
                            "work and log out.")

    for name in conflicting_services:
        service = knownservices[name]
        if not service.is_running():
            continue
        if not context.ask("%s conflicts with SSSD. Stop and disable it?" %
                           name, True):
            presenter.warning("%s stays running", name)
            continue
        if context.simulated:
            presenter.simulate("Would stop and disable %s", name)
            continue
        service.stop()
        service.disable()
        presenter.info("Stopped %s", name)

    virt = tasks.detect_virtualization()
    if virt:
        presenter.info("Running in a %s virtual machine", virt)

    if context.simulated:
        presenter.simulate("Would enable time synchronization")
    elif not tasks.enable_time_sync():
        presenter.warning("Could not enable time synchronization, Kerberos "
                          "needs clocks in sync")


def backup_configs(context):
    if context.mode == statefile.MODE_TECHNICIAN:
        snapshot = RollbackSnapshot(context.config.rollback_dir)
        if context.simulated:
            context.presenter.simulate("Would create a rollback snapshot")
        else:
            context.backups.append(snapshot.create(
                context.mode, context.domain, context.hostname))
    for path in tracked_files():
        context.backup_file(path)


def discover_dcs(context):
    result = DCDiscovery().search(context.domain)
    context.domain_controller = result.primary
    context.dc_source = result.source
    context.presenter.info("Domain controller: %s (%s)", result.primary,
                           source_names[result.source])


def current_domain(context):
    for realm in context.driver.service.list_membership():
        if realm != context.domain.lower():
            return realm
    return None


def leave_old_domain(context):
    if not context.old_domain:
        context.old_domain = current_domain(context)
    if not context.old_domain:
        context.presenter.info("The host is not joined to another domain")
        return
    if context.simulated:
        context.presenter.simulate("Would leave %s", context.old_domain)
        return
    result = context.driver.leave(context.old_domain, context.old_principal,
                                  context.old_secret)
    context.old_secret.clear()
    if not result.success:
        context.presenter.warning("Could not leave %s, continuing",
                                  context.old_domain)


def discover_new_domain(context):
    if context.simulated:
        context.presenter.simulate("Would discover %s", context.domain)
        return
    context.driver.discover(context.domain)


def join_new_domain(context):
    if context.simulated:
        context.presenter.simulate("Would join %s as %s", context.domain,
                                   context.principal or 'administrator')
        return
    if not context.principal:
        context.principal = context.ask("Administrator of %s" %
                                        context.domain,
                                        'administrator@%s' % context.realm)
    if not context.secret:
        secret = context.presenter.ask_password(
            "Password for %s" % context.principal)
        if secret is None:
            raise StepFailed("No password for %s" % context.principal)
        context.secret = secret
    try:
        context.driver.join(context.domain, context.principal,
                            context.secret)
    finally:
        context.secret = SecretHolder()


def configure_hostname(context):
    if context.simulated:
        context.presenter.simulate("Would set the hostname to %s",
                                   context.fqdn)
        return
    tasks.set_hostname(context.fqdn)


def configure_network_files(context):
    configure.configure_hosts(context)


def configure_auth(context):
    configure.clear_sssd_cache(context)
    configure.configure_krb5_conf(context)


def restart_services(context):
    sssd = knownservices.sssd
    if context.simulated:
        context.presenter.simulate("Would restart sssd")
        return
    if sssd.is_running():
        sssd.restart(wait=False)
    else:
        sssd.start(wait=False)
    context.sleep(context.config.service_settle_delay)
    if not sssd.is_running():
        raise VerificationError("sssd is not active after the restart")


def configure_pam_nss(context):
    configure.configure_mkhomedir(context)
    configure.configure_nsswitch(context)


def configure_home_dir_creation(context):
    configure.configure_oddjobd(context)


def verify_configuration(context):
    verify.verify_join(context)


def migrate_user_profiles(context):
    relocator = relocate.ProfileRelocator(
        context.config.home_dir, context.old_domain, context.domain,
        context.presenter, simulated=context.simulated,
        validate_accounts=context.validate_accounts)
    mappings = relocator.run()
    context.user_mappings = mappings
    failed = [m for m in mappings
              if m.migration_status == relocate.STATUS_FAILED]
    if failed:
        raise RecoverableError("%d accounts were not migrated, see %s" %
                               (len(failed), relocator.log_file))


def migrate_network_resources(context):
    resources.migrate_network_resources(context)


def migrate_app_configs(context):
    resources.migrate_app_configs(context)


def configure_sudo(context):
    if not context.ask("Allow the administrator groups of %s to use sudo?" %
                       context.realm, True):
        context.presenter.info("Sudo rules for domain groups not configured")
        return
    configure.configure_sudo(context)


def generate_report(context):
    filename = report.write_report(context)
    context.presenter.info("Report: %s", filename)


def reboot(context):
    """Install the continuation hook and restart the host"""
    if context.simulated:
        context.presenter.simulate("Would install the continuation hook "
                                   "and reboot")
        return
    handle = context.bridge.install()
    context.save_state(step=REBOOT_ORDINAL,
                       phase=statefile.PHASE_POST_REBOOT)

    if not context.ask("Reboot now to complete the migration?", True):
        context.presenter.warning("Reboot manually, the migration continues "
                                  "from %s", handle.installed_path)
        return
    context.record('REBOOT_SCHEDULED',
                   'Reboot in %d seconds' % context.reboot_delay)
    try:
        context.presenter.countdown(context.reboot_delay, "Rebooting")
    except KeyboardInterrupt:
        context.presenter.warning("Reboot cancelled, reboot manually to "
                                  "complete the migration")
        return
    tasks.reboot()


STEPS = (
    Step(1, 'CheckSystem', 'Checking system compatibility',
         check_system, False),
    Step(2, 'InstallPackages', 'Installing required packages',
         install_packages, True),
    Step(3, 'CreateBackupAccount', 'Creating the emergency account',
         create_backup_account, True),
    Step(4, 'PreflightChecks', 'Running pre-flight checks',
         preflight_checks, True),
    Step(5, 'BackupConfigs', 'Backing up configuration files',
         backup_configs, True),
    Step(6, 'DiscoverDCs', 'Discovering domain controllers',
         discover_dcs, False),
    Step(7, 'LeaveOldDomain', 'Leaving the current domain',
         leave_old_domain, True),
    Step(8, 'DiscoverNewDomain', 'Discovering the new domain',
         discover_new_domain, False),
    Step(9, 'JoinNewDomain', 'Joining the new domain',
         join_new_domain, True),
    Step(10, 'ConfigureHostname', 'Configuring the hostname',
         configure_hostname, True),
    Step(11, 'ConfigureNetworkFiles', 'Configuring /etc/hosts',
         configure_network_files, True),
    Step(12, 'ConfigureAuth', 'Configuring Kerberos and SSSD',
         configure_auth, True),
    Step(13, 'RestartServices', 'Restarting SSSD',
         restart_services, True),
    Step(14, 'ConfigurePAMNSS', 'Configuring PAM and NSS',
         configure_pam_nss, True),
    Step(15, 'ConfigureHomeDirCreation', 'Configuring home directory '
         'creation', configure_home_dir_creation, True),
    Step(16, 'Verify', 'Verifying the domain configuration',
         verify_configuration, False),
    Step(17, 'MigrateUserProfiles', 'Migrating user profiles',
         migrate_user_profiles, True),
    Step(18, 'MigrateNetworkResources', 'Migrating network resources',
         migrate_network_resources, True),
    Step(19, 'MigrateAppConfigs', 'Migrating application settings',
         migrate_app_configs, True),
    Step(20, 'ConfigureSudo', 'Configuring sudo for domain groups',
         configure_sudo, True),
    Step(21, 'GenerateReport', 'Generating the migration report',
         generate_report, False),
    Step(22, 'Reboot', 'Rebooting', reboot, True),
)

REBOOT_ORDINAL = STEPS[-1].ordinal


def check_catalogue(steps):
    """Raise ValueError unless the ordinals strictly increase from 1"""
    previous = 0
    for step in steps:
        if step.ordinal <= previous:
            raise ValueError("Step %s has ordinal %d after %d" %
                             (step.name, step.ordinal, previous))
        previous = step.ordinal


check_catalogue(STEPS)
