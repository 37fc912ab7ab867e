#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

'''
This base platform module exports default filesystem paths.
'''

import os


class BasePathNamespace:
    BIN_HOSTNAMECTL = "/bin/hostnamectl"
    SYSTEMCTL = "/bin/systemctl"
    SYSTEMD_DETECT_VIRT = "/usr/bin/systemd-detect-virt"
    JOURNALCTL = "/bin/journalctl"
    TIMEDATECTL = "/usr/bin/timedatectl"
    CHOWN = "/bin/chown"
    SS = "/bin/ss"
    BIN_WHO = "/usr/bin/who"
    BIN_WALL = "/usr/bin/wall"
    BIN_GETENT = "/usr/bin/getent"
    BIN_KLIST = "/usr/bin/klist"
    BIN_LESS = "/usr/bin/less"
    BIN_APT_GET = "/usr/bin/apt-get"
    SBIN_REBOOT = "/sbin/reboot"
    SBIN_REALM = "/usr/sbin/realm"
    SBIN_SSSCTL = "/usr/sbin/sssctl"
    SBIN_USERADD = "/usr/sbin/useradd"
    SBIN_USERDEL = "/usr/sbin/userdel"
    SBIN_CHPASSWD = "/usr/sbin/chpasswd"
    SBIN_VISUDO = "/usr/sbin/visudo"
    SBIN_UPDATE_RC_D = "/usr/sbin/update-rc.d"
    PAM_AUTH_UPDATE = "/usr/sbin/pam-auth-update"
    DM_AUTOMATE = "/usr/local/bin/dm-automate"

    ETC_DEBIAN_VERSION = "/etc/debian_version"
    OS_RELEASE = "/etc/os-release"
    HOSTS = "/etc/hosts"
    ETC_HOSTNAME = "/etc/hostname"
    ETC_MACHINE_ID = "/etc/machine-id"
    KRB5_CONF = "/etc/krb5.conf"
    SSSD_CONF = "/etc/sssd/sssd.conf"
    NSSWITCH_CONF = "/etc/nsswitch.conf"
    RESOLV_CONF = "/etc/resolv.conf"
    NETWORK_INTERFACES = "/etc/network/interfaces"
    NETPLAN_DIR = "/etc/netplan"
    PASSWD = "/etc/passwd"
    GROUP = "/etc/group"
    SHADOW = "/etc/shadow"
    GSHADOW = "/etc/gshadow"
    FSTAB = "/etc/fstab"
    CUPS_DIR = "/etc/cups"
    NM_SYSTEM_CONNECTIONS_DIR = "/etc/NetworkManager/system-connections"
    SUDOERS_DIR = "/etc/sudoers.d"
    SUDOERS_DOMAIN_USERS = "/etc/sudoers.d/domain-users"
    SUDOERS_BACKUP_USER = "/etc/sudoers.d/backup-user"
    ODDJOBD_CONF_DIR = "/etc/oddjobd.conf.d"
    ODDJOBD_MKHOMEDIR_CONF = "/etc/oddjobd.conf.d/oddjobd-mkhomedir.conf"
    RC_LOCAL = "/etc/rc.local"
    ETC_SYSTEMD_SYSTEM_DIR = "/etc/systemd/system"
    DM_CONTINUE_UNIT = "/etc/systemd/system/domain-migrate-continue.service"
    ETC_INITD_DIR = "/etc/init.d"
    DM_CONTINUE_INITD = "/etc/init.d/domain-migrate-continue"
    DM_CONFIG_DIR = "/etc/domain-migrate"
    DM_DEFAULT_CONF = "/etc/domain-migrate/default.conf"
    USER_MAPPING = "/etc/domain-user-mapping.conf"

    HOME_DIR = "/home"
    ROOT_DIR = "/"
    ROLLBACK_DIR = "/root/migration-rollbacks"
    SSSD_DB_DIR = "/var/lib/sss"
    TMP = "/tmp"
    VAR_TMP = "/var/tmp"
    MIGRATION_STATE = "/tmp/migration-state"
    AUTOMATOR_STATE = "/tmp/oz-automator-state"
    REPORT_DIR = "/tmp"

    VAR_LOG_SSSD_DIR = "/var/log/sssd"
    SSSD_LOG = "/var/log/sssd/sssd.log"
    DM_MIGRATE_LOG = "/var/log/domain-migration.log"
    DM_AUTOMATE_LOG = "/var/log/oz-migration-automator.log"
    DM_VERIFY_LOG = "/var/log/domain-migration-verify.log"
    USER_MIGRATION_LOG_TEMPLATE = "/var/log/user-migration-%s.log"
    USER_MIGRATION_LOG_GLOB = "/var/log/user-migration-*.log"

    def check_paths(self):
        """Check paths for missing executables

        python3 -c 'from dmplatform.paths import paths; paths.check_paths()'
        """
        executables = ("/bin", "/sbin", "/usr/bin", "/usr/sbin")
        missing = []
        for name in sorted(dir(self)):
            if not name[0].isupper():
                continue

            value = getattr(self, name)
            if not value or not isinstance(value, str):
                continue
            if "%" in value or "*" in value:
                # skip templates
                continue

            if value.startswith(executables) and value not in executables:
                if not os.path.isfile(value):
                    print("Missing executable {}={}".format(name, value))
                    missing.append(name)
        return missing


paths = BasePathNamespace()
