#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

'''
This module contains default platform-specific implementations of system tasks.
'''

import logging
import pwd

from dmplatform.paths import paths
from dmpython import dmutil

logger = logging.getLogger(__name__)


class BaseTaskNamespace:

    def is_supported_system(self):
        """
        Returns True if the running system is one the migration supports.
        """
        raise NotImplementedError()

    def set_hostname(self, hostname):
        """
        Set hostname for the system

        No return value expected, raise CalledProcessError when error occurred
        """
        raise NotImplementedError()

    def install_packages(self, packages):
        """
        Installs the given packages with the platform package manager.

        Returns True if the operation succeeded, False otherwise.
        """
        raise NotImplementedError()

    def enable_mkhomedir(self):
        """
        Makes PAM create home directories on first login.

        Returns True if the operation succeeded, False otherwise.
        """
        raise NotImplementedError()

    def lookup_user(self, name):
        """Return the passwd entry of @name through NSS or None"""
        try:
            return pwd.getpwnam(name)
        except KeyError:
            return None

    def getent(self, database, key):
        """True when ``getent database key`` finds an entry"""
        result = dmutil.run([paths.BIN_GETENT, database, key],
                            raiseonerr=False, capture_output=True)
        return result.returncode == 0 and bool((result.output or '').strip())

    def create_local_user(self, name, password, groups=()):
        """Create a local account with a home directory and set its password

        The password is passed on stdin and never logged.
        """
        args = [paths.SBIN_USERADD, '-m', '-s', '/bin/bash']
        if groups:
            args.extend(['-G', ','.join(groups)])
        args.append(name)
        dmutil.run(args)
        dmutil.run([paths.SBIN_CHPASSWD],
                   stdin='%s:%s\n' % (name, password), nolog=(password,))

    def remove_local_user(self, name):
        """Remove a local account together with its home directory

        Returns True if the operation succeeded, False otherwise.
        """
        try:
            dmutil.run([paths.SBIN_USERDEL, '-r', name])
        except dmutil.CalledProcessError as e:
            logger.warning('Failed to remove user %s: %s', name, e)
            return False
        return True

    def chown_recursive(self, path, owner):
        dmutil.run([paths.CHOWN, '-R', owner, path])

    def check_sudoers(self, path):
        """True when visudo accepts the sudoers fragment at @path"""
        result = dmutil.run([paths.SBIN_VISUDO, '-c', '-f', path],
                            raiseonerr=False)
        return result.returncode == 0

    def detect_virtualization(self):
        """Return the hypervisor name, or None on bare metal"""
        result = dmutil.run([paths.SYSTEMD_DETECT_VIRT], raiseonerr=False,
                            capture_output=True)
        name = (result.output or '').strip()
        if result.returncode != 0 or not name or name == 'none':
            return None
        return name

    def enable_time_sync(self):
        try:
            dmutil.run([paths.TIMEDATECTL, 'set-ntp', 'true'])
        except dmutil.CalledProcessError as e:
            logger.warning('Failed to enable time synchronization: %s', e)
            return False
        return True

    def active_sessions(self):
        """Lines of ``who`` output, one per logged in session"""
        result = dmutil.run([paths.BIN_WHO], raiseonerr=False,
                            capture_output=True)
        return [l for l in (result.output or '').splitlines() if l.strip()]

    def broadcast(self, message):
        dmutil.run([paths.BIN_WALL], stdin=message, raiseonerr=False)

    def listening_ports(self):
        """Set of local TCP and UDP ports in listening state"""
        result = dmutil.run([paths.SS, '-tuln'], raiseonerr=False,
                            capture_output=True)
        ports = set()
        for line in (result.output or '').splitlines()[1:]:
            fields = line.split()
            if len(fields) < 5:
                continue
            _host, _sep, port = fields[4].rpartition(':')
            if port.isdigit():
                ports.add(int(port))
        return ports

    def reboot(self):
        dmutil.run([paths.SBIN_REBOOT])


tasks = BaseTaskNamespace()
