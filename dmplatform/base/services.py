#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

'''
This base module contains default implementations of the interface for
interacting with system services.
'''

import logging
import time
from collections.abc import Mapping

from dmpython import dmutil
from dmplatform.paths import paths

logger = logging.getLogger(__name__)

# Canonical names of services the migration tools manage. Actual
# implementation makes them available through knownservices.<name>.
wellknownservices = ['sssd', 'oddjobd', 'rc-local', 'winbind', 'samba',
                     'nmbd', 'smbd', 'domain-migrate-continue']

# Services that conflict with an sssd based domain membership
conflicting_services = ['winbind', 'samba', 'nmbd', 'smbd']

SERVICE_POLL_INTERVAL = 0.1  # seconds


class KnownServices(Mapping):
    """
    KnownServices is an abstract class factory that should give out instances
    of well-known platform services. Actual implementation must create these
    instances as its own attributes on first access (or instance creation)
    and cache them.
    """
    def __init__(self, d):
        self.__d = d

    def __getitem__(self, key):
        return self.__d[key]

    def __iter__(self):
        return iter(self.__d)

    def __len__(self):
        return len(self.__d)

    def __call__(self):
        return self.__d.values()

    def __getattr__(self, name):
        try:
            return self.__d[name]
        except KeyError:
            raise AttributeError(name)


class PlatformService:
    """
    PlatformService abstracts out external process running on the system
    which is possible to administer (start, stop, check status, etc).
    """

    def __init__(self, service_name):
        self.service_name = service_name

    def start(self, capture_output=True, wait=True):
        pass

    def stop(self, capture_output=True):
        pass

    def restart(self, capture_output=True, wait=True):
        pass

    def is_running(self, wait=True):
        return False

    def is_installed(self):
        return False

    def is_enabled(self):
        return False

    def enable(self):
        pass

    def disable(self):
        pass


class SystemdService(PlatformService):
    def __init__(self, service_name, systemd_name):
        super(SystemdService, self).__init__(service_name)
        self.systemd_name = systemd_name

    def stop(self, capture_output=True):
        dmutil.run([paths.SYSTEMCTL, "stop", self.systemd_name],
                   skip_output=not capture_output)
        logger.debug('Stop of %s complete', self.systemd_name)

    def start(self, capture_output=True, wait=True):
        dmutil.run([paths.SYSTEMCTL, "start", self.systemd_name],
                   skip_output=not capture_output)
        if wait:
            self.is_running()
        logger.debug('Start of %s complete', self.systemd_name)

    def restart(self, capture_output=True, wait=True):
        dmutil.run([paths.SYSTEMCTL, "restart", self.systemd_name],
                   skip_output=not capture_output)
        if wait:
            self.is_running()
        logger.debug('Restart of %s complete', self.systemd_name)

    def is_running(self, wait=True):
        while True:
            result = dmutil.run(
                [paths.SYSTEMCTL, "is-active", self.systemd_name],
                capture_output=True, raiseonerr=False
            )
            output = (result.output or '').strip()
            # activating
            if wait and result.returncode == 3 and output == 'activating':
                time.sleep(SERVICE_POLL_INTERVAL)
                continue
            return result.returncode == 0

    def is_installed(self):
        result = dmutil.run(
            [paths.SYSTEMCTL, "list-unit-files", "--full", "--no-legend",
             self.systemd_name],
            capture_output=True, raiseonerr=False)
        if result.returncode != 0:
            return False
        return self.systemd_name in (result.output or '')

    def is_enabled(self):
        result = dmutil.run(
            [paths.SYSTEMCTL, "is-enabled", self.systemd_name],
            raiseonerr=False)
        return result.returncode == 0

    def enable(self):
        dmutil.run([paths.SYSTEMCTL, "enable", self.systemd_name])

    def disable(self):
        try:
            dmutil.run([paths.SYSTEMCTL, "disable", self.systemd_name])
        except dmutil.CalledProcessError as e:
            logger.debug('Failed to disable %s: %s', self.systemd_name, e)


def daemon_reload():
    dmutil.run([paths.SYSTEMCTL, "--system", "daemon-reload"])
