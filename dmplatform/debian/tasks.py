#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""
This module contains default Debian-specific implementations of system tasks.
"""

import logging
import os

from dmplatform.base.tasks import BaseTaskNamespace
from dmplatform.paths import paths

from dmpython import dmutil

logger = logging.getLogger(__name__)


class DebianTaskNamespace(BaseTaskNamespace):

    @staticmethod
    def is_supported_system():
        if os.path.exists(paths.ETC_DEBIAN_VERSION):
            return True
        try:
            with open(paths.OS_RELEASE) as f:
                release = f.read().lower()
        except OSError:
            return False
        for line in release.splitlines():
            key, _sep, value = line.partition('=')
            if key in ('id', 'id_like') and 'debian' in value:
                return True
        return False

    @staticmethod
    def set_hostname(hostname):
        dmutil.run([paths.BIN_HOSTNAMECTL, 'set-hostname', hostname])

    @staticmethod
    def install_packages(packages):
        env = dict(os.environ, DEBIAN_FRONTEND='noninteractive')
        try:
            dmutil.run([paths.BIN_APT_GET, 'update'], env=env)
        except dmutil.CalledProcessError as e:
            logger.warning('Package index update failed: %s', e)
        try:
            dmutil.run([paths.BIN_APT_GET, 'install', '-y'] + list(packages),
                       env=env)
        except dmutil.CalledProcessError:
            return False
        return True

    @staticmethod
    def enable_mkhomedir():
        try:
            dmutil.run([paths.PAM_AUTH_UPDATE, '--enable', 'mkhomedir',
                        '--force'])
        except dmutil.CalledProcessError:
            return False
        return True


tasks = DebianTaskNamespace()
