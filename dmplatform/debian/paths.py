#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""
This Debian base platform module exports default filesystem paths as common
in Debian-based systems.
"""

from dmplatform.base.paths import BasePathNamespace


class DebianPathNamespace(BasePathNamespace):
    BIN_HOSTNAMECTL = "/usr/bin/hostnamectl"
    SYSTEMCTL = "/usr/bin/systemctl"
    JOURNALCTL = "/usr/bin/journalctl"
    SS = "/usr/bin/ss"
    CHOWN = "/usr/bin/chown"
    SBIN_REBOOT = "/usr/sbin/reboot"


paths = DebianPathNamespace()
