#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""Continuation of a migration after the reboot

The bridge registers ``dm-automate --auto`` to be run at boot. It tries
/etc/rc.local first, then a oneshot systemd unit, then a SysV init script.
Everything it writes carries HOOK_MARKER so that removal can find (and
verify the removal of) its own entries without touching anything else.

Whether a run is a continuation is decided by the persisted migration
state alone: its phase is POST_REBOOT.
"""

import collections
import logging
import os
import time

from dmplatform.paths import paths
from dmplatform import services
from dmpython import dmutil
from dmpython.errors import PersistenceError

logger = logging.getLogger(__name__)

HOOK_MARKER = '# domain-migrate continuation'
RC_LOCAL_CREATED_TAG = '# rc.local created by domain-migrate'
RC_LOCAL_SKELETON_LINES = 3

METHOD_BOOT_SCRIPT = 'boot-script'
METHOD_SERVICE_UNIT = 'service-unit'
METHOD_INIT_SCRIPT = 'init-script'

CONTINUE_SERVICE = 'domain-migrate-continue'

SERVICE_UNIT_TEMPLATE = """\
{marker}
[Unit]
Description=Continue the domain migration after reboot
After=network-online.target sssd.service
Wants=network-online.target

[Service]
Type=oneshot
ExecStart={command}
RemainAfterExit=no

[Install]
WantedBy=multi-user.target
"""

INIT_SCRIPT_TEMPLATE = """\
#!/bin/sh
{marker}
### BEGIN INIT INFO
# Provides:          {name}
# Required-Start:    $network $remote_fs $syslog
# Required-Stop:
# Default-Start:     2 3 4 5
# Default-Stop:
# Short-Description: Continue the domain migration after reboot
### END INIT INFO

case "$1" in
    start)
        {command} &
        ;;
esac
exit 0
"""


class RebootPersistenceHandle(collections.namedtuple(
        'RebootPersistenceHandle', 'method_used installed_path')):
    """The installed boot-time continuation hook"""


class RebootBridge:
    """Install, detect and remove the boot-time continuation hook

    :param state_store: dmpython.statefile.MigrationStateStore
    :param settle_delay: seconds to wait after boot before continuing
    """
    def __init__(self, state_store, settle_delay=30, sleep=time.sleep):
        self.state_store = state_store
        self.settle_delay = settle_delay
        self.sleep = sleep

    @property
    def hook_command(self):
        return '%s --auto' % paths.DM_AUTOMATE

    def _rc_local_has_hook(self):
        try:
            with open(paths.RC_LOCAL) as f:
                content = f.read()
        except FileNotFoundError:
            return False
        return HOOK_MARKER in content or self.hook_command in content

    def find_installed(self):
        """Every continuation hook currently present"""
        handles = []
        if self._rc_local_has_hook():
            handles.append(RebootPersistenceHandle(METHOD_BOOT_SCRIPT,
                                                   paths.RC_LOCAL))
        if os.path.exists(paths.DM_CONTINUE_UNIT):
            handles.append(RebootPersistenceHandle(METHOD_SERVICE_UNIT,
                                                   paths.DM_CONTINUE_UNIT))
        if os.path.exists(paths.DM_CONTINUE_INITD):
            handles.append(RebootPersistenceHandle(METHOD_INIT_SCRIPT,
                                                   paths.DM_CONTINUE_INITD))
        return handles

    def install(self):
        """Register the hook, at most once

        Returns the RebootPersistenceHandle. Raises PersistenceError when
        no method works.
        """
        installed = self.find_installed()
        if installed:
            logger.info("Continuation hook already installed in %s",
                        installed[0].installed_path)
            return installed[0]

        errors = []
        for method, undo in (
                (self._install_rc_local, self._remove_rc_local),
                (self._install_service_unit, self._remove_service_unit),
                (self._install_init_script, self._remove_init_script)):
            try:
                handle = method()
            except (OSError, dmutil.CalledProcessError) as e:
                logger.debug("%s failed: %s", method.__name__, e)
                errors.append(str(e))
                self._undo_install(undo, e)
                continue
            logger.info("Continuation hook installed in %s (%s)",
                        handle.installed_path, handle.method_used)
            return handle

        raise PersistenceError("Cannot install the continuation hook: %s" %
                               '; '.join(errors))

    def _undo_install(self, undo, error):
        """Drop what a failed install method left behind"""
        try:
            undo()
        except (OSError, dmutil.CalledProcessError) as e:
            raise PersistenceError(
                "Cannot clean up the partly installed continuation hook "
                "(%s): %s" % (error, e))

    def _install_rc_local(self):
        block = [HOOK_MARKER + '\n', '%s &\n' % self.hook_command]
        if os.path.exists(paths.RC_LOCAL):
            with open(paths.RC_LOCAL) as f:
                lines = f.readlines()
            exit_index = None
            for i, line in enumerate(lines):
                if line.strip() == 'exit 0':
                    exit_index = i
            if exit_index is None:
                if lines and not lines[-1].endswith('\n'):
                    lines[-1] += '\n'
                lines.extend(block)
            else:
                lines[exit_index:exit_index] = block
        else:
            lines = ['#!/bin/sh -e\n', RC_LOCAL_CREATED_TAG + '\n'] + \
                block + ['exit 0\n']

        with open(paths.RC_LOCAL, 'w') as f:
            f.writelines(lines)
        os.chmod(paths.RC_LOCAL, 0o755)

        try:
            services.knownservices['rc-local'].enable()
        except dmutil.CalledProcessError as e:
            logger.warning("Cannot enable rc-local.service: %s", e)
        return RebootPersistenceHandle(METHOD_BOOT_SCRIPT, paths.RC_LOCAL)

    def _install_service_unit(self):
        with open(paths.DM_CONTINUE_UNIT, 'w') as f:
            f.write(SERVICE_UNIT_TEMPLATE.format(marker=HOOK_MARKER,
                                                 command=self.hook_command))
        os.chmod(paths.DM_CONTINUE_UNIT, 0o644)
        services.daemon_reload()
        services.knownservices[CONTINUE_SERVICE].enable()
        return RebootPersistenceHandle(METHOD_SERVICE_UNIT,
                                       paths.DM_CONTINUE_UNIT)

    def _install_init_script(self):
        with open(paths.DM_CONTINUE_INITD, 'w') as f:
            f.write(INIT_SCRIPT_TEMPLATE.format(marker=HOOK_MARKER,
                                                name=CONTINUE_SERVICE,
                                                command=self.hook_command))
        os.chmod(paths.DM_CONTINUE_INITD, 0o755)
        dmutil.run([paths.SBIN_UPDATE_RC_D, CONTINUE_SERVICE, 'defaults'])
        return RebootPersistenceHandle(METHOD_INIT_SCRIPT,
                                       paths.DM_CONTINUE_INITD)

    def is_post_reboot(self):
        state = self.state_store.load()
        return state is not None and state.is_post_reboot

    def settle(self):
        logger.info("Waiting %d seconds for the system to settle",
                    self.settle_delay)
        self.sleep(self.settle_delay)

    def remove(self, handle=None):
        """Remove every continuation hook and verify that none is left

        @handle names the hook known to be installed; the other methods are
        cleaned up as well. Raises PersistenceError if a marker remains or
        a removal fails.
        """
        if handle is not None:
            logger.debug("Removing continuation hook %s", handle)
        errors = []
        for method in (self._remove_rc_local, self._remove_service_unit,
                       self._remove_init_script):
            try:
                method()
            except (OSError, dmutil.CalledProcessError) as e:
                logger.debug("%s failed: %s", method.__name__, e)
                errors.append(str(e))

        left = self.find_installed()
        if left:
            raise PersistenceError(
                "Continuation hook still present in %s" %
                ', '.join(h.installed_path for h in left))
        if errors:
            raise PersistenceError(
                "Cannot remove the continuation hook: %s" %
                '; '.join(errors))
        logger.info("Continuation hook removed")

    def _remove_rc_local(self):
        try:
            with open(paths.RC_LOCAL) as f:
                lines = f.readlines()
        except FileNotFoundError:
            return
        kept = [line for line in lines
                if HOOK_MARKER not in line and self.hook_command not in line]
        if len(kept) == len(lines):
            return

        created = any(line.strip() == RC_LOCAL_CREATED_TAG for line in kept)
        non_blank = [line for line in kept if line.strip()]
        if created and len(non_blank) <= RC_LOCAL_SKELETON_LINES and all(
                line.startswith('#') or line.strip() == 'exit 0'
                for line in non_blank):
            os.unlink(paths.RC_LOCAL)
            logger.debug("Removed %s", paths.RC_LOCAL)
            return

        with open(paths.RC_LOCAL, 'w') as f:
            f.writelines(kept)
        logger.debug("Removed continuation lines from %s", paths.RC_LOCAL)

    def _remove_service_unit(self):
        if not os.path.exists(paths.DM_CONTINUE_UNIT):
            return
        services.knownservices[CONTINUE_SERVICE].disable()
        os.unlink(paths.DM_CONTINUE_UNIT)
        try:
            services.daemon_reload()
        except dmutil.CalledProcessError as e:
            logger.warning("systemd daemon-reload failed: %s", e)

    def _remove_init_script(self):
        if not os.path.exists(paths.DM_CONTINUE_INITD):
            return
        os.unlink(paths.DM_CONTINUE_INITD)
        result = dmutil.run([paths.SBIN_UPDATE_RC_D, '-f', CONTINUE_SERVICE,
                             'remove'], raiseonerr=False)
        if result.returncode != 0:
            logger.warning("update-rc.d could not deregister %s",
                           CONTINUE_SERVICE)
