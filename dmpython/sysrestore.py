#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

#
# This module provides a very simple API which allows the migration tools
# to take a copy of a configuration file before it is rewritten, and
# dm-migrate --revert to put the system back the way it was.
#

import collections
import glob
import logging
import os
import shutil
import tarfile
import time

from dmplatform.paths import paths
from dmpython import dmutil
from dmpython.errors import BackupError

logger = logging.getLogger(__name__)

BACKUP_INFIX = ".backup."
SNAPSHOT_PREFIX = "rollback-"
SNAPSHOT_SUFFIX = ".tar.gz"
SNAPSHOT_INFO_SUFFIX = ".info"


class BackupRecord(collections.namedtuple(
        'BackupRecord', 'original_path backup_path size_bytes created_at')):
    """One protected file or full-system snapshot"""

    def is_valid(self):
        return self.size_bytes > 0 and os.path.isfile(self.backup_path)


def tracked_files():
    """Files restored one by one by the file-based revert"""
    return (paths.HOSTS, paths.KRB5_CONF, paths.SSSD_CONF,
            paths.NSSWITCH_CONF)


class FileStore:
    """Timestamped copies beside the original file

    A copy of ``/etc/krb5.conf`` taken at 14:03:07 on 2026-10-18 is stored
    as ``/etc/krb5.conf.backup.20261018_140307``. Backups are never removed
    by the tools.
    """

    def backup_file(self, path):
        """Copy @path beside itself and verify the copy.

        Returns the BackupRecord, or None when @path does not exist.
        Raises BackupError when the copy cannot be verified.
        """
        logger.debug("Backing up system configuration file '%s'", path)

        if not os.path.isabs(path):
            raise ValueError("Absolute path required")

        if not os.path.isfile(path):
            logger.warning("Not backing up '%s', file does not exist", path)
            return None

        backup_path = path + BACKUP_INFIX + dmutil.timestamp()
        try:
            shutil.copy2(path, backup_path)
        except OSError as e:
            raise BackupError(
                "Cannot back up %s to %s: %s" % (path, backup_path, e))

        record = self._record(path, backup_path)
        if not self.verify(record):
            raise BackupError(
                "Backup %s of %s is missing or empty" % (backup_path, path))
        logger.debug("  -> %s (%d bytes)", backup_path, record.size_bytes)
        return record

    @staticmethod
    def _record(path, backup_path):
        try:
            stat = os.stat(backup_path)
        except OSError:
            return BackupRecord(path, backup_path, 0, time.time())
        return BackupRecord(path, backup_path, stat.st_size, stat.st_mtime)

    def verify(self, record):
        """True iff the backup exists and is not empty"""
        if record is None:
            return False
        valid = self._record(record.original_path,
                             record.backup_path).is_valid()
        if not valid:
            logger.error("Backup %s failed verification", record.backup_path)
        return valid

    def restore_file(self, record):
        """Copy a backup over its original location"""
        logger.debug("Restoring '%s' from '%s'",
                     record.original_path, record.backup_path)
        if not self.verify(record):
            raise BackupError(
                "Refusing to restore %s from invalid backup %s" %
                (record.original_path, record.backup_path))
        shutil.copy2(record.backup_path, record.original_path)

    def latest_backup(self, path):
        """Return the most recent BackupRecord of @path or None"""
        candidates = sorted(glob.glob(glob.escape(path) + BACKUP_INFIX + "*"))
        if not candidates:
            return None
        return self._record(path, candidates[-1])

    def latest_backups(self, files=None):
        """Most recent backup of each tracked file that has one"""
        if files is None:
            files = tracked_files()
        records = []
        for path in files:
            record = self.latest_backup(path)
            if record is not None:
                records.append(record)
        return records

    def has_files(self, files=None):
        return bool(self.latest_backups(files))


def snapshot_sources():
    """Files and directories archived by a rollback snapshot"""
    sources = [
        paths.HOSTS, paths.KRB5_CONF, paths.SSSD_CONF, paths.RESOLV_CONF,
        paths.NETWORK_INTERFACES,
    ]
    sources.extend(sorted(glob.glob(os.path.join(paths.NETPLAN_DIR,
                                                 "*.yaml"))))
    sources.extend([
        paths.ETC_HOSTNAME, paths.ETC_MACHINE_ID, paths.SSSD_DB_DIR,
        paths.PASSWD, paths.GROUP, paths.SHADOW, paths.GSHADOW,
    ])
    return [s for s in sources if os.path.exists(s)]


def _arcname(path):
    rel = os.path.relpath(path, paths.ROOT_DIR)
    if rel.startswith(os.pardir):
        rel = path.lstrip(os.sep)
    return rel


class RollbackSnapshot:
    """Full-system rollback archive kept under the rollback directory"""

    def __init__(self, rollback_dir):
        self.rollback_dir = rollback_dir

    def create(self, mode, domain, hostname):
        """Archive the snapshot sources and write the sibling info file.

        Returns the BackupRecord of the archive.
        """
        name = SNAPSHOT_PREFIX + dmutil.timestamp()
        archive = os.path.join(self.rollback_dir, name + SNAPSHOT_SUFFIX)
        info = os.path.join(self.rollback_dir, name + SNAPSHOT_INFO_SUFFIX)

        os.makedirs(self.rollback_dir, mode=0o700, exist_ok=True)
        sources = snapshot_sources()
        logger.debug("Creating rollback snapshot %s of %s", archive, sources)
        try:
            with tarfile.open(archive, "w:gz") as tar:
                for source in sources:
                    tar.add(source, arcname=_arcname(source))
        except (OSError, tarfile.TarError) as e:
            raise BackupError("Cannot create rollback snapshot %s: %s" %
                              (archive, e))
        os.chmod(archive, 0o600)

        record = FileStore._record(paths.ROOT_DIR, archive)
        if not record.is_valid():
            raise BackupError("Rollback snapshot %s is empty" % archive)

        with open(info, "w") as f:
            f.write("Rollback Point: %s\n" % name)
            f.write("Created: %s\n" % time.strftime("%Y-%m-%d %H:%M:%S"))
            f.write("Mode: %s\n" % mode)
            f.write("Domain: %s\n" % domain)
            f.write("Hostname: %s\n" % hostname)
            f.write("Size: %d bytes\n" % record.size_bytes)
            f.write("Restore command: dm-migrate --revert\n")
        logger.info("Rollback snapshot created: %s", archive)
        return record

    def latest(self):
        """Return the path of the newest snapshot or None"""
        pattern = os.path.join(glob.escape(self.rollback_dir),
                               SNAPSHOT_PREFIX + "*" + SNAPSHOT_SUFFIX)
        archives = sorted(glob.glob(pattern))
        if not archives:
            return None
        return archives[-1]

    def restore(self, archive):
        """Extract @archive over the root directory"""
        logger.info("Restoring rollback snapshot %s", archive)
        kwargs = {}
        if hasattr(tarfile, 'tar_filter'):
            kwargs['filter'] = 'tar'
        with tarfile.open(archive, "r:gz") as tar:
            tar.extractall(path=paths.ROOT_DIR, **kwargs)
