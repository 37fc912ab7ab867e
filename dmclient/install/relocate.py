#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""Relocation of domain user home directories

Home directories of domain accounts are named ``user@domain``. For each
such directory of the old domain a ``user@newdomain`` home is created, the
content is moved (or merged) there, the old path becomes a symbolic link to
the new one and the new home is handed over to the new principal.
Directories without ``@`` are local accounts and are never touched.
"""

import logging
import os
import shutil
import time

from dmplatform.paths import paths
from dmplatform.tasks import tasks
from dmpython import dmutil

logger = logging.getLogger(__name__)

ACCOUNT_SEPARATOR = '@'

STATUS_PENDING = 'pending'
STATUS_MIGRATED = 'migrated'
STATUS_SKIPPED_LOCAL = 'skipped-local'
STATUS_SKIPPED_MISSING = 'skipped-missing-account'
STATUS_SKIPPED_CURRENT = 'skipped-new-domain'
STATUS_SKIPPED_DECLINED = 'skipped-declined'
STATUS_FAILED = 'failed'

SKIPPED_STATUSES = (STATUS_SKIPPED_LOCAL, STATUS_SKIPPED_MISSING,
                    STATUS_SKIPPED_CURRENT, STATUS_SKIPPED_DECLINED)

LOCAL_GECOS_WORDS = ('local', 'left unchanged', 'system', 'service')
LOCAL_MARKER_FILES = ('.local_account', '.skip_migration')
PROFILE_FILES = ('.profile', '.bashrc', '.bash_profile')
PROFILE_MARKERS = ('local account', 'left unchanged')


class Candidate:
    """A home directory that looks like a domain account"""
    def __init__(self, name, path):
        self.name = name
        self.path = path
        self.user, _sep, self.suffix = name.partition(ACCOUNT_SEPARATOR)

    def __repr__(self):
        return '<Candidate %s>' % self.name


class DomainUserMapping:
    """Old and new principal of one account and what happened to it"""
    def __init__(self, old_principal, new_principal, home_dir_target,
                 status=STATUS_PENDING, reason=None):
        self.old_principal = old_principal
        self.new_principal = new_principal
        self.home_dir_target = home_dir_target
        self.migration_status = status
        self.reason = reason

    def __repr__(self):
        return '<DomainUserMapping %s -> %s [%s]>' % (
            self.old_principal, self.new_principal, self.migration_status)

    def format(self):
        line = '%s -> %s (%s) [%s]' % (
            self.old_principal, self.new_principal, self.home_dir_target,
            self.migration_status)
        if self.reason:
            line += ' %s' % self.reason
        return line


class ProfileRelocator:
    """Move ``user@old`` homes to ``user@new``

    :param presenter: receives warnings and simulated actions and answers
        the merge and override questions
    :param simulated: only report what would be done
    :param validate_accounts: require the new principal to resolve
    :param overrides: account directory names migrated even though they
        look local
    """
    def __init__(self, home_dir, old_domain, new_domain, presenter,
                 simulated=False, validate_accounts=False, overrides=(),
                 log_file=None):
        self.home_dir = home_dir
        self.old_domain = old_domain.lower() if old_domain else None
        self.new_domain = new_domain.lower()
        self.presenter = presenter
        self.simulated = simulated
        self.validate_accounts = validate_accounts
        self.overrides = set(overrides)
        self.timestamp = dmutil.timestamp()
        if log_file is None:
            log_file = paths.USER_MIGRATION_LOG_TEMPLATE % self.timestamp
        self.log_file = log_file

    def audit(self, message, *args):
        """Append one line to the per-run migration log"""
        message = message % args if args else message
        logger.info("%s", message)
        if self.simulated:
            return
        with open(self.log_file, 'a') as f:
            f.write('%s %s\n' % (time.strftime('%Y-%m-%d %H:%M:%S'),
                                 message))

    def discover(self):
        """Domain account candidates under the home directory"""
        try:
            names = sorted(os.listdir(self.home_dir))
        except FileNotFoundError:
            logger.warning("%s does not exist", self.home_dir)
            return []
        candidates = []
        for name in names:
            path = os.path.join(self.home_dir, name)
            if ACCOUNT_SEPARATOR not in name:
                logger.debug("%s is a local account", name)
                continue
            if os.path.islink(path) or not os.path.isdir(path):
                logger.debug("Skipping %s, not a directory", path)
                continue
            candidates.append(Candidate(name, path))
        return candidates

    def local_signals(self, candidate):
        """Reasons to treat @candidate as a local account"""
        signals = []
        entry = tasks.lookup_user(candidate.name)
        if entry is not None:
            gecos = (entry.pw_gecos or '').lower()
            for word in LOCAL_GECOS_WORDS:
                if word in gecos:
                    signals.append("account comment mentions '%s'" % word)
                    break

        for marker in LOCAL_MARKER_FILES:
            if os.path.exists(os.path.join(candidate.path, marker)):
                signals.append("%s marker present" % marker)

        for profile in PROFILE_FILES:
            try:
                with open(os.path.join(candidate.path, profile),
                          errors='replace') as f:
                    text = f.read().lower()
            except OSError:
                continue
            if any(m in text for m in PROFILE_MARKERS):
                signals.append("%s marks a local account" % profile)
                break

        if self.old_domain and candidate.suffix.lower() != self.old_domain:
            signals.append("domain %s is not %s" %
                           (candidate.suffix, self.old_domain))
        return signals

    def classify(self, candidate):
        """Return (is_local, reasons) for @candidate"""
        signals = self.local_signals(candidate)
        if signals and candidate.name in self.overrides:
            logger.info("Migrating %s despite: %s", candidate.name,
                        '; '.join(signals))
            return False, signals
        return bool(signals), signals

    def target_of(self, candidate):
        new_principal = '%s@%s' % (candidate.user, self.new_domain)
        return new_principal, os.path.join(self.home_dir, new_principal)

    def in_new_domain(self, candidate):
        """True when @candidate already is a home of the new domain"""
        _new_principal, target = self.target_of(candidate)
        return (candidate.suffix.lower() == self.new_domain or
                os.path.normpath(target) == os.path.normpath(candidate.path))

    def migrate(self, candidate):
        """Relocate one classified domain account"""
        new_principal, target = self.target_of(candidate)
        mapping = DomainUserMapping(candidate.name, new_principal, target)
        if self.in_new_domain(candidate):
            mapping.migration_status = STATUS_SKIPPED_CURRENT
            mapping.reason = 'already in %s' % self.new_domain
            return mapping

        if self.validate_accounts and not tasks.getent('passwd',
                                                       new_principal):
            if not self.presenter.ask(
                    "%s does not resolve yet. Migrate %s anyway?" %
                    (new_principal, candidate.name), False):
                mapping.migration_status = STATUS_SKIPPED_MISSING
                self.audit("Skipped %s: %s not found", candidate.name,
                           new_principal)
                return mapping

        if self.simulated:
            self.presenter.simulate("Would move %s to %s and link it",
                                    candidate.path, target)
            return mapping

        try:
            if os.path.exists(target):
                if not self.presenter.ask(
                        "%s already exists. Merge %s into it?" %
                        (target, candidate.path), True):
                    mapping.migration_status = STATUS_SKIPPED_DECLINED
                    mapping.reason = 'target exists, merge declined'
                    self.audit("Not merging %s into existing %s",
                               candidate.path, target)
                    return mapping
                self._merge(candidate, target)
            else:
                os.rename(candidate.path, target)
                self.audit("Moved %s to %s", candidate.path, target)

            os.symlink(target, candidate.path)
            self.audit("Linked %s -> %s", candidate.path, target)
            tasks.chown_recursive(target, new_principal)
            self.audit("Changed ownership of %s to %s", target,
                       new_principal)
        except (OSError, dmutil.CalledProcessError) as e:
            mapping.migration_status = STATUS_FAILED
            mapping.reason = str(e)
            self.audit("Failed to migrate %s: %s", candidate.name, e)
            self.presenter.warning("Failed to migrate %s: %s",
                                   candidate.name, e)
            return mapping

        mapping.migration_status = STATUS_MIGRATED
        return mapping

    def _merge(self, candidate, target):
        backup = os.path.join(self.home_dir, 'backup-%s-%s' %
                              (candidate.user, self.timestamp))
        shutil.copytree(target, backup, symlinks=True)
        self.audit("Backed up existing %s to %s", target, backup)

        copied = copy_missing(candidate.path, target)
        self.audit("Merged %d files from %s into %s", copied,
                   candidate.path, target)

        moved = candidate.path + '.backup'
        if os.path.lexists(moved):
            moved = '%s.%s' % (moved, self.timestamp)
        os.rename(candidate.path, moved)
        self.audit("Moved %s to %s", candidate.path, moved)

    def run(self):
        """Classify and migrate every candidate, return the mappings"""
        mappings = []
        for candidate in self.discover():
            new_principal, target = self.target_of(candidate)
            if self.in_new_domain(candidate):
                mappings.append(DomainUserMapping(
                    candidate.name, new_principal, target,
                    STATUS_SKIPPED_CURRENT,
                    'already in %s' % self.new_domain))
                logger.debug("%s already belongs to %s", candidate.name,
                             self.new_domain)
                continue
            is_local, reasons = self.classify(candidate)
            if is_local and self.presenter.interactive and \
                    self.presenter.ask(
                        "%s looks like a local account (%s). Migrate it "
                        "anyway?" % (candidate.name, '; '.join(reasons)),
                        False):
                is_local = False
            if is_local:
                mapping = DomainUserMapping(
                    candidate.name, new_principal, target,
                    STATUS_SKIPPED_LOCAL, '; '.join(reasons))
                self.audit("Skipped %s: %s", candidate.name,
                           '; '.join(reasons))
            else:
                mapping = self.migrate(candidate)
            mappings.append(mapping)

        self.write_mapping(mappings)
        return mappings

    def write_mapping(self, mappings, mapping_file=None):
        if self.simulated or not mappings:
            return
        if mapping_file is None:
            mapping_file = paths.USER_MAPPING
        with open(mapping_file, 'a') as f:
            f.write('# %s %s -> %s\n' % (self.timestamp,
                                         self.old_domain or '*',
                                         self.new_domain))
            for mapping in mappings:
                f.write(mapping.format() + '\n')


def copy_missing(source, target):
    """Copy files of @source that do not exist in @target, count them"""
    copied = 0
    for root, dirs, files in os.walk(source):
        rel = os.path.relpath(root, source)
        dest_root = os.path.normpath(os.path.join(target, rel))
        os.makedirs(dest_root, exist_ok=True)
        for name in files:
            dest = os.path.join(dest_root, name)
            if os.path.lexists(dest):
                continue
            shutil.copy2(os.path.join(root, name), dest,
                         follow_symlinks=False)
            copied += 1
        for name in dirs:
            src_dir = os.path.join(root, name)
            dest_dir = os.path.join(dest_root, name)
            if os.path.islink(src_dir) and not os.path.lexists(dest_dir):
                os.symlink(os.readlink(src_dir), dest_dir)
                copied += 1
    return copied


def revert_symlinks(home_dir):
    """Put relocated homes back under their old names

    Returns the list of restored paths.
    """
    restored = []
    try:
        names = sorted(os.listdir(home_dir))
    except FileNotFoundError:
        return restored
    for name in names:
        path = os.path.join(home_dir, name)
        if ACCOUNT_SEPARATOR not in name or not os.path.islink(path):
            continue
        target = os.path.realpath(path)
        if not os.path.isdir(target):
            logger.warning("Not restoring %s, %s does not exist", path,
                           target)
            continue
        os.unlink(path)
        shutil.move(target, path)
        logger.info("Restored %s from %s", path, target)
        restored.append(path)
    return restored
