#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""Rewrite references to the old domain in network resources and
application settings"""

import glob
import logging
import os
import shutil
import sqlite3

from dmplatform.paths import paths
from dmpython import dmutil
from dmpython.sysrestore import BACKUP_INFIX

logger = logging.getLogger(__name__)

FILE_MANAGERS = ('nautilus', 'dolphin', 'thunar', 'pcmanfm')
OFFICE_SUITES = ('calligra', 'gnome-office', 'koffice')
IDES = ('vscode', 'intellij', 'eclipse', 'netbeans')

MOZILLA_DIRS = ('.mozilla', '.thunderbird')


def domain_variants(old_domain, new_domain):
    """(old, new) pairs to replace, lower case and upper case"""
    old_domain = old_domain.lower()
    new_domain = new_domain.lower()
    return [(old_domain, new_domain),
            (old_domain.upper(), new_domain.upper())]


def replace_domain_in_file(context, filename, old_domain, new_domain):
    """Replace @old_domain by @new_domain in @filename

    A ``.backup.<ts>`` copy is taken before the file is rewritten. Returns
    True if the file was (or would be) changed.
    """
    try:
        with open(filename, errors='surrogateescape') as f:
            content = f.read()
    except OSError as e:
        logger.debug("Cannot read %s: %s", filename, e)
        return False

    new_content = content
    for old, new in domain_variants(old_domain, new_domain):
        new_content = new_content.replace(old, new)
    if new_content == content:
        return False

    if context.simulated:
        context.presenter.simulate("Would replace %s with %s in %s",
                                   old_domain, new_domain, filename)
        return True

    context.backup_file(filename)
    st = os.stat(filename)
    with open(filename, 'w', errors='surrogateescape') as f:
        f.write(new_content)
    os.chmod(filename, st.st_mode & 0o7777)
    context.file_modified(filename)
    logger.info("Updated %s", filename)
    return True


def user_homes(home_dir):
    """Real home directories, relocation symlinks excluded"""
    try:
        names = sorted(os.listdir(home_dir))
    except FileNotFoundError:
        return []
    homes = []
    for name in names:
        path = os.path.join(home_dir, name)
        if os.path.isdir(path) and not os.path.islink(path):
            homes.append(path)
    return homes


def _glob(*patterns):
    found = []
    for pattern in patterns:
        for filename in sorted(glob.glob(pattern, recursive=True)):
            if os.path.isfile(filename) and \
                    BACKUP_INFIX not in os.path.basename(filename) \
                    and filename not in found:
                found.append(filename)
    return found


def network_resource_files(home_dir):
    patterns = [
        os.path.join(paths.CUPS_DIR, '*.conf'),
        paths.FSTAB,
        os.path.join(paths.NM_SYSTEM_CONNECTIONS_DIR, '*.nmconnection'),
    ]
    for home in user_homes(home_dir):
        patterns.extend([
            os.path.join(home, '.cups', '*.conf'),
            os.path.join(home, '.config', 'gtk-3.0', 'bookmarks'),
            os.path.join(home, '.config', 'NetworkManager', '**',
                         '*.nmconnection'),
            os.path.join(home, 'Desktop', '*.desktop'),
        ])
        patterns.extend(os.path.join(home, '.config', fm, 'bookmarks')
                        for fm in FILE_MANAGERS)
    return _glob(*patterns)


def app_config_files(home_dir):
    patterns = []
    for home in user_homes(home_dir):
        config = os.path.join(home, '.config')
        patterns.extend([
            os.path.join(home, '.evolution', '**', '*.xml'),
            os.path.join(config, 'google-chrome', '**', 'Preferences'),
            os.path.join(config, 'libreoffice', '**', '*.xml'),
            os.path.join(home, '.gitconfig'),
            os.path.join(home, '.ssh', 'config'),
        ])
        patterns.extend(os.path.join(config, suite, '**', '*.conf')
                        for suite in OFFICE_SUITES)
        patterns.extend(os.path.join(config, ide, '**', '*.xml')
                        for ide in IDES)
    return _glob(*patterns)


def mozilla_databases(home_dir):
    patterns = []
    for home in user_homes(home_dir):
        patterns.extend(os.path.join(home, d, '**', '*.sqlite')
                        for d in MOZILLA_DIRS)
    return _glob(*patterns)


def update_mozilla_prefs(context, database, old_domain, new_domain):
    """Rewrite moz_prefs values of a Mozilla profile database

    Databases without a moz_prefs table are left alone. Returns the number
    of rows changed.
    """
    conn = sqlite3.connect(database)
    try:
        cursor = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' "
            "AND name='moz_prefs'")
        if cursor.fetchone() is None:
            return 0
        rows = conn.execute(
            "SELECT id, value FROM moz_prefs WHERE value LIKE ?",
            ('%%%s%%' % old_domain,)).fetchall()
        if not rows:
            return 0
        if context.simulated:
            context.presenter.simulate(
                "Would update %d preferences in %s", len(rows), database)
            return len(rows)

        backup = '%s%s%s' % (database, BACKUP_INFIX,
                             dmutil.timestamp())
        shutil.copy2(database, backup)
        changed = 0
        for row_id, value in rows:
            new_value = str(value)
            for old, new in domain_variants(old_domain, new_domain):
                new_value = new_value.replace(old, new)
            if new_value != value:
                conn.execute("UPDATE moz_prefs SET value = ? WHERE id = ?",
                             (new_value, row_id))
                changed += 1
        conn.commit()
    finally:
        conn.close()
    if changed:
        context.file_modified(database)
        logger.info("Updated %d preferences in %s", changed, database)
    return changed


def _migrate(context, files, what):
    old_domain = context.old_domain
    if not old_domain:
        context.presenter.warning("The old domain is not known, %s are "
                                  "left unchanged", what)
        return []
    if old_domain.lower() == context.domain.lower():
        return []
    updated = []
    for filename in files:
        if replace_domain_in_file(context, filename, old_domain,
                                  context.domain):
            updated.append(filename)
    context.resources_updated.extend(updated)
    context.presenter.info("%d %s updated", len(updated), what)
    return updated


def migrate_network_resources(context):
    return _migrate(context, network_resource_files(context.config.home_dir),
                    'network resource files')


def migrate_app_configs(context):
    updated = _migrate(context, app_config_files(context.config.home_dir),
                       'application config files')
    if not context.old_domain or \
            context.old_domain.lower() == context.domain.lower():
        return updated
    for database in mozilla_databases(context.config.home_dir):
        try:
            if update_mozilla_prefs(context, database, context.old_domain,
                                    context.domain):
                updated.append(database)
        except sqlite3.Error as e:
            context.presenter.warning("Cannot update %s: %s", database, e)
    return updated
