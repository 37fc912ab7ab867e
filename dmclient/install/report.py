#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""Plain text report of a migration run"""

import logging
import os
import time

from dmclient.install import relocate
from dmpython import dmutil

logger = logging.getLogger(__name__)

REPORT_NAME = 'migration-report-%s.txt'
RULER = '=' * 60


def _section(lines, title):
    lines.extend(['', title, '-' * len(title)])


def format_report(context, generated=None):
    """Return the report of @context as a list of lines"""
    if generated is None:
        generated = time.strftime('%Y-%m-%d %H:%M:%S')
    lines = [
        RULER,
        'DOMAIN MIGRATION REPORT',
        RULER,
        'Generated:          %s' % generated,
        'Mode:               %s' % context.mode,
        'Domain:             %s' % context.domain,
        'Previous domain:    %s' % (context.old_domain or 'unknown'),
        'FQDN:               %s' % context.fqdn,
        'Domain controller:  %s' % (context.domain_controller or 'unknown'),
    ]

    _section(lines, 'Files modified')
    lines.extend('  %s' % f for f in context.files_modified)
    if not context.files_modified:
        lines.append('  none')

    _section(lines, 'Backups created')
    lines.extend('  %s -> %s (%d bytes)' % (b.original_path, b.backup_path,
                                            b.size_bytes)
                 for b in context.backups)
    if not context.backups:
        lines.append('  none')

    _section(lines, 'Verification')
    lines.extend('  %-28s %-8s %s' % (c.name, c.status, c.detail)
                 for c in context.verification)
    if not context.verification:
        lines.append('  not run')

    _section(lines, 'User migration')
    counts = {}
    for mapping in context.user_mappings:
        counts[mapping.migration_status] = counts.get(
            mapping.migration_status, 0) + 1
        lines.append('  %s' % mapping.format())
    if context.user_mappings:
        lines.append('  %d migrated, %d skipped, %d failed' % (
            counts.get(relocate.STATUS_MIGRATED, 0),
            sum(counts.get(s, 0) for s in relocate.SKIPPED_STATUSES),
            counts.get(relocate.STATUS_FAILED, 0)))
    else:
        lines.append('  no domain accounts found')

    if context.resources_updated:
        _section(lines, 'Network resources and application settings')
        lines.extend('  %s' % f for f in context.resources_updated)

    _section(lines, 'Rollback')
    lines.append('  Restore the backed up configuration with:')
    lines.append('    dm-migrate --revert')
    lines.append('  Rollback snapshots (technician mode) are kept in %s' %
                 context.config.rollback_dir)
    lines.append('')
    return lines


def write_report(context):
    """Write the report to the report directory and return its path"""
    filename = os.path.join(context.config.report_dir,
                            REPORT_NAME % dmutil.timestamp())
    with open(filename, 'w') as f:
        f.write('\n'.join(format_report(context)))
    os.chmod(filename, 0o600)
    context.report_path = filename
    logger.info("Migration report written to %s", filename)
    return filename
