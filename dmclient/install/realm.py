#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""Domain membership operations

RealmService wraps the ``realm`` tool and returns typed results. It is the
only place that interprets the tool's output. DomainTransitionDriver adds
the migration policy on top: leaving may fail, discovery failure is only a
warning, a join gets one fallback attempt and is not trusted until the
membership list confirms it.
"""

import collections
import logging
import time

from dmplatform.paths import paths
from dmpython import dmutil
from dmpython.errors import StepFailed, VerificationError

logger = logging.getLogger(__name__)


class OperationResult(collections.namedtuple(
        'OperationResult', 'success returncode detail')):
    """Outcome of one call of the domain tool"""


class RealmService:
    """Adapter for the realmd command line tool"""

    def _run(self, args, secret=None):
        nolog = ()
        stdin = None
        if secret:
            password = secret.reveal()
            stdin = password + '\n'
            nolog = (password,)
        result = dmutil.run([paths.SBIN_REALM] + args, stdin=stdin,
                            nolog=nolog, raiseonerr=False,
                            capture_output=True, capture_error=True)
        detail = dmutil.nolog_replace(
            (result.error_output or result.output or '').strip(), nolog)
        return OperationResult(result.returncode == 0, result.returncode,
                               detail)

    def leave(self, domain=None, principal=None, secret=None):
        args = ['leave']
        if principal:
            args.append('--user=%s' % principal)
        if domain:
            args.append(domain)
        return self._run(args, secret=secret if principal else None)

    def discover(self, domain):
        return self._run(['discover', domain])

    def join(self, domain, principal, secret, computer_ou=None):
        args = ['join', '--user=%s' % principal]
        if computer_ou:
            args.append('--computer-ou=%s' % computer_ou)
        args.append(domain)
        return self._run(args, secret=secret)

    def list_membership(self):
        """Names of the realms the host is a member of, lowercased"""
        result = dmutil.run([paths.SBIN_REALM, 'list', '--name-only'],
                            raiseonerr=False, capture_output=True)
        if result.returncode != 0:
            return []
        return [line.strip().lower()
                for line in (result.output or '').splitlines()
                if line.strip()]


class DomainTransitionDriver:
    """Leave, discover and join with the migration's failure policy"""

    def __init__(self, service=None, join_settle_delay=5,
                 computer_ou='Computers', sleep=time.sleep):
        self.service = service if service is not None else RealmService()
        self.join_settle_delay = join_settle_delay
        self.computer_ou = computer_ou
        self.sleep = sleep

    def leave(self, old_domain=None, principal=None, secret=None):
        """Leave @old_domain; a failure is logged and returned, never raised

        A host that is not joined to any domain is a valid starting point.
        """
        result = self.service.leave(old_domain, principal, secret)
        if result.success:
            logger.info("Left domain %s", old_domain or "(current)")
        else:
            logger.warning("Could not leave domain %s (%s), continuing",
                           old_domain or "(current)",
                           result.detail or "exit %d" % result.returncode)
        return result

    def discover(self, domain):
        """Discover @domain; a failure is a warning only"""
        result = self.service.discover(domain)
        if result.success:
            logger.info("Discovered domain %s", domain)
        else:
            logger.warning("Discovery of %s failed (%s), the join will be "
                           "attempted anyway", domain,
                           result.detail or "exit %d" % result.returncode)
        return result

    def is_member(self, domain):
        return domain.lower() in self.service.list_membership()

    def join(self, domain, principal, secret):
        """Join @domain, falling back to an explicit computer OU once

        The secret is cleared once both attempts are over. Raises StepFailed
        when neither attempt succeeds and VerificationError when the host is
        not listed as a member afterwards.
        """
        try:
            result = self.service.join(domain, principal, secret)
            if not result.success:
                logger.warning("Join of %s failed (%s), retrying with "
                               "--computer-ou=%s", domain,
                               result.detail or "exit %d" % result.returncode,
                               self.computer_ou)
                result = self.service.join(domain, principal, secret,
                                           computer_ou=self.computer_ou)
        finally:
            secret.clear()

        if not result.success:
            raise StepFailed(
                "Failed to join domain %s: %s" %
                (domain, result.detail or "exit %d" % result.returncode))

        logger.debug("Waiting %d seconds before checking membership",
                     self.join_settle_delay)
        self.sleep(self.join_settle_delay)
        if not self.is_member(domain):
            raise VerificationError(
                "The join command reported success but %s is not listed "
                "as a joined realm" % domain)
        logger.info("Joined domain %s", domain)
        return result
