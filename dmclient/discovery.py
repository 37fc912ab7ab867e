#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""Domain controller discovery

Sources are tried in order and the first one that yields a controller wins:

1. ``_ldap._tcp.<domain>`` SRV records
2. well-known controller host names in the domain
3. ``ad_server`` of an existing ``sssd.conf``
4. ``dc1.<domain>`` as a last resort
"""

import collections
import logging
from configparser import RawConfigParser, Error as ConfigParserError

from dns import resolver, rdatatype
from dns.exception import DNSException

from dmplatform.paths import paths
from dmpython import dmutil

logger = logging.getLogger(__name__)

SOURCE_SRV = 'srv'
SOURCE_PROBE = 'probe'
SOURCE_SSSD = 'sssd.conf'
SOURCE_DEFAULT = 'default'

source_names = {
    SOURCE_SRV: 'DNS SRV records',
    SOURCE_PROBE: 'common controller names',
    SOURCE_SSSD: 'existing SSSD configuration',
    SOURCE_DEFAULT: 'default controller name',
}

LDAP_SRV_RECORD = '_ldap._tcp'
PROBE_PREFIXES = ('dc1', 'dc', 'ad', 'ldap', 'dc2')


class DiscoveryResult(collections.namedtuple(
        'DiscoveryResult', 'servers source')):
    """Controllers found for a domain and where they came from"""

    @property
    def primary(self):
        return self.servers[0] if self.servers else None


def query_srv(qname):
    """Return SRV answers of @qname sorted by priority and weight"""
    answers = resolver.resolve(qname, rdatatype.SRV)
    return sorted(answers, key=lambda a: (a.priority, -a.weight))


def resolve_address(hostname):
    """Return the A records of @hostname, an empty list when there is none"""
    try:
        answers = resolver.resolve(hostname, rdatatype.A)
    except DNSException as e:
        logger.debug("No address for %s: %s", hostname, e.__class__.__name__)
        return []
    return [str(a) for a in answers]


class DCDiscovery:
    """Find the domain controllers of a domain"""

    def search_srv(self, domain, srv_record_name=LDAP_SRV_RECORD,
                   break_on_first=False):
        """
        Search for SRV records in given domain. When no record is found,
        an empty list is returned

        :param domain: Search domain name
        :param srv_record_name: SRV record name, e.g. "_ldap._tcp"
        :param break_on_first: break on the first find and return just one
                    entry
        """
        servers = []
        qname = '%s.%s' % (srv_record_name, domain)

        logger.debug("Search DNS for SRV record of %s", qname)

        try:
            answers = query_srv(qname)
        except DNSException as e:
            logger.debug("DNS record not found: %s", e.__class__.__name__)
            answers = []

        for answer in answers:
            logger.debug("DNS record found: %s", answer)
            server = str(answer.target).rstrip(".")
            if not server:
                logger.debug("Cannot parse the hostname from SRV record: %s",
                             answer)
                continue
            if server not in servers:
                servers.append(server)
            if break_on_first:
                break

        return servers

    def probe_common_names(self, domain):
        servers = []
        for prefix in PROBE_PREFIXES:
            candidate = '%s.%s' % (prefix, domain)
            if dmutil.resolves(candidate):
                logger.debug("Found controller candidate %s", candidate)
                servers.append(candidate)
        return servers

    def sssd_ad_servers(self, domain):
        """ad_server entries of sssd.conf for @domain, if any"""
        parser = RawConfigParser()
        try:
            if not parser.read(paths.SSSD_CONF):
                return []
        except (ConfigParserError, UnicodeDecodeError) as e:
            logger.debug("Cannot parse %s: %s", paths.SSSD_CONF, e)
            return []

        servers = []
        for section in parser.sections():
            if not section.startswith('domain/'):
                continue
            if section[len('domain/'):].lower() != domain.lower():
                continue
            if parser.has_option(section, 'ad_server'):
                value = parser.get(section, 'ad_server')
                servers.extend(s.strip() for s in value.split(',')
                               if s.strip() and s.strip() != '_srv_')
        return servers

    def search(self, domain):
        """Return a DiscoveryResult for @domain, never an empty one"""
        logger.debug("Discovering domain controllers of %s", domain)
        for source, method in ((SOURCE_SRV, self.search_srv),
                               (SOURCE_PROBE, self.probe_common_names),
                               (SOURCE_SSSD, self.sssd_ad_servers)):
            servers = method(domain)
            if servers:
                logger.debug("Controllers from %s: %s",
                             source_names[source], ', '.join(servers))
                return DiscoveryResult(servers, source)

        default = 'dc1.%s' % domain
        logger.debug("No controller found, assuming %s", default)
        return DiscoveryResult([default], SOURCE_DEFAULT)
