#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""
Contains Debian-specific service class implementations.
"""

from dmplatform.base import services as base_services

# Mappings from service names as the migration code references to these
# services to their actual systemd unit names
debian_system_units = {
    name: '%s.service' % name for name in base_services.wellknownservices
}
debian_system_units['samba'] = 'samba-ad-dc.service'


class DebianService(base_services.SystemdService):
    system_units = debian_system_units

    def __init__(self, service_name):
        systemd_name = service_name
        if service_name in self.system_units:
            systemd_name = self.system_units[service_name]
        elif '.' not in service_name:
            systemd_name = '%s.service' % service_name
        super(DebianService, self).__init__(service_name, systemd_name)


# Function that constructs proper Debian-specific server classes for services
# of specified name

def debian_service_class_factory(name):
    return DebianService(name)


class DebianServices(base_services.KnownServices):
    def __init__(self):
        services = dict()
        for s in base_services.wellknownservices:
            services[s] = self.service_class_factory(s)
        # Call base class constructor. This will lock services to read-only
        super(DebianServices, self).__init__(services)

    @staticmethod
    def service_class_factory(name):
        return debian_service_class_factory(name)


# Objects below are expected to be exported by platform module

service = debian_service_class_factory
knownservices = DebianServices()
conflicting_services = base_services.conflicting_services
daemon_reload = base_services.daemon_reload
