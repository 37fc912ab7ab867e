#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#
"""Services of the supported platform
"""
# flake8: noqa
# pylint: disable=unused-import

from .debian.services import (
    service, knownservices, conflicting_services, daemon_reload)
