#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#
"""Tasks of the supported platform
"""
# flake8: noqa
# pylint: disable=unused-import

from .debian.tasks import tasks
