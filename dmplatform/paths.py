#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#
"""Paths of the supported platform
"""
# flake8: noqa
# pylint: disable=unused-import

from .debian.paths import paths
