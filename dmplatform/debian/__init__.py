#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""
This module contains Debian and Ubuntu specific platform files.
"""
NAME = 'debian'
