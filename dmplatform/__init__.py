#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#

"""Platform layer

The generic ``base`` namespaces define every path, service and task the
migration tools rely on. ``dmplatform.paths``, ``dmplatform.services`` and
``dmplatform.tasks`` export the objects of the supported platform.
"""
NAME = 'debian'
