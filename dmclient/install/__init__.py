#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#
