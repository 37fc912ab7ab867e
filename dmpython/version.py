#
# Copyright (C) 2026  Domain Migrate Contributors see COPYING for license
#
"""domain-migrate -- version
"""

# The full version including strings
VERSION = "1.4.0"

# A version with the vendor name, used in log headers
VENDOR_VERSION = "domain-migrate 1.4.0"

# A version number that can be compared: 10400
NUM_VERSION = 10400

__all__ = ("VERSION", "VENDOR_VERSION", "NUM_VERSION")
