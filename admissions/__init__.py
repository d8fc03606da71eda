"""Institute Admissions backend.

Admission provisioning service for a multi-role institutional portal:
allocates enrollee identifiers and institutional addresses, issues one-time
credentials and keeps course seat counts consistent under concurrent load.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
