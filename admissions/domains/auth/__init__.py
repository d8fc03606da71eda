# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Authentication domain services.

Session mechanics live outside this service; this package only provides
the hashing used when credentials are issued or reset.

Exports:
    PasswordHasher: Secure password hashing using bcrypt.
"""

from admissions.domains.auth.password import PasswordHasher

__all__ = [
    "PasswordHasher",
]
