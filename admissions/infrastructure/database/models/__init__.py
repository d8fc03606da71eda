# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""ORM models for the admissions database."""

from admissions.infrastructure.database.models.admission import (
    ACCOUNT_ROLES,
    ENROLLEE_STATUSES,
    Account,
    Course,
    Enrollee,
)
from admissions.infrastructure.database.models.base import Base, new_id

__all__ = [
    "Base",
    "new_id",
    "Account",
    "Course",
    "Enrollee",
    "ACCOUNT_ROLES",
    "ENROLLEE_STATUSES",
]
