# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API v1 routes package.

Modules:
    admin_students: Admission and enrollee maintenance endpoints.
"""

from fastapi import APIRouter

from admissions.api.v1 import admin_students

# Create the main v1 router
router = APIRouter(prefix="/api/v1")

router.include_router(admin_students.router, prefix="/admin", tags=["Admissions"])

__all__ = ["router"]
