# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database infrastructure for the admissions service.

Example:
    from admissions.infrastructure.database import get_sessionmaker

    async with get_sessionmaker()() as session:
        result = await session.execute(select(Course))
"""

from admissions.infrastructure.database.connection import (
    DatabaseError,
    build_engine,
    build_sessionmaker,
    close_database,
    get_engine,
    get_sessionmaker,
    init_database,
)

__all__ = [
    "DatabaseError",
    "build_engine",
    "build_sessionmaker",
    "close_database",
    "get_engine",
    "get_sessionmaker",
    "init_database",
]
