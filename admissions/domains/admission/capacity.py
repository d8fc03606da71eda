# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Course seat accounting.

Seats are reserved with a single conditional UPDATE so two concurrent
reservations against the last seat cannot both succeed. Each reservation or
release commits on its own; the coordinator calls release_seat as the
compensation when a later step fails.
"""

import logging

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from admissions.domains.admission.exceptions import (
    AdmissionPersistenceError,
    CapacityExceededError,
    CourseNotFoundError,
)
from admissions.infrastructure.database.models import Course

logger = logging.getLogger(__name__)


class CourseLookup:
    """Read-only course access used before a reservation is attempted."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_course(self, course_id: str) -> Course:
        """Get a course by ID.

        Args:
            course_id: Course identifier.

        Returns:
            The course.

        Raises:
            CourseNotFoundError: If not found.
        """
        async with self._session_factory() as session:
            result = await session.execute(select(Course).where(Course.id == course_id))
            course = result.scalar_one_or_none()

        if course is None:
            raise CourseNotFoundError(f"Course {course_id} not found")

        return course


class CapacityManager:
    """Reserves and releases course seats atomically.

    Attributes:
        _session_factory: Sessionmaker; every call runs in its own transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Initialize the capacity manager.

        Args:
            session_factory: Sessionmaker bound to the admissions database.
        """
        self._session_factory = session_factory

    async def reserve_seat(self, course_id: str) -> None:
        """Take one seat on a course if one is free.

        Args:
            course_id: Course identifier.

        Raises:
            CapacityExceededError: If the course is full or inactive.
            CourseNotFoundError: If the course does not exist.
            AdmissionPersistenceError: If the update itself fails.
        """
        stmt = (
            update(Course)
            .where(
                Course.id == course_id,
                Course.is_active.is_(True),
                Course.seats_filled < Course.seats_available,
            )
            .values(seats_filled=Course.seats_filled + 1)
            .execution_options(synchronize_session=False)
        )
        exists: str | None = None

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(stmt)
                    reserved = result.rowcount == 1
                    if not reserved:
                        exists = await session.scalar(
                            select(Course.id).where(Course.id == course_id)
                        )
        except SQLAlchemyError as e:
            raise AdmissionPersistenceError(f"Seat reservation failed: {e}") from e

        if not reserved:
            if exists is None:
                raise CourseNotFoundError(f"Course {course_id} not found")
            logger.info("Seat reservation refused: course=%s is full or inactive", course_id)
            raise CapacityExceededError(f"No seats available on course {course_id}")

        logger.debug("Seat reserved: course=%s", course_id)

    async def release_seat(self, course_id: str) -> bool:
        """Give back a seat taken by reserve_seat.

        Args:
            course_id: Course identifier.

        Returns:
            True if a seat was released, False if the counter was already 0.

        Raises:
            AdmissionPersistenceError: If the update itself fails.
        """
        stmt = (
            update(Course)
            .where(Course.id == course_id, Course.seats_filled > 0)
            .values(seats_filled=Course.seats_filled - 1)
            .execution_options(synchronize_session=False)
        )

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(stmt)
        except SQLAlchemyError as e:
            raise AdmissionPersistenceError(f"Seat release failed: {e}") from e

        released = result.rowcount == 1
        if released:
            logger.debug("Seat released: course=%s", course_id)
        else:
            logger.error("Seat release found no seat to release: course=%s", course_id)
        return released

    async def seats_filled(self, course_id: str) -> int:
        """Current seat count of a course.

        Raises:
            CourseNotFoundError: If the course does not exist.
        """
        async with self._session_factory() as session:
            value = await session.scalar(
                select(Course.seats_filled).where(Course.id == course_id)
            )

        if value is None:
            raise CourseNotFoundError(f"Course {course_id} not found")
        return value
