# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollee identifier allocation.

Identifiers have the form ``<COURSE CODE><PERIOD><SEQUENCE>``, for example
``NUR2025001``. The sequence is derived from the enrollees already holding
the course/period prefix; there is no stored counter.

The allocator only proposes a candidate. Two concurrent admissions can
still be handed the same candidate, so the unique constraint on
``enrollees.enrollee_identifier`` is the final arbiter and the coordinator
re-allocates when it loses that race.

Example:
    >>> allocator = IdentifierAllocator(session_factory)
    >>> await allocator.allocate("NUR", "2025")
    'NUR2025001'
"""

import logging
from typing import Callable

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from admissions.domains.admission.exceptions import (
    AdmissionPersistenceError,
    CollisionExhaustedError,
)
from admissions.infrastructure.database.models import Enrollee
from admissions.utils.datetime import timestamp_fragment

logger = logging.getLogger(__name__)

FALLBACK_FRAGMENT_DIGITS = 6


def format_identifier(course_code: str, period: str, sequence: int, width: int = 3) -> str:
    """Compose an identifier from its parts.

    Args:
        course_code: Upper-case course code.
        period: Admission period marker.
        sequence: Sequence number, zero-padded to ``width``.
        width: Minimum digits of the sequence.

    Returns:
        Identifier string.
    """
    return f"{course_code.upper()}{period}{sequence:0{width}d}"


class IdentifierAllocator:
    """Proposes unused enrollee identifiers.

    Attributes:
        _session_factory: Sessionmaker for lookups.
        _sequence_width: Zero-padding width of the sequence.
        _max_attempts: Sequential candidates tried before the fallback.
        _fragment: Source of the timestamp fallback suffix.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        sequence_width: int = 3,
        max_attempts: int = 10,
        fragment: Callable[[int], str] = timestamp_fragment,
    ) -> None:
        self._session_factory = session_factory
        self._sequence_width = sequence_width
        self._max_attempts = max_attempts
        self._fragment = fragment

    async def allocate(self, course_code: str, period: str) -> str:
        """Propose an identifier not held by any enrollee.

        Args:
            course_code: Course code of the owning course.
            period: Admission period marker.

        Returns:
            Candidate identifier.

        Raises:
            CollisionExhaustedError: If even the timestamp fallback is taken.
            AdmissionPersistenceError: If the lookup fails.
        """
        prefix = f"{course_code.upper()}{period}"

        try:
            async with self._session_factory() as session:
                existing = await self._count_existing(session, prefix)

                for attempt in range(1, self._max_attempts + 1):
                    candidate = format_identifier(
                        course_code, period, existing + attempt, self._sequence_width
                    )
                    if not await self._is_taken(session, candidate):
                        if attempt > 1:
                            logger.info(
                                "Identifier allocated after %d collisions: %s",
                                attempt - 1,
                                candidate,
                            )
                        return candidate

                fallback = f"{prefix}{self._fragment(FALLBACK_FRAGMENT_DIGITS)}"
                logger.warning(
                    "Sequential identifiers exhausted for %s after %d attempts, trying %s",
                    prefix,
                    self._max_attempts,
                    fallback,
                )
                if not await self._is_taken(session, fallback):
                    return fallback
        except SQLAlchemyError as e:
            raise AdmissionPersistenceError(f"Identifier lookup failed: {e}") from e

        raise CollisionExhaustedError(
            f"Could not allocate an unused identifier for {prefix}"
        )

    async def _count_existing(self, session: AsyncSession, prefix: str) -> int:
        """Count sequential identifiers carrying the course/period prefix.

        Timestamp fallbacks share the prefix but have a longer suffix and are
        left out, so they do not push the sequence forward.
        """
        identifier_length = func.length(Enrollee.enrollee_identifier)
        conditions = [
            Enrollee.enrollee_identifier.startswith(prefix, autoescape=True),
            identifier_length >= len(prefix) + self._sequence_width,
        ]
        if self._sequence_width < FALLBACK_FRAGMENT_DIGITS:
            conditions.append(identifier_length < len(prefix) + FALLBACK_FRAGMENT_DIGITS)

        result = await session.execute(
            select(func.count()).select_from(Enrollee).where(*conditions)
        )
        return result.scalar_one()

    async def _is_taken(self, session: AsyncSession, identifier: str) -> bool:
        """Whether an enrollee already holds the identifier."""
        result = await session.execute(
            select(Enrollee.id).where(Enrollee.enrollee_identifier == identifier).limit(1)
        )
        return result.scalar_one_or_none() is not None
