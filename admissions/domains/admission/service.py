# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Maintenance of already admitted enrollees.

Provides credential resets, status changes and removal of enrollees
together with their accounts. Seat counts are never touched here.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from admissions.domains.admission.credentials import CredentialIssuer
from admissions.domains.admission.exceptions import (
    AdmissionPersistenceError,
    EnrolleeNotFoundError,
    EnrolleeStateError,
)
from admissions.domains.auth.password import PasswordHasher
from admissions.infrastructure.database.models import Course, Enrollee
from admissions.infrastructure.notifications import CredentialNotice, NoticeKind, PostCommitNotifier
from admissions.models.admission import EnrolleeView, PasswordResetResponse
from admissions.models.common import EnrolleeStatus

logger = logging.getLogger(__name__)


@dataclass
class CredentialReset:
    """A freshly issued one-time password."""

    enrollee_id: str
    identifier: str
    institutional_address: str
    password: str = field(repr=False)
    notified: bool = False

    def to_response(self) -> PasswordResetResponse:
        return PasswordResetResponse(
            enrollee_id=self.enrollee_id,
            identifier=self.identifier,
            institutional_address=self.institutional_address,
            password=self.password,
            notified=self.notified,
        )


class EnrolleeService:
    """Service for enrollee credential resets, status changes and removal.

    Attributes:
        _session_factory: Sessionmaker for the admissions database.
        _issuer: Source of new passwords.
        _hasher: Password hashing.
        _notifier: Post-commit notification queue, optional.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        issuer: CredentialIssuer,
        hasher: PasswordHasher,
        notifier: PostCommitNotifier | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._issuer = issuer
        self._hasher = hasher
        self._notifier = notifier

    async def reset_password(self, enrollee_id: str, notify: bool = False) -> CredentialReset:
        """Issue a new one-time password for an enrollee's account.

        The account is flagged so the password must be rotated on the next
        login. Only the hash is stored.

        Args:
            enrollee_id: Enrollee primary key.
            notify: Also send the new password to the personal address.

        Returns:
            CredentialReset carrying the plaintext password.

        Raises:
            EnrolleeNotFoundError: If the enrollee does not exist.
            AdmissionPersistenceError: If the update fails.
        """
        password = self._issuer.new_password()
        password_hash = await self._hasher.hash_async(password)

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    enrollee = await self._load(session, enrollee_id)
                    enrollee.account.password_hash = password_hash
                    enrollee.account.must_rotate_password = True
        except SQLAlchemyError as e:
            raise AdmissionPersistenceError(f"Password reset failed: {e}") from e

        reset = CredentialReset(
            enrollee_id=enrollee.id,
            identifier=enrollee.enrollee_identifier,
            institutional_address=enrollee.institutional_address,
            password=password,
        )
        logger.info("Password reset for enrollee %s", reset.identifier)

        if notify and self._notifier is not None:
            self._notifier.schedule(
                CredentialNotice(
                    kind=NoticeKind.PASSWORD_RESET,
                    recipient_email=enrollee.personal_email,
                    recipient_name=enrollee.full_name,
                    identifier=reset.identifier,
                    institutional_address=reset.institutional_address,
                    password=password,
                )
            )
            reset.notified = True

        return reset

    async def change_status(self, enrollee_id: str, new_status: EnrolleeStatus) -> EnrolleeView:
        """Move an enrollee to another lifecycle status.

        Args:
            enrollee_id: Enrollee primary key.
            new_status: Target status.

        Returns:
            Snapshot of the updated enrollee.

        Raises:
            EnrolleeNotFoundError: If the enrollee does not exist.
            AdmissionPersistenceError: If the update fails.
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    enrollee = await self._load(session, enrollee_id)
                    previous = enrollee.status
                    enrollee.status = new_status.value
                    course_code = await session.scalar(
                        select(Course.code).where(Course.id == enrollee.course_id)
                    )
        except SQLAlchemyError as e:
            raise AdmissionPersistenceError(f"Status change failed: {e}") from e

        logger.info(
            "Enrollee %s status changed: %s -> %s",
            enrollee.enrollee_identifier,
            previous,
            new_status.value,
        )
        return EnrolleeView.model_validate(enrollee).model_copy(update={"course_code": course_code})

    async def remove_enrollee(self, enrollee_id: str) -> None:
        """Delete an enrollee together with its account.

        Active enrollees must be moved to another status first.

        Raises:
            EnrolleeNotFoundError: If the enrollee does not exist.
            EnrolleeStateError: If the enrollee is still Active.
            AdmissionPersistenceError: If the delete fails.
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    enrollee = await self._load(session, enrollee_id)
                    if enrollee.status == EnrolleeStatus.ACTIVE.value:
                        raise EnrolleeStateError(
                            f"Enrollee {enrollee.enrollee_identifier} is Active and cannot be removed"
                        )

                    account = enrollee.account
                    await session.delete(enrollee)
                    await session.delete(account)
        except SQLAlchemyError as e:
            raise AdmissionPersistenceError(f"Enrollee removal failed: {e}") from e

        logger.info("Enrollee removed: %s", enrollee.enrollee_identifier)

    async def _load(self, session: AsyncSession, enrollee_id: str) -> Enrollee:
        result = await session.execute(
            select(Enrollee)
            .options(selectinload(Enrollee.account))
            .where(Enrollee.id == enrollee_id)
        )
        enrollee = result.scalar_one_or_none()
        if enrollee is None:
            raise EnrolleeNotFoundError(f"Enrollee {enrollee_id} not found")
        return enrollee
