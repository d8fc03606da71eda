# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment coordinator.

Drives one admission through the provisioning steps:

    RECEIVED -> VALIDATED -> SEAT_RESERVED -> IDENTIFIER_ALLOCATED
             -> CREDENTIALS_ISSUED -> COMMITTED

Any failure moves the attempt to ABORTED. Once a seat has been reserved the
coordinator either commits the Account and Enrollee together or releases the
seat again, so an aborted admission leaves nothing behind.

Identifier and address races lost at the unique constraints are retried with
freshly allocated values. Races on personal contact data are surfaced as
DuplicateIdentityError.

Example:
    >>> coordinator = EnrollmentCoordinator.from_settings(session_factory, settings.admission)
    >>> result = await coordinator.provision(request)
    >>> result.identifier
    'NUR2025001'
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Mapping, Sequence
from uuid import uuid4

from pydantic import ValidationError
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from admissions.core.config.settings import AdmissionSettings
from admissions.domains.admission.capacity import CapacityManager, CourseLookup
from admissions.domains.admission.credentials import CredentialIssuer, IssuedCredentials
from admissions.domains.admission.exceptions import (
    AdmissionError,
    AdmissionPersistenceError,
    AdmissionValidationError,
    CollisionExhaustedError,
    DuplicateIdentityError,
)
from admissions.domains.admission.identifiers import IdentifierAllocator
from admissions.domains.auth.password import PasswordHasher
from admissions.infrastructure.database.models import Account, Course, Enrollee, new_id
from admissions.infrastructure.notifications import CredentialNotice, NoticeKind, PostCommitNotifier
from admissions.models.admission import (
    AdmissionRequest,
    AdmissionResponse,
    BulkAdmissionFailure,
    BulkAdmissionResponse,
    EnrolleeView,
    IssuedCredentialsView,
)
from admissions.models.common import AccountRole, EnrolleeStatus, ProvisioningState
from admissions.utils.datetime import admission_period, utc_now

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass
class EnrollmentResult:
    """Outcome of a committed admission.

    Attributes:
        enrollee: Snapshot of the committed enrollee.
        identifier: Allocated enrollee identifier.
        institutional_address: Issued institutional address.
        password: One-time plaintext password. Not stored anywhere.
        state: Final provisioning state.
    """

    enrollee: EnrolleeView
    identifier: str
    institutional_address: str
    password: str = field(repr=False)
    state: ProvisioningState = ProvisioningState.COMMITTED

    def to_response(self) -> AdmissionResponse:
        return AdmissionResponse(
            enrollee=self.enrollee,
            credentials=IssuedCredentialsView(
                identifier=self.identifier,
                institutional_address=self.institutional_address,
                password=self.password,
            ),
        )


@dataclass
class BulkEnrollmentResult:
    """Outcome of a bulk admission."""

    admitted: list[EnrollmentResult] = field(default_factory=list)
    failed: list[BulkAdmissionFailure] = field(default_factory=list)

    def to_response(self) -> BulkAdmissionResponse:
        return BulkAdmissionResponse(
            admitted=[result.to_response() for result in self.admitted],
            failed=self.failed,
            total_admitted=len(self.admitted),
            total_failed=len(self.failed),
        )


@dataclass
class _Clash:
    identity_fields: list[str] = field(default_factory=list)
    allocation_fields: list[str] = field(default_factory=list)


class _Trace:
    """Tracks and logs the state of one provisioning attempt."""

    def __init__(self) -> None:
        self.ref = uuid4().hex[:8]
        self.state = ProvisioningState.RECEIVED
        logger.info("Admission %s: %s", self.ref, self.state.value)

    def advance(self, state: ProvisioningState, detail: str = "") -> None:
        logger.info(
            "Admission %s: %s -> %s%s",
            self.ref,
            self.state.value,
            state.value,
            f" ({detail})" if detail else "",
        )
        self.state = state


class EnrollmentCoordinator:
    """Orchestrates seat reservation, allocation, issuance and commit.

    Attributes:
        _session_factory: Sessionmaker for lookups and the final commit.
        _capacity: Seat reservation and compensation.
        _allocator: Identifier allocation.
        _issuer: Address and password issuance.
        _hasher: Password hashing.
        _course_lookup: Read-only course access.
        _notifier: Post-commit notification queue, optional.
        _clock: Source of the admission timestamp.
        _commit_max_attempts: Commits tried after allocation races.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        capacity: CapacityManager,
        allocator: IdentifierAllocator,
        issuer: CredentialIssuer,
        hasher: PasswordHasher,
        course_lookup: CourseLookup,
        notifier: PostCommitNotifier | None = None,
        clock: Clock = utc_now,
        commit_max_attempts: int = 3,
    ) -> None:
        self._session_factory = session_factory
        self._capacity = capacity
        self._allocator = allocator
        self._issuer = issuer
        self._hasher = hasher
        self._course_lookup = course_lookup
        self._notifier = notifier
        self._clock = clock
        self._commit_max_attempts = commit_max_attempts

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        settings: AdmissionSettings,
        *,
        notifier: PostCommitNotifier | None = None,
        clock: Clock = utc_now,
    ) -> "EnrollmentCoordinator":
        """Wire a coordinator and its collaborators from settings."""
        return cls(
            session_factory,
            capacity=CapacityManager(session_factory),
            allocator=IdentifierAllocator(
                session_factory,
                sequence_width=settings.sequence_width,
                max_attempts=settings.identifier_max_attempts,
            ),
            issuer=CredentialIssuer(
                session_factory,
                domain=settings.institution_domain,
                password_length=settings.password_length,
            ),
            hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
            course_lookup=CourseLookup(session_factory),
            notifier=notifier,
            clock=clock,
            commit_max_attempts=settings.commit_max_attempts,
        )

    async def provision(self, request: AdmissionRequest | Mapping[str, Any]) -> EnrollmentResult:
        """Admit one enrollee.

        Args:
            request: Typed request, or raw form data validated into one.

        Returns:
            EnrollmentResult carrying the one-time password.

        Raises:
            AdmissionValidationError: If the input is malformed.
            CourseNotFoundError: If the course does not exist.
            DuplicateIdentityError: If the personal email or phone is taken.
            CapacityExceededError: If the course has no free seat.
            CollisionExhaustedError: If no unused identifier or address was found.
            AdmissionPersistenceError: If the commit failed for another reason.
        """
        trace = _Trace()

        try:
            admission = self.validate(request)
            trace.advance(ProvisioningState.VALIDATED)

            course = await self._course_lookup.get_course(str(admission.course_id))
            await self._ensure_identity_free(admission)
            period = admission_period(self._clock())

            await self._capacity.reserve_seat(course.id)
        except AdmissionError as e:
            trace.advance(ProvisioningState.ABORTED, e.code)
            raise
        except SQLAlchemyError as e:
            trace.advance(ProvisioningState.ABORTED, AdmissionPersistenceError.code)
            raise AdmissionPersistenceError(f"Admission lookup failed: {e}") from e

        trace.advance(ProvisioningState.SEAT_RESERVED, course.code)

        committed = False
        try:
            enrollee, credentials = await self._allocate_and_commit(
                admission, course, period, trace
            )
            committed = True
        finally:
            if not committed:
                trace.advance(ProvisioningState.ABORTED, "releasing seat")
                await self._compensate(course.id)

        trace.advance(ProvisioningState.COMMITTED, enrollee.enrollee_identifier)

        view = EnrolleeView.model_validate(enrollee).model_copy(update={"course_code": course.code})
        result = EnrollmentResult(
            enrollee=view,
            identifier=enrollee.enrollee_identifier,
            institutional_address=credentials.institutional_address,
            password=credentials.password,
            state=trace.state,
        )

        if self._notifier is not None:
            self._notifier.schedule(
                CredentialNotice(
                    kind=NoticeKind.ADMISSION,
                    recipient_email=enrollee.personal_email,
                    recipient_name=enrollee.full_name,
                    identifier=result.identifier,
                    institutional_address=result.institutional_address,
                    password=result.password,
                    course_name=course.name,
                )
            )

        return result

    async def provision_bulk(
        self,
        requests: Sequence[AdmissionRequest | Mapping[str, Any]],
    ) -> BulkEnrollmentResult:
        """Admit several enrollees, one independent admission per row.

        A failing row is recorded with its reason and does not stop the
        remaining rows, so committed rows always come back with their
        one-time passwords.

        Args:
            requests: Typed requests or raw rows.

        Returns:
            BulkEnrollmentResult with admitted and failed rows.
        """
        outcome = BulkEnrollmentResult()

        for row, request in enumerate(requests, start=1):
            try:
                outcome.admitted.append(await self.provision(request))
            except AdmissionError as e:
                outcome.failed.append(_bulk_failure(row, request, e.code, e.message))
            except Exception:
                logger.exception("Bulk admission row %d failed unexpectedly", row)
                outcome.failed.append(
                    _bulk_failure(
                        row,
                        request,
                        AdmissionPersistenceError.code,
                        "Admission could not be completed",
                    )
                )

        logger.info(
            "Bulk admission finished: %d admitted, %d failed",
            len(outcome.admitted),
            len(outcome.failed),
        )
        return outcome

    def validate(self, request: AdmissionRequest | Mapping[str, Any]) -> AdmissionRequest:
        """Validate raw input into an AdmissionRequest.

        Raises:
            AdmissionValidationError: Listing every offending field.
        """
        if isinstance(request, AdmissionRequest):
            return request

        try:
            return AdmissionRequest.model_validate(request)
        except ValidationError as e:
            fields = sorted(
                {AdmissionRequest.field_for_alias(str(err["loc"][0])) for err in e.errors() if err["loc"]}
            )
            raise AdmissionValidationError(
                f"Invalid admission request: {', '.join(fields) or 'malformed body'}",
                fields=fields,
            ) from e

    async def _ensure_identity_free(self, admission: AdmissionRequest) -> None:
        """Reject personal contact data already held by an enrollee."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Enrollee.personal_email, Enrollee.phone_number).where(
                    or_(
                        Enrollee.personal_email == admission.personal_email,
                        Enrollee.phone_number == admission.phone_number,
                    )
                )
            )
            rows = result.all()

        fields = _identity_clashes(rows, admission)
        if fields:
            raise DuplicateIdentityError(
                f"An enrollee with this {' and '.join(f.replace('_', ' ') for f in fields)} already exists",
                fields=fields,
            )

    async def _allocate_and_commit(
        self,
        admission: AdmissionRequest,
        course: Course,
        period: str,
        trace: _Trace,
    ) -> tuple[Enrollee, IssuedCredentials]:
        """Allocate values and commit, retrying lost allocation races."""
        for attempt in range(1, self._commit_max_attempts + 1):
            try:
                identifier = await self._allocator.allocate(course.code, period)
                trace.advance(ProvisioningState.IDENTIFIER_ALLOCATED, identifier)

                credentials = await self._issuer.issue(
                    admission.first_name, admission.last_name, identifier
                )
                trace.advance(
                    ProvisioningState.CREDENTIALS_ISSUED, credentials.institutional_address
                )

                password_hash = await self._hasher.hash_async(credentials.password)

                try:
                    enrollee = await self._persist(
                        admission, course, period, identifier, credentials, password_hash
                    )
                except IntegrityError as e:
                    clash = await self._find_clash(
                        admission, identifier, credentials.institutional_address
                    )
                    if clash.identity_fields:
                        raise DuplicateIdentityError(
                            "Personal contact data was taken by a concurrent admission",
                            fields=clash.identity_fields,
                        ) from e
                    if not clash.allocation_fields:
                        raise AdmissionPersistenceError(
                            f"Admission commit rejected: {e.orig}"
                        ) from e

                    logger.info(
                        "Admission %s: lost race on %s (attempt %d/%d)",
                        trace.ref,
                        ", ".join(clash.allocation_fields),
                        attempt,
                        self._commit_max_attempts,
                    )
                    continue
            except SQLAlchemyError as e:
                raise AdmissionPersistenceError(f"Admission storage failed: {e}") from e

            return enrollee, credentials

        raise CollisionExhaustedError(
            f"Identifier or address still taken after {self._commit_max_attempts} attempts"
        )

    async def _persist(
        self,
        admission: AdmissionRequest,
        course: Course,
        period: str,
        identifier: str,
        credentials: IssuedCredentials,
        password_hash: str,
    ) -> Enrollee:
        """Insert the Account and Enrollee in one transaction."""
        account = Account(
            id=new_id(),
            username=identifier,
            address=credentials.institutional_address,
            password_hash=password_hash,
            role=AccountRole.STUDENT.value,
            is_active=True,
            must_rotate_password=True,
        )
        enrollee = Enrollee(
            id=new_id(),
            enrollee_identifier=identifier,
            first_name=admission.first_name,
            last_name=admission.last_name,
            personal_email=admission.personal_email,
            institutional_address=credentials.institutional_address,
            phone_number=admission.phone_number,
            account_id=account.id,
            course_id=course.id,
            admission_period=period,
            current_term=1,
            status=EnrolleeStatus.ACTIVE.value,
            date_of_birth=admission.date_of_birth,
            gender=admission.gender,
            guardian_name=admission.guardian_name,
            guardian_phone=admission.guardian_phone,
        )

        async with self._session_factory() as session:
            async with session.begin():
                session.add(account)
                await session.flush()
                session.add(enrollee)

        return enrollee

    async def _find_clash(
        self,
        admission: AdmissionRequest,
        identifier: str,
        address: str,
    ) -> _Clash:
        """Work out which unique value a rejected commit collided with."""
        clash = _Clash()

        try:
            async with self._session_factory() as session:
                rows = (
                    await session.execute(
                        select(Enrollee.personal_email, Enrollee.phone_number).where(
                            or_(
                                Enrollee.personal_email == admission.personal_email,
                                Enrollee.phone_number == admission.phone_number,
                            )
                        )
                    )
                ).all()
                clash.identity_fields = _identity_clashes(rows, admission)

                identifier_taken = await session.scalar(
                    select(Enrollee.id).where(Enrollee.enrollee_identifier == identifier).limit(1)
                ) or await session.scalar(
                    select(Account.id).where(Account.username == identifier).limit(1)
                )
                address_taken = await session.scalar(
                    select(Enrollee.id).where(Enrollee.institutional_address == address).limit(1)
                ) or await session.scalar(select(Account.id).where(Account.address == address).limit(1))
        except SQLAlchemyError as e:
            raise AdmissionPersistenceError(f"Clash lookup failed: {e}") from e

        if identifier_taken:
            clash.allocation_fields.append("enrollee_identifier")
        if address_taken:
            clash.allocation_fields.append("institutional_address")
        return clash

    async def _compensate(self, course_id: str) -> None:
        """Release a reserved seat, even if the caller is being cancelled."""
        try:
            await asyncio.shield(self._capacity.release_seat(course_id))
        except AdmissionPersistenceError:
            logger.exception("Seat release failed for course %s; seat count is off by one", course_id)


def _identity_clashes(rows: Sequence[Any], admission: AdmissionRequest) -> list[str]:
    fields = []
    if any(row.personal_email == admission.personal_email for row in rows):
        fields.append("personal_email")
    if any(row.phone_number == admission.phone_number for row in rows):
        fields.append("phone_number")
    return fields


def _bulk_failure(row: int, request: Any, code: str, detail: str) -> BulkAdmissionFailure:
    return BulkAdmissionFailure(
        row=row,
        personal_email=_personal_email_of(request),
        error=code,
        detail=detail,
    )


def _personal_email_of(request: Any) -> str | None:
    if isinstance(request, AdmissionRequest):
        return request.personal_email
    if not isinstance(request, Mapping):
        return None
    for key in ("personal_email", "personalContactAddress", "personalEmail"):
        value = request.get(key)
        if isinstance(value, str):
            return value
    return None
