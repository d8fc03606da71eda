# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the enrollment coordinator with mocked collaborators."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from admissions.domains.admission.coordinator import EnrollmentCoordinator, _Clash
from admissions.domains.admission.credentials import IssuedCredentials
from admissions.domains.admission.exceptions import (
    AdmissionPersistenceError,
    AdmissionValidationError,
    CapacityExceededError,
    CollisionExhaustedError,
    CourseNotFoundError,
    DuplicateIdentityError,
)
from admissions.infrastructure.database.models import Course, Enrollee
from admissions.infrastructure.notifications import NoticeKind
from admissions.models.common import ProvisioningState

COURSE_ID = str(uuid4())


def _integrity_error() -> IntegrityError:
    return IntegrityError("INSERT INTO enrollees ...", {}, Exception("UNIQUE constraint failed"))


@pytest.fixture
def course() -> Course:
    return Course(id=COURSE_ID, code="NUR", name="Nursing", seats_available=30, seats_filled=0, is_active=True)


@pytest.fixture
def request_data() -> dict:
    return {
        "firstName": "Asha",
        "lastName": "Verma",
        "personalContactAddress": "asha@example.com",
        "phoneNumber": "9876543210",
        "courseReference": COURSE_ID,
    }


@pytest.fixture
def capacity():
    capacity = MagicMock()
    capacity.reserve_seat = AsyncMock(return_value=None)
    capacity.release_seat = AsyncMock(return_value=True)
    return capacity


@pytest.fixture
def allocator():
    allocator = MagicMock()
    allocator.allocate = AsyncMock(side_effect=["NUR2025001", "NUR2025002", "NUR2025003"])
    return allocator


@pytest.fixture
def issuer():
    issuer = MagicMock()

    async def _issue(first_name, last_name, identifier):
        return IssuedCredentials(f"asha.verma.{identifier[-3:]}@institute.edu", "Xy7!abcd")

    issuer.issue = AsyncMock(side_effect=_issue)
    return issuer


@pytest.fixture
def hasher():
    hasher = MagicMock()
    hasher.hash_async = AsyncMock(return_value="$2b$04$hash")
    return hasher


@pytest.fixture
def course_lookup(course):
    lookup = MagicMock()
    lookup.get_course = AsyncMock(return_value=course)
    return lookup


@pytest.fixture
def mock_notifier():
    return MagicMock()


def _persisted(admission, course, period, identifier, credentials, password_hash) -> Enrollee:
    return Enrollee(
        id=str(uuid4()),
        enrollee_identifier=identifier,
        first_name=admission.first_name,
        last_name=admission.last_name,
        personal_email=admission.personal_email,
        institutional_address=credentials.institutional_address,
        phone_number=admission.phone_number,
        account_id=str(uuid4()),
        course_id=course.id,
        admission_period=period,
        current_term=1,
        status="Active",
        created_at=datetime(2025, 7, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def coordinator(capacity, allocator, issuer, hasher, course_lookup, mock_notifier):
    """Coordinator whose storage steps are mocked."""
    coordinator = EnrollmentCoordinator(
        MagicMock(),
        capacity=capacity,
        allocator=allocator,
        issuer=issuer,
        hasher=hasher,
        course_lookup=course_lookup,
        notifier=mock_notifier,
        clock=lambda: datetime(2025, 7, 1, tzinfo=timezone.utc),
        commit_max_attempts=3,
    )
    coordinator._ensure_identity_free = AsyncMock(return_value=None)
    coordinator._persist = AsyncMock(side_effect=_persisted)
    coordinator._find_clash = AsyncMock(return_value=_Clash())
    return coordinator


class TestProvisionSuccess:
    """Tests for a successful admission."""

    @pytest.mark.asyncio
    async def test_commits_and_returns_credentials(self, coordinator, request_data, capacity):
        result = await coordinator.provision(request_data)

        assert result.identifier == "NUR2025001"
        assert result.institutional_address == "asha.verma.001@institute.edu"
        assert result.password == "Xy7!abcd"
        assert result.state is ProvisioningState.COMMITTED
        assert result.enrollee.course_code == "NUR"
        assert result.enrollee.admission_period == "2025"
        capacity.reserve_seat.assert_awaited_once_with(COURSE_ID)
        capacity.release_seat.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_only_hash_is_persisted(self, coordinator, request_data):
        await coordinator.provision(request_data)

        args = coordinator._persist.await_args.args
        assert args[-1] == "$2b$04$hash"

    @pytest.mark.asyncio
    async def test_schedules_notice_after_commit(self, coordinator, request_data, mock_notifier):
        await coordinator.provision(request_data)

        mock_notifier.schedule.assert_called_once()
        notice = mock_notifier.schedule.call_args.args[0]
        assert notice.kind is NoticeKind.ADMISSION
        assert notice.recipient_email == "asha@example.com"
        assert notice.identifier == "NUR2025001"
        assert notice.course_name == "Nursing"

    @pytest.mark.asyncio
    async def test_response_carries_rotation_note(self, coordinator, request_data):
        response = (await coordinator.provision(request_data)).to_response()

        assert response.credentials.note == "rotate on first login"
        assert response.credentials.identifier == "NUR2025001"


class TestProvisionRejections:
    """Tests for admissions rejected before a seat is reserved."""

    @pytest.mark.asyncio
    async def test_invalid_input_lists_fields(self, coordinator, request_data, capacity):
        request_data["phoneNumber"] = "123"
        del request_data["firstName"]

        with pytest.raises(AdmissionValidationError) as exc_info:
            await coordinator.provision(request_data)

        assert exc_info.value.fields == ["first_name", "phone_number"]
        capacity.reserve_seat.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_course(self, coordinator, request_data, course_lookup, capacity):
        course_lookup.get_course.side_effect = CourseNotFoundError("missing")

        with pytest.raises(CourseNotFoundError):
            await coordinator.provision(request_data)

        capacity.reserve_seat.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_duplicate_identity(self, coordinator, request_data, capacity):
        coordinator._ensure_identity_free.side_effect = DuplicateIdentityError(
            "taken", fields=["personal_email"]
        )

        with pytest.raises(DuplicateIdentityError) as exc_info:
            await coordinator.provision(request_data)

        assert exc_info.value.retryable is True
        capacity.reserve_seat.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_capacity_exceeded(self, coordinator, request_data, capacity, allocator):
        capacity.reserve_seat.side_effect = CapacityExceededError("full")

        with pytest.raises(CapacityExceededError):
            await coordinator.provision(request_data)

        allocator.allocate.assert_not_awaited()
        capacity.release_seat.assert_not_awaited()


class TestProvisionCompensation:
    """Tests for failures after the seat was reserved."""

    @pytest.mark.asyncio
    async def test_allocation_failure_releases_seat(self, coordinator, request_data, capacity, allocator, mock_notifier):
        allocator.allocate.side_effect = CollisionExhaustedError("exhausted")

        with pytest.raises(CollisionExhaustedError):
            await coordinator.provision(request_data)

        capacity.release_seat.assert_awaited_once_with(COURSE_ID)
        mock_notifier.schedule.assert_not_called()

    @pytest.mark.asyncio
    async def test_issuance_failure_releases_seat(self, coordinator, request_data, capacity, issuer):
        issuer.issue.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await coordinator.provision(request_data)

        capacity.release_seat.assert_awaited_once_with(COURSE_ID)

    @pytest.mark.asyncio
    async def test_allocation_race_is_retried(self, coordinator, request_data, capacity):
        """A lost identifier race is retried with a fresh identifier."""
        calls = {"n": 0}

        async def _persist(*args):
            calls["n"] += 1
            if calls["n"] == 1:
                raise _integrity_error()
            return _persisted(*args)

        coordinator._persist.side_effect = _persist
        coordinator._find_clash.return_value = _Clash(allocation_fields=["enrollee_identifier"])

        result = await coordinator.provision(request_data)

        assert result.identifier == "NUR2025002"
        capacity.release_seat.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_allocation_race_exhausts_attempts(self, coordinator, request_data, capacity):
        coordinator._persist.side_effect = _integrity_error()
        coordinator._find_clash.return_value = _Clash(allocation_fields=["institutional_address"])

        with pytest.raises(CollisionExhaustedError):
            await coordinator.provision(request_data)

        assert coordinator._persist.await_count == 3
        capacity.release_seat.assert_awaited_once_with(COURSE_ID)

    @pytest.mark.asyncio
    async def test_identity_race_surfaces_duplicate(self, coordinator, request_data, capacity):
        coordinator._persist.side_effect = _integrity_error()
        coordinator._find_clash.return_value = _Clash(identity_fields=["phone_number"])

        with pytest.raises(DuplicateIdentityError) as exc_info:
            await coordinator.provision(request_data)

        assert exc_info.value.fields == ["phone_number"]
        assert coordinator._persist.await_count == 1
        capacity.release_seat.assert_awaited_once_with(COURSE_ID)

    @pytest.mark.asyncio
    async def test_unexplained_integrity_error_is_persistence_error(self, coordinator, request_data, capacity):
        coordinator._persist.side_effect = _integrity_error()

        with pytest.raises(AdmissionPersistenceError):
            await coordinator.provision(request_data)

        capacity.release_seat.assert_awaited_once_with(COURSE_ID)

    @pytest.mark.asyncio
    async def test_storage_failure_is_persistence_error(self, coordinator, request_data, capacity):
        coordinator._persist.side_effect = OperationalError("INSERT", {}, Exception("disk I/O error"))

        with pytest.raises(AdmissionPersistenceError):
            await coordinator.provision(request_data)

        capacity.release_seat.assert_awaited_once_with(COURSE_ID)

    @pytest.mark.asyncio
    async def test_allocation_storage_failure_is_persistence_error(
        self, coordinator, request_data, capacity, allocator
    ):
        allocator.allocate.side_effect = OperationalError("SELECT", {}, Exception("disk I/O error"))

        with pytest.raises(AdmissionPersistenceError):
            await coordinator.provision(request_data)

        capacity.release_seat.assert_awaited_once_with(COURSE_ID)
        coordinator._persist.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_issuance_storage_failure_is_persistence_error(self, coordinator, request_data, capacity, issuer):
        issuer.issue.side_effect = OperationalError("SELECT", {}, Exception("database is locked"))

        with pytest.raises(AdmissionPersistenceError):
            await coordinator.provision(request_data)

        capacity.release_seat.assert_awaited_once_with(COURSE_ID)

    @pytest.mark.asyncio
    async def test_clash_lookup_failure_is_persistence_error(self, coordinator, request_data, capacity):
        coordinator._persist.side_effect = _integrity_error()
        coordinator._find_clash.side_effect = AdmissionPersistenceError("Clash lookup failed")

        with pytest.raises(AdmissionPersistenceError):
            await coordinator.provision(request_data)

        capacity.release_seat.assert_awaited_once_with(COURSE_ID)

    @pytest.mark.asyncio
    async def test_failed_release_does_not_mask_error(self, coordinator, request_data, capacity, allocator):
        allocator.allocate.side_effect = CollisionExhaustedError("exhausted")
        capacity.release_seat.side_effect = AdmissionPersistenceError("db down")

        with pytest.raises(CollisionExhaustedError):
            await coordinator.provision(request_data)


class TestProvisionBulk:
    """Tests for bulk admission."""

    @pytest.mark.asyncio
    async def test_collects_row_failures(self, coordinator, request_data, capacity):
        bad_row = dict(request_data, phoneNumber="12")
        second = dict(request_data, personalContactAddress="ravi@example.com", phoneNumber="9876543211")
        capacity.reserve_seat.side_effect = [None, CapacityExceededError("full")]

        outcome = await coordinator.provision_bulk([request_data, bad_row, second])

        assert [r.identifier for r in outcome.admitted] == ["NUR2025001"]
        assert [(f.row, f.error) for f in outcome.failed] == [
            (2, "validation_error"),
            (3, "capacity_exceeded"),
        ]
        assert outcome.failed[1].personal_email == "ravi@example.com"

        response = outcome.to_response()
        assert response.total_admitted == 1
        assert response.total_failed == 2

    @pytest.mark.asyncio
    async def test_unexpected_row_error_keeps_committed_rows(self, coordinator, request_data, issuer):
        second = dict(request_data, personalContactAddress="ravi@example.com", phoneNumber="9876543211")
        third = dict(request_data, personalContactAddress="mira@example.com", phoneNumber="9876543212")
        issuer.issue.side_effect = [
            IssuedCredentials("asha.verma.001@institute.edu", "Xy7!abcd"),
            RuntimeError("boom"),
            IssuedCredentials("asha.verma.003@institute.edu", "Pq9@efgh"),
        ]

        outcome = await coordinator.provision_bulk([request_data, second, third])

        assert [r.password for r in outcome.admitted] == ["Xy7!abcd", "Pq9@efgh"]
        assert [(f.row, f.error) for f in outcome.failed] == [(2, "persistence_error")]
        assert outcome.failed[0].personal_email == "ravi@example.com"

    @pytest.mark.asyncio
    async def test_non_mapping_row_is_recorded(self, coordinator, request_data):
        outcome = await coordinator.provision_bulk([request_data, "not a row"])

        assert len(outcome.admitted) == 1
        assert outcome.failed[0].row == 2
        assert outcome.failed[0].error == "validation_error"
        assert outcome.failed[0].personal_email is None
