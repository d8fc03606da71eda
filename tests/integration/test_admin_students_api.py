# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for the admin student endpoints against SQLite."""

import asyncio
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from sqlalchemy import select

from admissions.api.dependencies import get_coordinator, get_enrollee_service
from admissions.api.v1 import router as v1_router
from admissions.infrastructure.database.models import Account, Course, Enrollee

pytestmark = pytest.mark.integration


@pytest.fixture
def app(coordinator, enrollee_service):
    """App whose services run against the test database."""
    app = FastAPI()
    app.include_router(v1_router)
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    app.dependency_overrides[get_enrollee_service] = lambda: enrollee_service
    return app


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


async def _seats_filled(session_factory, course_id: str) -> int:
    async with session_factory() as session:
        return await session.scalar(select(Course.seats_filled).where(Course.id == course_id))


class TestAdmitStudentAPI:
    """Tests for POST /api/v1/admin/students."""

    @pytest.mark.asyncio
    async def test_created(self, client, make_course, admission_payload):
        course = await make_course(code="NUR", seats_available=1)

        response = await client.post("/api/v1/admin/students", json=admission_payload(course.id))

        assert response.status_code == 201
        body = response.json()
        assert body["credentials"]["identifier"] == "NUR2025001"
        assert body["credentials"]["institutional_address"] == "asha.verma.001@institute.edu"
        assert body["credentials"]["note"] == "rotate on first login"
        assert body["enrollee"]["enrollee_identifier"] == "NUR2025001"
        assert body["enrollee"]["status"] == "Active"

    @pytest.mark.asyncio
    async def test_single_seat_concurrent_requests(
        self, client, session_factory, make_course, admission_payload
    ):
        """Two concurrent requests for the last seat: one 201, one 409."""
        course = await make_course(code="NUR", seats_available=1)

        responses = await asyncio.gather(
            client.post("/api/v1/admin/students", json=admission_payload(course.id, index=1)),
            client.post("/api/v1/admin/students", json=admission_payload(course.id, index=2)),
        )

        statuses = sorted(r.status_code for r in responses)
        assert statuses == [201, 409]
        created = next(r for r in responses if r.status_code == 201)
        rejected = next(r for r in responses if r.status_code == 409)
        assert created.json()["credentials"]["identifier"] == "NUR2025001"
        assert rejected.json()["detail"]["error"] == "capacity_exceeded"
        assert rejected.json()["detail"]["retryable"] is True
        assert await _seats_filled(session_factory, course.id) == 1

    @pytest.mark.asyncio
    async def test_duplicate_email_conflict(
        self, client, session_factory, make_course, admission_payload
    ):
        course = await make_course(seats_available=5)
        first = await client.post("/api/v1/admin/students", json=admission_payload(course.id, index=1))
        assert first.status_code == 201

        second = await client.post(
            "/api/v1/admin/students",
            json=admission_payload(course.id, index=2, personalContactAddress="asha1@example.com"),
        )

        assert second.status_code == 409
        assert second.json()["detail"]["error"] == "duplicate_identity"
        assert await _seats_filled(session_factory, course.id) == 1

    @pytest.mark.asyncio
    async def test_invalid_input_is_bad_request(self, client, make_course, admission_payload):
        course = await make_course()

        response = await client.post(
            "/api/v1/admin/students",
            json=admission_payload(course.id, phoneNumber="12345"),
        )

        assert response.status_code == 400
        assert response.json()["detail"]["fields"] == ["phone_number"]

    @pytest.mark.asyncio
    async def test_unknown_course_is_not_found(self, client, admission_payload):
        response = await client.post("/api/v1/admin/students", json=admission_payload(str(uuid4())))

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "course_not_found"


class TestBulkAdmitAPI:
    """Tests for POST /api/v1/admin/students/bulk."""

    @pytest.mark.asyncio
    async def test_partial_success(self, client, make_course, admission_payload):
        course = await make_course(seats_available=5)

        response = await client.post(
            "/api/v1/admin/students/bulk",
            json=[
                admission_payload(course.id, index=1),
                admission_payload(course.id, index=2, personalContactAddress="not-an-email"),
            ],
        )

        assert response.status_code == 200
        body = response.json()
        assert body["total_admitted"] == 1
        assert body["total_failed"] == 1
        assert body["failed"][0]["error"] == "validation_error"


class TestMaintenanceAPI:
    """Tests for password reset and removal."""

    @pytest.mark.asyncio
    async def test_reset_password_replaces_hash(
        self, client, session_factory, make_course, admission_payload, hasher, notifier, dispatcher
    ):
        course = await make_course()
        created = (await client.post("/api/v1/admin/students", json=admission_payload(course.id))).json()
        enrollee_id = created["enrollee"]["id"]
        old_password = created["credentials"]["password"]
        await notifier.drain()

        response = await client.post(
            f"/api/v1/admin/students/{enrollee_id}/reset-password",
            json={"notify": True},
        )
        await notifier.drain()

        assert response.status_code == 200
        new_password = response.json()["password"]
        assert response.json()["identifier"] == "NUR2025001"
        assert response.json()["notified"] is True

        async with session_factory() as session:
            account = await session.scalar(select(Account))

        assert await hasher.verify_async(new_password, account.password_hash)
        assert not await hasher.verify_async(old_password, account.password_hash)
        assert account.must_rotate_password is True
        assert [n.kind.value for n in dispatcher.notices] == ["admission", "password_reset"]

    @pytest.mark.asyncio
    async def test_reset_password_unknown_enrollee(self, client):
        response = await client.post(f"/api/v1/admin/students/{uuid4()}/reset-password")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_remove_active_enrollee_conflicts(self, client, make_course, admission_payload):
        course = await make_course()
        created = (await client.post("/api/v1/admin/students", json=admission_payload(course.id))).json()

        response = await client.delete(f"/api/v1/admin/students/{created['enrollee']['id']}")

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "enrollee_state"

    @pytest.mark.asyncio
    async def test_remove_deletes_enrollee_and_account(
        self, client, session_factory, make_course, admission_payload
    ):
        course = await make_course()
        created = (await client.post("/api/v1/admin/students", json=admission_payload(course.id))).json()
        enrollee_id = created["enrollee"]["id"]

        changed = await client.patch(
            f"/api/v1/admin/students/{enrollee_id}/status",
            json={"status": "Discontinued"},
        )
        assert changed.status_code == 200
        assert changed.json()["status"] == "Discontinued"
        assert changed.json()["course_code"] == "NUR"

        response = await client.delete(f"/api/v1/admin/students/{enrollee_id}")

        assert response.status_code == 204
        async with session_factory() as session:
            assert await session.scalar(select(Enrollee)) is None
            assert await session.scalar(select(Account)) is None
        # seat counts are not touched by removal
        assert await _seats_filled(session_factory, course.id) == 1

    @pytest.mark.asyncio
    async def test_remove_unknown_enrollee(self, client):
        response = await client.delete(f"/api/v1/admin/students/{uuid4()}")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_change_status_persists(self, client, session_factory, make_course, admission_payload):
        course = await make_course()
        created = (await client.post("/api/v1/admin/students", json=admission_payload(course.id))).json()
        enrollee_id = created["enrollee"]["id"]

        response = await client.patch(
            f"/api/v1/admin/students/{enrollee_id}/status",
            json={"status": "OnLeave"},
        )

        assert response.status_code == 200
        assert response.json()["enrollee_identifier"] == "NUR2025001"
        async with session_factory() as session:
            assert await session.scalar(select(Enrollee.status)) == "OnLeave"

    @pytest.mark.asyncio
    async def test_change_status_unknown_enrollee(self, client):
        response = await client.patch(
            f"/api/v1/admin/students/{uuid4()}/status",
            json={"status": "Discontinued"},
        )

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "enrollee_not_found"


class TestMalformedBodyAPI:
    """Tests for request bodies that are not admission objects."""

    @pytest.mark.asyncio
    async def test_invalid_json_is_bad_request(self, client, session_factory):
        response = await client.post(
            "/api/v1/admin/students",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "validation_error"
        async with session_factory() as session:
            assert await session.scalar(select(Enrollee)) is None

    @pytest.mark.asyncio
    async def test_array_body_is_bad_request(self, client):
        response = await client.post("/api/v1/admin/students", json=[1, 2])

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_bulk_object_body_is_bad_request(self, client, make_course, admission_payload):
        course = await make_course()

        response = await client.post("/api/v1/admin/students/bulk", json=admission_payload(course.id))

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "validation_error"
