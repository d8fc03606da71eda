# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- Unit tests (mocked collaborators)
- Integration tests (file-based SQLite through aiosqlite)
"""

from collections.abc import AsyncGenerator, Callable, Generator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from admissions.core.config import AdmissionSettings, clear_settings_cache
from admissions.domains.admission import EnrolleeService, EnrollmentCoordinator
from admissions.domains.admission.credentials import CredentialIssuer
from admissions.domains.auth.password import PasswordHasher
from admissions.infrastructure.database.connection import build_engine, build_sessionmaker
from admissions.infrastructure.database.models import Base, Course, new_id
from admissions.infrastructure.notifications import (
    CredentialNotice,
    NotificationDispatcher,
    PostCommitNotifier,
)

ADMISSION_TIME = datetime(2025, 7, 1, 9, 30, tzinfo=timezone.utc)

# Minimum bcrypt cost keeps storage-backed tests fast
TEST_BCRYPT_ROUNDS = 4


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (uses SQLite)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# =============================================================================
# Environment Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_settings_cache() -> Generator[None, None, None]:
    """Make every test read settings from its own environment."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    """Clock pinned inside the 2025 admission period."""
    return lambda: ADMISSION_TIME


@pytest.fixture
def admission_settings() -> AdmissionSettings:
    """Admission settings tuned for tests."""
    return AdmissionSettings(
        institution_domain="institute.edu",
        bcrypt_rounds=TEST_BCRYPT_ROUNDS,
        commit_max_attempts=5,
    )


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    """URL of a fresh SQLite database file for the test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'admissions.db'}"


@pytest_asyncio.fixture
async def db_engine(sqlite_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Create an engine with all tables created."""
    engine = build_engine(sqlite_url)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Sessionmaker bound to the test database."""
    return build_sessionmaker(db_engine)


@pytest.fixture
def make_course(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[Course]]:
    """Factory inserting a course and returning it."""

    async def _make(
        code: str = "NUR",
        seats_available: int = 30,
        seats_filled: int = 0,
        is_active: bool = True,
        name: str | None = None,
    ) -> Course:
        course = Course(
            id=new_id(),
            code=code,
            name=name or f"{code} Programme",
            seats_available=seats_available,
            seats_filled=seats_filled,
            is_active=is_active,
        )
        async with session_factory() as session:
            async with session.begin():
                session.add(course)
        return course

    return _make


# =============================================================================
# Notification Fixtures
# =============================================================================


class RecordingDispatcher(NotificationDispatcher):
    """Dispatcher that records notices, optionally failing each delivery."""

    def __init__(self, error: Exception | None = None) -> None:
        super().__init__()
        self.notices: list[CredentialNotice] = []
        self.error = error

    async def notify(self, notice: CredentialNotice) -> None:
        self.notices.append(notice)
        if self.error is not None:
            raise self.error


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    """Dispatcher recording every notice."""
    return RecordingDispatcher()


@pytest.fixture
def notifier(dispatcher: RecordingDispatcher) -> PostCommitNotifier:
    """Post-commit queue delivering to the recording dispatcher."""
    return PostCommitNotifier(dispatcher)


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def hasher() -> PasswordHasher:
    """Fast password hasher."""
    return PasswordHasher(rounds=TEST_BCRYPT_ROUNDS)


@pytest.fixture
def coordinator(
    session_factory: async_sessionmaker[AsyncSession],
    admission_settings: AdmissionSettings,
    notifier: PostCommitNotifier,
    fixed_clock: Callable[[], datetime],
) -> EnrollmentCoordinator:
    """Coordinator wired against the test database."""
    return EnrollmentCoordinator.from_settings(
        session_factory,
        admission_settings,
        notifier=notifier,
        clock=fixed_clock,
    )


@pytest.fixture
def enrollee_service(
    session_factory: async_sessionmaker[AsyncSession],
    hasher: PasswordHasher,
    notifier: PostCommitNotifier,
) -> EnrolleeService:
    """Enrollee maintenance service wired against the test database."""
    return EnrolleeService(
        session_factory,
        issuer=CredentialIssuer(session_factory, domain="institute.edu"),
        hasher=hasher,
        notifier=notifier,
    )


@pytest.fixture
def admission_payload() -> Callable[..., dict[str, Any]]:
    """Factory producing raw admission form data."""

    def _payload(course_id: str, index: int = 1, **overrides: Any) -> dict[str, Any]:
        payload = {
            "firstName": "Asha",
            "lastName": "Verma",
            "personalContactAddress": f"asha{index}@example.com",
            "phoneNumber": f"98765{index:05d}",
            "courseReference": course_id,
        }
        payload.update(overrides)
        return payload

    return _payload
