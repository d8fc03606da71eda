# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

This module provides dependency functions for FastAPI endpoints.
Dependencies are used to:
- Get the sessionmaker for the admissions database
- Get the post-commit notification queue
- Get service instances

Tests swap storage or delivery by overriding get_session_factory and
get_notifier through ``app.dependency_overrides``.

Example:
    @router.post("/students")
    async def admit(
        coordinator: EnrollmentCoordinator = Depends(get_coordinator),
    ):
        ...
"""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from admissions.core.config import Settings, get_settings
from admissions.domains.admission import (
    CredentialIssuer,
    EnrolleeService,
    EnrollmentCoordinator,
)
from admissions.domains.auth.password import PasswordHasher
from admissions.infrastructure.database.connection import (
    DatabaseError,
    close_database,
    get_sessionmaker,
    init_database,
)
from admissions.infrastructure.notifications import PostCommitNotifier, build_dispatcher

logger = logging.getLogger(__name__)

# Post-commit notification queue singleton
_notifier: PostCommitNotifier | None = None


async def init_services(settings: Settings) -> None:
    """Initialize the database and the notification queue."""
    global _notifier

    await init_database(settings)
    _notifier = PostCommitNotifier(build_dispatcher(settings.smtp))
    logger.info(
        "Credential notices delivered via %s",
        _notifier.dispatcher.__class__.__name__,
    )


async def close_services() -> None:
    """Drain pending notices and close the database."""
    global _notifier

    if _notifier is not None:
        await _notifier.close()
        _notifier = None

    await close_database()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the admissions sessionmaker.

    Raises:
        HTTPException: 503 if the database is not initialized.
    """
    try:
        return get_sessionmaker()
    except DatabaseError as e:
        logger.error("Session factory unavailable: %s", str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not available",
        )


def get_notifier() -> PostCommitNotifier | None:
    """Get the post-commit notification queue, if initialized."""
    return _notifier


SessionFactoryDep = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
NotifierDep = Annotated[PostCommitNotifier | None, Depends(get_notifier)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


def get_coordinator(
    session_factory: SessionFactoryDep,
    notifier: NotifierDep,
    settings: SettingsDep,
) -> EnrollmentCoordinator:
    """Build the enrollment coordinator for a request."""
    return EnrollmentCoordinator.from_settings(
        session_factory,
        settings.admission,
        notifier=notifier,
    )


def get_enrollee_service(
    session_factory: SessionFactoryDep,
    notifier: NotifierDep,
    settings: SettingsDep,
) -> EnrolleeService:
    """Build the enrollee maintenance service for a request."""
    return EnrolleeService(
        session_factory,
        issuer=CredentialIssuer(
            session_factory,
            domain=settings.admission.institution_domain,
            password_length=settings.admission.password_length,
        ),
        hasher=PasswordHasher(rounds=settings.admission.bcrypt_rounds),
        notifier=notifier,
    )
