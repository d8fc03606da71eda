# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Administrative student endpoints.

This module provides:
- POST /admin/students - Admit one student
- POST /admin/students/bulk - Admit several students
- POST /admin/students/{enrollee_id}/reset-password - Reissue a password
- PATCH /admin/students/{enrollee_id}/status - Change a student's status
- DELETE /admin/students/{enrollee_id} - Remove a non-active student

Rejected admissions return a body of the form
``{"detail": {"error": ..., "detail": ..., "retryable": ..., "fields": [...]}}``.

Example:
    POST /api/v1/admin/students
    Body:
        {
            "firstName": "Asha",
            "lastName": "Verma",
            "personalContactAddress": "asha@example.com",
            "phoneNumber": "9876543210",
            "courseReference": "0b7c..."
        }
"""

import logging
from typing import Any, NoReturn
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, HTTPException, Request, status

from admissions.api.dependencies import get_coordinator, get_enrollee_service
from admissions.domains.admission import (
    AdmissionError,
    AdmissionPersistenceError,
    AdmissionValidationError,
    CapacityExceededError,
    CollisionExhaustedError,
    CourseNotFoundError,
    DuplicateIdentityError,
    EnrolleeNotFoundError,
    EnrolleeService,
    EnrolleeStateError,
    EnrollmentCoordinator,
)
from admissions.models.admission import (
    AdmissionErrorResponse,
    AdmissionResponse,
    BulkAdmissionResponse,
    EnrolleeStatusUpdate,
    EnrolleeView,
    PasswordResetRequest,
    PasswordResetResponse,
)
from admissions.utils.logging import bind_context, clear_context

logger = logging.getLogger(__name__)

router = APIRouter()

_STATUS_BY_ERROR: dict[type[AdmissionError], int] = {
    AdmissionValidationError: status.HTTP_400_BAD_REQUEST,
    CourseNotFoundError: status.HTTP_404_NOT_FOUND,
    EnrolleeNotFoundError: status.HTTP_404_NOT_FOUND,
    CapacityExceededError: status.HTTP_409_CONFLICT,
    DuplicateIdentityError: status.HTTP_409_CONFLICT,
    CollisionExhaustedError: status.HTTP_409_CONFLICT,
    EnrolleeStateError: status.HTTP_409_CONFLICT,
    AdmissionPersistenceError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"description": "Invalid request data"},
    404: {"description": "Referenced course or enrollee not found"},
    409: {"description": "No seat left, duplicate identity or conflicting state"},
    500: {"description": "Admission could not be stored"},
}


def _raise_http(e: AdmissionError) -> NoReturn:
    """Translate an admission error into an HTTPException."""
    status_code = _STATUS_BY_ERROR.get(type(e), status.HTTP_500_INTERNAL_SERVER_ERROR)
    body = AdmissionErrorResponse(
        error=e.code,
        detail=e.message,
        retryable=e.retryable,
        fields=getattr(e, "fields", []),
    )

    if status_code >= 500:
        logger.error("Admission request failed: %s", e.message)
    else:
        logger.info("Admission request rejected (%s): %s", e.code, e.message)

    raise HTTPException(status_code=status_code, detail=body.model_dump()) from e


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as e:
        raise AdmissionValidationError("Request body is not valid JSON") from e


@router.post(
    "/students",
    response_model=AdmissionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Admit a student",
    description="""
    Reserve a seat, allocate an identifier and institutional address, issue a
    one-time password and create the linked account and enrollee records.

    The plaintext password is only returned in this response.
    """,
    responses=_ERROR_RESPONSES,
)
async def admit_student(
    request: Request,
    coordinator: EnrollmentCoordinator = Depends(get_coordinator),
) -> AdmissionResponse:
    """Admit one student.

    Any malformed body, including invalid JSON or a non-object value,
    is answered with 400.
    """
    bind_context(request_id=uuid4().hex)
    try:
        payload = await _read_json(request)
        if not isinstance(payload, dict):
            raise AdmissionValidationError("Admission body must be a JSON object")
        result = await coordinator.provision(payload)
    except AdmissionError as e:
        _raise_http(e)
    finally:
        clear_context()

    logger.info(
        "Student admitted: identifier=%s, course=%s",
        result.identifier,
        result.enrollee.course_code,
    )
    return result.to_response()


@router.post(
    "/students/bulk",
    response_model=BulkAdmissionResponse,
    status_code=status.HTTP_200_OK,
    summary="Admit several students",
    description="""
    Admit each row independently. Rows that fail are reported with their
    error code and do not stop the remaining rows.
    """,
)
async def admit_students_bulk(
    request: Request,
    coordinator: EnrollmentCoordinator = Depends(get_coordinator),
) -> BulkAdmissionResponse:
    """Admit several students."""
    bind_context(request_id=uuid4().hex)
    try:
        payload = await _read_json(request)
        if not isinstance(payload, list):
            raise AdmissionValidationError("Bulk admission body must be a JSON array")
        outcome = await coordinator.provision_bulk(payload)
    except AdmissionError as e:
        _raise_http(e)
    finally:
        clear_context()

    return outcome.to_response()


@router.post(
    "/students/{enrollee_id}/reset-password",
    response_model=PasswordResetResponse,
    summary="Reset a student's password",
    responses={404: _ERROR_RESPONSES[404], 500: _ERROR_RESPONSES[500]},
)
async def reset_student_password(
    enrollee_id: UUID,
    request: PasswordResetRequest | None = None,
    service: EnrolleeService = Depends(get_enrollee_service),
) -> PasswordResetResponse:
    """Issue a new one-time password and require rotation on next login."""
    notify = request.notify if request is not None else False
    try:
        reset = await service.reset_password(str(enrollee_id), notify=notify)
    except AdmissionError as e:
        _raise_http(e)

    return reset.to_response()


@router.patch(
    "/students/{enrollee_id}/status",
    response_model=EnrolleeView,
    summary="Change a student's status",
    responses={404: _ERROR_RESPONSES[404], 500: _ERROR_RESPONSES[500]},
)
async def change_student_status(
    enrollee_id: UUID,
    update: EnrolleeStatusUpdate,
    service: EnrolleeService = Depends(get_enrollee_service),
) -> EnrolleeView:
    """Move a student to another lifecycle status, e.g. before removal."""
    try:
        return await service.change_status(str(enrollee_id), update.status)
    except AdmissionError as e:
        _raise_http(e)


@router.delete(
    "/students/{enrollee_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a student",
    responses={
        404: _ERROR_RESPONSES[404],
        409: {"description": "Student is still Active"},
    },
)
async def remove_student(
    enrollee_id: UUID,
    service: EnrolleeService = Depends(get_enrollee_service),
) -> None:
    """Delete a student's enrollee record and account."""
    try:
        await service.remove_enrollee(str(enrollee_id))
    except AdmissionError as e:
        _raise_http(e)
