# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Exceptions raised by the admission pipeline.

Every error raised before the final commit leaves no residual state: the
coordinator releases any reserved seat before re-raising.
"""


class AdmissionError(Exception):
    """Base exception for admission pipeline errors.

    Attributes:
        code: Stable machine-readable error code.
        retryable: Whether resubmitting the same request may succeed.
    """

    code = "admission_error"
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AdmissionValidationError(AdmissionError):
    """Raised when admission input is missing or malformed.

    Attributes:
        fields: Names of the offending fields.
    """

    code = "validation_error"

    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.fields = fields or []


class CourseNotFoundError(AdmissionError):
    """Raised when the referenced course does not exist."""

    code = "course_not_found"


class CapacityExceededError(AdmissionError):
    """Raised when a course has no seat left to reserve."""

    code = "capacity_exceeded"
    retryable = True


class CollisionExhaustedError(AdmissionError):
    """Raised when no unused identifier or address could be produced."""

    code = "collision_exhausted"
    retryable = True


class DuplicateIdentityError(AdmissionError):
    """Raised when personal contact data already belongs to an enrollee.

    Attributes:
        fields: Which identity fields clashed.
    """

    code = "duplicate_identity"
    retryable = True

    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.fields = fields or []


class AdmissionPersistenceError(AdmissionError):
    """Raised when storage fails for a reason other than a uniqueness clash."""

    code = "persistence_error"


class EnrolleeNotFoundError(AdmissionError):
    """Raised when an enrollee does not exist."""

    code = "enrollee_not_found"


class EnrolleeStateError(AdmissionError):
    """Raised when an enrollee's status forbids the requested operation."""

    code = "enrollee_state"
