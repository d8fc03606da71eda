# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Admission provisioning domain.

Exports:
    EnrollmentCoordinator: Admits enrollees end to end.
    EnrolleeService: Credential resets and removal.
    IdentifierAllocator: Proposes enrollee identifiers.
    CredentialIssuer: Derives addresses and one-time passwords.
    CapacityManager: Reserves and releases course seats.
    CourseLookup: Read-only course access.
"""

from admissions.domains.admission.capacity import (
    CapacityManager,
    CourseLookup,
)
from admissions.domains.admission.coordinator import (
    BulkEnrollmentResult,
    EnrollmentCoordinator,
    EnrollmentResult,
)
from admissions.domains.admission.credentials import (
    CredentialIssuer,
    IssuedCredentials,
    generate_password,
)
from admissions.domains.admission.exceptions import (
    AdmissionError,
    AdmissionPersistenceError,
    AdmissionValidationError,
    CapacityExceededError,
    CollisionExhaustedError,
    CourseNotFoundError,
    DuplicateIdentityError,
    EnrolleeNotFoundError,
    EnrolleeStateError,
)
from admissions.domains.admission.identifiers import IdentifierAllocator, format_identifier
from admissions.domains.admission.service import CredentialReset, EnrolleeService

__all__ = [
    # Services
    "EnrollmentCoordinator",
    "EnrollmentResult",
    "BulkEnrollmentResult",
    "EnrolleeService",
    "CredentialReset",
    "IdentifierAllocator",
    "format_identifier",
    "CredentialIssuer",
    "IssuedCredentials",
    "generate_password",
    "CapacityManager",
    "CourseLookup",
    # Exceptions
    "AdmissionError",
    "AdmissionValidationError",
    "CourseNotFoundError",
    "CapacityExceededError",
    "CollisionExhaustedError",
    "DuplicateIdentityError",
    "AdmissionPersistenceError",
    "EnrolleeNotFoundError",
    "EnrolleeStateError",
]
