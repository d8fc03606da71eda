# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Request and response models for admission provisioning.

AdmissionRequest is the typed input of the pipeline. It is validated before
any side effect happens; malformed input never reaches the database.
"""

import re
from datetime import date, datetime
from typing import Annotated
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StringConstraints, field_validator

from admissions.models.common import EnrolleeStatus, ProvisioningState

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^\d{10}$")

CREDENTIAL_NOTE = "rotate on first login"

NamePart = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]


class AdmissionRequest(BaseModel):
    """Personal data for a new enrollee.

    Attributes:
        first_name: Given name.
        last_name: Family name.
        personal_email: Personal contact address, unique across enrollees.
        phone_number: Ten-digit phone number, unique across enrollees.
        course_id: Reference to the owning course.
        date_of_birth: Optional demographic field.
        gender: Optional demographic field.
        guardian_name: Optional guardian name.
        guardian_phone: Optional guardian phone.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    # Accepts both snake_case and the portal's camelCase form fields
    first_name: NamePart = Field(validation_alias=AliasChoices("first_name", "firstName"))
    last_name: NamePart = Field(validation_alias=AliasChoices("last_name", "lastName"))
    personal_email: str = Field(
        validation_alias=AliasChoices("personal_email", "personalContactAddress", "personalEmail"),
        max_length=255,
    )
    phone_number: str = Field(validation_alias=AliasChoices("phone_number", "phoneNumber"))
    course_id: UUID = Field(
        validation_alias=AliasChoices("course_id", "courseReference", "courseId"),
    )
    date_of_birth: date | None = Field(
        default=None,
        validation_alias=AliasChoices("date_of_birth", "dateOfBirth"),
    )
    gender: str | None = Field(default=None, max_length=20)
    guardian_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("guardian_name", "guardianName"),
        max_length=200,
    )
    guardian_phone: str | None = Field(
        default=None,
        validation_alias=AliasChoices("guardian_phone", "guardianPhone"),
        max_length=20,
    )

    @field_validator("personal_email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        value = value.lower()
        if not EMAIL_PATTERN.match(value):
            raise ValueError("personal contact address is not a valid email address")
        return value

    @field_validator("phone_number")
    @classmethod
    def _check_phone(cls, value: str) -> str:
        if not PHONE_PATTERN.match(value):
            raise ValueError("phone number must be exactly 10 digits")
        return value

    @classmethod
    def field_for_alias(cls, alias: str) -> str:
        """Map an accepted input key to the field name it populates."""
        for name, info in cls.model_fields.items():
            choices = info.validation_alias
            if isinstance(choices, AliasChoices) and alias in choices.choices:
                return name
        return alias


class EnrolleeView(BaseModel):
    """Read model of a committed enrollee."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    enrollee_identifier: str
    first_name: str
    last_name: str
    personal_email: str
    institutional_address: str
    phone_number: str
    course_id: UUID
    course_code: str | None = None
    admission_period: str
    current_term: int
    status: EnrolleeStatus
    created_at: datetime | None = None


class IssuedCredentialsView(BaseModel):
    """One-time credentials returned to the administrator."""

    identifier: str
    institutional_address: str
    password: str
    note: str = CREDENTIAL_NOTE


class AdmissionResponse(BaseModel):
    """Response for a successful admission."""

    enrollee: EnrolleeView
    credentials: IssuedCredentialsView


class AdmissionErrorResponse(BaseModel):
    """Error body for rejected admissions."""

    error: str
    detail: str
    retryable: bool = False
    fields: list[str] = Field(default_factory=list)


class BulkAdmissionFailure(BaseModel):
    """One rejected row of a bulk admission."""

    row: int
    personal_email: str | None = None
    error: str
    detail: str


class BulkAdmissionResponse(BaseModel):
    """Response for a bulk admission."""

    admitted: list[AdmissionResponse]
    failed: list[BulkAdmissionFailure]
    total_admitted: int
    total_failed: int


class PasswordResetRequest(BaseModel):
    """Request to reissue an enrollee's credentials."""

    notify: bool = False


class EnrolleeStatusUpdate(BaseModel):
    """Request to move an enrollee to another lifecycle status."""

    status: EnrolleeStatus


class PasswordResetResponse(BaseModel):
    """Reissued one-time credentials."""

    enrollee_id: UUID
    identifier: str
    institutional_address: str
    password: str
    notified: bool
    note: str = CREDENTIAL_NOTE


__all__ = [
    "AdmissionRequest",
    "AdmissionResponse",
    "AdmissionErrorResponse",
    "BulkAdmissionFailure",
    "BulkAdmissionResponse",
    "EnrolleeStatusUpdate",
    "EnrolleeView",
    "IssuedCredentialsView",
    "PasswordResetRequest",
    "PasswordResetResponse",
    "ProvisioningState",
    "CREDENTIAL_NOTE",
]
