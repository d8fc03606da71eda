# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Shared enums for API and domain models."""

from enum import Enum


class EnrolleeStatus(str, Enum):
    """Lifecycle status of an enrollee."""

    ACTIVE = "Active"
    COMPLETED = "Completed"
    DISCONTINUED = "Discontinued"
    ON_LEAVE = "OnLeave"
    SUSPENDED = "Suspended"


class AccountRole(str, Enum):
    """Role tag carried by an account."""

    ADMIN = "admin"
    STUDENT = "student"
    FACULTY = "faculty"


class ProvisioningState(str, Enum):
    """States of a single provisioning attempt.

    ``COMMITTED`` and ``ABORTED`` are terminal.
    """

    RECEIVED = "received"
    VALIDATED = "validated"
    SEAT_RESERVED = "seat_reserved"
    IDENTIFIER_ALLOCATED = "identifier_allocated"
    CREDENTIALS_ISSUED = "credentials_issued"
    COMMITTED = "committed"
    ABORTED = "aborted"
