# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Account, Enrollee and Course tables.

Uniqueness of login names, addresses, identifiers, personal emails and
phone numbers is declared here so the database rejects duplicates even when
two admissions race past the application-level pre-checks. The seat counter
invariant is also declared as a CHECK constraint.
"""

from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from admissions.infrastructure.database.models.base import (
    Base,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)

ENROLLEE_STATUSES = ("Active", "Completed", "Discontinued", "OnLeave", "Suspended")
ACCOUNT_ROLES = ("admin", "student", "faculty")


class Course(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A course with a finite number of seats."""

    __tablename__ = "courses"
    __table_args__ = (
        CheckConstraint("seats_available >= 1", name="seats_available_positive"),
        CheckConstraint(
            "seats_filled >= 0 AND seats_filled <= seats_available",
            name="seats_filled_within_capacity",
        ),
    )

    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    seats_available: Mapped[int] = mapped_column(Integer, nullable=False)
    seats_filled: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    enrollees: Mapped[list["Enrollee"]] = relationship(back_populates="course")


class Account(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Authentication identity owned by exactly one enrollee profile."""

    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint(
            "role IN ('admin', 'student', 'faculty')",
            name="valid_account_role",
        ),
    )

    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    address: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="student")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    must_rotate_password: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    enrollee: Mapped["Enrollee | None"] = relationship(
        back_populates="account",
        uselist=False,
        passive_deletes=True,
    )


class Enrollee(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Enrollee profile, created and deleted together with its Account."""

    __tablename__ = "enrollees"
    __table_args__ = (
        CheckConstraint(
            "status IN ('Active', 'Completed', 'Discontinued', 'OnLeave', 'Suspended')",
            name="valid_enrollee_status",
        ),
        CheckConstraint("current_term >= 1", name="current_term_positive"),
    )

    enrollee_identifier: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    personal_email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    institutional_address: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    phone_number: Mapped[str] = mapped_column(String(10), unique=True, nullable=False)
    account_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    course_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("courses.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    admission_period: Mapped[str] = mapped_column(String(8), nullable=False, index=True)
    current_term: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Active")

    date_of_birth: Mapped[date | None] = mapped_column(Date)
    gender: Mapped[str | None] = mapped_column(String(20))
    guardian_name: Mapped[str | None] = mapped_column(String(200))
    guardian_phone: Mapped[str | None] = mapped_column(String(20))

    account: Mapped[Account] = relationship(back_populates="enrollee")
    course: Mapped[Course] = relationship(back_populates="enrollees")

    @property
    def full_name(self) -> str:
        """Display name composed from the name parts."""
        return f"{self.first_name} {self.last_name}".strip()
