# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Initial admissions schema.

Revision ID: 001_initial
Revises: None
Create Date: 2025-06-02

Creates courses, accounts and enrollees with every uniqueness constraint
and the seat counter CHECK constraint enforced by the database.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    """Create admissions tables."""
    # ==========================================================================
    # 1. courses table
    # ==========================================================================
    op.create_table(
        "courses",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("code", sa.String(20), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("seats_available", sa.Integer, nullable=False),
        sa.Column("seats_filled", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("code", name="uq_courses_code"),
        sa.CheckConstraint(
            "seats_available >= 1",
            name="ck_courses_seats_available_positive",
        ),
        sa.CheckConstraint(
            "seats_filled >= 0 AND seats_filled <= seats_available",
            name="ck_courses_seats_filled_within_capacity",
        ),
    )

    # ==========================================================================
    # 2. accounts table
    # ==========================================================================
    op.create_table(
        "accounts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("address", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="student"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column(
            "must_rotate_password",
            sa.Boolean,
            nullable=False,
            server_default=sa.true(),
        ),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("username", name="uq_accounts_username"),
        sa.UniqueConstraint("address", name="uq_accounts_address"),
        sa.CheckConstraint(
            "role IN ('admin', 'student', 'faculty')",
            name="ck_accounts_valid_account_role",
        ),
    )

    # ==========================================================================
    # 3. enrollees table
    # ==========================================================================
    op.create_table(
        "enrollees",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("enrollee_identifier", sa.String(64), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("personal_email", sa.String(255), nullable=False),
        sa.Column("institutional_address", sa.String(255), nullable=False),
        sa.Column("phone_number", sa.String(10), nullable=False),
        sa.Column(
            "account_id",
            sa.String(36),
            sa.ForeignKey(
                "accounts.id",
                ondelete="CASCADE",
                name="fk_enrollees_account_id_accounts",
            ),
            nullable=False,
        ),
        sa.Column(
            "course_id",
            sa.String(36),
            sa.ForeignKey(
                "courses.id",
                ondelete="RESTRICT",
                name="fk_enrollees_course_id_courses",
            ),
            nullable=False,
        ),
        sa.Column("admission_period", sa.String(8), nullable=False),
        sa.Column("current_term", sa.Integer, nullable=False, server_default="1"),
        sa.Column("status", sa.String(20), nullable=False, server_default="Active"),
        sa.Column("date_of_birth", sa.Date, nullable=True),
        sa.Column("gender", sa.String(20), nullable=True),
        sa.Column("guardian_name", sa.String(200), nullable=True),
        sa.Column("guardian_phone", sa.String(20), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("enrollee_identifier", name="uq_enrollees_enrollee_identifier"),
        sa.UniqueConstraint("personal_email", name="uq_enrollees_personal_email"),
        sa.UniqueConstraint("institutional_address", name="uq_enrollees_institutional_address"),
        sa.UniqueConstraint("phone_number", name="uq_enrollees_phone_number"),
        sa.UniqueConstraint("account_id", name="uq_enrollees_account_id"),
        sa.CheckConstraint(
            "status IN ('Active', 'Completed', 'Discontinued', 'OnLeave', 'Suspended')",
            name="ck_enrollees_valid_enrollee_status",
        ),
        sa.CheckConstraint("current_term >= 1", name="ck_enrollees_current_term_positive"),
    )
    op.create_index("ix_enrollees_course_id", "enrollees", ["course_id"])
    op.create_index("ix_enrollees_admission_period", "enrollees", ["admission_period"])


def downgrade() -> None:
    """Drop admissions tables."""
    op.drop_index("ix_enrollees_admission_period", table_name="enrollees")
    op.drop_index("ix_enrollees_course_id", table_name="enrollees")
    op.drop_table("enrollees")
    op.drop_table("accounts")
    op.drop_table("courses")
