# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for the admissions service.

All timestamps are stored in UTC and all Python datetimes are
timezone-aware. Admission periods and fallback suffixes are derived here
so every component computes them the same way.

Usage:
------
    from admissions.utils.datetime import utc_now, admission_period

    period = admission_period(utc_now())  # "2025"
"""

import time
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Naive datetimes are assumed to already be UTC. SQLite drops tzinfo on
    round trip, so values read back from it pass through here.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def admission_period(moment: datetime) -> str:
    """Return the admission period marker for a point in time.

    The period is the four-digit calendar year in UTC.

    Args:
        moment: Admission timestamp.

    Returns:
        Period marker such as ``"2025"``.

    Example:
        >>> admission_period(datetime(2025, 7, 1, tzinfo=timezone.utc))
        '2025'
    """
    return f"{ensure_utc(moment).year:04d}"


def timestamp_fragment(digits: int = 6) -> str:
    """Return the trailing digits of the current high-resolution clock.

    Used as a last-resort suffix when sequential candidates are exhausted.

    Args:
        digits: Number of trailing digits to keep.

    Returns:
        Zero-padded digit string of the requested length.
    """
    return str(time.time_ns() // 1000)[-digits:].zfill(digits)
