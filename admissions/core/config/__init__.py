# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for the admissions service.

Example:
    >>> from admissions.core.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.environment)
    'development'
"""

from admissions.core.config.settings import (
    AdmissionSettings,
    APISettings,
    CORSSettings,
    DatabaseSettings,
    Settings,
    SMTPSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "clear_settings_cache",
    # Subsettings
    "DatabaseSettings",
    "AdmissionSettings",
    "SMTPSettings",
    "CORSSettings",
    "APISettings",
]
