# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer for the admissions service.

This package contains domain services that encapsulate business logic.

Domains:
    admission: Admission provisioning pipeline (identifiers, seats,
        credentials, coordinator) and enrollee maintenance.
    auth: Password hashing for issued credentials.
"""
