# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Password hashing for issued credentials using bcrypt.

Only the hash produced here is ever persisted on an Account. Hashing is
CPU-bound (~250ms at 12 rounds), so the async helpers run it in a worker
thread to keep concurrent admissions responsive.

Example:
    >>> hasher = PasswordHasher(rounds=4)
    >>> hashed = hasher.hash("Xy7!abcd")
    >>> hasher.verify("Xy7!abcd", hashed)
    True
"""

import asyncio
import logging

import bcrypt

logger = logging.getLogger(__name__)

# bcrypt only considers the first 72 bytes of its input
BCRYPT_MAX_BYTES = 72


class PasswordHasher:
    """Secure password hashing using bcrypt.

    Attributes:
        _rounds: Number of bcrypt rounds for hashing.
    """

    def __init__(self, rounds: int = 12) -> None:
        """Initialize the password hasher.

        Args:
            rounds: Number of bcrypt rounds. Higher is more secure but slower.
        """
        self._rounds = rounds

    @property
    def rounds(self) -> int:
        """Configured cost factor."""
        return self._rounds

    def hash(self, password: str) -> str:
        """Hash a password using bcrypt.

        Args:
            password: Plain text password to hash.

        Returns:
            Bcrypt hash string with salt embedded.

        Raises:
            ValueError: If password is empty or longer than bcrypt accepts.
        """
        if not password:
            raise ValueError("Password cannot be empty")

        encoded = password.encode("utf-8")
        if len(encoded) > BCRYPT_MAX_BYTES:
            raise ValueError(f"Password exceeds {BCRYPT_MAX_BYTES} bytes")

        salt = bcrypt.gensalt(rounds=self._rounds)
        return bcrypt.hashpw(encoded, salt).decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        """Verify a password against a hash.

        Args:
            password: Plain text password to verify.
            password_hash: Bcrypt hash to verify against.

        Returns:
            True if password matches the hash, False otherwise.
        """
        if not password or not password_hash:
            return False

        try:
            return bcrypt.checkpw(
                password.encode("utf-8"),
                password_hash.encode("utf-8"),
            )
        except ValueError as e:
            logger.warning("Password verification failed: %s", str(e))
            return False

    def needs_rehash(self, password_hash: str) -> bool:
        """Check whether a hash was produced with a different cost factor.

        Args:
            password_hash: Existing bcrypt hash.

        Returns:
            True if the hash should be regenerated with current rounds.
        """
        if not password_hash:
            return False

        # $2b$12$... -> cost is the third "$" separated field
        parts = password_hash.split("$")
        if len(parts) < 4 or not parts[2].isdigit():
            return True
        return int(parts[2]) != self._rounds

    async def hash_async(self, password: str) -> str:
        """Hash a password without blocking the event loop."""
        return await asyncio.to_thread(self.hash, password)

    async def verify_async(self, password: str, password_hash: str) -> bool:
        """Verify a password without blocking the event loop."""
        return await asyncio.to_thread(self.verify, password, password_hash)
