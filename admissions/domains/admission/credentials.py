# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Institutional address derivation and one-time password generation.

Addresses are derived by an ordered list of small strategies. Each strategy
maps the normalized name parts and the identifier to a local part, or
returns None when it cannot apply (for example when a name normalizes to
nothing). The first candidate not already in use wins; when every strategy
is taken a timestamp-keyed address is returned without another lookup, so
derivation always terminates.

Passwords always contain an uppercase letter, a lowercase letter, a digit
and a symbol, with the remaining characters drawn from the full alphabet
and the result shuffled with a CSPRNG.
"""

import logging
import random
import secrets
import string
import unicodedata
from dataclasses import dataclass
from typing import Callable, Sequence

from sqlalchemy import select, union_all
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from admissions.domains.admission.exceptions import (
    AdmissionPersistenceError,
    AdmissionValidationError,
)
from admissions.infrastructure.database.models import Account, Enrollee
from admissions.utils.datetime import timestamp_fragment

logger = logging.getLogger(__name__)

PASSWORD_MIN_LENGTH = 8
PASSWORD_SYMBOLS = "!@#$%"
PASSWORD_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits + PASSWORD_SYMBOLS


@dataclass(frozen=True)
class AddressSeed:
    """Normalized inputs shared by every address strategy."""

    first: str
    last: str
    identifier: str


@dataclass(frozen=True)
class IssuedCredentials:
    """Institutional address and plaintext one-time password.

    The password is handed back to the caller once and never stored.
    """

    institutional_address: str
    password: str

    def __repr__(self) -> str:
        return f"IssuedCredentials(institutional_address={self.institutional_address!r}, password='***')"


AddressStrategy = Callable[[AddressSeed, random.Random], "str | None"]


def normalize_name(value: str) -> str:
    """Reduce a name part to lowercase ASCII letters.

    Accented letters are folded to their base letter; everything else
    (spaces, hyphens, apostrophes, digits, non-Latin scripts) is dropped.

    Example:
        >>> normalize_name("José-María O'Neil")
        'josemariaoneil'
    """
    folded = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    return "".join(ch for ch in folded.lower() if ch in string.ascii_lowercase)


def name_with_identifier_tail(seed: AddressSeed, rng: random.Random) -> str | None:
    """``first.last.<last 3 of identifier>``"""
    if not seed.first or not seed.last:
        return None
    return f"{seed.first}.{seed.last}.{seed.identifier[-3:].lower()}"


def name_with_random_suffix(seed: AddressSeed, rng: random.Random) -> str | None:
    """``first.last.<random 100-999>``"""
    if not seed.first or not seed.last:
        return None
    return f"{seed.first}.{seed.last}.{rng.randint(100, 999)}"


def initial_with_identifier_tail(seed: AddressSeed, rng: random.Random) -> str | None:
    """``<first initial><last>.<last 4 of identifier>``"""
    if not seed.first or not seed.last:
        return None
    return f"{seed.first[0]}{seed.last}.{seed.identifier[-4:].lower()}"


def identifier_only(seed: AddressSeed, rng: random.Random) -> str | None:
    """``student.<identifier>``"""
    return f"student.{seed.identifier.lower()}"


def timestamp_keyed(seed: AddressSeed) -> str:
    """Terminal fallback: ``student.<identifier>.<timestamp fragment>``."""
    return f"student.{seed.identifier.lower()}.{timestamp_fragment(6)}"


DEFAULT_ADDRESS_STRATEGIES: tuple[AddressStrategy, ...] = (
    name_with_identifier_tail,
    name_with_random_suffix,
    initial_with_identifier_tail,
    identifier_only,
)


def generate_password(
    length: int = PASSWORD_MIN_LENGTH,
    rng: random.Random | None = None,
) -> str:
    """Generate a one-time password satisfying the complexity policy.

    Args:
        length: Total length; at least 8.
        rng: Random source. Defaults to the OS CSPRNG.

    Returns:
        Password with at least one uppercase, lowercase, digit and symbol.

    Raises:
        ValueError: If length is below the policy minimum.
    """
    if length < PASSWORD_MIN_LENGTH:
        raise ValueError(f"Password length must be at least {PASSWORD_MIN_LENGTH}")

    rng = rng or secrets.SystemRandom()
    chars = [
        rng.choice(string.ascii_uppercase),
        rng.choice(string.ascii_lowercase),
        rng.choice(string.digits),
        rng.choice(PASSWORD_SYMBOLS),
    ]
    chars.extend(rng.choice(PASSWORD_ALPHABET) for _ in range(length - len(chars)))
    rng.shuffle(chars)
    return "".join(chars)


def satisfies_password_policy(password: str) -> bool:
    """Check a password against the issuance policy."""
    return (
        len(password) >= PASSWORD_MIN_LENGTH
        and any(ch in string.ascii_uppercase for ch in password)
        and any(ch in string.ascii_lowercase for ch in password)
        and any(ch in string.digits for ch in password)
        and any(ch in PASSWORD_SYMBOLS for ch in password)
        and all(ch in PASSWORD_ALPHABET for ch in password)
    )


class CredentialIssuer:
    """Derives institutional addresses and one-time passwords.

    Attributes:
        _session_factory: Sessionmaker for address lookups.
        _domain: Institutional mail domain.
        _password_length: Length of generated passwords.
        _strategies: Ordered address strategies.
        _rng: Random source for passwords and random suffixes.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        domain: str,
        password_length: int = PASSWORD_MIN_LENGTH,
        strategies: Sequence[AddressStrategy] = DEFAULT_ADDRESS_STRATEGIES,
        rng: random.Random | None = None,
    ) -> None:
        if password_length < PASSWORD_MIN_LENGTH:
            raise ValueError(f"Password length must be at least {PASSWORD_MIN_LENGTH}")

        self._session_factory = session_factory
        self._domain = domain.lower().lstrip("@")
        self._password_length = password_length
        self._strategies = tuple(strategies)
        self._rng = rng or secrets.SystemRandom()

    async def issue(self, first_name: str, last_name: str, identifier: str) -> IssuedCredentials:
        """Derive an unused institutional address and a fresh password.

        Args:
            first_name: Enrollee's given name.
            last_name: Enrollee's family name.
            identifier: Allocated enrollee identifier.

        Returns:
            IssuedCredentials with the plaintext password.

        Raises:
            AdmissionValidationError: If the identifier is empty.
        """
        address = await self.derive_address(first_name, last_name, identifier)
        return IssuedCredentials(
            institutional_address=address,
            password=self.new_password(),
        )

    def new_password(self) -> str:
        """Generate a password with the configured length."""
        return generate_password(self._password_length, self._rng)

    def candidate_addresses(self, seed: AddressSeed) -> list[str]:
        """Addresses proposed by each strategy, in order, without duplicates."""
        candidates: list[str] = []
        for strategy in self._strategies:
            local_part = strategy(seed, self._rng)
            if local_part is None:
                continue
            address = f"{local_part}@{self._domain}"
            if address not in candidates:
                candidates.append(address)
        return candidates

    async def derive_address(self, first_name: str, last_name: str, identifier: str) -> str:
        """Pick the first unused address among the strategy candidates.

        Raises:
            AdmissionValidationError: If the identifier is empty.
            AdmissionPersistenceError: If the address lookup fails.
        """
        if not identifier:
            raise AdmissionValidationError("identifier is required", fields=["identifier"])

        seed = AddressSeed(
            first=normalize_name(first_name),
            last=normalize_name(last_name),
            identifier=identifier,
        )

        try:
            async with self._session_factory() as session:
                for address in self.candidate_addresses(seed):
                    if not await self._is_address_taken(session, address):
                        return address
        except SQLAlchemyError as e:
            raise AdmissionPersistenceError(f"Address lookup failed: {e}") from e

        fallback = f"{timestamp_keyed(seed)}@{self._domain}"
        logger.warning(
            "All address strategies taken for %s, using %s",
            identifier,
            fallback,
        )
        return fallback

    async def _is_address_taken(self, session: AsyncSession, address: str) -> bool:
        """Whether an account or enrollee already uses the address."""
        stmt = union_all(
            select(Account.id).where(Account.address == address),
            select(Enrollee.id).where(Enrollee.institutional_address == address),
        ).limit(1)
        result = await session.execute(stmt)
        return result.first() is not None
