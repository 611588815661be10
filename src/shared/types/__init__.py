"""Shared domain types used across layers.

These types flow through Port interfaces and must remain stable.
Both stores expose the same UserRecord; only the shape of `id` differs
(integer in MySQL, generated token in Redis).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime

from src.shared.errors import ValidationError

REQUIRED_FIELDS_MESSAGE = "Name and email are required"


@dataclass(frozen=True)
class UserInput:
    """Mutable fields of a user, as accepted from a client."""

    name: str
    email: str
    phone: str = ""
    address: str = ""

    @classmethod
    def from_payload(
        cls,
        *,
        name: str | None,
        email: str | None,
        phone: str | None = None,
        address: str | None = None,
    ) -> UserInput:
        """Build a UserInput, rejecting a missing or empty name/email."""
        if not name or not email:
            raise ValidationError(REQUIRED_FIELDS_MESSAGE, field="name" if not name else "email")
        return cls(name=name, email=email, phone=phone or "", address=address or "")


@dataclass(frozen=True)
class UserRecord:
    """A stored user. `created_at` is set once at creation."""

    id: int | str
    name: str
    email: str
    phone: str = ""
    address: str = ""
    created_at: datetime | None = None

    def with_input(self, data: UserInput) -> UserRecord:
        """Return a copy with the mutable fields replaced; id and created_at are kept."""
        return replace(
            self,
            name=data.name,
            email=data.email,
            phone=data.phone,
            address=data.address,
        )


def utcnow() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp as written to Redis; None for missing or garbage."""
    if not value:
        return None
    try:
        # Older records were written with a trailing "Z"
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


__all__ = [
    "REQUIRED_FIELDS_MESSAGE",
    "UserInput",
    "UserRecord",
    "parse_timestamp",
    "utcnow",
]
