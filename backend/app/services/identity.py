"""Identity normalisation and canonical pair keys."""

from __future__ import annotations

from app.models.chat import IDENTITY_LENGTH

KEY_SEPARATOR = ":"


class InvalidIdentity(ValueError):
    """Raised when a value cannot be used as an identity."""


def normalize_identity(value: object) -> str:
    """Return the canonical form of an email-style identity."""

    if not isinstance(value, str):
        raise InvalidIdentity("Identity must be a string")
    identity = value.strip().lower()
    if not identity or len(identity) > IDENTITY_LENGTH:
        raise InvalidIdentity("Identity must be between 1 and 320 characters")
    if KEY_SEPARATOR in identity:
        raise InvalidIdentity(f"Identity must not contain '{KEY_SEPARATOR}'")
    return identity


def canonical_pair(first: str, second: str) -> tuple[str, str]:
    return (first, second) if first <= second else (second, first)


def conversation_key(first: str, second: str) -> str:
    """Order independent key naming the conversation between two identities."""

    if KEY_SEPARATOR in first or KEY_SEPARATOR in second:
        raise InvalidIdentity(f"Identity must not contain '{KEY_SEPARATOR}'")
    return KEY_SEPARATOR.join(canonical_pair(first, second))
