"""Identifier and timestamp helpers shared by models and stores."""

from datetime import datetime, timezone

from ulid import ULID


def generate_id() -> str:
    """Generate a text-based document ID (ULID format)."""
    return str(ULID())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
