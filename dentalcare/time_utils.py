from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Ora corrente UTC, naive (come salvata nel DB)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_db(value: datetime) -> datetime:
    """Normalizza a UTC naive. Un datetime naive è già considerato UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def from_db(value: datetime) -> datetime:
    """Riattacca il fuso UTC a un valore letto dal DB."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
