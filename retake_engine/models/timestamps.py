"""Naive-UTC timestamps, as stored in every DateTime column."""
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
