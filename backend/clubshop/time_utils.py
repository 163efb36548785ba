"""
Timestamps as stored in the JSON collections.

Every persisted timestamp is UTC with millisecond precision and a literal
"Z" suffix, e.g. "2026-03-01T17:04:09.512Z". Older records may carry an
offset or no zone at all; those are read as UTC.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

UTC = timezone.utc


def _as_utc(moment: datetime) -> datetime:
    # Naive values are assumed to already be UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def now_utc() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(text: Optional[str]) -> Optional[datetime]:
    """Read a stored timestamp; blank input gives None, malformed input raises ValueError."""
    text = (text or "").strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"
    return _as_utc(datetime.fromisoformat(text))


def format_timestamp(moment: Optional[datetime]) -> Optional[str]:
    if moment is None:
        return None
    moment = _as_utc(moment)
    return f"{moment:%Y-%m-%dT%H:%M:%S}.{moment.microsecond // 1000:03d}Z"


def timestamp_now() -> str:
    return format_timestamp(now_utc())
