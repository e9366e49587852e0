"""Shared utilities used across the coordinators."""

import re
from datetime import date, datetime, time, timezone
from typing import Optional


def normalize_text(value: Optional[str]) -> str:
    """Lowercase, trim and collapse internal whitespace.

    Examples:
        >>> normalize_text("  Mario   ROSSI ")
        'mario rossi'
        >>> normalize_text(None)
        ''
    """
    return re.sub(r"\s+", " ", (value or "").strip().lower())


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware datetime (naive means UTC).

    Examples:
        >>> parse_iso("2024-05-02T09:00Z").isoformat()
        '2024-05-02T09:00:00+00:00'
    """
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_date_string(value: date) -> str:
    """Format a date as YYYY-MM-DD."""
    return value.strftime("%Y-%m-%d")


def to_time_string(value: time) -> str:
    """Format a time of day as HH:MM."""
    return value.strftime("%H:%M")
