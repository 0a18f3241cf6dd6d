"""
Date handling utilities for the scheduling pipeline.

Every timestamp the system stores or compares is timezone-aware UTC. SQLite
drops tzinfo on round-trip, so values read back from storage pass through
ensure_utc before any arithmetic.
"""

from datetime import datetime, timezone
import email.utils
import logging
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_iso_date(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO 8601 string into an aware UTC datetime.

    Accepts a trailing "Z". Returns None for empty or unparseable input.
    """
    if not value or not isinstance(value, str):
        return None
    candidate = value.strip()
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(candidate))
    except ValueError:
        logger.debug(f"Not an ISO datetime: {value!r}")
        return None


def parse_email_date(date_str: Optional[str]) -> Tuple[Optional[datetime], Optional[str]]:
    """
    Parse an RFC 2822 Date header.

    Args:
        date_str: Raw Date header

    Returns:
        Tuple of the UTC datetime (or None) and the raw "+hhmm" offset string
        as written by the sender (or None)
    """
    if not date_str:
        return None, None
    parsed = email.utils.parsedate_tz(date_str)
    if not parsed:
        logger.debug(f"Unparseable Date header: {date_str!r}")
        return None, None
    offset_seconds = parsed[9]
    timestamp = email.utils.mktime_tz(parsed)
    offset = None
    if offset_seconds is not None:
        sign = "+" if offset_seconds >= 0 else "-"
        minutes = abs(offset_seconds) // 60
        offset = f"{sign}{minutes // 60:02d}{minutes % 60:02d}"
    return datetime.fromtimestamp(timestamp, timezone.utc), offset
