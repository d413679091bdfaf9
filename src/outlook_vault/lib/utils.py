"""Utility functions for Outlook Vault."""

import hashlib
import time
from datetime import date, datetime, timezone, tzinfo
from typing import Any, Optional, Union

from outlook_vault.lib.logger import get_logger

logger = get_logger(__name__)

RECEIVED_DATE_FORMAT = "%Y/%m/%d %H:%M"


def hash_email(email: str) -> str:
    """
    Hash email address for safe logging.

    Creates a short hash of the email address to enable correlation
    in logs without exposing the actual address.

    Args:
        email: Email address to hash

    Returns:
        First 12 characters of SHA-256 hash of email
    """
    return hashlib.sha256(email.encode("utf-8")).hexdigest()[:12]


def escape_item_id(item_id: str) -> str:
    """
    Escape an EWS item id for use in an OWA query string.

    EWS ids are base64 and may contain "+", which a query string would
    decode as a space. Only "+" is rewritten; every other character is
    passed through untouched.

    Example:
        >>> escape_item_id("AAMk+abc/def=")
        'AAMk%2Babc/def='
    """
    return item_id.replace("+", "%2B")


def format_received_date(value: datetime, tz: Optional[tzinfo] = None) -> str:
    """
    Format a receive timestamp as ``YYYY/MM/DD HH:MM`` in local time.

    Args:
        value: Timestamp; naive values are taken as UTC
        tz: Target zone (default: server local time)

    Returns:
        Formatted date string
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz).strftime(RECEIVED_DATE_FORMAT)


def format_iso_utc(value: Union[datetime, date, None]) -> str:
    """
    Format an event boundary as ISO-8601.

    Datetimes are rendered in UTC with millisecond precision and a "Z"
    suffix (``2025-01-06T09:30:00.000Z``); plain dates (all-day events)
    as ``YYYY-MM-DD``.
    """
    if value is None:
        return ""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        utc = value.astimezone(timezone.utc)
        return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return value.isoformat()


def parse_iso_datetime(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware datetime.

    Accepts a trailing "Z". Naive values are taken as UTC.

    Raises:
        ValueError: Value is not ISO-8601
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def safe_int(value: Any, default: int = 0) -> int:
    """
    Safely convert value to integer.

    Args:
        value: Value to convert
        default: Default value if conversion fails

    Returns:
        Integer value or default
    """
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class Timer:
    """Simple context manager for timing operations."""

    def __init__(self, name: str = "Operation"):
        """
        Initialize timer.

        Args:
            name: Name of the operation being timed
        """
        self.name = name
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None
        self.elapsed: Optional[float] = None

    def __enter__(self) -> "Timer":
        """Start the timer."""
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        """Stop the timer and log the duration."""
        self.end_time = time.perf_counter()
        if self.start_time is not None:
            self.elapsed = self.end_time - self.start_time
            logger.debug(f"{self.name} took {self.elapsed:.2f} seconds")

    @property
    def elapsed_ms(self) -> float:
        """Get elapsed time in milliseconds."""
        if self.elapsed is not None:
            return self.elapsed * 1000
        return 0.0
