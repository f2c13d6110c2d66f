"""
UTC-first datetime utilities.

- Timestamps written to the provider (`last_modified`) are ISO 8601 in UTC
- Timestamps read back may carry any offset and are normalized to UTC

Usage:
    from labportal.core.datetime_utils import utc_timestamp, format_long_date

    row["last_modified"] = utc_timestamp()
    format_long_date("2024-01-15T10:30:00+00:00")  # "January 15, 2024"
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Union

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Current time as a timezone-aware datetime in UTC."""
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    A naive datetime is assumed to already be UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_timestamp() -> str:
    """Current UTC time as an ISO 8601 string."""
    return utc_now().isoformat()


def parse_datetime(value: Union[str, datetime]) -> datetime:
    """
    Parse an ISO 8601 value to a UTC datetime.

    Accepts a trailing 'Z' as well as explicit offsets.

    Raises:
        ValueError: If the value cannot be parsed.
    """
    if isinstance(value, datetime):
        return to_utc(value)
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return to_utc(datetime.fromisoformat(text))


def format_long_date(value: Optional[Union[str, datetime]]) -> str:
    """
    Render a timestamp as e.g. "January 15, 2024".

    Unparseable or missing values render as an empty string.
    """
    if not value:
        return ""
    try:
        dt = parse_datetime(value)
    except ValueError:
        logger.debug("Unparseable timestamp", extra={"value": str(value)})
        return ""
    return f"{dt.strftime('%B')} {dt.day}, {dt.year}"


def format_iso(dt: datetime) -> str:
    """UTC ISO 8601 with a 'Z' suffix, to the second."""
    return to_utc(dt).strftime("%Y-%m-%dT%H:%M:%SZ")
