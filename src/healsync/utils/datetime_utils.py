"""
Common date/time helpers.

All timestamps are produced in UTC as ISO 8601 strings with a ``Z`` suffix,
the form FHIR ``instant`` and ``dateTime`` elements carry.
"""

from datetime import date, datetime, timezone
from typing import Optional, Union


def as_utc(dt: datetime) -> datetime:
    """Convert dt to tz-aware UTC. Naive values are treated as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def to_fhir_instant(dt: Optional[datetime] = None) -> str:
    """Format a datetime as a FHIR instant, e.g. ``2024-12-28T10:30:00.000Z``."""
    dt = as_utc(dt or utc_now())
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso_string(iso_string: str) -> datetime:
    """
    Parse an ISO 8601 string to UTC datetime.

    Handles a trailing ``Z`` and date-only strings (midnight UTC).
    """
    if iso_string.endswith("Z"):
        iso_string = iso_string[:-1] + "+00:00"

    dt = datetime.fromisoformat(iso_string)
    return as_utc(dt)


def to_fhir_datetime(value: Union[str, date, datetime, None]) -> Optional[str]:
    """Normalize a legacy date value into a FHIR dateTime string.

    Strings that do not parse are returned unchanged so a bad legacy value
    never blocks the mapping.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_fhir_instant(value)
    if isinstance(value, date):
        return value.isoformat()
    try:
        return to_fhir_instant(parse_iso_string(value))
    except ValueError:
        return value


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp, returning None when absent or malformed."""
    if not value:
        return None
    try:
        return parse_iso_string(value)
    except ValueError:
        return None
