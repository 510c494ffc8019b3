"""Shared parsing helpers for blueprints and services.

parse_date:      ISO or DD/MM/YYYY date, None on bad input
parse_datetime:  ISO datetime, UTC-aware, None on bad input
parse_bool:      "true"/"1"/"yes"/"oui" style flags
"""
from datetime import date, datetime, timezone

_TRUTHY = {"1", "true", "yes", "on", "oui"}


def parse_date(value):
    """Parse a date string to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO -> .date())
    - DD/MM/YYYY (format used by the Ivorian UI)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d/%m/%Y").date()
    except (ValueError, TypeError):
        return None


def parse_datetime(value):
    """Parse an ISO datetime; naive values are taken as UTC."""
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except (ValueError, TypeError):
            return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def parse_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY
