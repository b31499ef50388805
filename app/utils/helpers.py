"""
Helper utilities for the drop-folder ingest service.

Common functions used across domains.
"""

from datetime import datetime, timezone


def parse_iso_timestamp(ts_str: str) -> datetime:
    """
    Parse ISO timestamp string to a UTC datetime.

    Accepts date-only and minute-precision forms. Values without an offset
    are taken as UTC.
    """
    parsed = datetime.fromisoformat(ts_str.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
