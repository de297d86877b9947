"""
Time Utilities

Timezone helpers shared by the scoring engine, the scheduler and the data layer.
Gyms operate on local time, so weekday/hour preferences, action-key dates and
the schedule are all computed in BRAIN_TIMEZONE (default Europe/Rome).
"""

import os
from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DEFAULT_TIMEZONE = "Europe/Rome"


def get_local_timezone(name: str = None) -> tzinfo:
    """
    Get the service's local timezone.

    Args:
        name: Configured IANA timezone name. BRAIN_TIMEZONE overrides it;
              Europe/Rome when neither is set.

    Returns:
        Timezone object
    """
    return ZoneInfo(os.getenv("BRAIN_TIMEZONE") or name or DEFAULT_TIMEZONE)


def get_current_time() -> datetime:
    """Current time as a timezone-aware datetime in the local timezone."""
    return datetime.now(get_local_timezone())


def parse_database_timestamp(value) -> datetime:
    """
    Parse a timestamp coming from the database.

    Supabase returns timestamptz columns as ISO strings with an offset; naive
    values are assumed to be UTC.

    Args:
        value: ISO format string or datetime

    Returns:
        Timezone-aware datetime
    """
    if isinstance(value, datetime):
        timestamp = value
    else:
        timestamp = datetime.fromisoformat(str(value).replace('Z', '+00:00'))

    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp
