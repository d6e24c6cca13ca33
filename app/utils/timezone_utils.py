"""
Timezone utility functions for Premier Predictor
"""

from datetime import datetime, time, timedelta, timezone

import pytz
from flask import current_app, has_app_context


def get_app_timezone():
    """Get the application's configured timezone"""
    timezone_name = "UTC"
    if has_app_context():
        timezone_name = current_app.config.get("TIMEZONE", "UTC")
    try:
        return pytz.timezone(timezone_name)
    except pytz.UnknownTimeZoneError:
        # Fallback to UTC if timezone is invalid
        return pytz.UTC


def get_utc_time():
    """Get current time in UTC"""
    return datetime.now(timezone.utc)


def ensure_utc(dt):
    """Aware UTC datetime; naive values are taken to already be UTC"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def convert_to_app_timezone(dt, tz=None):
    """Convert a datetime to the application's (or the given) timezone"""
    if dt is None:
        return None
    return ensure_utc(dt).astimezone(tz or get_app_timezone())


def local_day_bounds(now, tz=None):
    """
    UTC start and end of the calendar day containing ``now`` in ``tz``.

    Returns:
        (start, end) aware UTC datetimes, end exclusive
    """
    tz = tz or get_app_timezone()
    local_now = convert_to_app_timezone(now, tz)
    local_date = local_now.date()

    start = _localize(tz, datetime.combine(local_date, time.min))
    end = _localize(tz, datetime.combine(local_date + timedelta(days=1), time.min))

    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def _localize(tz, naive):
    # pytz zones need localize(); fixed offsets accept replace()
    if hasattr(tz, "localize"):
        return tz.localize(naive)
    return naive.replace(tzinfo=tz)


def to_iso(dt):
    """ISO-8601 string for an optional datetime, normalized to UTC"""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()
