"""
Time helpers.

Server-side timestamps are always timezone-aware UTC; the configured display
timezone is only used for response headers.
"""
from datetime import datetime, timezone
from typing import Any, Optional
import pytz

from ..core.config import settings


def utc_now() -> datetime:
    return datetime.now(pytz.UTC)


def get_display_timezone():
    try:
        return pytz.timezone(settings.default_timezone)
    except pytz.UnknownTimeZoneError:
        return pytz.UTC


def as_utc(dt: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=pytz.UTC)
    return dt.astimezone(pytz.UTC)


def format_local_time(dt: datetime, format_str: Optional[str] = None) -> str:
    return as_utc(dt).astimezone(get_display_timezone()).strftime(
        format_str or settings.timezone_display_format
    )


def get_timezone_info() -> dict:
    tz = get_display_timezone()
    now = utc_now().astimezone(tz)
    return {
        "timezone": tz.zone,
        "offset": now.strftime("%z"),
        "current_time": format_local_time(now),
    }


def parse_client_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a timestamp reported by the exam client.

    Accepts epoch milliseconds or an ISO-8601 string. Returns None for
    anything unparseable; client clocks are descriptive metadata only.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        if isinstance(value, str) and value.strip():
            text = value.strip()
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            return as_utc(datetime.fromisoformat(text))
    except (ValueError, OverflowError, OSError):
        return None
    return None
