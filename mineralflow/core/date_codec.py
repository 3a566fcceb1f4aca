"""
MULTI-FORMAT DATE CODEC

Purpose:
- Parse every date representation the backend is known to emit
- Serialize dates for write requests in the backend format

Accepted inputs:
- datetime / date values
- ISO-8601 strings ("2025-01-15T08:30:00", "...Z", "...+02:00",
  fractional seconds of any length)
- "dd/MM/yyyy HH:mm" strings ("15/01/2025 08:30")
- epoch milliseconds (int / float)
- None

Requirements:
• Never raise on backend input
• Never return an invalid date: unparseable input yields None

All parsed values are naive local wall-clock datetimes. Offset-aware ISO
strings are converted to local time first.
"""

import logging
import re
from datetime import date, datetime, timedelta
from typing import Any, Mapping, Optional

from mineralflow.core.constants import ARRIVAL_WINDOW_HOURS, BACKEND_DATETIME_FORMAT

logger = logging.getLogger(__name__)

_BACKEND_PATTERN = re.compile(r"^\s*(\d{1,2})/(\d{1,2})/(\d{4})(?:\s+(\d{1,2}):(\d{2}))?\s*$")
_FRACTION_PATTERN = re.compile(r"\.(\d+)")


def _to_local_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def _parse_backend_format(text: str) -> Optional[datetime]:
    match = _BACKEND_PATTERN.match(text)
    if not match:
        return None
    day, month, year, hour, minute = match.groups()
    try:
        return datetime(int(year), int(month), int(day), int(hour or 0), int(minute or 0))
    except ValueError:
        return None


def _parse_iso(text: str) -> Optional[datetime]:
    cleaned = text.strip()
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"
    # fromisoformat before 3.11 only takes 3 or 6 fraction digits
    cleaned = _FRACTION_PATTERN.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), cleaned)
    try:
        return _to_local_naive(datetime.fromisoformat(cleaned))
    except ValueError:
        return None


def parse_backend_date(value: Any) -> Optional[datetime]:
    """
    Detect the representation of a backend date and parse it.

    Returns None for None, empty strings and anything unparseable.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return _to_local_naive(value)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    if isinstance(value, bool):
        logger.warning(f"Ignoring boolean date value: {value!r}")
        return None

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000)
        except (OverflowError, OSError, ValueError):
            logger.warning(f"Ignoring out-of-range epoch date: {value!r}")
            return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        parsed = _parse_backend_format(text) if "/" in text else _parse_iso(text)
        if parsed is None:
            logger.warning(f"Unparseable date string: {value!r}")
        return parsed

    logger.warning(f"Unsupported date value type {type(value).__name__}: {value!r}")
    return None


def _window_bound(window: Any, *names: str) -> Any:
    if not isinstance(window, Mapping):
        return None
    for name in names:
        if window.get(name) is not None:
            return window.get(name)
    return None


def window_start(window: Any) -> Optional[datetime]:
    """Parsed start of a backend ({startTime}) or canonical ({start}) window."""
    return parse_backend_date(_window_bound(window, "startTime", "start"))


def resolve_scheduled_time(raw_scheduled: Any, window: Any = None, now: Optional[datetime] = None) -> datetime:
    """
    Scheduled time with the cancelled-appointment fallbacks.

    null (or unparseable) -> start of the supplied arrival window ->
    the current instant.
    """
    scheduled = parse_backend_date(raw_scheduled)
    if scheduled is not None:
        return scheduled

    if raw_scheduled is not None:
        logger.warning(f"Invalid scheduled time {raw_scheduled!r}, falling back")

    start = window_start(window)
    if start is not None:
        return start

    return now or datetime.now()


def derive_arrival_window(scheduled_time: datetime, window: Any = None):
    """
    (start, end) of the arrival window.

    The supplied start is used when both bounds are present and the start
    is well-formed; otherwise the window starts at the scheduled time. The
    end is always start + ARRIVAL_WINDOW_HOURS.
    """
    start = None
    end_raw = _window_bound(window, "endTime", "end")
    if end_raw is not None:
        supplied_start = window_start(window)
        supplied_end = parse_backend_date(end_raw)
        if supplied_start is not None and supplied_end is not None:
            start = supplied_start
            if supplied_end - supplied_start != timedelta(hours=ARRIVAL_WINDOW_HOURS):
                logger.info(
                    f"Arrival window {supplied_start} - {supplied_end} is not "
                    f"{ARRIVAL_WINDOW_HOURS}h, re-deriving end"
                )

    if start is None:
        start = scheduled_time

    return start, start + timedelta(hours=ARRIVAL_WINDOW_HOURS)


def format_backend_datetime(value: datetime) -> str:
    """Serialize for write requests: "dd/MM/yyyy HH:mm"."""
    return value.strftime(BACKEND_DATETIME_FORMAT)


def format_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None
