from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "America/New_York"
DEFAULT_WEEK_START_HOUR = 9


@dataclass(frozen=True)
class TimeWindow:
    """
    Reporting period between two instants.

    Both bounds are exclusive when used as a query filter
    (``start < ts < end``).

    Invariants:
      - start == end - 7 days (wall clock, in the window's time zone)
    """

    start: datetime
    end: datetime

    def as_utc(self) -> "TimeWindow":
        return TimeWindow(self.start.astimezone(timezone.utc), self.end.astimezone(timezone.utc))


def parse_reference(value: str) -> datetime:
    """
    Parse an ISO-8601 date or datetime (e.g. "2024-03-06" or
    "2024-03-06T12:00:00-05:00").

    Naive values are interpreted as UTC.

    Raises:
        ValueError: If value is not ISO-8601
    """
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as e:
        raise ValueError(f"Invalid reference date '{value}': {e}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def week_window(
    reference: Optional[datetime] = None,
    tz: str = DEFAULT_TIMEZONE,
    hour_offset: int = DEFAULT_WEEK_START_HOUR,
) -> TimeWindow:
    """
    Compute the week preceding the ISO week that contains ``reference``.

    ``reference`` is converted to ``tz``, snapped to Monday 00:00 of its ISO
    week and shifted by ``hour_offset`` hours; that instant is the window end
    and the start is one week earlier.

    Args:
        reference: Anchor instant (default: now). Naive values are UTC.
        tz: IANA time zone name the week boundaries are computed in
        hour_offset: Hours after Monday midnight the week starts

    Returns:
        TimeWindow with both bounds expressed in ``tz``
    """
    if reference is None:
        reference = datetime.now(timezone.utc)
    elif reference.tzinfo is None:
        reference = reference.replace(tzinfo=timezone.utc)

    local = reference.astimezone(ZoneInfo(tz))
    monday = local.replace(hour=0, minute=0, second=0, microsecond=0) - timedelta(days=local.weekday())
    # Aware arithmetic with ZoneInfo is wall-clock: the offset is resolved again
    # for the resulting local time.
    this_week_start = monday + timedelta(hours=hour_offset)
    last_week_start = this_week_start - timedelta(days=7)
    return TimeWindow(start=last_week_start, end=this_week_start)
