"""
Reporting Windows

Turns a reporting request (named preset or explicit start/end dates) into a
concrete inclusive interval, plus the preceding interval used for
period-over-period comparison.
"""

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from enum import Enum
from typing import NamedTuple, Optional, Union

import structlog

from .exceptions import InvalidWindow

logger = structlog.get_logger(__name__)

END_OF_DAY = time(23, 59, 59, 999000)
ONE_MILLISECOND = timedelta(milliseconds=1)

DateInput = Union[str, date, None]


class DateRangePreset(str, Enum):
    """Named reporting ranges, each ending now"""
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"
    TREND = "trend"


# (days, months) to subtract from now
PRESET_OFFSETS = {
    DateRangePreset.WEEK: (7, 0),
    DateRangePreset.MONTH: (0, 1),
    DateRangePreset.QUARTER: (0, 3),
    DateRangePreset.YEAR: (0, 12),
    DateRangePreset.TREND: (0, 12),
}


class MonthKey(NamedTuple):
    """Calendar month bucket key; orders chronologically"""
    year: int
    month: int

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @classmethod
    def of(cls, ts: datetime, tz: Optional[tzinfo] = None) -> "MonthKey":
        local = localize(ts, tz) if tz is not None else ts
        return cls(local.year, local.month)


@dataclass(frozen=True)
class TimeWindow:
    """Inclusive interval; ``end=None`` means open-ended up to now"""
    start: datetime
    end: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.end is None

    def duration(self, now: Optional[datetime] = None) -> timedelta:
        """Length of the window; open windows are measured up to ``now``"""
        end = self.end
        if end is None:
            end = now or datetime.now(self.start.tzinfo)
        return end - self.start

    def contains(self, ts: Optional[datetime]) -> bool:
        """Whether a record timestamp falls inside the window"""
        if ts is None:
            return False
        if self.start.tzinfo is None:
            ts = ts.replace(tzinfo=None)
        else:
            ts = localize(ts, self.start.tzinfo)
        if ts < self.start:
            return False
        return self.end is None or ts <= self.end

    def previous(self, now: Optional[datetime] = None) -> "TimeWindow":
        """Preceding window ``[start - duration, start - 1ms]``"""
        duration = self.duration(now)
        return TimeWindow(start=self.start - duration, end=self.start - ONE_MILLISECOND)


@dataclass(frozen=True)
class ResolvedWindow:
    """Current window plus optional comparison window"""
    current: TimeWindow
    previous: Optional[TimeWindow] = None
    preset: Optional[DateRangePreset] = None

    @property
    def is_custom(self) -> bool:
        return self.preset is None


def localize(ts: datetime, tz: Optional[tzinfo]) -> datetime:
    """Interpret naive timestamps in ``tz``; convert aware ones to ``tz``"""
    if tz is None:
        return ts
    if ts.tzinfo is None:
        return ts.replace(tzinfo=tz)
    return ts.astimezone(tz)


def shift_months(value: datetime, months: int) -> datetime:
    """Move ``months`` back, clamping the day to the target month's length"""
    index = value.year * 12 + (value.month - 1) - months
    year, month = divmod(index, 12)
    month += 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def parse_calendar_date(value: DateInput, field_name: str) -> date:
    """Parse an ISO calendar date; raise InvalidWindow on anything else"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidWindow(f"{field_name} must be an ISO date, got {value!r}")

    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError as e:
        raise InvalidWindow(f"{field_name} is not a valid ISO date: {value!r}") from e


def parse_preset(value: Union[str, DateRangePreset, None]) -> DateRangePreset:
    """Parse a preset token; ``None`` means the default monthly range"""
    if value is None:
        return DateRangePreset.MONTH
    try:
        return DateRangePreset(value)
    except ValueError as e:
        allowed = [p.value for p in DateRangePreset]
        raise InvalidWindow(f"Unknown date range {value!r}; expected one of {allowed}") from e


def preset_window(
    preset: DateRangePreset,
    now: datetime,
) -> TimeWindow:
    """Window starting ``now`` minus the preset offset, open-ended"""
    days, months = PRESET_OFFSETS[preset]
    start = now - timedelta(days=days)
    if months:
        start = shift_months(start, months)
    return TimeWindow(start=start, end=None)


def custom_window(
    start_date: DateInput,
    end_date: DateInput,
    tz: Optional[tzinfo] = None,
) -> TimeWindow:
    """Full-day inclusive window between two calendar dates"""
    first = parse_calendar_date(start_date, "start_date")
    last = parse_calendar_date(end_date, "end_date")
    if last < first:
        raise InvalidWindow(f"end_date {last.isoformat()} is before start_date {first.isoformat()}")

    return TimeWindow(
        start=datetime.combine(first, time.min, tzinfo=tz),
        end=datetime.combine(last, END_OF_DAY, tzinfo=tz),
    )


def resolve_window(
    preset: Union[str, DateRangePreset, None] = None,
    start_date: DateInput = None,
    end_date: DateInput = None,
    *,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
    with_previous: bool = False,
) -> ResolvedWindow:
    """
    Resolve a reporting request into concrete windows.

    An explicit ``start_date``/``end_date`` pair takes precedence over the
    preset and always yields a previous window. Presets only yield one when
    ``with_previous`` is set.

    Args:
        preset: Preset token (week, month, quarter, year, trend)
        start_date: First calendar day, inclusive
        end_date: Last calendar day, inclusive
        now: Reference instant for presets (defaults to the current time in ``tz``)
        tz: Reference time zone for day boundaries
        with_previous: Also compute a previous window for presets

    Raises:
        InvalidWindow: malformed, incomplete or inverted dates, unknown preset
    """
    if start_date is not None or end_date is not None:
        if start_date is None or end_date is None:
            raise InvalidWindow("start_date and end_date must be supplied together")
        current = custom_window(start_date, end_date, tz)
        resolved = ResolvedWindow(current=current, previous=current.previous())
    else:
        token = parse_preset(preset)
        now = localize(now, tz) if now is not None else datetime.now(tz)
        current = preset_window(token, now)
        previous = current.previous(now) if with_previous else None
        resolved = ResolvedWindow(current=current, previous=previous, preset=token)

    logger.debug(
        "Reporting window resolved",
        preset=resolved.preset.value if resolved.preset else None,
        start=resolved.current.start.isoformat(),
        end=resolved.current.end.isoformat() if resolved.current.end else None,
        has_previous=resolved.previous is not None,
    )
    return resolved
