"""Time helpers for What Did I Do.

Samples are stored with UTC ISO-8601 timestamps in the form
``YYYY-MM-DDTHH:MM:SS.mmmZ`` so that lexical order equals time order. The
dashboard, however, thinks in local calendar days, months and years. This
module converts between the two:

- parse_instant / format_instant: caller input to the stored form
- day_bounds, month_bounds, year_bounds: local calendar boundaries as
  inclusive ``(start, end)`` instants, ``end`` being 1 ms before the next
  boundary
- TimeParser: natural language ranges ("today", "last week") and the export
  range presets offered by the export dialog

Example:
    >>> start, end = day_bounds(date(2025, 3, 4))
    >>> parser = TimeParser()
    >>> start, end = parser.export_range("last7days")
"""

import calendar
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple, Union

from dateutil import parser as dateutil_parser

from .errors import ValidationError

ONE_MS = timedelta(milliseconds=1)

EXPORT_RANGE_TYPES = ("today", "last7days", "last30days", "alltime", "custom")

InstantLike = Union[str, datetime]
DateLike = Union[str, date, datetime]


def _to_utc(dt: datetime) -> datetime:
    # Naive datetimes are local wall-clock times.
    if dt.tzinfo is None:
        dt = dt.astimezone()
    return dt.astimezone(timezone.utc)


def parse_instant(value: InstantLike) -> datetime:
    """Parse an ISO-8601 string or datetime into an aware UTC datetime.

    Strings must be ISO-8601; loose forms such as "5" or "March 4" are
    rejected rather than guessed.

    Raises:
        ValidationError: If the value is empty or cannot be parsed.
    """
    if value is None or value == "":
        raise ValidationError("timestamp is required")
    if isinstance(value, datetime):
        return _to_utc(value)
    if isinstance(value, date):
        return _to_utc(datetime.combine(value, time.min))
    try:
        parsed = dateutil_parser.isoparse(str(value).strip())
    except (ValueError, OverflowError) as e:
        raise ValidationError(f"Invalid timestamp: {value!r}") from e
    return _to_utc(parsed)


def format_instant(value: InstantLike) -> str:
    """Format an instant in the stored form, e.g. 2025-03-04T08:15:00.000Z."""
    dt = parse_instant(value)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def parse_date(value: DateLike) -> date:
    """Resolve a calendar date from a date, datetime or string.

    Strings may be plain ``YYYY-MM-DD`` or a full ISO instant; instants are
    converted to the local calendar date they fall on.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        raise ValidationError("date is required")
    text = str(value).strip()
    try:
        return datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError:
        pass
    try:
        parsed = dateutil_parser.isoparse(text)
    except ValueError as e:
        raise ValidationError(f"Invalid date: {value!r}") from e
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone()
    return parsed.date()


def local_midnight(day: date) -> datetime:
    """Aware UTC instant of local midnight at the start of ``day``."""
    return _to_utc(datetime.combine(day, time.min))


def span_bounds(first_day: date, last_day: date) -> Tuple[str, str]:
    """Inclusive stored-form bounds covering whole local days first..last."""
    if last_day < first_day:
        raise ValidationError(f"End date {last_day} is before start date {first_day}")
    start = local_midnight(first_day)
    end = local_midnight(last_day + timedelta(days=1)) - ONE_MS
    return format_instant(start), format_instant(end)


def day_bounds(day: DateLike) -> Tuple[str, str]:
    """Bounds of one local calendar day."""
    d = parse_date(day)
    return span_bounds(d, d)


def validate_month(year: int, month: int) -> None:
    if not 1 <= int(month) <= 12:
        raise ValidationError(f"Month must be between 1 and 12, got {month}")
    if not 1 <= int(year) <= 9998:
        raise ValidationError(f"Invalid year: {year}")


def month_bounds(year: int, month: int) -> Tuple[str, str]:
    """Bounds of one local calendar month."""
    validate_month(year, month)
    last = calendar.monthrange(year, month)[1]
    return span_bounds(date(year, month, 1), date(year, month, last))


def year_bounds(year: int) -> Tuple[str, str]:
    """Bounds of one local calendar year."""
    validate_month(year, 1)
    return span_bounds(date(year, 1, 1), date(year, 12, 31))


def ensure_ordered(start: InstantLike, end: InstantLike) -> Tuple[str, str]:
    """Normalize an explicit instant range, rejecting end before start."""
    start_dt = parse_instant(start)
    end_dt = parse_instant(end)
    if end_dt < start_dt:
        raise ValidationError(f"End {end} is before start {start}")
    return format_instant(start_dt), format_instant(end_dt)


class TimeParser:
    """Resolve named ranges relative to a reference time.

    Supports the export dialog presets (today, last7days, last30days,
    alltime, custom) and a handful of natural phrases for the command line:
    "today", "yesterday", "this week", "last week", "this month",
    "last month", "last N days", "YYYY-MM-DD" and
    "YYYY-MM-DD to YYYY-MM-DD".

    Attributes:
        now: Reference local datetime (defaults to now).
        today: Local calendar date of ``now``.
    """

    def __init__(self, reference_time: Optional[datetime] = None):
        self.now = reference_time or datetime.now()
        self.today = self.now.date()

    def export_range(
        self,
        range_type: str,
        start: Optional[DateLike] = None,
        end: Optional[DateLike] = None,
    ) -> Tuple[str, str]:
        """Resolve an export preset into explicit inclusive instants.

        Args:
            range_type: One of EXPORT_RANGE_TYPES.
            start: First day for the "custom" preset.
            end: Last day for the "custom" preset.

        Raises:
            ValidationError: For unknown presets or missing custom dates.
        """
        if range_type == "today":
            return span_bounds(self.today, self.today)
        if range_type == "last7days":
            return span_bounds(self.today - timedelta(days=6), self.today)
        if range_type == "last30days":
            return span_bounds(self.today - timedelta(days=29), self.today)
        if range_type == "alltime":
            return format_instant(datetime(1970, 1, 1, tzinfo=timezone.utc)), format_instant(self.now)
        if range_type == "custom":
            if start is None or end is None:
                raise ValidationError("Custom range needs both start and end dates")
            return span_bounds(parse_date(start), parse_date(end))
        raise ValidationError(f"Unknown range type: {range_type}")

    def parse(self, text: str) -> Tuple[str, str]:
        """Parse a natural language range into inclusive instants.

        Raises:
            ValidationError: If the text is not understood.
        """
        text = (text or "").lower().strip()
        if text in EXPORT_RANGE_TYPES and text != "custom":
            return self.export_range(text)

        if text == "yesterday":
            day = self.today - timedelta(days=1)
            return span_bounds(day, day)
        if text == "this week":
            return span_bounds(self.today - timedelta(days=self.today.weekday()), self.today)
        if text == "last week":
            monday = self.today - timedelta(days=self.today.weekday() + 7)
            return span_bounds(monday, monday + timedelta(days=6))
        if text == "this month":
            return span_bounds(self.today.replace(day=1), self.today)
        if text == "last month":
            last_of_prev = self.today.replace(day=1) - timedelta(days=1)
            return span_bounds(last_of_prev.replace(day=1), last_of_prev)

        match = re.match(r"^(?:last|past) (\d+) days?$", text)
        if match:
            days = int(match.group(1))
            return span_bounds(self.today - timedelta(days=max(days - 1, 0)), self.today)

        match = re.match(r"^(\d{4}-\d{2}-\d{2})(?: to (\d{4}-\d{2}-\d{2}))?$", text)
        if match:
            first = parse_date(match.group(1))
            last = parse_date(match.group(2)) if match.group(2) else first
            return span_bounds(first, last)

        raise ValidationError(f"Could not parse time range: {text}")
