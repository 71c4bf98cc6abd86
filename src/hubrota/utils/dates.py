"""Date helpers shared by the pattern matcher and the signup workflow."""
import calendar
from datetime import date, datetime, timezone
from typing import Optional, Union

DateLike = Union[date, datetime, str]


def parse_datetime(value: Union[datetime, date, str, None]) -> Optional[datetime]:
    """
    Parse an ISO 8601 timestamp (a trailing ``Z`` is accepted).

    Aware values are converted to naive UTC so stored timestamps compare.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def to_date(value: DateLike) -> date:
    """Reduce a date, datetime or ISO string to its calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_datetime(value).date()


def today(now: Optional[DateLike] = None) -> date:
    """Calendar date of ``now``, reading the clock only when it is omitted."""
    if now is None:
        return date.today()
    return to_date(now)


def is_upcoming(starts_at: DateLike, now: Optional[DateLike] = None) -> bool:
    """True when an occurrence falls on today or later (date-only comparison)."""
    return to_date(starts_at) >= today(now)


def last_day_of_month(d: date) -> int:
    return calendar.monthrange(d.year, d.month)[1]


def format_uk(value: DateLike) -> str:
    """Format like ``Sun 07 Sep 2025 10:30`` for user-facing messages."""
    dt = parse_datetime(value)
    if dt is None:
        return ""
    return dt.strftime("%a %d %b %Y %H:%M")
