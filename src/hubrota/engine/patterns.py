"""
Recurring Pattern Matcher
=========================
Select, from an event's occurrences, the dates that match a recurring rule
such as "the last Sunday of each month" or "the end of each month, twice".

Two pattern types:
    day-of-month   beginning (day <= 10), middle, end (last ten days)
    day-of-week    weekday + week of month (first..fourth, last, any)

Bands are computed against each occurrence's own month length, so day 21
is "end" in a 30-day month but "middle" in a 31-day month.
"""
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from hubrota.errors import ErrorCode, RotaError
from hubrota.models.entities import Occurrence
from hubrota.utils.dates import last_day_of_month, to_date, today as clock_today


class PatternType(str, Enum):
    DAY_OF_MONTH = "day-of-month"
    DAY_OF_WEEK = "day-of-week"


class MonthPosition(str, Enum):
    BEGINNING = "beginning"
    MIDDLE = "middle"
    END = "end"


class WeekOfMonth(str, Enum):
    FIRST = "first"
    SECOND = "second"
    THIRD = "third"
    FOURTH = "fourth"
    LAST = "last"
    ANY = "any"


WEEKDAYS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

ORDINALS = {
    WeekOfMonth.FIRST: 1,
    WeekOfMonth.SECOND: 2,
    WeekOfMonth.THIRD: 3,
    WeekOfMonth.FOURTH: 4,
}

BAND_DAYS = 10


def month_band(d: date) -> MonthPosition:
    """Position of a date within its own month."""
    if d.day <= BAND_DAYS:
        return MonthPosition.BEGINNING
    if d.day > last_day_of_month(d) - BAND_DAYS:
        return MonthPosition.END
    return MonthPosition.MIDDLE


def weekday_ordinal(d: date) -> int:
    """1-based index of ``d`` among the same weekdays of its month."""
    return (d.day - 1) // 7 + 1


def is_last_weekday_of_month(d: date) -> bool:
    """True when no later date in the month falls on the same weekday."""
    return d.day + 7 > last_day_of_month(d)


def _enum_value(enum_cls, value, field_name):
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise RotaError(ErrorCode.VALIDATION, f"Invalid {field_name} '{value}' (expected one of: {allowed})")


@dataclass(frozen=True)
class DatePattern:
    """A validated recurring date rule."""
    pattern_type: PatternType
    position: Optional[MonthPosition] = None   # day-of-month only
    weekday: Optional[int] = None              # day-of-week only, Monday = 0
    week_of_month: Optional[WeekOfMonth] = None  # day-of-week only

    @classmethod
    def build(
        cls,
        pattern_type: str,
        position: Optional[str] = None,
        weekday: Optional[str] = None,
        week_of_month: Optional[str] = None,
    ) -> "DatePattern":
        """Parse user-facing strings into a pattern, raising VALIDATION on bad input."""
        ptype = _enum_value(PatternType, pattern_type, "pattern type")
        if ptype is None:
            raise RotaError(ErrorCode.VALIDATION, "Pattern type is required")

        if ptype is PatternType.DAY_OF_MONTH:
            pos = _enum_value(MonthPosition, position, "position")
            if pos is None:
                raise RotaError(ErrorCode.VALIDATION, "Position is required for day-of-month patterns")
            return cls(ptype, position=pos)

        if weekday is None or str(weekday).lower() not in WEEKDAYS:
            raise RotaError(ErrorCode.VALIDATION, f"Invalid weekday '{weekday}'")
        week = _enum_value(WeekOfMonth, week_of_month or WeekOfMonth.ANY.value, "week of month")
        return cls(ptype, weekday=WEEKDAYS[str(weekday).lower()], week_of_month=week)

    @property
    def takes_latest(self) -> bool:
        """day-of-month:end counts back from the end of each month."""
        return self.pattern_type is PatternType.DAY_OF_MONTH and self.position is MonthPosition.END

    def matches(self, d: date) -> bool:
        if self.pattern_type is PatternType.DAY_OF_MONTH:
            return month_band(d) is self.position

        if d.weekday() != self.weekday:
            return False
        if self.week_of_month is WeekOfMonth.ANY:
            return True
        if self.week_of_month is WeekOfMonth.LAST:
            return is_last_weekday_of_month(d)
        return weekday_ordinal(d) == ORDINALS[self.week_of_month]

    def describe(self) -> str:
        if self.pattern_type is PatternType.DAY_OF_MONTH:
            return f"{self.position.value} of month"
        day_name = next(name for name, num in WEEKDAYS.items() if num == self.weekday)
        return f"{self.week_of_month.value} {day_name.capitalize()}"


def select_occurrences(
    occurrences: Iterable[Occurrence],
    pattern: DatePattern,
    frequency: int,
    end_date,
    today: Optional[date] = None,
) -> List[Occurrence]:
    """
    Pick the occurrences a bulk assignment should target.

    Args:
        occurrences: Candidate occurrences (usually one event's)
        pattern: Date rule to match
        frequency: Selections per calendar month (>= 1)
        end_date: Inclusive upper bound
        today: Inclusive lower bound; the clock when omitted

    Returns:
        Matching occurrences in ascending date order
    """
    if not isinstance(frequency, int) or isinstance(frequency, bool) or frequency < 1:
        raise RotaError(ErrorCode.VALIDATION, f"Frequency must be at least 1, got {frequency!r}")
    start = clock_today(today)
    end = to_date(end_date)

    by_month: Dict[Tuple[int, int], List[Occurrence]] = defaultdict(list)
    for occ in occurrences:
        d = occ.date
        if start <= d <= end and pattern.matches(d):
            by_month[(d.year, d.month)].append(occ)

    selected: List[Occurrence] = []
    for key in sorted(by_month):
        group = sorted(by_month[key], key=lambda o: o.starts_at)
        selected.extend(group[-frequency:] if pattern.takes_latest else group[:frequency])

    return sorted(selected, key=lambda o: o.starts_at)
