"""Calendar-date arithmetic for plan schedules.

Everything here works on naive calendar dates (``datetime.date``) and their
``YYYY-MM-DD`` string form. Resolving an instant to a calendar date in a
particular timezone is the caller's job.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterator, Optional, Union

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

DateLike = Union[str, date]


class InvalidDateFormat(ValueError):
    """Raised when a value is not a real ``YYYY-MM-DD`` calendar date."""


class Weekday(str, Enum):
    MON = "Mon"
    TUE = "Tue"
    WED = "Wed"
    THU = "Thu"
    FRI = "Fri"
    SAT = "Sat"
    SUN = "Sun"

    @property
    def position(self) -> int:
        return _WEEKDAY_INDEX[self]

    @classmethod
    def from_index(cls, idx: int) -> "Weekday":
        return WEEKDAYS[idx % 7]

    @classmethod
    def parse(cls, value: object) -> Optional["Weekday"]:
        """Lenient lookup: accepts ``"Mon"``, ``"monday"``, ``"MON"``; None otherwise."""
        if isinstance(value, Weekday):
            return value
        key = str(value or "").strip()[:3].title()
        return _WEEKDAY_BY_NAME.get(key)


WEEKDAYS: tuple[Weekday, ...] = (
    Weekday.MON,
    Weekday.TUE,
    Weekday.WED,
    Weekday.THU,
    Weekday.FRI,
    Weekday.SAT,
    Weekday.SUN,
)
_WEEKDAY_INDEX = {day: idx for idx, day in enumerate(WEEKDAYS)}
_WEEKDAY_BY_NAME = {day.value: day for day in WEEKDAYS}


def weekday_index(day: Union[Weekday, str]) -> int:
    """Monday-first index 0..6 for a weekday name."""
    parsed = Weekday.parse(day)
    if parsed is None:
        raise ValueError(f"Unknown weekday: {day!r}")
    return parsed.position


def parse_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not ISO_DATE_RE.match(value):
        raise InvalidDateFormat(f"Expected YYYY-MM-DD, got {value!r}")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise InvalidDateFormat(f"Not a calendar date: {value!r}") from exc


def is_iso_date(value: object) -> bool:
    try:
        parse_date(value)  # type: ignore[arg-type]
    except InvalidDateFormat:
        return False
    return True


def to_iso_date(value: date) -> str:
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def monday_of(value: DateLike) -> date:
    # date.weekday() is already Monday=0 .. Sunday=6, so Sunday closes the prior week.
    d = parse_date(value)
    return d - timedelta(days=d.weekday())


def sunday_on_or_after(value: DateLike) -> date:
    d = parse_date(value)
    return d + timedelta(days=6 - d.weekday())


def add_days(value: DateLike, n: int) -> str:
    return to_iso_date(parse_date(value) + timedelta(days=int(n)))


def day_of_week_name(value: DateLike) -> Weekday:
    return WEEKDAYS[parse_date(value).weekday()]


@dataclass(frozen=True)
class DateRange:
    """Inclusive range of calendar dates; iterating yields ISO strings.

    Iteration is lazy and can be repeated any number of times.
    """

    start: date
    end: date

    def __iter__(self) -> Iterator[str]:
        current = self.start
        while current <= self.end:
            yield current.isoformat()
            current += timedelta(days=1)

    def __len__(self) -> int:
        return max(0, (self.end - self.start).days + 1)

    def __contains__(self, value: object) -> bool:
        try:
            d = parse_date(value)  # type: ignore[arg-type]
        except InvalidDateFormat:
            return False
        return self.start <= d <= self.end


def enumerate_dates(start: DateLike, end: DateLike) -> DateRange:
    return DateRange(parse_date(start), parse_date(end))


def current_week_number(start_date: Optional[DateLike], today: DateLike) -> int:
    """1-based plan week containing ``today``; week 1 for anything before the start."""
    if not start_date:
        return 1
    elapsed = (parse_date(today) - parse_date(start_date)).days
    return max(1, elapsed // 7 + 1)


def weeks_to_race(race_date: Optional[DateLike], today: DateLike) -> Optional[int]:
    """Whole weeks until the race, rounded up; None when there is no race date."""
    if not race_date:
        return None
    days = (parse_date(race_date) - parse_date(today)).days
    return math.ceil(days / 7)
