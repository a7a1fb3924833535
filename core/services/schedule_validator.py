from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Mapping, Optional, Sequence, Union

from core.services.calendar_utils import WEEKDAYS, DateLike, InvalidDateFormat, Weekday, parse_date
from core.services.schedule_model import ScheduleDay, pick_field

DayLike = Union[ScheduleDay, Mapping[str, Any]]


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: tuple[str, ...] = ()

    @classmethod
    def from_errors(cls, errors: Sequence[str]) -> "ValidationResult":
        return cls(valid=not errors, errors=tuple(errors))


@dataclass(frozen=True)
class _DayFields:
    date: Optional[date]
    raw_date: Any
    day_of_week: str
    workout_text: str


def _read(entry: DayLike) -> Optional[_DayFields]:
    if isinstance(entry, ScheduleDay):
        return _DayFields(
            date=entry.date,
            raw_date=entry.iso_date,
            day_of_week=entry.day_of_week.value if entry.day_of_week else "",
            workout_text=entry.workout_text.strip(),
        )
    if not isinstance(entry, Mapping):
        return None
    raw_date = pick_field(entry, "date")
    try:
        parsed: Optional[date] = parse_date(raw_date)
    except InvalidDateFormat:
        parsed = None
    dow = pick_field(entry, "day_of_week")
    text = pick_field(entry, "workout_text")
    return _DayFields(
        date=parsed,
        raw_date=raw_date,
        day_of_week=str(dow).strip() if dow is not None else "",
        workout_text=str(text).strip() if text is not None else "",
    )


def validate_days(days: object) -> ValidationResult:
    """Structural checks on a canonical day list. Never raises, never mutates."""
    if days is None:
        return ValidationResult.from_errors(["days is missing"])
    if not isinstance(days, (list, tuple)):
        return ValidationResult.from_errors(["days must be a list"])
    if not days:
        return ValidationResult.from_errors(["days must not be empty"])

    errors: list[str] = []
    dated: list[date] = []
    seen: set[date] = set()
    reported_duplicates: set[date] = set()

    for idx, entry in enumerate(days):
        fields = _read(entry)
        if fields is None:
            errors.append(f"Day {idx}: entry must be an object")
            continue
        if fields.date is None:
            errors.append(f"Day {idx}: invalid or missing date ({fields.raw_date!r})")
        else:
            dated.append(fields.date)
            if fields.date in seen and fields.date not in reported_duplicates:
                errors.append(f"Duplicate date found: {fields.date.isoformat()}")
                reported_duplicates.add(fields.date)
            seen.add(fields.date)

        label = fields.date.isoformat() if fields.date else f"#{idx}"
        if not fields.day_of_week:
            errors.append(f"Day {label}: missing day_of_week")
        elif fields.date is not None:
            expected = WEEKDAYS[fields.date.weekday()]
            if Weekday.parse(fields.day_of_week) != expected:
                errors.append(
                    f"Day {label}: day_of_week {fields.day_of_week} does not match date ({expected.value})"
                )
        if not fields.workout_text:
            errors.append(f"Day {label}: missing workout_text")

    for earlier, later in zip(dated, dated[1:]):
        if later < earlier:
            errors.append(
                f"Days are not in chronological order: {earlier.isoformat()} comes before {later.isoformat()}"
            )
            break

    return ValidationResult.from_errors(errors)


def validate_plan_coverage(
    days: Sequence[ScheduleDay],
    start_date: Optional[DateLike],
    race_date: Optional[DateLike],
) -> ValidationResult:
    """Every date from start to race must be present, with no gaps."""
    if not days:
        return ValidationResult.from_errors(["days must not be empty"])
    ordered = sorted({d.date for d in days})
    errors: list[str] = []
    if start_date:
        start = parse_date(start_date)
        if ordered[0] != start:
            errors.append(f"Plan starts on {ordered[0].isoformat()}, expected {start.isoformat()}")
    if race_date:
        race = parse_date(race_date)
        if ordered[-1] != race:
            errors.append(f"Plan ends on {ordered[-1].isoformat()}, expected race date {race.isoformat()}")
    for earlier, later in zip(ordered, ordered[1:]):
        gap = (later - earlier).days
        if gap > 1:
            first_missing = earlier + timedelta(days=1)
            last_missing = later - timedelta(days=1)
            errors.append(f"Missing dates {first_missing.isoformat()}..{last_missing.isoformat()}")
    return ValidationResult.from_errors(errors)


def sanitize_days(days: Sequence[ScheduleDay]) -> tuple[ScheduleDay, ...]:
    """Drop repeated dates (first occurrence wins) and sort chronologically."""
    seen: set[date] = set()
    kept: list[ScheduleDay] = []
    for day in days:
        if day.date in seen:
            continue
        seen.add(day.date)
        kept.append(day)
    return tuple(sorted(kept, key=lambda d: d.date))
