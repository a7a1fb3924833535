from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional, Sequence

from core.services.calendar_utils import WEEKDAYS, Weekday, monday_of, sunday_on_or_after
from core.services.schedule_model import DayCell, ScheduleDay, WeekView


@dataclass(frozen=True)
class ViewDrift:
    week_number: int
    day: Weekday
    date: date
    view_text: str
    canonical_text: Optional[str]


def index_by_date(days: Iterable[ScheduleDay]) -> dict[date, ScheduleDay]:
    """First entry wins when a date repeats."""
    by_date: dict[date, ScheduleDay] = {}
    for day in days:
        by_date.setdefault(day.date, day)
    return by_date


def build_weekly_view(days: Sequence[ScheduleDay]) -> tuple[WeekView, ...]:
    """Project canonical days onto Monday-first weeks.

    Week 1 starts on the Monday on or before the earliest day and the last
    week ends on the Sunday on or after the latest day. Dates with no entry
    become REST cells. ``days`` is read, never written.
    """
    if not days:
        return ()
    ordered = sorted(days, key=lambda d: d.date)
    by_date = index_by_date(ordered)
    first_monday = monday_of(ordered[0].date)
    last_sunday = sunday_on_or_after(ordered[-1].date)

    weeks: list[WeekView] = []
    week_start = first_monday
    week_number = 1
    while week_start <= last_sunday:
        cells: dict[Weekday, DayCell] = {}
        for day in WEEKDAYS:
            on_date = week_start + timedelta(days=day.position)
            match = by_date.get(on_date)
            cells[day] = DayCell.from_day(match) if match is not None else DayCell.rest(on_date)
        weeks.append(WeekView(week_number=week_number, days=cells))
        week_start += timedelta(days=7)
        week_number += 1
    return tuple(weeks)


def detect_view_drift(view: Sequence[WeekView], days: Sequence[ScheduleDay]) -> list[ViewDrift]:
    """Non-rest, dated cells whose text disagrees with the canonical day."""
    by_date = index_by_date(days)
    drift: list[ViewDrift] = []
    for week in view:
        for day in WEEKDAYS:
            cell = week.cell(day)
            if cell is None or cell.date is None or cell.is_rest:
                continue
            source = by_date.get(cell.date)
            source_text = source.workout_text if source is not None else None
            if source_text != cell.workout_text:
                drift.append(
                    ViewDrift(
                        week_number=week.week_number,
                        day=day,
                        date=cell.date,
                        view_text=cell.workout_text,
                        canonical_text=source_text,
                    )
                )
    return drift


def view_dates(view: Sequence[WeekView]) -> list[date]:
    dates: list[date] = []
    for week in view:
        for day in WEEKDAYS:
            cell = week.cell(day)
            if cell is not None and cell.date is not None:
                dates.append(cell.date)
    return dates
