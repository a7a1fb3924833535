from __future__ import annotations

from datetime import date, timedelta

from core.services.calendar_utils import WEEKDAYS, Weekday
from core.services.schedule_model import DayCell, ScheduleDay, WeekView
from core.services.weekly_view import build_weekly_view, detect_view_drift, view_dates


def _day(iso: str, text: str = "Easy") -> ScheduleDay:
    d = date.fromisoformat(iso)
    return ScheduleDay(date=d, day_of_week=WEEKDAYS[d.weekday()], workout_text=text)


def test_empty_days_give_empty_view():
    assert build_weekly_view([]) == ()


def test_every_date_appears_exactly_once_with_rest_padding():
    # Wednesday to the following Tuesday
    days = [_day((date(2026, 2, 4) + timedelta(days=i)).isoformat(), f"run {i}") for i in range(7)]
    view = build_weekly_view(days)

    assert len(view) == 2
    assert [w.week_number for w in view] == [1, 2]
    dates = view_dates(view)
    assert len(dates) == len(set(dates)) == 14
    assert dates[0] == date(2026, 2, 2)
    assert dates[-1] == date(2026, 2, 15)
    assert view[0].cell(Weekday.MON).is_rest
    assert view[0].cell(Weekday.TUE).is_rest
    assert view[0].cell(Weekday.WED).workout_text == "run 0"
    assert view[1].cell(Weekday.TUE).workout_text == "run 6"
    assert view[1].cell(Weekday.SUN).is_rest


def test_sunday_start_belongs_to_previous_monday_week():
    view = build_weekly_view([_day("2026-02-08"), _day("2026-02-09")])
    assert len(view) == 2
    assert view[0].cell(Weekday.MON).date == date(2026, 2, 2)
    assert view[0].cell(Weekday.SUN).workout_text == "Easy"
    assert view[1].cell(Weekday.MON).workout_text == "Easy"


def test_unsorted_input_is_not_mutated():
    days = [_day("2026-02-10", "b"), _day("2026-02-09", "a")]
    snapshot = list(days)
    view = build_weekly_view(days)
    assert days == snapshot
    assert view[0].cell(Weekday.MON).workout_text == "a"


def test_detect_view_drift_ignores_rest_and_undated_cells():
    days = [_day("2026-02-02", "Tempo"), _day("2026-02-03", "Easy")]
    stale = (
        WeekView(
            week_number=1,
            days={
                Weekday.MON: DayCell(workout_text="Intervals", date=date(2026, 2, 2)),
                Weekday.TUE: DayCell(workout_text="Easy", date=date(2026, 2, 3)),
                Weekday.WED: DayCell.rest(date(2026, 2, 4)),
                Weekday.THU: DayCell(workout_text="Hills"),
            },
        ),
    )
    drift = detect_view_drift(stale, days)
    assert len(drift) == 1
    assert drift[0].day == Weekday.MON
    assert drift[0].view_text == "Intervals"
    assert drift[0].canonical_text == "Tempo"


def test_rebuilt_view_has_no_drift():
    days = [_day("2026-02-02", "Tempo"), _day("2026-02-05", "Long run")]
    assert detect_view_drift(build_weekly_view(days), days) == []
