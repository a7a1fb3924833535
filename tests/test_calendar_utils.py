from __future__ import annotations

from datetime import date

import pytest

from core.services.calendar_utils import (
    InvalidDateFormat,
    Weekday,
    add_days,
    current_week_number,
    day_of_week_name,
    enumerate_dates,
    is_iso_date,
    monday_of,
    parse_date,
    sunday_on_or_after,
    weekday_index,
    weeks_to_race,
)


def test_weekday_index_is_monday_first():
    assert weekday_index("Mon") == 0
    assert weekday_index("Sun") == 6
    assert weekday_index(Weekday.THU) == 3


def test_weekday_parse_is_lenient():
    assert Weekday.parse("monday") == Weekday.MON
    assert Weekday.parse("SAT") == Weekday.SAT
    assert Weekday.parse("Funday") is None
    assert Weekday.parse(None) is None


def test_weekday_index_rejects_unknown():
    with pytest.raises(ValueError):
        weekday_index("Xyz")


def test_parse_date_rejects_bad_strings():
    for bad in ["2026-1-5", "05/01/2026", "2026-02-30", "", "tomorrow"]:
        with pytest.raises(InvalidDateFormat):
            parse_date(bad)
    assert is_iso_date("2026-02-28")
    assert not is_iso_date("2026-02-30")
    assert not is_iso_date(None)


def test_monday_of_treats_sunday_as_end_of_week():
    assert monday_of("2026-01-04") == date(2025, 12, 29)  # Sunday
    assert monday_of("2026-01-05") == date(2026, 1, 5)  # Monday
    assert monday_of("2026-01-07") == date(2026, 1, 5)


def test_sunday_on_or_after():
    assert sunday_on_or_after("2026-01-04") == date(2026, 1, 4)
    assert sunday_on_or_after("2026-01-05") == date(2026, 1, 11)


def test_add_days_crosses_month_and_leap_boundaries():
    assert add_days("2024-02-28", 1) == "2024-02-29"
    assert add_days("2024-02-28", 2) == "2024-03-01"
    assert add_days("2026-01-01", -1) == "2025-12-31"


def test_day_of_week_name():
    assert day_of_week_name("2026-01-05") == Weekday.MON
    assert day_of_week_name("2026-01-11") == Weekday.SUN


def test_enumerate_dates_is_inclusive_and_restartable():
    rng = enumerate_dates("2026-01-30", "2026-02-02")
    assert list(rng) == ["2026-01-30", "2026-01-31", "2026-02-01", "2026-02-02"]
    assert list(rng) == list(rng)
    assert len(rng) == 4
    assert "2026-02-01" in rng
    assert "2026-02-03" not in rng
    assert "garbage" not in rng


def test_enumerate_dates_empty_when_reversed():
    rng = enumerate_dates("2026-02-02", "2026-02-01")
    assert list(rng) == []
    assert len(rng) == 0


def test_current_week_number():
    assert current_week_number("2026-01-05", "2026-01-05") == 1
    assert current_week_number("2026-01-05", "2026-01-11") == 1
    assert current_week_number("2026-01-05", "2026-01-12") == 2
    assert current_week_number("2026-01-05", "2025-12-01") == 1
    assert current_week_number(None, "2026-01-12") == 1


def test_weeks_to_race_rounds_up():
    assert weeks_to_race("2026-03-01", "2026-03-01") == 0
    assert weeks_to_race("2026-03-08", "2026-03-01") == 1
    assert weeks_to_race("2026-03-09", "2026-03-01") == 2
    assert weeks_to_race(None, "2026-03-01") is None
