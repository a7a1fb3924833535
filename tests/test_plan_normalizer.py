from __future__ import annotations

import logging
from copy import deepcopy
from datetime import date, datetime, timezone

import core.services.plan_normalizer as normalizer_mod
from core.services.calendar_utils import WEEKDAYS, Weekday, enumerate_dates
from core.services.plan_normalizer import migrate_legacy_document, normalize
from core.services.schedule_model import FormatVersion, PlanDocument

NOW = datetime(2026, 2, 1, 9, 30, tzinfo=timezone.utc)


def _legacy(weeks: int = 2) -> dict:
    return {
        "title": "Spring 10k",
        "plan": [
            {"week": w, "days": {d.value: f"Run w{w} {d.value}" for d in WEEKDAYS if d != Weekday.FRI}}
            for w in range(1, weeks + 1)
        ],
    }


def _canonical(start: str, end: str) -> dict:
    days = []
    for iso in enumerate_dates(start, end):
        d = date.fromisoformat(iso)
        days.append({"date": iso, "day_of_week": WEEKDAYS[d.weekday()].value, "workout_text": f"Run {iso}", "tips": []})
    return {"days": days, "start_date": start}


def test_legacy_plan_is_migrated_and_needs_persistence():
    raw = _legacy()
    before = deepcopy(raw)
    result = normalize(raw, "2026-02-02", now=NOW)

    assert raw == before
    assert result.was_normalized
    assert result.needs_persistence
    doc = result.plan_document
    assert doc.format_version == FormatVersion.CANONICAL_DAILY
    assert len(doc.days) == 14
    assert doc.days[0].iso_date == "2026-02-02"
    assert doc.days[4].is_rest  # Friday was empty in the grid
    assert doc.legacy_plan == raw["plan"]
    assert doc.migration.migrated_at == NOW.isoformat()
    assert len(doc.weekly_view) == 2
    assert result.diagnostics.invariant_failure_count == 0


def test_normalization_is_idempotent_through_storage():
    first = normalize(_legacy(), "2026-02-02", now=NOW)
    stored = first.document_dict()
    second = normalize(stored, "2026-02-02", now=NOW)

    assert not second.was_normalized
    assert not second.needs_persistence
    assert second.document_dict() == stored


def test_legacy_round_trip_through_view_preserves_cells():
    raw = _legacy(3)
    result = normalize(raw, "2026-02-02", now=NOW)
    view = result.plan_document.weekly_view

    for week_index, week in enumerate(raw["plan"]):
        for day in WEEKDAYS:
            cell = view[week_index].cell(day)
            expected = week["days"].get(day.value)
            if expected:
                assert cell.workout_text == expected
            else:
                assert cell.is_rest


def test_canonical_days_are_not_touched():
    raw = _canonical("2026-03-04", "2026-03-20")
    before = deepcopy(raw)
    parsed = PlanDocument.from_dict(raw)
    result = normalize(parsed)

    assert raw == before
    assert result.plan_document.days is parsed.days
    assert not result.needs_persistence
    assert result.was_normalized  # view was missing


def test_total_coverage_for_mid_week_start_and_end():
    result = normalize(_canonical("2026-03-04", "2026-03-20"))
    view = result.plan_document.weekly_view
    covered = [view_cell.date for week in view for view_cell in (week.cell(d) for d in WEEKDAYS)]

    assert covered[0] == date(2026, 3, 2)
    assert covered[-1] == date(2026, 3, 22)
    assert len(covered) == len(set(covered)) == 21
    assert view[0].cell(Weekday.MON).is_rest
    assert view[0].cell(Weekday.WED).workout_text == "Run 2026-03-04"
    assert result.diagnostics.missing_weekdays_in_week1 == ()


def test_without_start_date_input_is_returned_as_is():
    raw = _legacy()
    result = normalize(raw)
    assert result.plan_document is raw
    assert not result.was_normalized
    assert not result.needs_persistence


def test_no_days_and_no_grid_returns_input():
    raw = {"title": "empty"}
    result = normalize(raw, "2026-02-02")
    assert result.plan_document is raw
    assert not result.was_normalized


def test_invalid_shape_returns_input(caplog):
    raw = {"days": "every day"}
    with caplog.at_level(logging.WARNING):
        result = normalize(raw, "2026-02-02")
    assert result.plan_document is raw
    assert any(r.getMessage() == "plan_document_invalid" for r in caplog.records)


def test_unreadable_start_date_leaves_legacy_plan_alone():
    raw = {**_legacy(), "start_date": "someday"}
    result = normalize(raw, "not-a-date")
    assert result.plan_document is raw
    assert not result.was_normalized
    assert not result.needs_persistence


def test_rebuild_failure_fails_closed(monkeypatch, caplog):
    def boom(days):
        raise RuntimeError("view builder exploded")

    monkeypatch.setattr(normalizer_mod, "build_weekly_view", boom)
    raw = _canonical("2026-03-02", "2026-03-08")
    with caplog.at_level(logging.ERROR):
        result = normalize(raw)

    assert result.plan_document is raw
    assert not result.was_normalized
    assert not result.needs_persistence
    assert any(r.getMessage() == "plan_normalization_failed" for r in caplog.records)


def test_invariant_violations_are_counted_not_fatal(caplog):
    raw = _canonical("2026-03-02", "2026-03-08")
    raw["days"].append(dict(raw["days"][0]))
    with caplog.at_level(logging.WARNING):
        result = normalize(raw)

    assert result.diagnostics.invariant_failure_count >= 1
    assert any("Duplicate date found: 2026-03-02" in e for e in result.diagnostics.validation_errors)
    assert any(r.getMessage() == "plan_invariant_violation" for r in caplog.records)
    assert len(result.plan_document.days) == 8


def test_stale_stored_view_is_replaced_without_persistence():
    raw = _canonical("2026-03-02", "2026-03-08")
    raw["weekly_view"] = [{"week": 1, "days": {"Mon": {"workout_text": "Old text", "date": "2026-03-02"}}}]
    result = normalize(raw)

    assert result.was_normalized
    assert not result.needs_persistence
    assert result.diagnostics.stale_view_cells == 1
    assert result.plan_document.weekly_view[0].cell(Weekday.MON).workout_text == "Run 2026-03-02"


def test_progress_attached_when_timeline_present():
    raw = _canonical("2026-01-05", "2026-04-26")
    raw["race_date"] = "2026-04-26"
    raw["phase_timeline"] = {"enabled": True, "allowed_phases": ["aerobic_base"], "week_to_phase": {"1": "aerobic_base"}}
    result = normalize(raw, today=date(2026, 1, 14))

    assert result.progress is not None
    assert result.progress.focus_phase_id == "aerobic_base"
    assert result.to_dict()["progress"]["focus_phase_name"] == "Aerobic Base"


def test_migrate_legacy_document():
    raw = _legacy(1)
    migrated = migrate_legacy_document(raw, "2026-02-02", now=NOW)
    assert migrated["format_version"] == "canonical_daily"
    assert len(migrated["days"]) == 7
    assert migrated["title"] == "Spring 10k"

    canonical = _canonical("2026-03-02", "2026-03-08")
    assert migrate_legacy_document(canonical) is canonical


def test_malformed_migration_block_is_tolerated():
    raw = _canonical("2026-03-02", "2026-03-08")
    raw["migration"] = {"weeks_converted": "two", "days_generated": None}
    result = normalize(raw)

    assert result.was_normalized
    assert result.plan_document.migration.weeks_converted == 0
    assert result.plan_document.migration.days_generated == 0


def test_corrupt_timeline_does_not_undo_migration():
    raw = {**_legacy(), "phase_timeline": {"enabled": True, "initial_progress_percent": "n/a"}}
    result = normalize(raw, "2026-02-02", today=date(2026, 2, 4), now=NOW)

    assert result.was_normalized
    assert result.needs_persistence
    assert len(result.plan_document.days) == 14
    assert result.progress is not None


def test_progress_failure_keeps_normalized_document(monkeypatch, caplog):
    def boom(*args, **kwargs):
        raise RuntimeError("progress engine exploded")

    monkeypatch.setattr(normalizer_mod, "compute_progress", boom)
    raw = {**_legacy(), "phase_timeline": {"enabled": True, "week_to_phase": {"1": "aerobic_base"}}}
    with caplog.at_level(logging.ERROR):
        result = normalize(raw, "2026-02-02", today=date(2026, 2, 4), now=NOW)

    assert result.needs_persistence
    assert result.plan_document.format_version == FormatVersion.CANONICAL_DAILY
    assert result.progress is None
    assert any(r.getMessage() == "plan_progress_failed" for r in caplog.records)


def test_empty_view_falls_back_to_legacy_grid():
    legacy = _legacy(1)
    raw = {"title": legacy["title"], "weekly_view": [], "plan": legacy["plan"]}
    result = normalize(raw, "2026-02-02", now=NOW)

    assert result.needs_persistence
    assert len(result.plan_document.days) == 7
    assert result.plan_document.days[0].workout_text == "Run w1 Mon"
