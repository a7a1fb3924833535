"""Tests for Pydantic input validation models."""

from __future__ import annotations

from datetime import date

import pytest
from pydantic import ValidationError

from core.services.phase_progress import CompletionStatus, EffortVsExpected
from core.validators import (
    NormalizeRequestInput,
    PhaseTimelineInput,
    PlanCreateInput,
    ProgressRequestInput,
    WorkoutFeedbackInput,
)


# --- WorkoutFeedbackInput ---

def test_feedback_valid():
    fb = WorkoutFeedbackInput(week_number=2, is_key_workout=True, completion_status="completed", effort_vs_expected="harder")
    out = fb.to_feedback()
    assert out.completion_status == CompletionStatus.COMPLETED
    assert out.effort_vs_expected == EffortVsExpected.HARDER
    assert out.hr_matched_target is None


def test_feedback_rejects_unknown_status():
    with pytest.raises(ValidationError):
        WorkoutFeedbackInput(week_number=1, completion_status="skipped")


def test_feedback_rejects_week_zero():
    with pytest.raises(ValidationError):
        WorkoutFeedbackInput(week_number=0, completion_status="missed")


# --- PhaseTimelineInput ---

def test_timeline_coerces_string_weeks():
    tl = PhaseTimelineInput(allowed_phases=["threshold"], week_to_phase={"1": "threshold", "2": "threshold"})
    timeline = tl.to_timeline()
    assert timeline.enabled
    assert timeline.week_to_phase == {1: "threshold", 2: "threshold"}


def test_timeline_rejects_non_positive_weeks():
    with pytest.raises(ValidationError):
        PhaseTimelineInput(week_to_phase={0: "threshold"})


def test_timeline_initial_progress_range():
    with pytest.raises(ValidationError):
        PhaseTimelineInput(initial_progress_percent=120)
    with pytest.raises(ValidationError):
        PhaseTimelineInput(initial_confidence="certain")


# --- ProgressRequestInput ---

def test_progress_request_requires_positive_week():
    with pytest.raises(ValidationError):
        ProgressRequestInput(timeline=PhaseTimelineInput(), current_week=0)


def test_progress_request_nested_feedback():
    req = ProgressRequestInput(
        timeline={"week_to_phase": {"1": "aerobic_base"}},
        current_week=1,
        feedback=[{"week_number": 1, "completion_status": "modified"}],
    )
    assert req.feedback[0].to_feedback().completion_status == CompletionStatus.MODIFIED


# --- NormalizeRequestInput / PlanCreateInput ---

def test_normalize_request_parses_start_date():
    req = NormalizeRequestInput(document={"plan": []}, start_date="2026-02-02")
    assert req.start_date == date(2026, 2, 2)


def test_normalize_request_rejects_bad_date():
    with pytest.raises(ValidationError):
        NormalizeRequestInput(document={}, start_date="02/02/2026")


def test_plan_create_valid():
    plan = PlanCreateInput(plan_data={"plan": []}, start_date="2026-02-02", race_date="2026-05-03", user_id=3)
    assert plan.race_date == date(2026, 5, 3)


def test_plan_create_race_before_start():
    with pytest.raises(ValidationError):
        PlanCreateInput(plan_data={}, start_date="2026-05-03", race_date="2026-02-02")


def test_plan_create_rejects_non_positive_user():
    with pytest.raises(ValidationError):
        PlanCreateInput(plan_data={}, user_id=0)


def test_timeline_carries_initial_estimate():
    tl = PhaseTimelineInput(
        week_to_phase={3: "threshold"},
        initial_progress_percent=40,
        initial_confidence="med",
        calculated_from_week=3,
    )
    timeline = tl.to_timeline()
    assert timeline.initial_progress_percent == 40
    assert timeline.initial_confidence == "med"
    assert timeline.calculated_from_week == 3
