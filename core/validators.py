"""Pydantic validation models for all user-facing data entry points."""

from __future__ import annotations

from datetime import date
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from core.services.phase_progress import WorkoutFeedback
from core.services.phase_timeline import PhaseTimeline


class WorkoutFeedbackInput(BaseModel):
    week_number: int = Field(ge=1)
    is_key_workout: bool = False
    completion_status: Literal["completed", "modified", "missed"]
    effort_vs_expected: Optional[Literal["easier", "as_expected", "harder"]] = None
    hr_matched_target: Optional[Literal["yes", "no", "unsure"]] = None
    workout_date: Optional[date] = None

    def to_feedback(self) -> WorkoutFeedback:
        return WorkoutFeedback.from_dict(self.model_dump())


class PhaseTimelineInput(BaseModel):
    enabled: bool = True
    allowed_phases: list[str] = Field(default_factory=list)
    week_to_phase: dict[int, str] = Field(default_factory=dict)
    reason: Optional[str] = None
    initial_progress_percent: Optional[int] = Field(default=None, ge=0, le=100)
    initial_confidence: Optional[Literal["low", "med", "high"]] = None
    calculated_from_week: Optional[int] = Field(default=None, ge=1)

    @field_validator("week_to_phase")
    @classmethod
    def positive_weeks(cls, v):
        bad = [w for w in v if w < 1]
        if bad:
            raise ValueError(f"week numbers must be >= 1, got {sorted(bad)}")
        return v

    def to_timeline(self) -> PhaseTimeline:
        timeline = PhaseTimeline.from_dict(self.model_dump())
        if timeline is None:
            raise ValueError("phase timeline did not parse")
        return timeline


class ProgressRequestInput(BaseModel):
    timeline: PhaseTimelineInput
    current_week: int = Field(ge=1)
    feedback: list[WorkoutFeedbackInput] = Field(default_factory=list)
    weeks_to_race: Optional[int] = None


class NormalizeRequestInput(BaseModel):
    document: dict[str, Any]
    start_date: Optional[date] = None


class PlanCreateInput(BaseModel):
    plan_data: dict[str, Any]
    user_id: Optional[int] = Field(default=None, gt=0)
    start_date: Optional[date] = None
    race_date: Optional[date] = None

    @model_validator(mode="after")
    def race_after_start(self):
        if self.start_date and self.race_date and self.race_date < self.start_date:
            raise ValueError("race_date must not be before start_date")
        return self
