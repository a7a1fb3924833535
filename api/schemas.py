from __future__ import annotations

from datetime import date as dt_date
from typing import Any, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "ok"


class DiagnosticsOut(BaseModel):
    original_day_count: int = 0
    normalized_day_count: int = 0
    invariant_failure_count: int = 0
    missing_weekdays_in_week1: list[str] = Field(default_factory=list)
    validation_errors: list[str] = Field(default_factory=list)
    view_drift_count: int = 0
    stale_view_cells: int = 0
    weeks_in_view: int = 0
    conversion_errors: list[str] = Field(default_factory=list)


class ProgressOut(BaseModel):
    focus_phase_name: str
    focus_phase_id: Optional[str] = None
    purpose: str = ""
    rationale: str
    progress_percent: int = Field(ge=0, le=100)
    confidence: str
    recommended_action: str
    reason_codes: list[str] = Field(default_factory=list)
    show_progress_bar: bool = True
    time_box_escape: bool = False
    accuracy_hint: Optional[str] = None


class NormalizeResponse(BaseModel):
    plan_document: dict[str, Any]
    was_normalized: bool
    needs_persistence: bool
    diagnostics: DiagnosticsOut
    progress: Optional[ProgressOut] = None


class PlanOut(BaseModel):
    id: int
    user_id: Optional[int] = None
    version: int
    start_date: Optional[dt_date] = None
    race_date: Optional[dt_date] = None
    plan_data: dict[str, Any]
    was_normalized: bool = False
    needs_persistence: bool = False
    persisted: bool = False
    diagnostics: DiagnosticsOut = Field(default_factory=DiagnosticsOut)


class PlanCreatedOut(BaseModel):
    id: int
    version: int


class FeedbackCreatedOut(BaseModel):
    id: int
    plan_id: int
