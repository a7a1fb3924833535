from __future__ import annotations

import logging
from datetime import date
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from api.deps import get_app_settings, get_plan_store
from api.schemas import (
    DiagnosticsOut,
    FeedbackCreatedOut,
    HealthResponse,
    NormalizeResponse,
    PlanCreatedOut,
    PlanOut,
    ProgressOut,
)
from core.config import Settings
from core.services.phase_progress import compute_progress
from core.services.plan_normalizer import normalize
from core.services.plan_store import LoadedPlan, PlanNotFound, SqlPlanStore, VersionConflict, load_normalized_plan
from core.validators import NormalizeRequestInput, PlanCreateInput, ProgressRequestInput, WorkoutFeedbackInput

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1")

StoreDep = Annotated[SqlPlanStore, Depends(get_plan_store)]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]


def _load(store: SqlPlanStore, plan_id: int, settings: Settings, **kwargs) -> LoadedPlan:
    try:
        return load_normalized_plan(
            store,
            plan_id,
            retry_attempts=settings.persist_retry_attempts,
            race_imminent_weeks=settings.race_imminent_weeks,
            feedback_window_weeks=settings.feedback_window_weeks,
            **kwargs,
        )
    except PlanNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Plan not found")
    except VersionConflict:
        logger.warning("plan_write_conflict_exhausted", extra={"ctx_plan_id": plan_id})
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Plan was modified concurrently, retry")


@router.get("/health", response_model=HealthResponse, tags=["system"])
def health():
    return HealthResponse(status="ok")


@router.post("/plans/normalize", response_model=NormalizeResponse, tags=["plans"])
def normalize_document(body: NormalizeRequestInput, settings: SettingsDep):
    result = normalize(
        body.document,
        body.start_date,
        race_imminent_weeks=settings.race_imminent_weeks,
        feedback_window_weeks=settings.feedback_window_weeks,
    )
    return NormalizeResponse.model_validate(result.to_dict())


@router.post("/plans", response_model=PlanCreatedOut, status_code=201, tags=["plans"])
def create_plan(body: PlanCreateInput, store: StoreDep):
    stored = store.create(body.plan_data, start_date=body.start_date, race_date=body.race_date, user_id=body.user_id)
    logger.info("plan_created", extra={"ctx_plan_id": stored.id})
    return PlanCreatedOut(id=stored.id, version=stored.version)


@router.get("/plans/{plan_id}", response_model=PlanOut, tags=["plans"])
def get_plan(plan_id: int, store: StoreDep, settings: SettingsDep):
    loaded = _load(store, plan_id, settings)
    result = loaded.result
    return PlanOut(
        id=loaded.plan.id,
        user_id=loaded.plan.user_id,
        version=loaded.version,
        start_date=loaded.plan.start_date,
        race_date=loaded.plan.race_date,
        plan_data=result.document_dict(),
        was_normalized=result.was_normalized,
        needs_persistence=result.needs_persistence,
        persisted=loaded.persisted,
        diagnostics=DiagnosticsOut.model_validate(result.diagnostics.to_dict()),
    )


@router.get("/plans/{plan_id}/progress", response_model=ProgressOut, tags=["progress"])
def get_plan_progress(
    plan_id: int,
    store: StoreDep,
    settings: SettingsDep,
    today: Optional[date] = Query(None),
):
    loaded = _load(store, plan_id, settings, today=today or date.today(), with_progress=True)
    if loaded.result.progress is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Plan has no phase timeline")
    return ProgressOut.model_validate(loaded.result.progress.to_dict())


@router.post("/plans/{plan_id}/feedback", response_model=FeedbackCreatedOut, status_code=201, tags=["progress"])
def add_plan_feedback(plan_id: int, body: WorkoutFeedbackInput, store: StoreDep):
    try:
        store.load(plan_id)
    except PlanNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Plan not found")
    feedback_id = store.add_feedback(plan_id, body.to_feedback(), workout_date=body.workout_date)
    return FeedbackCreatedOut(id=feedback_id, plan_id=plan_id)


@router.post("/progress", response_model=ProgressOut, tags=["progress"])
def progress(body: ProgressRequestInput, settings: SettingsDep):
    summary = compute_progress(
        body.timeline.to_timeline(),
        body.current_week,
        [f.to_feedback() for f in body.feedback],
        body.weeks_to_race,
        race_imminent_weeks=settings.race_imminent_weeks,
        feedback_window_weeks=settings.feedback_window_weeks,
    )
    return ProgressOut.model_validate(summary.to_dict())
