from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import sessionmaker

from core.db import session_scope
from core.logging_config import LoggerLike, bind_plan_logger
from core.models import TrainingPlan, WorkoutFeedbackLog
from core.services.calendar_utils import weeks_to_race
from core.services.phase_progress import FEEDBACK_WINDOW_WEEKS, RACE_IMMINENT_WEEKS, WorkoutFeedback
from core.services.plan_normalizer import NormalizationResult, normalize


class PlanNotFound(LookupError):
    def __init__(self, plan_id: int):
        super().__init__(f"Training plan {plan_id} not found")
        self.plan_id = plan_id


class VersionConflict(Exception):
    """Another writer bumped the plan version first; reload and recompute."""

    def __init__(self, plan_id: int, expected_version: int):
        super().__init__(f"Training plan {plan_id} changed since version {expected_version}")
        self.plan_id = plan_id
        self.expected_version = expected_version


@dataclass(frozen=True)
class StoredPlan:
    id: int
    user_id: Optional[int]
    plan_data: dict[str, Any]
    start_date: Optional[dt.date]
    race_date: Optional[dt.date]
    version: int


def _to_stored(row: TrainingPlan) -> StoredPlan:
    return StoredPlan(
        id=row.id,
        user_id=row.user_id,
        plan_data=dict(row.plan_data or {}),
        start_date=row.start_date,
        race_date=row.race_date,
        version=row.version,
    )


class SqlPlanStore:
    """Plan documents keyed by id, written with an optimistic version check."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._factory = session_factory

    def create(
        self,
        plan_data: Mapping[str, Any],
        start_date: Optional[dt.date] = None,
        race_date: Optional[dt.date] = None,
        user_id: Optional[int] = None,
    ) -> StoredPlan:
        with session_scope(self._factory) as s:
            row = TrainingPlan(
                user_id=user_id,
                plan_data=dict(plan_data),
                start_date=start_date,
                race_date=race_date,
                version=1,
            )
            s.add(row)
            s.flush()
            return _to_stored(row)

    def load(self, plan_id: int) -> StoredPlan:
        with session_scope(self._factory) as s:
            row = s.get(TrainingPlan, plan_id)
            if row is None:
                raise PlanNotFound(plan_id)
            return _to_stored(row)

    def list_plan_ids(self) -> list[int]:
        with session_scope(self._factory) as s:
            return list(s.execute(select(TrainingPlan.id).order_by(TrainingPlan.id)).scalars())

    def save(self, plan_id: int, document: Mapping[str, Any], expected_version: int) -> int:
        """Write ``document`` if the stored version is still ``expected_version``; returns the new version."""
        with session_scope(self._factory) as s:
            result = s.execute(
                update(TrainingPlan)
                .where(TrainingPlan.id == plan_id, TrainingPlan.version == expected_version)
                .values(
                    plan_data=dict(document),
                    version=expected_version + 1,
                    updated_at=dt.datetime.utcnow(),
                )
            )
            if result.rowcount == 0:
                if s.get(TrainingPlan, plan_id) is None:
                    raise PlanNotFound(plan_id)
                raise VersionConflict(plan_id, expected_version)
        return expected_version + 1

    def add_feedback(self, plan_id: int, feedback: WorkoutFeedback, workout_date: Optional[dt.date] = None) -> int:
        with session_scope(self._factory) as s:
            row = WorkoutFeedbackLog(
                plan_id=plan_id,
                workout_date=workout_date,
                week_number=feedback.week_number,
                is_key_workout=feedback.is_key_workout,
                completion_status=feedback.completion_status.value,
                effort_vs_expected=feedback.effort_vs_expected.value if feedback.effort_vs_expected else None,
                hr_matched_target=feedback.hr_matched_target.value if feedback.hr_matched_target else None,
            )
            s.add(row)
            s.flush()
            return row.id

    def list_feedback(self, plan_id: int) -> list[WorkoutFeedback]:
        with session_scope(self._factory) as s:
            rows = s.execute(
                select(WorkoutFeedbackLog)
                .where(WorkoutFeedbackLog.plan_id == plan_id)
                .order_by(WorkoutFeedbackLog.week_number, WorkoutFeedbackLog.id)
            ).scalars()
            return [
                WorkoutFeedback.from_dict(
                    {
                        "week_number": r.week_number,
                        "is_key_workout": r.is_key_workout,
                        "completion_status": r.completion_status,
                        "effort_vs_expected": r.effort_vs_expected,
                        "hr_matched_target": r.hr_matched_target,
                    }
                )
                for r in rows
            ]


@dataclass(frozen=True)
class LoadedPlan:
    plan: StoredPlan
    result: NormalizationResult
    persisted: bool
    attempts: int

    @property
    def version(self) -> int:
        return self.plan.version + (1 if self.persisted else 0)


def load_normalized_plan(
    store: SqlPlanStore,
    plan_id: int,
    *,
    retry_attempts: int = 2,
    today: Optional[dt.date] = None,
    with_progress: bool = False,
    race_imminent_weeks: int = RACE_IMMINENT_WEEKS,
    feedback_window_weeks: int = FEEDBACK_WINDOW_WEEKS,
    dry_run: bool = False,
    log: Optional[LoggerLike] = None,
) -> LoadedPlan:
    """Migration-on-read: normalize the stored plan and write back only a real migration.

    A lost version race reloads the plan and recomputes, ``retry_attempts``
    times at most; the last ``VersionConflict`` propagates.
    """
    attempt = 0
    while True:
        attempt += 1
        stored = store.load(plan_id)
        plan_log = log or bind_plan_logger(plan_id=stored.id, user_id=stored.user_id)
        feedback = store.list_feedback(plan_id) if with_progress else []
        weeks_left = weeks_to_race(stored.race_date, today) if with_progress and today else None
        result = normalize(
            stored.plan_data,
            stored.start_date,
            log=plan_log,
            feedback=feedback,
            weeks_to_race=weeks_left,
            today=today if with_progress else None,
            race_imminent_weeks=race_imminent_weeks,
            feedback_window_weeks=feedback_window_weeks,
        )
        if not result.needs_persistence or dry_run:
            return LoadedPlan(plan=stored, result=result, persisted=False, attempts=attempt)
        try:
            store.save(plan_id, result.document_dict(), stored.version)
        except VersionConflict:
            plan_log.warning(
                "plan_write_conflict",
                extra={"ctx_expected_version": stored.version, "ctx_attempt": attempt},
            )
            if attempt > retry_attempts:
                raise
            continue
        plan_log.info("plan_migration_persisted", extra={"ctx_version": stored.version + 1})
        return LoadedPlan(plan=stored, result=result, persisted=True, attempts=attempt)
