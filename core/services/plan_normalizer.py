"""Plan normalization: migration-on-read plus a rebuilt weekly view.

``normalize`` accepts a stored plan of either vintage. Legacy week grids are
converted into canonical days (when a start date is known), the weekly view
is rebuilt from the days, and the result says whether anything changed and
whether the caller must write the document back.

Only a legacy-to-canonical migration asks for persistence; rebuilding the
view from existing days never does. Any unexpected error inside the rebuild
returns the input untouched.
"""

from __future__ import annotations

import logging
from copy import deepcopy
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Mapping, Optional, Sequence, Union

from core.logging_config import LoggerLike
from core.services.calendar_utils import (
    WEEKDAYS,
    DateLike,
    InvalidDateFormat,
    current_week_number,
    parse_date,
    weeks_to_race as weeks_until,
)
from core.services.legacy_converter import convert_document
from core.services.phase_progress import (
    FEEDBACK_WINDOW_WEEKS,
    RACE_IMMINENT_WEEKS,
    ProgressSummary,
    WorkoutFeedback,
    compute_progress,
)
from core.services.phase_timeline import PhaseTimeline
from core.services.schedule_model import FormatVersion, PlanDocument
from core.services.schedule_validator import validate_days
from core.services.weekly_view import build_weekly_view, detect_view_drift

logger = logging.getLogger(__name__)

DocumentInput = Union[PlanDocument, Mapping[str, Any]]


@dataclass(frozen=True)
class NormalizationDiagnostics:
    original_day_count: int = 0
    normalized_day_count: int = 0
    invariant_failure_count: int = 0
    missing_weekdays_in_week1: tuple[str, ...] = ()
    validation_errors: tuple[str, ...] = ()
    view_drift_count: int = 0
    stale_view_cells: int = 0
    weeks_in_view: int = 0
    conversion_errors: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "original_day_count": self.original_day_count,
            "normalized_day_count": self.normalized_day_count,
            "invariant_failure_count": self.invariant_failure_count,
            "missing_weekdays_in_week1": list(self.missing_weekdays_in_week1),
            "validation_errors": list(self.validation_errors),
            "view_drift_count": self.view_drift_count,
            "stale_view_cells": self.stale_view_cells,
            "weeks_in_view": self.weeks_in_view,
            "conversion_errors": list(self.conversion_errors),
        }


@dataclass(frozen=True)
class NormalizationResult:
    """Outcome of one normalization pass.

    ``plan_document`` is the caller's own input object whenever nothing was
    applied (not date-based, no start date, or a failure).
    """

    plan_document: DocumentInput
    was_normalized: bool
    needs_persistence: bool
    diagnostics: NormalizationDiagnostics = field(default_factory=NormalizationDiagnostics)
    progress: Optional[ProgressSummary] = None

    def document_dict(self) -> dict[str, Any]:
        if isinstance(self.plan_document, PlanDocument):
            return self.plan_document.to_dict()
        return deepcopy(dict(self.plan_document))

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan_document": self.document_dict(),
            "was_normalized": self.was_normalized,
            "needs_persistence": self.needs_persistence,
            "diagnostics": self.diagnostics.to_dict(),
            "progress": self.progress.to_dict() if self.progress else None,
        }


def _raw_day_count(document: DocumentInput) -> int:
    if isinstance(document, PlanDocument):
        return len(document.days)
    days = document.get("days") if isinstance(document, Mapping) else None
    return len(days) if isinstance(days, list) else 0


def _unchanged(document: DocumentInput, diagnostics: NormalizationDiagnostics) -> NormalizationResult:
    return NormalizationResult(
        plan_document=document,
        was_normalized=False,
        needs_persistence=False,
        diagnostics=diagnostics,
    )


def _resolve_start(start_date: Optional[DateLike], document: PlanDocument) -> Optional[date]:
    if start_date:
        try:
            return parse_date(start_date)
        except InvalidDateFormat:
            return None
    return document.start_date


def normalize(
    document: DocumentInput,
    start_date: Optional[DateLike] = None,
    *,
    log: Optional[LoggerLike] = None,
    timeline: Optional[PhaseTimeline] = None,
    feedback: Sequence[WorkoutFeedback] = (),
    current_week: Optional[int] = None,
    weeks_to_race: Optional[int] = None,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
    race_imminent_weeks: int = RACE_IMMINENT_WEEKS,
    feedback_window_weeks: int = FEEDBACK_WINDOW_WEEKS,
) -> NormalizationResult:
    """Normalize a stored plan and optionally attach a progress summary.

    ``start_date`` overrides the document's own start date. Progress is
    computed when a phase timeline is available (argument or the document's
    ``phase_timeline`` key) and the current week is known, either directly
    or via ``today``.
    """
    log = log or logger
    original_count = _raw_day_count(document)

    try:
        parsed = PlanDocument.from_dict(document)
    except (TypeError, ValueError) as exc:  # InvalidInputShape included
        log.warning("plan_document_invalid", extra={"ctx_error": str(exc)})
        return _unchanged(document, NormalizationDiagnostics(original_day_count=original_count))

    start = _resolve_start(start_date, parsed)
    working = parsed
    was_converted = False
    conversion_errors: tuple[str, ...] = ()

    # 1. migrate legacy grids
    if not parsed.days and parsed.has_weekly_grid and start is not None:
        working, conversion = convert_document(parsed, start, now=now, log=log)
        if conversion.success:
            was_converted = True
            log.info(
                "legacy_plan_migrated",
                extra={
                    "ctx_weeks_converted": conversion.metadata.weeks_converted,
                    "ctx_days_generated": conversion.metadata.days_generated,
                },
            )
        else:
            conversion_errors = conversion.errors
            log.error("plan_conversion_failed", extra={"ctx_errors": list(conversion.errors)})

    # 2. nothing date-based to work with
    if not working.days:
        return _unchanged(
            document,
            NormalizationDiagnostics(original_day_count=original_count, conversion_errors=conversion_errors),
        )
    # 3. no way to anchor week boundaries
    if start is None:
        log.info("plan_normalization_skipped", extra={"ctx_reason": "missing_start_date"})
        return _unchanged(document, NormalizationDiagnostics(original_day_count=original_count))

    try:
        # 4. rebuild the view from the days and check the invariants
        snapshot = deepcopy(working.days)
        ordered = sorted(working.days, key=lambda d: d.date)
        view = build_weekly_view(ordered)

        failures = 0
        if working.days != snapshot:
            failures += 1
            log.error("days_mutated_during_normalization", extra={"ctx_day_count": len(working.days)})

        validation = validate_days(ordered)
        failures += len(validation.errors)
        if validation.errors:
            log.warning(
                "plan_invariant_violation",
                extra={"ctx_failure_count": len(validation.errors), "ctx_errors": list(validation.errors[:10])},
            )

        drift = detect_view_drift(view, working.days)
        failures += len(drift)
        if drift:
            log.error(
                "weekly_view_drift_detected",
                extra={"ctx_view": "rebuilt", "ctx_cells": [d.date.isoformat() for d in drift[:10]]},
            )

        stale = detect_view_drift(working.weekly_view, working.days) if not was_converted else []
        if stale:
            log.warning(
                "weekly_view_drift_detected",
                extra={"ctx_view": "stored", "ctx_cells": [d.date.isoformat() for d in stale[:10]]},
            )

        if view:
            missing = tuple(day.value for day in view[0].missing_weekdays())
        else:
            missing = tuple(day.value for day in WEEKDAYS)

        # 5. / 6. change detection and persistence decision
        was_normalized = was_converted or view != working.weekly_view
        needs_persistence = was_converted
        normalized = replace(
            working,
            format_version=FormatVersion.CANONICAL_DAILY,
            weekly_view=view,
            start_date=working.start_date or start,
        )
    except Exception:
        log.exception("plan_normalization_failed", extra={"ctx_day_count": original_count})
        return _unchanged(document, NormalizationDiagnostics(original_day_count=original_count))

    diagnostics = NormalizationDiagnostics(
        original_day_count=original_count,
        normalized_day_count=len(normalized.days),
        invariant_failure_count=failures,
        missing_weekdays_in_week1=missing,
        validation_errors=validation.errors,
        view_drift_count=len(drift),
        stale_view_cells=len(stale),
        weeks_in_view=len(view),
    )
    # a bad stored timeline leaves progress unset
    try:
        progress = _progress_for(
            normalized,
            timeline=timeline,
            feedback=feedback,
            current_week=current_week,
            weeks_to_race=weeks_to_race,
            today=today,
            race_imminent_weeks=race_imminent_weeks,
            feedback_window_weeks=feedback_window_weeks,
            log=log,
        )
    except Exception:
        log.exception("plan_progress_failed", extra={"ctx_day_count": len(normalized.days)})
        progress = None

    log.info(
        "plan_normalized",
        extra={
            "ctx_was_converted": was_converted,
            "ctx_was_normalized": was_normalized,
            "ctx_needs_persistence": needs_persistence,
            "ctx_invariant_failures": failures,
        },
    )
    return NormalizationResult(
        plan_document=normalized,
        was_normalized=was_normalized,
        needs_persistence=needs_persistence,
        diagnostics=diagnostics,
        progress=progress,
    )


def _progress_for(
    document: PlanDocument,
    *,
    timeline: Optional[PhaseTimeline],
    feedback: Sequence[WorkoutFeedback],
    current_week: Optional[int],
    weeks_to_race: Optional[int],
    today: Optional[date],
    race_imminent_weeks: int,
    feedback_window_weeks: int,
    log: LoggerLike,
) -> Optional[ProgressSummary]:
    if timeline is None:
        timeline = PhaseTimeline.from_dict(document.extras.get("phase_timeline"))
    if timeline is None:
        return None
    if current_week is None:
        if today is None:
            return None
        current_week = current_week_number(document.start_date, today)
    if weeks_to_race is None and today is not None:
        weeks_to_race = weeks_until(document.race_date, today)
    return compute_progress(
        timeline,
        current_week,
        feedback,
        weeks_to_race,
        race_imminent_weeks=race_imminent_weeks,
        feedback_window_weeks=feedback_window_weeks,
        log=log,
    )


def migrate_legacy_document(
    raw: Mapping[str, Any],
    start_date: Optional[DateLike] = None,
    *,
    now: Optional[datetime] = None,
    log: Optional[LoggerLike] = None,
) -> Mapping[str, Any]:
    """Canonical stored form of a legacy document, or ``raw`` itself when there is nothing to migrate."""
    result = normalize(raw, start_date, log=log, now=now)
    if not result.needs_persistence:
        return raw
    return result.document_dict()
