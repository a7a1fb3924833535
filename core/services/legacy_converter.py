from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
from typing import Any, Mapping, Optional, Union

from core.logging_config import LoggerLike
from core.services.calendar_utils import WEEKDAYS, DateLike, InvalidDateFormat, parse_date
from core.services.schedule_model import (
    DayCell,
    FormatVersion,
    InvalidInputShape,
    MigrationMetadata,
    PlanDocument,
    ScheduleDay,
    ScheduleKind,
    WeekView,
)

logger = logging.getLogger(__name__)

# Cell keys that only make sense on the grid; the converter recomputes them.
_GRID_ONLY_KEYS = {"date", "day_of_week"}


@dataclass(frozen=True)
class ConversionMetadata:
    weeks_converted: int = 0
    days_generated: int = 0
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "weeks_converted": self.weeks_converted,
            "days_generated": self.days_generated,
            "start_date": self.start_date,
            "end_date": self.end_date,
        }


@dataclass(frozen=True)
class ConversionResult:
    days: tuple[ScheduleDay, ...] = ()
    success: bool = False
    errors: tuple[str, ...] = ()
    metadata: ConversionMetadata = field(default_factory=ConversionMetadata)


def infer_kind(workout_text: str) -> ScheduleKind:
    """Keyword classifier for untagged legacy cells.

    Known approximation: any mention of "race" wins, so "tempo at race pace"
    is tagged RACE. Only used when the cell carries no explicit kind.
    """
    lowered = (workout_text or "").strip().lower()
    if "race" in lowered:
        return ScheduleKind.RACE
    if lowered == "rest" or "rest day" in lowered:
        return ScheduleKind.REST
    return ScheduleKind.TRAIN


def _failed(*errors: str) -> ConversionResult:
    return ConversionResult(success=False, errors=tuple(errors))


def _day_from_cell(cell: Optional[DayCell], on_date: date) -> ScheduleDay:
    if cell is None or not cell.workout_text.strip():
        return ScheduleDay.rest(on_date)
    return ScheduleDay(
        date=on_date,
        day_of_week=WEEKDAYS[on_date.weekday()],
        workout_text=cell.workout_text,
        tips=cell.tips,
        kind=cell.kind or infer_kind(cell.workout_text),
        calibration_tag=cell.calibration_tag,
        workout_variant=cell.workout_variant,
        extra={k: v for k, v in cell.extra.items() if k not in _GRID_ONLY_KEYS},
    )


def _grid_of(legacy: Union[PlanDocument, Mapping[str, Any]]) -> Optional[tuple[WeekView, ...]]:
    if isinstance(legacy, PlanDocument):
        return legacy.weekly_view if legacy.weekly_view else None
    if not isinstance(legacy, Mapping):
        return None
    grid = legacy.get("plan")
    if not grid:
        grid = legacy.get("weekly_view", grid)
    if not isinstance(grid, list):
        return None
    return tuple(WeekView.from_dict(w, i) for i, w in enumerate(grid))


def convert_weeks_to_days(
    legacy: Union[PlanDocument, Mapping[str, Any]],
    start_date: Optional[DateLike],
    log: Optional[LoggerLike] = None,
) -> ConversionResult:
    """Expand a week-indexed grid into one dated ``ScheduleDay`` per cell.

    Week ``i`` (0-based, stored order) and weekday ``d`` (Mon=0) land on
    ``start_date + i*7 + d``. Empty or missing cells become REST days.
    """
    log = log or logger
    weeks = _grid_of(legacy)
    if weeks is None:
        return _failed("Legacy plan is missing a weekly grid (plan must be a list of weeks)")
    if not weeks:
        return _failed("Legacy plan has no weeks to convert")
    if not isinstance(start_date, (str, date)):
        return _failed(f"Invalid start date: {start_date!r}")
    try:
        start = parse_date(start_date)
    except InvalidDateFormat as exc:
        return _failed(f"Invalid start date: {exc}")

    days: list[ScheduleDay] = []
    for week_index, week in enumerate(weeks):
        for day in WEEKDAYS:
            on_date = start + timedelta(days=week_index * 7 + day.position)
            days.append(_day_from_cell(week.cell(day), on_date))

    metadata = ConversionMetadata(
        weeks_converted=len(weeks),
        days_generated=len(days),
        start_date=days[0].iso_date,
        end_date=days[-1].iso_date,
    )
    log.debug(
        "legacy_plan_converted",
        extra={"ctx_weeks_converted": metadata.weeks_converted, "ctx_days_generated": metadata.days_generated},
    )
    return ConversionResult(days=tuple(days), success=True, metadata=metadata)


def is_legacy_shaped(document: Union[PlanDocument, Mapping[str, Any]]) -> bool:
    """A non-empty weekly grid and no canonical days."""
    if not isinstance(document, PlanDocument):
        try:
            document = PlanDocument.from_dict(document)
        except InvalidInputShape:
            return False
    return not document.days and document.has_weekly_grid


def migration_metadata(result: ConversionResult, now: Optional[datetime] = None) -> MigrationMetadata:
    stamp = (now or datetime.now(timezone.utc)).isoformat()
    return MigrationMetadata(
        migrated_at=stamp,
        original_format=FormatVersion.LEGACY_WEEKLY.value,
        weeks_converted=result.metadata.weeks_converted,
        days_generated=result.metadata.days_generated,
    )


def apply_conversion(
    document: PlanDocument,
    result: ConversionResult,
    start_date: date,
    now: Optional[datetime] = None,
) -> PlanDocument:
    """New canonical document carrying the converted days and provenance.

    The legacy grid is kept verbatim under ``legacy_plan``; the stale weekly
    view is left for the caller to rebuild.
    """
    legacy_plan: Optional[list[Any]] = document.legacy_plan
    if legacy_plan is None:
        legacy_plan = [w.to_dict() for w in document.weekly_view]
    return replace(
        document,
        format_version=FormatVersion.CANONICAL_DAILY,
        days=result.days,
        start_date=document.start_date or start_date,
        legacy_plan=legacy_plan,
        migration=migration_metadata(result, now),
    )


def convert_document(
    document: PlanDocument,
    start_date: Optional[DateLike],
    now: Optional[datetime] = None,
    log: Optional[LoggerLike] = None,
) -> tuple[PlanDocument, ConversionResult]:
    """Convert ``document`` when it is legacy-shaped; otherwise hand it back."""
    if document.days or not document.has_weekly_grid:
        return document, ConversionResult(success=False, errors=("Document is not legacy-shaped",))
    result = convert_weeks_to_days(document, start_date, log=log)
    if not result.success:
        return document, result
    return apply_conversion(document, result, parse_date(start_date), now), result  # type: ignore[arg-type]
