"""Typed plan-schedule model and its stored-document boundary.

A stored plan is a JSON document of one of two vintages:

- ``legacy_weekly``: only a week-indexed grid (``plan``), no dates.
- ``canonical_daily``: a flat, date-stamped ``days`` list plus a derived
  ``weekly_view`` projection.

``PlanDocument.from_dict`` resolves the vintage once, reads the legacy field
names (``dow``, ``workout``, ``workout_type``, ``calibrationTag``) and keeps
every key it does not understand so ``to_dict`` can write it back untouched.
"""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from core.services.calendar_utils import WEEKDAYS, InvalidDateFormat, Weekday, parse_date

REST_WORKOUT_TEXT = "Rest"
REST_TIPS: tuple[str, ...] = ("Recovery day",)


class InvalidInputShape(ValueError):
    """Raised when a stored document cannot be read as a plan."""


class ScheduleKind(str, Enum):
    TRAIN = "TRAIN"
    REST = "REST"
    RACE = "RACE"

    @classmethod
    def parse(cls, value: object) -> Optional["ScheduleKind"]:
        if isinstance(value, ScheduleKind):
            return value
        token = str(value or "").strip().upper()
        try:
            return cls(token)
        except ValueError:
            return None


class FormatVersion(str, Enum):
    LEGACY_WEEKLY = "legacy_weekly"
    CANONICAL_DAILY = "canonical_daily"


def _tips(value: object) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,) if value.strip() else ()
    if isinstance(value, Sequence):
        return tuple(str(t) for t in value if t is not None)
    return ()


def _text(value: object) -> str:
    return value if isinstance(value, str) else ("" if value is None else str(value))


def _count(value: object) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class CalibrationTag:
    test_type: str
    kind: str = "calibration"

    @classmethod
    def from_dict(cls, value: object) -> Optional["CalibrationTag"]:
        if not value:
            return None
        if isinstance(value, str):
            return cls(test_type=value)
        if isinstance(value, Mapping):
            test_type = value.get("test_type", value.get("testType"))
            return cls(test_type=_text(test_type), kind=_text(value.get("kind") or "calibration"))
        return None

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "test_type": self.test_type}


# Stored field names, canonical first, legacy aliases after.
_DAY_ALIASES: dict[str, tuple[str, ...]] = {
    "date": ("date",),
    "day_of_week": ("day_of_week", "dow"),
    "workout_text": ("workout_text", "workout"),
    "tips": ("tips",),
    "kind": ("kind", "workout_type"),
    "calibration_tag": ("calibration_tag", "calibrationTag"),
    "workout_variant": ("workout_variant", "workoutType"),
}
_DAY_KNOWN_KEYS = {alias for aliases in _DAY_ALIASES.values() for alias in aliases}


def pick_field(raw: Mapping[str, Any], name: str) -> Any:
    for alias in _DAY_ALIASES[name]:
        if alias in raw and raw[alias] is not None:
            return raw[alias]
    return None


def _variant_and_kind(raw: Mapping[str, Any]) -> tuple[Optional[str], Optional[ScheduleKind]]:
    """Split the overloaded legacy ``workoutType`` field.

    Old documents used ``workoutType`` both for the TRAIN/REST/RACE kind and
    for the normal/calibration variant; a kind-looking value is a kind.
    """
    kind = ScheduleKind.parse(pick_field(raw, "kind"))
    variant = pick_field(raw, "workout_variant")
    if variant is not None:
        as_kind = ScheduleKind.parse(variant)
        if as_kind is not None:
            return None, kind or as_kind
        return _text(variant), kind
    return None, kind


@dataclass(frozen=True)
class ScheduleDay:
    """One calendar day of a plan; the canonical unit of truth."""

    date: date
    day_of_week: Optional[Weekday]
    workout_text: str
    tips: tuple[str, ...] = ()
    kind: Optional[ScheduleKind] = None
    calibration_tag: Optional[CalibrationTag] = None
    workout_variant: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict, hash=False)

    @property
    def iso_date(self) -> str:
        return self.date.isoformat()

    @property
    def is_rest(self) -> bool:
        return self.kind == ScheduleKind.REST

    @classmethod
    def rest(cls, on_date: date, tips: tuple[str, ...] = REST_TIPS) -> "ScheduleDay":
        return cls(
            date=on_date,
            day_of_week=WEEKDAYS[on_date.weekday()],
            workout_text=REST_WORKOUT_TEXT,
            tips=tuple(tips),
            kind=ScheduleKind.REST,
        )

    @classmethod
    def from_dict(cls, raw: object) -> "ScheduleDay":
        if not isinstance(raw, Mapping):
            raise InvalidInputShape(f"Day entry must be an object, got {type(raw).__name__}")
        try:
            on_date = parse_date(pick_field(raw, "date"))
        except InvalidDateFormat as exc:
            raise InvalidInputShape(f"Day entry has no usable date: {exc}") from exc
        variant, kind = _variant_and_kind(raw)
        return cls(
            date=on_date,
            day_of_week=Weekday.parse(pick_field(raw, "day_of_week")),
            workout_text=_text(pick_field(raw, "workout_text")),
            tips=_tips(pick_field(raw, "tips")),
            kind=kind,
            calibration_tag=CalibrationTag.from_dict(pick_field(raw, "calibration_tag")),
            workout_variant=variant,
            extra={k: deepcopy(v) for k, v in raw.items() if k not in _DAY_KNOWN_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = deepcopy(self.extra)
        payload["date"] = self.iso_date
        payload["day_of_week"] = self.day_of_week.value if self.day_of_week else ""
        payload["workout_text"] = self.workout_text
        payload["tips"] = list(self.tips)
        if self.kind is not None:
            payload["kind"] = self.kind.value
        if self.calibration_tag is not None:
            payload["calibration_tag"] = self.calibration_tag.to_dict()
        if self.workout_variant is not None:
            payload["workout_variant"] = self.workout_variant
        return payload


@dataclass(frozen=True)
class DayCell:
    """Lightweight display cell inside a ``WeekView``."""

    workout_text: str
    tips: tuple[str, ...] = ()
    date: Optional[date] = None
    kind: Optional[ScheduleKind] = None
    calibration_tag: Optional[CalibrationTag] = None
    workout_variant: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict, hash=False)

    @property
    def is_rest(self) -> bool:
        return self.kind == ScheduleKind.REST or self.workout_text.strip() == REST_WORKOUT_TEXT

    @classmethod
    def rest(cls, on_date: Optional[date] = None) -> "DayCell":
        return cls(workout_text=REST_WORKOUT_TEXT, date=on_date, kind=ScheduleKind.REST)

    @classmethod
    def from_day(cls, day: ScheduleDay) -> "DayCell":
        text = day.workout_text if day.workout_text.strip() else REST_WORKOUT_TEXT
        return cls(
            workout_text=text,
            tips=day.tips,
            date=day.date,
            kind=day.kind,
            calibration_tag=day.calibration_tag,
            workout_variant=day.workout_variant,
            extra=deepcopy(day.extra),
        )

    @classmethod
    def from_dict(cls, raw: object) -> "DayCell":
        """Never raises: legacy grids hold bare strings, partial objects, or junk."""
        if isinstance(raw, str):
            return cls(workout_text=raw)
        if not isinstance(raw, Mapping):
            return cls(workout_text="")
        extra = {k: deepcopy(v) for k, v in raw.items() if k not in _DAY_KNOWN_KEYS}
        on_date: Optional[date] = None
        raw_date = pick_field(raw, "date")
        if raw_date is not None:
            try:
                on_date = parse_date(raw_date)
            except InvalidDateFormat:
                extra["date"] = raw_date
        if "day_of_week" in raw or "dow" in raw:
            extra["day_of_week"] = pick_field(raw, "day_of_week")
        variant, kind = _variant_and_kind(raw)
        return cls(
            workout_text=_text(pick_field(raw, "workout_text")),
            tips=_tips(pick_field(raw, "tips")),
            date=on_date,
            kind=kind,
            calibration_tag=CalibrationTag.from_dict(pick_field(raw, "calibration_tag")),
            workout_variant=variant,
            extra=extra,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = deepcopy(self.extra)
        payload["workout_text"] = self.workout_text
        payload["tips"] = list(self.tips)
        if self.date is not None:
            payload["date"] = self.date.isoformat()
        if self.kind is not None:
            payload["kind"] = self.kind.value
        if self.calibration_tag is not None:
            payload["calibration_tag"] = self.calibration_tag.to_dict()
        if self.workout_variant is not None:
            payload["workout_variant"] = self.workout_variant
        return payload


@dataclass(frozen=True)
class WeekView:
    week_number: int
    days: dict[Weekday, DayCell] = field(default_factory=dict, hash=False)

    def cell(self, day: Weekday) -> Optional[DayCell]:
        return self.days.get(day)

    def missing_weekdays(self) -> list[Weekday]:
        return [d for d in WEEKDAYS if d not in self.days]

    @classmethod
    def from_dict(cls, raw: object, position: int = 0) -> "WeekView":
        if not isinstance(raw, Mapping):
            return cls(week_number=position + 1)
        try:
            week_number = int(raw.get("week") or raw.get("week_number") or position + 1)
        except (TypeError, ValueError):
            week_number = position + 1
        cells: dict[Weekday, DayCell] = {}
        raw_days = raw.get("days")
        if isinstance(raw_days, Mapping):
            for name, value in raw_days.items():
                day = Weekday.parse(name)
                if day is not None and day not in cells:
                    cells[day] = DayCell.from_dict(value)
        return cls(week_number=week_number, days=cells)

    def to_dict(self) -> dict[str, Any]:
        return {
            "week": self.week_number,
            "days": {d.value: self.days[d].to_dict() for d in WEEKDAYS if d in self.days},
        }


@dataclass(frozen=True)
class MigrationMetadata:
    migrated_at: str
    original_format: str
    weeks_converted: int
    days_generated: int

    @classmethod
    def from_dict(cls, raw: object) -> Optional["MigrationMetadata"]:
        if not isinstance(raw, Mapping):
            return None
        return cls(
            migrated_at=_text(raw.get("migrated_at")),
            original_format=_text(raw.get("original_format") or FormatVersion.LEGACY_WEEKLY.value),
            weeks_converted=_count(raw.get("weeks_converted")),
            days_generated=_count(raw.get("days_generated")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "migrated_at": self.migrated_at,
            "original_format": self.original_format,
            "weeks_converted": self.weeks_converted,
            "days_generated": self.days_generated,
        }


_DOC_KNOWN_KEYS = {
    "format_version",
    "days",
    "weekly_view",
    "plan",
    "legacy_plan",
    "_legacy_plan",
    "start_date",
    "race_date",
    "migration",
    "_migration_metadata",
}


def _optional_date(raw: Mapping[str, Any], key: str, extras: dict[str, Any]) -> Optional[date]:
    value = raw.get(key)
    if value in (None, ""):
        return None
    try:
        return parse_date(value)
    except InvalidDateFormat:
        # Keep the unreadable value so a write-back does not lose it.
        extras[key] = deepcopy(value)
        return None


@dataclass(frozen=True)
class PlanDocument:
    """A stored plan resolved to a single concrete vintage."""

    format_version: FormatVersion
    days: tuple[ScheduleDay, ...] = ()
    weekly_view: tuple[WeekView, ...] = ()
    start_date: Optional[date] = None
    race_date: Optional[date] = None
    legacy_plan: Optional[list[Any]] = field(default=None, hash=False)
    migration: Optional[MigrationMetadata] = None
    extras: dict[str, Any] = field(default_factory=dict, hash=False)

    @property
    def is_canonical(self) -> bool:
        return self.format_version == FormatVersion.CANONICAL_DAILY and bool(self.days)

    @property
    def has_weekly_grid(self) -> bool:
        return bool(self.weekly_view)

    @classmethod
    def from_dict(cls, raw: object) -> "PlanDocument":
        if isinstance(raw, PlanDocument):
            return raw
        if not isinstance(raw, Mapping):
            raise InvalidInputShape(f"Plan document must be an object, got {type(raw).__name__}")

        raw_days = raw.get("days")
        if raw_days is not None and not isinstance(raw_days, list):
            raise InvalidInputShape("days must be a list")
        days = tuple(ScheduleDay.from_dict(d) for d in raw_days or [])

        grid = raw.get("weekly_view")
        if not grid:
            grid = raw.get("plan", grid)
        if grid is not None and not isinstance(grid, list):
            raise InvalidInputShape("weekly grid must be a list of weeks")
        grid = grid or []

        extras = {k: deepcopy(v) for k, v in raw.items() if k not in _DOC_KNOWN_KEYS}
        format_version = FormatVersion.CANONICAL_DAILY if days else FormatVersion.LEGACY_WEEKLY

        legacy_plan = raw.get("legacy_plan", raw.get("_legacy_plan"))
        if legacy_plan is None and format_version == FormatVersion.LEGACY_WEEKLY and grid:
            legacy_plan = grid

        return cls(
            format_version=format_version,
            days=days,
            weekly_view=tuple(WeekView.from_dict(w, i) for i, w in enumerate(grid)),
            start_date=_optional_date(raw, "start_date", extras),
            race_date=_optional_date(raw, "race_date", extras),
            legacy_plan=deepcopy(legacy_plan) if isinstance(legacy_plan, list) else None,
            migration=MigrationMetadata.from_dict(raw.get("migration", raw.get("_migration_metadata"))),
            extras=extras,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = deepcopy(self.extras)
        payload["format_version"] = self.format_version.value
        if self.start_date is not None:
            payload["start_date"] = self.start_date.isoformat()
        if self.race_date is not None:
            payload["race_date"] = self.race_date.isoformat()
        if self.days:
            payload["days"] = [d.to_dict() for d in self.days]
        payload["weekly_view"] = [w.to_dict() for w in self.weekly_view]
        if self.legacy_plan is not None:
            payload["legacy_plan"] = deepcopy(self.legacy_plan)
        if self.migration is not None:
            payload["migration"] = self.migration.to_dict()
        return payload
