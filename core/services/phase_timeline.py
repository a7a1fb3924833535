from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from core.services.calendar_utils import DateLike, current_week_number
from core.services.schedule_model import ScheduleDay


class PhaseId(str, Enum):
    AEROBIC_BASE = "aerobic_base"
    THRESHOLD = "threshold"
    ECONOMY = "economy"
    RACE_SPECIFIC = "race_specific"


class WorkoutRole(str, Enum):
    BASE = "base"
    THRESHOLD = "threshold"
    ECONOMY = "economy"
    RACE_SPECIFIC = "race_specific"
    CALIBRATION = "calibration"
    RECOVERY = "recovery"


@dataclass(frozen=True)
class TrainingPhase:
    id: PhaseId
    name: str
    purpose: str
    typical_duration_weeks: int
    max_duration_weeks: int


PHASE_ORDER: tuple[PhaseId, ...] = (
    PhaseId.AEROBIC_BASE,
    PhaseId.THRESHOLD,
    PhaseId.ECONOMY,
    PhaseId.RACE_SPECIFIC,
)

PHASE_CATALOG: dict[PhaseId, TrainingPhase] = {
    PhaseId.AEROBIC_BASE: TrainingPhase(
        id=PhaseId.AEROBIC_BASE,
        name="Aerobic Base",
        purpose="Build cardiovascular fitness and endurance foundation for sustained running.",
        typical_duration_weeks=4,
        max_duration_weeks=6,
    ),
    PhaseId.THRESHOLD: TrainingPhase(
        id=PhaseId.THRESHOLD,
        name="Threshold Development",
        purpose="Improve lactate threshold and ability to sustain faster paces.",
        typical_duration_weeks=3,
        max_duration_weeks=5,
    ),
    PhaseId.ECONOMY: TrainingPhase(
        id=PhaseId.ECONOMY,
        name="Efficiency / Economy",
        purpose="Enhance running form and neuromuscular efficiency through speed work.",
        typical_duration_weeks=2,
        max_duration_weeks=4,
    ),
    PhaseId.RACE_SPECIFIC: TrainingPhase(
        id=PhaseId.RACE_SPECIFIC,
        name="Race-Specific Readiness",
        purpose="Practice race pace and build confidence for race day performance.",
        typical_duration_weeks=3,
        max_duration_weeks=4,
    ),
}

KEY_WORKOUT_KEYWORDS = (
    "long run",
    "tempo",
    "threshold",
    "interval",
    "race pace",
    "marathon pace",
    "calibration",
    "time trial",
    "progression",
    "fartlek",
)
KEY_WORKOUT_ROLES = {WorkoutRole.THRESHOLD, WorkoutRole.ECONOMY, WorkoutRole.RACE_SPECIFIC, WorkoutRole.CALIBRATION}

PLAN_TOO_SHORT = "plan_too_short"
RACE_IMMINENT = "race_imminent"


def _phase_key(value: object) -> str:
    return value.value if isinstance(value, PhaseId) else str(value)


def _optional_int(value: object) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def get_phase(phase_id: object) -> Optional[TrainingPhase]:
    try:
        return PHASE_CATALOG[PhaseId(_phase_key(phase_id))]
    except ValueError:
        return None


@dataclass(frozen=True)
class PhaseUsage:
    enabled: bool
    allowed_phases: tuple[PhaseId, ...]
    reason: Optional[str] = None


def determine_phase_usage(duration_weeks: int, weeks_to_race: Optional[int] = None) -> PhaseUsage:
    if duration_weeks <= 4:
        return PhaseUsage(enabled=False, allowed_phases=(), reason=PLAN_TOO_SHORT)
    if weeks_to_race is not None and weeks_to_race <= 3:
        return PhaseUsage(enabled=False, allowed_phases=(PhaseId.RACE_SPECIFIC,), reason=RACE_IMMINENT)
    if duration_weeks >= 12:
        return PhaseUsage(enabled=True, allowed_phases=PHASE_ORDER)
    if duration_weeks >= 8:
        return PhaseUsage(
            enabled=True,
            allowed_phases=(PhaseId.AEROBIC_BASE, PhaseId.THRESHOLD, PhaseId.RACE_SPECIFIC),
        )
    return PhaseUsage(enabled=True, allowed_phases=(PhaseId.AEROBIC_BASE, PhaseId.RACE_SPECIFIC))


def _week_focus(duration_weeks: int) -> dict[int, str]:
    blocks: list[tuple[PhaseId, int]]
    if duration_weeks <= 4:
        blocks = [(PhaseId.RACE_SPECIFIC, duration_weeks)]
    elif duration_weeks <= 7:
        blocks = [(PhaseId.AEROBIC_BASE, math.ceil(duration_weeks * 0.5))]
    elif duration_weeks >= 12:
        blocks = [(PhaseId.AEROBIC_BASE, 4), (PhaseId.THRESHOLD, 3), (PhaseId.ECONOMY, 2)]
    else:
        blocks = [
            (PhaseId.AEROBIC_BASE, math.ceil(duration_weeks * 0.35)),
            (PhaseId.THRESHOLD, math.ceil(duration_weeks * 0.25)),
        ]

    mapping: dict[int, str] = {}
    week = 1
    for phase_id, length in blocks:
        for _ in range(length):
            mapping[week] = phase_id.value
            week += 1
    while week <= duration_weeks:
        mapping[week] = PhaseId.RACE_SPECIFIC.value
        week += 1
    return mapping


@dataclass(frozen=True)
class PhaseTimeline:
    """Week-to-phase assignment for one plan, consumed read-only by the progress engine.

    Phase ids are kept as plain strings so a stored timeline naming a phase
    this catalog does not know still loads.
    """

    enabled: bool
    allowed_phases: tuple[str, ...] = ()
    week_to_phase: dict[int, str] = field(default_factory=dict, hash=False)
    reason: Optional[str] = None
    initial_progress_percent: Optional[int] = None
    initial_confidence: Optional[str] = None
    calculated_from_week: Optional[int] = None

    def _anchor_week(self, week: int) -> Optional[int]:
        mapped = [w for w in self.week_to_phase if w <= week]
        return max(mapped) if mapped else None

    def phase_for_week(self, week: int) -> str:
        """Mapped phase for ``week``; else the nearest earlier mapped week; else the first allowed phase."""
        anchor = self._anchor_week(week)
        if anchor is not None:
            return self.week_to_phase[anchor]
        if self.allowed_phases:
            return self.allowed_phases[0]
        return PhaseId.AEROBIC_BASE.value

    def phase_start_week(self, week: int) -> int:
        """First week of the contiguous run of the phase active at ``week``."""
        anchor = self._anchor_week(week)
        if anchor is None:
            return 1
        phase_id = self.week_to_phase[anchor]
        start = anchor
        while self.week_to_phase.get(start - 1) == phase_id:
            start -= 1
        return start

    def weeks_in_phase(self, week: int) -> int:
        """Inclusive count: the first week of a phase is week 1 of it."""
        return max(0, week - self.phase_start_week(week) + 1)

    @classmethod
    def from_dict(cls, raw: object) -> Optional["PhaseTimeline"]:
        if isinstance(raw, PhaseTimeline):
            return raw
        if not isinstance(raw, Mapping):
            return None
        enabled = raw.get("enabled", raw.get("steps_enabled", False))
        allowed = raw.get("allowed_phases", raw.get("allowed_steps"))
        if not isinstance(allowed, (list, tuple)):
            allowed = []
        week_to_phase: dict[int, str] = {}
        mapping = raw.get("week_to_phase")
        if isinstance(mapping, Mapping):
            for week, phase_id in mapping.items():
                try:
                    week_to_phase[int(week)] = _phase_key(phase_id)
                except (TypeError, ValueError):
                    continue
        focus = raw.get("week_focus")
        if isinstance(focus, list):
            for entry in focus:
                if not isinstance(entry, Mapping):
                    continue
                try:
                    week_to_phase.setdefault(int(entry.get("week_number")), _phase_key(entry.get("focus_step_id")))
                except (TypeError, ValueError):
                    continue
        from_week = _optional_int(raw.get("calculated_from_week"))
        return cls(
            enabled=bool(enabled),
            allowed_phases=tuple(_phase_key(p) for p in allowed),
            week_to_phase=week_to_phase,
            reason=raw.get("reason"),
            initial_progress_percent=_optional_int(raw.get("initial_progress_percent")),
            initial_confidence=raw.get("initial_confidence"),
            calculated_from_week=from_week or None,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "enabled": self.enabled,
            "allowed_phases": list(self.allowed_phases),
            "week_to_phase": {str(w): p for w, p in sorted(self.week_to_phase.items())},
        }
        if self.reason:
            payload["reason"] = self.reason
        if self.initial_progress_percent is not None:
            payload["initial_progress_percent"] = self.initial_progress_percent
            payload["initial_confidence"] = self.initial_confidence
            payload["calculated_from_week"] = self.calculated_from_week
        return payload


def build_phase_timeline(duration_weeks: int, weeks_to_race: Optional[int] = None) -> PhaseTimeline:
    usage = determine_phase_usage(duration_weeks, weeks_to_race)
    allowed = tuple(p.value for p in usage.allowed_phases)
    if not usage.enabled:
        return PhaseTimeline(enabled=False, allowed_phases=allowed, reason=usage.reason)
    return PhaseTimeline(enabled=True, allowed_phases=allowed, week_to_phase=_week_focus(duration_weeks))


def is_key_workout(workout_text: str, role: Optional[WorkoutRole] = None) -> bool:
    if role is not None and role in KEY_WORKOUT_ROLES:
        return True
    lowered = (workout_text or "").lower()
    return any(keyword in lowered for keyword in KEY_WORKOUT_KEYWORDS)


def infer_workout_role(
    day: ScheduleDay,
    timeline: Optional[PhaseTimeline] = None,
    week_number: Optional[int] = None,
) -> Optional[WorkoutRole]:
    """Keyword role for a scheduled day; falls back to the week's phase focus."""
    if day.workout_variant == "calibration" or day.calibration_tag is not None:
        return WorkoutRole.CALIBRATION
    lowered = day.workout_text.lower()
    if "rest" in lowered or "off" in lowered:
        return WorkoutRole.RECOVERY
    if "race day" in lowered or "race:" in lowered:
        return WorkoutRole.RACE_SPECIFIC
    if "race pace" in lowered or "marathon pace" in lowered:
        return WorkoutRole.RACE_SPECIFIC
    if "tempo" in lowered or "threshold" in lowered or "lactate" in lowered:
        return WorkoutRole.THRESHOLD
    if "interval" in lowered or "repeat" in lowered or "strides" in lowered:
        return WorkoutRole.ECONOMY
    if "easy" in lowered or "recovery run" in lowered or "long run" in lowered:
        return WorkoutRole.BASE
    if timeline is not None and week_number is not None and week_number in timeline.week_to_phase:
        phase_id = timeline.week_to_phase[week_number]
        try:
            return WorkoutRole(phase_id)
        except ValueError:
            # aerobic_base has no role of its own
            return WorkoutRole.BASE
    if is_key_workout(day.workout_text):
        return WorkoutRole.BASE
    return None


def workout_roles(
    days: Sequence[ScheduleDay],
    start_date: DateLike,
    timeline: Optional[PhaseTimeline] = None,
) -> dict[date, WorkoutRole]:
    roles: dict[date, WorkoutRole] = {}
    for day in days:
        role = infer_workout_role(day, timeline, current_week_number(start_date, day.date))
        if role is not None:
            roles.setdefault(day.date, role)
    return roles


def phase_influence_decay(weeks_to_race: int) -> float:
    if weeks_to_race > 10:
        return 1.0
    if weeks_to_race >= 6:
        return 0.6
    if weeks_to_race >= 3:
        return 0.3
    return 0.1
