"""Training-phase progress engine.

Folds the active phase, how long the athlete has been in it, and recent
key-workout feedback into a bounded progress estimate, a confidence level,
a recommended action, and the machine-readable reasons behind them.

Everything here is a pure function of its arguments. The window sizes
(race proximity, feedback look-back) default to the values in
``core.config.Settings`` and are passed in by callers.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Sequence

from core.logging_config import LoggerLike
from core.services.phase_timeline import PhaseTimeline, TrainingPhase, get_phase

logger = logging.getLogger(__name__)

RACE_IMMINENT_WEEKS = 3
FEEDBACK_WINDOW_WEEKS = 4

MIN_KEY_WORKOUTS = 3
HIGH_CONFIDENCE_KEY_WORKOUTS = 6
LOW_COMPLETION_RATE = 0.5
HOLD_COMPLETION_RATE = 0.7
GOOD_COMPLETION_RATE = 0.8
HIGH_EFFORT_RATE = 0.6
GOOD_EFFORT_RATE = 0.3
HR_MISMATCH_RATE = 0.5
TIME_POINTS = 60
QUALITY_POINTS = 40


class Confidence(str, Enum):
    LOW = "low"
    MED = "med"
    HIGH = "high"


class RecommendedAction(str, Enum):
    PROGRESS = "progress"
    HOLD_SLIGHTLY = "hold_slightly"
    CONSOLIDATE = "consolidate"
    REDUCE_LOAD = "reduce_load"
    PROGRESS_WITH_CAUTION = "progress_with_caution"


class ReasonCode(str, Enum):
    LOW_DATA = "LOW_DATA"
    TIME_BOX_ESCAPE = "TIME_BOX_ESCAPE"
    LOW_COMPLETION = "LOW_COMPLETION"
    HIGH_EFFORT = "HIGH_EFFORT"
    HR_MISMATCH = "HR_MISMATCH"
    GOOD_PROGRESS = "GOOD_PROGRESS"
    PHASES_DISABLED = "PHASES_DISABLED"
    RACE_IMMINENT = "RACE_IMMINENT"
    MISSING_PHASE = "MISSING_PHASE"


class CompletionStatus(str, Enum):
    COMPLETED = "completed"
    MODIFIED = "modified"
    MISSED = "missed"


class EffortVsExpected(str, Enum):
    EASIER = "easier"
    AS_EXPECTED = "as_expected"
    HARDER = "harder"


class HrMatchedTarget(str, Enum):
    YES = "yes"
    NO = "no"
    UNSURE = "unsure"


def _enum_or_none(enum_cls: Any, value: object) -> Any:
    if value is None or value == "":
        return None
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return None


@dataclass(frozen=True)
class WorkoutFeedback:
    week_number: int
    is_key_workout: bool
    completion_status: CompletionStatus
    effort_vs_expected: Optional[EffortVsExpected] = None
    hr_matched_target: Optional[HrMatchedTarget] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "WorkoutFeedback":
        status = _enum_or_none(CompletionStatus, raw.get("completion_status"))
        if status is None:
            raise ValueError(f"Unknown completion_status: {raw.get('completion_status')!r}")
        return cls(
            week_number=int(raw.get("week_number") or 0),
            is_key_workout=bool(raw.get("is_key_workout")),
            completion_status=status,
            effort_vs_expected=_enum_or_none(EffortVsExpected, raw.get("effort_vs_expected")),
            hr_matched_target=_enum_or_none(HrMatchedTarget, raw.get("hr_matched_target")),
        )


@dataclass(frozen=True)
class PhaseEvaluation:
    progress_percent: int
    confidence: Confidence
    recommended_action: RecommendedAction
    reason_codes: tuple[ReasonCode, ...]
    time_box_escape: bool
    total_key_workouts: int = 0
    completion_rate: float = 0.0
    missed_rate: float = 0.0
    harder_rate: float = 0.0
    hr_mismatch_rate: float = 0.0


@dataclass(frozen=True)
class ProgressSummary:
    focus_phase_name: str
    rationale: str
    progress_percent: int
    confidence: Confidence
    recommended_action: RecommendedAction
    reason_codes: tuple[ReasonCode, ...] = ()
    focus_phase_id: Optional[str] = None
    purpose: str = ""
    show_progress_bar: bool = True
    time_box_escape: bool = False
    accuracy_hint: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "focus_phase_name": self.focus_phase_name,
            "focus_phase_id": self.focus_phase_id,
            "purpose": self.purpose,
            "rationale": self.rationale,
            "progress_percent": self.progress_percent,
            "confidence": self.confidence.value,
            "recommended_action": self.recommended_action.value,
            "reason_codes": [code.value for code in self.reason_codes],
            "show_progress_bar": self.show_progress_bar,
            "time_box_escape": self.time_box_escape,
            "accuracy_hint": self.accuracy_hint,
        }


ACCURACY_HINT = "Track a few more key workouts to improve progress accuracy."

TIME_BOX_LOW_DATA_RATIONALE = (
    "We're moving forward to stay aligned with your race timeline. "
    "Logging a few more key workouts will help us fine-tune your training as we progress."
)
TIME_BOX_RATIONALE = (
    "We're transitioning to the next phase to stay aligned with your race timeline. "
    "We'll continue reinforcing this fitness as we introduce the next focus."
)
LOW_DATA_CONSOLIDATE_RATIONALE = (
    "Focus on consistency this week. "
    "Logging feedback on key workouts helps us understand what's working best for you."
)
ACTION_RATIONALE: dict[RecommendedAction, str] = {
    RecommendedAction.PROGRESS: "Continue building on your strong foundation with this week's planned sessions.",
    RecommendedAction.HOLD_SLIGHTLY: "Consolidate your current fitness before progressing to the next phase.",
    RecommendedAction.CONSOLIDATE: "Focus on consistency and completing workouts comfortably this week.",
    RecommendedAction.REDUCE_LOAD: "Prioritize recovery and easier efforts to rebuild your capacity.",
    RecommendedAction.PROGRESS_WITH_CAUTION: "Moving forward while monitoring how your body responds to training.",
}


def rationale_for(reason_codes: Iterable[ReasonCode], action: RecommendedAction) -> str:
    """Stable sentence for any reason/action combination."""
    codes = set(reason_codes)
    time_box = ReasonCode.TIME_BOX_ESCAPE in codes
    low_data = ReasonCode.LOW_DATA in codes
    if time_box and low_data:
        return TIME_BOX_LOW_DATA_RATIONALE
    if time_box:
        return TIME_BOX_RATIONALE
    if low_data and action == RecommendedAction.CONSOLIDATE:
        return LOW_DATA_CONSOLIDATE_RATIONALE
    return ACTION_RATIONALE[action]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _rate(count: int, total: int) -> float:
    return count / total if total else 0.0


def evaluate_phase_status(
    phase: TrainingPhase,
    weeks_in_phase: int,
    feedback: Sequence[WorkoutFeedback],
    weeks_to_race: Optional[int],
    race_imminent_weeks: int = RACE_IMMINENT_WEEKS,
) -> PhaseEvaluation:
    """Apply the progress rules to already-filtered key-workout feedback."""
    total = len(feedback)
    completed = sum(1 for f in feedback if f.completion_status == CompletionStatus.COMPLETED)
    missed = sum(1 for f in feedback if f.completion_status == CompletionStatus.MISSED)
    harder = sum(1 for f in feedback if f.effort_vs_expected == EffortVsExpected.HARDER)
    hr_mismatch = sum(1 for f in feedback if f.hr_matched_target == HrMatchedTarget.NO)

    completion_rate = _rate(completed, total)
    harder_rate = _rate(harder, total)
    hr_mismatch_rate = _rate(hr_mismatch, total)
    weeks_in_phase = max(0, weeks_in_phase)
    time_box_escape = weeks_in_phase >= phase.max_duration_weeks

    reasons: list[ReasonCode] = []
    confidence = Confidence.MED
    action = RecommendedAction.PROGRESS

    if total < MIN_KEY_WORKOUTS:
        confidence = Confidence.LOW
        reasons.append(ReasonCode.LOW_DATA)
    if time_box_escape:
        reasons.append(ReasonCode.TIME_BOX_ESCAPE)

    if completion_rate < LOW_COMPLETION_RATE:
        reasons.append(ReasonCode.LOW_COMPLETION)
        action = RecommendedAction.CONSOLIDATE
    elif completion_rate < HOLD_COMPLETION_RATE:
        action = RecommendedAction.HOLD_SLIGHTLY

    if harder_rate > HIGH_EFFORT_RATE:
        reasons.append(ReasonCode.HIGH_EFFORT)
        if action == RecommendedAction.PROGRESS:
            action = RecommendedAction.HOLD_SLIGHTLY
        elif action == RecommendedAction.HOLD_SLIGHTLY:
            action = RecommendedAction.CONSOLIDATE

    if time_box_escape:
        action = RecommendedAction.PROGRESS_WITH_CAUTION

    hr_flagged = hr_mismatch_rate > HR_MISMATCH_RATE and total >= MIN_KEY_WORKOUTS
    if hr_flagged:
        reasons.append(ReasonCode.HR_MISMATCH)
        confidence = Confidence.LOW

    if completion_rate >= GOOD_COMPLETION_RATE and harder_rate < GOOD_EFFORT_RATE and not time_box_escape:
        reasons.append(ReasonCode.GOOD_PROGRESS)
        if total >= HIGH_CONFIDENCE_KEY_WORKOUTS:
            confidence = Confidence.HIGH

    if time_box_escape and confidence == Confidence.HIGH:
        confidence = Confidence.MED

    if weeks_to_race is not None and weeks_to_race <= race_imminent_weeks:
        action = RecommendedAction.PROGRESS

    if time_box_escape:
        progress = 100
    else:
        time_component = TIME_POINTS * weeks_in_phase / phase.typical_duration_weeks
        progress = min(100, _round_half_up(time_component + QUALITY_POINTS * completion_rate))

    return PhaseEvaluation(
        progress_percent=progress,
        confidence=confidence,
        recommended_action=action,
        reason_codes=tuple(reasons),
        time_box_escape=time_box_escape,
        total_key_workouts=total,
        completion_rate=completion_rate,
        missed_rate=_rate(missed, total),
        harder_rate=harder_rate,
        hr_mismatch_rate=hr_mismatch_rate,
    )


def phases_disabled_summary() -> ProgressSummary:
    return ProgressSummary(
        focus_phase_name="Building Fitness",
        purpose="Each workout builds your foundation and prepares you for race day.",
        rationale="Focus on completing workouts consistently and listening to your body.",
        progress_percent=0,
        confidence=Confidence.MED,
        recommended_action=RecommendedAction.PROGRESS,
        reason_codes=(ReasonCode.PHASES_DISABLED,),
        show_progress_bar=False,
    )


def race_preparation_summary() -> ProgressSummary:
    return ProgressSummary(
        focus_phase_name="Race Week Preparation",
        purpose="Final preparation and taper to arrive fresh and ready on race day.",
        rationale="Prioritize rest, maintain sharpness with short runs, and trust your training.",
        progress_percent=100,
        confidence=Confidence.MED,
        recommended_action=RecommendedAction.PROGRESS,
        reason_codes=(ReasonCode.RACE_IMMINENT,),
        show_progress_bar=False,
    )


def missing_phase_summary(phase_id: Optional[str]) -> ProgressSummary:
    return ProgressSummary(
        focus_phase_name="Training Progress",
        purpose="Building your fitness systematically toward race day.",
        rationale="Complete workouts as planned and track your progress.",
        progress_percent=0,
        confidence=Confidence.LOW,
        recommended_action=RecommendedAction.PROGRESS,
        reason_codes=(ReasonCode.MISSING_PHASE,),
        focus_phase_id=phase_id,
        show_progress_bar=False,
    )


def recent_key_feedback(
    feedback: Iterable[WorkoutFeedback],
    current_week: int,
    window_weeks: int = FEEDBACK_WINDOW_WEEKS,
) -> list[WorkoutFeedback]:
    """Key-workout feedback from ``current_week`` and the weeks just before it."""
    weeks = {current_week - i for i in range(window_weeks) if current_week - i > 0}
    return [f for f in feedback if f.is_key_workout and f.week_number in weeks]


def compute_progress(
    timeline: Optional[PhaseTimeline],
    current_week: int,
    feedback: Sequence[WorkoutFeedback],
    weeks_to_race: Optional[int],
    race_imminent_weeks: int = RACE_IMMINENT_WEEKS,
    feedback_window_weeks: int = FEEDBACK_WINDOW_WEEKS,
    log: Optional[LoggerLike] = None,
) -> ProgressSummary:
    log = log or logger
    if timeline is None or not timeline.enabled:
        return phases_disabled_summary()
    if weeks_to_race is not None and weeks_to_race <= race_imminent_weeks:
        return race_preparation_summary()

    phase_id = timeline.phase_for_week(current_week)
    phase = get_phase(phase_id)
    if phase is None:
        log.warning("progress_phase_missing", extra={"ctx_phase_id": phase_id, "ctx_week": current_week})
        return missing_phase_summary(phase_id)

    recent = recent_key_feedback(feedback, current_week, feedback_window_weeks)
    evaluation = evaluate_phase_status(
        phase,
        timeline.weeks_in_phase(current_week),
        recent,
        weeks_to_race,
        race_imminent_weeks=race_imminent_weeks,
    )

    progress = evaluation.progress_percent
    confidence = evaluation.confidence
    use_initial = (
        ReasonCode.LOW_DATA in evaluation.reason_codes
        and timeline.initial_progress_percent is not None
        and timeline.calculated_from_week == current_week
        and not evaluation.time_box_escape
    )
    if use_initial:
        progress = max(0, min(100, int(timeline.initial_progress_percent or 0)))
        initial_confidence = _enum_or_none(Confidence, timeline.initial_confidence)
        if initial_confidence is not None:
            confidence = initial_confidence

    accuracy_hint = None
    if confidence == Confidence.LOW and not evaluation.time_box_escape:
        accuracy_hint = ACCURACY_HINT

    log.debug(
        "phase_progress_computed",
        extra={
            "ctx_phase_id": phase.id.value,
            "ctx_week": current_week,
            "ctx_progress_percent": progress,
            "ctx_reason_codes": [code.value for code in evaluation.reason_codes],
        },
    )
    return ProgressSummary(
        focus_phase_name=phase.name,
        rationale=rationale_for(evaluation.reason_codes, evaluation.recommended_action),
        progress_percent=progress,
        confidence=confidence,
        recommended_action=evaluation.recommended_action,
        reason_codes=evaluation.reason_codes,
        focus_phase_id=phase.id.value,
        purpose=phase.purpose,
        show_progress_bar=True,
        time_box_escape=evaluation.time_box_escape,
        accuracy_hint=accuracy_hint,
    )
