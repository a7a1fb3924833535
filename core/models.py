from __future__ import annotations

import datetime as dt
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class TrainingPlan(Base):
    __tablename__ = "training_plans"
    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int | None] = mapped_column(Integer, index=True)
    plan_data: Mapped[dict[str, Any]] = mapped_column(JSON)
    start_date: Mapped[dt.date | None] = mapped_column(Date)
    race_date: Mapped[dt.date | None] = mapped_column(Date)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow)
    __table_args__ = (CheckConstraint("version >= 1", name="ck_training_plans_version_positive"),)


class WorkoutFeedbackLog(Base):
    __tablename__ = "workout_feedback"
    id: Mapped[int] = mapped_column(primary_key=True)
    plan_id: Mapped[int] = mapped_column(ForeignKey("training_plans.id"), index=True)
    workout_date: Mapped[dt.date | None] = mapped_column(Date)
    week_number: Mapped[int] = mapped_column(Integer)
    is_key_workout: Mapped[bool] = mapped_column(Boolean, default=False)
    completion_status: Mapped[str] = mapped_column(String(16))
    effort_vs_expected: Mapped[str | None] = mapped_column(String(16))
    hr_matched_target: Mapped[str | None] = mapped_column(String(8))
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow)
    __table_args__ = (
        Index("ix_workout_feedback_plan_week", "plan_id", "week_number"),
        CheckConstraint("week_number >= 1", name="ck_workout_feedback_week_positive"),
        CheckConstraint(
            "completion_status in ('completed', 'modified', 'missed')",
            name="ck_workout_feedback_completion_status",
        ),
    )
