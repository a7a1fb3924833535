"""workout feedback log"""

from alembic import op
import sqlalchemy as sa


revision = "20260301_0002"
down_revision = "20260301_0001"
branch_labels = None
depends_on = None


def _is_sqlite() -> bool:
    bind = op.get_bind()
    return bool(bind is not None and bind.dialect.name == "sqlite")


def upgrade() -> None:
    op.create_table(
        "workout_feedback",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("plan_id", sa.Integer(), sa.ForeignKey("training_plans.id"), nullable=False),
        sa.Column("workout_date", sa.Date(), nullable=True),
        sa.Column("week_number", sa.Integer(), nullable=False),
        sa.Column("is_key_workout", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("completion_status", sa.String(length=16), nullable=False),
        sa.Column("effort_vs_expected", sa.String(length=16), nullable=True),
        sa.Column("hr_matched_target", sa.String(length=8), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint("week_number >= 1", name="ck_workout_feedback_week_positive"),
        sa.CheckConstraint(
            "completion_status in ('completed', 'modified', 'missed')",
            name="ck_workout_feedback_completion_status",
        ),
    )
    op.create_index("ix_workout_feedback_plan_id", "workout_feedback", ["plan_id"])
    op.create_index("ix_workout_feedback_plan_week", "workout_feedback", ["plan_id", "week_number"])

    # sqlite cannot add constraints after create; the inline checks above cover it
    if not _is_sqlite():
        op.create_check_constraint(
            "ck_workout_feedback_effort",
            "workout_feedback",
            "effort_vs_expected is null or effort_vs_expected in ('easier', 'as_expected', 'harder')",
        )


def downgrade() -> None:
    if not _is_sqlite():
        op.drop_constraint("ck_workout_feedback_effort", "workout_feedback", type_="check")
    op.drop_index("ix_workout_feedback_plan_week", table_name="workout_feedback")
    op.drop_index("ix_workout_feedback_plan_id", table_name="workout_feedback")
    op.drop_table("workout_feedback")
