from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.models import Base
from core.services.calendar_utils import WEEKDAYS
from core.services.phase_progress import CompletionStatus, WorkoutFeedback
from core.services.plan_store import PlanNotFound, SqlPlanStore, VersionConflict, load_normalized_plan


@pytest.fixture()
def store():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    yield SqlPlanStore(factory)
    engine.dispose()


def _legacy_grid(weeks: int = 2) -> dict:
    return {"plan": [{"week": w, "days": {d.value: f"Run {d.value}" for d in WEEKDAYS}} for w in range(1, weeks + 1)]}


def test_create_and_load(store):
    created = store.create({"plan": []}, start_date=date(2026, 2, 2), user_id=7)
    loaded = store.load(created.id)
    assert loaded.version == 1
    assert loaded.user_id == 7
    assert loaded.start_date == date(2026, 2, 2)
    assert store.list_plan_ids() == [created.id]


def test_load_missing_plan(store):
    with pytest.raises(PlanNotFound):
        store.load(999)


def test_save_bumps_version_and_rejects_stale_writes(store):
    created = store.create({"plan": []})
    assert store.save(created.id, {"plan": [], "note": "v2"}, expected_version=1) == 2
    with pytest.raises(VersionConflict):
        store.save(created.id, {"plan": [], "note": "stale"}, expected_version=1)
    assert store.load(created.id).plan_data["note"] == "v2"
    with pytest.raises(PlanNotFound):
        store.save(999, {}, expected_version=1)


def test_feedback_round_trip(store):
    created = store.create({"plan": []})
    feedback = WorkoutFeedback(week_number=2, is_key_workout=True, completion_status=CompletionStatus.MISSED)
    store.add_feedback(created.id, feedback, workout_date=date(2026, 2, 10))
    assert store.list_feedback(created.id) == [feedback]


def test_migration_on_read_persists_once(store):
    created = store.create(_legacy_grid(), start_date=date(2026, 2, 2))

    first = load_normalized_plan(store, created.id)
    assert first.persisted
    assert first.version == 2
    stored = store.load(created.id)
    assert stored.plan_data["format_version"] == "canonical_daily"
    assert len(stored.plan_data["days"]) == 14

    second = load_normalized_plan(store, created.id)
    assert not second.persisted
    assert not second.result.needs_persistence
    assert store.load(created.id).version == 2


def test_dry_run_does_not_write(store):
    created = store.create(_legacy_grid(), start_date=date(2026, 2, 2))
    loaded = load_normalized_plan(store, created.id, dry_run=True)
    assert loaded.result.needs_persistence
    assert not loaded.persisted
    assert store.load(created.id).version == 1


def test_lost_write_race_is_retried(store, monkeypatch):
    created = store.create(_legacy_grid(), start_date=date(2026, 2, 2))
    real_save = store.save
    calls = {"n": 0}

    def racing_save(plan_id, document, expected_version):
        calls["n"] += 1
        if calls["n"] == 1:
            # another writer bumps the version first
            real_save(plan_id, store.load(plan_id).plan_data, expected_version)
            raise VersionConflict(plan_id, expected_version)
        return real_save(plan_id, document, expected_version)

    monkeypatch.setattr(store, "save", racing_save)
    loaded = load_normalized_plan(store, created.id, retry_attempts=2)
    assert loaded.persisted
    assert loaded.attempts == 2
    assert store.load(created.id).version == 3


def test_retries_are_bounded(store, monkeypatch):
    created = store.create(_legacy_grid(), start_date=date(2026, 2, 2))

    def always_conflict(plan_id, document, expected_version):
        raise VersionConflict(plan_id, expected_version)

    monkeypatch.setattr(store, "save", always_conflict)
    with pytest.raises(VersionConflict):
        load_normalized_plan(store, created.id, retry_attempts=1)
