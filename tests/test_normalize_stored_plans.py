from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.models import Base
from core.services.plan_store import SqlPlanStore
from scripts.normalize_stored_plans import run


@pytest.fixture()
def store():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield SqlPlanStore(sessionmaker(bind=engine, autoflush=False, autocommit=False))
    engine.dispose()


def _seed(store: SqlPlanStore) -> tuple[int, int, int]:
    legacy = store.create({"plan": [{"week": 1, "days": {"Mon": "Easy"}}]}, start_date=date(2026, 2, 2)).id
    canonical = store.create(
        {"days": [{"date": "2026-02-02", "day_of_week": "Mon", "workout_text": "Easy", "tips": []}]},
        start_date=date(2026, 2, 2),
    ).id
    undated = store.create({"plan": [{"week": 1, "days": {"Mon": "Easy"}}]}).id
    return legacy, canonical, undated


def test_dry_run_counts_without_writing(store):
    legacy, _, _ = _seed(store)
    counts = run(store, dry_run=True)
    assert counts["scanned"] == 3
    assert counts["would_migrate"] == 1
    assert counts["unchanged"] == 2
    assert counts["migrated"] == 0
    assert store.load(legacy).version == 1


def test_backfill_migrates_then_is_a_no_op(store):
    legacy, _, _ = _seed(store)
    assert run(store)["migrated"] == 1
    assert store.load(legacy).plan_data["format_version"] == "canonical_daily"
    again = run(store)
    assert again["migrated"] == 0
    assert again["unchanged"] == 3


def test_selected_ids_and_missing_plans(store):
    legacy, _, _ = _seed(store)
    counts = run(store, [legacy, 404])
    assert counts["scanned"] == 2
    assert counts["migrated"] == 1
    assert counts["missing"] == 1
