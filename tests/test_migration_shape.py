from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect


def test_required_tables_present_in_migrations():
    text = "".join(p.read_text(encoding="utf-8") for p in Path("alembic/versions").glob("*.py"))
    for t in ["training_plans", "workout_feedback"]:
        assert f'"{t}"' in text


def test_migrations_avoid_postgres_now_function_for_portability():
    migrations_dir = Path("alembic/versions")
    for migration_file in migrations_dir.glob("*.py"):
        text = migration_file.read_text(encoding="utf-8").lower()
        assert "now()" not in text, f"Non-portable now() found in {migration_file.name}"


def test_alembic_upgrade_head_succeeds_on_sqlite(tmp_path, monkeypatch):
    db_path = tmp_path / "migration_smoke.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")

    cfg = Config("alembic.ini")
    command.upgrade(cfg, "head")

    engine = create_engine(f"sqlite:///{db_path}")
    tables = set(inspect(engine).get_table_names())
    engine.dispose()
    assert {"training_plans", "workout_feedback", "alembic_version"} <= tables


def test_alembic_downgrade_base_drops_tables(tmp_path, monkeypatch):
    db_path = tmp_path / "migration_down.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")

    cfg = Config("alembic.ini")
    command.upgrade(cfg, "head")
    command.downgrade(cfg, "base")

    engine = create_engine(f"sqlite:///{db_path}")
    tables = set(inspect(engine).get_table_names())
    engine.dispose()
    assert "training_plans" not in tables
    assert "workout_feedback" not in tables
