from __future__ import annotations

from core.config import Settings, get_settings
from core.db import get_session_factory
from core.services.plan_store import SqlPlanStore


def get_plan_store() -> SqlPlanStore:
    return SqlPlanStore(get_session_factory())


def get_app_settings() -> Settings:
    return get_settings()
