from __future__ import annotations

import argparse
from typing import Optional, Sequence

from core.config import get_settings
from core.logging_config import get_logger, setup_logging
from core.services.plan_store import PlanNotFound, SqlPlanStore, VersionConflict, load_normalized_plan

logger = get_logger(__name__)


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Migrate stored legacy plans to the canonical daily format.")
    parser.add_argument("--dry-run", action="store_true", help="normalize without writing back")
    parser.add_argument("--plan-id", type=int, nargs="+", dest="plan_ids", help="limit to these plan ids")
    return parser.parse_args(argv)


def run(store: SqlPlanStore, plan_ids: Optional[Sequence[int]] = None, *, dry_run: bool = False, retry_attempts: int = 2) -> dict[str, int]:
    counts = {"scanned": 0, "migrated": 0, "would_migrate": 0, "unchanged": 0, "conflicts": 0, "missing": 0, "failed": 0}
    for plan_id in plan_ids or store.list_plan_ids():
        counts["scanned"] += 1
        try:
            loaded = load_normalized_plan(store, plan_id, retry_attempts=retry_attempts, dry_run=dry_run)
        except PlanNotFound:
            counts["missing"] += 1
            continue
        except VersionConflict:
            counts["conflicts"] += 1
            continue
        if loaded.persisted:
            counts["migrated"] += 1
        elif loaded.result.needs_persistence:
            counts["would_migrate"] += 1
        else:
            counts["unchanged"] += 1
        if loaded.result.diagnostics.conversion_errors:
            counts["failed"] += 1
    logger.info("plan_backfill_finished", extra={f"ctx_{k}": v for k, v in counts.items()})
    return counts


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    setup_logging(settings.log_level)
    counts = run(
        SqlPlanStore(),
        args.plan_ids,
        dry_run=args.dry_run,
        retry_attempts=settings.persist_retry_attempts,
    )
    for key, value in counts.items():
        print(f"{key}={value}")
    return 0 if counts["failed"] == 0 and counts["conflicts"] == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
