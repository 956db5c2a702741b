#!/usr/bin/env python3
"""Recount job cards per stage and repair the stats ledger of one or all users."""

import argparse
import asyncio
import sys
from pathlib import Path

# Make the server modules importable when run from a checkout
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "mcp-server-python"))

from config import get_config
from db.document_store import JOBS, USERS, DocumentStore, resolve_db_path
from db.stats_ledger import StatsLedger
from models.errors import ToolError


def parse_args():
    parser = argparse.ArgumentParser(
        description="Recompute per-user stage counters from the job cards."
    )
    parser.add_argument(
        "--db",
        default=None,
        help="SQLite DB path (default: JOBBOARD_DB or data/board/jobboard.db).",
    )
    parser.add_argument(
        "--user",
        default=None,
        help="Only rebuild this user id (default: every user and job owner).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only report differences; do not write to DB.",
    )
    return parser.parse_args()


async def rebuild(db_path, user_id, dry_run: bool) -> int:
    config = get_config()
    store = DocumentStore(resolve_db_path(db_path), busy_timeout=config.busy_timeout_seconds)
    ledger = StatsLedger(
        store,
        max_attempts=config.ledger_max_attempts,
        retry_backoff_ms=config.ledger_retry_backoff_ms,
    )

    if user_id:
        user_ids = [user_id]
    else:
        user_ids = sorted(set(await store.list_ids(USERS)) | set(await store.distinct(JOBS, "owner")))

    changed = 0
    for uid in user_ids:
        before, after = await ledger.rebuild(uid, dry_run=dry_run)
        if before != after:
            changed += 1
            print(f"{uid}: {before.counts()} -> {after.counts()}")
        else:
            print(f"{uid}: ok {after.counts()}")

    action = "would change" if dry_run else "changed"
    print(f"Users: {len(user_ids)}, {action}: {changed}")
    return changed


def main() -> int:
    args = parse_args()
    get_config().setup_logging()
    try:
        asyncio.run(rebuild(args.db, args.user, args.dry_run))
    except ToolError as e:
        print(f"Error: {e.code.value}: {e.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
