"""
Wiring of the board core for a database file.

Tool handlers share one set of services per resolved database path so that
change listeners registered by one call see writes made by another.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from db.document_store import DocumentStore, resolve_db_path
from db.jobs_store import JobStore
from db.stats_ledger import StatsLedger
from utils.subscriptions import SubscriptionHub

logger = logging.getLogger(__name__)


@dataclass
class BoardServices:
    """Document store, ledger, job store and subscription hub over one database."""

    store: DocumentStore
    ledger: StatsLedger
    jobs: JobStore
    hub: SubscriptionHub


_services: Dict[Path, BoardServices] = {}


def build_services(db_path: Optional[str] = None) -> BoardServices:
    """
    Build a fresh set of services using the configured retry policy.

    Args:
        db_path: Optional database path override

    Returns:
        BoardServices for the resolved database
    """
    from config import get_config

    config = get_config()
    path = resolve_db_path(db_path)
    store = DocumentStore(path, busy_timeout=config.busy_timeout_seconds)
    ledger = StatsLedger(
        store,
        max_attempts=config.ledger_max_attempts,
        retry_backoff_ms=config.ledger_retry_backoff_ms,
    )
    jobs = JobStore(store, ledger)
    return BoardServices(store=store, ledger=ledger, jobs=jobs, hub=SubscriptionHub(jobs, ledger))


def get_services(db_path: Optional[str] = None) -> BoardServices:
    """Shared services for a database path, built on first use."""
    path = resolve_db_path(db_path)
    services = _services.get(path)
    if services is None:
        logger.debug(f"Opening document store at {path}")
        services = build_services(str(path))
        _services[path] = services
    return services


def reset_services() -> None:
    """Forget all cached services (used by tests and after config changes)."""
    _services.clear()
