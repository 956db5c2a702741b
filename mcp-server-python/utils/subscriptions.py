"""
Push subscriptions for the three live board views.

A subscription delivers an initial snapshot once, then a fresh snapshot
each time the store reports a committed change to the data behind it, until
``unsubscribe()``. The store's change feed only signals "something changed";
each subscription runs a single worker task that re-reads the view after
every signal. Because one worker reads and delivers strictly one snapshot at
a time, a subscriber never sees an older state after a newer one. Signals
that arrive while a read is in flight collapse into one more read.

Nothing is ordered across different subscriptions.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional

from db.document_store import JOBS, USERS
from db.jobs_store import JobStore
from db.stats_ledger import StatsLedger
from models.errors import ErrorCode, ToolError, create_internal_error
from models.identity import Identity, require_user
from schemas.documents import JobDocument, StatsDocument
from utils.validation import validate_job_id

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[Any], Any]
ErrorCallback = Callable[[ToolError], Any]
WatchFactory = Callable[[Callable[[], None]], Callable[[], None]]


async def _maybe_await(result) -> None:
    if inspect.isawaitable(result):
        await result


class Subscription:
    """
    One live view: initial snapshot, then one snapshot per observed change.

    Callbacks may be plain functions or coroutine functions; both run on the
    event loop that created the subscription.
    """

    def __init__(
        self,
        name: str,
        fetch: Callable[[], Awaitable[Any]],
        callback: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ):
        self.name = name
        self._fetch = fetch
        self._callback = callback
        self._on_error = on_error
        self._changed = asyncio.Event()
        self._closed = False
        self._cancel_watch: Optional[Callable[[], None]] = None
        self._task: Optional[asyncio.Task] = None
        self.delivered = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def _attach(self, watch: WatchFactory) -> "Subscription":
        """Register with the change feed and start the delivery worker."""
        self._cancel_watch = watch(self._mark_changed)
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self

    def _mark_changed(self) -> None:
        if not self._closed:
            self._changed.set()

    async def _run(self) -> None:
        await self._deliver_latest()
        while not self._closed:
            await self._changed.wait()
            self._changed.clear()
            if self._closed:
                break
            await self._deliver_latest()

    async def _deliver_latest(self) -> None:
        try:
            snapshot = await self._fetch()
        except ToolError as e:
            if not self._closed:
                await self._report(e)
            return
        except Exception as e:
            if not self._closed:
                await self._report(create_internal_error(str(e), original_error=e))
            return

        if self._closed:
            return

        try:
            await _maybe_await(self._callback(snapshot))
        except Exception:
            logger.exception(f"Subscriber callback failed for {self.name}")
            return
        self.delivered += 1

    async def _report(self, error: ToolError) -> None:
        logger.warning(f"Subscription {self.name} could not read snapshot: {error.message}")
        if self._on_error is not None:
            try:
                await _maybe_await(self._on_error(error))
            except Exception:
                logger.exception(f"Error callback failed for {self.name}")

    def unsubscribe(self) -> None:
        """
        Stop delivery. Safe to call any number of times.

        A callback already running finishes; nothing new is read or delivered
        once this returns.
        """
        if self._closed:
            return
        self._closed = True
        if self._cancel_watch is not None:
            self._cancel_watch()
            self._cancel_watch = None
        # Wake the worker so it sees the closed flag and exits
        self._changed.set()

    async def wait_closed(self) -> None:
        """Wait until the worker task has exited after ``unsubscribe()``."""
        if self._task is not None:
            await self._task


class SubscriptionHub:
    """
    Entry point for live views over jobs and stats.

    Usage:
        hub = SubscriptionHub(jobs, ledger)
        sub = hub.subscribe_stats(identity, render_stats)
        ...
        sub.unsubscribe()
    """

    def __init__(self, jobs: JobStore, ledger: StatsLedger):
        self.jobs = jobs
        self.ledger = ledger
        self.store = jobs.store

    def subscribe_jobs(
        self,
        identity: Identity,
        callback: Callable[[List[JobDocument]], Any],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Live list of the caller's jobs, most recently created first."""
        user_id = require_user(identity)
        subscription = Subscription(
            f"jobs:{user_id}",
            lambda: self.jobs.list_by_owner(identity),
            callback,
            on_error,
        )
        return subscription._attach(
            lambda listener: self.store.watch_query(JOBS, "owner", user_id, listener)
        )

    def subscribe_job(
        self,
        identity: Identity,
        job_id: str,
        callback: Callable[[Optional[JobDocument]], Any],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Live view of one job; delivers None while the job does not exist."""
        require_user(identity)
        job_id = validate_job_id(job_id)

        async def fetch() -> Optional[JobDocument]:
            try:
                return await self.jobs.read(identity, job_id)
            except ToolError as e:
                if e.code == ErrorCode.NOT_FOUND:
                    return None
                raise

        subscription = Subscription(f"job:{job_id}", fetch, callback, on_error)
        return subscription._attach(
            lambda listener: self.store.watch_document(JOBS, job_id, listener)
        )

    def subscribe_stats(
        self,
        identity: Identity,
        callback: Callable[[StatsDocument], Any],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Live view of the caller's stats ledger (all zero until first job)."""
        user_id = require_user(identity)
        subscription = Subscription(
            f"stats:{user_id}",
            lambda: self.ledger.read(user_id),
            callback,
            on_error,
        )
        return subscription._attach(
            lambda listener: self.store.watch_document(USERS, user_id, listener)
        )
