"""
Stats ledger: per-user count of jobs in each stage.

The ledger lives inside the user document (``users/<uid>.stats``) and is
only ever changed through a read-version-check-write loop against the
document store. Two transitions for the same user that race each other
both land: the loser's compare-and-set fails, it re-reads the fresher
counters and tries again, up to a bounded number of attempts.

Counters are derived data. ``rebuild`` recomputes them from a full scan of
the user's jobs and exists for repair only; normal operation adjusts them
by one per transition.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Tuple

from db.document_store import JOBS, USERS, DocumentStore
from models.errors import ErrorCode, ToolError, create_ledger_conflict_error
from models.stage import STAGE_ORDER, Stage, empty_counters
from schemas.documents import JobDocument, StatsDocument, UserDocument
from utils.validation import validate_optional_stage, validate_user_id

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_RETRY_BACKOFF_MS = 10

# User profile fields filled in on first sign-in
PROFILE_FIELDS = ("email", "displayName", "photoURL")


def apply_transition(
    counters: Optional[Dict[str, Any]],
    old_stage: Optional[Stage],
    new_stage: Optional[Stage],
) -> Dict[str, int]:
    """
    Compute counters after one job leaves ``old_stage`` and enters ``new_stage``.

    Either side may be None: creation has no old stage, deletion has no new
    stage. Missing counters read as zero and no counter drops below zero.

    Args:
        counters: Current counters keyed by stage value (may be None)
        old_stage: Stage the job leaves, or None
        new_stage: Stage the job enters, or None

    Returns:
        New counter mapping with every stage present
    """
    counters = counters or {}
    updated = empty_counters()
    for stage in STAGE_ORDER:
        updated[stage.value] = max(0, int(counters.get(stage.value) or 0))

    if old_stage == new_stage:
        return updated

    if old_stage is not None:
        updated[old_stage.value] = max(0, updated[old_stage.value] - 1)
    if new_stage is not None:
        updated[new_stage.value] += 1
    return updated


def count_stages(jobs) -> Dict[str, int]:
    """Counters recomputed from scratch over a set of jobs."""
    counts = empty_counters()
    for job in jobs:
        counts[job.status.value] += 1
    return counts


class StatsLedger:
    """
    Race-free per-user stage counters on top of a DocumentStore.

    Usage:
        ledger = StatsLedger(store)
        stats = await ledger.transition("user-1", Stage.APPLIED, Stage.INTERVIEW)
    """

    def __init__(
        self,
        store: DocumentStore,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_backoff_ms: int = DEFAULT_RETRY_BACKOFF_MS,
    ):
        """
        Initialize the ledger.

        Args:
            store: Document store holding the user documents
            max_attempts: Compare-and-set attempts before giving up
            retry_backoff_ms: Base delay between attempts (grows linearly)
        """
        self.store = store
        self.max_attempts = max(1, max_attempts)
        self.retry_backoff_ms = max(0, retry_backoff_ms)

    async def _backoff(self, attempt: int) -> None:
        if self.retry_backoff_ms:
            await asyncio.sleep(self.retry_backoff_ms * attempt / 1000.0)

    async def _update_user(
        self, user_id: str, mutate: Callable[[Dict[str, Any]], Dict[str, Any]]
    ) -> Dict[str, Any]:
        """
        Apply ``mutate`` to the user document atomically, retrying on conflict.

        ``mutate`` receives a fresh copy of the stored document (or a blank
        one with all-zero stats) on every attempt and returns the document to
        write. Conflicts and retryable storage failures are retried with
        backoff; anything else propagates at once.

        Returns:
            The document that was written

        Raises:
            ToolError: LEDGER_CONFLICT when every attempt lost a race,
                TRANSPORT_FAILURE when storage kept failing
        """
        last_error: Optional[ToolError] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                data, version = await self.store.get_versioned(USERS, user_id)
                if data is None:
                    document = {"uid": user_id, "stats": empty_counters()}
                else:
                    document = dict(data)
                    document["stats"] = dict(data.get("stats") or {})
                document = mutate(document)
                new_version = await self.store.compare_and_set(USERS, user_id, document, version)
            except ToolError as e:
                if e.code != ErrorCode.TRANSPORT_FAILURE or not e.retryable:
                    raise
                last_error = e
                logger.warning(
                    f"Storage failure on stats ledger for user {user_id} "
                    f"(attempt {attempt}/{self.max_attempts}): {e.message}"
                )
            else:
                if new_version is not None:
                    return document
                last_error = None
                logger.warning(
                    f"Stats ledger conflict for user {user_id} "
                    f"(attempt {attempt}/{self.max_attempts}); retrying"
                )

            if attempt < self.max_attempts:
                await self._backoff(attempt)

        if last_error is not None:
            logger.error(
                f"Stats ledger for user {user_id} unavailable after {self.max_attempts} attempts"
            )
            raise last_error

        logger.error(
            f"Stats ledger for user {user_id} still conflicting after {self.max_attempts} attempts"
        )
        raise create_ledger_conflict_error(user_id, self.max_attempts)

    async def read(self, user_id: str) -> StatsDocument:
        """Current counters for a user; all zero when the user has no document."""
        user_id = validate_user_id(user_id)
        data = await self.store.get(USERS, user_id)
        return StatsDocument.from_counts(data.get("stats") if data else None)

    async def read_user(self, user_id: str) -> Optional[UserDocument]:
        """The whole user document, or None when it does not exist yet."""
        user_id = validate_user_id(user_id)
        data = await self.store.get(USERS, user_id)
        if data is None:
            return None
        return UserDocument.model_validate(data)

    async def transition(
        self,
        user_id: str,
        old_stage: Optional[Stage],
        new_stage: Optional[Stage],
    ) -> StatsDocument:
        """
        Move one job's weight from ``old_stage`` to ``new_stage`` in the ledger.

        A transition whose two sides are equal writes nothing. Otherwise the
        user document is created on demand with zero counters, the old stage
        is decremented (floored at zero), the new stage incremented, and the
        result written with compare-and-set.

        Args:
            user_id: Owner of the job
            old_stage: Stage before the change (None on creation)
            new_stage: Stage after the change (None on deletion)

        Returns:
            The counters after the transition

        Raises:
            ToolError: VALIDATION_ERROR for unknown stages, LEDGER_CONFLICT or
                TRANSPORT_FAILURE once retries are exhausted
        """
        user_id = validate_user_id(user_id)
        old_stage = validate_optional_stage(old_stage, "old stage")
        new_stage = validate_optional_stage(new_stage, "new stage")

        if old_stage == new_stage:
            return await self.read(user_id)

        def mutate(document: Dict[str, Any]) -> Dict[str, Any]:
            document["stats"] = apply_transition(document.get("stats"), old_stage, new_stage)
            return document

        document = await self._update_user(user_id, mutate)
        old_label = old_stage.value if old_stage else "none"
        new_label = new_stage.value if new_stage else "none"
        logger.debug(f"Stats ledger for user {user_id}: {old_label} -> {new_label}")
        return StatsDocument.from_counts(document["stats"])

    async def rebuild(self, user_id: str, dry_run: bool = False) -> Tuple[StatsDocument, StatsDocument]:
        """
        Recompute a user's counters from a full scan of their jobs.

        Intended for repair while the user's board is quiet; a transition
        that commits between the scan and the write is overwritten.

        Args:
            user_id: User whose ledger is rebuilt
            dry_run: Compute and return the counters without writing

        Returns:
            (counters before, counters after)
        """
        user_id = validate_user_id(user_id)
        before = await self.read(user_id)
        rows = await self.store.query(JOBS, "owner", user_id)
        counts = count_stages(JobDocument.model_validate(row) for row in rows)
        after = StatsDocument.from_counts(counts)
        if dry_run or after == before:
            return before, after

        def mutate(document: Dict[str, Any]) -> Dict[str, Any]:
            document["stats"] = dict(counts)
            return document

        await self._update_user(user_id, mutate)
        logger.info(f"Rebuilt stats ledger for user {user_id}: {before.counts()} -> {counts}")
        return before, after

    async def get_or_create_user(
        self,
        user_id: str,
        email: Optional[str] = None,
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> Tuple[UserDocument, bool]:
        """
        Return the user's document, creating it with zero stats on first sign-in.

        Profile fields are only filled where the stored document has none, so
        a document created lazily by the ledger picks up the profile later
        without touching its counters.

        Returns:
            (user document, True if the document was created by this call)
        """
        user_id = validate_user_id(user_id)
        profile = {"email": email, "displayName": display_name, "photoURL": photo_url}

        def mutate(document: Dict[str, Any]) -> Dict[str, Any]:
            document["uid"] = user_id
            for key in PROFILE_FIELDS:
                if profile[key] is not None and document.get(key) is None:
                    document[key] = profile[key]
            return document

        existing = await self.store.get(USERS, user_id)
        if existing is not None:
            candidate = mutate(dict(existing))
            if candidate == existing:
                return UserDocument.model_validate(existing), False

        document = await self._update_user(user_id, mutate)
        created = existing is None
        if created:
            logger.info(f"Created user document for {user_id}")
        return UserDocument.model_validate(document), created
