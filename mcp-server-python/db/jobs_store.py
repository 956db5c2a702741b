"""
Job store: owner-checked CRUD for job application cards.

Every write that changes which stage a job occupies (create, a stage edit,
delete) is followed by exactly one stats ledger transition for the job's
owner. The job record and the ledger are separate documents, so the pair is
made to look atomic by compensation: when the ledger transition fails after
its retries, the job write is rolled back with a compare-and-set against
the version this call wrote.

Job writes themselves are compare-and-set too. Two deletes racing on the
same job resolve to one delete plus one NOT_FOUND. Stage-changing writes to
one job are also serialized within the process, from the job write through
its ledger transition, so rapid consecutive moves of a card reach the ledger
in the order they were applied to the job.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from db.document_store import JOBS, DocumentStore
from db.stats_ledger import StatsLedger
from models.errors import (
    ToolError,
    create_conflict_error,
    create_forbidden_error,
    create_internal_error,
    create_not_found_error,
)
from models.identity import Identity, require_owner, require_user
from models.stage import Stage
from schemas.documents import JobCreateFields, JobDocument, JobUpdateFields
from utils.pydantic_error_mapper import map_pydantic_validation_error
from utils.validation import now_ms, validate_fields_object, validate_job_id

logger = logging.getLogger(__name__)


def _new_job_id() -> str:
    return uuid.uuid4().hex


class JobStore:
    """
    Source of truth for job records, kept consistent with the stats ledger.

    Usage:
        jobs = JobStore(store, ledger)
        job = await jobs.create(identity, {"title": "Engineer", "company": "Acme"})
        job = await jobs.set_stage(identity, job.id, Stage.INTERVIEW)
        await jobs.delete(identity, job.id)
    """

    def __init__(
        self,
        store: DocumentStore,
        ledger: StatsLedger,
        clock: Optional[Callable[[], int]] = None,
        id_factory: Optional[Callable[[], str]] = None,
        max_attempts: Optional[int] = None,
    ):
        """
        Initialize the job store.

        Args:
            store: Document store holding the job documents
            ledger: Stats ledger for the owners of those jobs
            clock: Millisecond clock (defaults to wall time)
            id_factory: Job id generator (defaults to random hex UUIDs)
            max_attempts: Compare-and-set attempts on a job record
                (defaults to the ledger's setting)
        """
        self.store = store
        self.ledger = ledger
        self.clock = clock or now_ms
        self.id_factory = id_factory or _new_job_id
        self.max_attempts = max_attempts or ledger.max_attempts
        # job id -> [lock, holders and waiters]
        self._job_locks: Dict[str, list] = {}

    @asynccontextmanager
    async def _job_guard(self, job_id: str):
        """Hold the per-job lock; the entry is dropped once nobody uses it."""
        entry = self._job_locks.get(job_id)
        if entry is None:
            entry = self._job_locks[job_id] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._job_locks[job_id]

    async def _compensate(
        self,
        job_id: str,
        written_version: int,
        previous: Optional[Dict[str, Any]],
        action: str,
    ) -> None:
        """Undo a job write whose ledger transition failed."""
        try:
            if previous is None:
                restored = await self.store.compare_and_delete(JOBS, job_id, written_version)
            else:
                restored = (
                    await self.store.compare_and_set(JOBS, job_id, previous, written_version)
                    is not None
                )
        except ToolError as e:
            logger.error(f"Rollback of {action} for job {job_id} failed: {e.message}")
            restored = False

        if restored:
            logger.warning(f"Rolled back {action} of job {job_id} after ledger failure")
        else:
            logger.error(
                f"Could not roll back {action} of job {job_id}; "
                "rebuild the owner's stats to reconcile the ledger"
            )

    async def create(self, identity: Identity, fields: Dict[str, Any]) -> JobDocument:
        """
        Add a job for the calling user.

        The stage defaults to the first pipeline stage. Exactly one ledger
        transition (none -> stage) follows the insert.

        Args:
            identity: Caller; becomes the job's owner
            fields: title, company, and optionally logoURL, notes, status

        Returns:
            The stored job

        Raises:
            ToolError: FORBIDDEN when anonymous, VALIDATION_ERROR for bad
                fields, LEDGER_CONFLICT / TRANSPORT_FAILURE from the ledger
                (the insert is rolled back)
        """
        owner = require_user(identity)
        validate_fields_object(fields)
        try:
            payload = JobCreateFields.model_validate(fields)
        except ValidationError as e:
            raise map_pydantic_validation_error(e) from e

        now = self.clock()
        job = JobDocument(
            id=self.id_factory(),
            owner=owner,
            title=payload.title,
            company=payload.company,
            logo_url=payload.logo_url,
            status=payload.status,
            notes=payload.notes,
            created_at=now,
            updated_at=now,
        )
        version = await self.store.compare_and_set(JOBS, job.id, job.to_document(), 0)
        if version is None:
            raise create_internal_error(f"Job id collision on {job.id}")

        try:
            await self.ledger.transition(owner, None, job.status)
        except ToolError:
            await self._compensate(job.id, version, None, "create")
            raise

        logger.info(f"Created job {job.id} for user {owner} in stage {job.status.value}")
        return job

    async def read(self, identity: Identity, job_id: str) -> JobDocument:
        """
        Fetch one job owned by the caller.

        Raises:
            ToolError: NOT_FOUND when missing, FORBIDDEN when not the owner
        """
        require_user(identity)
        job_id = validate_job_id(job_id)
        data = await self.store.get(JOBS, job_id)
        if data is None:
            raise create_not_found_error("Job", job_id)
        require_owner(identity, data.get("owner"), job_id)
        return JobDocument.model_validate(data)

    async def update(
        self, identity: Identity, job_id: str, changes: Dict[str, Any]
    ) -> JobDocument:
        """
        Apply a partial edit to a job and bump its updatedAt.

        When the edit carries a status different from the stored one, the
        ledger transition runs after the job write, whatever other fields
        ride along. A status equal to the current one only refreshes the
        timestamp.

        Args:
            identity: Caller; must own the job
            job_id: Job to edit
            changes: Any of title, company, logoURL, notes, status

        Returns:
            The job as stored after the edit

        Raises:
            ToolError: NOT_FOUND, FORBIDDEN, VALIDATION_ERROR (including
                attempts to change id, owner or timestamps), LEDGER_CONFLICT,
                TRANSPORT_FAILURE
        """
        _, updated = await self._edit(identity, job_id, changes)
        return updated

    async def _edit(
        self, identity: Identity, job_id: str, changes: Dict[str, Any]
    ) -> Tuple[JobDocument, JobDocument]:
        """Run ``update`` and return (job before the edit, job after it)."""
        require_user(identity)
        job_id = validate_job_id(job_id)
        validate_fields_object(changes, "changes")
        try:
            edit = JobUpdateFields.model_validate(changes)
        except ValidationError as e:
            raise map_pydantic_validation_error(e) from e
        edit_fields = edit.changes()

        async with self._job_guard(job_id):
            for attempt in range(1, self.max_attempts + 1):
                data, version = await self.store.get_versioned(JOBS, job_id)
                if data is None:
                    raise create_not_found_error("Job", job_id)
                require_owner(identity, data.get("owner"), job_id)

                current = JobDocument.model_validate(data)
                merged = {**current.to_document(), **edit_fields}
                merged["updatedAt"] = max(self.clock(), current.updated_at)
                updated = JobDocument.model_validate(merged)

                new_version = await self.store.compare_and_set(
                    JOBS, job_id, updated.to_document(), version
                )
                if new_version is not None:
                    break
                logger.warning(
                    f"Job {job_id} changed during update (attempt {attempt}/{self.max_attempts})"
                )
            else:
                raise create_conflict_error(f"Job {job_id}", self.max_attempts)

            if updated.status != current.status:
                try:
                    await self.ledger.transition(current.owner, current.status, updated.status)
                except ToolError:
                    await self._compensate(job_id, new_version, data, "update")
                    raise
                logger.info(
                    f"Moved job {job_id} from {current.status.value} to {updated.status.value}"
                )

        return current, updated

    async def set_stage(self, identity: Identity, job_id: str, stage: Stage) -> JobDocument:
        """Stage-only edit; see ``update``."""
        return await self.update(identity, job_id, {"status": stage})

    async def move(
        self, identity: Identity, job_id: str, stage: Stage
    ) -> Tuple[Stage, JobDocument]:
        """
        Stage-only edit that also reports where the job came from.

        Returns:
            (stage the job was in when this write applied, job after the move)
        """
        previous, updated = await self._edit(identity, job_id, {"status": stage})
        return previous.status, updated

    async def delete(self, identity: Identity, job_id: str) -> JobDocument:
        """
        Remove a job and take it out of its owner's ledger.

        Of several concurrent deletes of one job, exactly one succeeds and
        decrements the ledger; the others see NOT_FOUND.

        Returns:
            The job as it was before deletion

        Raises:
            ToolError: NOT_FOUND, FORBIDDEN, LEDGER_CONFLICT, TRANSPORT_FAILURE
        """
        require_user(identity)
        job_id = validate_job_id(job_id)

        async with self._job_guard(job_id):
            for attempt in range(1, self.max_attempts + 1):
                data, version = await self.store.get_versioned(JOBS, job_id)
                if data is None:
                    raise create_not_found_error("Job", job_id)
                require_owner(identity, data.get("owner"), job_id)

                if await self.store.compare_and_delete(JOBS, job_id, version):
                    break
                logger.warning(
                    f"Job {job_id} changed during delete (attempt {attempt}/{self.max_attempts})"
                )
            else:
                raise create_conflict_error(f"Job {job_id}", self.max_attempts)

            deleted = JobDocument.model_validate(data)
            try:
                await self.ledger.transition(deleted.owner, deleted.status, None)
            except ToolError:
                await self._compensate(job_id, version + 1, data, "delete")
                raise

        logger.info(f"Deleted job {job_id} from stage {deleted.status.value}")
        return deleted

    async def list_by_owner(
        self, identity: Identity, owner_id: Optional[str] = None
    ) -> List[JobDocument]:
        """
        Snapshot of the caller's jobs, most recently created first.

        Args:
            identity: Caller
            owner_id: Optional explicit owner; must be the caller

        Raises:
            ToolError: FORBIDDEN when anonymous or listing another user's jobs
        """
        user_id = require_user(identity)
        if owner_id is not None and owner_id != user_id:
            raise create_forbidden_error("Cannot list jobs owned by another user")
        rows = await self.store.query(JOBS, "owner", user_id, order_by="createdAt")
        return [JobDocument.model_validate(row) for row in rows]
