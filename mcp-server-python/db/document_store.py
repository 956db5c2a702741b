"""
Document store layer for the job board.

Provides a small remote-document-store contract on top of SQLite:
- get/put/delete by id within a collection
- per-document versions for optimistic concurrency (compare-and-set)
- query by one field with ordering
- change subscriptions per document and per query

Every document row carries a version that increases on each committed write.
An absent document has version 0. Deleting leaves a tombstone row so a
version is never reused, which keeps compare-and-set free of ABA surprises.

The public API is asynchronous. Blocking SQLite work runs in a worker thread
while the caller's event loop stays responsive; change listeners are always
invoked back on the event loop, after the write has committed.
"""

import asyncio
import json
import logging
import re
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from models.errors import create_transport_error, create_validation_error

logger = logging.getLogger(__name__)

JOBS = "jobs"
USERS = "users"
COLLECTIONS = (JOBS, USERS)

DEFAULT_BUSY_TIMEOUT_SECONDS = 5.0

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

Listener = Callable[[], None]


def resolve_db_path(db_path: Optional[str] = None) -> Path:
    """
    Resolve the database path with support for overrides and defaults.

    Resolution order:
    1. Provided db_path parameter (relative paths resolve from repository root)
    2. Configured path (JOBBOARD_DB, JOBBOARD_ROOT, or the repository default)

    Args:
        db_path: Optional database path override

    Returns:
        Resolved absolute Path to the database
    """
    if db_path is None:
        from config import get_config

        return get_config().db_path

    path = Path(db_path)
    if not path.is_absolute():
        current_file = Path(__file__).resolve()
        repo_root = current_file.parents[2]  # db/ -> mcp-server-python/ -> repo/
        path = repo_root / path
    return path


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _check_collection(collection: str) -> None:
    if collection not in COLLECTIONS:
        raise create_validation_error(
            f"Unknown collection: '{collection}'. Allowed values are: {', '.join(COLLECTIONS)}"
        )


def _check_field(field: str) -> None:
    if not isinstance(field, str) or not _FIELD_RE.match(field):
        raise create_validation_error(f"Invalid field name: {field!r}")


def _matches(document: Optional[Dict[str, Any]], field: str, value: Any) -> bool:
    return document is not None and document.get(field) == value


@dataclass
class WriteResult:
    """Outcome of one conditional write."""

    applied: bool
    before: Optional[Dict[str, Any]]
    after: Optional[Dict[str, Any]]
    version: int


class _Watcher:
    """Registration token; removal is by identity so cancel stays idempotent."""

    __slots__ = ("listener",)

    def __init__(self, listener: Listener):
        self.listener = listener


class DocumentStore:
    """
    SQLite-backed document store with versions and a change feed.

    Usage:
        store = DocumentStore("/tmp/board.db")
        data, version = await store.get_versioned("users", "u1")
        new_version = await store.compare_and_set("users", "u1", updated, version)
        if new_version is None:
            ...  # somebody else wrote first; re-read and try again
    """

    def __init__(self, db_path, busy_timeout: float = DEFAULT_BUSY_TIMEOUT_SECONDS):
        """
        Initialize the store and create the schema if needed.

        Args:
            db_path: Path to the SQLite file (created when missing)
            busy_timeout: Seconds to wait for a competing writer's lock

        Raises:
            ToolError: TRANSPORT_FAILURE if the database cannot be opened
        """
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout
        self._doc_watchers: Dict[Tuple[str, str], List[_Watcher]] = {}
        self._query_watchers: Dict[Tuple[str, str, Any], List[_Watcher]] = {}
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_schema()
        except (sqlite3.Error, OSError) as e:
            raise create_transport_error(str(e), retryable=False, original_error=e) from e

    def _connect(self) -> sqlite3.Connection:
        """Open a connection in manual-transaction mode."""
        conn = sqlite3.connect(
            str(self.db_path), timeout=self.busy_timeout, isolation_level=None
        )
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        conn = self._connect()
        try:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    deleted INTEGER NOT NULL DEFAULT 0,
                    updated_at TEXT NOT NULL,
                    UNIQUE (collection, doc_id)
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_documents_collection "
                "ON documents(collection, deleted)"
            )
        finally:
            conn.close()

    async def _run(self, fn, *args):
        """Run blocking SQLite work off the event loop, mapping driver errors."""
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as e:
            raise create_transport_error(str(e), retryable=True, original_error=e) from e

    # Reads

    def _get_sync(self, collection: str, doc_id: str) -> Tuple[Optional[Dict[str, Any]], int]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT data, version, deleted FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None, 0
        if row["deleted"]:
            return None, row["version"]
        return json.loads(row["data"]), row["version"]

    async def get_versioned(
        self, collection: str, doc_id: str
    ) -> Tuple[Optional[Dict[str, Any]], int]:
        """
        Read a document together with its current version.

        Returns:
            (document or None, version); the version is 0 for a document that
            never existed and the tombstone version for a deleted one
        """
        _check_collection(collection)
        return await self._run(self._get_sync, collection, doc_id)

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Read a document, or None when absent."""
        data, _ = await self.get_versioned(collection, doc_id)
        return data

    def _query_sync(
        self,
        collection: str,
        field: str,
        value: Any,
        order_by: Optional[str],
        descending: bool,
        limit: Optional[int],
    ) -> List[Dict[str, Any]]:
        direction = "DESC" if descending else "ASC"
        sql = (
            "SELECT data FROM documents "
            "WHERE collection = ? AND deleted = 0 AND json_extract(data, ?) = ?"
        )
        params: List[Any] = [collection, f"$.{field}", value]
        if order_by:
            sql += f" ORDER BY json_extract(data, ?) {direction}, seq {direction}"
            params.append(f"$.{order_by}")
        else:
            sql += f" ORDER BY seq {direction}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        conn = self._connect()
        try:
            rows = conn.execute(sql, params).fetchall()
        finally:
            conn.close()
        return [json.loads(row["data"]) for row in rows]

    async def query(
        self,
        collection: str,
        field: str,
        value: Any,
        order_by: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Return live documents whose ``field`` equals ``value``.

        Args:
            collection: Collection name
            field: Top-level document field to filter on
            value: Value the field must equal
            order_by: Optional top-level field to sort by
            descending: Sort direction; ties break on insertion order
            limit: Optional maximum number of documents

        Returns:
            List of documents
        """
        _check_collection(collection)
        _check_field(field)
        if order_by is not None:
            _check_field(order_by)
        return await self._run(
            self._query_sync, collection, field, value, order_by, descending, limit
        )

    def _list_ids_sync(self, collection: str) -> List[str]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT doc_id FROM documents WHERE collection = ? AND deleted = 0 ORDER BY seq",
                (collection,),
            ).fetchall()
        finally:
            conn.close()
        return [row["doc_id"] for row in rows]

    async def list_ids(self, collection: str) -> List[str]:
        """Ids of all live documents in a collection, oldest first."""
        _check_collection(collection)
        return await self._run(self._list_ids_sync, collection)

    def _distinct_sync(self, collection: str, field: str) -> List[Any]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT DISTINCT json_extract(data, ?) AS value FROM documents "
                "WHERE collection = ? AND deleted = 0 AND json_extract(data, ?) IS NOT NULL "
                "ORDER BY value",
                (f"$.{field}", collection, f"$.{field}"),
            ).fetchall()
        finally:
            conn.close()
        return [row["value"] for row in rows]

    async def distinct(self, collection: str, field: str) -> List[Any]:
        """Distinct non-null values of a top-level field across live documents."""
        _check_collection(collection)
        _check_field(field)
        return await self._run(self._distinct_sync, collection, field)

    # Writes

    def _apply_sync(
        self,
        collection: str,
        doc_id: str,
        new_data: Optional[Dict[str, Any]],
        expected_version: Optional[int],
        delete: bool,
    ) -> WriteResult:
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    "SELECT data, version, deleted FROM documents "
                    "WHERE collection = ? AND doc_id = ?",
                    (collection, doc_id),
                ).fetchone()
                current_version = row["version"] if row is not None else 0
                before = None
                if row is not None and not row["deleted"]:
                    before = json.loads(row["data"])

                if expected_version is not None and expected_version != current_version:
                    conn.execute("ROLLBACK")
                    return WriteResult(False, before, before, current_version)

                now = _utc_now()
                if delete:
                    if before is None:
                        conn.execute("ROLLBACK")
                        return WriteResult(False, None, None, current_version)
                    conn.execute(
                        "UPDATE documents SET deleted = 1, version = ?, updated_at = ? "
                        "WHERE collection = ? AND doc_id = ?",
                        (current_version + 1, now, collection, doc_id),
                    )
                    after = None
                else:
                    payload = json.dumps(new_data, sort_keys=True)
                    if row is None:
                        conn.execute(
                            "INSERT INTO documents "
                            "(collection, doc_id, data, version, deleted, updated_at) "
                            "VALUES (?, ?, ?, 1, 0, ?)",
                            (collection, doc_id, payload, now),
                        )
                    else:
                        conn.execute(
                            "UPDATE documents SET data = ?, version = ?, deleted = 0, "
                            "updated_at = ? WHERE collection = ? AND doc_id = ?",
                            (payload, current_version + 1, now, collection, doc_id),
                        )
                    after = json.loads(payload)

                conn.execute("COMMIT")
                return WriteResult(True, before, after, current_version + 1)
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
        finally:
            conn.close()

    async def _write(
        self,
        collection: str,
        doc_id: str,
        new_data: Optional[Dict[str, Any]],
        expected_version: Optional[int],
        delete: bool,
    ) -> WriteResult:
        _check_collection(collection)
        result = await self._run(
            self._apply_sync, collection, doc_id, new_data, expected_version, delete
        )
        if result.applied:
            self._notify(collection, doc_id, result.before, result.after)
        return result

    async def compare_and_set(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        expected_version: int,
    ) -> Optional[int]:
        """
        Write a whole document only if its version is still ``expected_version``.

        Pass 0 (or a tombstone's version) to create a document that must not
        currently exist.

        Returns:
            The new version, or None when another writer got there first

        Raises:
            ToolError: TRANSPORT_FAILURE on storage errors
        """
        result = await self._write(collection, doc_id, data, expected_version, delete=False)
        return result.version if result.applied else None

    async def compare_and_delete(
        self, collection: str, doc_id: str, expected_version: int
    ) -> bool:
        """
        Delete a document only if its version is still ``expected_version``.

        Returns:
            True if this call deleted the document
        """
        result = await self._write(collection, doc_id, None, expected_version, delete=True)
        return result.applied

    async def put(self, collection: str, doc_id: str, data: Dict[str, Any]) -> int:
        """Unconditionally create or replace a document; returns the new version."""
        result = await self._write(collection, doc_id, data, None, delete=False)
        return result.version

    async def delete(self, collection: str, doc_id: str) -> bool:
        """Unconditionally delete a document; returns False if it was absent."""
        result = await self._write(collection, doc_id, None, None, delete=True)
        return result.applied

    # Change feed

    def _add_watcher(self, registry: dict, key: tuple, listener: Listener) -> Callable[[], None]:
        watcher = _Watcher(listener)
        registry.setdefault(key, []).append(watcher)

        def cancel() -> None:
            watchers = registry.get(key)
            if not watchers:
                return
            for index, existing in enumerate(watchers):
                if existing is watcher:
                    del watchers[index]
                    break
            if not watchers:
                registry.pop(key, None)

        return cancel

    def watch_document(
        self, collection: str, doc_id: str, listener: Listener
    ) -> Callable[[], None]:
        """
        Call ``listener()`` after every committed write to one document.

        Returns:
            Idempotent cancel callable
        """
        _check_collection(collection)
        return self._add_watcher(self._doc_watchers, (collection, doc_id), listener)

    def watch_query(
        self, collection: str, field: str, value: Any, listener: Listener
    ) -> Callable[[], None]:
        """
        Call ``listener()`` after every committed write whose document matched
        ``field == value`` before or after the write.

        Returns:
            Idempotent cancel callable
        """
        _check_collection(collection)
        _check_field(field)
        return self._add_watcher(self._query_watchers, (collection, field, value), listener)

    def watcher_count(self) -> int:
        """Number of active listeners, across documents and queries."""
        return sum(len(w) for w in self._doc_watchers.values()) + sum(
            len(w) for w in self._query_watchers.values()
        )

    def _notify(
        self,
        collection: str,
        doc_id: str,
        before: Optional[Dict[str, Any]],
        after: Optional[Dict[str, Any]],
    ) -> None:
        watchers = list(self._doc_watchers.get((collection, doc_id), ()))
        for (watched_collection, field, value), query_watchers in list(
            self._query_watchers.items()
        ):
            if watched_collection != collection:
                continue
            if _matches(before, field, value) or _matches(after, field, value):
                watchers.extend(query_watchers)

        for watcher in watchers:
            try:
                watcher.listener()
            except Exception:
                logger.exception(f"Change listener failed for {collection}/{doc_id}")
