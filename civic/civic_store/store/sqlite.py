"""
SQLite-backed document store.

This module persists documents for single-node deployments in one SQLite
file. It behaves like the hosted store from the caller's point of view,
including the composite-index precondition.

Invariants:
    - One row per (collection, doc_id); payload is JSON
    - Every write runs in its own transaction (BEGIN IMMEDIATE)
    - ``commit`` applies a whole batch in one transaction
    - Provisioned composite indexes are recorded in ``composite_indexes``
      and survive restarts

Table schema:
    documents:
        - collection TEXT
        - doc_id TEXT
        - data_json TEXT
        - version INTEGER
        - update_time TEXT (ISO-8601, UTC)
        - PRIMARY KEY (collection, doc_id)

    composite_indexes:
        - collection TEXT
        - fields TEXT (comma-separated, sorted)
        - order_field TEXT ('' when unordered)
        - PRIMARY KEY (collection, fields, order_field)
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Sequence

from ..errors import (
    DocumentNotFoundError,
    IndexNotReadyError,
    StoreUnavailableError,
    WriteConflictError,
)
from .base import Document, IndexSpec, Query, WriteKind, WriteOp, run_query

logger = logging.getLogger(__name__)

_DATETIME_TAG = "$datetime"


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return {_DATETIME_TAG: value.isoformat()}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _decode(obj: dict[str, Any]) -> Any:
    if len(obj) == 1 and _DATETIME_TAG in obj:
        return datetime.fromisoformat(obj[_DATETIME_TAG])
    return obj


def dumps(data: dict[str, Any]) -> str:
    """Serialize document data, tagging datetimes."""
    return json.dumps(data, default=_encode)


def loads(raw: str) -> dict[str, Any]:
    """Deserialize document data written by ``dumps``."""
    return json.loads(raw, object_hook=_decode)


class SqliteDocumentStore:
    """Document store persisted in a single SQLite database.

    Thread safety:
        A connection is opened per operation. Writes are serialized with an
        asyncio lock and run inside BEGIN IMMEDIATE transactions.

    Example:
        >>> store = SqliteDocumentStore("/var/lib/civic/store.db")
        >>> await store.connect()
        >>> await store.set("emailDrafts", "volunteer_v1", {"subject": "Hi"})
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        db_path: str,
        require_composite_indexes: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        self.db_path = Path(db_path)
        self.require_composite_indexes = require_composite_indexes
        self.busy_timeout_ms = busy_timeout_ms
        self._connected = False
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connected

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection to the database file."""
        if not self._connected:
            raise StoreUnavailableError()

        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row
        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            yield conn
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS documents (
                collection TEXT NOT NULL,
                doc_id TEXT NOT NULL,
                data_json TEXT NOT NULL DEFAULT '{}',
                version INTEGER NOT NULL,
                update_time TEXT NOT NULL,
                PRIMARY KEY (collection, doc_id)
            );

            CREATE TABLE IF NOT EXISTS composite_indexes (
                collection TEXT NOT NULL,
                fields TEXT NOT NULL,
                order_field TEXT NOT NULL DEFAULT '',
                PRIMARY KEY (collection, fields, order_field)
            );

            INSERT OR IGNORE INTO schema_version (version, applied_at)
            VALUES (1, datetime('now'));
        """)

    async def connect(self) -> None:
        """Create the database file and schema if needed."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connected = True
        with self._get_connection() as conn:
            self._create_schema(conn)
        logger.info("SQLite document store ready", extra={"path": str(self.db_path)})

    async def close(self) -> None:
        self._connected = False

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        with self._get_connection() as conn:
            row = self._fetch(conn, collection, doc_id)
        return self._row_to_document(row) if row else None

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> Document:
        async with self._lock:
            with self._get_connection() as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    doc = self._write_set(conn, collection, doc_id, data, merge)
                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise
        return doc

    async def create(self, collection: str, doc_id: str, data: dict[str, Any]) -> Document:
        async with self._lock:
            with self._get_connection() as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    row = self._fetch(conn, collection, doc_id)
                    if row is not None:
                        raise WriteConflictError(collection, doc_id, 0, row["version"])
                    doc = self._write_set(conn, collection, doc_id, data, merge=False)
                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise
        return doc

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Document:
        async with self._lock:
            with self._get_connection() as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    doc = self._write_update(conn, collection, doc_id, fields, expected_version)
                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise
        return doc

    async def delete(self, collection: str, doc_id: str) -> None:
        async with self._lock:
            with self._get_connection() as conn:
                conn.execute(
                    "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                    (collection, doc_id),
                )

    async def query(self, query: Query) -> list[Document]:
        with self._get_connection() as conn:
            required = query.required_index()
            if required is not None and self.require_composite_indexes:
                if not self._index_exists(conn, required):
                    raise IndexNotReadyError(
                        f"The query requires an index: {required}",
                        collection=query.collection,
                        fields=required.fields,
                    )

            rows = conn.execute(
                "SELECT * FROM documents WHERE collection = ?",
                (query.collection,),
            ).fetchall()

        return run_query([self._row_to_document(r) for r in rows], query)

    async def commit(self, writes: Sequence[WriteOp]) -> None:
        async with self._lock:
            with self._get_connection() as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    for w in writes:
                        if w.kind == WriteKind.SET:
                            self._write_set(conn, w.collection, w.doc_id, w.data, w.merge)
                        elif w.kind == WriteKind.UPDATE:
                            self._write_update(conn, w.collection, w.doc_id, w.data, None)
                        else:
                            conn.execute(
                                "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                                (w.collection, w.doc_id),
                            )
                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise
        logger.debug("Batch committed", extra={"writes": len(writes)})

    async def provision_index(
        self,
        collection: str,
        fields: Sequence[str],
        order_field: Optional[str] = None,
    ) -> IndexSpec:
        spec = IndexSpec(collection, tuple(sorted(set(fields))), order_field)
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO composite_indexes (collection, fields, order_field)
                VALUES (?, ?, ?)
                """,
                (collection, ",".join(spec.fields), order_field or ""),
            )
        logger.info("Composite index provisioned", extra={"index": str(spec)})
        return spec

    # Internals

    def _index_exists(self, conn: sqlite3.Connection, spec: IndexSpec) -> bool:
        cursor = conn.execute(
            """
            SELECT 1 FROM composite_indexes
            WHERE collection = ? AND fields = ? AND order_field = ?
            """,
            (spec.collection, ",".join(spec.fields), spec.order_field or ""),
        )
        return cursor.fetchone() is not None

    @staticmethod
    def _fetch(conn: sqlite3.Connection, collection: str, doc_id: str) -> Optional[sqlite3.Row]:
        return conn.execute(
            "SELECT * FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id),
        ).fetchone()

    def _write_set(
        self,
        conn: sqlite3.Connection,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool,
    ) -> Document:
        row = self._fetch(conn, collection, doc_id)
        new_data = dict(data)
        version = 1
        if row is not None:
            version = row["version"] + 1
            if merge:
                new_data = {**loads(row["data_json"]), **data}

        now = datetime.now(timezone.utc)
        conn.execute(
            """
            INSERT INTO documents (collection, doc_id, data_json, version, update_time)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (collection, doc_id) DO UPDATE SET
                data_json = excluded.data_json,
                version = excluded.version,
                update_time = excluded.update_time
            """,
            (collection, doc_id, dumps(new_data), version, now.isoformat()),
        )
        return Document(id=doc_id, data=new_data, version=version, update_time=now)

    def _write_update(
        self,
        conn: sqlite3.Connection,
        collection: str,
        doc_id: str,
        fields: dict[str, Any],
        expected_version: Optional[int],
    ) -> Document:
        row = self._fetch(conn, collection, doc_id)
        if row is None:
            raise DocumentNotFoundError(collection, doc_id)
        if expected_version is not None and row["version"] != expected_version:
            raise WriteConflictError(collection, doc_id, expected_version, row["version"])

        new_data = {**loads(row["data_json"]), **fields}
        version = row["version"] + 1
        now = datetime.now(timezone.utc)
        conn.execute(
            """
            UPDATE documents SET data_json = ?, version = ?, update_time = ?
            WHERE collection = ? AND doc_id = ?
            """,
            (dumps(new_data), version, now.isoformat(), collection, doc_id),
        )
        return Document(id=doc_id, data=new_data, version=version, update_time=now)

    @staticmethod
    def _row_to_document(row: sqlite3.Row) -> Document:
        return Document(
            id=row["doc_id"],
            data=loads(row["data_json"]),
            version=row["version"],
            update_time=datetime.fromisoformat(row["update_time"]),
        )
