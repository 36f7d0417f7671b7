"""
In-memory document store implementation.

This module provides a fully functional in-memory backend for:
- Unit tests
- Integration tests
- Local development without a hosted store

Invariants:
    - All data is lost on process exit
    - Reads return deep copies, so callers never share state with the store
    - Every operation yields to the event loop once before touching data,
      which lets tests interleave concurrent callers deterministically
    - Composite-index rules match the hosted store (see Query.required_index)
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Set

from ..errors import (
    DocumentNotFoundError,
    IndexNotReadyError,
    PermissionDeniedError,
    StoreUnavailableError,
    WriteConflictError,
)
from .base import Document, IndexSpec, Query, WriteKind, WriteOp, run_query

logger = logging.getLogger(__name__)


@dataclass
class _StoredDocument:
    data: Dict[str, Any]
    version: int
    update_time: datetime


class InMemoryDocumentStore:
    """In-memory implementation of DocumentStore.

    Attributes:
        require_composite_indexes: Raise IndexNotReadyError for queries whose
            composite index has not been provisioned
        latency: Seconds each operation sleeps before acting (0 still yields)

    Example:
        >>> store = InMemoryDocumentStore()
        >>> await store.connect()
        >>> await store.set("referrals", "r1", {"status": "invited"})
        >>> await store.update("referrals", "r1", {"status": "signed_up"})
    """

    def __init__(
        self,
        require_composite_indexes: bool = True,
        latency: float = 0.0,
    ) -> None:
        self.require_composite_indexes = require_composite_indexes
        self.latency = latency
        self._collections: Dict[str, Dict[str, _StoredDocument]] = defaultdict(dict)
        self._indexes: Set[IndexSpec] = set()
        self._denied: Set[str] = set()
        self._injected: List[tuple[Optional[str], Exception]] = []
        self._connected = False
        self._lock = asyncio.Lock()
        self.query_log: List[Query] = []

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryDocumentStore connected")

    async def close(self) -> None:
        """Disconnect. Data is kept so a store can be reopened in tests."""
        self._connected = False
        logger.debug("InMemoryDocumentStore closed")

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        await self._enter("get", collection)
        stored = self._collections[collection].get(doc_id)
        if stored is None:
            return None
        return self._to_document(doc_id, stored)

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = False,
    ) -> Document:
        await self._enter("set", collection)
        async with self._lock:
            stored = self._apply_set(collection, doc_id, data, merge)
        logger.debug(
            "Document written",
            extra={"collection": collection, "doc_id": doc_id, "merge": merge},
        )
        return self._to_document(doc_id, stored)

    async def create(self, collection: str, doc_id: str, data: Dict[str, Any]) -> Document:
        await self._enter("create", collection)
        async with self._lock:
            existing = self._collections[collection].get(doc_id)
            if existing is not None:
                raise WriteConflictError(collection, doc_id, 0, existing.version)
            stored = self._apply_set(collection, doc_id, data, merge=False)
        return self._to_document(doc_id, stored)

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Document:
        await self._enter("update", collection)
        async with self._lock:
            stored = self._apply_update(collection, doc_id, fields, expected_version)
        return self._to_document(doc_id, stored)

    async def delete(self, collection: str, doc_id: str) -> None:
        await self._enter("delete", collection)
        async with self._lock:
            self._collections[collection].pop(doc_id, None)

    async def query(self, query: Query) -> List[Document]:
        await self._enter("query", query.collection)
        self.query_log.append(query)

        required = query.required_index()
        if required is not None and self.require_composite_indexes:
            if required not in self._indexes:
                raise IndexNotReadyError(
                    f"The query requires an index: {required}",
                    collection=query.collection,
                    fields=required.fields,
                )

        docs = [
            self._to_document(doc_id, stored)
            for doc_id, stored in self._collections[query.collection].items()
        ]
        return run_query(docs, query)

    async def commit(self, writes: Sequence[WriteOp]) -> None:
        """Apply all writes or none.

        Updates are checked for existence before anything is applied.
        """
        for collection in {w.collection for w in writes}:
            await self._enter("commit", collection)

        async with self._lock:
            for w in writes:
                if w.kind == WriteKind.UPDATE and w.doc_id not in self._collections[w.collection]:
                    raise DocumentNotFoundError(w.collection, w.doc_id)

            for w in writes:
                if w.kind == WriteKind.SET:
                    self._apply_set(w.collection, w.doc_id, w.data, w.merge)
                elif w.kind == WriteKind.UPDATE:
                    self._apply_update(w.collection, w.doc_id, w.data, None)
                else:
                    self._collections[w.collection].pop(w.doc_id, None)

        logger.debug("Batch committed", extra={"writes": len(writes)})

    async def provision_index(
        self,
        collection: str,
        fields: Sequence[str],
        order_field: Optional[str] = None,
    ) -> IndexSpec:
        spec = IndexSpec(collection, tuple(sorted(set(fields))), order_field)
        self._indexes.add(spec)
        logger.info("Composite index provisioned", extra={"index": str(spec)})
        return spec

    # Internals

    async def _enter(self, op: str, collection: str) -> None:
        await asyncio.sleep(self.latency)

        if not self._connected:
            raise StoreUnavailableError()
        if collection in self._denied:
            raise PermissionDeniedError(
                f"Missing or insufficient permissions for '{collection}'",
                collection=collection,
            )
        for i, (target_op, exc) in enumerate(self._injected):
            if target_op is None or target_op == op:
                del self._injected[i]
                raise exc

    def _apply_set(
        self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool
    ) -> _StoredDocument:
        existing = self._collections[collection].get(doc_id)
        if existing is not None and merge:
            new_data = {**existing.data, **copy.deepcopy(data)}
        else:
            new_data = copy.deepcopy(data)

        version = existing.version + 1 if existing is not None else 1
        stored = _StoredDocument(new_data, version, datetime.now(timezone.utc))
        self._collections[collection][doc_id] = stored
        return stored

    def _apply_update(
        self,
        collection: str,
        doc_id: str,
        fields: Dict[str, Any],
        expected_version: Optional[int],
    ) -> _StoredDocument:
        existing = self._collections[collection].get(doc_id)
        if existing is None:
            raise DocumentNotFoundError(collection, doc_id)
        if expected_version is not None and existing.version != expected_version:
            raise WriteConflictError(collection, doc_id, expected_version, existing.version)

        existing.data.update(copy.deepcopy(fields))
        existing.version += 1
        existing.update_time = datetime.now(timezone.utc)
        return existing

    @staticmethod
    def _to_document(doc_id: str, stored: _StoredDocument) -> Document:
        return Document(
            id=doc_id,
            data=copy.deepcopy(stored.data),
            version=stored.version,
            update_time=stored.update_time,
        )

    # Testing helpers

    def deny(self, collection: str) -> None:
        """Make every operation on a collection fail with PermissionDeniedError."""
        self._denied.add(collection)

    def allow(self, collection: str) -> None:
        """Undo deny()."""
        self._denied.discard(collection)

    def inject_failure(self, exception: Exception, op: Optional[str] = None) -> None:
        """Make the next operation (optionally of one kind) raise ``exception``."""
        self._injected.append((op, exception))

    def document_count(self, collection: str) -> int:
        """Number of documents in a collection (testing helper)."""
        return len(self._collections[collection])

    def clear(self) -> None:
        """Drop all documents and indexes (testing helper)."""
        self._collections.clear()
        self._indexes.clear()
        self.query_log.clear()
