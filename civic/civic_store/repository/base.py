"""
Entity repository: a thin per-collection facade over the document store.

Operations:
- create(fields) -> id
- get(id) -> entity | None
- update(id, partial_fields)
- list_by(filters, order_by, limit) -> entities (via the tiered executor)

Invariants:
    - ``create`` generates the id up front and stores it both as the document
      key and as the ``id`` field
    - Payloads are sanitized (UNSET dropped, blank optional strings nulled)
      and validated against the collection schema before any write
    - Single-entity reads return None for missing documents, never raise
    - Store errors are logged with context and re-raised; anything that is
      not already a CivicStoreError is wrapped in WriteFailureError
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar

from ..errors import (
    CivicStoreError,
    StoreUnavailableError,
    ValidationError,
    WriteConflictError,
    WriteFailureError,
)
from ..query.executor import TieredQueryExecutor
from ..schema.types import CollectionDef
from ..store.base import Document, DocumentStore, FieldFilter, OrderBy

logger = logging.getLogger(__name__)

T = TypeVar("T")


def utcnow() -> datetime:
    """Current time, timezone-aware UTC."""
    return datetime.now(timezone.utc)


def new_document_id() -> str:
    """Generate a store-style 20 character document id."""
    return uuid.uuid4().hex[:20]


class EntityRepository(Generic[T]):
    """Create/get/update/list for one collection.

    Attributes:
        collection: Collection definition
        store: Backing document store

    Example:
        >>> repo = EntityRepository(store, Referrals, Referral.from_dict)
        >>> ref_id = await repo.create({"referrerId": "u1", "referralCode": "ABC"})
        >>> referral = await repo.get(ref_id)
    """

    def __init__(
        self,
        store: Optional[DocumentStore],
        collection: CollectionDef,
        decode: Callable[[dict[str, Any]], T],
        executor: Optional[TieredQueryExecutor] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self.collection = collection
        self._decode = decode
        self._executor = executor
        self.clock = clock

    @property
    def store(self) -> DocumentStore:
        if self._store is None:
            raise StoreUnavailableError()
        return self._store

    @property
    def executor(self) -> TieredQueryExecutor:
        if self._executor is None:
            self._executor = TieredQueryExecutor(self.store)
        return self._executor

    @property
    def name(self) -> str:
        return self.collection.name

    def decode(self, doc: Document) -> T:
        data = dict(doc.data)
        data.setdefault("id", doc.id)
        return self._decode(data)

    def prepare(self, fields: dict[str, Any], partial: bool) -> dict[str, Any]:
        """Sanitize and validate a payload.

        Raises:
            ValidationError: If the payload does not fit the collection
        """
        payload = self.collection.sanitize(fields)
        if not partial:
            payload = self.collection.with_defaults(payload)
        is_valid, errors = self.collection.validate_payload(payload, partial=partial)
        if not is_valid:
            raise ValidationError("; ".join(errors), errors=errors)
        return payload

    async def create(
        self,
        fields: dict[str, Any],
        doc_id: Optional[str] = None,
        exclusive: bool = False,
    ) -> str:
        """Create a document and return its id.

        With ``exclusive=True`` the write fails with WriteConflictError if a
        document with ``doc_id`` already exists.
        """
        doc_id = doc_id or new_document_id()
        now = self.clock()
        payload = self.prepare(fields, partial=False)
        payload.update({"id": doc_id, "createdAt": now, "updatedAt": now})

        with self._writing("create", doc_id):
            if exclusive:
                await self.store.create(self.name, doc_id, payload)
            else:
                await self.store.set(self.name, doc_id, payload)

        logger.info("Document created", extra={"collection": self.name, "doc_id": doc_id})
        return doc_id

    async def get(self, doc_id: str) -> Optional[T]:
        doc = await self.get_document(doc_id)
        return self.decode(doc) if doc is not None else None

    async def get_document(self, doc_id: str) -> Optional[Document]:
        """Raw document read, including its version."""
        return await self.store.get(self.name, doc_id)

    async def update(
        self,
        doc_id: str,
        fields: dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Document:
        """Update some fields of an existing document.

        Args:
            doc_id: Document id
            fields: Partial payload
            expected_version: Optional optimistic concurrency check

        Raises:
            DocumentNotFoundError: If the document does not exist
            WriteConflictError: If expected_version is stale
        """
        payload = self.prepare(fields, partial=True)
        payload["updatedAt"] = self.clock()

        with self._writing("update", doc_id):
            return await self.store.update(
                self.name, doc_id, payload, expected_version=expected_version
            )

    async def upsert(self, doc_id: str, fields: dict[str, Any]) -> None:
        """Merge-write a document under a caller-chosen id."""
        now = self.clock()
        existing = await self.get_document(doc_id)
        payload = self.prepare(fields, partial=existing is not None)
        payload.update({"id": doc_id, "updatedAt": now})
        if existing is None:
            payload["createdAt"] = now

        with self._writing("upsert", doc_id):
            await self.store.set(self.name, doc_id, payload, merge=True)

    async def delete(self, doc_id: str) -> None:
        with self._writing("delete", doc_id):
            await self.store.delete(self.name, doc_id)

    async def list_by(
        self,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[T]:
        """List entities matching filters, ordered as requested."""
        docs = await self.executor.fetch(
            self.name,
            filters=filters,
            order_by=order_by,
            limit=limit,
        )
        return [self.decode(d) for d in docs]

    async def first_by(
        self,
        filters: Sequence[FieldFilter],
        order_by: Optional[OrderBy] = None,
    ) -> Optional[T]:
        results = await self.list_by(filters, order_by=order_by, limit=1)
        return results[0] if results else None

    @contextmanager
    def _writing(self, op: str, doc_id: str) -> Iterator[None]:
        """Log failed writes with context; wrap unknown errors."""
        try:
            yield
        except WriteConflictError as e:
            logger.warning(
                f"Write conflict in {self.name}.{op}",
                extra={"collection": self.name, "doc_id": doc_id, "error": e.message},
            )
            raise
        except CivicStoreError as e:
            logger.error(
                f"Error in {self.name}.{op}",
                extra={"collection": self.name, "doc_id": doc_id, "code": e.code, "error": e.message},
            )
            raise
        except Exception as e:
            logger.error(
                f"Error in {self.name}.{op}",
                extra={"collection": self.name, "doc_id": doc_id, "error": str(e)},
                exc_info=True,
            )
            raise WriteFailureError(
                f"{op} failed for {self.name}/{doc_id}: {e}",
                collection=self.name,
                doc_id=doc_id,
            ) from e
