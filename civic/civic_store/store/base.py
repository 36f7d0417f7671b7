"""
Base protocol and types for the document store abstraction.

This module defines the DocumentStore protocol that every backend implements,
along with the query, document and batch-write types shared by the backends
and the query executor.

Invariants:
    - Writes are atomic per document; ``commit`` is atomic across documents
    - Every write bumps the document's ``version`` by one
    - Queries that need a composite index raise IndexNotReadyError until the
      index is provisioned, exactly like the hosted store
    - Filtering and ordering semantics are identical in every backend
      (``matches_filters`` / ``sort_documents`` are the single definition)

How to change safely:
    - Protocol changes require updating all implementations
    - Keep ``Query.required_index`` in sync with the hosted store's rules
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    runtime_checkable,
    TYPE_CHECKING,
)
import logging

if TYPE_CHECKING:
    from ..config import StoreConfig

logger = logging.getLogger(__name__)


class FilterOp(Enum):
    """Supported filter operators."""

    EQ = "=="
    NE = "!="
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    IN = "in"
    ARRAY_CONTAINS = "array-contains"

    @property
    def is_range(self) -> bool:
        return self in (FilterOp.NE, FilterOp.LT, FilterOp.LTE, FilterOp.GT, FilterOp.GTE)


@dataclass(frozen=True)
class FieldFilter:
    """A single ``field <op> value`` condition.

    Example:
        >>> FieldFilter("status", FilterOp.EQ, "pending")
        >>> FieldFilter.where("goal", ">=", 100)
    """

    field: str
    op: FilterOp
    value: Any

    @classmethod
    def where(cls, field_name: str, op: str, value: Any) -> FieldFilter:
        """Build a filter from an operator string."""
        return cls(field_name, FilterOp(op), value)

    def matches(self, data: Dict[str, Any]) -> bool:
        """Evaluate this filter against a document's data."""
        actual = data.get(self.field)
        try:
            if self.op == FilterOp.EQ:
                return actual == self.value
            if self.op == FilterOp.NE:
                return actual is not None and actual != self.value
            if self.op == FilterOp.IN:
                return actual in self.value
            if self.op == FilterOp.ARRAY_CONTAINS:
                return isinstance(actual, list) and self.value in actual
            if actual is None:
                return False
            if self.op == FilterOp.LT:
                return actual < self.value
            if self.op == FilterOp.LTE:
                return actual <= self.value
            if self.op == FilterOp.GT:
                return actual > self.value
            return actual >= self.value
        except TypeError:
            # Mismatched types never match, as in the hosted store
            return False


@dataclass(frozen=True)
class OrderBy:
    """Requested result ordering. Descending unless stated otherwise."""

    field: str
    descending: bool = True


@dataclass(frozen=True)
class IndexSpec:
    """Composite index identity: collection, filtered fields, ordering field."""

    collection: str
    fields: Tuple[str, ...]
    order_field: Optional[str] = None

    def __str__(self) -> str:
        order = f" order by {self.order_field}" if self.order_field else ""
        return f"{self.collection}({', '.join(self.fields)}){order}"


@dataclass(frozen=True)
class Query:
    """A read against one collection.

    Attributes:
        collection: Collection name
        filters: Conditions, all of which must hold
        order_by: Optional server-side ordering
        limit: Optional maximum result count
    """

    collection: str
    filters: Tuple[FieldFilter, ...] = ()
    order_by: Optional[OrderBy] = None
    limit: Optional[int] = None

    def required_index(self) -> Optional[IndexSpec]:
        """Return the composite index this query needs, or None.

        A composite index is needed when an ordering is combined with a filter
        on another field, or when a range filter is combined with filters on
        other fields. Single-field indexes always exist.
        """
        fields = tuple(sorted({f.field for f in self.filters}))
        has_range = any(f.op.is_range for f in self.filters)
        order_field = self.order_by.field if self.order_by else None

        needs_index = False
        if order_field is not None and any(f != order_field for f in fields):
            needs_index = True
        elif has_range and len(fields) > 1:
            needs_index = True

        if not needs_index:
            return None
        return IndexSpec(self.collection, fields, order_field)


@dataclass
class Document:
    """A document read from the store.

    Attributes:
        id: Document key within its collection
        data: Field values
        version: Write counter, starts at 1
        update_time: Time of the last write
    """

    id: str
    data: Dict[str, Any]
    version: int = 1
    update_time: Optional[datetime] = None


class WriteKind(Enum):
    """Batch write operation kinds."""

    SET = "set"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class WriteOp:
    """One write inside an atomic batch commit."""

    kind: WriteKind
    collection: str
    doc_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    merge: bool = False

    @classmethod
    def update(cls, collection: str, doc_id: str, fields: Dict[str, Any]) -> WriteOp:
        return cls(WriteKind.UPDATE, collection, doc_id, dict(fields))

    @classmethod
    def set(
        cls, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False
    ) -> WriteOp:
        return cls(WriteKind.SET, collection, doc_id, dict(data), merge)

    @classmethod
    def delete(cls, collection: str, doc_id: str) -> WriteOp:
        return cls(WriteKind.DELETE, collection, doc_id)


def matches_filters(data: Dict[str, Any], filters: Sequence[FieldFilter]) -> bool:
    """Whether a document's data satisfies every filter."""
    return all(f.matches(data) for f in filters)


def sort_documents(docs: List[Document], order_by: Optional[OrderBy]) -> List[Document]:
    """Sort documents by a field. Documents missing the field sort last."""
    if order_by is None:
        return list(docs)

    present = [d for d in docs if d.data.get(order_by.field) is not None]
    missing = [d for d in docs if d.data.get(order_by.field) is None]
    present.sort(key=lambda d: d.data[order_by.field], reverse=order_by.descending)
    return present + missing


def run_query(docs: List[Document], query: Query) -> List[Document]:
    """Evaluate a query over already-fetched documents."""
    result = [d for d in docs if matches_filters(d.data, query.filters)]
    result = sort_documents(result, query.order_by)
    if query.limit is not None:
        result = result[: query.limit]
    return result


@runtime_checkable
class DocumentStore(Protocol):
    """Protocol for document store backends.

    Consistency contract:
        - get/set/update/delete are atomic per document
        - commit() applies every write or none
        - update() with expected_version is a compare-and-set on the version

    Example:
        >>> store = InMemoryDocumentStore()
        >>> await store.connect()
        >>> await store.set("petitions", "p1", {"title": "Clean water"})
        >>> doc = await store.get("petitions", "p1")
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the backend.

        Must be called before any other operation.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""
        ...

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        """Read one document, or None if it does not exist."""
        ...

    @abstractmethod
    async def set(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = False,
    ) -> Document:
        """Create or overwrite a document.

        With ``merge=True`` the given fields are merged into any existing data.
        """
        ...

    @abstractmethod
    async def create(self, collection: str, doc_id: str, data: Dict[str, Any]) -> Document:
        """Create a document that must not exist yet.

        Raises:
            WriteConflictError: If the document already exists
        """
        ...

    @abstractmethod
    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Document:
        """Update fields of an existing document.

        Raises:
            DocumentNotFoundError: If the document does not exist
            WriteConflictError: If expected_version is given and stale
        """
        ...

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document. Deleting a missing document is not an error."""
        ...

    @abstractmethod
    async def query(self, query: Query) -> List[Document]:
        """Run a query.

        Raises:
            IndexNotReadyError: If the query needs an unprovisioned composite index
        """
        ...

    @abstractmethod
    async def commit(self, writes: Sequence[WriteOp]) -> None:
        """Apply a batch of writes atomically."""
        ...

    @abstractmethod
    async def provision_index(
        self,
        collection: str,
        fields: Sequence[str],
        order_field: Optional[str] = None,
    ) -> IndexSpec:
        """Provision a composite index."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether connect() has been called."""
        ...


def create_document_store(config: "StoreConfig") -> DocumentStore:
    """Factory function to create a document store from configuration.

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StoreBackend
    from .memory import InMemoryDocumentStore
    from .sqlite import SqliteDocumentStore

    if config.backend == StoreBackend.MEMORY:
        return InMemoryDocumentStore(
            require_composite_indexes=config.require_composite_indexes,
        )
    elif config.backend == StoreBackend.SQLITE:
        return SqliteDocumentStore(
            config.sqlite_path,
            require_composite_indexes=config.require_composite_indexes,
            busy_timeout_ms=config.busy_timeout_ms,
        )
    else:
        raise ValueError(f"Unsupported store backend: {config.backend}")
