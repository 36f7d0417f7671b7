"""
Document store abstraction for the civic data layer.

This module provides a pluggable backend interface supporting:
- SQLite (single-node deployments)
- In-memory (tests and local development)

Both backends emulate the hosted store's contract: per-document atomic
writes, atomic batch commits, per-document versions for optimistic
concurrency, and queries that fail with IndexNotReadyError until their
composite index exists.
"""

from .base import (
    Document,
    DocumentStore,
    FieldFilter,
    FilterOp,
    IndexSpec,
    OrderBy,
    Query,
    WriteKind,
    WriteOp,
    create_document_store,
    matches_filters,
    run_query,
    sort_documents,
)
from .memory import InMemoryDocumentStore
from .sqlite import SqliteDocumentStore

__all__ = [
    # Protocol and types
    "DocumentStore",
    "Document",
    "FieldFilter",
    "FilterOp",
    "IndexSpec",
    "OrderBy",
    "Query",
    "WriteKind",
    "WriteOp",
    # Helpers
    "matches_filters",
    "run_query",
    "sort_documents",
    # Factory
    "create_document_store",
    # Implementations
    "InMemoryDocumentStore",
    "SqliteDocumentStore",
]
