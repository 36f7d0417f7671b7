"""Tiered query execution over the document store."""

from .executor import (
    DEFAULT_TIERS,
    FullScanStrategy,
    IndexedStrategy,
    QueryResult,
    QueryStrategy,
    TieredQueryExecutor,
    UnindexedStrategy,
)

__all__ = [
    "TieredQueryExecutor",
    "QueryResult",
    "QueryStrategy",
    "IndexedStrategy",
    "UnindexedStrategy",
    "FullScanStrategy",
    "DEFAULT_TIERS",
]
