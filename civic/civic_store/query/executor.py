"""
Tiered query executor.

Runs a read against a store whose composite indexes are provisioned
asynchronously. Each tier is a strategy object; the executor tries them in
order and only moves on when the store reports IndexNotReadyError.

Tiers:
    1. IndexedStrategy   - filters + server-side ordering + limit
    2. UnindexedStrategy - filters only; sort and limit client-side
    3. FullScanStrategy  - whole collection; filter, sort and limit client-side
                           (serves filter combinations that themselves lack an
                           index)

Invariants:
    - Every tier returns the same logical result set, ordered by the
      requested field, whichever tier served it
    - Only IndexNotReadyError advances to the next tier; any other error
      propagates from the tier that raised it
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional, Protocol, Sequence

from ..errors import IndexNotReadyError
from ..store.base import (
    Document,
    DocumentStore,
    FieldFilter,
    OrderBy,
    Query,
    run_query,
)

logger = logging.getLogger(__name__)


class QueryStrategy(Protocol):
    """One rung of the fallback ladder."""

    name: str

    async def execute(self, store: DocumentStore, query: Query) -> list[Document]:
        ...


class IndexedStrategy:
    """Tier 1: let the store filter, order and limit."""

    name = "indexed"

    async def execute(self, store: DocumentStore, query: Query) -> list[Document]:
        return await store.query(query)


class UnindexedStrategy:
    """Tier 2: drop the server-side ordering and sort locally.

    The limit is applied after sorting; limiting an unordered result first
    would return an arbitrary subset.
    """

    name = "unindexed"

    async def execute(self, store: DocumentStore, query: Query) -> list[Document]:
        docs = await store.query(replace(query, order_by=None, limit=None))
        return run_query(docs, replace(query, filters=()))


class FullScanStrategy:
    """Tier 3: read the whole collection and evaluate the query locally."""

    name = "full_scan"

    async def execute(self, store: DocumentStore, query: Query) -> list[Document]:
        docs = await store.query(Query(collection=query.collection))
        return run_query(docs, query)


DEFAULT_TIERS: tuple[QueryStrategy, ...] = (
    IndexedStrategy(),
    UnindexedStrategy(),
    FullScanStrategy(),
)


@dataclass
class QueryResult:
    """Documents plus the name of the tier that produced them."""

    documents: list[Document]
    tier: str


class TieredQueryExecutor:
    """Runs queries through an ordered list of strategies.

    Example:
        >>> executor = TieredQueryExecutor(store)
        >>> docs = await executor.fetch(
        ...     "membershipApplications",
        ...     filters=[FieldFilter.where("userId", "==", "u1")],
        ...     order_by=OrderBy("createdAt"),
        ... )
    """

    def __init__(
        self,
        store: DocumentStore,
        tiers: Sequence[QueryStrategy] = DEFAULT_TIERS,
    ) -> None:
        if not tiers:
            raise ValueError("At least one query tier is required")
        self.store = store
        self.tiers = tuple(tiers)

    async def execute(self, query: Query) -> QueryResult:
        """Run a query, falling through tiers on IndexNotReadyError.

        Args:
            query: The query to run

        Returns:
            QueryResult with the documents and the serving tier

        Raises:
            IndexNotReadyError: If every configured tier needed a missing
                index (only possible with a custom ladder)
        """
        last_error: Optional[IndexNotReadyError] = None

        for strategy in self.tiers:
            try:
                docs = await strategy.execute(self.store, query)
            except IndexNotReadyError as e:
                logger.warning(
                    "Composite index not ready, falling back",
                    extra={
                        "collection": query.collection,
                        "tier": strategy.name,
                        "error": e.message,
                    },
                )
                last_error = e
                continue

            logger.debug(
                "Query served",
                extra={"collection": query.collection, "tier": strategy.name, "count": len(docs)},
            )
            return QueryResult(documents=docs, tier=strategy.name)

        assert last_error is not None
        raise last_error

    async def fetch(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[Document]:
        """Convenience wrapper returning only the documents."""
        query = Query(
            collection=collection,
            filters=tuple(filters),
            order_by=order_by,
            limit=limit,
        )
        result = await self.execute(query)
        return result.documents
