"""
Unit tests for the in-memory document store.

Tests cover:
- Connection lifecycle
- Get/set/update/delete and versions
- Exclusive create
- Atomic batch commits
- Composite-index emulation
- Testing helpers (deny, inject_failure)
"""

import asyncio

import pytest

from civic.civic_store.errors import (
    DocumentNotFoundError,
    IndexNotReadyError,
    PermissionDeniedError,
    StoreUnavailableError,
    WriteConflictError,
)
from civic.civic_store.store import (
    FieldFilter,
    InMemoryDocumentStore,
    OrderBy,
    Query,
    WriteOp,
)


class TestInMemoryDocumentStore:
    """Tests for InMemoryDocumentStore."""

    @pytest.fixture
    def mem(self):
        """Create a fresh, unconnected store."""
        return InMemoryDocumentStore()

    @pytest.mark.asyncio
    async def test_connect_disconnect(self, mem):
        """Test connection lifecycle."""
        assert not mem.is_connected

        await mem.connect()
        assert mem.is_connected

        await mem.close()
        assert not mem.is_connected

    @pytest.mark.asyncio
    async def test_operations_require_connection(self, mem):
        """Calls before connect() fail with StoreUnavailableError."""
        with pytest.raises(StoreUnavailableError):
            await mem.get("petitions", "p1")

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, mem):
        await mem.connect()
        assert await mem.get("petitions", "missing") is None

    @pytest.mark.asyncio
    async def test_set_and_get(self, mem):
        await mem.connect()

        await mem.set("petitions", "p1", {"title": "Clean water", "goal": 100})
        doc = await mem.get("petitions", "p1")

        assert doc.id == "p1"
        assert doc.data == {"title": "Clean water", "goal": 100}
        assert doc.version == 1

    @pytest.mark.asyncio
    async def test_reads_are_copies(self, mem):
        """Mutating a read document does not change the store."""
        await mem.connect()
        await mem.set("petitions", "p1", {"signatures": []})

        doc = await mem.get("petitions", "p1")
        doc.data["signatures"].append({"name": "x"})

        again = await mem.get("petitions", "p1")
        assert again.data["signatures"] == []

    @pytest.mark.asyncio
    async def test_merge_set_keeps_other_fields(self, mem):
        await mem.connect()
        await mem.set("emailDrafts", "d1", {"subject": "a", "body": "b"})

        await mem.set("emailDrafts", "d1", {"subject": "c"}, merge=True)

        doc = await mem.get("emailDrafts", "d1")
        assert doc.data == {"subject": "c", "body": "b"}
        assert doc.version == 2

    @pytest.mark.asyncio
    async def test_update_bumps_version(self, mem):
        await mem.connect()
        await mem.set("referrals", "r1", {"status": "invited"})

        doc = await mem.update("referrals", "r1", {"status": "signed_up"})

        assert doc.version == 2
        assert doc.data["status"] == "signed_up"

    @pytest.mark.asyncio
    async def test_update_missing_raises(self, mem):
        await mem.connect()
        with pytest.raises(DocumentNotFoundError):
            await mem.update("referrals", "nope", {"status": "applied"})

    @pytest.mark.asyncio
    async def test_update_stale_version_conflicts(self, mem):
        """A stale expected_version is rejected and nothing is written."""
        await mem.connect()
        await mem.set("referrals", "r1", {"status": "invited"})
        await mem.update("referrals", "r1", {"status": "signed_up"})

        with pytest.raises(WriteConflictError) as exc_info:
            await mem.update("referrals", "r1", {"status": "applied"}, expected_version=1)

        assert exc_info.value.details["actual_version"] == 2
        doc = await mem.get("referrals", "r1")
        assert doc.data["status"] == "signed_up"

    @pytest.mark.asyncio
    async def test_create_is_exclusive(self, mem):
        await mem.connect()
        await mem.create("counters", "c1", {"value": 1})

        with pytest.raises(WriteConflictError):
            await mem.create("counters", "c1", {"value": 5})

        doc = await mem.get("counters", "c1")
        assert doc.data["value"] == 1

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, mem):
        await mem.connect()
        await mem.set("emailDrafts", "d1", {"subject": "a"})

        await mem.delete("emailDrafts", "d1")
        await mem.delete("emailDrafts", "d1")

        assert await mem.get("emailDrafts", "d1") is None

    @pytest.mark.asyncio
    async def test_commit_applies_all(self, mem):
        await mem.connect()
        await mem.set("volunteers", "v1", {"name": "A"})
        await mem.set("volunteers", "v2", {"name": "B"})

        await mem.commit(
            [
                WriteOp.update("volunteers", "v1", {"emailedAt": "now"}),
                WriteOp.update("volunteers", "v2", {"emailedAt": "now"}),
            ]
        )

        assert (await mem.get("volunteers", "v1")).data["emailedAt"] == "now"
        assert (await mem.get("volunteers", "v2")).data["emailedAt"] == "now"

    @pytest.mark.asyncio
    async def test_commit_is_all_or_nothing(self, mem):
        """A missing update target aborts the whole batch."""
        await mem.connect()
        await mem.set("volunteers", "v1", {"name": "A"})

        with pytest.raises(DocumentNotFoundError):
            await mem.commit(
                [
                    WriteOp.update("volunteers", "v1", {"emailedAt": "now"}),
                    WriteOp.update("volunteers", "missing", {"emailedAt": "now"}),
                ]
            )

        assert "emailedAt" not in (await mem.get("volunteers", "v1")).data


class TestCompositeIndexes:
    """Tests for index-not-ready emulation."""

    @pytest.fixture
    def mem(self):
        return InMemoryDocumentStore()

    @pytest.mark.asyncio
    async def test_filter_plus_order_needs_index(self, mem):
        await mem.connect()
        query = Query(
            "membershipApplications",
            filters=(FieldFilter.where("userId", "==", "u1"),),
            order_by=OrderBy("createdAt"),
        )

        with pytest.raises(IndexNotReadyError) as exc_info:
            await mem.query(query)

        assert exc_info.value.code == "failed-precondition"

    @pytest.mark.asyncio
    async def test_provisioned_index_serves_query(self, mem):
        await mem.connect()
        await mem.set("membershipApplications", "a1", {"userId": "u1", "createdAt": 1})
        await mem.set("membershipApplications", "a2", {"userId": "u1", "createdAt": 2})
        await mem.provision_index("membershipApplications", ["userId"], "createdAt")

        docs = await mem.query(
            Query(
                "membershipApplications",
                filters=(FieldFilter.where("userId", "==", "u1"),),
                order_by=OrderBy("createdAt"),
            )
        )

        assert [d.id for d in docs] == ["a2", "a1"]

    @pytest.mark.asyncio
    async def test_single_field_queries_need_no_index(self, mem):
        await mem.connect()
        await mem.set("petitions", "p1", {"goal": 10})

        by_order = await mem.query(Query("petitions", order_by=OrderBy("goal")))
        by_range = await mem.query(
            Query("petitions", filters=(FieldFilter.where("goal", ">", 5),))
        )

        assert len(by_order) == 1
        assert len(by_range) == 1

    @pytest.mark.asyncio
    async def test_range_with_other_field_needs_index(self, mem):
        await mem.connect()
        query = Query(
            "petitions",
            filters=(
                FieldFilter.where("goal", ">", 5),
                FieldFilter.where("isActive", "==", True),
            ),
        )
        with pytest.raises(IndexNotReadyError):
            await mem.query(query)

    @pytest.mark.asyncio
    async def test_indexes_can_be_disabled(self):
        mem = InMemoryDocumentStore(require_composite_indexes=False)
        await mem.connect()

        docs = await mem.query(
            Query(
                "referrals",
                filters=(FieldFilter.where("referrerId", "==", "u1"),),
                order_by=OrderBy("createdAt"),
            )
        )
        assert docs == []


class TestTestingHelpers:
    """Tests for deny/inject_failure helpers."""

    @pytest.fixture
    def mem(self):
        return InMemoryDocumentStore()

    @pytest.mark.asyncio
    async def test_deny_raises_permission_denied(self, mem):
        await mem.connect()
        mem.deny("petitions")

        with pytest.raises(PermissionDeniedError):
            await mem.get("petitions", "p1")

        mem.allow("petitions")
        assert await mem.get("petitions", "p1") is None

    @pytest.mark.asyncio
    async def test_injected_failure_fires_once(self, mem):
        await mem.connect()
        mem.inject_failure(RuntimeError("boom"), op="set")

        await mem.get("petitions", "p1")
        with pytest.raises(RuntimeError):
            await mem.set("petitions", "p1", {})
        await mem.set("petitions", "p1", {})

        assert mem.document_count("petitions") == 1

    @pytest.mark.asyncio
    async def test_operations_yield_to_event_loop(self, mem):
        """Concurrent reads interleave, so both see the same version."""
        await mem.connect()
        await mem.set("petitions", "p1", {"n": 0})

        first, second = await asyncio.gather(
            mem.get("petitions", "p1"),
            mem.get("petitions", "p1"),
        )

        assert first.version == second.version == 1
