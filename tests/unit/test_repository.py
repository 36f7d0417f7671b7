"""
Unit tests for the entity repository.

Tests cover:
- Create stores the generated id as key and field
- Sanitization and validation before writes
- Partial updates and optimistic versions
- Upsert under a caller-chosen id
- Listing through the tiered executor
- Error wrapping
"""

import pytest

from civic.civic_store.errors import (
    DocumentNotFoundError,
    StoreUnavailableError,
    ValidationError,
    WriteConflictError,
    WriteFailureError,
)
from civic.civic_store.models import ReferralStatus
from civic.civic_store.repository import Repositories
from civic.civic_store.schema import UNSET
from civic.civic_store.store import FieldFilter, OrderBy


class TestEntityRepository:
    """Tests for EntityRepository."""

    @pytest.mark.asyncio
    async def test_create_sets_id_and_timestamps(self, repos, store, clock):
        ref_id = await repos.referrals.create({"referrerId": "u1", "referralCode": "ABC"})

        doc = await store.get("referrals", ref_id)
        assert len(ref_id) == 20
        assert doc.data["id"] == ref_id
        assert doc.data["createdAt"] == clock.now
        assert doc.data["updatedAt"] == clock.now
        assert doc.data["status"] == "invited"

    @pytest.mark.asyncio
    async def test_get_decodes_entity(self, repos):
        ref_id = await repos.referrals.create({"referrerId": "u1", "referralCode": "ABC"})

        referral = await repos.referrals.get(ref_id)

        assert referral.id == ref_id
        assert referral.referrer_id == "u1"
        assert referral.status == ReferralStatus.INVITED

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, repos):
        assert await repos.referrals.get("missing") is None

    @pytest.mark.asyncio
    async def test_create_validates(self, repos, store):
        with pytest.raises(ValidationError) as exc_info:
            await repos.referrals.create({"referrerId": "u1"})

        assert any("referralCode" in e for e in exc_info.value.errors)
        assert store.document_count("referrals") == 0

    @pytest.mark.asyncio
    async def test_update_sanitizes(self, repos, store):
        ref_id = await repos.referrals.create(
            {"referrerId": "u1", "referralCode": "ABC", "referredEmail": "a@b.com"}
        )

        await repos.referrals.update(ref_id, {"referredEmail": "", "referredUserId": UNSET})

        data = (await store.get("referrals", ref_id)).data
        assert data["referredEmail"] is None
        assert "referredUserId" not in data

    @pytest.mark.asyncio
    async def test_update_bumps_updated_at(self, repos, store, clock):
        ref_id = await repos.referrals.create({"referrerId": "u1", "referralCode": "ABC"})
        clock.advance(minutes=5)

        await repos.referrals.update(ref_id, {"status": "signed_up"})

        data = (await store.get("referrals", ref_id)).data
        assert data["updatedAt"] == clock.now
        assert data["createdAt"] < data["updatedAt"]

    @pytest.mark.asyncio
    async def test_update_rejects_bad_enum(self, repos):
        ref_id = await repos.referrals.create({"referrerId": "u1", "referralCode": "ABC"})

        with pytest.raises(ValidationError):
            await repos.referrals.update(ref_id, {"status": "converted"})

    @pytest.mark.asyncio
    async def test_update_missing(self, repos):
        with pytest.raises(DocumentNotFoundError):
            await repos.referrals.update("missing", {"status": "applied"})

    @pytest.mark.asyncio
    async def test_update_with_stale_version(self, repos):
        ref_id = await repos.referrals.create({"referrerId": "u1", "referralCode": "ABC"})
        await repos.referrals.update(ref_id, {"status": "signed_up"})

        with pytest.raises(WriteConflictError):
            await repos.referrals.update(ref_id, {"status": "applied"}, expected_version=1)

    @pytest.mark.asyncio
    async def test_exclusive_create(self, repos):
        await repos.counters.create({"name": "n", "value": 1}, doc_id="c1", exclusive=True)

        with pytest.raises(WriteConflictError):
            await repos.counters.create({"name": "n", "value": 2}, doc_id="c1", exclusive=True)

    @pytest.mark.asyncio
    async def test_upsert_merges(self, repos, store, clock):
        await repos.email_drafts.upsert(
            "volunteer_v1", {"context": "volunteer", "targetId": "v1", "subject": "Hi"}
        )
        created_at = (await store.get("emailDrafts", "volunteer_v1")).data["createdAt"]
        clock.advance(hours=1)

        await repos.email_drafts.upsert("volunteer_v1", {"body": "Welcome"})

        data = (await store.get("emailDrafts", "volunteer_v1")).data
        assert data["subject"] == "Hi"
        assert data["body"] == "Welcome"
        assert data["createdAt"] == created_at
        assert data["updatedAt"] == clock.now

    @pytest.mark.asyncio
    async def test_list_by_falls_back_without_index(self, repos, clock):
        for code in ("A", "B", "C"):
            await repos.referrals.create({"referrerId": "u1", "referralCode": code})
            clock.advance(minutes=1)
        await repos.referrals.create({"referrerId": "u2", "referralCode": "D"})

        referrals = await repos.referrals.list_by(
            [FieldFilter.where("referrerId", "==", "u1")],
            order_by=OrderBy("createdAt"),
        )

        assert [r.referral_code for r in referrals] == ["C", "B", "A"]

    @pytest.mark.asyncio
    async def test_list_by_unindexed_filters_use_full_scan(self, repos, store):
        """Equality plus inequality on another field needs an index; listing still works."""
        first = await repos.referrals.create({"referrerId": "u1", "referralCode": "C"})
        paid = await repos.referrals.create({"referrerId": "u2", "referralCode": "C"})
        await repos.referrals.update(paid, {"status": "paid"})
        await repos.referrals.create({"referrerId": "u3", "referralCode": "D"})

        referrals = await repos.referrals.list_by(
            [
                FieldFilter.where("referralCode", "==", "C"),
                FieldFilter.where("status", "!=", "paid"),
            ]
        )

        assert [r.id for r in referrals] == [first]
        assert store.query_log[-1].filters == ()

    @pytest.mark.asyncio
    async def test_first_by(self, repos):
        await repos.referrals.create({"referrerId": "u1", "referralCode": "A"})

        found = await repos.referrals.first_by([FieldFilter.where("referralCode", "==", "A")])
        missing = await repos.referrals.first_by([FieldFilter.where("referralCode", "==", "Z")])

        assert found.referral_code == "A"
        assert missing is None

    @pytest.mark.asyncio
    async def test_unknown_errors_are_wrapped(self, repos, store):
        store.inject_failure(OSError("disk full"), op="set")

        with pytest.raises(WriteFailureError) as exc_info:
            await repos.referrals.create({"referrerId": "u1", "referralCode": "A"})

        assert exc_info.value.collection == "referrals"
        assert isinstance(exc_info.value.__cause__, OSError)

    @pytest.mark.asyncio
    async def test_missing_store_is_unavailable(self):
        repos = Repositories(None)
        with pytest.raises(StoreUnavailableError):
            await repos.petitions.get("p1")

    def test_by_collection(self, repos):
        assert repos.by_collection("volunteers") is repos.volunteers
        with pytest.raises(KeyError):
            repos.by_collection("nope")
