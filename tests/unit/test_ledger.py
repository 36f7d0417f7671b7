"""
Unit tests for the petition signature ledger.

Tests cover:
- Signing appends and counts
- Email and userId dedup
- Closed and expired petitions
- Input validation
- Concurrent signers (optimistic vs blind writes)
- Public signature view
"""

import asyncio
from datetime import timedelta

import pytest

from civic.civic_store.errors import (
    DuplicateEmailError,
    DuplicateSignatureError,
    PetitionClosedError,
    PetitionNotFoundError,
    ValidationError,
    WriteConflictError,
)
from civic.civic_store.ledger import PetitionLedger, SignatureRequest, normalize_email


async def _petition(repos, **fields):
    payload = {"title": "Safer crossings", "goal": 100, **fields}
    return await repos.petitions.create(payload)


class TestPetitionLedger:
    """Tests for PetitionLedger.sign."""

    @pytest.fixture
    def ledger(self, repos):
        return PetitionLedger(repos)

    @pytest.mark.asyncio
    async def test_sign_appends_signature(self, ledger, repos, clock):
        pid = await _petition(repos)

        count = await ledger.sign(pid, SignatureRequest(name="  Ada ", email=" ada@example.com "))

        petition = await repos.petitions.get(pid)
        assert count == 1
        assert petition.current_signatures == 1
        assert petition.signatures[0].name == "Ada"
        assert petition.signatures[0].email == "ada@example.com"
        assert petition.signatures[0].signed_at == clock.now

    @pytest.mark.asyncio
    async def test_duplicate_email_rejected(self, ledger, repos):
        pid = await _petition(repos)
        await ledger.sign(pid, SignatureRequest(name="A", email="a@b.com"))

        with pytest.raises(DuplicateSignatureError) as exc_info:
            await ledger.sign(pid, SignatureRequest(name="B", email="a@b.com"))

        assert exc_info.value.field_name == "email"
        petition = await repos.petitions.get(pid)
        assert petition.current_signatures == 1

    @pytest.mark.asyncio
    async def test_duplicate_email_is_case_insensitive(self, ledger, repos):
        pid = await _petition(repos)
        await ledger.sign(pid, SignatureRequest(name="A", email="Ada@Example.com"))

        with pytest.raises(DuplicateEmailError):
            await ledger.sign(pid, SignatureRequest(name="A", email=" ada@example.COM"))

    @pytest.mark.asyncio
    async def test_duplicate_user_rejected(self, ledger, repos):
        pid = await _petition(repos)
        await ledger.sign(pid, SignatureRequest(name="A", email="a@b.com", user_id="u1"))

        with pytest.raises(DuplicateSignatureError) as exc_info:
            await ledger.sign(pid, SignatureRequest(name="A", email="other@b.com", user_id="u1"))

        assert exc_info.value.field_name == "userId"

    @pytest.mark.asyncio
    async def test_anonymous_signers_without_user_id_coexist(self, ledger, repos):
        pid = await _petition(repos)

        await ledger.sign(pid, SignatureRequest(name="A", email="a@b.com"))
        count = await ledger.sign(pid, SignatureRequest(name="B", email="b@b.com"))

        assert count == 2

    @pytest.mark.asyncio
    async def test_inactive_petition(self, ledger, repos):
        pid = await _petition(repos, isActive=False)

        with pytest.raises(PetitionClosedError) as exc_info:
            await ledger.sign(pid, SignatureRequest(name="A", email="a@b.com"))

        assert exc_info.value.reason == "inactive"

    @pytest.mark.asyncio
    async def test_expired_petition(self, ledger, repos, clock):
        pid = await _petition(repos, expiresAt=clock.now - timedelta(days=1))

        with pytest.raises(PetitionClosedError) as exc_info:
            await ledger.sign(pid, SignatureRequest(name="A", email="a@b.com"))

        assert exc_info.value.reason == "expired"

    @pytest.mark.asyncio
    async def test_future_expiry_accepts(self, ledger, repos, clock):
        pid = await _petition(repos, expiresAt=clock.now + timedelta(days=1))
        assert await ledger.sign(pid, SignatureRequest(name="A", email="a@b.com")) == 1

    @pytest.mark.asyncio
    async def test_missing_petition(self, ledger):
        with pytest.raises(PetitionNotFoundError):
            await ledger.sign("nope", SignatureRequest(name="A", email="a@b.com"))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name,email", [("", "a@b.com"), ("A", "   ")])
    async def test_blank_input_rejected(self, ledger, repos, name, email):
        pid = await _petition(repos)
        with pytest.raises(ValidationError):
            await ledger.sign(pid, SignatureRequest(name=name, email=email))

    @pytest.mark.asyncio
    async def test_count_matches_ledger_length(self, ledger, repos):
        pid = await _petition(repos)
        for i in range(5):
            await ledger.sign(pid, SignatureRequest(name=f"S{i}", email=f"s{i}@example.com"))

        petition = await repos.petitions.get(pid)
        assert petition.current_signatures == len(petition.signatures) == 5

    @pytest.mark.asyncio
    async def test_stored_signature_without_email(self, ledger, repos):
        pid = await _petition(
            repos,
            signatures=[{"name": "Legacy", "email": None, "anonymous": False}],
            currentSignatures=1,
        )

        count = await ledger.sign(pid, SignatureRequest(name="Ada", email="ada@example.com"))

        petition = await repos.petitions.get(pid)
        assert count == 2
        assert petition.signatures[0].email == ""
        assert petition.signatures[1].email == "ada@example.com"


class TestConcurrentSigning:
    """Two signers racing on the same petition."""

    @pytest.mark.asyncio
    async def test_optimistic_keeps_both_signatures(self, repos):
        ledger = PetitionLedger(repos, optimistic=True)
        pid = await _petition(repos)

        await asyncio.gather(
            ledger.sign(pid, SignatureRequest(name="A", email="a@example.com")),
            ledger.sign(pid, SignatureRequest(name="B", email="b@example.com")),
        )

        petition = await repos.petitions.get(pid)
        assert petition.current_signatures == 2
        assert {s.email for s in petition.signatures} == {"a@example.com", "b@example.com"}

    @pytest.mark.asyncio
    async def test_optimistic_retry_rechecks_duplicates(self, repos):
        ledger = PetitionLedger(repos, optimistic=True)
        pid = await _petition(repos)

        results = await asyncio.gather(
            ledger.sign(pid, SignatureRequest(name="A", email="same@example.com")),
            ledger.sign(pid, SignatureRequest(name="B", email="SAME@example.com")),
            return_exceptions=True,
        )

        assert results[0] == 1
        assert isinstance(results[1], DuplicateEmailError)

    @pytest.mark.asyncio
    async def test_blind_writes_lose_a_signature(self, repos):
        ledger = PetitionLedger(repos, optimistic=False)
        pid = await _petition(repos)

        await asyncio.gather(
            ledger.sign(pid, SignatureRequest(name="A", email="a@example.com")),
            ledger.sign(pid, SignatureRequest(name="B", email="b@example.com")),
        )

        petition = await repos.petitions.get(pid)
        assert len(petition.signatures) == 1
        assert petition.current_signatures == 1

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, repos, store):
        ledger = PetitionLedger(repos, max_retries=1)
        pid = await _petition(repos)
        store.inject_failure(WriteConflictError("petitions", pid, 1, 2), op="update")
        store.inject_failure(WriteConflictError("petitions", pid, 1, 2), op="update")

        with pytest.raises(WriteConflictError):
            await ledger.sign(pid, SignatureRequest(name="A", email="a@example.com"))

        assert (await repos.petitions.get(pid)).current_signatures == 0


class TestPublicSignatures:
    """Tests for PetitionLedger.signatures_for."""

    @pytest.mark.asyncio
    async def test_anonymous_names_masked(self, repos):
        ledger = PetitionLedger(repos)
        pid = await _petition(repos)
        await ledger.sign(pid, SignatureRequest(name="Ada", email="a@b.com", user_id="u1"))
        await ledger.sign(pid, SignatureRequest(name="Bob", email="b@b.com", anonymous=True))

        shown = await ledger.signatures_for(pid)

        assert [s.name for s in shown] == ["Ada", "Anonymous"]
        assert all(s.email == "" and s.user_id is None for s in shown)

    @pytest.mark.asyncio
    async def test_missing_petition(self, repos):
        with pytest.raises(PetitionNotFoundError):
            await PetitionLedger(repos).signatures_for("nope")


def test_normalize_email():
    assert normalize_email("  Ada@Example.COM ") == "ada@example.com"
