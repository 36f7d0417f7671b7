"""
Unit tests for the draft cache.

Tests cover:
- Keying by (context, target)
- Overwrite on repeated upserts
- Delete and missing drafts
"""

import pytest

from civic.civic_store.drafts import DraftCache, draft_id
from civic.civic_store.errors import ValidationError
from civic.civic_store.models import DraftContext


class TestDraftCache:
    """Tests for DraftCache."""

    @pytest.fixture
    def drafts(self, repos):
        return DraftCache(repos)

    def test_draft_id(self):
        assert draft_id(DraftContext.VOLUNTEER, "v1") == "volunteer_v1"
        assert draft_id("membership", "a1") == "membership_a1"

    @pytest.mark.asyncio
    async def test_upsert_and_get(self, drafts):
        key = await drafts.upsert_draft(
            "volunteer", "v1", "Welcome", "Hello", recipient_email="v@example.com"
        )

        draft = await drafts.get_draft("volunteer", "v1")
        assert key == "volunteer_v1"
        assert draft.context == DraftContext.VOLUNTEER
        assert draft.target_id == "v1"
        assert draft.subject == "Welcome"
        assert draft.recipient_email == "v@example.com"

    @pytest.mark.asyncio
    async def test_latest_write_wins(self, drafts, store):
        await drafts.upsert_draft("user", "u1", "First", "One", recipient_email="u@example.com")
        await drafts.upsert_draft("user", "u1", "Second", "Two")

        draft = await drafts.get_draft(DraftContext.USER, "u1")
        assert draft.subject == "Second"
        assert draft.body == "Two"
        assert draft.recipient_email == "u@example.com"
        assert store.document_count("emailDrafts") == 1

    @pytest.mark.asyncio
    async def test_contexts_are_separate(self, drafts, store):
        await drafts.upsert_draft("user", "x1", "A", "a")
        await drafts.upsert_draft("contact", "x1", "B", "b")

        assert store.document_count("emailDrafts") == 2
        assert (await drafts.get_draft("contact", "x1")).subject == "B"

    @pytest.mark.asyncio
    async def test_delete(self, drafts):
        await drafts.upsert_draft("membership", "a1", "S", "B")

        await drafts.delete_draft("membership", "a1")

        assert await drafts.get_draft("membership", "a1") is None

    @pytest.mark.asyncio
    async def test_missing_draft(self, drafts):
        assert await drafts.get_draft("membership", "nope") is None

    @pytest.mark.asyncio
    async def test_unknown_context(self, drafts):
        with pytest.raises(ValidationError):
            await drafts.upsert_draft("newsletter", "n1", "S", "B")
