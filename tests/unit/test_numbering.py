"""
Unit tests for membership number allocation.

Tests cover:
- Format and parse
- Scan-based next number
- Counter reservation, seeding and concurrency
- Idempotent assignment
"""

import asyncio

import pytest

from civic.civic_store.errors import DocumentNotFoundError
from civic.civic_store.numbering import MembershipNumberAllocator, counter_id


async def _application(repos, number=None, **fields):
    payload = {"type": "individual", "fullName": "Ada", **fields}
    if number is not None:
        payload["membershipNumber"] = number
    return await repos.membership_applications.create(payload)


class TestFormatting:
    """Tests for number formatting helpers."""

    def test_format_pads_to_three_digits(self, repos):
        allocator = MembershipNumberAllocator(repos)
        assert allocator.format_number(2025, 4) == "DC-2025-004"
        assert allocator.format_number(2025, 1234) == "DC-2025-1234"

    def test_custom_prefix(self, repos):
        allocator = MembershipNumberAllocator(repos, prefix="MB")
        assert allocator.format_number(2026, 1) == "MB-2026-001"

    def test_parse_sequence(self, repos):
        allocator = MembershipNumberAllocator(repos)
        assert allocator.parse_sequence("DC-2025-007", 2025) == 7
        assert allocator.parse_sequence(" DC-2025-1200 ", 2025) == 1200
        assert allocator.parse_sequence("DC-2024-007", 2025) is None
        assert allocator.parse_sequence("XX-2025-007", 2025) is None
        assert allocator.parse_sequence("DC-2025-7a", 2025) is None
        assert allocator.parse_sequence(None, 2025) is None

    def test_counter_id(self):
        assert counter_id(2025) == "membershipNumbers_2025"


class TestNextMembershipNumber:
    """Tests for the scan-based allocator."""

    @pytest.mark.asyncio
    async def test_first_number_of_year(self, repos):
        allocator = MembershipNumberAllocator(repos)
        assert await allocator.next_membership_number(2025) == "DC-2025-001"

    @pytest.mark.asyncio
    async def test_continues_after_highest(self, repos):
        await _application(repos, "DC-2025-001")
        await _application(repos, "DC-2025-003")
        await _application(repos, "DC-2024-050")
        await _application(repos)
        allocator = MembershipNumberAllocator(repos)

        assert await allocator.next_membership_number(2025) == "DC-2025-004"

    @pytest.mark.asyncio
    async def test_defaults_to_clock_year(self, repos, clock):
        allocator = MembershipNumberAllocator(repos)
        number = await allocator.next_membership_number()
        assert number == f"DC-{clock.now.year}-001"

    @pytest.mark.asyncio
    async def test_scan_does_not_reserve(self, repos):
        allocator = MembershipNumberAllocator(repos)

        first, second = await asyncio.gather(
            allocator.next_membership_number(2025),
            allocator.next_membership_number(2025),
        )

        assert first == second == "DC-2025-001"

    @pytest.mark.asyncio
    async def test_number_for_keeps_existing(self, repos):
        app_id = await _application(repos, "DC-2025-002")
        allocator = MembershipNumberAllocator(repos)
        application = await repos.membership_applications.get(app_id)

        assert await allocator.number_for(application, 2025) == "DC-2025-002"
        assert await allocator.number_for(application, 2025) == "DC-2025-002"
        assert await allocator.number_for(application, 2025, reset=True) == "DC-2025-003"


class TestReserve:
    """Tests for counter-backed reservation."""

    @pytest.mark.asyncio
    async def test_sequential_reservations(self, repos):
        allocator = MembershipNumberAllocator(repos)

        numbers = [await allocator.reserve(2025) for _ in range(3)]

        assert numbers == ["DC-2025-001", "DC-2025-002", "DC-2025-003"]

    @pytest.mark.asyncio
    async def test_counter_seeded_from_existing_numbers(self, repos, store):
        await _application(repos, "DC-2025-010")
        allocator = MembershipNumberAllocator(repos)

        assert await allocator.reserve(2025) == "DC-2025-011"
        doc = await store.get("counters", counter_id(2025))
        assert doc.data["value"] == 11
        assert doc.data["year"] == 2025

    @pytest.mark.asyncio
    async def test_years_are_independent(self, repos):
        allocator = MembershipNumberAllocator(repos)
        await allocator.reserve(2025)

        assert await allocator.reserve(2026) == "DC-2026-001"

    @pytest.mark.asyncio
    async def test_concurrent_reservations_are_unique(self, repos):
        allocator = MembershipNumberAllocator(repos, max_retries=10)

        numbers = await asyncio.gather(*(allocator.reserve(2025) for _ in range(4)))

        assert sorted(numbers) == [
            "DC-2025-001",
            "DC-2025-002",
            "DC-2025-003",
            "DC-2025-004",
        ]


class TestAssign:
    """Tests for MembershipNumberAllocator.assign."""

    @pytest.mark.asyncio
    async def test_assign_is_idempotent(self, repos):
        app_id = await _application(repos)
        allocator = MembershipNumberAllocator(repos)

        first = await allocator.assign(app_id, 2025)
        second = await allocator.assign(app_id, 2025)

        assert first == second == "DC-2025-001"
        application = await repos.membership_applications.get(app_id)
        assert application.membership_number == "DC-2025-001"

    @pytest.mark.asyncio
    async def test_assign_missing(self, repos):
        with pytest.raises(DocumentNotFoundError):
            await MembershipNumberAllocator(repos).assign("nope")
