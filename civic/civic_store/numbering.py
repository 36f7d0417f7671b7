"""
Sequential membership numbers.

Numbers look like ``DC-2025-007``: prefix, year, and a per-year sequence
zero-padded to three digits (wider sequences are printed in full).

Two allocation paths:
    - ``next_membership_number`` scans every application for the highest
      sequence of the year and returns max + 1. It does not reserve anything,
      so two callers working from the same scan get the same number.
    - ``reserve`` increments a per-year counter document under a version
      check. The counter is seeded from the scan the first time a year is
      used, so it continues wherever manually entered numbers left off.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from .errors import DocumentNotFoundError, WriteConflictError
from .models import MembershipApplication
from .repository import Repositories

logger = logging.getLogger(__name__)

COUNTER_NAME = "membershipNumbers"


def counter_id(year: int) -> str:
    return f"{COUNTER_NAME}_{year}"


class MembershipNumberAllocator:
    """Allocates ``<prefix>-<year>-<seq>`` membership numbers.

    Example:
        >>> allocator = MembershipNumberAllocator(repos)
        >>> await allocator.next_membership_number(2025)
        'DC-2025-004'
    """

    def __init__(
        self,
        repos: Repositories,
        prefix: str = "DC",
        max_retries: int = 5,
    ) -> None:
        self.repos = repos
        self.prefix = prefix
        self.max_retries = max_retries

    def format_number(self, year: int, seq: int) -> str:
        return f"{self.prefix}-{year}-{seq:03d}"

    def parse_sequence(self, number: Optional[str], year: int) -> Optional[int]:
        """Sequence part of a number issued for ``year``, else None."""
        if not number:
            return None
        match = re.fullmatch(rf"{re.escape(self.prefix)}-{year}-(\d+)", number.strip())
        return int(match.group(1)) if match else None

    def current_year(self) -> int:
        return self.repos.clock().year

    async def highest_sequence(self, year: int) -> int:
        """Highest sequence already assigned for ``year`` (0 if none)."""
        applications = await self.repos.membership_applications.list_by()
        highest = 0
        for app in applications:
            seq = self.parse_sequence(app.membership_number, year)
            if seq is not None and seq > highest:
                highest = seq
        return highest

    async def next_membership_number(self, year: Optional[int] = None) -> str:
        """Scan-based next number: highest sequence of the year + 1."""
        year = year or self.current_year()
        return self.format_number(year, await self.highest_sequence(year) + 1)

    async def number_for(
        self,
        application: MembershipApplication,
        year: Optional[int] = None,
        reset: bool = False,
    ) -> str:
        """Number to show for an application.

        An application that already has a number keeps it unless ``reset``.
        """
        if application.membership_number and not reset:
            return application.membership_number
        return await self.next_membership_number(year)

    async def reserve(self, year: Optional[int] = None) -> str:
        """Atomically take the next number of the year from its counter.

        Raises:
            WriteConflictError: If the counter keeps changing under us
        """
        year = year or self.current_year()
        counters = self.repos.counters
        cid = counter_id(year)

        attempt = 0
        while True:
            doc = await counters.get_document(cid)
            try:
                if doc is None:
                    seq = await self.highest_sequence(year) + 1
                    await counters.create(
                        {"name": COUNTER_NAME, "year": year, "value": seq},
                        doc_id=cid,
                        exclusive=True,
                    )
                else:
                    seq = int(doc.data.get("value", 0)) + 1
                    await counters.update(cid, {"value": seq}, expected_version=doc.version)
            except WriteConflictError:
                attempt += 1
                if attempt > self.max_retries:
                    raise
                logger.debug(
                    "Membership number counter changed, retrying",
                    extra={"counter": cid, "attempt": attempt},
                )
                continue

            number = self.format_number(year, seq)
            logger.info("Membership number reserved", extra={"number": number})
            return number

    async def assign(self, application_id: str, year: Optional[int] = None) -> str:
        """Give an application a reserved number, keeping any it already has.

        Raises:
            DocumentNotFoundError: If the application does not exist
        """
        repo = self.repos.membership_applications
        application = await repo.get(application_id)
        if application is None:
            raise DocumentNotFoundError(repo.name, application_id)
        if application.membership_number:
            return application.membership_number

        number = await self.reserve(year)
        await repo.update(application_id, {"membershipNumber": number})
        return number
