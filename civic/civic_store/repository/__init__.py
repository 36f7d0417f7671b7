"""
Entity repositories for every collection.

Repositories share one store and one tiered query executor.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Optional

from ..models import (
    EmailDraft,
    EmailLog,
    MembershipApplication,
    Notification,
    Petition,
    Referral,
    VolunteerApplication,
)
from ..query.executor import TieredQueryExecutor
from ..schema import (
    Counters,
    EmailDrafts,
    EmailLogs,
    MembershipApplications,
    Notifications,
    Petitions,
    Referrals,
    Volunteers,
)
from ..store.base import DocumentStore
from .base import EntityRepository, new_document_id, utcnow


def _identity(data: dict) -> dict:
    return data


class Repositories:
    """One repository per collection, wired to a shared store.

    Example:
        >>> repos = Repositories(store)
        >>> petition = await repos.petitions.get("p1")
    """

    def __init__(
        self,
        store: Optional[DocumentStore],
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.clock = clock
        self.executor = TieredQueryExecutor(store) if store is not None else None

        def repo(collection, decode):
            return EntityRepository(store, collection, decode, executor=self.executor, clock=clock)

        self.petitions: EntityRepository[Petition] = repo(Petitions, Petition.from_dict)
        self.membership_applications: EntityRepository[MembershipApplication] = repo(
            MembershipApplications, MembershipApplication.from_dict
        )
        self.volunteers: EntityRepository[VolunteerApplication] = repo(
            Volunteers, VolunteerApplication.from_dict
        )
        self.referrals: EntityRepository[Referral] = repo(Referrals, Referral.from_dict)
        self.email_drafts: EntityRepository[EmailDraft] = repo(EmailDrafts, EmailDraft.from_dict)
        self.email_logs: EntityRepository[EmailLog] = repo(EmailLogs, EmailLog.from_dict)
        self.notifications: EntityRepository[Notification] = repo(
            Notifications, Notification.from_dict
        )
        self.counters: EntityRepository[dict] = repo(Counters, _identity)

    def by_collection(self, name: str) -> EntityRepository:
        """Look up a repository by its collection name."""
        for repo in (
            self.petitions,
            self.membership_applications,
            self.volunteers,
            self.referrals,
            self.email_drafts,
            self.email_logs,
            self.notifications,
            self.counters,
        ):
            if repo.name == name:
                return repo
        raise KeyError(f"No repository for collection '{name}'")


__all__ = ["EntityRepository", "Repositories", "new_document_id", "utcnow"]
