"""
Service container.

Wires one document store to every component of the data layer so the HTTP
API and the process entry point share a single object graph.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Optional

from .batch import BatchMutationExecutor, BulkSender
from .config import ServiceConfig
from .drafts import DraftCache
from .ledger import PetitionLedger
from .notify import EmailLogWriter, EmailSender, HttpEmailSender, StoreNotificationSink
from .numbering import MembershipNumberAllocator
from .repository import Repositories, utcnow
from .store.base import DocumentStore, create_document_store
from .workflow import ApplicationWorkflow, PetitionWorkflow, ReferralWorkflow

logger = logging.getLogger(__name__)


class CivicServices:
    """Every data-layer component, built over one store.

    Example:
        >>> services = CivicServices(InMemoryDocumentStore())
        >>> await services.start()
        >>> await services.ledger.sign("p1", request)
    """

    def __init__(
        self,
        store: DocumentStore,
        config: Optional[ServiceConfig] = None,
        email_sender: Optional[EmailSender] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config or ServiceConfig()
        self.store = store

        self.repos = Repositories(store, clock=clock)
        self.ledger = PetitionLedger(
            self.repos,
            optimistic=self.config.ledger.optimistic,
            max_retries=self.config.ledger.max_retries,
        )
        self.allocator = MembershipNumberAllocator(
            self.repos,
            prefix=self.config.ledger.number_prefix,
            max_retries=self.config.ledger.max_retries,
        )
        self.notifications = StoreNotificationSink(self.repos.notifications)
        self.referrals = ReferralWorkflow(self.repos)
        self.applications = ApplicationWorkflow(
            self.repos,
            self.allocator,
            notifications=self.notifications,
            referrals=self.referrals,
        )
        self.petitions = PetitionWorkflow(self.repos, notifications=self.notifications)
        self.drafts = DraftCache(self.repos)
        self.batch = BatchMutationExecutor(store, clock=clock)
        self.email_sender = email_sender or HttpEmailSender(self.config.email)
        self.bulk = BulkSender(
            self.email_sender,
            self.batch,
            email_log=EmailLogWriter(self.repos.email_logs),
            drafts=self.drafts,
        )

    @classmethod
    def from_config(cls, config: ServiceConfig) -> CivicServices:
        return cls(create_document_store(config.store), config=config)

    async def start(self) -> None:
        if not self.store.is_connected:
            await self.store.connect()
        logger.info("Civic services started")

    async def stop(self) -> None:
        await self.store.close()
        logger.info("Civic services stopped")
