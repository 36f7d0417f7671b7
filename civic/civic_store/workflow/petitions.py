"""
Petition publishing.

Publishing a petition announces it to every user. Creating a petition that
is published straight away counts as publishing it.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..errors import PetitionNotFoundError
from ..models import Petition
from ..notify import AUDIENCE_ALL, NotificationSink, notify_best_effort
from ..repository import Repositories

logger = logging.getLogger(__name__)

PETITIONS_LINK = "/petitions"


class PetitionWorkflow:
    def __init__(
        self,
        repos: Repositories,
        notifications: Optional[NotificationSink] = None,
    ) -> None:
        self.repos = repos
        self.notifications = notifications

    async def create_petition(
        self,
        fields: dict[str, Any],
        created_by: Optional[str] = None,
    ) -> str:
        """Create a petition with an empty ledger."""
        payload = dict(fields)
        payload.update({"createdBy": created_by, "signatures": [], "currentSignatures": 0})
        petition_id = await self.repos.petitions.create(payload)

        if payload.get("isPublished"):
            await self._announce(payload.get("title", ""))
        return petition_id

    async def publish_petition(self, petition_id: str) -> Petition:
        """Mark a petition published, announcing it if it was not already.

        Raises:
            PetitionNotFoundError: If the petition does not exist
        """
        return await self._set_published(petition_id, True)

    async def unpublish_petition(self, petition_id: str) -> Petition:
        return await self._set_published(petition_id, False)

    async def _set_published(self, petition_id: str, published: bool) -> Petition:
        repo = self.repos.petitions
        petition = await repo.get(petition_id)
        if petition is None:
            raise PetitionNotFoundError(petition_id)
        if petition.is_published == published:
            return petition

        doc = await repo.update(petition_id, {"isPublished": published})
        logger.info(
            "Petition publish state changed",
            extra={"petition_id": petition_id, "published": published},
        )
        if published:
            await self._announce(petition.title)
        return repo.decode(doc)

    async def _announce(self, title: str) -> None:
        await notify_best_effort(
            self.notifications,
            "new_petition",
            "New Petition Published",
            title,
            link=PETITIONS_LINK,
            audience=AUDIENCE_ALL,
        )
