"""
Draft cache for messages being composed.

A draft is keyed by ``<context>_<target_id>`` so there is at most one per
(context, target). Every edit is a merge-write under that key; the draft is
deleted once its message has been sent.
"""

from __future__ import annotations

import logging
from typing import Optional

from .models import DraftContext, EmailDraft
from .repository import Repositories
from .workflow.states import coerce_state

logger = logging.getLogger(__name__)


def draft_id(context: DraftContext | str, target_id: str) -> str:
    value = context.value if isinstance(context, DraftContext) else context
    return f"{value}_{target_id}"


class DraftCache:
    """Upsert/get/delete of unsent message drafts.

    Example:
        >>> drafts = DraftCache(repos)
        >>> await drafts.upsert_draft("volunteer", "v1", "Welcome", "Hello ...")
        >>> draft = await drafts.get_draft("volunteer", "v1")
    """

    def __init__(self, repos: Repositories) -> None:
        self.repos = repos

    async def upsert_draft(
        self,
        context: DraftContext | str,
        target_id: str,
        subject: str,
        body: str,
        recipient_email: Optional[str] = None,
        recipient_name: Optional[str] = None,
    ) -> str:
        """Create or overwrite the draft for (context, target_id).

        Returns:
            The draft id
        """
        ctx = coerce_state(DraftContext, context, "context")
        key = draft_id(ctx, target_id)
        fields = {
            "context": ctx.value,
            "targetId": target_id,
            "subject": subject,
            "body": body,
        }
        if recipient_email is not None:
            fields["recipientEmail"] = recipient_email
        if recipient_name is not None:
            fields["recipientName"] = recipient_name

        await self.repos.email_drafts.upsert(key, fields)
        logger.debug("Draft saved", extra={"draft_id": key})
        return key

    async def get_draft(self, context: DraftContext | str, target_id: str) -> Optional[EmailDraft]:
        return await self.repos.email_drafts.get(draft_id(context, target_id))

    async def delete_draft(self, context: DraftContext | str, target_id: str) -> None:
        await self.repos.email_drafts.delete(draft_id(context, target_id))
        logger.debug("Draft deleted", extra={"draft_id": draft_id(context, target_id)})
