"""
Batched post-send bookkeeping.

BatchMutationExecutor applies ``emailedAt`` to many documents in one atomic
commit. BulkSender drives the send loop that feeds it.

Bulk send rules:
    - Recipients are processed one at a time, in order
    - A recipient without an email address, or whose send reports failure
      or raises, counts as failed and the loop continues
    - Every attempt is written to the email log (best-effort)
    - Only the ids whose send succeeded are marked, in a single commit
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .drafts import DraftCache
from .errors import CivicStoreError, ValidationError
from .models import DraftContext
from .notify import EmailLogWriter, EmailMessage, EmailResult, EmailSender
from .repository import utcnow
from .store.base import DocumentStore, WriteOp

logger = logging.getLogger(__name__)

# Collections whose documents carry an emailedAt flag, per draft context
EMAILED_COLLECTIONS = {
    DraftContext.MEMBERSHIP: "membershipApplications",
    DraftContext.VOLUNTEER: "volunteers",
}


def check_emailed_collection(collection: str) -> None:
    if collection not in EMAILED_COLLECTIONS.values():
        raise ValidationError(
            f"Collection {collection!r} cannot be marked as emailed",
            field_name="collection",
        )


class BatchMutationExecutor:
    """Applies one field update to many documents in a single commit."""

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.clock = clock

    async def mark_emailed(self, collection: str, ids: Sequence[str]) -> list[str]:
        """Set ``emailedAt`` on every id atomically.

        Returns:
            The ids that were marked (duplicates removed)

        Raises:
            ValidationError: If the collection has no emailedAt flag
            DocumentNotFoundError: If any id does not exist (nothing is marked)
        """
        check_emailed_collection(collection)
        unique_ids = list(dict.fromkeys(ids))
        if not unique_ids:
            return []

        now = self.clock()
        await self.store.commit(
            [
                WriteOp.update(collection, doc_id, {"emailedAt": now, "updatedAt": now})
                for doc_id in unique_ids
            ]
        )
        logger.info(
            "Marked documents as emailed",
            extra={"collection": collection, "count": len(unique_ids)},
        )
        return unique_ids


@dataclass
class Recipient:
    """One target of a bulk send; ``id`` is the document to mark."""

    id: str
    email: Optional[str]
    name: str = ""
    user_id: Optional[str] = None


@dataclass
class BulkSendReport:
    sent: int = 0
    failed: int = 0
    marked_ids: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def processed(self) -> int:
        return self.sent + self.failed


ProgressCallback = Callable[[BulkSendReport, int], None]


class BulkSender:
    """Sends one message to many recipients and records the outcome.

    Example:
        >>> bulk = BulkSender(sender, BatchMutationExecutor(store), log_writer)
        >>> report = await bulk.send("volunteers", recipients, "Update", "Hello ...")
        >>> report.sent, report.failed
        (3, 2)
    """

    def __init__(
        self,
        sender: EmailSender,
        batch: BatchMutationExecutor,
        email_log: Optional[EmailLogWriter] = None,
        drafts: Optional[DraftCache] = None,
    ) -> None:
        self.sender = sender
        self.batch = batch
        self.email_log = email_log
        self.drafts = drafts

    async def send(
        self,
        collection: Optional[str],
        recipients: Sequence[Recipient],
        subject: str,
        body: str,
        kind: str = "bulk",
        on_progress: Optional[ProgressCallback] = None,
    ) -> BulkSendReport:
        """Send to every recipient sequentially.

        Args:
            collection: Collection whose documents get ``emailedAt``; None
                to skip marking
            recipients: Targets, in send order
            subject: Message subject
            body: Plain-text body
            kind: Email log type
            on_progress: Called after each recipient with the running report
                and the total recipient count

        Returns:
            BulkSendReport with counts, marked ids and per-id failure reasons

        Raises:
            ValidationError: If ``collection`` has no emailedAt flag; raised
                before anything is sent
        """
        if collection:
            check_emailed_collection(collection)
        report = BulkSendReport()
        succeeded: list[str] = []

        for recipient in recipients:
            email = (recipient.email or "").strip()
            if not email:
                report.failed += 1
                report.failures[recipient.id] = "missing email address"
            else:
                message = EmailMessage(
                    email=email,
                    name=recipient.name,
                    subject=subject,
                    body=body,
                    user_id=recipient.user_id,
                )
                result = await self._deliver(message)
                if self.email_log is not None:
                    await self.email_log.record(kind, message, result)

                if result.success:
                    report.sent += 1
                    succeeded.append(recipient.id)
                else:
                    report.failed += 1
                    report.failures[recipient.id] = result.error or "send failed"

            if on_progress is not None:
                on_progress(report, len(recipients))

        if collection and succeeded:
            try:
                report.marked_ids = await self.batch.mark_emailed(collection, succeeded)
            except CivicStoreError as e:
                logger.error(
                    "Failed to mark recipients as emailed",
                    extra={"collection": collection, "count": len(succeeded), "error": e.message},
                )

        logger.info(
            "Bulk send finished",
            extra={"sent": report.sent, "failed": report.failed, "marked": len(report.marked_ids)},
        )
        return report

    async def send_draft(self, context: DraftContext | str, target_id: str) -> EmailResult:
        """Send the saved draft for (context, target_id).

        On success the target is marked emailed (membership and volunteer
        contexts) and the draft is deleted. On failure the draft is kept.

        Raises:
            ValidationError: If there is no draft or it has no recipient
        """
        if self.drafts is None:
            raise ValidationError("Draft sending is not configured")

        draft = await self.drafts.get_draft(context, target_id)
        if draft is None:
            raise ValidationError(f"No draft for {context}/{target_id}", field_name="draft")
        if not draft.recipient_email:
            raise ValidationError("Draft has no recipient email", field_name="recipientEmail")

        message = EmailMessage(
            email=draft.recipient_email,
            name=draft.recipient_name or "",
            subject=draft.subject,
            body=draft.body,
        )
        result = await self._deliver(message)
        if self.email_log is not None:
            await self.email_log.record(draft.context.value, message, result)
        if not result.success:
            return result

        collection = EMAILED_COLLECTIONS.get(draft.context)
        if collection is not None:
            await self.batch.mark_emailed(collection, [target_id])
        await self.drafts.delete_draft(draft.context, target_id)
        return result

    async def _deliver(self, message: EmailMessage) -> EmailResult:
        try:
            return await self.sender.send(message)
        except Exception as e:
            logger.warning(
                "Email sender raised",
                extra={"to": message.email, "error": str(e)},
                exc_info=True,
            )
            return EmailResult(success=False, error=str(e))
