"""
In-app notifications.

Workflows announce events (a new application, a published petition) through
a NotificationSink. Announcing is best-effort: a failed notification is
logged and never aborts the workflow that triggered it.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, runtime_checkable

from ..repository import EntityRepository

logger = logging.getLogger(__name__)

AUDIENCE_ADMINS = "admins"
AUDIENCE_ALL = "all"


@runtime_checkable
class NotificationSink(Protocol):
    async def create_notification(
        self,
        type: str,
        title: str,
        message: str,
        link: Optional[str] = None,
        audience: str = AUDIENCE_ADMINS,
    ) -> str: ...


class StoreNotificationSink:
    """Stores notifications in the ``notifications`` collection."""

    def __init__(self, notifications: EntityRepository) -> None:
        self.notifications = notifications

    async def create_notification(
        self,
        type: str,
        title: str,
        message: str,
        link: Optional[str] = None,
        audience: str = AUDIENCE_ADMINS,
    ) -> str:
        return await self.notifications.create(
            {
                "type": type,
                "title": title,
                "message": message,
                "link": link,
                "audience": audience,
                "read": False,
            }
        )


async def notify_best_effort(
    sink: Optional[NotificationSink],
    type: str,
    title: str,
    message: str,
    link: Optional[str] = None,
    audience: str = AUDIENCE_ADMINS,
) -> bool:
    """Create a notification, swallowing and logging any failure.

    Returns:
        True if the notification was created
    """
    if sink is None:
        return False
    try:
        await sink.create_notification(type, title, message, link=link, audience=audience)
        return True
    except Exception as e:
        logger.warning(
            "Notification failed",
            extra={"notification_type": type, "error": str(e)},
        )
        return False
