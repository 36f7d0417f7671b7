"""
Collaborators: outbound email and in-app notifications.
"""

from .email import (
    EmailLogWriter,
    EmailMessage,
    EmailResult,
    EmailSender,
    HttpEmailSender,
    render_html,
)
from .notifications import (
    AUDIENCE_ADMINS,
    AUDIENCE_ALL,
    NotificationSink,
    StoreNotificationSink,
    notify_best_effort,
)

__all__ = [
    "EmailLogWriter",
    "EmailMessage",
    "EmailResult",
    "EmailSender",
    "HttpEmailSender",
    "render_html",
    "AUDIENCE_ADMINS",
    "AUDIENCE_ALL",
    "NotificationSink",
    "StoreNotificationSink",
    "notify_best_effort",
]
