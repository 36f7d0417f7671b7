"""
Collection definitions for every document collection this layer touches.
"""

from __future__ import annotations

from ..models import (
    ApplicationStatus,
    DraftContext,
    EmailStatus,
    MembershipType,
    ReferralStatus,
    enum_values,
)
from .types import CollectionDef, field

APPLICATION_STATUSES = enum_values(ApplicationStatus)

Petitions = CollectionDef(
    name="petitions",
    fields=(
        field("title", "str", required=True),
        field("description", "str"),
        field("content", "str"),
        field("image", "str"),
        field("goal", "int", required=True),
        field("isActive", "bool", default=True),
        field("isPublished", "bool", default=False),
        field("currentSignatures", "int", default=0),
        field("signatures", "list", default=[]),
        field("createdBy", "str"),
        field("expiresAt", "timestamp"),
    ),
    description="Petitions with their append-only signature ledger",
)

MembershipApplications = CollectionDef(
    name="membershipApplications",
    fields=(
        field("type", "enum", required=True, enum_values=enum_values(MembershipType)),
        field("status", "enum", default="pending", enum_values=APPLICATION_STATUSES),
        field("membershipNumber", "str"),
        field("emailedAt", "timestamp"),
        field("userId", "str"),
        field("fullName", "str"),
        field("organisationName", "str"),
        field("emailAddress", "str"),
        field("phone", "str"),
        field("approvedBy", "str"),
        field("provinceAllocated", "str"),
        field("reviewNotes", "str"),
        field("dateReceived", "str"),
        field("details", "map", description="Remaining form sections, stored as submitted"),
    ),
)

Volunteers = CollectionDef(
    name="volunteers",
    fields=(
        field("name", "str", required=True),
        field("email", "str"),
        field("userId", "str"),
        field("phone", "str"),
        field("availability", "str"),
        field("skills", "list"),
        field("experience", "str"),
        field("motivation", "str"),
        field("status", "enum", default="pending", enum_values=APPLICATION_STATUSES),
        field("notes", "str"),
        field("reviewedBy", "str"),
        field("reviewedAt", "timestamp"),
        field("emailedAt", "timestamp"),
    ),
)

Referrals = CollectionDef(
    name="referrals",
    fields=(
        field("referrerId", "str", required=True),
        field("referralCode", "str", required=True),
        field("referredUserId", "str"),
        field("referredEmail", "str"),
        field("status", "enum", default="invited", enum_values=enum_values(ReferralStatus)),
    ),
)

EmailDrafts = CollectionDef(
    name="emailDrafts",
    fields=(
        field("context", "enum", required=True, enum_values=enum_values(DraftContext)),
        field("targetId", "str", required=True),
        field("recipientEmail", "str"),
        field("recipientName", "str"),
        field("subject", "str"),
        field("body", "str"),
    ),
)

EmailLogs = CollectionDef(
    name="emailLogs",
    fields=(
        field("type", "str", required=True),
        field("to", "str", required=True),
        field("name", "str"),
        field("subject", "str"),
        field("status", "enum", required=True, enum_values=enum_values(EmailStatus)),
        field("error", "str"),
        field("userId", "str"),
        field("messageId", "str"),
    ),
)

Notifications = CollectionDef(
    name="notifications",
    fields=(
        field("type", "str", required=True),
        field("title", "str", required=True),
        field("message", "str"),
        field("link", "str"),
        field("audience", "enum", default="admins", enum_values=("admins", "all")),
        field("read", "bool", default=False),
    ),
)

Counters = CollectionDef(
    name="counters",
    fields=(
        field("name", "str", required=True),
        field("year", "int"),
        field("value", "int", required=True),
    ),
    description="Monotonic counters used for identifier allocation",
)
