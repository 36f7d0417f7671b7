"""
Collection schema for the civic data layer.

Field definitions per collection, the UNSET sentinel, and the sanitize /
validate helpers the repository applies before every write.
"""

from .collections import (
    Counters,
    EmailDrafts,
    EmailLogs,
    MembershipApplications,
    Notifications,
    Petitions,
    Referrals,
    Volunteers,
)
from .types import UNSET, CollectionDef, FieldDef, FieldKind, field

__all__ = [
    "UNSET",
    "CollectionDef",
    "FieldDef",
    "FieldKind",
    "field",
    "Counters",
    "EmailDrafts",
    "EmailLogs",
    "MembershipApplications",
    "Notifications",
    "Petitions",
    "Referrals",
    "Volunteers",
]
