"""
Entity types for the civic data layer.

Each entity is a dataclass decoded from a stored document. Documents keep the
store's camelCase field names; entities expose snake_case attributes.

Invariants:
    - ``from_dict`` never fails on missing optional fields
    - ``Petition.current_signatures == len(Petition.signatures)`` after a sign
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ApplicationStatus(str, Enum):
    """Review states shared by membership and volunteer applications."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class MembershipType(str, Enum):
    INDIVIDUAL = "individual"
    INSTITUTIONAL = "institutional"


class ReferralStatus(str, Enum):
    """Referral funnel stages, in order."""

    INVITED = "invited"
    SIGNED_UP = "signed_up"
    APPLIED = "applied"
    PAID = "paid"


class DraftContext(str, Enum):
    """Where a draft is being composed."""

    MEMBERSHIP = "membership"
    VOLUNTEER = "volunteer"
    USER = "user"
    CONTACT = "contact"


class EmailStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"


def enum_values(enum_cls: type[Enum]) -> tuple[str, ...]:
    return tuple(member.value for member in enum_cls)


@dataclass
class PetitionSignature:
    """One entry of a petition's signature ledger."""

    name: str
    email: str
    anonymous: bool = False
    user_id: str | None = None
    signed_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "anonymous": self.anonymous,
            "userId": self.user_id,
            "signedAt": self.signed_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PetitionSignature:
        return cls(
            name=data.get("name") or "",
            email=data.get("email") or "",
            anonymous=bool(data.get("anonymous", False)),
            user_id=data.get("userId"),
            signed_at=data.get("signedAt"),
        )


@dataclass
class Petition:
    """A petition and its signature ledger."""

    id: str
    title: str
    goal: int
    is_active: bool = True
    is_published: bool = False
    current_signatures: int = 0
    signatures: list[PetitionSignature] = field(default_factory=list)
    description: str | None = None
    created_by: str | None = None
    expires_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Petition:
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            goal=data.get("goal", 0),
            is_active=data.get("isActive", True),
            is_published=data.get("isPublished", False),
            current_signatures=data.get("currentSignatures", 0),
            signatures=[PetitionSignature.from_dict(s) for s in data.get("signatures") or []],
            description=data.get("description"),
            created_by=data.get("createdBy"),
            expires_at=data.get("expiresAt"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class MembershipApplication:
    id: str
    type: MembershipType
    status: ApplicationStatus = ApplicationStatus.PENDING
    membership_number: str | None = None
    emailed_at: datetime | None = None
    user_id: str | None = None
    full_name: str | None = None
    organisation_name: str | None = None
    email_address: str | None = None
    approved_by: str | None = None
    province_allocated: str | None = None
    review_notes: str | None = None
    date_received: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def applicant_name(self) -> str:
        if self.type == MembershipType.INSTITUTIONAL:
            return self.organisation_name or ""
        return self.full_name or ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MembershipApplication:
        return cls(
            id=data["id"],
            type=MembershipType(data.get("type", MembershipType.INDIVIDUAL.value)),
            status=ApplicationStatus(data.get("status", ApplicationStatus.PENDING.value)),
            membership_number=data.get("membershipNumber"),
            emailed_at=data.get("emailedAt"),
            user_id=data.get("userId"),
            full_name=data.get("fullName"),
            organisation_name=data.get("organisationName"),
            email_address=data.get("emailAddress"),
            approved_by=data.get("approvedBy"),
            province_allocated=data.get("provinceAllocated"),
            review_notes=data.get("reviewNotes"),
            date_received=data.get("dateReceived"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class VolunteerApplication:
    id: str
    name: str
    email: str | None = None
    user_id: str | None = None
    status: ApplicationStatus = ApplicationStatus.PENDING
    notes: str | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    emailed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VolunteerApplication:
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            email=data.get("email"),
            user_id=data.get("userId"),
            status=ApplicationStatus(data.get("status", ApplicationStatus.PENDING.value)),
            notes=data.get("notes"),
            reviewed_by=data.get("reviewedBy"),
            reviewed_at=data.get("reviewedAt"),
            emailed_at=data.get("emailedAt"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class Referral:
    id: str
    referrer_id: str
    referral_code: str
    status: ReferralStatus = ReferralStatus.INVITED
    referred_user_id: str | None = None
    referred_email: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Referral:
        return cls(
            id=data["id"],
            referrer_id=data.get("referrerId", ""),
            referral_code=data.get("referralCode", ""),
            status=ReferralStatus(data.get("status", ReferralStatus.INVITED.value)),
            referred_user_id=data.get("referredUserId"),
            referred_email=data.get("referredEmail"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class EmailDraft:
    """An unsent message, keyed by ``<context>_<target_id>``."""

    id: str
    context: DraftContext
    target_id: str
    recipient_email: str | None = None
    recipient_name: str | None = None
    subject: str = ""
    body: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EmailDraft:
        return cls(
            id=data["id"],
            context=DraftContext(data["context"]),
            target_id=data["targetId"],
            recipient_email=data.get("recipientEmail"),
            recipient_name=data.get("recipientName"),
            subject=data.get("subject") or "",
            body=data.get("body") or "",
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class EmailLog:
    """One delivery attempt."""

    id: str
    type: str
    to: str
    subject: str
    status: EmailStatus
    name: str | None = None
    error: str | None = None
    user_id: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EmailLog:
        return cls(
            id=data["id"],
            type=data.get("type", ""),
            to=data.get("to", ""),
            subject=data.get("subject", ""),
            status=EmailStatus(data.get("status", EmailStatus.FAILED.value)),
            name=data.get("name"),
            error=data.get("error"),
            user_id=data.get("userId"),
            created_at=data.get("createdAt"),
        )


@dataclass
class Notification:
    id: str
    type: str
    title: str
    message: str = ""
    link: str | None = None
    audience: str = "admins"
    read: bool = False
    created_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Notification:
        return cls(
            id=data["id"],
            type=data.get("type", ""),
            title=data.get("title", ""),
            message=data.get("message") or "",
            link=data.get("link"),
            audience=data.get("audience", "admins"),
            read=bool(data.get("read", False)),
            created_at=data.get("createdAt"),
        )
