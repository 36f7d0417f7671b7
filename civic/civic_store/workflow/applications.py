"""
Membership and volunteer applications.

Both kinds are created pending by the applicant and then moved by admin
review. Review is permissive: any status may be set from any status.

Membership review stamps ``approvedBy`` and ``dateReceived`` and copies the
optional number, province and notes when they are not blank. Approving an
application that has no number reserves one. Volunteer review stamps
``reviewedBy`` and ``reviewedAt`` on every change.

``emailedAt`` is only ever written by the emailing flow (see batch.py).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from ..errors import DocumentNotFoundError, ValidationError
from ..models import (
    ApplicationStatus,
    MembershipApplication,
    MembershipType,
    VolunteerApplication,
)
from ..numbering import MembershipNumberAllocator
from ..notify import NotificationSink, notify_best_effort
from ..repository import Repositories
from ..schema import MembershipApplications
from .referrals import ReferralWorkflow
from .states import (
    MEMBERSHIP_POLICY,
    VOLUNTEER_POLICY,
    TransitionPolicy,
    check_transition,
    coerce_state,
)

logger = logging.getLogger(__name__)

MEMBERSHIP_ADMIN_LINK = "/dashboard/admin/membership-applications"
VOLUNTEER_ADMIN_LINK = "/dashboard/admin/volunteers"


@dataclass
class MembershipReview:
    """An admin decision on a membership application."""

    status: ApplicationStatus | str
    reviewed_by: str
    membership_number: Optional[str] = None
    province_allocated: Optional[str] = None
    review_notes: Optional[str] = None


def _present(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class ApplicationWorkflow:
    """Submission and review of membership and volunteer applications.

    Example:
        >>> flow = ApplicationWorkflow(repos, allocator, notifications=sink)
        >>> app_id = await flow.submit_membership_application(
        ...     {"type": "individual", "fullName": "Ada Lovelace"}, user_id="u1"
        ... )
        >>> await flow.review_membership(app_id, MembershipReview("approved", "Admin"))
    """

    def __init__(
        self,
        repos: Repositories,
        allocator: MembershipNumberAllocator,
        notifications: Optional[NotificationSink] = None,
        referrals: Optional[ReferralWorkflow] = None,
        membership_policy: TransitionPolicy[ApplicationStatus] = MEMBERSHIP_POLICY,
        volunteer_policy: TransitionPolicy[ApplicationStatus] = VOLUNTEER_POLICY,
    ) -> None:
        self.repos = repos
        self.allocator = allocator
        self.notifications = notifications
        self.referrals = referrals
        self.membership_policy = membership_policy
        self.volunteer_policy = volunteer_policy

    # Membership

    async def submit_membership_application(
        self,
        fields: dict[str, Any],
        user_id: Optional[str] = None,
    ) -> str:
        """Create a pending application and announce it.

        Form sections the collection does not model are kept under
        ``details``. Notifying admins and advancing the applicant's referral
        are best-effort.

        Raises:
            ValidationError: If the type is missing or invalid
        """
        known = set(MembershipApplications.get_field_names())
        payload = {k: v for k, v in fields.items() if k in known}
        details = {k: v for k, v in fields.items() if k not in known}
        if details:
            payload["details"] = {**payload.get("details", {}), **details}

        membership_type = coerce_state(MembershipType, payload.get("type", ""), "type")
        payload.update(
            {
                "type": membership_type.value,
                "status": ApplicationStatus.PENDING.value,
                "userId": user_id,
                "membershipNumber": None,
            }
        )

        app_id = await self.repos.membership_applications.create(payload)
        application = MembershipApplication.from_dict({**payload, "id": app_id})

        await notify_best_effort(
            self.notifications,
            "new_membership_application",
            "New Membership Application",
            f"{application.applicant_name} submitted a {membership_type.value} membership application.",
            link=MEMBERSHIP_ADMIN_LINK,
        )

        if user_id and self.referrals is not None:
            try:
                await self.referrals.record_application(user_id)
            except Exception as e:
                logger.warning(
                    "Referral update failed",
                    extra={"user_id": user_id, "error": str(e)},
                )

        return app_id

    async def review_membership(
        self,
        application_id: str,
        review: MembershipReview,
    ) -> MembershipApplication:
        """Apply an admin decision.

        Raises:
            DocumentNotFoundError: If the application does not exist
            ValidationError: If the status is unknown or reviewer is blank
        """
        repo = self.repos.membership_applications
        application = await repo.get(application_id)
        if application is None:
            raise DocumentNotFoundError(repo.name, application_id)

        reviewer = _present(review.reviewed_by)
        if reviewer is None:
            raise ValidationError("Reviewer is required", field_name="approvedBy")

        target = check_transition(
            "MembershipApplication", self.membership_policy, application.status, review.status
        )
        updates: dict[str, Any] = {
            "status": target.value,
            "approvedBy": reviewer,
            "dateReceived": self.repos.clock().date().isoformat(),
        }

        number = _present(review.membership_number)
        if number is not None:
            updates["membershipNumber"] = number
        elif target == ApplicationStatus.APPROVED and not application.membership_number:
            updates["membershipNumber"] = await self.allocator.reserve()

        province = _present(review.province_allocated)
        if province is not None:
            updates["provinceAllocated"] = province
        notes = _present(review.review_notes)
        if notes is not None:
            updates["reviewNotes"] = notes

        doc = await repo.update(application_id, updates)
        logger.info(
            "Membership application reviewed",
            extra={
                "application_id": application_id,
                "from": application.status.value,
                "to": target.value,
            },
        )
        return repo.decode(doc)

    # Volunteers

    async def submit_volunteer_application(
        self,
        fields: dict[str, Any],
        user_id: Optional[str] = None,
    ) -> str:
        """Create a pending volunteer application and notify admins."""
        payload = dict(fields)
        payload.update(
            {
                "status": ApplicationStatus.PENDING.value,
                "userId": user_id,
                "reviewedBy": None,
                "reviewedAt": None,
            }
        )
        volunteer_id = await self.repos.volunteers.create(payload)

        await notify_best_effort(
            self.notifications,
            "new_volunteer_application",
            "New Volunteer Application",
            f"{payload.get('name', '')} applied to volunteer.",
            link=VOLUNTEER_ADMIN_LINK,
        )
        return volunteer_id

    async def review_volunteer(
        self,
        volunteer_id: str,
        status: ApplicationStatus | str,
        reviewed_by: str,
        notes: Optional[str] = None,
    ) -> VolunteerApplication:
        """Set a volunteer application's status.

        ``notes=None`` leaves existing notes alone; a blank string clears them.

        Raises:
            DocumentNotFoundError: If the application does not exist
        """
        repo = self.repos.volunteers
        volunteer = await repo.get(volunteer_id)
        if volunteer is None:
            raise DocumentNotFoundError(repo.name, volunteer_id)

        reviewer = _present(reviewed_by)
        if reviewer is None:
            raise ValidationError("Reviewer is required", field_name="reviewedBy")

        target = check_transition(
            "VolunteerApplication", self.volunteer_policy, volunteer.status, status
        )
        updates: dict[str, Any] = {
            "status": target.value,
            "reviewedBy": reviewer,
            "reviewedAt": self.repos.clock(),
        }
        if notes is not None:
            updates["notes"] = notes

        doc = await repo.update(volunteer_id, updates)
        logger.info(
            "Volunteer application reviewed",
            extra={"volunteer_id": volunteer_id, "to": target.value},
        )
        return repo.decode(doc)
