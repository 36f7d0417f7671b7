"""
Workflow state machines: application review, referral funnel, petition publishing.
"""

from .applications import ApplicationWorkflow, MembershipReview
from .petitions import PetitionWorkflow
from .referrals import ReferralWorkflow
from .states import (
    MEMBERSHIP_POLICY,
    REFERRAL_POLICY,
    VOLUNTEER_POLICY,
    ForwardOnlyPolicy,
    PermissivePolicy,
    TransitionPolicy,
    check_transition,
    coerce_state,
)

__all__ = [
    "ApplicationWorkflow",
    "MembershipReview",
    "PetitionWorkflow",
    "ReferralWorkflow",
    "MEMBERSHIP_POLICY",
    "REFERRAL_POLICY",
    "VOLUNTEER_POLICY",
    "ForwardOnlyPolicy",
    "PermissivePolicy",
    "TransitionPolicy",
    "check_transition",
    "coerce_state",
]
