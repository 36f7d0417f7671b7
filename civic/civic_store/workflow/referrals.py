"""
Referral funnel.

A referral is created when a member invites someone and then only ever
moves forward: invited -> signed_up -> applied -> paid. Event triggers
advance it one step and silently do nothing when the referral is not in the
expected predecessor state. Explicit admin moves are validated against the
chain and raise InvalidTransitionError instead.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..errors import DocumentNotFoundError, InvalidTransitionError, WriteConflictError
from ..models import Referral, ReferralStatus
from ..repository import Repositories
from ..store.base import FieldFilter
from .states import REFERRAL_POLICY, ForwardOnlyPolicy, check_transition

logger = logging.getLogger(__name__)


class ReferralWorkflow:
    """Creates referrals and advances them through the funnel.

    Example:
        >>> referrals = ReferralWorkflow(repos)
        >>> await referrals.invite("u1", "ADA123", email="friend@example.com")
        >>> await referrals.record_signup("ADA123", "u2", email="friend@example.com")
        >>> await referrals.record_application("u2")
    """

    def __init__(
        self,
        repos: Repositories,
        policy: ForwardOnlyPolicy[ReferralStatus] = REFERRAL_POLICY,
    ) -> None:
        self.repos = repos
        self.policy = policy

    async def invite(
        self,
        referrer_id: str,
        referral_code: str,
        email: Optional[str] = None,
    ) -> str:
        """Record an invitation. Returns the referral id."""
        return await self.repos.referrals.create(
            {
                "referrerId": referrer_id,
                "referralCode": referral_code,
                "referredEmail": email.strip().lower() if email else None,
                "status": ReferralStatus.INVITED.value,
            }
        )

    async def find_for_user(self, user_id: str) -> Optional[Referral]:
        return await self.repos.referrals.first_by(
            [FieldFilter.where("referredUserId", "==", user_id)]
        )

    async def record_signup(
        self,
        referral_code: str,
        user_id: str,
        email: Optional[str] = None,
    ) -> Optional[Referral]:
        """A new user signed up with ``referral_code``: invited -> signed_up.

        When ``email`` is given, an invitation addressed to it is preferred
        over other open invitations with the same code.

        Returns:
            The advanced referral, or None if nothing was advanced
        """
        if await self.find_for_user(user_id) is not None:
            logger.debug("User already has a referral", extra={"user_id": user_id})
            return None

        open_invites = await self.repos.referrals.list_by(
            [
                FieldFilter.where("referralCode", "==", referral_code),
                FieldFilter.where("status", "==", ReferralStatus.INVITED.value),
            ]
        )
        if not open_invites:
            logger.debug("No open invitation for code", extra={"referral_code": referral_code})
            return None

        chosen = open_invites[0]
        if email:
            wanted = email.strip().lower()
            for referral in open_invites:
                if (referral.referred_email or "").lower() == wanted:
                    chosen = referral
                    break

        return await self._advance(
            chosen.id,
            ReferralStatus.SIGNED_UP,
            {"referredUserId": user_id},
        )

    async def record_application(self, user_id: str) -> Optional[Referral]:
        """The referred user submitted a membership application: signed_up -> applied."""
        referral = await self.find_for_user(user_id)
        if referral is None:
            return None
        return await self._advance(referral.id, ReferralStatus.APPLIED)

    async def record_payment(self, user_id: str) -> Optional[Referral]:
        """The referred user paid for membership: applied -> paid."""
        referral = await self.find_for_user(user_id)
        if referral is None:
            return None
        return await self._advance(referral.id, ReferralStatus.PAID)

    async def transition(self, referral_id: str, target: ReferralStatus | str) -> Referral:
        """Explicit move, validated against the funnel.

        Raises:
            DocumentNotFoundError: If the referral does not exist
            InvalidTransitionError: If the move is not one step forward
        """
        repo = self.repos.referrals
        referral = await repo.get(referral_id)
        if referral is None:
            raise DocumentNotFoundError(repo.name, referral_id)

        target_state = check_transition("Referral", self.policy, referral.status, target)
        advanced = await self._advance(referral_id, target_state)
        if advanced is None:
            # moved by someone else between the read and the write
            current = await repo.get(referral_id)
            if current is None:
                raise DocumentNotFoundError(repo.name, referral_id)
            raise InvalidTransitionError("Referral", current.status.value, target_state.value)
        return advanced

    async def _advance(
        self,
        referral_id: str,
        target: ReferralStatus,
        extra: Optional[dict] = None,
    ) -> Optional[Referral]:
        """Move one step forward if the referral is still in the predecessor state."""
        repo = self.repos.referrals
        expected = self.policy.predecessor(target)

        while True:
            doc = await repo.get_document(referral_id)
            if doc is None:
                return None
            current = doc.data.get("status")
            if current != (expected.value if expected else None):
                logger.debug(
                    "Referral trigger ignored",
                    extra={"referral_id": referral_id, "status": current, "target": target.value},
                )
                return None

            try:
                updated = await repo.update(
                    referral_id,
                    {"status": target.value, **(extra or {})},
                    expected_version=doc.version,
                )
            except WriteConflictError:
                continue

            logger.info(
                "Referral advanced",
                extra={"referral_id": referral_id, "from": current, "to": target.value},
            )
            return repo.decode(updated)
