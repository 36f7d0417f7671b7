"""
Append-only petition signature ledger.

A petition document carries its signatures as an array plus a denormalized
``currentSignatures`` counter. Signing reads the petition, checks the two
dedup keys against the array, and writes the extended array and the new
count in a single update.

Invariants:
    - ``currentSignatures == len(signatures)`` after every successful sign
    - No two signatures share an email (trimmed, case-insensitive)
    - No two signatures share a non-null userId
    - Signatures are only ever appended, never edited or removed

Concurrency:
    With ``optimistic=True`` (default) the update carries the version that
    was read; a concurrent writer makes it fail with WriteConflictError and
    the sign is retried against the fresh document, dedup checks included.
    With ``optimistic=False`` the update is a blind read-modify-write and two
    concurrent signers can lose one signature (last writer wins).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .errors import (
    DuplicateEmailError,
    DuplicateSignatureError,
    PetitionClosedError,
    PetitionNotFoundError,
    ValidationError,
    WriteConflictError,
)
from .models import Petition, PetitionSignature
from .repository import Repositories

logger = logging.getLogger(__name__)


@dataclass
class SignatureRequest:
    """Input for a public sign action."""

    name: str
    email: str
    anonymous: bool = False
    user_id: Optional[str] = None


def normalize_email(email: str) -> str:
    return email.strip().lower()


class PetitionLedger:
    """Signs petitions while keeping the ledger invariants.

    Example:
        >>> ledger = PetitionLedger(repos)
        >>> await ledger.sign("p1", SignatureRequest(name="Ada", email="ada@example.com"))
    """

    def __init__(
        self,
        repos: Repositories,
        optimistic: bool = True,
        max_retries: int = 5,
    ) -> None:
        self.repos = repos
        self.optimistic = optimistic
        self.max_retries = max_retries

    @property
    def clock(self) -> Callable[[], datetime]:
        return self.repos.clock

    async def sign(self, petition_id: str, request: SignatureRequest) -> int:
        """Append a signature to a petition.

        Args:
            petition_id: Petition to sign
            request: Signer details

        Returns:
            The petition's signature count after this signature

        Raises:
            ValidationError: If name or email is blank
            PetitionNotFoundError: If the petition does not exist
            PetitionClosedError: If the petition is inactive or expired
            DuplicateSignatureError: If the email or user already signed
            WriteConflictError: If optimistic retries are exhausted
        """
        name = request.name.strip()
        email = request.email.strip()
        if not name:
            raise ValidationError("Name is required", field_name="name")
        if not email:
            raise ValidationError("Email is required", field_name="email")

        repo = self.repos.petitions
        attempt = 0
        while True:
            doc = await repo.get_document(petition_id)
            if doc is None:
                raise PetitionNotFoundError(petition_id)

            petition = repo.decode(doc)
            self._check_open(petition)
            self._check_duplicates(petition, email, request.user_id)

            signature = PetitionSignature(
                name=name,
                email=email,
                anonymous=request.anonymous,
                user_id=request.user_id,
                signed_at=self.clock(),
            )
            signatures = list(doc.data.get("signatures") or [])
            new_count = len(signatures) + 1

            try:
                await repo.update(
                    petition_id,
                    {
                        "signatures": signatures + [signature.to_dict()],
                        "currentSignatures": new_count,
                    },
                    expected_version=doc.version if self.optimistic else None,
                )
            except WriteConflictError:
                attempt += 1
                if attempt > self.max_retries:
                    logger.error(
                        "Giving up on petition signature after conflicts",
                        extra={"petition_id": petition_id, "attempts": attempt},
                    )
                    raise
                logger.debug(
                    "Petition changed while signing, retrying",
                    extra={"petition_id": petition_id, "attempt": attempt},
                )
                continue

            logger.info(
                "Petition signed",
                extra={"petition_id": petition_id, "signatures": new_count},
            )
            return new_count

    async def signatures_for(self, petition_id: str) -> list[PetitionSignature]:
        """Signatures as shown publicly: anonymous names masked, emails hidden.

        Raises:
            PetitionNotFoundError: If the petition does not exist
        """
        petition = await self.repos.petitions.get(petition_id)
        if petition is None:
            raise PetitionNotFoundError(petition_id)

        return [
            PetitionSignature(
                name="Anonymous" if s.anonymous else s.name,
                email="",
                anonymous=s.anonymous,
                user_id=None,
                signed_at=s.signed_at,
            )
            for s in petition.signatures
        ]

    def _check_open(self, petition: Petition) -> None:
        if not petition.is_active:
            raise PetitionClosedError(petition.id, "inactive")
        if petition.expires_at is not None and petition.expires_at < self.clock():
            raise PetitionClosedError(petition.id, "expired")

    @staticmethod
    def _check_duplicates(petition: Petition, email: str, user_id: Optional[str]) -> None:
        wanted = normalize_email(email)
        for s in petition.signatures:
            if s.email and normalize_email(s.email) == wanted:
                raise DuplicateEmailError(petition.id)
            if user_id is not None and s.user_id == user_id:
                raise DuplicateSignatureError(petition.id, "userId")
