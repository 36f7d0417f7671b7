"""
Error types for the civic data layer.

This module defines every exception the data-access and workflow layer raises:
- CivicStoreError: Base exception
- Store failures: StoreUnavailableError, PermissionDeniedError,
  IndexNotReadyError, DocumentNotFoundError, WriteConflictError
- Domain failures: DuplicateSignatureError, PetitionClosedError,
  InvalidTransitionError, ValidationError
- WriteFailureError: Any other failed write, wrapped with context

Invariants:
    - All errors inherit from CivicStoreError
    - ``code`` mirrors the hosted store's status strings where one exists
    - Only IndexNotReadyError is ever recovered locally (by the query executor)
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class CivicStoreError(Exception):
    """Base exception for all civic data layer errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "unknown"
        self.details = details or {}


class StoreUnavailableError(CivicStoreError):
    """The document store client is not initialized or not connected."""

    def __init__(self, message: str = "Document store is not initialized") -> None:
        super().__init__(message, code="unavailable")


class PermissionDeniedError(CivicStoreError):
    """The store refused the operation.

    Never retried and never recovered by the query executor.
    """

    def __init__(self, message: str, collection: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="permission-denied",
            details={"collection": collection},
        )
        self.collection = collection


class IndexNotReadyError(CivicStoreError):
    """A query needs a composite index that is not provisioned yet.

    Raised when:
    - A filtered query also orders on another field
    - A range filter is combined with filters on other fields
    """

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        fields: Optional[tuple[str, ...]] = None,
    ) -> None:
        super().__init__(
            message,
            code="failed-precondition",
            details={"collection": collection, "fields": list(fields or ())},
        )
        self.collection = collection
        self.fields = fields or ()


class DocumentNotFoundError(CivicStoreError):
    """An update or batch write targeted a document that does not exist."""

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(
            f"No document '{doc_id}' in '{collection}'",
            code="not-found",
            details={"collection": collection, "doc_id": doc_id},
        )
        self.collection = collection
        self.doc_id = doc_id


class WriteConflictError(CivicStoreError):
    """Optimistic version check failed: the document changed since it was read."""

    def __init__(
        self,
        collection: str,
        doc_id: str,
        expected_version: int,
        actual_version: int,
    ) -> None:
        super().__init__(
            f"Document '{collection}/{doc_id}' is at version {actual_version}, "
            f"expected {expected_version}",
            code="aborted",
            details={
                "collection": collection,
                "doc_id": doc_id,
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
        )
        self.collection = collection
        self.doc_id = doc_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class WriteFailureError(CivicStoreError):
    """A write failed for a reason other than the ones above."""

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        doc_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="write-failed",
            details={"collection": collection, "doc_id": doc_id},
        )
        self.collection = collection
        self.doc_id = doc_id


class ValidationError(CivicStoreError):
    """Payload or argument validation failed.

    Raised when:
    - A required field is missing or blank
    - A field is not part of the collection schema
    - An enum field holds a value outside its set
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        errors: Optional[list[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="invalid-argument",
            details={"field": field_name, "errors": errors or []},
        )
        self.field_name = field_name
        self.errors = errors or []


class DuplicateSignatureError(CivicStoreError):
    """The petition already carries a signature for this email or user.

    Attributes:
        petition_id: Petition being signed
        field_name: Which dedup key collided ("email" or "userId")
    """

    def __init__(self, petition_id: str, field_name: str) -> None:
        if field_name == "email":
            msg = "This email address has already signed this petition"
        else:
            msg = "You have already signed this petition"
        super().__init__(
            msg,
            code="duplicate-signature",
            details={"petition_id": petition_id, "field": field_name},
        )
        self.petition_id = petition_id
        self.field_name = field_name


class DuplicateEmailError(DuplicateSignatureError):
    """Email collision on a petition ledger."""

    def __init__(self, petition_id: str) -> None:
        super().__init__(petition_id, "email")


class PetitionNotFoundError(CivicStoreError):
    """The petition does not exist."""

    def __init__(self, petition_id: str) -> None:
        super().__init__(
            f"Petition not found: {petition_id}",
            code="not-found",
            details={"petition_id": petition_id},
        )
        self.petition_id = petition_id


class PetitionClosedError(CivicStoreError):
    """The petition is inactive or past its expiry date."""

    def __init__(self, petition_id: str, reason: str) -> None:
        super().__init__(
            f"Petition {petition_id} is not accepting signatures ({reason})",
            code="petition-closed",
            details={"petition_id": petition_id, "reason": reason},
        )
        self.petition_id = petition_id
        self.reason = reason


class InvalidTransitionError(CivicStoreError):
    """A status change is not allowed by the entity's transition policy."""

    def __init__(self, entity: str, current: str, target: str) -> None:
        super().__init__(
            f"{entity} cannot move from '{current}' to '{target}'",
            code="invalid-transition",
            details={"entity": entity, "current": current, "target": target},
        )
        self.entity = entity
        self.current = current
        self.target = target
