"""
HTTP API for the civic data layer.

This module creates the FastAPI app with:
- CORS configuration for the web frontend
- Service container lifecycle management
- Routes for signing, review, referrals, drafts and bulk email
- Mapping of data-layer errors to HTTP status codes
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncGenerator, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..batch import Recipient
from ..config import ServiceConfig
from ..errors import (
    CivicStoreError,
    DocumentNotFoundError,
    DuplicateSignatureError,
    InvalidTransitionError,
    PermissionDeniedError,
    PetitionClosedError,
    PetitionNotFoundError,
    StoreUnavailableError,
    ValidationError,
    WriteConflictError,
)
from .._version import __version__
from ..ledger import SignatureRequest
from ..services import CivicServices
from ..workflow import MembershipReview
from .settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Civic Store"])

ERROR_STATUS: list[tuple[type[CivicStoreError], int]] = [
    (PetitionNotFoundError, 404),
    (DocumentNotFoundError, 404),
    (DuplicateSignatureError, 409),
    (PetitionClosedError, 409),
    (InvalidTransitionError, 409),
    (WriteConflictError, 409),
    (ValidationError, 422),
    (PermissionDeniedError, 403),
    (StoreUnavailableError, 503),
]


def status_for(error: CivicStoreError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


# --- Request/Response Models ---


class SignRequest(BaseModel):
    name: str = Field(..., description="Signer's name")
    email: str = Field(..., description="Signer's email")
    anonymous: bool = Field(False, description="Hide the name publicly")
    user_id: str | None = Field(None, description="Signed-in user, if any")


class SignResponse(BaseModel):
    petition_id: str
    current_signatures: int


class SignatureView(BaseModel):
    name: str
    anonymous: bool
    signed_at: datetime | None = None


class PetitionCreateRequest(BaseModel):
    title: str
    goal: int = Field(..., ge=1)
    description: str | None = None
    content: str | None = None
    image: str | None = None
    is_active: bool = True
    is_published: bool = False
    expires_at: datetime | None = None
    created_by: str | None = None


class PetitionResponse(BaseModel):
    id: str
    title: str
    goal: int
    is_active: bool
    is_published: bool
    current_signatures: int


class ApplicationSubmitRequest(BaseModel):
    """Membership or volunteer form, as submitted."""

    fields: dict[str, Any] = Field(..., description="Form fields (camelCase)")
    user_id: str | None = None


class CreatedResponse(BaseModel):
    id: str


class MembershipReviewRequest(BaseModel):
    status: str
    reviewed_by: str
    membership_number: str | None = None
    province_allocated: str | None = None
    review_notes: str | None = None


class ApplicationResponse(BaseModel):
    id: str
    status: str
    membership_number: str | None = None
    approved_by: str | None = None
    date_received: str | None = None


class VolunteerReviewRequest(BaseModel):
    status: str
    reviewed_by: str
    notes: str | None = None


class VolunteerResponse(BaseModel):
    id: str
    status: str
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    notes: str | None = None


class NumberResponse(BaseModel):
    membership_number: str


class InviteRequest(BaseModel):
    referrer_id: str
    referral_code: str
    email: str | None = None


class SignupTrigger(BaseModel):
    referral_code: str
    user_id: str
    email: str | None = None


class UserTrigger(BaseModel):
    user_id: str


class ReferralTransitionRequest(BaseModel):
    status: str


class ReferralResponse(BaseModel):
    advanced: bool
    id: str | None = None
    status: str | None = None


class DraftRequest(BaseModel):
    subject: str = ""
    body: str = ""
    recipient_email: str | None = None
    recipient_name: str | None = None


class DraftResponse(BaseModel):
    id: str
    context: str
    target_id: str
    subject: str
    body: str
    recipient_email: str | None = None
    recipient_name: str | None = None
    updated_at: datetime | None = None


class SendResultResponse(BaseModel):
    success: bool
    error: str | None = None
    message_id: str | None = None


class RecipientModel(BaseModel):
    id: str
    email: str | None = None
    name: str = ""
    user_id: str | None = None


class BulkEmailRequest(BaseModel):
    collection: str | None = Field(None, description="Collection to mark emailedAt in")
    subject: str
    body: str
    recipients: list[RecipientModel]


class BulkEmailResponse(BaseModel):
    sent: int
    failed: int
    marked_ids: list[str]
    failures: dict[str, str]


# --- Dependencies ---


def get_services(request: Request) -> CivicServices:
    """Get the service container from app state."""
    return request.app.state.services


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _referral_response(referral) -> ReferralResponse:
    if referral is None:
        return ReferralResponse(advanced=False)
    return ReferralResponse(advanced=True, id=referral.id, status=referral.status.value)


def _petition_response(petition) -> PetitionResponse:
    return PetitionResponse(
        id=petition.id,
        title=petition.title,
        goal=petition.goal,
        is_active=petition.is_active,
        is_published=petition.is_published,
        current_signatures=petition.current_signatures,
    )


# --- Petition Routes ---


@router.post("/petitions", response_model=CreatedResponse, status_code=201)
async def create_petition(
    body: PetitionCreateRequest,
    services: CivicServices = Depends(get_services),
):
    petition_id = await services.petitions.create_petition(
        {
            "title": body.title,
            "goal": body.goal,
            "description": body.description,
            "content": body.content,
            "image": body.image,
            "isActive": body.is_active,
            "isPublished": body.is_published,
            "expiresAt": body.expires_at,
        },
        created_by=body.created_by,
    )
    return CreatedResponse(id=petition_id)


@router.post("/petitions/{petition_id}/publish", response_model=PetitionResponse)
async def publish_petition(
    petition_id: str,
    services: CivicServices = Depends(get_services),
):
    petition = await services.petitions.publish_petition(petition_id)
    return _petition_response(petition)


@router.post(
    "/petitions/{petition_id}/signatures",
    response_model=SignResponse,
    status_code=201,
)
async def sign_petition(
    petition_id: str,
    body: SignRequest,
    services: CivicServices = Depends(get_services),
):
    """
    Sign a petition.

    Returns 409 if the email or user already signed, or the petition is closed.
    """
    count = await services.ledger.sign(
        petition_id,
        SignatureRequest(
            name=body.name,
            email=body.email,
            anonymous=body.anonymous,
            user_id=body.user_id,
        ),
    )
    return SignResponse(petition_id=petition_id, current_signatures=count)


@router.get("/petitions/{petition_id}/signatures", response_model=list[SignatureView])
async def list_signatures(
    petition_id: str,
    services: CivicServices = Depends(get_services),
):
    """Public view of a petition's signatures (anonymous names masked)."""
    signatures = await services.ledger.signatures_for(petition_id)
    return [
        SignatureView(name=s.name, anonymous=s.anonymous, signed_at=s.signed_at)
        for s in signatures
    ]


# --- Membership Routes ---


@router.post("/membership-applications", response_model=CreatedResponse, status_code=201)
async def submit_membership_application(
    body: ApplicationSubmitRequest,
    services: CivicServices = Depends(get_services),
):
    app_id = await services.applications.submit_membership_application(
        body.fields, user_id=body.user_id
    )
    return CreatedResponse(id=app_id)


@router.post(
    "/membership-applications/{application_id}/review",
    response_model=ApplicationResponse,
)
async def review_membership_application(
    application_id: str,
    body: MembershipReviewRequest,
    services: CivicServices = Depends(get_services),
):
    application = await services.applications.review_membership(
        application_id,
        MembershipReview(
            status=body.status,
            reviewed_by=body.reviewed_by,
            membership_number=body.membership_number,
            province_allocated=body.province_allocated,
            review_notes=body.review_notes,
        ),
    )
    return ApplicationResponse(
        id=application.id,
        status=application.status.value,
        membership_number=application.membership_number,
        approved_by=application.approved_by,
        date_received=application.date_received,
    )


@router.post(
    "/membership-applications/{application_id}/number",
    response_model=NumberResponse,
)
async def assign_membership_number(
    application_id: str,
    services: CivicServices = Depends(get_services),
):
    """Reserve a number for an application that has none."""
    number = await services.allocator.assign(application_id)
    return NumberResponse(membership_number=number)


@router.get("/membership-numbers/next", response_model=NumberResponse)
async def next_membership_number(
    year: Optional[int] = Query(None, ge=2000, le=9999),
    services: CivicServices = Depends(get_services),
):
    """Preview the next number for a year without reserving it."""
    number = await services.allocator.next_membership_number(year)
    return NumberResponse(membership_number=number)


# --- Volunteer Routes ---


@router.post("/volunteers", response_model=CreatedResponse, status_code=201)
async def submit_volunteer_application(
    body: ApplicationSubmitRequest,
    services: CivicServices = Depends(get_services),
):
    volunteer_id = await services.applications.submit_volunteer_application(
        body.fields, user_id=body.user_id
    )
    return CreatedResponse(id=volunteer_id)


@router.post("/volunteers/{volunteer_id}/review", response_model=VolunteerResponse)
async def review_volunteer(
    volunteer_id: str,
    body: VolunteerReviewRequest,
    services: CivicServices = Depends(get_services),
):
    volunteer = await services.applications.review_volunteer(
        volunteer_id, body.status, body.reviewed_by, notes=body.notes
    )
    return VolunteerResponse(
        id=volunteer.id,
        status=volunteer.status.value,
        reviewed_by=volunteer.reviewed_by,
        reviewed_at=volunteer.reviewed_at,
        notes=volunteer.notes,
    )


# --- Referral Routes ---


@router.post("/referrals", response_model=CreatedResponse, status_code=201)
async def invite(
    body: InviteRequest,
    services: CivicServices = Depends(get_services),
):
    referral_id = await services.referrals.invite(
        body.referrer_id, body.referral_code, email=body.email
    )
    return CreatedResponse(id=referral_id)


@router.post("/referrals/signup", response_model=ReferralResponse)
async def referral_signup(
    body: SignupTrigger,
    services: CivicServices = Depends(get_services),
):
    referral = await services.referrals.record_signup(
        body.referral_code, body.user_id, email=body.email
    )
    return _referral_response(referral)


@router.post("/referrals/application", response_model=ReferralResponse)
async def referral_application(
    body: UserTrigger,
    services: CivicServices = Depends(get_services),
):
    return _referral_response(await services.referrals.record_application(body.user_id))


@router.post("/referrals/payment", response_model=ReferralResponse)
async def referral_payment(
    body: UserTrigger,
    services: CivicServices = Depends(get_services),
):
    return _referral_response(await services.referrals.record_payment(body.user_id))


@router.post("/referrals/{referral_id}/transition", response_model=ReferralResponse)
async def referral_transition(
    referral_id: str,
    body: ReferralTransitionRequest,
    services: CivicServices = Depends(get_services),
):
    referral = await services.referrals.transition(referral_id, body.status)
    return _referral_response(referral)


# --- Draft Routes ---


@router.put("/drafts/{context}/{target_id}", response_model=DraftResponse)
async def upsert_draft(
    context: str,
    target_id: str,
    body: DraftRequest,
    services: CivicServices = Depends(get_services),
):
    await services.drafts.upsert_draft(
        context,
        target_id,
        body.subject,
        body.body,
        recipient_email=body.recipient_email,
        recipient_name=body.recipient_name,
    )
    draft = await services.drafts.get_draft(context, target_id)
    return _draft_response(draft)


@router.get("/drafts/{context}/{target_id}", response_model=DraftResponse)
async def get_draft(
    context: str,
    target_id: str,
    services: CivicServices = Depends(get_services),
):
    draft = await services.drafts.get_draft(context, target_id)
    if draft is None:
        return JSONResponse(
            status_code=404,
            content={"detail": f"No draft for {context}/{target_id}"},
        )
    return _draft_response(draft)


@router.delete("/drafts/{context}/{target_id}", status_code=204)
async def delete_draft(
    context: str,
    target_id: str,
    services: CivicServices = Depends(get_services),
):
    await services.drafts.delete_draft(context, target_id)


@router.post("/drafts/{context}/{target_id}/send", response_model=SendResultResponse)
async def send_draft(
    context: str,
    target_id: str,
    services: CivicServices = Depends(get_services),
):
    result = await services.bulk.send_draft(context, target_id)
    return SendResultResponse(
        success=result.success,
        error=result.error,
        message_id=result.message_id,
    )


def _draft_response(draft) -> DraftResponse:
    return DraftResponse(
        id=draft.id,
        context=draft.context.value,
        target_id=draft.target_id,
        subject=draft.subject,
        body=draft.body,
        recipient_email=draft.recipient_email,
        recipient_name=draft.recipient_name,
        updated_at=draft.updated_at,
    )


# --- Bulk Email ---


@router.post("/bulk-email", response_model=BulkEmailResponse)
async def bulk_email(
    body: BulkEmailRequest,
    services: CivicServices = Depends(get_services),
    settings: Settings = Depends(get_settings),
):
    """
    Send one message to many recipients, one at a time.

    Recipients without an email count as failed; only successful ids are
    marked as emailed.
    """
    if len(body.recipients) > settings.max_bulk_recipients:
        raise ValidationError(
            f"At most {settings.max_bulk_recipients} recipients per send",
            field_name="recipients",
        )

    report = await services.bulk.send(
        body.collection,
        [Recipient(id=r.id, email=r.email, name=r.name, user_id=r.user_id) for r in body.recipients],
        body.subject,
        body.body,
    )
    return BulkEmailResponse(
        sent=report.sent,
        failed=report.failed,
        marked_ids=report.marked_ids,
        failures=report.failures,
    )


# --- App Factory ---


async def civic_error_handler(request: Request, exc: CivicStoreError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error(
            "Request failed",
            extra={"path": request.url.path, "code": exc.code, "error": exc.message},
        )
    return JSONResponse(
        status_code=status,
        content={"detail": exc.message, "code": exc.code, "details": exc.details},
    )


def create_app(
    services: Optional[CivicServices] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        services: Prebuilt service container; built from the environment if None
        settings: HTTP settings; loaded from the environment if None
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage service container lifecycle."""
        container = services or CivicServices.from_config(ServiceConfig.from_env())
        await container.start()
        app.state.services = container
        app.state.settings = settings

        yield

        await container.stop()

    app = FastAPI(
        title="Civic Store",
        description="Data-access and workflow layer for the civic platform.",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.add_exception_handler(CivicStoreError, civic_error_handler)
    app.include_router(router, prefix="/api/v1")

    @app.get("/health")
    async def health():
        container: CivicServices = app.state.services
        return {
            "status": "healthy" if container.store.is_connected else "degraded",
            "service": "civic-store",
        }

    return app
