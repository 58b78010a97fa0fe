# invitations router: create, redeem, preview, list and delete invitation codes
# therapists own invitations; patients redeem them; preview needs no sign-in

import logging
from typing import Optional

from fastapi import APIRouter, Depends

from app.config import settings
from app.dependencies import (
    get_config_resolver,
    get_current_user,
    get_invitation_queries,
    get_invitation_store,
    resolve_scope,
)
from app.errors import FailedPrecondition, InvalidArgument, PermissionDenied, ResourceExhausted, ServiceError, Unknown
from app.models.invitation import (
    DeleteInvitationResponse,
    InvitationCodeRequest,
    InvitationCreate,
    InvitationCreateResponse,
    InvitationDeleteRequest,
    InvitationListResponse,
    InvitationPreviewResult,
    InvitationResult,
    PatientScopeRequest,
    TherapistScopeRequest,
)
from app.models.user import AuthContext
from app.services.code_generator import ensure_unique_code, is_valid_code
from app.services.config_resolver import ConfigResolver
from app.services.invitation_queries import InvitationQueries
from app.services.invitation_store import InvitationStore
from app.services.notification import send_invitation_email

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/invitations", tags=["invitations"])

CREATE_FAILED = "Failed to create invitation"


def _require_code(body: Optional[InvitationCodeRequest]) -> str:
    code = (body.code or "").strip() if body else ""
    if not code or not is_valid_code(code):
        raise InvalidArgument("code must be a 5-digit string")
    return code


@router.post("/create", response_model=InvitationCreateResponse)
async def create_invitation(
    body: InvitationCreate,
    current_user: AuthContext = Depends(get_current_user),
    store: InvitationStore = Depends(get_invitation_store),
    resolver: ConfigResolver = Depends(get_config_resolver),
):
    """create a pending invitation and email the code to the patient"""
    if not body.therapist_id or not body.patient_email or not body.patient_first_name:
        raise InvalidArgument("Missing required fields: therapistId, patientEmail, or patientFirstName")

    if body.therapist_id != current_user.uid:
        raise PermissionDenied("You can only create invitations for yourself")

    invitation_id = None
    try:
        code = await ensure_unique_code(store, settings.INVITATION_CODE_MAX_ATTEMPTS)
        record = await store.create(
            code=code,
            therapist_id=body.therapist_id,
            patient_email=body.patient_email,
            patient_first_name=body.patient_first_name,
            patient_last_name=body.patient_last_name or "",
        )
        invitation_id = record.id

        # the record is durable before any delivery attempt
        email_config = await resolver.sendgrid()
        email_sent = await send_invitation_email(
            to_email=record.patient_email,
            code=record.code,
            first_name=record.patient_first_name,
            config=email_config,
        )

        return InvitationCreateResponse(
            invitationId=record.id,
            emailSent=email_sent,
            invitation=record.to_response(),
        )
    except ResourceExhausted:
        raise
    except Exception as e:
        logger.error(f"Error creating invitation for therapist {body.therapist_id}: {e!r}")
        detail = e.message if isinstance(e, ServiceError) else str(e)

        if invitation_id is not None:
            try:
                await store.discard(invitation_id)
            except Exception as cleanup_error:
                logger.error(f"Failed to delete invitation {invitation_id} after error: {cleanup_error!r}")

        try:
            await store.record_error(
                therapist_id=body.therapist_id,
                patient_email=body.patient_email,
                message=detail or CREATE_FAILED,
                error=e,
                response_status=getattr(e, "status_code", None),
            )
        except Exception as log_error:
            logger.error(f"Failed to persist invitation error context: {log_error!r}")

        message = f"{CREATE_FAILED}: {detail}" if detail else CREATE_FAILED
        raise FailedPrecondition(message, {"message": detail or CREATE_FAILED}) from e


@router.post("/redeem", response_model=InvitationResult)
async def redeem_invitation(
    body: Optional[InvitationCodeRequest] = None,
    current_user: AuthContext = Depends(get_current_user),
    store: InvitationStore = Depends(get_invitation_store),
):
    """consume a code for the signed-in patient; null when the code cannot be used"""
    code = _require_code(body)
    try:
        record = await store.redeem(code, current_user.uid)
    except ServiceError:
        raise
    except Exception as e:
        raise Unknown(f"Failed to validate code: {e}") from e
    return InvitationResult(invitation=record.to_response() if record else None)


@router.post("/preview", response_model=InvitationPreviewResult)
async def preview_invitation(
    body: Optional[InvitationCodeRequest] = None,
    queries: InvitationQueries = Depends(get_invitation_queries),
):
    """unauthenticated lookup; only pending codes are revealed"""
    code = _require_code(body)
    try:
        record = await queries.preview(code)
    except Exception as e:
        raise Unknown(f"Failed to preview code: {e}") from e
    return InvitationPreviewResult(invitation=record.to_preview() if record else None)


@router.post("/list", response_model=InvitationListResponse)
async def list_invitations(
    body: Optional[TherapistScopeRequest] = None,
    current_user: AuthContext = Depends(get_current_user),
    queries: InvitationQueries = Depends(get_invitation_queries),
):
    """every invitation the therapist created, newest first"""
    therapist_id = resolve_scope(
        body.therapist_id if body else None, current_user, "You can only view your own invitations."
    )
    try:
        records = await queries.list_for_therapist(therapist_id)
    except Exception as e:
        raise Unknown(f"Failed to fetch invitations: {e}") from e
    return InvitationListResponse(invitations=[r.to_response() for r in records])


@router.post("/accepted/therapist", response_model=InvitationListResponse)
async def list_accepted_for_therapist(
    body: Optional[TherapistScopeRequest] = None,
    current_user: AuthContext = Depends(get_current_user),
    queries: InvitationQueries = Depends(get_invitation_queries),
):
    therapist_id = resolve_scope(
        body.therapist_id if body else None, current_user, "You can only view your own accepted invitations."
    )
    try:
        records = await queries.list_accepted_for_therapist(therapist_id)
    except Exception as e:
        raise Unknown(f"Failed to fetch accepted invitations: {e}") from e
    return InvitationListResponse(invitations=[r.to_response() for r in records])


@router.post("/accepted/patient", response_model=InvitationListResponse)
async def list_accepted_for_patient(
    body: Optional[PatientScopeRequest] = None,
    current_user: AuthContext = Depends(get_current_user),
    queries: InvitationQueries = Depends(get_invitation_queries),
):
    patient_id = resolve_scope(
        body.patient_id if body else None, current_user, "You can only view your own invitations."
    )
    try:
        records = await queries.list_accepted_for_patient(patient_id)
    except Exception as e:
        raise Unknown(f"Failed to fetch patient invitations: {e}") from e
    return InvitationListResponse(invitations=[r.to_response() for r in records])


@router.post("/delete", response_model=DeleteInvitationResponse)
async def delete_invitation(
    body: Optional[InvitationDeleteRequest] = None,
    current_user: AuthContext = Depends(get_current_user),
    store: InvitationStore = Depends(get_invitation_store),
):
    """therapist removes an unused invitation; used ones are permanent"""
    invitation_id = body.invitation_id if body else None
    if not invitation_id:
        raise InvalidArgument("invitationId is required")
    try:
        await store.delete(invitation_id, current_user.uid)
    except ServiceError:
        raise
    except Exception as e:
        raise Unknown(f"Failed to delete invitation: {e}") from e
    return DeleteInvitationResponse(success=True)
