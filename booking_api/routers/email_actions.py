"""Email action router - one-click links from admin notification emails.

GET variants exist so links work straight from an email client; POST
variants serve programmatic callers. Every call spends a single-use token.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from booking_api.core.config import settings
from booking_api.core.deps import get_email_action_service
from booking_api.routers._responses import public_response
from booking_api.schemas.appointment import AppointmentPublicResponse
from booking_api.schemas.email_action import (
    AcceptAction,
    ActionTokensRead,
    CreateActionTokens,
    ProposeRescheduleAction,
    RejectAction,
    TokenVerificationRead,
)
from booking_api.services.email_action_service import EmailActionService

router = APIRouter(prefix="/email-actions", tags=["email-actions"])


@router.get("/appointments/{appointment_id}/accept", response_model=AppointmentPublicResponse)
def accept_appointment_link(
    appointment_id: UUID,
    token: str = Query(..., min_length=1),
    scheduled_at: str | None = None,
    service: EmailActionService = Depends(get_email_action_service),
):
    return public_response(service.accept_appointment(appointment_id, token, scheduled_at))


@router.post("/appointments/{appointment_id}/accept", response_model=AppointmentPublicResponse)
def accept_appointment(
    appointment_id: UUID,
    data: AcceptAction,
    service: EmailActionService = Depends(get_email_action_service),
):
    return public_response(
        service.accept_appointment(appointment_id, data.token, data.scheduled_at)
    )


@router.get("/appointments/{appointment_id}/reject", response_model=AppointmentPublicResponse)
def reject_appointment_link(
    appointment_id: UUID,
    token: str = Query(..., min_length=1),
    reason: str | None = Query(None, max_length=500),
    service: EmailActionService = Depends(get_email_action_service),
):
    return public_response(service.reject_appointment(appointment_id, token, reason))


@router.post("/appointments/{appointment_id}/reject", response_model=AppointmentPublicResponse)
def reject_appointment(
    appointment_id: UUID,
    data: RejectAction,
    service: EmailActionService = Depends(get_email_action_service),
):
    return public_response(service.reject_appointment(appointment_id, data.token, data.reason))


@router.get(
    "/appointments/{appointment_id}/propose-reschedule",
    response_model=AppointmentPublicResponse,
)
def propose_reschedule_link(
    appointment_id: UUID,
    token: str = Query(..., min_length=1),
    new_scheduled_at: str = Query(..., min_length=1),
    service: EmailActionService = Depends(get_email_action_service),
):
    return public_response(
        service.propose_reschedule(appointment_id, token, new_scheduled_at)
    )


@router.post(
    "/appointments/{appointment_id}/propose-reschedule",
    response_model=AppointmentPublicResponse,
)
def propose_reschedule(
    appointment_id: UUID,
    data: ProposeRescheduleAction,
    service: EmailActionService = Depends(get_email_action_service),
):
    return public_response(
        service.propose_reschedule(appointment_id, data.token, data.new_scheduled_at)
    )


@router.get("/verify-token/{token}", response_model=TokenVerificationRead)
def verify_token(
    token: str,
    service: EmailActionService = Depends(get_email_action_service),
):
    """Check a token without spending it (used to render the action page)."""
    result = service.verify_token(token)
    return TokenVerificationRead(
        valid=result.valid,
        entity_type=result.entity_type,
        entity_id=result.entity_id,
        action=result.action,
    )


@router.post("/test/create-tokens", response_model=ActionTokensRead)
def create_test_tokens(
    data: CreateActionTokens,
    service: EmailActionService = Depends(get_email_action_service),
):
    """Development helper: mint accept/reject/reschedule tokens for an entity."""
    if settings.is_production:
        raise HTTPException(status_code=404, detail="Not found")
    links = service.create_test_tokens(data.entity_type, data.entity_id)
    return ActionTokensRead(
        accept_token=links.accept_token,
        reject_token=links.reject_token,
        reschedule_token=links.reschedule_token,
    )
