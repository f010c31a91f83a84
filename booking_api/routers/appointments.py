"""Public appointment router - unauthenticated, token-authorized endpoints.

Clients can:
- Submit an appointment request
- Confirm, cancel, or check cancellability via the links in their emails
- Accept or decline a proposed new time
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from booking_api.core.deps import get_orchestrator
from booking_api.core.rate_limit import BOOKING_LIMIT, limiter
from booking_api.routers._responses import public_response
from booking_api.schemas.appointment import (
    AppointmentCreate,
    AppointmentPublicResponse,
    CanCancelResponse,
)
from booking_api.services.appointment_service import AppointmentOrchestrator, ContactInput

router = APIRouter()


@router.post("", response_model=AppointmentPublicResponse, status_code=201)
@limiter.limit(BOOKING_LIMIT)
def create_appointment(
    data: AppointmentCreate,
    request: Request,
    orchestrator: AppointmentOrchestrator = Depends(get_orchestrator),
):
    """Request an appointment. The client receives confirm/cancel links by email."""
    result = orchestrator.create(
        contact=ContactInput(
            email=data.email,
            first_name=data.first_name,
            last_name=data.last_name,
            phone=data.phone,
        ),
        requested_at=data.requested_at,
        timezone=data.timezone,
        consent=data.consent,
        reason=data.reason.value if data.reason else None,
        reason_other=data.reason_other,
        message=data.message,
    )
    return public_response(result)


@router.get("/{appointment_id}/confirm", response_model=AppointmentPublicResponse)
def confirm_appointment(
    appointment_id: UUID,
    token: str = Query(..., min_length=1),
    orchestrator: AppointmentOrchestrator = Depends(get_orchestrator),
):
    return public_response(orchestrator.confirm_by_token(appointment_id, token))


@router.get("/{appointment_id}/cancel", response_model=AppointmentPublicResponse)
def cancel_appointment(
    appointment_id: UUID,
    token: str = Query(..., min_length=1),
    orchestrator: AppointmentOrchestrator = Depends(get_orchestrator),
):
    return public_response(orchestrator.cancel(appointment_id, token))


@router.get("/{appointment_id}/can-cancel", response_model=CanCancelResponse)
def can_cancel_appointment(
    appointment_id: UUID,
    token: str = Query(..., min_length=1),
    orchestrator: AppointmentOrchestrator = Depends(get_orchestrator),
):
    """Read-only check used by the cancel page before asking for confirmation."""
    check = orchestrator.can_cancel_check(appointment_id, token)
    return CanCancelResponse(
        can_cancel=check.can_cancel,
        remaining_hours=check.remaining_hours,
        message=check.message,
    )


@router.get("/{appointment_id}/accept-reschedule", response_model=AppointmentPublicResponse)
def accept_reschedule(
    appointment_id: UUID,
    token: str = Query(..., min_length=1),
    orchestrator: AppointmentOrchestrator = Depends(get_orchestrator),
):
    return public_response(orchestrator.accept_reschedule(appointment_id, token))


@router.get("/{appointment_id}/reject-reschedule", response_model=AppointmentPublicResponse)
def reject_reschedule(
    appointment_id: UUID,
    token: str = Query(..., min_length=1),
    orchestrator: AppointmentOrchestrator = Depends(get_orchestrator),
):
    return public_response(orchestrator.reject_reschedule(appointment_id, token))
