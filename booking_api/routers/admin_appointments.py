"""Admin appointment router - backoffice endpoints.

Protected by the X-Admin-Api-Key header. Admin operations skip token checks
but keep the state machine and time rules.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from booking_api.core.clock import Clock
from booking_api.core.deps import get_clock, get_db, get_orchestrator, require_admin
from booking_api.routers._responses import admin_response
from booking_api.schemas.appointment import (
    AppointmentAdminResponse,
    AppointmentConfirm,
    AppointmentRead,
    AppointmentSchedule,
    AppointmentStats,
    AppointmentStatusUpdate,
)
from booking_api.db.enums import AppointmentStatus
from booking_api.services import appointment_service
from booking_api.services.appointment_service import AppointmentOrchestrator

router = APIRouter(dependencies=[Depends(require_admin)])


# =============================================================================
# Queries
# =============================================================================

@router.get("", response_model=list[AppointmentRead])
def list_appointments(
    status: AppointmentStatus | None = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    return appointment_service.list_appointments(db, status=status, limit=limit, offset=offset)


@router.get("/stats", response_model=AppointmentStats)
def get_stats(db: Session = Depends(get_db)):
    """Appointment counts per status."""
    return AppointmentStats(**appointment_service.count_by_status(db))


@router.get("/upcoming", response_model=list[AppointmentRead])
def list_upcoming(
    days: int = Query(7, ge=1, le=365),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Confirmed appointments in the next N days, soonest first."""
    return appointment_service.list_upcoming(db, days=days, now=clock.now())


@router.get("/pending", response_model=list[AppointmentRead])
def list_pending(db: Session = Depends(get_db)):
    return appointment_service.list_appointments(db, status=AppointmentStatus.PENDING)


@router.get("/{appointment_id}", response_model=AppointmentRead)
def get_appointment(appointment_id: UUID, db: Session = Depends(get_db)):
    appointment = appointment_service.get_appointment(db, appointment_id)
    if not appointment:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return appointment


# =============================================================================
# Transitions
# =============================================================================

@router.patch("/{appointment_id}/confirm", response_model=AppointmentAdminResponse)
def confirm_appointment(
    appointment_id: UUID,
    data: AppointmentConfirm | None = None,
    orchestrator: AppointmentOrchestrator = Depends(get_orchestrator),
):
    scheduled_at = data.scheduled_at if data else None
    return admin_response(orchestrator.confirm(appointment_id, scheduled_at))


@router.put("/{appointment_id}/status", response_model=AppointmentAdminResponse)
def update_status(
    appointment_id: UUID,
    data: AppointmentStatusUpdate,
    orchestrator: AppointmentOrchestrator = Depends(get_orchestrator),
):
    return admin_response(
        orchestrator.update_status(appointment_id, data.status, data.scheduled_at)
    )


@router.put("/{appointment_id}/reschedule", response_model=AppointmentAdminResponse)
def reschedule_appointment(
    appointment_id: UUID,
    data: AppointmentSchedule,
    orchestrator: AppointmentOrchestrator = Depends(get_orchestrator),
):
    """Move the appointment to a new agreed time (ends CONFIRMED)."""
    return admin_response(orchestrator.reschedule(appointment_id, data.scheduled_at))


@router.put("/{appointment_id}/propose-reschedule", response_model=AppointmentAdminResponse)
def propose_reschedule(
    appointment_id: UUID,
    data: AppointmentSchedule,
    orchestrator: AppointmentOrchestrator = Depends(get_orchestrator),
):
    """Propose a new time; the client accepts or declines it by email."""
    return admin_response(orchestrator.propose_reschedule(appointment_id, data.scheduled_at))


@router.put("/{appointment_id}/cancel", response_model=AppointmentAdminResponse)
def cancel_appointment(
    appointment_id: UUID,
    orchestrator: AppointmentOrchestrator = Depends(get_orchestrator),
):
    return admin_response(orchestrator.cancel_admin(appointment_id))


@router.delete("/{appointment_id}", status_code=204)
def delete_appointment(
    appointment_id: UUID,
    orchestrator: AppointmentOrchestrator = Depends(get_orchestrator),
):
    orchestrator.delete(appointment_id)
    return Response(status_code=204)


@router.post("/{appointment_id}/send-reminder", response_model=AppointmentAdminResponse)
def send_reminder(
    appointment_id: UUID,
    orchestrator: AppointmentOrchestrator = Depends(get_orchestrator),
):
    return admin_response(orchestrator.send_reminder(appointment_id))
