"""Appointment schemas - Pydantic models for appointments API."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from booking_api.db.enums import AppointmentReason, AppointmentStatus


# =============================================================================
# Requests
# =============================================================================

class AppointmentCreate(BaseModel):
    """Public booking request."""
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: str | None = Field(None, max_length=50)
    reason: AppointmentReason | None = None
    reason_other: str | None = Field(None, max_length=255)
    message: str | None = Field(None, max_length=2000)
    requested_at: str = Field(..., description="ISO-8601; naive values are read in `timezone`")
    timezone: str = Field(..., min_length=1, max_length=64, description="IANA zone of the client")
    consent: bool = False


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus
    scheduled_at: str | None = None


class AppointmentSchedule(BaseModel):
    """Admin confirm / reschedule payload (naive values use the business timezone)."""
    scheduled_at: str


class AppointmentConfirm(BaseModel):
    scheduled_at: str | None = None


# =============================================================================
# Responses
# =============================================================================

class ContactRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    first_name: str
    last_name: str
    phone: str | None


class ReminderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    due_at: datetime
    provider_ref: str | None
    sent_at: datetime | None


class AppointmentPublicRead(BaseModel):
    """Public-safe view (no tokens)."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: AppointmentStatus
    requested_at: datetime
    scheduled_at: datetime | None
    timezone: str
    confirmed_at: datetime | None
    cancelled_at: datetime | None


class AppointmentRead(AppointmentPublicRead):
    """Admin view."""
    contact: ContactRead
    reason: str | None
    reason_other: str | None
    message: str | None
    created_at: datetime
    updated_at: datetime
    reminder: ReminderRead | None = None


class TransitionMeta(BaseModel):
    reminder_stale: bool = False
    warnings: list[str] = Field(default_factory=list)
    notification_error: str | None = None


class AppointmentPublicResponse(BaseModel):
    appointment: AppointmentPublicRead
    meta: TransitionMeta


class AppointmentAdminResponse(BaseModel):
    appointment: AppointmentRead
    meta: TransitionMeta


class CanCancelResponse(BaseModel):
    can_cancel: bool
    remaining_hours: float | None
    message: str


class AppointmentStats(BaseModel):
    total: int
    pending: int
    confirmed: int
    rescheduled: int
    cancelled: int
    rejected: int
    completed: int
