"""Response builders shared by the appointment routers."""

from booking_api.schemas.appointment import (
    AppointmentAdminResponse,
    AppointmentPublicRead,
    AppointmentPublicResponse,
    AppointmentRead,
    TransitionMeta,
)
from booking_api.services.appointment_service import TransitionResult


def transition_meta(result: TransitionResult) -> TransitionMeta:
    return TransitionMeta(
        reminder_stale=result.reminder_stale,
        warnings=result.warnings,
        notification_error=result.notification_error,
    )


def public_response(result: TransitionResult) -> AppointmentPublicResponse:
    return AppointmentPublicResponse(
        appointment=AppointmentPublicRead.model_validate(result.appointment),
        meta=transition_meta(result),
    )


def admin_response(result: TransitionResult) -> AppointmentAdminResponse:
    return AppointmentAdminResponse(
        appointment=AppointmentRead.model_validate(result.appointment),
        meta=transition_meta(result),
    )
