"""Validation service - business-rule predicates for appointment scheduling.

Every function is pure: callers pass "now" and the IANA zone names
explicitly, so rules can be evaluated for any instant in tests.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta

from booking_api.core.clock import add_months, get_zone, parse_datetime, to_utc, to_zone
from booking_api.core.errors import (
    CancellationWindowError,
    InvalidDateError,
    InvalidStateError,
    SlotLegalityError,
)
from booking_api.db.enums import (
    APPOINTMENT_TRANSITIONS,
    TERMINAL_APPOINTMENT_STATUSES,
    AppointmentStatus,
)

MINIMUM_CANCELLATION_HOURS = 24
MINIMUM_RESCHEDULE_LEAD_HOURS = 24

# Half-open hour ranges, plus 17:00 exactly as the last bookable slot.
MORNING_SLOT = (8, 12)
AFTERNOON_SLOT = (14, 17)
LAST_SLOT = time(17, 0)
SLOT_MINUTES = (0, 30)


def _status(value: AppointmentStatus | str) -> AppointmentStatus:
    return value if isinstance(value, AppointmentStatus) else AppointmentStatus(value)


# =============================================================================
# Booking horizon
# =============================================================================


def booking_window(
    *, now: datetime, reference_timezone: str, caller_timezone: str
) -> tuple[datetime, datetime]:
    """
    Return the (min, max) booking bounds expressed in the caller's zone.

    min = tomorrow 00:00:00 and max = one calendar month from today at
    23:59:59, both computed in the reference zone.
    """
    local_now = to_zone(now, reference_timezone)
    min_date = (local_now + timedelta(days=1)).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    max_date = add_months(local_now, 1).replace(
        hour=23, minute=59, second=59, microsecond=0
    )
    caller_zone = get_zone(caller_timezone)
    return min_date.astimezone(caller_zone), max_date.astimezone(caller_zone)


def validate_booking_date(
    requested_at: datetime | str | None,
    caller_timezone: str | None,
    *,
    now: datetime,
    reference_timezone: str,
) -> datetime:
    """
    Validate a client-requested date against the booking horizon.

    Naive values are read in the caller's zone. Returns the UTC instant.
    """
    zone_name = caller_timezone or ""
    get_zone(zone_name)
    requested = parse_datetime(requested_at, zone_name)
    min_date, max_date = booking_window(
        now=now, reference_timezone=reference_timezone, caller_timezone=zone_name
    )
    if not (min_date < requested < max_date):
        raise InvalidDateError(
            "Appointment date must be between tomorrow and one month from today"
        )
    return to_utc(requested)


def is_within_booking_window(
    requested_at: datetime | str | None,
    caller_timezone: str | None,
    *,
    now: datetime,
    reference_timezone: str,
) -> bool:
    try:
        validate_booking_date(
            requested_at, caller_timezone, now=now, reference_timezone=reference_timezone
        )
    except InvalidDateError:
        return False
    return True


# =============================================================================
# Slot legality
# =============================================================================


def is_valid_time_slot(value: datetime, reference_timezone: str) -> bool:
    """True if ``value`` falls on an authorized half-hour slot in the reference zone."""
    local = to_zone(value, reference_timezone)
    if local.minute not in SLOT_MINUTES:
        return False
    if local.time().replace(second=0, microsecond=0) == LAST_SLOT:
        return True
    hour = local.hour
    return MORNING_SLOT[0] <= hour < MORNING_SLOT[1] or AFTERNOON_SLOT[0] <= hour < AFTERNOON_SLOT[1]


def validate_time_slot(value: datetime, reference_timezone: str) -> None:
    local = to_zone(value, reference_timezone)
    if local.minute not in SLOT_MINUTES:
        raise SlotLegalityError("Slots must start on the hour or half hour")
    if not is_valid_time_slot(value, reference_timezone):
        raise SlotLegalityError("Authorized slots are 8:00-12:00 and 14:00-17:00")


# =============================================================================
# Reschedule rules
# =============================================================================


def validate_reschedule_lead_time(
    proposed: datetime,
    *,
    now: datetime,
    minimum_hours: int = MINIMUM_RESCHEDULE_LEAD_HOURS,
) -> None:
    if to_utc(proposed) - to_utc(now) < timedelta(hours=minimum_hours):
        raise InvalidDateError(
            f"A reschedule must be proposed at least {minimum_hours}h in advance"
        )


def validate_reschedule_date(
    value: datetime | str | None,
    *,
    now: datetime,
    reference_timezone: str,
    minimum_hours: int = MINIMUM_RESCHEDULE_LEAD_HOURS,
) -> datetime:
    """Parse (naive = reference zone), then check lead time and slot. Returns UTC."""
    proposed = parse_datetime(value, reference_timezone)
    validate_reschedule_lead_time(proposed, now=now, minimum_hours=minimum_hours)
    validate_time_slot(proposed, reference_timezone)
    return to_utc(proposed)


# =============================================================================
# Cancellation window
# =============================================================================


def hours_until(scheduled_at: datetime, *, now: datetime) -> float:
    return (to_utc(scheduled_at) - to_utc(now)).total_seconds() / 3600


def remaining_hours(scheduled_at: datetime | None, *, now: datetime) -> float | None:
    """Hours left before the appointment, clamped to >= 0 and rounded to 2 decimals."""
    if scheduled_at is None:
        return None
    return round(max(0.0, hours_until(scheduled_at, now=now)), 2)


def can_cancel_appointment(
    status: AppointmentStatus | str,
    scheduled_at: datetime | None,
    *,
    now: datetime,
    minimum_hours: int = MINIMUM_CANCELLATION_HOURS,
) -> bool:
    """
    Public-flow cancellation rule.

    PENDING and RESCHEDULED are always cancellable (the client has not agreed
    to a RESCHEDULED time yet). CONFIRMED needs at least ``minimum_hours``.
    """
    current = _status(status)
    if current in (AppointmentStatus.PENDING, AppointmentStatus.RESCHEDULED):
        return True
    if current != AppointmentStatus.CONFIRMED or scheduled_at is None:
        return False
    return hours_until(scheduled_at, now=now) >= minimum_hours


def validate_cancellation(
    status: AppointmentStatus | str,
    scheduled_at: datetime | None,
    *,
    now: datetime,
    minimum_hours: int = MINIMUM_CANCELLATION_HOURS,
) -> None:
    current = _status(status)
    if current not in (
        AppointmentStatus.PENDING,
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.RESCHEDULED,
    ):
        raise InvalidStateError("This appointment can no longer be cancelled")
    if not can_cancel_appointment(current, scheduled_at, now=now, minimum_hours=minimum_hours):
        raise CancellationWindowError(
            f"Appointments cannot be cancelled less than {minimum_hours}h in advance. "
            "Please contact us directly."
        )


def cancellation_message(
    status: AppointmentStatus | str,
    can_cancel: bool,
    minimum_hours: int = MINIMUM_CANCELLATION_HOURS,
) -> str:
    current = _status(status)
    if current == AppointmentStatus.PENDING:
        return "You can cancel this request"
    if current in TERMINAL_APPOINTMENT_STATUSES:
        return f"This appointment is already {current.value} and cannot be cancelled"
    if not can_cancel:
        return f"This appointment cannot be cancelled (less than {minimum_hours}h in advance)"
    return "You can cancel this appointment"


# =============================================================================
# State machine
# =============================================================================


def can_transition(current: AppointmentStatus | str, target: AppointmentStatus | str) -> bool:
    return _status(target) in APPOINTMENT_TRANSITIONS[_status(current)]


def validate_transition(current: AppointmentStatus | str, target: AppointmentStatus | str) -> None:
    if not can_transition(current, target):
        raise InvalidStateError(
            f"Cannot move appointment from {_status(current).value} to {_status(target).value}"
        )


def validate_reminder_eligible(
    status: AppointmentStatus | str, scheduled_at: datetime | None
) -> None:
    if _status(status) != AppointmentStatus.CONFIRMED or scheduled_at is None:
        raise InvalidStateError("Appointment must be confirmed and have a scheduled date")
