"""Appointment service - lifecycle orchestration and appointment queries.

Every mutating operation follows the same order:

1. lock the appointment row (SELECT ... FOR UPDATE)
2. validate token, state and time rules (errors abort before any write)
3. write the new status and flush
4. coordinate the reminder inside a SAVEPOINT
5. commit
6. dispatch notifications (best-effort, after the commit)

A scheduler failure in step 4 only rolls back the savepoint: the status
change still commits and the result is flagged ``reminder_stale``.
Admin delete is the exception: it aborts if the reminder cannot be cancelled.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterator
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from booking_api.core.clock import Clock, SystemClock, parse_datetime, to_utc
from booking_api.core.config import settings
from booking_api.core.errors import (
    InvalidDateError,
    InvalidStateError,
    InvalidTokenError,
    MissingScheduleError,
    NotFoundError,
    SchedulerError,
)
from booking_api.core.security import generate_security_tokens, tokens_match
from booking_api.db.enums import (
    ActionTokenEntity,
    AppointmentEmailType,
    AppointmentStatus,
    EmailSentBy,
    TERMINAL_APPOINTMENT_STATUSES,
)
from booking_api.db.models import Appointment, Contact
from booking_api.services import validation_service
from booking_api.services.action_token_service import ActionTokenRegistry
from booking_api.services.appointment_email_service import (
    AppointmentNotifier,
    QueuedEmailNotifier,
    action_link_variables,
)
from booking_api.services.job_scheduler import DatabaseJobScheduler, DelayedJobScheduler
from booking_api.services.reminder_service import ReminderCoordinator

logger = logging.getLogger(__name__)

# Admin may propose a new time before confirming (PENDING) or re-propose.
PROPOSABLE_STATUSES = frozenset(
    {AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED, AppointmentStatus.RESCHEDULED}
)


@dataclass
class TransitionResult:
    appointment: Appointment
    reminder_stale: bool = False
    warnings: list[str] = field(default_factory=list)
    notification_error: str | None = None


@dataclass(frozen=True)
class CancelCheck:
    can_cancel: bool
    remaining_hours: float | None
    message: str


@dataclass(frozen=True)
class ContactInput:
    email: str
    first_name: str
    last_name: str
    phone: str | None = None


# =============================================================================
# Queries
# =============================================================================


def get_appointment(db: Session, appointment_id: UUID) -> Appointment | None:
    return db.query(Appointment).filter(Appointment.id == appointment_id).first()


def list_appointments(
    db: Session,
    status: AppointmentStatus | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Appointment]:
    """List appointments, newest first, optionally filtered by status."""
    query = db.query(Appointment)
    if status:
        query = query.filter(Appointment.status == status.value)
    return query.order_by(Appointment.created_at.desc()).offset(offset).limit(limit).all()


def list_upcoming(db: Session, days: int = 7, now: datetime | None = None) -> list[Appointment]:
    """Confirmed appointments scheduled within the next ``days`` days."""
    start = now or SystemClock().now()
    return (
        db.query(Appointment)
        .filter(
            Appointment.status == AppointmentStatus.CONFIRMED.value,
            Appointment.scheduled_at.is_not(None),
            Appointment.scheduled_at >= start,
            Appointment.scheduled_at <= start + timedelta(days=days),
        )
        .order_by(Appointment.scheduled_at)
        .all()
    )


def count_by_status(db: Session) -> dict[str, int]:
    """Appointment counts per status plus a total."""
    rows = db.query(Appointment.status, func.count(Appointment.id)).group_by(Appointment.status).all()
    stats = {status.value: 0 for status in AppointmentStatus}
    for status, count in rows:
        stats[status] = count
    stats["total"] = sum(count for _, count in rows)
    return stats


def upsert_contact(
    db: Session, contact: ContactInput, consent: bool, now: datetime
) -> Contact:
    """Find a contact by email (case-insensitive) or create it; refresh its details."""
    email = contact.email.strip().lower()
    existing = db.query(Contact).filter(Contact.email == email).first()
    if existing is None:
        existing = Contact(email=email)
        db.add(existing)
    existing.first_name = contact.first_name.strip()
    existing.last_name = contact.last_name.strip()
    if contact.phone:
        existing.phone = contact.phone.strip()
    if consent:
        existing.consent_at = now
    db.flush()
    return existing


# =============================================================================
# Orchestrator
# =============================================================================


class AppointmentOrchestrator:
    def __init__(
        self,
        db: Session,
        *,
        clock: Clock | None = None,
        scheduler: DelayedJobScheduler | None = None,
        reminders: ReminderCoordinator | None = None,
        notifier: AppointmentNotifier | None = None,
        tokens: ActionTokenRegistry | None = None,
        reference_timezone: str | None = None,
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.reference_timezone = reference_timezone or settings.REFERENCE_TIMEZONE
        self.reminders = reminders or ReminderCoordinator(
            db,
            scheduler or DatabaseJobScheduler(db, self.clock),
            self.clock,
            settings.REMINDER_LEAD_HOURS,
        )
        self.notifier = notifier or QueuedEmailNotifier(db)
        self.tokens = tokens or ActionTokenRegistry(db, self.clock)

    # -------------------------------------------------------------------------
    # Public (client) operations
    # -------------------------------------------------------------------------

    def create(
        self,
        contact: ContactInput,
        requested_at: datetime | str,
        timezone: str,
        consent: bool,
        reason: str | None = None,
        reason_other: str | None = None,
        message: str | None = None,
    ) -> TransitionResult:
        """Record a new PENDING request and notify the client and the admin."""
        now = self.clock.now()
        requested = validation_service.validate_booking_date(
            requested_at, timezone, now=now, reference_timezone=self.reference_timezone
        )

        with self._unit_of_work():
            saved_contact = upsert_contact(self.db, contact, consent, now)
            confirmation_token, cancellation_token = generate_security_tokens()
            appointment = Appointment(
                contact_id=saved_contact.id,
                status=AppointmentStatus.PENDING.value,
                requested_at=requested,
                timezone=timezone,
                reason=reason,
                reason_other=reason_other,
                message=message,
                confirmation_token=confirmation_token,
                cancellation_token=cancellation_token,
            )
            self.db.add(appointment)
            self.db.commit()
            self.db.refresh(appointment)

        logger.info("Appointment requested appointment=%s", appointment.id)
        result = TransitionResult(appointment)
        self._notify(result, AppointmentEmailType.REQUEST_RECEIVED)
        self._notify(
            result,
            AppointmentEmailType.ADMIN_NEW_REQUEST,
            extra_factory=self._admin_action_links,
        )
        return result

    def confirm_by_token(self, appointment_id: UUID, token: str) -> TransitionResult:
        """Client accepts the slot already set on the appointment."""
        with self._unit_of_work():
            appointment = self._lock(appointment_id)
            if not tokens_match(appointment.confirmation_token, token):
                raise InvalidTokenError("Invalid confirmation token")
            validation_service.validate_transition(appointment.status, AppointmentStatus.CONFIRMED)
            if appointment.scheduled_at is None:
                raise MissingScheduleError()
            result = self._confirm(appointment, appointment.scheduled_at)
        self._notify(result, AppointmentEmailType.CONFIRMED)
        return result

    def cancel(self, appointment_id: UUID, token: str) -> TransitionResult:
        """Client cancellation, subject to the cancellation window."""
        with self._unit_of_work():
            appointment = self._lock(appointment_id)
            if not tokens_match(appointment.cancellation_token, token):
                raise InvalidTokenError("Invalid cancellation token")
            validation_service.validate_cancellation(
                appointment.status,
                appointment.scheduled_at,
                now=self.clock.now(),
                minimum_hours=settings.MINIMUM_CANCELLATION_HOURS,
            )
            result = self._cancel(appointment)
        self._notify(result, AppointmentEmailType.CANCELLED)
        return result

    def can_cancel_check(self, appointment_id: UUID, token: str) -> CancelCheck:
        appointment = self._get(appointment_id)
        if not tokens_match(appointment.cancellation_token, token):
            raise InvalidTokenError("Invalid cancellation token")
        now = self.clock.now()
        can_cancel = validation_service.can_cancel_appointment(
            appointment.status,
            appointment.scheduled_at,
            now=now,
            minimum_hours=settings.MINIMUM_CANCELLATION_HOURS,
        )
        return CancelCheck(
            can_cancel=can_cancel,
            remaining_hours=validation_service.remaining_hours(appointment.scheduled_at, now=now),
            message=validation_service.cancellation_message(
                appointment.status, can_cancel, settings.MINIMUM_CANCELLATION_HOURS
            ),
        )

    def accept_reschedule(self, appointment_id: UUID, token: str) -> TransitionResult:
        with self._unit_of_work():
            appointment = self._lock(appointment_id)
            if not tokens_match(appointment.confirmation_token, token):
                raise InvalidTokenError("Invalid confirmation token")
            self._require_rescheduled(appointment)
            if appointment.scheduled_at is None:
                raise MissingScheduleError()
            result = self._confirm(appointment, appointment.scheduled_at)
        self._notify(result, AppointmentEmailType.CONFIRMED)
        return result

    def reject_reschedule(self, appointment_id: UUID, token: str) -> TransitionResult:
        with self._unit_of_work():
            appointment = self._lock(appointment_id)
            if not tokens_match(appointment.cancellation_token, token):
                raise InvalidTokenError("Invalid cancellation token")
            self._require_rescheduled(appointment)
            result = self._cancel(appointment)
        self._notify(result, AppointmentEmailType.CANCELLED)
        return result

    # -------------------------------------------------------------------------
    # Admin operations (caller already authorized)
    # -------------------------------------------------------------------------

    def confirm(
        self, appointment_id: UUID, scheduled_at: datetime | str | None = None
    ) -> TransitionResult:
        """
        Confirm a PENDING or RESCHEDULED appointment.

        Without a date, the current scheduled_at (or the requested slot) is used.
        """
        with self._unit_of_work():
            appointment = self._lock(appointment_id)
            validation_service.validate_transition(appointment.status, AppointmentStatus.CONFIRMED)
            when = self._admin_date(
                scheduled_at or appointment.scheduled_at or appointment.requested_at
            )
            result = self._confirm(appointment, when)
        self._notify(result, AppointmentEmailType.CONFIRMED, sent_by=EmailSentBy.ADMIN)
        return result

    def update_status(
        self,
        appointment_id: UUID,
        status: AppointmentStatus,
        scheduled_at: datetime | str | None = None,
    ) -> TransitionResult:
        if status == AppointmentStatus.CONFIRMED:
            return self.confirm(appointment_id, scheduled_at)
        if status == AppointmentStatus.RESCHEDULED:
            if scheduled_at is None:
                raise InvalidDateError("A new date is required to propose a reschedule")
            return self.propose_reschedule(appointment_id, scheduled_at)
        if status == AppointmentStatus.CANCELLED:
            return self.cancel_admin(appointment_id)
        if status == AppointmentStatus.REJECTED:
            return self.reject(appointment_id)
        if status == AppointmentStatus.COMPLETED:
            return self.complete(appointment_id)
        raise InvalidStateError(f"Cannot move an appointment back to {status.value}")

    def cancel_admin(self, appointment_id: UUID) -> TransitionResult:
        """Cancel without the client cancellation window."""
        with self._unit_of_work():
            appointment = self._lock(appointment_id)
            validation_service.validate_transition(appointment.status, AppointmentStatus.CANCELLED)
            result = self._cancel(appointment)
        self._notify(result, AppointmentEmailType.CANCELLED, sent_by=EmailSentBy.ADMIN)
        return result

    def reject(self, appointment_id: UUID, reason: str | None = None) -> TransitionResult:
        with self._unit_of_work():
            appointment = self._lock(appointment_id)
            validation_service.validate_transition(appointment.status, AppointmentStatus.REJECTED)
            appointment.status = AppointmentStatus.REJECTED.value
            appointment.cancelled_at = self.clock.now()
            self.db.flush()
            result = TransitionResult(appointment)
            self._coordinate(result, lambda: self.reminders.remove(appointment.id))
            self.db.commit()
        self._notify(
            result,
            AppointmentEmailType.REJECTED,
            extra_factory=lambda _: {"rejection_reason": reason or ""},
            sent_by=EmailSentBy.ADMIN,
        )
        return result

    def complete(self, appointment_id: UUID) -> TransitionResult:
        with self._unit_of_work():
            appointment = self._lock(appointment_id)
            validation_service.validate_transition(appointment.status, AppointmentStatus.COMPLETED)
            appointment.status = AppointmentStatus.COMPLETED.value
            self.db.flush()
            result = TransitionResult(appointment)
            self._coordinate(result, lambda: self.reminders.remove(appointment.id))
            self.db.commit()
        return result

    def reschedule(self, appointment_id: UUID, scheduled_at: datetime | str) -> TransitionResult:
        """
        Admin sets a new agreed time directly; the appointment ends up CONFIRMED.

        The new time must respect the reschedule lead time and the slot grid.
        """
        with self._unit_of_work():
            appointment = self._lock(appointment_id)
            if AppointmentStatus(appointment.status) in TERMINAL_APPOINTMENT_STATUSES:
                raise InvalidStateError(
                    f"Cannot reschedule a {appointment.status} appointment"
                )
            when = validation_service.validate_reschedule_date(
                scheduled_at,
                now=self.clock.now(),
                reference_timezone=self.reference_timezone,
                minimum_hours=settings.MINIMUM_RESCHEDULE_LEAD_HOURS,
            )
            result = self._confirm(appointment, when)
        self._notify(result, AppointmentEmailType.CONFIRMED, sent_by=EmailSentBy.ADMIN)
        return result

    def propose_reschedule(
        self, appointment_id: UUID, new_scheduled_at: datetime | str
    ) -> TransitionResult:
        """
        Propose a new slot to the client (status RESCHEDULED).

        The pending reminder is removed until the client accepts the new time.
        """
        with self._unit_of_work():
            appointment = self._lock(appointment_id)
            if AppointmentStatus(appointment.status) not in PROPOSABLE_STATUSES:
                raise InvalidStateError(
                    f"Cannot propose a new time for a {appointment.status} appointment"
                )
            proposed = validation_service.validate_reschedule_date(
                new_scheduled_at,
                now=self.clock.now(),
                reference_timezone=self.reference_timezone,
                minimum_hours=settings.MINIMUM_RESCHEDULE_LEAD_HOURS,
            )
            appointment.scheduled_at = proposed
            appointment.status = AppointmentStatus.RESCHEDULED.value
            self.db.flush()
            result = TransitionResult(appointment)
            self._coordinate(result, lambda: self.reminders.remove(appointment.id))
            self.db.commit()
        self._notify(result, AppointmentEmailType.RESCHEDULE_PROPOSAL, sent_by=EmailSentBy.ADMIN)
        return result

    def delete(self, appointment_id: UUID) -> None:
        """
        Hard delete. The reminder job is cancelled first; if that fails the
        delete is aborted so no orphan job can fire.
        """
        with self._unit_of_work():
            appointment = self._lock(appointment_id)
            self.reminders.remove(appointment.id)
            self.db.delete(appointment)
            self.db.commit()
        logger.info("Appointment deleted appointment=%s", appointment_id)

    def send_reminder(self, appointment_id: UUID) -> TransitionResult:
        """Send the reminder email now (outside the scheduled job)."""
        appointment = self._get(appointment_id)
        validation_service.validate_reminder_eligible(appointment.status, appointment.scheduled_at)
        result = TransitionResult(appointment)
        self._notify(result, AppointmentEmailType.REMINDER, sent_by=EmailSentBy.ADMIN)
        return result

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @contextmanager
    def _unit_of_work(self) -> Iterator[None]:
        try:
            yield
        except Exception:
            self.db.rollback()
            raise

    def _get(self, appointment_id: UUID) -> Appointment:
        appointment = get_appointment(self.db, appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment not found")
        return appointment

    def _lock(self, appointment_id: UUID) -> Appointment:
        appointment = (
            self.db.query(Appointment)
            .filter(Appointment.id == appointment_id)
            .populate_existing()
            .with_for_update(of=Appointment)
            .first()
        )
        if appointment is None:
            raise NotFoundError("Appointment not found")
        return appointment

    def _admin_date(self, value: datetime | str) -> datetime:
        """Parse an admin-supplied date (naive = reference zone); must be in the future."""
        when = to_utc(parse_datetime(value, self.reference_timezone))
        if when <= self.clock.now():
            raise InvalidDateError("The appointment date must be in the future")
        return when

    @staticmethod
    def _require_rescheduled(appointment: Appointment) -> None:
        if appointment.status != AppointmentStatus.RESCHEDULED.value:
            raise InvalidStateError("No reschedule proposal is pending for this appointment")

    def _confirm(self, appointment: Appointment, scheduled_at: datetime) -> TransitionResult:
        appointment.status = AppointmentStatus.CONFIRMED.value
        appointment.scheduled_at = scheduled_at
        appointment.confirmed_at = self.clock.now()
        self.db.flush()
        result = TransitionResult(appointment)
        self._coordinate(result, lambda: self.reminders.replace(appointment.id, scheduled_at))
        self.db.commit()
        logger.info("Appointment confirmed appointment=%s", appointment.id)
        return result

    def _cancel(self, appointment: Appointment) -> TransitionResult:
        appointment.status = AppointmentStatus.CANCELLED.value
        appointment.cancelled_at = self.clock.now()
        self.db.flush()
        result = TransitionResult(appointment)
        self._coordinate(result, lambda: self.reminders.remove(appointment.id))
        self.db.commit()
        logger.info("Appointment cancelled appointment=%s", appointment.id)
        return result

    def _coordinate(self, result: TransitionResult, operation: Callable[[], object]) -> None:
        """Run a reminder operation in a savepoint; scheduler failures degrade, not abort."""
        try:
            with self.db.begin_nested():
                operation()
        except SchedulerError as exc:
            result.reminder_stale = True
            result.warnings.append("Reminder could not be updated and may be stale")
            logger.warning(
                "Reminder coordination failed for appointment=%s: %s",
                result.appointment.id,
                exc.message,
            )

    def _admin_action_links(self, appointment: Appointment) -> dict[str, str]:
        links = self.tokens.create_action_links(ActionTokenEntity.APPOINTMENT, appointment.id)
        return action_link_variables(
            appointment, links.accept_token, links.reject_token, links.reschedule_token
        )

    def _notify(
        self,
        result: TransitionResult,
        email_type: AppointmentEmailType,
        extra_factory: Callable[[Appointment], dict[str, str]] | None = None,
        sent_by: EmailSentBy = EmailSentBy.SYSTEM,
    ) -> None:
        """Best-effort dispatch; a failure is recorded on the result, never raised."""
        appointment = result.appointment
        try:
            extra = extra_factory(appointment) if extra_factory else None
            self.notifier.send(email_type, appointment, extra, sent_by)
            self.db.commit()
        except Exception as exc:
            self.db.rollback()
            logger.exception(
                "Failed to dispatch %s notification for appointment=%s",
                email_type.value,
                appointment.id,
            )
            result.notification_error = f"{email_type.value} notification failed: {type(exc).__name__}"
