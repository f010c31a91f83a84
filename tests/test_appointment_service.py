"""
Tests for the appointment lifecycle orchestrator.

Coverage:
- Creation (validation, contact upsert, notifications)
- Token-authorized client operations
- Admin operations and the state machine
- Reminder invariant on every transition
- Degraded success when the scheduler or the notifier fails
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from booking_api.core.errors import (
    CancellationWindowError,
    InvalidDateError,
    InvalidStateError,
    InvalidTokenError,
    MissingScheduleError,
    NotFoundError,
    SchedulerError,
    SlotLegalityError,
)
from booking_api.db.enums import AppointmentStatus, EmailStatus, JobStatus, JobType
from booking_api.db.models import Appointment, Contact, EmailLog, Job, Reminder
from booking_api.services import appointment_service, job_service
from booking_api.services.appointment_service import AppointmentOrchestrator, ContactInput
from conftest import NOW, REFERENCE_TZ, FailingScheduler

CONTACT = ContactInput(email="Jane.Doe@Example.com", first_name="Jane", last_name="Doe", phone="0690")
# 10:00 in Guadeloupe on 2026-03-16
PROPOSED_LOCAL = "2026-03-16T10:00:00"
PROPOSED_UTC = datetime(2026, 3, 16, 14, 0, tzinfo=timezone.utc)


def _reminder(db, appointment_id):
    return db.query(Reminder).filter(Reminder.appointment_id == appointment_id).first()


def _live_reminder_jobs(db, appointment_id):
    return [
        job
        for job in db.query(Job)
        .filter(
            Job.job_type == JobType.APPOINTMENT_REMINDER.value,
            Job.status == JobStatus.PENDING.value,
        )
        .all()
        if job.payload.get("appointment_id") == str(appointment_id)
    ]


# =============================================================================
# Creation
# =============================================================================

class TestCreate:
    def test_create_persists_pending_request(self, db, orchestrator, notifier):
        result = orchestrator.create(
            CONTACT, "2026-03-15T10:00:00", REFERENCE_TZ, consent=True, reason="information"
        )

        appointment = result.appointment
        assert appointment.status == AppointmentStatus.PENDING.value
        assert appointment.requested_at == datetime(2026, 3, 15, 14, 0, tzinfo=timezone.utc)
        assert appointment.scheduled_at is None
        assert appointment.confirmation_token != appointment.cancellation_token
        assert appointment.contact.email == "jane.doe@example.com"
        assert appointment.contact.consent_at == NOW
        assert notifier.types() == ["request_received", "admin_new_request"]

    def test_admin_notification_carries_action_links(self, orchestrator, notifier):
        orchestrator.create(CONTACT, "2026-03-15T10:00:00", REFERENCE_TZ, consent=True)

        extra = notifier.sent[1].extra
        assert "/email-actions/appointments/" in extra["accept_url"]
        assert extra["reject_url"].split("token=")[1] != extra["accept_url"].split("token=")[1]

    def test_create_reuses_existing_contact(self, db, orchestrator):
        orchestrator.create(CONTACT, "2026-03-15T10:00:00", REFERENCE_TZ, consent=False)
        renamed = ContactInput(email="jane.doe@example.com", first_name="Janet", last_name="Doe")
        orchestrator.create(renamed, "2026-03-16T10:00:00", REFERENCE_TZ, consent=False)

        contacts = db.query(Contact).all()
        assert len(contacts) == 1
        assert contacts[0].first_name == "Janet"
        assert contacts[0].phone == "0690"
        assert len(contacts[0].appointments) == 2

    @pytest.mark.parametrize(
        "requested_at,tz",
        [
            ("2026-03-10T15:00:00", REFERENCE_TZ),
            ("2026-05-01T10:00:00", REFERENCE_TZ),
            ("2026-03-15T10:00:00", "Not/AZone"),
            ("tomorrow", REFERENCE_TZ),
        ],
    )
    def test_invalid_request_persists_nothing(self, db, orchestrator, notifier, requested_at, tz):
        with pytest.raises(InvalidDateError):
            orchestrator.create(CONTACT, requested_at, tz, consent=True)

        assert db.query(Appointment).count() == 0
        assert notifier.sent == []


# =============================================================================
# Client operations
# =============================================================================

class TestConfirmByToken:
    def test_requires_scheduled_date(self, orchestrator, make_appointment):
        appointment = make_appointment()
        with pytest.raises(MissingScheduleError):
            orchestrator.confirm_by_token(appointment.id, appointment.confirmation_token)

    def test_wrong_token(self, orchestrator, make_appointment):
        appointment = make_appointment(scheduled_at=NOW + timedelta(days=3))
        with pytest.raises(InvalidTokenError):
            orchestrator.confirm_by_token(appointment.id, appointment.cancellation_token)

    def test_confirms_and_schedules_reminder(self, db, orchestrator, notifier, make_appointment):
        appointment = make_appointment(scheduled_at=NOW + timedelta(days=3))

        result = orchestrator.confirm_by_token(appointment.id, appointment.confirmation_token)

        assert result.appointment.status == AppointmentStatus.CONFIRMED.value
        assert result.appointment.confirmed_at == NOW
        reminder = _reminder(db, appointment.id)
        assert reminder.due_at == NOW + timedelta(days=2)
        assert len(_live_reminder_jobs(db, appointment.id)) == 1
        assert notifier.types() == ["confirmed"]

    def test_unknown_appointment(self, orchestrator):
        with pytest.raises(NotFoundError):
            orchestrator.confirm_by_token(uuid4(), "token")


class TestCancel:
    def test_cancel_confirmed_removes_reminder(self, db, orchestrator, make_appointment):
        appointment = make_appointment(scheduled_at=NOW + timedelta(days=3))
        orchestrator.confirm_by_token(appointment.id, appointment.confirmation_token)
        job_ref = _reminder(db, appointment.id).provider_ref

        result = orchestrator.cancel(appointment.id, appointment.cancellation_token)

        assert result.appointment.status == AppointmentStatus.CANCELLED.value
        assert result.appointment.cancelled_at == NOW
        assert _reminder(db, appointment.id) is None
        assert job_service.get_job(db, job_ref).status == JobStatus.CANCELLED.value

    def test_cancel_inside_window_is_refused(self, db, orchestrator, make_appointment):
        appointment = make_appointment(AppointmentStatus.CONFIRMED, scheduled_at=NOW + timedelta(hours=10))

        with pytest.raises(CancellationWindowError):
            orchestrator.cancel(appointment.id, appointment.cancellation_token)

        db.refresh(appointment)
        assert appointment.status == AppointmentStatus.CONFIRMED.value

    def test_rescheduled_is_cancellable_inside_window(self, orchestrator, make_appointment):
        appointment = make_appointment(
            AppointmentStatus.RESCHEDULED, scheduled_at=NOW + timedelta(hours=2)
        )
        result = orchestrator.cancel(appointment.id, appointment.cancellation_token)
        assert result.appointment.status == AppointmentStatus.CANCELLED.value

    def test_confirmation_token_cannot_cancel(self, orchestrator, make_appointment):
        appointment = make_appointment()
        with pytest.raises(InvalidTokenError):
            orchestrator.cancel(appointment.id, appointment.confirmation_token)

    def test_token_is_checked_before_state(self, orchestrator, make_appointment):
        appointment = make_appointment(AppointmentStatus.CANCELLED)
        with pytest.raises(InvalidTokenError):
            orchestrator.cancel(appointment.id, "wrong")
        with pytest.raises(InvalidStateError):
            orchestrator.cancel(appointment.id, appointment.cancellation_token)

    def test_can_cancel_check_is_read_only(self, db, orchestrator, make_appointment):
        appointment = make_appointment(
            AppointmentStatus.CONFIRMED, scheduled_at=NOW + timedelta(hours=10, minutes=30)
        )

        check = orchestrator.can_cancel_check(appointment.id, appointment.cancellation_token)

        assert check.can_cancel is False
        assert check.remaining_hours == 10.5
        assert "24h" in check.message
        db.refresh(appointment)
        assert appointment.status == AppointmentStatus.CONFIRMED.value

    def test_can_cancel_check_on_cancelled_names_the_state(self, orchestrator, make_appointment):
        appointment = make_appointment(AppointmentStatus.CANCELLED, scheduled_at=NOW + timedelta(days=3))

        check = orchestrator.can_cancel_check(appointment.id, appointment.cancellation_token)

        assert check.can_cancel is False
        assert check.message == "This appointment is already cancelled and cannot be cancelled"

    def test_can_cancel_check_requires_token(self, orchestrator, make_appointment):
        appointment = make_appointment()
        with pytest.raises(InvalidTokenError):
            orchestrator.can_cancel_check(appointment.id, "nope")


class TestReschedulingFlow:
    def test_propose_then_accept(self, db, orchestrator, notifier, make_appointment):
        appointment = make_appointment()
        orchestrator.confirm(appointment.id)
        assert _reminder(db, appointment.id) is not None

        proposed = orchestrator.propose_reschedule(appointment.id, PROPOSED_LOCAL)
        assert proposed.appointment.status == AppointmentStatus.RESCHEDULED.value
        assert proposed.appointment.scheduled_at == PROPOSED_UTC
        assert _reminder(db, appointment.id) is None
        assert _live_reminder_jobs(db, appointment.id) == []

        accepted = orchestrator.accept_reschedule(appointment.id, appointment.confirmation_token)
        assert accepted.appointment.status == AppointmentStatus.CONFIRMED.value
        assert accepted.appointment.scheduled_at == PROPOSED_UTC
        assert _reminder(db, appointment.id).due_at == PROPOSED_UTC - timedelta(hours=24)
        assert len(_live_reminder_jobs(db, appointment.id)) == 1
        assert notifier.types() == ["confirmed", "reschedule_proposal", "confirmed"]

    def test_propose_then_reject(self, db, orchestrator, make_appointment):
        appointment = make_appointment()
        orchestrator.propose_reschedule(appointment.id, PROPOSED_LOCAL)

        result = orchestrator.reject_reschedule(appointment.id, appointment.cancellation_token)

        assert result.appointment.status == AppointmentStatus.CANCELLED.value
        assert _reminder(db, appointment.id) is None

    def test_accept_requires_pending_proposal(self, orchestrator, make_appointment):
        appointment = make_appointment(AppointmentStatus.CONFIRMED, scheduled_at=NOW + timedelta(days=2))
        with pytest.raises(InvalidStateError):
            orchestrator.accept_reschedule(appointment.id, appointment.confirmation_token)
        with pytest.raises(InvalidStateError):
            orchestrator.reject_reschedule(appointment.id, appointment.cancellation_token)

    def test_accept_and_reject_use_their_own_tokens(self, orchestrator, make_appointment):
        appointment = make_appointment(AppointmentStatus.RESCHEDULED, scheduled_at=PROPOSED_UTC)
        with pytest.raises(InvalidTokenError):
            orchestrator.accept_reschedule(appointment.id, appointment.cancellation_token)
        with pytest.raises(InvalidTokenError):
            orchestrator.reject_reschedule(appointment.id, appointment.confirmation_token)

    def test_propose_requires_lead_time(self, orchestrator, make_appointment):
        appointment = make_appointment()
        with pytest.raises(InvalidDateError):
            orchestrator.propose_reschedule(appointment.id, "2026-03-10T14:00:00")

    def test_propose_requires_legal_slot(self, orchestrator, make_appointment):
        appointment = make_appointment()
        with pytest.raises(SlotLegalityError):
            orchestrator.propose_reschedule(appointment.id, "2026-03-16T12:30:00")

    def test_propose_on_terminal_appointment(self, orchestrator, make_appointment):
        appointment = make_appointment(AppointmentStatus.COMPLETED)
        with pytest.raises(InvalidStateError):
            orchestrator.propose_reschedule(appointment.id, PROPOSED_LOCAL)


# =============================================================================
# Admin operations
# =============================================================================

class TestAdminOperations:
    def test_confirm_without_date_uses_requested_slot(self, db, orchestrator, make_appointment):
        appointment = make_appointment(requested_at=NOW + timedelta(days=5))

        result = orchestrator.confirm(appointment.id)

        assert result.appointment.scheduled_at == NOW + timedelta(days=5)
        assert _reminder(db, appointment.id).due_at == NOW + timedelta(days=4)

    def test_confirm_with_naive_date_uses_reference_zone(self, orchestrator, make_appointment):
        appointment = make_appointment()
        result = orchestrator.confirm(appointment.id, PROPOSED_LOCAL)
        assert result.appointment.scheduled_at == PROPOSED_UTC

    def test_confirm_rejects_past_date(self, orchestrator, make_appointment):
        appointment = make_appointment()
        with pytest.raises(InvalidDateError):
            orchestrator.confirm(appointment.id, "2026-03-01T10:00:00")

    def test_confirm_twice_is_invalid(self, orchestrator, make_appointment):
        appointment = make_appointment()
        orchestrator.confirm(appointment.id)
        with pytest.raises(InvalidStateError):
            orchestrator.confirm(appointment.id)

    def test_confirm_soon_appointment_records_reminder_without_job(
        self, db, orchestrator, make_appointment
    ):
        appointment = make_appointment(requested_at=NOW + timedelta(hours=20))

        result = orchestrator.confirm(appointment.id)

        assert result.reminder_stale is False
        reminder = _reminder(db, appointment.id)
        assert reminder.provider_ref is None
        assert _live_reminder_jobs(db, appointment.id) == []

    def test_reject_pending(self, db, orchestrator, notifier, make_appointment):
        appointment = make_appointment()
        result = orchestrator.reject(appointment.id, "Fully booked")

        assert result.appointment.status == AppointmentStatus.REJECTED.value
        assert notifier.sent[-1].email_type == "rejected"
        assert notifier.sent[-1].extra == {"rejection_reason": "Fully booked"}
        assert notifier.sent[-1].sent_by == "admin"

    def test_reject_confirmed_is_invalid(self, orchestrator, make_appointment):
        appointment = make_appointment(AppointmentStatus.CONFIRMED, scheduled_at=NOW + timedelta(days=2))
        with pytest.raises(InvalidStateError):
            orchestrator.reject(appointment.id)

    def test_complete_removes_reminder(self, db, orchestrator, make_appointment):
        appointment = make_appointment()
        orchestrator.confirm(appointment.id)

        result = orchestrator.complete(appointment.id)

        assert result.appointment.status == AppointmentStatus.COMPLETED.value
        assert _reminder(db, appointment.id) is None

    def test_cancel_admin_ignores_window(self, orchestrator, make_appointment):
        appointment = make_appointment(AppointmentStatus.CONFIRMED, scheduled_at=NOW + timedelta(hours=2))
        result = orchestrator.cancel_admin(appointment.id)
        assert result.appointment.status == AppointmentStatus.CANCELLED.value

    def test_reschedule_replaces_reminder(self, db, orchestrator, make_appointment):
        appointment = make_appointment()
        orchestrator.confirm(appointment.id)
        old_ref = _reminder(db, appointment.id).provider_ref

        result = orchestrator.reschedule(appointment.id, PROPOSED_LOCAL)

        assert result.appointment.status == AppointmentStatus.CONFIRMED.value
        assert result.appointment.scheduled_at == PROPOSED_UTC
        assert job_service.get_job(db, old_ref).status == JobStatus.CANCELLED.value
        live = _live_reminder_jobs(db, appointment.id)
        assert [str(job.id) for job in live] == [_reminder(db, appointment.id).provider_ref]

    def test_reschedule_off_grid_slot_is_rejected(self, db, orchestrator, make_appointment):
        appointment = make_appointment(AppointmentStatus.CONFIRMED, scheduled_at=NOW + timedelta(days=5))
        with pytest.raises(SlotLegalityError):
            orchestrator.reschedule(appointment.id, "2026-03-16T15:15:00")
        db.refresh(appointment)
        assert appointment.scheduled_at == NOW + timedelta(days=5)

    def test_reschedule_inside_lead_time_is_rejected(self, db, orchestrator, make_appointment):
        appointment = make_appointment(AppointmentStatus.CONFIRMED, scheduled_at=NOW + timedelta(days=5))
        # 15:00 local today is 7h ahead of NOW (08:00 local)
        with pytest.raises(InvalidDateError):
            orchestrator.reschedule(appointment.id, "2026-03-10T15:00:00")
        db.refresh(appointment)
        assert appointment.scheduled_at == NOW + timedelta(days=5)

    def test_reschedule_terminal_is_invalid(self, orchestrator, make_appointment):
        appointment = make_appointment(AppointmentStatus.CANCELLED)
        with pytest.raises(InvalidStateError):
            orchestrator.reschedule(appointment.id, PROPOSED_LOCAL)

    @pytest.mark.parametrize(
        "status,method",
        [
            (AppointmentStatus.CONFIRMED, "confirm"),
            (AppointmentStatus.CANCELLED, "cancel_admin"),
            (AppointmentStatus.REJECTED, "reject"),
            (AppointmentStatus.COMPLETED, "complete"),
        ],
    )
    def test_update_status_dispatch(self, orchestrator, make_appointment, monkeypatch, status, method):
        appointment = make_appointment()
        calls = []
        monkeypatch.setattr(orchestrator, method, lambda *args: calls.append(args) or "ok")

        assert orchestrator.update_status(appointment.id, status) == "ok"
        assert calls and calls[0][0] == appointment.id

    def test_update_status_rescheduled_needs_date(self, orchestrator, make_appointment):
        appointment = make_appointment()
        with pytest.raises(InvalidDateError):
            orchestrator.update_status(appointment.id, AppointmentStatus.RESCHEDULED)

        result = orchestrator.update_status(
            appointment.id, AppointmentStatus.RESCHEDULED, PROPOSED_LOCAL
        )
        assert result.appointment.status == AppointmentStatus.RESCHEDULED.value

    def test_update_status_back_to_pending_is_invalid(self, orchestrator, make_appointment):
        appointment = make_appointment(AppointmentStatus.CONFIRMED, scheduled_at=NOW + timedelta(days=2))
        with pytest.raises(InvalidStateError):
            orchestrator.update_status(appointment.id, AppointmentStatus.PENDING)

    def test_delete_removes_appointment_and_reminder_job(self, db, orchestrator, make_appointment):
        appointment = make_appointment()
        orchestrator.confirm(appointment.id)
        appointment_id = appointment.id
        job_ref = _reminder(db, appointment_id).provider_ref

        orchestrator.delete(appointment_id)

        assert appointment_service.get_appointment(db, appointment_id) is None
        assert db.query(Reminder).count() == 0
        assert job_service.get_job(db, job_ref).status == JobStatus.CANCELLED.value

    def test_delete_unknown(self, orchestrator):
        with pytest.raises(NotFoundError):
            orchestrator.delete(uuid4())

    def test_send_reminder_requires_confirmed(self, orchestrator, notifier, make_appointment):
        pending = make_appointment()
        with pytest.raises(InvalidStateError):
            orchestrator.send_reminder(pending.id)

        confirmed = make_appointment(
            AppointmentStatus.CONFIRMED, scheduled_at=NOW + timedelta(days=2), email="b@example.com"
        )
        orchestrator.send_reminder(confirmed.id)
        assert notifier.types() == ["reminder"]


# =============================================================================
# Degraded success
# =============================================================================

class TestFailureHandling:
    def test_scheduler_failure_keeps_transition(self, db, clock, notifier, make_appointment):
        orchestrator = AppointmentOrchestrator(
            db, clock=clock, scheduler=FailingScheduler(), notifier=notifier,
            reference_timezone=REFERENCE_TZ,
        )
        appointment = make_appointment()

        result = orchestrator.confirm(appointment.id)

        assert result.reminder_stale is True
        assert result.warnings
        db.refresh(appointment)
        assert appointment.status == AppointmentStatus.CONFIRMED.value
        assert _reminder(db, appointment.id) is None
        assert notifier.types() == ["confirmed"]

    def test_scheduler_failure_on_cancel_keeps_transition(
        self, db, clock, orchestrator, notifier, make_appointment
    ):
        appointment = make_appointment()
        orchestrator.confirm(appointment.id)
        broken = AppointmentOrchestrator(
            db, clock=clock, scheduler=FailingScheduler(), notifier=notifier,
            reference_timezone=REFERENCE_TZ,
        )

        result = broken.cancel(appointment.id, appointment.cancellation_token)

        assert result.reminder_stale is True
        assert result.appointment.status == AppointmentStatus.CANCELLED.value
        # The stale reminder stays until the job fires and skips itself
        assert _reminder(db, appointment.id) is not None

    def test_scheduler_failure_aborts_delete(self, db, clock, orchestrator, notifier, make_appointment):
        appointment = make_appointment()
        orchestrator.confirm(appointment.id)
        broken = AppointmentOrchestrator(
            db, clock=clock, scheduler=FailingScheduler(), notifier=notifier,
            reference_timezone=REFERENCE_TZ,
        )

        with pytest.raises(SchedulerError):
            broken.delete(appointment.id)

        assert appointment_service.get_appointment(db, appointment.id) is not None
        assert _reminder(db, appointment.id) is not None

    def test_notification_failure_is_reported_not_raised(self, db, orchestrator, notifier, make_appointment):
        notifier.fail = True
        appointment = make_appointment()

        result = orchestrator.confirm(appointment.id)

        assert result.notification_error
        db.refresh(appointment)
        assert appointment.status == AppointmentStatus.CONFIRMED.value
        assert _reminder(db, appointment.id) is not None


# =============================================================================
# Queued notifications and queries
# =============================================================================

def test_end_to_end_with_email_queue(db, clock):
    orchestrator = AppointmentOrchestrator(db, clock=clock, reference_timezone=REFERENCE_TZ)

    created = orchestrator.create(CONTACT, "2026-03-15T10:00:00", REFERENCE_TZ, consent=True)
    appointment_id = created.appointment.id
    orchestrator.confirm(appointment_id)
    reminder = _reminder(db, appointment_id)
    assert reminder.due_at == datetime(2026, 3, 14, 14, 0, tzinfo=timezone.utc)

    orchestrator.cancel(appointment_id, created.appointment.cancellation_token)
    assert _reminder(db, appointment_id) is None

    logs = db.query(EmailLog).all()
    assert sorted(log.email_type for log in logs) == [
        "admin_new_request",
        "cancelled",
        "confirmed",
        "request_received",
    ]
    recipients = {log.email_type: log.recipient_email for log in logs}
    assert recipients["admin_new_request"] == "admin@example.com"
    assert recipients["confirmed"] == "jane.doe@example.com"
    assert all(log.status == EmailStatus.PENDING.value for log in logs)
    assert all(log.job_id for log in logs)
    send_jobs = db.query(Job).filter(Job.job_type == JobType.SEND_EMAIL.value).count()
    assert send_jobs == 4


def test_queries(db, orchestrator, make_appointment):
    pending = make_appointment()
    confirmed = make_appointment(
        AppointmentStatus.CONFIRMED, scheduled_at=NOW + timedelta(days=2), email="b@example.com"
    )
    make_appointment(
        AppointmentStatus.CONFIRMED, scheduled_at=NOW + timedelta(days=20), email="c@example.com"
    )
    make_appointment(AppointmentStatus.CANCELLED, email="d@example.com")

    stats = appointment_service.count_by_status(db)
    assert stats["total"] == 4
    assert stats["confirmed"] == 2
    assert stats["completed"] == 0

    upcoming = appointment_service.list_upcoming(db, days=7, now=NOW)
    assert [a.id for a in upcoming] == [confirmed.id]

    only_pending = appointment_service.list_appointments(db, status=AppointmentStatus.PENDING)
    assert [a.id for a in only_pending] == [pending.id]
    assert len(appointment_service.list_appointments(db, limit=2)) == 2
