"""Appointment reminder job handler.

Delivery is at-least-once: if sending fails the job is retried by the
worker, and a retry after a partial failure may send the reminder twice.
"""

from __future__ import annotations

import logging
from booking_api.core.clock import Clock, SystemClock
from booking_api.db.enums import AppointmentEmailType, AppointmentStatus
from booking_api.db.models import Reminder
from booking_api.jobs.utils import coerce_uuid
from booking_api.services import email_service
from booking_api.services.appointment_email_service import render_appointment_email
from booking_api.services.appointment_service import get_appointment
from booking_api.services.email_sender import get_email_sender

logger = logging.getLogger(__name__)


async def process_appointment_reminder(db, job, clock: Clock | None = None) -> None:
    """Send the 24h reminder for one appointment."""
    appointment_id = coerce_uuid((job.payload or {}).get("appointment_id"))
    appointment = get_appointment(db, appointment_id) if appointment_id else None
    if appointment is None:
        logger.info("Reminder job %s: appointment no longer exists, skipping", job.id)
        return

    reminder = db.query(Reminder).filter(Reminder.appointment_id == appointment.id).first()
    if reminder is None or reminder.provider_ref != str(job.id):
        logger.info(
            "Reminder job %s superseded for appointment=%s, skipping", job.id, appointment.id
        )
        return
    if reminder.sent_at is not None:
        logger.info("Reminder already sent for appointment=%s", appointment.id)
        return
    if appointment.status != AppointmentStatus.CONFIRMED.value or not appointment.scheduled_at:
        logger.info(
            "Reminder job %s: appointment=%s is %s, skipping",
            job.id,
            appointment.id,
            appointment.status,
        )
        return

    subject, html = render_appointment_email(AppointmentEmailType.REMINDER, appointment)
    email_log = email_service.create_email_log(
        db,
        email_type=AppointmentEmailType.REMINDER.value,
        recipient_email=appointment.contact.email,
        subject=subject,
        body=html,
        appointment_id=appointment.id,
    )
    email_log.job_id = job.id
    db.commit()

    sender = get_email_sender()
    try:
        external_id = await sender.send(
            to_email=appointment.contact.email,
            subject=subject,
            html=html,
            idempotency_key=f"reminder:{job.id}",
        )
    except Exception as exc:
        email_service.mark_email_failed(db, email_log, str(exc))
        raise

    email_service.mark_email_sent(db, email_log, external_id)
    reminder.sent_at = (clock or SystemClock()).now()
    db.commit()
    logger.info("Reminder sent for appointment=%s", appointment.id)
