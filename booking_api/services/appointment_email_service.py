"""Appointment Email Service - Email notifications for the appointment lifecycle.

Provides:
- HTML email templates for every appointment notification type
- Variable building for appointment context
- A notifier that queues appointment emails through the email job queue
"""

from __future__ import annotations

import html
import logging
from typing import Protocol

from sqlalchemy.orm import Session

from booking_api.core.clock import get_zone
from booking_api.core.config import settings
from booking_api.core.errors import InvalidDateError
from booking_api.core.structured_logging import mask_email
from booking_api.db.enums import AppointmentEmailType, EmailSentBy
from booking_api.db.models import Appointment, EmailLog
from booking_api.services import email_service

logger = logging.getLogger(__name__)


# =============================================================================
# Email Template Definitions
# =============================================================================

_LAYOUT = """<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: #0f766e; padding: 24px; border-radius: 12px 12px 0 0;">
        <h1 style="color: white; margin: 0; font-size: 22px;">{title}</h1>
    </div>
    <div style="background: #f9fafb; padding: 24px; border-radius: 0 0 12px 12px; border: 1px solid #e5e7eb; border-top: none;">
        {content}
        <hr style="border: none; border-top: 1px solid #e5e7eb; margin: 30px 0;">
        <p style="color: #9ca3af; font-size: 12px; margin: 0;">This is an automated message. Please do not reply directly to this email.</p>
    </div>
</body>
</html>"""

_DETAILS = """<div style="background: white; border-radius: 8px; padding: 16px; margin: 20px 0; border: 1px solid #e5e7eb;">
            <table style="width: 100%; border-collapse: collapse;">
                <tr><td style="padding: 6px 0; color: #6b7280;">Date:</td><td><strong>{{scheduled_date}}</strong></td></tr>
                <tr><td style="padding: 6px 0; color: #6b7280;">Time:</td><td><strong>{{scheduled_time}}</strong></td></tr>
            </table>
        </div>"""

_BUTTON = '<a href="{{%s}}" style="display: inline-block; background: %s; color: white; padding: 10px 18px; border-radius: 6px; text-decoration: none; margin-right: 8px;">%s</a>'


def _page(title: str, content: str) -> str:
    return _LAYOUT.replace("{title}", title).replace("{content}", content)


DEFAULT_TEMPLATES: dict[AppointmentEmailType, dict[str, str]] = {
    AppointmentEmailType.REQUEST_RECEIVED: {
        "subject": "Appointment request received",
        "body": _page(
            "Appointment Request Received",
            """<p>Hello {{client_name}},</p>
        <p>We received your appointment request for <strong>{{requested_date}}</strong> at <strong>{{requested_time}}</strong>. We will get back to you shortly.</p>
        <p style="color: #6b7280; font-size: 14px;">Changed your mind? <a href="{{cancel_url}}">Cancel this request</a>.</p>""",
        ),
    },
    AppointmentEmailType.ADMIN_NEW_REQUEST: {
        "subject": "New appointment request - {{client_name}}",
        "body": _page(
            "New Appointment Request",
            """<p><strong>{{client_name}}</strong> ({{client_email}}, {{client_phone}}) requested an appointment.</p>
        <p>Requested slot: <strong>{{requested_date}}</strong> at <strong>{{requested_time}}</strong></p>
        <p>Reason: {{reason}}</p>
        <p>Message: {{message}}</p>
        <p>"""
            + _BUTTON % ("accept_url", "#16a34a", "Accept")
            + _BUTTON % ("reject_url", "#dc2626", "Reject")
            + _BUTTON % ("reschedule_url", "#2563eb", "Propose another time")
            + "</p>",
        ),
    },
    AppointmentEmailType.CONFIRMED: {
        "subject": "Your appointment is confirmed",
        "body": _page(
            "Appointment Confirmed",
            """<p>Hello {{client_name}},</p>
        <p>Your appointment is confirmed.</p>
        """
            + _DETAILS
            + """
        <p style="color: #6b7280; font-size: 14px;">Need to cancel? You can do so up to 24 hours before: <a href="{{cancel_url}}">cancel appointment</a>.</p>""",
        ),
    },
    AppointmentEmailType.RESCHEDULE_PROPOSAL: {
        "subject": "A new time is proposed for your appointment",
        "body": _page(
            "New Time Proposed",
            """<p>Hello {{client_name}},</p>
        <p>We cannot make your requested slot and propose this one instead:</p>
        """
            + _DETAILS
            + "\n        <p>"
            + _BUTTON % ("accept_reschedule_url", "#16a34a", "Accept")
            + _BUTTON % ("reject_reschedule_url", "#dc2626", "Decline")
            + "</p>",
        ),
    },
    AppointmentEmailType.CANCELLED: {
        "subject": "Your appointment has been cancelled",
        "body": _page(
            "Appointment Cancelled",
            """<p>Hello {{client_name}},</p>
        <p>Your appointment has been cancelled. You are welcome to book a new one at any time.</p>""",
        ),
    },
    AppointmentEmailType.REJECTED: {
        "subject": "Your appointment request could not be accepted",
        "body": _page(
            "Appointment Request Declined",
            """<p>Hello {{client_name}},</p>
        <p>Unfortunately we cannot accept your appointment request.</p>
        <p style="color: #6b7280;">{{rejection_reason}}</p>""",
        ),
    },
    AppointmentEmailType.REMINDER: {
        "subject": "Reminder: your appointment tomorrow",
        "body": _page(
            "Appointment Reminder",
            """<p>Hello {{client_name}},</p>
        <p>This is a reminder of your upcoming appointment.</p>
        """
            + _DETAILS,
        ),
    },
}


# =============================================================================
# Variable Building
# =============================================================================


def _display_zone(appointment: Appointment):
    try:
        return get_zone(appointment.timezone)
    except InvalidDateError:
        return get_zone(settings.REFERENCE_TIMEZONE)


def build_appointment_variables(
    appointment: Appointment,
    base_url: str | None = None,
) -> dict[str, str]:
    """Build template variables for an appointment context."""
    base = (base_url if base_url is not None else settings.frontend_base_url).rstrip("/")
    zone = _display_zone(appointment)
    contact = appointment.contact

    requested_local = appointment.requested_at.astimezone(zone)
    scheduled_local = appointment.scheduled_at.astimezone(zone) if appointment.scheduled_at else None
    appointment_url = f"{base}/appointments/{appointment.id}"

    return {
        "client_name": contact.full_name if contact else "",
        "client_email": contact.email if contact else "",
        "client_phone": (contact.phone or "") if contact else "",
        "reason": appointment.reason_other or appointment.reason or "",
        "message": appointment.message or "",
        "requested_date": requested_local.strftime("%A, %B %d, %Y"),
        "requested_time": requested_local.strftime("%H:%M %Z"),
        "scheduled_date": scheduled_local.strftime("%A, %B %d, %Y") if scheduled_local else "",
        "scheduled_time": scheduled_local.strftime("%H:%M %Z") if scheduled_local else "",
        "confirm_url": f"{appointment_url}/confirm?token={appointment.confirmation_token}",
        "cancel_url": f"{appointment_url}/cancel?token={appointment.cancellation_token}",
        "accept_reschedule_url": (
            f"{appointment_url}/accept-reschedule?token={appointment.confirmation_token}"
        ),
        "reject_reschedule_url": (
            f"{appointment_url}/reject-reschedule?token={appointment.cancellation_token}"
        ),
    }


def render_appointment_email(
    email_type: AppointmentEmailType,
    appointment: Appointment,
    extra: dict[str, str] | None = None,
    base_url: str | None = None,
) -> tuple[str, str]:
    """Return (subject, html) for an appointment email."""
    template = DEFAULT_TEMPLATES[email_type]
    variables = build_appointment_variables(appointment, base_url)
    if extra:
        variables.update(extra)
    # Subjects are plain text; bodies are HTML and get escaped values.
    html_variables = {
        key: html.escape(str(value or ""), quote=True) for key, value in variables.items()
    }
    return (
        email_service.render_template(template["subject"], variables),
        email_service.render_template(template["body"], html_variables),
    )


def action_link_variables(
    appointment: Appointment,
    accept_token: str,
    reject_token: str,
    reschedule_token: str,
    api_url: str | None = None,
) -> dict[str, str]:
    """Links for the admin email, each authorized by its own action token."""
    base = (api_url or settings.PUBLIC_API_URL).rstrip("/")
    prefix = f"{base}/email-actions/appointments/{appointment.id}"
    return {
        "accept_url": f"{prefix}/accept?token={accept_token}",
        "reject_url": f"{prefix}/reject?token={reject_token}",
        "reschedule_url": f"{prefix}/propose-reschedule?token={reschedule_token}",
    }


# =============================================================================
# Notifier
# =============================================================================


class AppointmentNotifier(Protocol):
    def send(
        self,
        email_type: AppointmentEmailType,
        appointment: Appointment,
        extra: dict[str, str] | None = None,
        sent_by: EmailSentBy = EmailSentBy.SYSTEM,
    ) -> EmailLog | None:
        """Dispatch one appointment notification."""


class QueuedEmailNotifier:
    """Renders appointment emails and queues them as send_email jobs."""

    def __init__(self, db: Session, base_url: str | None = None, admin_email: str | None = None):
        self.db = db
        self.base_url = base_url
        self.admin_email = admin_email if admin_email is not None else settings.ADMIN_EMAIL

    def send(
        self,
        email_type: AppointmentEmailType,
        appointment: Appointment,
        extra: dict[str, str] | None = None,
        sent_by: EmailSentBy = EmailSentBy.SYSTEM,
    ) -> EmailLog | None:
        if email_type == AppointmentEmailType.ADMIN_NEW_REQUEST:
            recipient = self.admin_email
        else:
            recipient = appointment.contact.email if appointment.contact else None
        if not recipient:
            logger.warning(
                "No recipient for %s email (appointment=%s)", email_type.value, appointment.id
            )
            return None

        subject, body = render_appointment_email(email_type, appointment, extra, self.base_url)
        email_log, job = email_service.queue_email(
            self.db,
            email_type=email_type.value,
            recipient_email=recipient,
            subject=subject,
            body=body,
            appointment_id=appointment.id,
            sent_by=sent_by,
        )
        logger.info(
            "Queued %s email for appointment=%s recipient=%s job=%s",
            email_type.value,
            appointment.id,
            mask_email(recipient),
            job.id,
        )
        return email_log
