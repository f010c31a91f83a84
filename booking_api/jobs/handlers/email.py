"""Email-related job handlers."""

from __future__ import annotations

import logging

from booking_api.core.structured_logging import mask_email
from booking_api.db.enums import EmailStatus
from booking_api.jobs.utils import coerce_uuid
from booking_api.services import email_service
from booking_api.services.email_sender import get_email_sender

logger = logging.getLogger(__name__)


async def process_send_email(db, job) -> None:
    """Send a queued EmailLog through the configured provider."""
    email_log_id = coerce_uuid((job.payload or {}).get("email_log_id"))
    if not email_log_id:
        raise ValueError("Missing email_log_id in job payload")

    email_log = email_service.get_email_log(db, email_log_id)
    if not email_log:
        raise ValueError(f"EmailLog {email_log_id} not found")
    if email_log.status == EmailStatus.SENT.value:
        logger.info("EmailLog %s already sent, skipping", email_log.id)
        return

    sender = get_email_sender()
    external_id = await sender.send(
        to_email=email_log.recipient_email,
        subject=email_log.subject,
        html=email_log.body,
        idempotency_key=f"email_log:{email_log.id}",
    )
    email_service.mark_email_sent(db, email_log, external_id)
    logger.info(
        "Email sent for email_log=%s recipient=%s",
        email_log.id,
        mask_email(email_log.recipient_email),
    )
