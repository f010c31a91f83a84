"""Email service - email log bookkeeping and the outbound email queue."""

import re
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from booking_api.db.enums import EmailSentBy, EmailStatus, JobType
from booking_api.db.models import EmailLog, Job
from booking_api.services.job_service import schedule_job

# Variable pattern for template substitution: {{variable_name}}
VARIABLE_PATTERN = re.compile(r"\{\{(\w+)\}\}")


def render_template(text: str, variables: dict[str, str]) -> str:
    """Replace {{name}} placeholders; unknown names render as empty strings."""
    return VARIABLE_PATTERN.sub(lambda m: str(variables.get(m.group(1)) or ""), text)


def create_email_log(
    db: Session,
    *,
    email_type: str,
    recipient_email: str,
    subject: str,
    body: str,
    appointment_id: UUID | None = None,
    sent_by: EmailSentBy = EmailSentBy.SYSTEM,
) -> EmailLog:
    email_log = EmailLog(
        appointment_id=appointment_id,
        email_type=email_type,
        recipient_email=recipient_email,
        subject=subject,
        body=body,
        status=EmailStatus.PENDING.value,
        sent_by=sent_by.value,
    )
    db.add(email_log)
    db.flush()
    return email_log


def queue_email(
    db: Session,
    *,
    email_type: str,
    recipient_email: str,
    subject: str,
    body: str,
    appointment_id: UUID | None = None,
    sent_by: EmailSentBy = EmailSentBy.SYSTEM,
    schedule_at: datetime | None = None,
) -> tuple[EmailLog, Job]:
    """
    Queue an email for sending.

    Creates an EmailLog record and schedules a send_email job for it.
    Flushes only; the caller commits.
    """
    email_log = create_email_log(
        db,
        email_type=email_type,
        recipient_email=recipient_email,
        subject=subject,
        body=body,
        appointment_id=appointment_id,
        sent_by=sent_by,
    )
    job = schedule_job(
        db=db,
        job_type=JobType.SEND_EMAIL,
        payload={"email_log_id": str(email_log.id)},
        run_at=schedule_at,
    )
    email_log.job_id = job.id
    db.flush()
    return email_log, job


def get_email_log(db: Session, email_log_id: UUID) -> EmailLog | None:
    return db.query(EmailLog).filter(EmailLog.id == email_log_id).first()


def mark_email_sent(
    db: Session, email_log: EmailLog, external_id: str | None = None
) -> EmailLog:
    """Mark an email as sent."""
    email_log.status = EmailStatus.SENT.value
    email_log.sent_at = datetime.now(timezone.utc)
    email_log.external_id = external_id
    email_log.error = None
    db.commit()
    db.refresh(email_log)
    return email_log


def mark_email_failed(db: Session, email_log: EmailLog, error: str) -> EmailLog:
    """Mark an email as failed."""
    email_log.status = EmailStatus.FAILED.value
    email_log.error = error[:500]
    db.commit()
    db.refresh(email_log)
    return email_log
