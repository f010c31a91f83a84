"""SQLAlchemy ORM model for outbound email logs."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from booking_api.db.base import Base
from booking_api.db.enums import DEFAULT_EMAIL_STATUS, EmailSentBy
from booking_api.db.types import utcnow


class EmailLog(Base):
    """One outbound email: queued, sent, or failed."""

    __tablename__ = "email_logs"
    __table_args__ = (Index("idx_email_logs_appointment", "appointment_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    appointment_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True
    )
    job_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    email_type: Mapped[str] = mapped_column(String(50), nullable=False)
    recipient_email: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_EMAIL_STATUS.value, nullable=False
    )
    sent_by: Mapped[str] = mapped_column(
        String(20), default=EmailSentBy.SYSTEM.value, nullable=False
    )
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
