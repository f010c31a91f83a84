"""SQLAlchemy ORM models for contacts, appointments and reminders."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from booking_api.db.base import Base
from booking_api.db.enums import AppointmentStatus
from booking_api.db.types import utcnow


class Contact(Base):
    """A person who requested at least one appointment (upserted by email)."""

    __tablename__ = "contacts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    consent_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, nullable=False
    )

    appointments: Mapped[list["Appointment"]] = relationship(back_populates="contact")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Appointment(Base):
    """
    A client appointment request.

    confirmation_token / cancellation_token are minted once at creation and
    act as the client's credentials for the public confirm/cancel links.
    """

    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint(
            "confirmation_token <> cancellation_token", name="ck_appointment_tokens_distinct"
        ),
        Index("idx_appointments_status", "status"),
        Index("idx_appointments_scheduled", "status", "scheduled_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    contact_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), default=AppointmentStatus.PENDING.value, nullable=False
    )

    reason: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reason_other: Mapped[str | None] = mapped_column(String(255), nullable=True)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)

    requested_at: Mapped[datetime] = mapped_column(nullable=False)
    scheduled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False)

    confirmation_token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    cancellation_token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)

    confirmed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, nullable=False
    )

    contact: Mapped[Contact] = relationship(
        back_populates="appointments", lazy="joined", innerjoin=True
    )
    reminder: Mapped["Reminder | None"] = relationship(
        back_populates="appointment",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Reminder(Base):
    """
    The reminder for one appointment (at most one row per appointment).

    provider_ref is the id of the pending job that will send it; NULL means
    no job was schedulable (appointment less than the lead time away).
    """

    __tablename__ = "reminders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    appointment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("appointments.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    due_at: Mapped[datetime] = mapped_column(nullable=False)
    provider_ref: Mapped[str | None] = mapped_column(String(64), nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, nullable=False
    )

    appointment: Mapped[Appointment] = relationship(back_populates="reminder")
