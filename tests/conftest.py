"""
Test configuration and fixtures.

Provides:
- A fresh in-memory SQLite database per test
- A frozen clock so time rules are deterministic
- Recording/failing collaborators for notifications and the job scheduler
- HTTPX AsyncClient wired to the app with overridden dependencies
"""
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Generator

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TESTING"] = "1"
os.environ["ENV"] = "test"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["ADMIN_EMAIL"] = "admin@example.com"
os.environ["RESEND_API_KEY"] = ""
os.environ["SENTRY_DSN"] = ""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from booking_api.core.deps import get_clock, get_db
from booking_api.core.errors import NotificationError, SchedulerError
from booking_api.db.base import Base
from booking_api.db.enums import AppointmentStatus
from booking_api.db.models import Appointment, Contact
from booking_api.db.session import SessionLocal, build_engine
from booking_api.core.security import generate_security_tokens
from booking_api.main import app
from booking_api.services.appointment_service import AppointmentOrchestrator

REFERENCE_TZ = "America/Guadeloupe"
# 2026-03-10 08:00 in Guadeloupe (UTC-4, no DST)
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
ADMIN_HEADERS = {"X-Admin-Api-Key": "test-admin-key"}


# =============================================================================
# Collaborators
# =============================================================================

class FrozenClock:
    def __init__(self, now: datetime = NOW):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


@dataclass
class SentNotification:
    email_type: str
    appointment_id: object
    extra: dict | None
    sent_by: str


@dataclass
class RecordingNotifier:
    sent: list[SentNotification] = field(default_factory=list)
    fail: bool = False

    def send(self, email_type, appointment, extra=None, sent_by=None):
        if self.fail:
            raise NotificationError("Email provider down")
        self.sent.append(
            SentNotification(
                email_type=email_type.value,
                appointment_id=appointment.id,
                extra=extra,
                sent_by=sent_by.value if sent_by else None,
            )
        )
        return None

    def types(self) -> list[str]:
        return [n.email_type for n in self.sent]


class FailingScheduler:
    """Scheduler whose backing store is unavailable."""

    def schedule(self, job_type, payload, delay):
        raise SchedulerError("Could not schedule background job")

    def cancel(self, job_ref):
        raise SchedulerError("Could not cancel background job")


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db_engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def db(db_engine) -> Generator[Session, None, None]:
    session = SessionLocal(bind=db_engine)
    yield session
    session.close()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def orchestrator(db, clock, notifier) -> AppointmentOrchestrator:
    return AppointmentOrchestrator(
        db, clock=clock, notifier=notifier, reference_timezone=REFERENCE_TZ
    )


@pytest.fixture
def make_appointment(db):
    """Factory inserting an appointment in any state."""

    def _make(
        status: AppointmentStatus = AppointmentStatus.PENDING,
        scheduled_at: datetime | None = None,
        requested_at: datetime | None = None,
        email: str = "client@example.com",
    ) -> Appointment:
        contact = db.query(Contact).filter(Contact.email == email).first()
        if contact is None:
            contact = Contact(email=email, first_name="Jane", last_name="Doe")
            db.add(contact)
            db.flush()
        confirmation_token, cancellation_token = generate_security_tokens()
        appointment = Appointment(
            contact_id=contact.id,
            status=status.value,
            requested_at=requested_at or NOW + timedelta(days=5),
            scheduled_at=scheduled_at,
            timezone=REFERENCE_TZ,
            confirmation_token=confirmation_token,
            cancellation_token=cancellation_token,
        )
        db.add(appointment)
        db.commit()
        return appointment

    return _make


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session, clock: FrozenClock) -> AsyncGenerator[AsyncClient, None]:
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def admin_client(client: AsyncClient) -> AsyncClient:
    client.headers.update(ADMIN_HEADERS)
    return client
