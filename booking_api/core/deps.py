"""FastAPI dependencies for database access, admin authorization, and services."""

from typing import Generator

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from booking_api.core.clock import Clock, SystemClock
from booking_api.core.config import settings
from booking_api.core.security import tokens_match
from booking_api.db.session import SessionLocal
from booking_api.services.appointment_service import AppointmentOrchestrator
from booking_api.services.email_action_service import EmailActionService

ADMIN_API_KEY_HEADER = "X-Admin-Api-Key"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_clock() -> Clock:
    return SystemClock()


def require_admin(
    x_admin_api_key: str | None = Header(None, alias=ADMIN_API_KEY_HEADER),
) -> None:
    """
    Verify the admin API key header.

    Raises:
        HTTPException 501: ADMIN_API_KEY not configured
        HTTPException 401: Missing or wrong key
    """
    if not settings.ADMIN_API_KEY:
        raise HTTPException(status_code=501, detail="ADMIN_API_KEY not configured")
    if not tokens_match(settings.ADMIN_API_KEY, x_admin_api_key):
        raise HTTPException(status_code=401, detail="Invalid admin API key")


def get_orchestrator(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> AppointmentOrchestrator:
    return AppointmentOrchestrator(db, clock=clock)


def get_email_action_service(
    db: Session = Depends(get_db),
    orchestrator: AppointmentOrchestrator = Depends(get_orchestrator),
    clock: Clock = Depends(get_clock),
) -> EmailActionService:
    return EmailActionService(db, orchestrator=orchestrator, tokens=orchestrator.tokens, clock=clock)
