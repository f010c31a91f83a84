"""Email action service - one-click admin actions from email links.

Each link carries a single-use action token. The token is consumed in the
same transaction as the action it authorizes, so a failed action leaves the
token usable and a successful one can never be replayed.
"""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from booking_api.core.clock import Clock, SystemClock
from booking_api.core.errors import AppointmentError
from booking_api.db.enums import ActionTokenAction, ActionTokenEntity
from booking_api.services.action_token_service import (
    ActionLinks,
    ActionTokenRegistry,
    TokenVerification,
)
from booking_api.services.appointment_service import AppointmentOrchestrator, TransitionResult

logger = logging.getLogger(__name__)


class EmailActionService:
    def __init__(
        self,
        db: Session,
        orchestrator: AppointmentOrchestrator | None = None,
        tokens: ActionTokenRegistry | None = None,
        clock: Clock | None = None,
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.tokens = tokens or ActionTokenRegistry(db, self.clock)
        self.orchestrator = orchestrator or AppointmentOrchestrator(
            db, clock=self.clock, tokens=self.tokens
        )

    def accept_appointment(
        self,
        appointment_id: UUID,
        token: str,
        scheduled_at: datetime | str | None = None,
    ) -> TransitionResult:
        self._consume(token, appointment_id, ActionTokenAction.ACCEPT)
        return self._run(lambda: self.orchestrator.confirm(appointment_id, scheduled_at))

    def reject_appointment(
        self,
        appointment_id: UUID,
        token: str,
        reason: str | None = None,
    ) -> TransitionResult:
        self._consume(token, appointment_id, ActionTokenAction.REJECT)
        return self._run(lambda: self.orchestrator.reject(appointment_id, reason))

    def propose_reschedule(
        self,
        appointment_id: UUID,
        token: str,
        new_scheduled_at: datetime | str,
    ) -> TransitionResult:
        self._consume(token, appointment_id, ActionTokenAction.RESCHEDULE)
        return self._run(
            lambda: self.orchestrator.propose_reschedule(appointment_id, new_scheduled_at)
        )

    def verify_token(self, token: str) -> TokenVerification:
        return self.tokens.verify(token)

    def create_test_tokens(
        self, entity_type: ActionTokenEntity, entity_id: UUID
    ) -> ActionLinks:
        """Mint a full set of action tokens (non-production helper)."""
        links = self.tokens.create_action_links(entity_type, entity_id)
        self.db.commit()
        return links

    def _consume(self, token: str, appointment_id: UUID, action: ActionTokenAction) -> None:
        try:
            self.tokens.consume_for(token, ActionTokenEntity.APPOINTMENT, appointment_id, action)
        except AppointmentError:
            self.db.rollback()
            raise

    def _run(self, operation) -> TransitionResult:
        result = operation()
        logger.info("Email action applied to appointment=%s", result.appointment.id)
        return result
