"""Action token registry - single-use tokens for email action links.

A token binds {entity type, entity id, action} and expires after a TTL.
Consumption is a conditional UPDATE, so two concurrent requests can never
both spend the same token. Consumption joins the caller's transaction: if the
action it authorizes fails and is rolled back, the token stays unused.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from booking_api.core.clock import Clock, SystemClock
from booking_api.core.config import settings
from booking_api.core.errors import InvalidTokenError
from booking_api.core.security import generate_token
from booking_api.db.enums import ActionTokenAction, ActionTokenEntity
from booking_api.db.models import ActionToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenVerification:
    valid: bool
    entity_type: str | None = None
    entity_id: UUID | None = None
    action: str | None = None

    @classmethod
    def invalid(cls) -> "TokenVerification":
        return cls(valid=False)

    @classmethod
    def from_row(cls, row: ActionToken) -> "TokenVerification":
        return cls(
            valid=True,
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            action=row.action,
        )


@dataclass(frozen=True)
class ActionLinks:
    accept_token: str
    reject_token: str
    reschedule_token: str


class ActionTokenRegistry:
    def __init__(
        self,
        db: Session,
        clock: Clock | None = None,
        ttl_hours: int | None = None,
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.ttl_hours = ttl_hours if ttl_hours is not None else settings.ACTION_TOKEN_TTL_HOURS

    def create(
        self,
        entity_type: ActionTokenEntity,
        entity_id: UUID,
        action: ActionTokenAction,
        ttl_hours: int | None = None,
    ) -> str:
        """Persist a fresh token and return its string value."""
        hours = self.ttl_hours if ttl_hours is None else ttl_hours
        token = generate_token()
        self.db.add(
            ActionToken(
                token=token,
                entity_type=entity_type.value,
                entity_id=entity_id,
                action=action.value,
                expires_at=self.clock.now() + timedelta(hours=hours),
                is_used=False,
            )
        )
        self.db.flush()
        return token

    def verify(self, token: str | None) -> TokenVerification:
        """Check a token without consuming it."""
        row = self._get(token)
        if row is None or row.is_used or row.expires_at <= self.clock.now():
            return TokenVerification.invalid()
        return TokenVerification.from_row(row)

    def verify_and_consume(self, token: str | None) -> TokenVerification:
        """Mark the token used if it is still valid (compare-and-swap)."""
        if not token:
            return TokenVerification.invalid()
        now = self.clock.now()
        result = self.db.execute(
            update(ActionToken)
            .where(
                ActionToken.token == token,
                ActionToken.is_used.is_(False),
                ActionToken.expires_at > now,
            )
            .values(is_used=True, used_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return TokenVerification.invalid()

        row = self._get(token)
        if row is None:
            return TokenVerification.invalid()
        self.db.refresh(row)
        return TokenVerification.from_row(row)

    def consume_for(
        self,
        token: str | None,
        entity_type: ActionTokenEntity,
        entity_id: UUID,
        action: ActionTokenAction,
    ) -> TokenVerification:
        """Consume a token that must authorize exactly this action on this entity."""
        result = self.verify_and_consume(token)
        if (
            not result.valid
            or result.entity_type != entity_type.value
            or result.entity_id != entity_id
            or result.action != action.value
        ):
            logger.info("Rejected %s token for %s=%s", action.value, entity_type.value, entity_id)
            raise InvalidTokenError()
        return result

    def create_action_links(self, entity_type: ActionTokenEntity, entity_id: UUID) -> ActionLinks:
        """Mint the accept/reject/reschedule tokens for an admin notification."""
        return ActionLinks(
            accept_token=self.create(entity_type, entity_id, ActionTokenAction.ACCEPT),
            reject_token=self.create(entity_type, entity_id, ActionTokenAction.REJECT),
            reschedule_token=self.create(entity_type, entity_id, ActionTokenAction.RESCHEDULE),
        )

    def _get(self, token: str | None) -> ActionToken | None:
        if not token:
            return None
        return self.db.query(ActionToken).filter(ActionToken.token == token).first()


def purge_expired_tokens(db: Session, now: datetime) -> int:
    """Delete expired or used tokens (storage hygiene only)."""
    deleted = (
        db.query(ActionToken)
        .filter((ActionToken.expires_at <= now) | ActionToken.is_used.is_(True))
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted
