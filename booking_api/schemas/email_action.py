"""Email action schemas."""

from uuid import UUID

from pydantic import BaseModel, Field

from booking_api.db.enums import ActionTokenEntity


class AcceptAction(BaseModel):
    token: str
    scheduled_at: str | None = None


class RejectAction(BaseModel):
    token: str
    reason: str | None = Field(None, max_length=500)


class ProposeRescheduleAction(BaseModel):
    token: str
    new_scheduled_at: str


class TokenVerificationRead(BaseModel):
    valid: bool
    entity_type: str | None = None
    entity_id: UUID | None = None
    action: str | None = None


class CreateActionTokens(BaseModel):
    entity_type: ActionTokenEntity = ActionTokenEntity.APPOINTMENT
    entity_id: UUID


class ActionTokensRead(BaseModel):
    accept_token: str
    reject_token: str
    reschedule_token: str
