"""Action token enums (email-link authorization)."""

from enum import Enum


class ActionTokenEntity(str, Enum):
    APPOINTMENT = "appointment"
    QUOTE = "quote"


class ActionTokenAction(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    RESCHEDULE = "reschedule"
