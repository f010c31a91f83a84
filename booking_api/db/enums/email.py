"""Email-related enums."""

from enum import Enum


class EmailStatus(str, Enum):
    """Status of outbound email logs."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class EmailSentBy(str, Enum):
    SYSTEM = "system"
    ADMIN = "admin"


DEFAULT_EMAIL_STATUS = EmailStatus.PENDING
