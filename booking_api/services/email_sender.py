"""Email sender interface + provider selection."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from booking_api.core.config import settings
from booking_api.core.errors import NotificationError
from booking_api.core.structured_logging import mask_email
from booking_api.services.http_service import DEFAULT_RETRY_STATUSES, request_with_retries

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"
RESEND_TIMEOUT_SECONDS = 10.0
RESEND_MAX_ATTEMPTS = 3
RESEND_RETRY_BASE_DELAY = 0.5
RESEND_RETRY_MAX_DELAY = 4.0


class EmailSender(Protocol):
    key: str

    async def send(
        self,
        *,
        to_email: str,
        subject: str,
        html: str,
        idempotency_key: str | None = None,
    ) -> str | None:
        """Send one email. Returns the provider message id when there is one."""


class ResendEmailSender:
    """Sends through the Resend HTTP API."""

    key = "resend"

    def __init__(self, api_key: str, from_email: str):
        self.api_key = api_key
        self.from_email = from_email

    async def send(
        self,
        *,
        to_email: str,
        subject: str,
        html: str,
        idempotency_key: str | None = None,
    ) -> str | None:
        payload: dict[str, object] = {
            "from": self.from_email,
            "to": [to_email],
            "subject": subject,
            "html": html,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        async with httpx.AsyncClient(timeout=RESEND_TIMEOUT_SECONDS) as client:

            async def request_fn() -> httpx.Response:
                return await client.post(RESEND_SEND_URL, headers=headers, json=payload)

            try:
                response = await request_with_retries(
                    request_fn,
                    max_attempts=RESEND_MAX_ATTEMPTS,
                    base_delay=RESEND_RETRY_BASE_DELAY,
                    max_delay=RESEND_RETRY_MAX_DELAY,
                    retry_statuses=DEFAULT_RETRY_STATUSES,
                )
            except httpx.RequestError as exc:
                raise NotificationError(f"Email provider unreachable: {type(exc).__name__}") from exc

        # 409 = idempotency replay of a message Resend already accepted
        if 200 <= response.status_code < 300 or response.status_code == 409:
            message_id = None
            try:
                data = response.json()
                if isinstance(data, dict) and isinstance(data.get("id"), str):
                    message_id = data["id"]
            except ValueError:
                message_id = None
            logger.info(
                "Email sent recipient=%s message_id=%s", mask_email(to_email), message_id
            )
            return message_id

        raise NotificationError(f"Resend API error: {response.status_code}")


class DryRunEmailSender:
    """Logs instead of sending (no provider configured)."""

    key = "dry_run"

    async def send(
        self,
        *,
        to_email: str,
        subject: str,
        html: str,
        idempotency_key: str | None = None,
    ) -> str | None:
        logger.info(
            "[DRY RUN] Email send skipped recipient=%s subject=%s",
            mask_email(to_email),
            subject,
        )
        return None


def get_email_sender() -> EmailSender:
    if settings.RESEND_API_KEY:
        return ResendEmailSender(settings.RESEND_API_KEY, settings.EMAIL_FROM)
    return DryRunEmailSender()
