from __future__ import annotations

import logging
from html import escape

import httpx

from .config import RESEND_API_KEY, RESEND_API_URL, RESEND_FROM_EMAIL

logger = logging.getLogger(__name__)


class MailerError(Exception):
    """Email could not be handed to the delivery service."""


class Mailer:
    """Transactional email over the Resend HTTP API."""

    def __init__(
        self,
        api_key: str = RESEND_API_KEY,
        sender: str = RESEND_FROM_EMAIL,
        api_url: str = RESEND_API_URL,
        timeout: float = 10.0,
    ) -> None:
        self.api_key = api_key
        self.sender = sender
        self.api_url = api_url
        self.timeout = timeout

    async def send(self, to: str, subject: str, html: str) -> None:
        if not self.api_key or not self.sender:
            raise MailerError("email delivery is not configured")
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.api_url,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={"from": self.sender, "to": [to], "subject": subject, "html": html},
                )
        except httpx.HTTPError as exc:
            raise MailerError(f"email request failed: {exc}") from exc
        if response.status_code >= 400:
            raise MailerError(f"email rejected ({response.status_code}): {response.text[:200]}")
        logger.info("Email '%s' sent to %s", subject, to)

    async def send_verification(self, to: str, first_name: str, url: str) -> None:
        link = escape(url)
        await self.send(
            to,
            "Verify your account",
            (
                f"<h2>Welcome, {escape(first_name or 'there')}!</h2>"
                "<p>Please verify your email:</p>"
                f'<a href="{link}">{link}</a>'
            ),
        )

    async def send_password_reset(self, to: str, url: str) -> None:
        link = escape(url)
        await self.send(
            to,
            "Password Reset Request",
            (
                "<h2>Password Reset</h2>"
                "<p>Click below to reset your password:</p>"
                f'<a href="{link}">{link}</a>'
            ),
        )


__all__ = ["Mailer", "MailerError"]
