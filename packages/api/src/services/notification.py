"""Outgoing email notifications.

Messages are sent through the configured SMTP relay from a worker thread.
Without ``SMTP_HOST`` the message is only logged, which is the normal
local-dev and test setup. Callers run these methods as post-commit hooks,
so a delivery failure never touches committed state.
"""

import asyncio
import logging
import smtplib
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from email.message import EmailMessage

import jwt

from ..core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InviteNotice:
    """Everything the invite email needs, captured before commit."""

    invite_id: uuid.UUID
    group_id: uuid.UUID
    group_name: str
    level: str
    invitee_email: str | None
    invitee_name: str | None
    invitee_language: str | None
    inviter_name: str | None
    invite_message: str | None = None


class NotificationService:
    def __init__(self, smtp_host: str | None = None, sender: str | None = None):
        self.smtp_host = smtp_host if smtp_host is not None else settings.SMTP_HOST
        self.sender = sender or settings.EMAIL_FROM

    def _send_sync(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.smtp_host, settings.SMTP_PORT, timeout=10) as server:
            if settings.SMTP_USE_TLS:
                server.starttls()
            if settings.SMTP_USER and settings.SMTP_PASSWORD:
                server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
            server.send_message(message)

    async def _deliver(self, to: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        if not self.smtp_host:
            logger.info("Email (not sent, SMTP disabled) to=%s subject=%r", to, subject)
            return
        await asyncio.to_thread(self._send_sync, message)
        logger.info("Email sent to=%s subject=%r", to, subject)

    async def send_group_invite_created(self, notices: list[InviteNotice]) -> int:
        """Send one invite email per created invitation. Returns the number sent."""
        sent = 0
        for notice in notices:
            if not notice.invitee_email:
                logger.warning("Invite %s has no invitee email, skipping", notice.invite_id)
                continue
            link = (
                f"{settings.FRONTEND_URL}/groups/{notice.group_id}"
                f"/invites/users/{notice.invite_id}"
            )
            lines = [
                f"{notice.inviter_name or 'Someone'} invited you to join the group "
                f'"{notice.group_name}" with {notice.level} permissions.',
            ]
            if notice.invite_message:
                lines += ["", notice.invite_message]
            lines += ["", f"Open the invite: {link}"]
            try:
                await self._deliver(
                    notice.invitee_email,
                    f"Invitation to join {notice.group_name}",
                    "\n".join(lines),
                )
            except Exception:
                logger.exception(
                    "Failed to send invite %s to %s", notice.invite_id, notice.invitee_email
                )
                continue
            sent += 1
        return sent

    async def send_account_verification(
        self, email: str, verification_code: uuid.UUID, redirect_uri: str | None = None
    ) -> None:
        token = build_email_token(redirect_uri or settings.FRONTEND_URL)
        link = (
            f"{settings.FRONTEND_URL}/api/auth/verify/{verification_code}"
            f"?token={token}"
        )
        await self._deliver(
            email,
            "Please verify your email address",
            f"Confirm this address by opening:\n{link}",
        )


def build_email_token(redirect_success: str) -> str:
    """Signed token carrying the post-verification redirect target."""
    now = datetime.now(UTC)
    payload = {
        "redirectSuccess": redirect_success,
        "iat": now,
        "exp": now + timedelta(days=settings.EMAIL_TOKEN_TTL_DAYS),
    }
    return jwt.encode(payload, settings.EMAIL_TOKEN_SECRET, algorithm="HS256")
