"""Outbound message channels used by workflow steps.

Each channel handles delivery for one transport (SMTP email, Slack Web API)
and reports the outcome as a DeliveryResult rather than raising.
"""

import asyncio
import logging
import smtplib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from enum import Enum
from typing import Any, Optional

import httpx

from app.config import get_settings

logger = logging.getLogger(__name__)


class ChannelType(str, Enum):
    EMAIL = "email"
    SLACK = "slack"


@dataclass
class DeliveryResult:
    """Result of a delivery attempt."""
    success: bool
    channel: ChannelType
    recipient: str
    message: str = ""
    error: Optional[str] = None
    delivered_at: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)


# ─── Email Channel ─────────────────────────────────────────────

class EmailChannel:
    """Send email via SMTP.

    The blocking smtplib session runs in the default executor so the
    event loop keeps serving other runs.
    """

    channel_type = ChannelType.EMAIL

    def __init__(self, settings=None):
        self.settings = settings or get_settings()

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.SMTP_HOST)

    async def send(
        self,
        to: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
        from_name: Optional[str] = None,
    ) -> DeliveryResult:
        """Send one email to a comma-separated recipient list."""
        recipients = [addr.strip() for addr in to.split(",") if addr.strip()]
        if not self.is_configured:
            return DeliveryResult(
                success=False,
                channel=self.channel_type,
                recipient=to,
                error="SMTP is not configured (set SMTP_HOST)",
            )
        if not recipients:
            return DeliveryResult(
                success=False,
                channel=self.channel_type,
                recipient=to,
                error="No recipient address",
            )

        from_addr = self.settings.SMTP_FROM_EMAIL
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = formataddr((from_name, from_addr)) if from_name else from_addr
        msg["To"] = ", ".join(recipients)
        if body_text:
            msg.attach(MIMEText(body_text, "plain"))
        msg.attach(MIMEText(body_html, "html"))

        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(
                None,
                lambda: self._send_smtp(from_addr, recipients, msg),
            )
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Email send failed: {e}")
            return DeliveryResult(
                success=False,
                channel=self.channel_type,
                recipient=to,
                error=str(e),
            )

        return DeliveryResult(
            success=True,
            channel=self.channel_type,
            recipient=to,
            message="Email sent",
            delivered_at=datetime.now(timezone.utc).isoformat(),
        )

    def _send_smtp(self, from_addr: str, recipients: list[str], msg: MIMEMultipart) -> None:
        """Synchronous SMTP send."""
        s = self.settings
        with smtplib.SMTP(s.SMTP_HOST, s.SMTP_PORT, timeout=s.SMTP_TIMEOUT) as server:
            if s.SMTP_USE_TLS:
                server.starttls()
            if s.SMTP_USERNAME and s.SMTP_PASSWORD:
                server.login(s.SMTP_USERNAME, s.SMTP_PASSWORD)
            server.sendmail(from_addr, recipients, msg.as_string())


# ─── Slack Channel ─────────────────────────────────────────────

class SlackChannel:
    """Slack Web API client authenticated with a bot token.

    Slack answers HTTP 200 with ``{"ok": false, "error": ...}`` on most
    failures, so both the status code and the ``ok`` flag are checked.
    """

    channel_type = ChannelType.SLACK

    def __init__(self, settings=None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.SLACK_BOT_TOKEN)

    async def _call(self, method: str, payload: dict, recipient: str) -> DeliveryResult:
        if not self.is_configured:
            return DeliveryResult(
                success=False,
                channel=self.channel_type,
                recipient=recipient,
                error="Slack is not configured (set SLACK_BOT_TOKEN)",
            )
        try:
            async with httpx.AsyncClient(
                base_url=self.settings.SLACK_API_URL,
                timeout=float(self.settings.SLACK_TIMEOUT),
                transport=self._transport,
            ) as client:
                response = await client.post(
                    f"/{method}",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.settings.SLACK_BOT_TOKEN}"},
                )
        except httpx.HTTPError as e:
            logger.error(f"Slack {method} failed: {e}")
            return DeliveryResult(
                success=False,
                channel=self.channel_type,
                recipient=recipient,
                error=f"Slack request failed: {e}",
            )

        body = response.json() if response.content else {}
        if response.status_code >= 400 or not body.get("ok"):
            error = body.get("error") or f"HTTP {response.status_code}"
            logger.warning(f"Slack {method} rejected: {error}")
            return DeliveryResult(
                success=False,
                channel=self.channel_type,
                recipient=recipient,
                error=f"Slack error: {error}",
            )

        return DeliveryResult(
            success=True,
            channel=self.channel_type,
            recipient=recipient,
            message=f"{method} ok",
            delivered_at=datetime.now(timezone.utc).isoformat(),
            data=body,
        )

    async def post_message(
        self,
        channel: str,
        text: str,
        blocks: Optional[list] = None,
        username: Optional[str] = None,
        icon_emoji: Optional[str] = None,
    ) -> DeliveryResult:
        payload: dict[str, Any] = {"channel": channel, "text": text}
        if blocks:
            payload["blocks"] = blocks
        if username:
            payload["username"] = username
        if icon_emoji:
            payload["icon_emoji"] = icon_emoji
        return await self._call("chat.postMessage", payload, channel)

    async def create_channel(self, name: str, is_private: bool = False) -> DeliveryResult:
        return await self._call(
            "conversations.create", {"name": name, "is_private": is_private}, name
        )

    async def invite(self, channel_id: str, user_ids: list[str]) -> DeliveryResult:
        return await self._call(
            "conversations.invite", {"channel": channel_id, "users": ",".join(user_ids)}, channel_id
        )
