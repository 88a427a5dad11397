"""Notification service for outbound email.

Handles:
- Approval-link mail to purchasing-card candidate approvers
- Password reset mail
- Best-effort broadcast with a per-recipient delivery result
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple
from urllib.parse import quote
from uuid import UUID

import aiosmtplib
from jinja2 import Environment, select_autoescape

from meditrap.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

_html_env = Environment(autoescape=select_autoescape(default_for_string=True, default=True))
# subjects and plain-text bodies are not HTML
_text_env = Environment(autoescape=False)


# Email templates
EMAIL_TEMPLATES = {
    "approval_request": {
        "subject": "{{ app_name }} approval request: {{ grant_label }}",
        "html": """
<p>Hello {{ approver_name }},</p>
<p>{{ requester_name }} has requested a {{ grant_label }} and selected you as a verifier.
You may approve the request by clicking the button below.</p>
<p><a href="{{ approve_link }}" style="display:inline-block;padding:10px 14px;background:#0ea5a4;color:white;border-radius:6px;text-decoration:none">Approve Request</a></p>
<p>Request ID: {{ request_id }}</p>
""",
        "text": """Hello {{ approver_name }},

{{ requester_name }} has requested a {{ grant_label }} and selected you as a verifier.
Approve the request here: {{ approve_link }}

Request ID: {{ request_id }}
""",
    },
    "password_reset": {
        "subject": "Password reset request",
        "html": """
<p>Hello {{ name }},</p>
<p>We received a request to reset your {{ app_name }} password. This link expires in {{ expires_minutes }} minutes.</p>
<p><a href="{{ reset_url }}">{{ reset_url }}</a></p>
<p>If you did not ask for this, you can ignore this email.</p>
""",
        "text": "Reset your password using this link: {{ reset_url }}",
    },
}

GRANT_LABELS = {
    "purchasing_card": "Purchasing Card",
    "purchaser_profile": "Purchaser Profile",
}


class DeliveryStatus(str, Enum):
    """Outcome of one message delivery."""
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"  # SMTP not configured
    QUEUED = "queued"    # handed to a background task


@dataclass
class EmailMessage:
    """A rendered outgoing email."""
    recipient: str
    subject: str
    html: str
    text: Optional[str] = None


@dataclass
class DeliveryResult:
    """Per-recipient result of a broadcast."""
    recipient: str
    status: DeliveryStatus
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != DeliveryStatus.FAILED


def render(template_name: str, **context) -> Tuple[str, str, str]:
    """Render a template to (subject, html, text)."""
    template = EMAIL_TEMPLATES[template_name]
    subject = _text_env.from_string(template["subject"]).render(**context).strip()
    html = _html_env.from_string(template["html"]).render(**context).strip()
    text = _text_env.from_string(template["text"]).render(**context).strip()
    return subject, html, text


def build_approval_messages(
    request_id: UUID,
    grant_kind: str,
    requester_name: str,
    recipients: Iterable[tuple],
    settings: Optional[Settings] = None,
) -> List[EmailMessage]:
    """
    Build one approval mail per candidate approver.

    Args:
        request_id: Approval request ID
        grant_kind: Grant being requested
        requester_name: Display name of the requester
        recipients: (stockist, raw_token) pairs; stockists without email are skipped
        settings: Application settings

    Returns:
        Rendered messages, each carrying that approver's own token
    """
    settings = settings or get_settings()
    base = settings.frontend_url.rstrip("/")
    messages = []
    for stockist, token in recipients:
        if not stockist.email:
            logger.info(f"Stockist {stockist.id} has no email; approval link not sent")
            continue
        subject, html, text = render(
            "approval_request",
            app_name=settings.app_name,
            approver_name=stockist.name or stockist.contact_person or "Stockist",
            requester_name=requester_name,
            grant_label=GRANT_LABELS.get(grant_kind, grant_kind),
            approve_link=f"{base}/approve?token={quote(token)}",
            request_id=str(request_id),
        )
        messages.append(EmailMessage(recipient=stockist.email, subject=subject, html=html, text=text))
    return messages


def build_password_reset_message(
    email: str,
    name: str,
    token: str,
    settings: Optional[Settings] = None,
) -> EmailMessage:
    settings = settings or get_settings()
    base = settings.frontend_url.rstrip("/")
    reset_url = f"{base}/reset-password?token={quote(token)}&email={quote(email)}"
    subject, html, text = render(
        "password_reset",
        app_name=settings.app_name,
        name=name,
        reset_url=reset_url,
        expires_minutes=settings.password_reset_expire_minutes,
    )
    return EmailMessage(recipient=email, subject=subject, html=html, text=text)


class ApprovalNotifier(ABC):
    """Sink for outgoing mail used by the approval and reset flows."""

    @abstractmethod
    def dispatch(self, messages: Sequence[EmailMessage]) -> List[DeliveryResult]:
        """Deliver messages best-effort. Never raises for delivery failures."""


class NotificationService(ApprovalNotifier):
    """
    SMTP delivery through aiosmtplib.

    Each message is sent independently; one failure never prevents the
    rest of a broadcast from going out.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    async def send_email(self, message: EmailMessage) -> DeliveryResult:
        """Send one message and report how it went."""
        if not self.settings.smtp_host:
            logger.warning(f"SMTP not configured, skipping email to {message.recipient}")
            return DeliveryResult(message.recipient, DeliveryStatus.SKIPPED)
        try:
            await self._deliver_email(message)
        except Exception as e:
            logger.exception(f"Failed to send email to {message.recipient}")
            return DeliveryResult(message.recipient, DeliveryStatus.FAILED, str(e) or e.__class__.__name__)
        logger.info(f"Email '{message.subject}' sent to {message.recipient}")
        return DeliveryResult(message.recipient, DeliveryStatus.SENT)

    async def broadcast(self, messages: Sequence[EmailMessage]) -> List[DeliveryResult]:
        """Send all messages concurrently. Results follow the input order."""
        if not messages:
            return []
        results = await asyncio.gather(*(self.send_email(m) for m in messages))
        failed = sum(1 for r in results if r.status == DeliveryStatus.FAILED)
        if failed:
            logger.warning(f"Broadcast finished with {failed}/{len(results)} failed deliveries")
        return list(results)

    def dispatch(self, messages: Sequence[EmailMessage]) -> List[DeliveryResult]:
        """Synchronous wrapper around ``broadcast``."""
        return asyncio.run(self.broadcast(messages))

    async def _deliver_email(self, message: EmailMessage) -> None:
        """Actually deliver the email via SMTP."""
        msg = MIMEMultipart("alternative")
        msg["From"] = f"{self.settings.smtp_from_name} <{self.settings.smtp_from_email}>"
        msg["To"] = message.recipient
        msg["Subject"] = message.subject
        if message.text:
            msg.attach(MIMEText(message.text, "plain"))
        msg.attach(MIMEText(message.html, "html"))

        await aiosmtplib.send(
            msg,
            hostname=self.settings.smtp_host,
            port=self.settings.smtp_port,
            username=self.settings.smtp_user,
            password=self.settings.smtp_password,
            start_tls=self.settings.smtp_use_tls,
            timeout=self.settings.smtp_timeout,
        )
