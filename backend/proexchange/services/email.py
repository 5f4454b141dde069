"""
Transactional Email - rendering and delivery of notification emails

Rendering is pure: a Notification plus a little recipient context becomes
an EmailContent. Delivery posts JSON to an HTTP email API (Resend-style
``{from, to, subject, html, text}``) with httpx.

Recipients opt out per kind through Profile.email_preferences:

    {"connection_requests": false, "application_updates": true, ...}

A missing preferences object, or a missing key, means "send".
"""

import html
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional

import httpx

from proexchange.config import get_settings
from proexchange.services.notifications import Notification, NotificationKind
from proexchange.services.transitions import APPLICATION_STATUS_DISPLAY, ApplicationStatus

logger = logging.getLogger(__name__)

PREFERENCE_KEYS = {
    NotificationKind.CONNECTION_ACCEPTED: "connection_requests",
    NotificationKind.CONNECTION_REMINDER: "connection_requests",
    NotificationKind.APPLICATION_STATUS_CHANGED: "application_updates",
    NotificationKind.BENCH_INVITATION: "bench_invitations",
}


class EmailDeliveryError(Exception):
    """The email API refused the message or could not be reached."""


@dataclass
class EmailContent:
    subject: str
    text: str
    html: str


def should_send_email(preferences: Optional[Dict[str, Any]], kind: NotificationKind) -> bool:
    if not preferences:
        return True
    key = PREFERENCE_KEYS.get(kind)
    return bool(preferences.get(key, True))


def _application_status_label(status: str) -> str:
    try:
        return APPLICATION_STATUS_DISPLAY[ApplicationStatus(status)]
    except ValueError:
        return status.replace("_", " ").title()


def _to_html(paragraphs) -> str:
    return "".join(f"<p>{html.escape(p)}</p>" for p in paragraphs)


def render_notification(
    notification: Notification,
    recipient_name: str,
    context: Optional[Dict[str, Any]] = None,
) -> EmailContent:
    """
    Build the email for a notification.

    Args:
        notification: What happened
        recipient_name: Greeting name, may be empty
        context: Extra display values looked up by the caller
            (actor_name, firm_name)

    Returns:
        EmailContent with subject, plain text and HTML bodies
    """
    context = context or {}
    payload = notification.payload
    app_url = get_settings().app_url.rstrip("/")
    greeting = f"Hi {recipient_name}," if recipient_name else "Hi,"

    if notification.kind == NotificationKind.CONNECTION_ACCEPTED:
        who = context.get("actor_name") or "A professional"
        subject = f"{who} accepted your connection request"
        body = [
            f"{who} accepted your connection request.",
            f"View your connections: {app_url}/connections",
        ]

    elif notification.kind == NotificationKind.APPLICATION_STATUS_CHANGED:
        label = _application_status_label(payload.get("new_status", ""))
        title = payload.get("job_title") or "a job"
        subject = f"Application update: {title}"
        body = [
            f"Your application for {title} is now: {label}.",
            f"View your applications: {app_url}/applications",
        ]

    elif notification.kind == NotificationKind.BENCH_INVITATION:
        firm = context.get("firm_name") or "A firm"
        subject = f"{firm} invited you to their bench"
        body = [f"{firm} invited you to join their bench of trusted professionals."]
        if payload.get("custom_title"):
            body.append(f"Proposed title: {payload['custom_title']}")
        if payload.get("message"):
            body.append(payload["message"])
        body.append(f"Respond before {payload.get('expires_at', '')[:10]}: {app_url}/bench/invitations")

    elif notification.kind == NotificationKind.CONNECTION_REMINDER:
        count = int(payload.get("pending_count", 0))
        noun = "request" if count == 1 else "requests"
        subject = f"You have {count} pending connection {noun}"
        body = [
            f"{count} connection {noun} are waiting for your reply."
            if count != 1
            else "A connection request is waiting for your reply.",
            f"Review them: {app_url}/connections?status=pending",
        ]

    else:
        raise ValueError(f"No email template for {notification.kind}")

    paragraphs = [greeting] + body
    return EmailContent(subject=subject, text="\n\n".join(paragraphs), html=_to_html(paragraphs))


class EmailSender:
    """Posts messages to the transactional email API."""

    def __init__(self, api_url: str, api_key: str, sender: str, timeout: float = 10.0):
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout

    def send(self, to: str, content: EmailContent) -> Optional[str]:
        """
        Send one email.

        Returns:
            Provider message id, when the API returns one

        Raises:
            EmailDeliveryError: transport failure or non-2xx response
        """
        try:
            response = httpx.post(
                self.api_url,
                json={
                    "from": self.sender,
                    "to": [to],
                    "subject": content.subject,
                    "html": content.html,
                    "text": content.text,
                },
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise EmailDeliveryError(f"Email API error: {e}") from e

        # The message is already accepted; an unreadable body only loses its id
        try:
            data = response.json() if response.content else {}
        except ValueError:
            logger.warning(f"Email API returned a non-JSON body for {to}")
            return None
        return data.get("id") if isinstance(data, dict) else None


@lru_cache
def get_email_sender() -> EmailSender:
    settings = get_settings()
    return EmailSender(
        api_url=settings.email_api_url,
        api_key=settings.email_api_key,
        sender=settings.email_from,
        timeout=settings.email_timeout_seconds,
    )
