"""
Background Tasks for Notification Delivery

deliver_notification runs in a Celery worker, outside the request that
produced the notification:

    1. Load the recipient (email address, preferences, display name)
    2. Skip if the recipient opted out of this kind or has no address
    3. Render and post the email; transport errors are retried

Profiles are read through the synchronous session.
"""

import logging
import time
from typing import Any, Dict

from prometheus_client import Counter, Histogram

from proexchange.celery import celery_app
from proexchange.config import get_settings
from proexchange.database import get_db_session
from proexchange.models import Firm, Profile
from proexchange.services.email import (
    EmailDeliveryError,
    get_email_sender,
    render_notification,
    should_send_email,
)
from proexchange.services.notifications import Notification, NotificationKind

logger = logging.getLogger(__name__)

# ==================== Prometheus Metrics ====================

TASK_DURATION = Histogram(
    "celery_task_duration_seconds",
    "Time spent executing Celery tasks",
    ["task_name"]
)

TASK_FAILURES = Counter(
    "celery_task_failures_total",
    "Number of Celery task failures",
    ["task_name"]
)

EMAILS_SENT = Counter(
    "notification_emails_total",
    "Notification emails by outcome",
    ["kind", "outcome"]
)


# ==================== Helper Functions ====================

def load_delivery_context(notification: Notification) -> Dict[str, Any]:
    """
    Read what the email needs from the database.

    Returns:
        Dict with recipient email/name/preferences and display names of
        the other party; recipient_found is False when the profile is gone
    """
    session = get_db_session()
    try:
        recipient = session.get(Profile, notification.recipient_profile_id)
        if recipient is None:
            return {"recipient_found": False}

        context = {
            "recipient_found": True,
            "email": recipient.email,
            "recipient_name": recipient.display_name,
            "preferences": recipient.email_preferences,
        }

        payload = notification.payload
        if notification.kind == NotificationKind.CONNECTION_ACCEPTED:
            actor = session.get(Profile, payload.get("accepted_by_profile_id"))
            context["actor_name"] = actor.display_name if actor else None
        elif notification.kind == NotificationKind.BENCH_INVITATION:
            firm = session.get(Firm, payload.get("firm_id"))
            context["firm_name"] = firm.name if firm else None
        return context
    finally:
        session.close()


# ==================== Celery Tasks ====================

@celery_app.task(bind=True, max_retries=3)
def deliver_notification(self, message: Dict[str, Any]) -> dict:
    """
    Deliver one notification by email.

    Args:
        message: Notification.to_message() output

    Returns:
        Dict with status (sent | skipped) and reason or message id
    """
    start_time = time.time()
    notification = Notification.from_message(message)
    kind = notification.kind.value

    try:
        context = load_delivery_context(notification)
        if not context["recipient_found"] or not context.get("email"):
            logger.warning(f"No email address for profile {notification.recipient_profile_id}, skipping {kind}")
            EMAILS_SENT.labels(kind=kind, outcome="no_address").inc()
            return {"status": "skipped", "reason": "no_address"}

        if not should_send_email(context.get("preferences"), notification.kind):
            logger.info(f"Profile {notification.recipient_profile_id} opted out of {kind} emails")
            EMAILS_SENT.labels(kind=kind, outcome="opted_out").inc()
            return {"status": "skipped", "reason": "opted_out"}

        if not get_settings().email_api_key:
            logger.info(f"Email API not configured, {kind} for {notification.recipient_profile_id} not sent")
            EMAILS_SENT.labels(kind=kind, outcome="not_configured").inc()
            return {"status": "skipped", "reason": "not_configured"}

        content = render_notification(notification, context.get("recipient_name") or "", context)
        message_id = get_email_sender().send(context["email"], content)

        EMAILS_SENT.labels(kind=kind, outcome="sent").inc()
        logger.info(f"Sent {kind} email to profile {notification.recipient_profile_id}")
        return {"status": "sent", "message_id": message_id}

    except EmailDeliveryError as exc:
        TASK_FAILURES.labels(task_name="deliver_notification").inc()
        logger.error(f"Delivery of {kind} to {notification.recipient_profile_id} failed: {exc}")
        raise self.retry(exc=exc, countdown=60)

    finally:
        duration = time.time() - start_time
        TASK_DURATION.labels(task_name="deliver_notification").observe(duration)
