"""
Tests for notification dispatch and email delivery

Tests cover:
- Dispatcher failures never fail the transition that emitted them
- Celery transport enqueues deliver_notification
- Email preferences, rendering and the HTTP sender
- deliver_notification skip / send / retry paths
"""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from proexchange.celery import celery_app
from proexchange.config import get_settings
from proexchange.services.email import (
    EmailContent,
    EmailDeliveryError,
    EmailSender,
    render_notification,
    should_send_email,
)
from proexchange.services.notifications import (
    CallbackNotificationDispatcher,
    CeleryNotificationDispatcher,
    Notification,
    NotificationKind,
)
from proexchange.services.transitions import ConnectionStatus
from proexchange.services.workflow import WorkflowEngine
from proexchange.tasks.notifications import deliver_notification


def _notification(kind=NotificationKind.APPLICATION_STATUS_CHANGED, **payload):
    return Notification(kind=kind, recipient_profile_id="pro-1", payload=payload)


class TestDispatcher:
    """Tests for notification dispatchers."""

    def test_callback_failure_is_swallowed(self):
        """A failing callback should return False, not raise."""
        def explode(notification):
            raise RuntimeError("smtp down")

        dispatcher = CallbackNotificationDispatcher(explode)

        assert dispatcher.dispatch(_notification()) is False

    def test_callback_success(self):
        """Callback should receive the notification."""
        received = []
        dispatcher = CallbackNotificationDispatcher(received.append)

        assert dispatcher.dispatch(_notification(new_status="hired")) is True
        assert received[0].payload == {"new_status": "hired"}

    def test_message_round_trip_keeps_kind(self):
        """Serialised messages should restore the same notification."""
        original = _notification(NotificationKind.BENCH_INVITATION, firm_id="f-1")
        restored = Notification.from_message(original.to_message())

        assert restored == original

    @patch("proexchange.tasks.notifications.deliver_notification")
    def test_celery_dispatcher_enqueues(self, mock_task):
        """Celery dispatcher should enqueue deliver_notification."""
        notification = _notification(new_status="shortlisted")

        assert CeleryNotificationDispatcher().dispatch(notification) is True
        mock_task.apply_async.assert_called_once_with(args=[notification.to_message()], retry=False)

    def test_broker_publish_times_out_quickly(self):
        """Publishing from a request handler uses the short broker timeout."""
        timeout = get_settings().celery_broker_timeout_seconds
        options = celery_app.conf.broker_transport_options

        assert celery_app.conf.broker_connection_timeout == timeout
        assert options["socket_connect_timeout"] == timeout
        assert options["socket_timeout"] == timeout

    @patch("proexchange.tasks.notifications.deliver_notification")
    def test_celery_dispatcher_survives_broker_outage(self, mock_task):
        """A broker outage should not raise."""
        mock_task.apply_async.side_effect = ConnectionError("redis unreachable")

        assert CeleryNotificationDispatcher().dispatch(_notification()) is False

    @pytest.mark.asyncio
    async def test_failed_notification_keeps_transition(self, store, factory):
        """The transition should persist when dispatch fails."""
        def explode(notification):
            raise RuntimeError("queue full")

        engine = WorkflowEngine(store, CallbackNotificationDispatcher(explode))
        a = await factory.profile()
        b = await factory.profile()
        created = await engine.create_connection(a, b)

        connection = await engine.decide_connection(created.connection.id, "accepted", b)

        assert connection.status == ConnectionStatus.ACCEPTED
        stored = await store.get_connection(created.connection.id)
        assert stored.status == ConnectionStatus.ACCEPTED


class TestPreferences:
    """Tests for email opt-outs."""

    def test_no_preferences_means_send(self):
        """Missing preferences should default to sending."""
        assert should_send_email(None, NotificationKind.CONNECTION_ACCEPTED)
        assert should_send_email({}, NotificationKind.BENCH_INVITATION)

    def test_opt_out_by_kind(self):
        """Opt-outs apply per notification kind."""
        preferences = {"application_updates": False}

        assert not should_send_email(preferences, NotificationKind.APPLICATION_STATUS_CHANGED)
        assert should_send_email(preferences, NotificationKind.CONNECTION_ACCEPTED)

    def test_reminders_follow_connection_preference(self):
        """Reminders share the connection preference."""
        preferences = {"connection_requests": False}

        assert not should_send_email(preferences, NotificationKind.CONNECTION_REMINDER)


class TestRendering:
    """Tests for email rendering."""

    def test_application_status_uses_display_label(self):
        """Status should render with its display label."""
        content = render_notification(
            _notification(job_title="Trust return", new_status="rejected"), "Dana"
        )

        assert content.subject == "Application update: Trust return"
        assert "Not Selected" in content.text
        assert content.text.startswith("Hi Dana,")

    def test_connection_accepted_names_actor(self):
        """Subject should name the accepting profile."""
        content = render_notification(
            _notification(NotificationKind.CONNECTION_ACCEPTED, accepted_by_profile_id="p-2"),
            "",
            {"actor_name": "Sam Rivera"},
        )

        assert content.subject == "Sam Rivera accepted your connection request"

    def test_bench_invitation_escapes_html(self):
        """User text should be escaped in HTML."""
        content = render_notification(
            _notification(
                NotificationKind.BENCH_INVITATION,
                firm_id="f-1",
                message="<b>join</b>",
                expires_at="2026-03-16T09:00:00",
            ),
            "Dana",
            {"firm_name": "Ledger & Co"},
        )

        assert content.subject == "Ledger & Co invited you to their bench"
        assert "&lt;b&gt;join&lt;/b&gt;" in content.html
        assert "2026-03-16" in content.text

    def test_reminder_pluralises(self):
        """Subject should pluralise the request count."""
        one = render_notification(_notification(NotificationKind.CONNECTION_REMINDER, pending_count=1), "")
        many = render_notification(_notification(NotificationKind.CONNECTION_REMINDER, pending_count=3), "")

        assert one.subject == "You have 1 pending connection request"
        assert many.subject == "You have 3 pending connection requests"


class TestEmailSender:
    """Tests for the HTTP email sender."""

    @patch("proexchange.services.email.httpx.post")
    def test_posts_message(self, mock_post):
        """Sender should POST JSON with a bearer key."""
        response = MagicMock()
        response.content = b'{"id": "msg_1"}'
        response.json.return_value = {"id": "msg_1"}
        mock_post.return_value = response
        sender = EmailSender("https://mail.test/emails", "key", "ProExchange <n@test>")

        message_id = sender.send("dana@example.com", EmailContent("Hi", "text", "<p>text</p>"))

        assert message_id == "msg_1"
        kwargs = mock_post.call_args.kwargs
        assert kwargs["json"]["to"] == ["dana@example.com"]
        assert kwargs["headers"]["Authorization"] == "Bearer key"

    @patch("proexchange.services.email.httpx.post")
    def test_non_json_body_still_counts_as_sent(self, mock_post):
        """An accepted send with an unreadable body returns no id instead of failing."""
        response = MagicMock()
        response.content = b"<html>queued</html>"
        response.json.side_effect = ValueError("Expecting value")
        mock_post.return_value = response
        sender = EmailSender("https://mail.test/emails", "key", "n@test")

        message_id = sender.send("dana@example.com", EmailContent("Hi", "text", "<p>text</p>"))

        assert message_id is None
        mock_post.assert_called_once()

    @patch("proexchange.services.email.httpx.post")
    def test_transport_error_raises_delivery_error(self, mock_post):
        """Transport errors should become EmailDeliveryError."""
        mock_post.side_effect = httpx.ConnectError("refused")
        sender = EmailSender("https://mail.test/emails", "key", "n@test")

        with pytest.raises(EmailDeliveryError):
            sender.send("dana@example.com", EmailContent("Hi", "text", "<p>text</p>"))


class TestDeliverNotificationTask:
    """Tests for the deliver_notification Celery task."""

    def _message(self):
        return _notification(job_title="Trust return", new_status="hired").to_message()

    def _context(self, **overrides):
        context = {
            "recipient_found": True,
            "email": "dana@example.com",
            "recipient_name": "Dana",
            "preferences": None,
        }
        context.update(overrides)
        return context

    def test_is_celery_task(self):
        """deliver_notification should be a registered Celery task."""
        assert hasattr(deliver_notification, "delay")
        assert hasattr(deliver_notification, "apply_async")

    @patch("proexchange.tasks.notifications.get_email_sender")
    @patch("proexchange.tasks.notifications.get_settings")
    @patch("proexchange.tasks.notifications.load_delivery_context")
    def test_sends_email(self, mock_context, mock_settings, mock_sender):
        """Task should render and send to the recipient."""
        mock_context.return_value = self._context()
        mock_settings.return_value = MagicMock(email_api_key="key")
        mock_sender.return_value.send.return_value = "msg_9"

        result = deliver_notification.run(self._message())

        assert result == {"status": "sent", "message_id": "msg_9"}
        to, content = mock_sender.return_value.send.call_args.args
        assert to == "dana@example.com"
        assert "Hired" in content.text

    @patch("proexchange.tasks.notifications.get_email_sender")
    @patch("proexchange.tasks.notifications.load_delivery_context")
    def test_skips_opted_out_recipient(self, mock_context, mock_sender):
        """Opted-out recipients are skipped."""
        mock_context.return_value = self._context(preferences={"application_updates": False})

        result = deliver_notification.run(self._message())

        assert result == {"status": "skipped", "reason": "opted_out"}
        mock_sender.return_value.send.assert_not_called()

    @patch("proexchange.tasks.notifications.get_email_sender")
    @patch("proexchange.tasks.notifications.load_delivery_context")
    def test_skips_missing_recipient(self, mock_context, mock_sender):
        """Missing recipients are skipped."""
        mock_context.return_value = {"recipient_found": False}

        result = deliver_notification.run(self._message())

        assert result["reason"] == "no_address"
        mock_sender.return_value.send.assert_not_called()

    @patch("proexchange.tasks.notifications.get_email_sender")
    @patch("proexchange.tasks.notifications.get_settings")
    @patch("proexchange.tasks.notifications.load_delivery_context")
    def test_skips_when_email_not_configured(self, mock_context, mock_settings, mock_sender):
        """No API key means no send."""
        mock_context.return_value = self._context()
        mock_settings.return_value = MagicMock(email_api_key="")

        result = deliver_notification.run(self._message())

        assert result["reason"] == "not_configured"
        mock_sender.return_value.send.assert_not_called()

    @patch("proexchange.tasks.notifications.get_email_sender")
    @patch("proexchange.tasks.notifications.get_settings")
    @patch("proexchange.tasks.notifications.load_delivery_context")
    def test_delivery_error_is_retried(self, mock_context, mock_settings, mock_sender):
        """Delivery errors should trigger a retry."""
        mock_context.return_value = self._context()
        mock_settings.return_value = MagicMock(email_api_key="key")
        mock_sender.return_value.send.side_effect = EmailDeliveryError("502")

        # Called directly, retry() re-raises the original error
        with pytest.raises(EmailDeliveryError):
            deliver_notification.run(self._message())
