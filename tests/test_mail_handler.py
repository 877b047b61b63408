"""
Unit tests for the mail notification pipeline with mocked Graph and Telegram clients.

Covers:
- Deduplication of repeated notifications
- Notification text (header, summary, full email view)
- Delivery to every registered chat
- Degraded paths (fetch failure, view storage failure, send failure)
"""

import pytest
from unittest.mock import Mock, patch

from inbox_courier.ai.summarizer import EmailSummarizer
from inbox_courier.bot.callbacks import parse_callback_data, CallbackAction
from inbox_courier.bot.registry import SubscriberRegistry
from inbox_courier.core.exceptions import DatabaseError, GraphAPIError, TelegramAPIError
from inbox_courier.graph.mail import MailMessage
from inbox_courier.webhooks.deduplicator import EventDeduplicator
from inbox_courier.webhooks.mail_handler import (
    MailNotificationHandler,
    NotificationDispatcher,
    build_full_display,
    build_header,
    build_summary_display,
)
from tests.factories import GraphAPITestFactory


@pytest.fixture
def registry(test_db):
    registry = SubscriberRegistry(test_db, max_subscribers=2)
    registry.register(1001)
    return registry


@pytest.fixture
def dispatcher(app_config, test_db, mock_mailbox, mock_telegram, registry):
    mock_mailbox.fetch_message = Mock(
        return_value=MailMessage.from_graph(GraphAPITestFactory.create_message())
    )
    summarizer = EmailSummarizer(generation_enabled=False)
    return NotificationDispatcher(app_config, test_db, mock_mailbox, mock_telegram, summarizer, registry)


@pytest.fixture
def handler(test_db, dispatcher):
    return MailNotificationHandler(
        EventDeduplicator(test_db),
        dispatcher,
        client_state="inbox-courier-subscription",
    )


class TestDisplayText:
    """Tests for notification text builders."""

    def test_header(self):
        assert build_header("Jane", False) == "A new email was sent from Jane."
        assert build_header("Jane", True) == "A new email was sent from Jane (thread)."

    def test_summary_display_escapes(self):
        text = build_summary_display("A new email was sent from <Bob>.", "R&D update")

        assert text == (
            "<b>A new email was sent from &lt;Bob&gt;.</b>\n\n<b>📧 Email Summary:</b>\n\nR&amp;D update"
        )

    def test_full_display_truncated_to_limit(self):
        text = build_full_display("A new email was sent from Jane.", "x" * 10000, max_length=4096)

        assert len(text) <= 4096
        assert text.endswith("... (truncated)")
        assert text.startswith("<b>A new email was sent from Jane.</b>\n\n<b>Full email:</b>\n\n")

    def test_full_display_empty_body(self):
        assert build_full_display("H", "").endswith("(No content)")


class TestEndToEnd:
    """Notification batch through dispatch with generation disabled."""

    @pytest.mark.asyncio
    async def test_jane_example(self, handler, mock_telegram, mock_mailbox, test_db):
        payload = GraphAPITestFactory.create_notification(["M1"])

        stats = await handler.handle_notification(payload)

        assert stats == {"received": 1, "new": 1, "duplicates": 0, "dispatched": 1, "errors": 0}
        mock_mailbox.fetch_message.assert_called_once_with("M1")

        chat_id, text, reply_markup = mock_telegram.send_message.call_args[0]
        assert chat_id == 1001
        assert text.startswith("<b>A new email was sent from Jane.</b>")
        assert text.endswith("Hi,\n\nCan we meet Friday?")

        command = parse_callback_data(reply_markup["inline_keyboard"][0][0]["callback_data"])
        assert command.action is CallbackAction.VIEW_FULL

        view = test_db.get_email_view(command.view_id)
        assert view.summary_text == text
        assert view.source_message_id == "M1"
        assert "Hi,\n\nCan we meet Friday?\n\nBest,\nJane" in view.full_text

    @pytest.mark.asyncio
    async def test_duplicate_notifications_dispatch_once(self, handler, mock_telegram):
        payload = GraphAPITestFactory.create_notification(["M1", "M1"])

        first = await handler.handle_notification(payload)
        second = await handler.handle_notification(payload)

        assert first["received"] == 2
        assert first["dispatched"] == 1
        assert second["duplicates"] == 1
        assert second["dispatched"] == 0
        assert mock_telegram.send_message.call_count == 1

    @pytest.mark.asyncio
    async def test_thread_header(self, handler, mock_telegram, mock_mailbox):
        mock_mailbox.count_thread_messages.return_value = 2

        await handler.handle_notification(GraphAPITestFactory.create_notification(["M1"]))

        text = mock_telegram.send_message.call_args[0][1]
        assert text.startswith("<b>A new email was sent from Jane (thread).</b>")

    @pytest.mark.asyncio
    async def test_every_subscriber_notified(self, handler, registry, mock_telegram):
        registry.register(2002)

        await handler.handle_notification(GraphAPITestFactory.create_notification(["M1"]))

        chats = [call[0][0] for call in mock_telegram.send_message.call_args_list]
        assert chats == [1001, 2002]


class TestClientStateFilter:
    """Tests for clientState filtering."""

    def test_foreign_client_state_dropped(self, handler):
        payload = GraphAPITestFactory.create_notification(["M1"], client_state="someone-else")

        assert handler.extract_message_ids(payload) == []

    def test_missing_client_state_accepted(self, handler):
        payload = GraphAPITestFactory.create_notification(["M1"], client_state=None)

        assert handler.extract_message_ids(payload) == ["M1"]

    def test_malformed_items_skipped(self, handler):
        payload = {"value": ["junk", {"resourceData": {}}, {"resourceData": {"id": "M9"}}]}

        assert handler.extract_message_ids(payload) == ["M9"]

    @pytest.mark.asyncio
    async def test_empty_batch(self, handler, mock_telegram):
        stats = await handler.handle_notification({})

        assert stats["received"] == 0
        mock_telegram.send_message.assert_not_called()


class TestDegradedPaths:
    """Failures that must not stop the batch."""

    @pytest.mark.asyncio
    async def test_fetch_failure_counted_as_error(self, handler, mock_mailbox, mock_telegram):
        mock_mailbox.fetch_message.side_effect = GraphAPIError("boom")

        stats = await handler.handle_notification(GraphAPITestFactory.create_notification(["M1"]))

        assert stats["errors"] == 1
        assert stats["dispatched"] == 0
        mock_telegram.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_view_storage_failure_sends_without_buttons(self, dispatcher, mock_telegram, test_db):
        with patch.object(test_db, "create_email_view", side_effect=DatabaseError("disk full")):
            result = await dispatcher.dispatch("M1")

        assert result["status"] == "sent"
        assert result["view_id"] is None
        assert mock_telegram.send_message.call_args[0][2] is None

    @pytest.mark.asyncio
    async def test_send_failure_for_one_chat(self, dispatcher, registry, mock_telegram):
        registry.register(2002)
        mock_telegram.send_message.side_effect = [TelegramAPIError("blocked"), 77]

        result = await dispatcher.dispatch("M1")

        assert result["recipients"] == 2
        assert result["delivered"] == 1

    @pytest.mark.asyncio
    async def test_dedup_storage_failure_skips_message(self, handler, mock_telegram):
        with patch.object(handler.deduplicator, "claim", side_effect=DatabaseError("locked")):
            stats = await handler.handle_notification(GraphAPITestFactory.create_notification(["M1"]))

        assert stats["errors"] == 1
        mock_telegram.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_subscribers(self, app_config, test_db, mock_mailbox, mock_telegram):
        mock_mailbox.fetch_message = Mock(
            return_value=MailMessage.from_graph(GraphAPITestFactory.create_message())
        )
        dispatcher = NotificationDispatcher(
            app_config, test_db, mock_mailbox, mock_telegram,
            EmailSummarizer(generation_enabled=False), SubscriberRegistry(test_db),
        )

        result = await dispatcher.dispatch("M1")

        assert result["recipients"] == 0
        mock_telegram.send_message.assert_not_called()


class TestEventDeduplicator:
    """Tests for EventDeduplicator."""

    def test_distinct_ids(self):
        assert EventDeduplicator.distinct_ids(["b", "a", "", "b", None, "c"]) == ["b", "a", "c"]

    def test_claim(self, test_db):
        dedup = EventDeduplicator(test_db)

        assert dedup.claim("M1") is True
        assert dedup.claim("M1") is False
