"""
Microsoft Graph Mail Webhook Handler.

Processes inbox change notifications:
dedup -> fetch message -> normalize -> summarize -> store view -> notify
every registered Telegram chat.
"""

import logging
from typing import Any, Dict, List, Optional

from ..ai.summarizer import EmailSummarizer
from ..bot.callbacks import summary_keyboard
from ..bot.registry import SubscriberRegistry
from ..core.config import AppConfig
from ..core.database import DatabaseManager
from ..core.exceptions import DatabaseError, GraphAPIError, TelegramAPIError
from ..graph.mail import MailboxClient
from ..telegram.client import TelegramBotClient
from ..utils.concurrency import run_blocking
from ..utils.text_utils import (
    escape_html,
    format_full_email_body,
    normalize_email_body,
    truncate_html_text,
)
from .deduplicator import EventDeduplicator

logger = logging.getLogger(__name__)

TRUNCATION_SUFFIX = "... (truncated)"


# ============================================================================
# DISPLAY TEXT
# ============================================================================


def build_header(sender_name: str, is_thread: bool) -> str:
    if is_thread:
        return f"A new email was sent from {sender_name} (thread)."
    return f"A new email was sent from {sender_name}."


def build_summary_display(header: str, summary: str) -> str:
    return f"<b>{escape_html(header)}</b>\n\n<b>📧 Email Summary:</b>\n\n{escape_html(summary)}"


def build_full_display(header: str, formatted_body: str, max_length: int = 4096) -> str:
    """Header plus full body, truncated with a marker to fit one Telegram message."""
    prefix = f"<b>{escape_html(header)}</b>\n\n<b>Full email:</b>\n\n"
    body = escape_html(formatted_body) or "(No content)"
    return prefix + truncate_html_text(body, max_length - len(prefix), TRUNCATION_SUFFIX)


# ============================================================================
# DISPATCHER
# ============================================================================


class NotificationDispatcher:
    """
    Builds and delivers the Telegram notification for one new message.
    """

    def __init__(
        self,
        app_config: AppConfig,
        db: DatabaseManager,
        mailbox: MailboxClient,
        telegram: TelegramBotClient,
        summarizer: EmailSummarizer,
        registry: SubscriberRegistry,
    ):
        self.app_config = app_config
        self.db = db
        self.mailbox = mailbox
        self.telegram = telegram
        self.summarizer = summarizer
        self.registry = registry

    async def _is_thread(self, conversation_id: str) -> bool:
        try:
            return await run_blocking(self.mailbox.count_thread_messages, conversation_id) >= 2
        except GraphAPIError as e:
            logger.warning(f"Thread check failed, treating as single message: {e}")
            return False

    async def dispatch(self, message_id: str) -> Dict[str, Any]:
        """
        Notify subscribers about a message.

        Args:
            message_id: Graph message id from the notification

        Returns:
            Result dict with status ("sent" or "error"), view_id and delivery counts
        """
        try:
            message = await run_blocking(self.mailbox.fetch_message, message_id)
        except GraphAPIError as e:
            logger.error(f"Failed to fetch message {message_id[:20]}...: {e}")
            return {"status": "error", "message_id": message_id, "reason": f"fetch failed: {e}"}

        is_thread = await self._is_thread(message.conversation_id)
        header = build_header(message.sender_name, is_thread)

        normalized = normalize_email_body(message.content, message.content_type)
        summary = await run_blocking(self.summarizer.summarize, normalized)

        summary_display = build_summary_display(header, summary)
        full_display = build_full_display(
            header,
            format_full_email_body(message.content, message.content_type),
            self.app_config.telegram_message_max_length,
        )

        view_id: Optional[str] = None
        try:
            view_id = self.db.create_email_view(
                summary_text=summary_display,
                full_text=full_display,
                sender_name=message.sender_name,
                source_message_id=message.id or message_id,
                ttl_hours=self.app_config.view_ttl_hours,
            )
        except DatabaseError as e:
            # Still notify, just without buttons
            logger.warning(f"Sending notification without controls: {e}")

        reply_markup = summary_keyboard(view_id) if view_id else None
        recipients = self.registry.chat_ids()
        delivered = 0
        for chat_id in recipients:
            try:
                await run_blocking(self.telegram.send_message, chat_id, summary_display, reply_markup)
                delivered += 1
            except TelegramAPIError as e:
                logger.error(f"Telegram send to chat {chat_id} failed: {e}")

        if not recipients:
            logger.warning("No Telegram subscribers registered; notification not delivered")

        logger.info(
            f"Notified {delivered}/{len(recipients)} chat(s) about mail from {message.sender_name} "
            f"(thread: {is_thread}, view: {view_id})"
        )
        return {
            "status": "sent",
            "message_id": message_id,
            "view_id": view_id,
            "thread": is_thread,
            "recipients": len(recipients),
            "delivered": delivered,
        }


# ============================================================================
# WEBHOOK HANDLER
# ============================================================================


class MailNotificationHandler:
    """
    Handles Graph change-notification batches for the inbox subscription.

    Ids are processed sequentially in delivery order; each is claimed in the
    dedup table right before it is dispatched.
    """

    def __init__(self, deduplicator: EventDeduplicator, dispatcher: NotificationDispatcher, client_state: str = ""):
        """
        Args:
            deduplicator: EventDeduplicator instance
            dispatcher: NotificationDispatcher instance
            client_state: Expected clientState (items with another value are dropped)
        """
        self.deduplicator = deduplicator
        self.dispatcher = dispatcher
        self.client_state = client_state

    def extract_message_ids(self, payload: Dict[str, Any]) -> List[str]:
        """Message ids from a notification batch, skipping items with a foreign clientState."""
        ids = []
        for item in payload.get("value") or []:
            if not isinstance(item, dict):
                continue
            state = item.get("clientState")
            if self.client_state and state is not None and state != self.client_state:
                logger.warning(f"Dropping notification with unexpected clientState: {state!r}")
                continue
            resource_id = (item.get("resourceData") or {}).get("id")
            if resource_id:
                ids.append(resource_id)
        return ids

    async def handle_notification(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Process one webhook delivery.

        Returns:
            Stats dict (received, new, duplicates, dispatched, errors)
        """
        raw_ids = self.extract_message_ids(payload)
        message_ids = self.deduplicator.distinct_ids(raw_ids)
        stats = {
            "received": len(raw_ids),
            "new": 0,
            "duplicates": 0,
            "dispatched": 0,
            "errors": 0,
        }
        logger.info(f"Mail webhook: {len(raw_ids)} notification(s), {len(message_ids)} distinct")

        for message_id in message_ids:
            try:
                is_new = self.deduplicator.claim(message_id)
            except DatabaseError as e:
                logger.error(f"Could not record notification {message_id[:20]}..., skipping: {e}")
                stats["errors"] += 1
                continue

            if not is_new:
                stats["duplicates"] += 1
                continue

            stats["new"] += 1
            try:
                result = await self.dispatcher.dispatch(message_id)
            except Exception as e:
                logger.error(f"Error processing message {message_id[:20]}...: {e}", exc_info=True)
                stats["errors"] += 1
                continue

            if result.get("status") == "sent":
                stats["dispatched"] += 1
            else:
                stats["errors"] += 1

        return stats
