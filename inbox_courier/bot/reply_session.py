"""
Reply Session State Machine

Drives the per-chat reply flow started from a notification:

    Idle --REPLY--> awaiting_reply --text--> awaiting_send_edit --Send--> Idle
                         |                      |      ^
                       Back                   Edit    Back / feedback text
                         v                      v      |
                       Idle              awaiting_edit_feedback

State lives in the reply_sessions table (one row per chat). Every
transition that touches a view first checks the view still exists.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from ..ai.drafting import ReplyDrafter
from ..core.config import AppConfig
from ..core.database import DatabaseManager, EmailViewRecord, ReplyMode, ReplySessionRecord
from ..core.exceptions import DatabaseError, GenerationError, GraphAPIError, TelegramAPIError
from ..graph.mail import MailboxClient
from ..telegram.client import TelegramBotClient
from ..utils.concurrency import run_blocking
from ..utils.text_utils import escape_html, truncate_html_text
from .callbacks import (
    CallbackAction,
    CallbackCommand,
    compose_keyboard,
    draft_keyboard,
    edit_feedback_keyboard,
    full_email_keyboard,
    parse_callback_data,
    summary_keyboard,
)
from .registry import SubscriberRegistry
from .updates import IncomingCallback, IncomingMessage


logger = logging.getLogger(__name__)

VIEW_EXPIRED_TEXT = (
    "⌛ This email is no longer available (notifications expire after 24 hours). "
    "Please wait for a new notification and start again."
)
SESSION_INACTIVE_TEXT = "⌛ This draft is no longer active. Press ✉️ REPLY on the notification to start again."
NOT_REGISTERED_TEXT = "🔒 Only registered chats can reply to emails. Send /start to register."
DRAFT_FAILED_TEXT = "❌ Could not draft a reply right now. Send your message again to retry."
EDIT_FAILED_TEXT = "❌ Could not apply your changes right now. Send your feedback again to retry."
SEND_FAILED_TEXT = "❌ Failed to send the reply. Your draft is kept; press ✅ Send to try again."
STORAGE_FAILED_TEXT = "⚠️ Something went wrong saving your reply. Please try again."
USE_BUTTONS_TEXT = "ℹ️ Use the ✅ Send or ✏️ Edit buttons under your draft."
EDIT_PROMPT_TEXT = "What would you like to change?"

Result = Dict[str, Any]


def compose_prompt(view: EmailViewRecord) -> str:
    return f"{view.summary_text}\n\n<b>What would you like to say to {escape_html(view.sender_name)}?</b>"


def draft_display(view: EmailViewRecord, draft: str, max_length: int = 4096) -> str:
    prefix = f"<b>📝 Draft reply to {escape_html(view.sender_name)}:</b>\n\n"
    return prefix + truncate_html_text(escape_html(draft), max_length - len(prefix))


class ReplySessionMachine:
    """
    Handles button presses and free text that belong to the reply flow.

    Usage:
        machine = ReplySessionMachine(config.app, db, telegram, drafter, mailbox, registry)
        await machine.handle_callback(callback)
        await machine.handle_text(message, session)
    """

    def __init__(
        self,
        app_config: AppConfig,
        db: DatabaseManager,
        telegram: TelegramBotClient,
        drafter: ReplyDrafter,
        mailbox: MailboxClient,
        registry: SubscriberRegistry,
    ):
        self.app_config = app_config
        self.db = db
        self.telegram = telegram
        self.drafter = drafter
        self.mailbox = mailbox
        self.registry = registry

        self._handlers: Dict[CallbackAction, Callable[[IncomingCallback, CallbackCommand], Awaitable[Result]]] = {
            CallbackAction.VIEW_FULL: self._on_view_full,
            CallbackAction.VIEW_SUMMARY: self._on_view_summary,
            CallbackAction.REPLY_START: self._on_reply_start,
            CallbackAction.REPLY_BACK: self._on_reply_back,
            CallbackAction.REPLY_SEND: self._on_reply_send,
            CallbackAction.REPLY_EDIT: self._on_reply_edit,
            CallbackAction.REPLY_CANCEL_EDIT: self._on_reply_cancel_edit,
        }
        missing = set(CallbackAction) - set(self._handlers)
        if missing:
            raise ValueError(f"No handler for callback actions: {missing}")

    @property
    def max_length(self) -> int:
        return self.app_config.telegram_message_max_length

    # ========================================================================
    # TELEGRAM HELPERS
    # ========================================================================

    async def _send(self, chat_id: int, text: str, reply_markup: Optional[Dict[str, Any]] = None) -> Optional[int]:
        try:
            return await run_blocking(self.telegram.send_message, chat_id, text, reply_markup)
        except TelegramAPIError as e:
            logger.error(f"Telegram send to chat {chat_id} failed: {e}")
            return None

    async def _edit(
        self, chat_id: int, message_id: int, text: str, reply_markup: Optional[Dict[str, Any]] = None
    ) -> bool:
        try:
            await run_blocking(self.telegram.edit_message_text, chat_id, message_id, text, reply_markup)
            return True
        except TelegramAPIError as e:
            logger.error(f"Telegram edit of message {message_id} in chat {chat_id} failed: {e}")
            return False

    async def _answer(self, callback_query_id: str):
        try:
            await run_blocking(self.telegram.answer_callback_query, callback_query_id)
        except TelegramAPIError as e:
            logger.warning(f"Failed to acknowledge callback {callback_query_id}: {e}")

    # ========================================================================
    # STATE HELPERS
    # ========================================================================

    async def _require_view(self, chat_id: int, view_id: str) -> Optional[EmailViewRecord]:
        """
        Load a view; if it has expired, drop any session pointing at it and tell the user.
        """
        view = self.db.get_email_view(view_id)
        if view is not None:
            return view

        session = self.db.get_reply_session(chat_id)
        if session is not None and session.view_id == view_id:
            self.db.delete_reply_session(chat_id)
            logger.info(f"Discarded reply session for chat {chat_id}: view {view_id} expired")
        await self._send(chat_id, VIEW_EXPIRED_TEXT)
        return None

    async def _require_registered(self, chat_id: int) -> bool:
        if self.registry.is_registered(chat_id):
            return True
        await self._send(chat_id, NOT_REGISTERED_TEXT)
        return False

    async def _require_session(
        self, chat_id: int, view_id: str, mode: ReplyMode
    ) -> Optional[ReplySessionRecord]:
        session = self.db.get_reply_session(chat_id)
        if session is None or session.view_id != view_id or session.mode is not mode:
            await self._send(chat_id, SESSION_INACTIVE_TEXT)
            return None
        return session

    def _save(self, chat_id: int, view_id: str, mode: ReplyMode, draft: str = "",
              anchor_message_id: Optional[int] = None) -> ReplySessionRecord:
        return self.db.save_reply_session(
            chat_id=chat_id,
            view_id=view_id,
            mode=mode,
            draft=draft,
            anchor_message_id=anchor_message_id,
            ttl_hours=self.app_config.session_ttl_hours,
        )

    # ========================================================================
    # ENTRY POINTS
    # ========================================================================

    async def handle_callback(self, callback: IncomingCallback) -> Result:
        """Acknowledge a button press, decode it and run its transition."""
        await self._answer(callback.callback_query_id)

        command = parse_callback_data(callback.data)
        if command is None:
            logger.warning(f"Ignoring unrecognised callback data from chat {callback.chat_id}: {callback.data!r}")
            return {"status": "ignored", "reason": "unrecognised callback"}

        logger.info(f"Callback {command.action.value} for view {command.view_id} from chat {callback.chat_id}")
        return await self._handlers[command.action](callback, command)

    async def handle_text(self, message: IncomingMessage, session: ReplySessionRecord) -> Result:
        """Free text from a chat with an active session."""
        chat_id = message.chat_id

        if session.mode is ReplyMode.AWAITING_SEND_EDIT:
            await self._send(chat_id, USE_BUTTONS_TEXT)
            return {"status": "hint", "mode": session.mode.value}

        view = await self._require_view(chat_id, session.view_id)
        if view is None:
            return {"status": "view_expired"}

        if session.mode is ReplyMode.AWAITING_REPLY:
            return await self._compose_draft(message, session, view)
        return await self._apply_feedback(message, session, view)

    # ========================================================================
    # TEXT TRANSITIONS
    # ========================================================================

    async def _compose_draft(self, message: IncomingMessage, session: ReplySessionRecord,
                             view: EmailViewRecord) -> Result:
        chat_id = message.chat_id
        try:
            draft = await run_blocking(self.drafter.draft_reply, message.text, view.sender_name)
        except GenerationError as e:
            logger.warning(f"Reply draft failed for chat {chat_id}: {e}")
            await self._send(chat_id, DRAFT_FAILED_TEXT)
            return {"status": "generation_failed", "mode": session.mode.value}

        anchor = await self._send(chat_id, draft_display(view, draft, self.max_length), draft_keyboard(view.id))
        try:
            self._save(chat_id, view.id, ReplyMode.AWAITING_SEND_EDIT, draft, anchor)
        except DatabaseError:
            await self._send(chat_id, STORAGE_FAILED_TEXT)
            return {"status": "storage_failed"}

        return {"status": "drafted", "mode": ReplyMode.AWAITING_SEND_EDIT.value, "anchor_message_id": anchor}

    async def _apply_feedback(self, message: IncomingMessage, session: ReplySessionRecord,
                              view: EmailViewRecord) -> Result:
        chat_id = message.chat_id
        try:
            revised = await run_blocking(self.drafter.apply_edit, session.draft, message.text)
        except GenerationError as e:
            logger.warning(f"Draft edit failed for chat {chat_id}: {e}")
            await self._send(chat_id, EDIT_FAILED_TEXT)
            return {"status": "generation_failed", "mode": session.mode.value}

        text = draft_display(view, revised, self.max_length)
        anchor = session.anchor_message_id
        if anchor is None or not await self._edit(chat_id, anchor, text, draft_keyboard(view.id)):
            anchor = await self._send(chat_id, text, draft_keyboard(view.id))

        try:
            self._save(chat_id, view.id, ReplyMode.AWAITING_SEND_EDIT, revised, anchor)
        except DatabaseError:
            await self._send(chat_id, STORAGE_FAILED_TEXT)
            return {"status": "storage_failed"}

        return {"status": "revised", "mode": ReplyMode.AWAITING_SEND_EDIT.value, "anchor_message_id": anchor}

    # ========================================================================
    # BUTTON TRANSITIONS
    # ========================================================================

    async def _on_view_full(self, callback: IncomingCallback, command: CallbackCommand) -> Result:
        view = await self._require_view(callback.chat_id, command.view_id)
        if view is None:
            return {"status": "view_expired"}
        await self._edit(callback.chat_id, callback.message_id, view.full_text, full_email_keyboard(view.id))
        return {"status": "shown", "display": "full"}

    async def _on_view_summary(self, callback: IncomingCallback, command: CallbackCommand) -> Result:
        view = await self._require_view(callback.chat_id, command.view_id)
        if view is None:
            return {"status": "view_expired"}
        await self._edit(callback.chat_id, callback.message_id, view.summary_text, summary_keyboard(view.id))
        return {"status": "shown", "display": "summary"}

    async def _on_reply_start(self, callback: IncomingCallback, command: CallbackCommand) -> Result:
        chat_id = callback.chat_id
        if not await self._require_registered(chat_id):
            return {"status": "not_registered"}

        view = await self._require_view(chat_id, command.view_id)
        if view is None:
            return {"status": "view_expired"}

        # Replaces any session already open in this chat
        try:
            self._save(chat_id, view.id, ReplyMode.AWAITING_REPLY, anchor_message_id=callback.message_id)
        except DatabaseError:
            await self._send(chat_id, STORAGE_FAILED_TEXT)
            return {"status": "storage_failed"}

        await self._edit(chat_id, callback.message_id, compose_prompt(view), compose_keyboard(view.id))
        return {"status": "started", "mode": ReplyMode.AWAITING_REPLY.value}

    async def _on_reply_back(self, callback: IncomingCallback, command: CallbackCommand) -> Result:
        chat_id = callback.chat_id
        if not await self._require_registered(chat_id):
            return {"status": "not_registered"}

        # Only a pending compose prompt is cancelled; a drafted reply stays on its Send/Edit message
        session = self.db.get_reply_session(chat_id)
        cancelled = (
            session is not None
            and session.view_id == command.view_id
            and session.mode is ReplyMode.AWAITING_REPLY
        )
        if cancelled:
            self.db.delete_reply_session(chat_id)

        view = await self._require_view(chat_id, command.view_id)
        if view is None:
            return {"status": "view_expired"}

        await self._edit(chat_id, callback.message_id, view.summary_text, summary_keyboard(view.id))
        return {"status": "cancelled" if cancelled else "summary_shown"}

    async def _on_reply_send(self, callback: IncomingCallback, command: CallbackCommand) -> Result:
        chat_id = callback.chat_id
        if not await self._require_registered(chat_id):
            return {"status": "not_registered"}

        session = await self._require_session(chat_id, command.view_id, ReplyMode.AWAITING_SEND_EDIT)
        if session is None:
            return {"status": "inactive"}

        view = await self._require_view(chat_id, command.view_id)
        if view is None:
            return {"status": "view_expired"}

        try:
            await run_blocking(self.mailbox.send_reply, view.source_message_id, session.draft)
        except GraphAPIError as e:
            logger.error(f"Reply send failed for chat {chat_id}, view {view.id}: {e}")
            await self._send(chat_id, SEND_FAILED_TEXT)
            return {"status": "send_failed", "mode": session.mode.value}

        self.db.delete_reply_session(chat_id)
        confirmation = f"<b>✅ Reply sent to {escape_html(view.sender_name)}.</b>\n\n{escape_html(session.draft)}"
        await self._edit(chat_id, callback.message_id, truncate_html_text(confirmation, self.max_length))
        logger.info(f"Reply sent for view {view.id} from chat {chat_id}")
        return {"status": "sent"}

    async def _on_reply_edit(self, callback: IncomingCallback, command: CallbackCommand) -> Result:
        chat_id = callback.chat_id
        if not await self._require_registered(chat_id):
            return {"status": "not_registered"}

        session = await self._require_session(chat_id, command.view_id, ReplyMode.AWAITING_SEND_EDIT)
        if session is None:
            return {"status": "inactive"}

        view = await self._require_view(chat_id, command.view_id)
        if view is None:
            return {"status": "view_expired"}

        try:
            self._save(chat_id, view.id, ReplyMode.AWAITING_EDIT_FEEDBACK, session.draft, callback.message_id)
        except DatabaseError:
            await self._send(chat_id, STORAGE_FAILED_TEXT)
            return {"status": "storage_failed"}

        text = f"{draft_display(view, session.draft, self.max_length - 64)}\n\n<b>{EDIT_PROMPT_TEXT}</b>"
        await self._edit(chat_id, callback.message_id, text, edit_feedback_keyboard(view.id))
        return {"status": "awaiting_feedback", "mode": ReplyMode.AWAITING_EDIT_FEEDBACK.value}

    async def _on_reply_cancel_edit(self, callback: IncomingCallback, command: CallbackCommand) -> Result:
        chat_id = callback.chat_id
        if not await self._require_registered(chat_id):
            return {"status": "not_registered"}

        session = await self._require_session(chat_id, command.view_id, ReplyMode.AWAITING_EDIT_FEEDBACK)
        if session is None:
            return {"status": "inactive"}

        view = await self._require_view(chat_id, command.view_id)
        if view is None:
            return {"status": "view_expired"}

        try:
            self._save(chat_id, view.id, ReplyMode.AWAITING_SEND_EDIT, session.draft, callback.message_id)
        except DatabaseError:
            await self._send(chat_id, STORAGE_FAILED_TEXT)
            return {"status": "storage_failed"}

        await self._edit(
            chat_id, callback.message_id, draft_display(view, session.draft, self.max_length), draft_keyboard(view.id)
        )
        return {"status": "draft_shown", "mode": ReplyMode.AWAITING_SEND_EDIT.value}
