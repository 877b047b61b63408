"""
Telegram Update Handler

Routes webhook updates: button presses go to the reply state machine,
slash commands are answered here, and free text goes to the reply state
machine only when the chat has an active session.
"""

import logging
from typing import Any, Dict

from ..core.database import DatabaseManager
from ..core.exceptions import GraphAPIError, TelegramAPIError
from ..graph.mail import MailboxClient
from ..telegram.client import TelegramBotClient
from ..utils.concurrency import run_blocking
from .registry import RegistrationResult, SubscriberRegistry
from .reply_session import ReplySessionMachine
from .updates import (
    BotCommand,
    BotCommandType,
    IncomingCallback,
    IncomingMessage,
    parse_bot_command,
    parse_update,
)


logger = logging.getLogger(__name__)

HELP_TEXT = (
    "📬 Inbox Courier\n\n"
    "Commands:\n"
    "/start - Receive new email notifications in this chat\n"
    "/check - Show whether this chat is registered\n"
    "/me - Linked mailbox\n"
    "/inbox - Inbox count (last 30 days)\n"
    "/help - Show this message"
)
IDLE_TEXT = "Send /start to receive email notifications here, or /help for all commands."


class UpdateHandler:
    """
    Entry point for Telegram webhook updates.

    Usage:
        handler = UpdateHandler(db, telegram, mailbox, registry, machine)
        result = await handler.handle_update(update_json)
    """

    def __init__(
        self,
        db: DatabaseManager,
        telegram: TelegramBotClient,
        mailbox: MailboxClient,
        registry: SubscriberRegistry,
        reply_sessions: ReplySessionMachine,
    ):
        self.db = db
        self.telegram = telegram
        self.mailbox = mailbox
        self.registry = registry
        self.reply_sessions = reply_sessions

        self._commands = {
            BotCommandType.START: self._cmd_start,
            BotCommandType.CHECK: self._cmd_check,
            BotCommandType.HELP: self._cmd_help,
            BotCommandType.ME: self._cmd_me,
            BotCommandType.INBOX: self._cmd_inbox,
            BotCommandType.UNKNOWN: self._cmd_unknown,
        }

    async def _reply(self, chat_id: int, text: str):
        # Command replies are plain text (no HTML escaping needed)
        try:
            await run_blocking(self.telegram.send_message, chat_id, text, None, None)
        except TelegramAPIError as e:
            logger.error(f"Telegram send to chat {chat_id} failed: {e}")

    async def handle_update(self, update_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Handle one Telegram update.

        Returns:
            Result dict describing what was done
        """
        update = parse_update(update_data)
        if update is None:
            return {"status": "ignored"}

        if isinstance(update, IncomingCallback):
            return await self.reply_sessions.handle_callback(update)

        return await self._handle_message(update)

    async def _handle_message(self, message: IncomingMessage) -> Dict[str, Any]:
        command = parse_bot_command(message.text)
        if command is not None:
            logger.info(f"Command /{command.name} from chat {message.chat_id}")
            return await self._commands[command.command_type](message, command)

        session = self.db.get_reply_session(message.chat_id)
        if session is not None:
            return await self.reply_sessions.handle_text(message, session)

        await self._reply(message.chat_id, IDLE_TEXT)
        return {"status": "idle_hint"}

    # ========================================================================
    # COMMANDS
    # ========================================================================

    async def _cmd_start(self, message: IncomingMessage, command: BotCommand) -> Dict[str, Any]:
        result = self.registry.register(message.chat_id)

        if result is RegistrationResult.ADDED:
            text = f"✅ Registered. New email notifications will arrive in this chat.\n\n{HELP_TEXT}"
        elif result is RegistrationResult.ALREADY_REGISTERED:
            text = "ℹ️ This chat is already registered for notifications."
        elif result is RegistrationResult.FULL:
            text = (
                f"⛔ The subscriber limit ({self.registry.max_subscribers}) has been reached. "
                "This chat was not registered."
            )
        else:
            text = "⚠️ Registration is temporarily unavailable. Please try again later."

        await self._reply(message.chat_id, text)
        return {"status": "command", "command": "start", "result": result.value}

    async def _cmd_check(self, message: IncomingMessage, command: BotCommand) -> Dict[str, Any]:
        registered = self.registry.is_registered(message.chat_id)
        if registered:
            text = "✅ This chat is registered for email notifications."
        else:
            text = "❌ This chat is not registered. Send /start to register."
        await self._reply(message.chat_id, text)
        return {"status": "command", "command": "check", "registered": registered}

    async def _cmd_help(self, message: IncomingMessage, command: BotCommand) -> Dict[str, Any]:
        await self._reply(message.chat_id, HELP_TEXT)
        return {"status": "command", "command": "help"}

    async def _cmd_me(self, message: IncomingMessage, command: BotCommand) -> Dict[str, Any]:
        if not self.registry.is_registered(message.chat_id):
            await self._reply(message.chat_id, "🔒 Send /start to register this chat first.")
            return {"status": "command", "command": "me", "registered": False}

        try:
            profile = await run_blocking(self.mailbox.get_mailbox_profile)
            text = f"📧 Linked mailbox:\n\nName: {profile['display_name']}\nEmail: {profile['email']}"
        except GraphAPIError as e:
            logger.error(f"/me lookup failed: {e}")
            text = "⚠️ Could not reach the mailbox right now. Please try again later."
        await self._reply(message.chat_id, text)
        return {"status": "command", "command": "me"}

    async def _cmd_inbox(self, message: IncomingMessage, command: BotCommand) -> Dict[str, Any]:
        if not self.registry.is_registered(message.chat_id):
            await self._reply(message.chat_id, "🔒 Send /start to register this chat first.")
            return {"status": "command", "command": "inbox", "registered": False}

        try:
            count = await run_blocking(self.mailbox.count_recent_inbox_messages, 30)
            text = f"📬 Inbox (last 30 days): {count} emails"
        except GraphAPIError as e:
            logger.error(f"/inbox count failed: {e}")
            text = "⚠️ Could not reach the mailbox right now. Please try again later."
        await self._reply(message.chat_id, text)
        return {"status": "command", "command": "inbox"}

    async def _cmd_unknown(self, message: IncomingMessage, command: BotCommand) -> Dict[str, Any]:
        await self._reply(message.chat_id, f"Unknown command /{command.name}.\n\n{HELP_TEXT}")
        return {"status": "command", "command": "unknown"}
