"""
Telegram Update Parsing

Converts raw webhook update JSON into typed values and recognises bot
commands ("/start", "/check@MyBot", ...).
"""

import hmac
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IncomingMessage:
    """A text message sent to the bot."""
    chat_id: int
    message_id: int
    text: str


@dataclass(frozen=True)
class IncomingCallback:
    """An inline-keyboard button press."""
    callback_query_id: str
    chat_id: int
    message_id: int
    data: str


Update = Union[IncomingMessage, IncomingCallback]


def parse_update(update_data: Dict[str, Any]) -> Optional[Update]:
    """
    Parse a Telegram update.

    Returns:
        IncomingMessage or IncomingCallback, or None for updates the bot
        ignores (edited messages, non-text messages, messages from bots,
        payloads missing the chat id)
    """
    callback = update_data.get("callback_query")
    if callback:
        message = callback.get("message") or {}
        chat_id = (message.get("chat") or {}).get("id")
        if not callback.get("id") or chat_id is None or message.get("message_id") is None:
            logger.debug("Callback query without id or message, ignoring")
            return None
        return IncomingCallback(
            callback_query_id=str(callback["id"]),
            chat_id=int(chat_id),
            message_id=int(message["message_id"]),
            data=callback.get("data") or "",
        )

    message = update_data.get("message")
    if not message:
        logger.debug("Update does not contain a message or callback_query, ignoring")
        return None

    if (message.get("from") or {}).get("is_bot", False):
        return None

    chat_id = (message.get("chat") or {}).get("id")
    text = message.get("text")
    if chat_id is None or not isinstance(text, str):
        return None

    return IncomingMessage(chat_id=int(chat_id), message_id=int(message.get("message_id") or 0), text=text)


def verify_secret(received: Optional[str], expected: str) -> bool:
    """
    Check the X-Telegram-Bot-Api-Secret-Token header.

    An empty expected secret disables the check.
    """
    if not expected:
        return True
    if not received:
        logger.warning("Missing X-Telegram-Bot-Api-Secret-Token header")
        return False
    return hmac.compare_digest(received, expected)


# ============================================================================
# BOT COMMANDS
# ============================================================================


class BotCommandType(Enum):
    """Supported slash commands."""
    START = "start"  # Register for notifications
    CHECK = "check"  # Report registration status
    HELP = "help"  # List commands
    ME = "me"  # Linked mailbox
    INBOX = "inbox"  # Inbox count, last 30 days
    UNKNOWN = "unknown"  # Any other /command


@dataclass(frozen=True)
class BotCommand:
    command_type: BotCommandType
    name: str
    args: str = ""


def parse_bot_command(text: str) -> Optional[BotCommand]:
    """
    Recognise a slash command.

    Args:
        text: Message text

    Returns:
        BotCommand if text starts with "/", else None

    Example:
        parse_bot_command("/start@InboxCourierBot")
        -> BotCommand(BotCommandType.START, "start", "")
    """
    stripped = text.strip()
    if not stripped.startswith("/"):
        return None

    head, _, args = stripped[1:].partition(" ")
    name = head.split("@", 1)[0].lower()
    try:
        command_type = BotCommandType(name)
    except ValueError:
        command_type = BotCommandType.UNKNOWN
    return BotCommand(command_type=command_type, name=name, args=args.strip())
