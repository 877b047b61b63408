"""
Callback Command Decoder

Inline-keyboard buttons carry "<action>:<view_id>" payloads. This module
decodes them into CallbackCommand values and builds the keyboards that
produce them.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from ..telegram.client import inline_keyboard


logger = logging.getLogger(__name__)

# Telegram rejects callback_data longer than 64 bytes
MAX_CALLBACK_DATA_BYTES = 64

VIEW_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{32}$")


class CallbackAction(Enum):
    """Button actions."""
    VIEW_FULL = "view_full"  # Show full email
    VIEW_SUMMARY = "view_summary"  # Back from full email to summary
    REPLY_START = "reply_start"  # Begin composing a reply
    REPLY_BACK = "reply_back"  # Abandon composing, restore summary
    REPLY_SEND = "reply_send"  # Send the current draft
    REPLY_EDIT = "reply_edit"  # Ask for edit feedback
    REPLY_CANCEL_EDIT = "reply_cancel_edit"  # Back from edit prompt to draft


@dataclass(frozen=True)
class CallbackCommand:
    """
    Decoded button payload.

    Attributes:
        action: What the button does
        view_id: EmailView the button refers to
    """
    action: CallbackAction
    view_id: str

    def encode(self) -> str:
        return f"{self.action.value}:{self.view_id}"


def parse_callback_data(data: Optional[str]) -> Optional[CallbackCommand]:
    """
    Decode a callback payload.

    Args:
        data: Raw callback_data string from Telegram

    Returns:
        CallbackCommand, or None if the payload is unknown or malformed
    """
    if not data or len(data.encode("utf-8")) > MAX_CALLBACK_DATA_BYTES:
        return None

    action_name, sep, view_id = data.partition(":")
    if not sep or not VIEW_ID_PATTERN.match(view_id):
        logger.debug(f"Malformed callback data: {data!r}")
        return None

    try:
        action = CallbackAction(action_name)
    except ValueError:
        logger.debug(f"Unknown callback action: {action_name!r}")
        return None

    return CallbackCommand(action=action, view_id=view_id)


def _button(text: str, action: CallbackAction, view_id: str) -> Dict[str, str]:
    return {"text": text, "callback_data": CallbackCommand(action, view_id).encode()}


# ============================================================================
# KEYBOARDS
# ============================================================================


def summary_keyboard(view_id: str) -> Dict[str, Any]:
    return inline_keyboard([[_button("See the full email", CallbackAction.VIEW_FULL, view_id)]])


def full_email_keyboard(view_id: str) -> Dict[str, Any]:
    return inline_keyboard([[
        _button("⬅️ Back", CallbackAction.VIEW_SUMMARY, view_id),
        _button("✉️ REPLY", CallbackAction.REPLY_START, view_id),
    ]])


def compose_keyboard(view_id: str) -> Dict[str, Any]:
    return inline_keyboard([[_button("⬅️ Back", CallbackAction.REPLY_BACK, view_id)]])


def draft_keyboard(view_id: str) -> Dict[str, Any]:
    return inline_keyboard([[
        _button("✅ Send", CallbackAction.REPLY_SEND, view_id),
        _button("✏️ Edit", CallbackAction.REPLY_EDIT, view_id),
    ]])


def edit_feedback_keyboard(view_id: str) -> Dict[str, Any]:
    return inline_keyboard([[_button("⬅️ Back", CallbackAction.REPLY_CANCEL_EDIT, view_id)]])
