"""
Telegram Bot Module

Subscriber registration, bot commands, and the reply-session state machine
behind the notification buttons.
"""

from .callbacks import CallbackAction, CallbackCommand, parse_callback_data
from .registry import RegistrationResult, SubscriberRegistry
from .reply_session import ReplySessionMachine
from .update_handler import UpdateHandler

__all__ = [
    "CallbackAction",
    "CallbackCommand",
    "parse_callback_data",
    "RegistrationResult",
    "SubscriberRegistry",
    "ReplySessionMachine",
    "UpdateHandler",
]
