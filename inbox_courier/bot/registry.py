"""
Subscriber Registry

Bounded set of Telegram chats that receive mail notifications and may
use reply sessions. Mutated only by /start.
"""

import logging
from enum import Enum
from typing import List

from sqlalchemy.exc import SQLAlchemyError

from ..core.database import DatabaseManager


logger = logging.getLogger(__name__)


class RegistrationResult(Enum):
    ADDED = "added"
    ALREADY_REGISTERED = "already_registered"
    FULL = "full"
    UNAVAILABLE = "unavailable"  # Storage error


class SubscriberRegistry:
    """
    Registered chat ids, at most max_subscribers of them.

    Storage errors degrade to "not registered" / "no subscribers" with a
    warning instead of failing the webhook.
    """

    def __init__(self, db: DatabaseManager, max_subscribers: int = 2):
        self.db = db
        self.max_subscribers = max_subscribers

    def register(self, chat_id: int) -> RegistrationResult:
        """Register a chat if there is room (no-op when already registered)."""
        try:
            if self.db.is_subscriber(chat_id):
                return RegistrationResult.ALREADY_REGISTERED

            slot = self.db.claim_subscriber_slot(chat_id, self.max_subscribers)
        except SQLAlchemyError as e:
            logger.warning(f"Subscriber registration for chat {chat_id} failed: {e}")
            return RegistrationResult.UNAVAILABLE

        if slot is None:
            logger.info(f"Rejected chat {chat_id}: subscriber limit ({self.max_subscribers}) reached")
            return RegistrationResult.FULL
        return RegistrationResult.ADDED

    def is_registered(self, chat_id: int) -> bool:
        try:
            return self.db.is_subscriber(chat_id)
        except SQLAlchemyError as e:
            logger.warning(f"Subscriber lookup for chat {chat_id} failed: {e}")
            return False

    def chat_ids(self) -> List[int]:
        """Delivery targets in registration order."""
        try:
            return self.db.get_subscriber_chat_ids()
        except SQLAlchemyError as e:
            logger.warning(f"Failed to load Telegram subscribers: {e}")
            return []
