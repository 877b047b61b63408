"""
Mail notification deduplication.

Graph retries deliveries and may notify the same change several times.
Inserting a processed_mail_notifications row is the only idempotency gate.
"""

import logging
from typing import Iterable, List

from ..core.database import DatabaseManager


logger = logging.getLogger(__name__)


class EventDeduplicator:
    """Claims resource ids so each message is processed at most once."""

    def __init__(self, db: DatabaseManager, ttl_days: int = 30):
        self.db = db
        self.ttl_days = ttl_days

    @staticmethod
    def distinct_ids(resource_ids: Iterable[str]) -> List[str]:
        """Drop blanks and repeats, keeping first-seen order."""
        seen = set()
        result = []
        for resource_id in resource_ids:
            if resource_id and resource_id not in seen:
                seen.add(resource_id)
                result.append(resource_id)
        return result

    def claim(self, resource_id: str) -> bool:
        """
        Mark a resource id as processed.

        Returns:
            True if this is the first sighting, False for a duplicate

        Raises:
            DatabaseError: Marker could not be written (the event is not processed)
        """
        if self.db.try_mark_processed(resource_id, ttl_days=self.ttl_days):
            return True
        logger.debug(f"Skipping duplicate notification for {resource_id[:20]}...")
        return False
