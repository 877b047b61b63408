"""
Microsoft Graph mail subscription manager.

Keeps the inbox change-notification subscription alive:
1. Creates it when none is stored (or the stored one is gone)
2. Renews it when less than the configured threshold remains
Subscription metadata is persisted in the mail_subscriptions table.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from ..core.config import ConfigManager
from ..core.database import DatabaseManager, utc_now
from ..core.exceptions import GraphAPIError, ResourceNotFoundError
from ..graph.client import GraphAPIClient

logger = logging.getLogger(__name__)


def parse_graph_datetime(value: str) -> Optional[datetime]:
    """Parse a Graph ISO timestamp ("2024-01-01T00:00:00.0000000Z") into naive UTC."""
    if not value:
        return None
    value = value.replace("Z", "")
    # Graph returns 7 fractional digits; fromisoformat accepts at most 6
    if "." in value:
        head, frac = value.split(".", 1)
        value = f"{head}.{frac[:6]}"
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.warning(f"Unparseable Graph timestamp: {value}")
        return None


class SubscriptionManager:
    """
    Creates and renews the Graph subscription for new inbox messages.

    Methods are synchronous; async callers wrap them with run_blocking.
    """

    def __init__(self, config: ConfigManager, graph_client: GraphAPIClient, db: DatabaseManager):
        """
        Args:
            config: ConfigManager instance
            graph_client: Authenticated GraphAPIClient
            db: DatabaseManager for subscription metadata
        """
        self.config = config
        self.graph_client = graph_client
        self.db = db

    @property
    def notification_url(self) -> str:
        return f"{self.config.app.base_url.rstrip('/')}/api/webhook/mail"

    @property
    def resource(self) -> str:
        return f"/users/{self.config.graph_api.mailbox}/mailFolders('Inbox')/messages"

    def _new_expiration(self) -> datetime:
        return utc_now() + timedelta(minutes=self.config.app.subscription_expiration_minutes)

    def create_subscription(self) -> Dict[str, Any]:
        """
        Create a new inbox subscription and store its metadata.

        Returns:
            Subscription dict from Graph

        Raises:
            GraphAPIError: If Graph rejects the subscription (e.g. validation timed out)
        """
        expiry = self._new_expiration()
        subscription = {
            "changeType": "created",
            "notificationUrl": self.notification_url,
            "resource": self.resource,
            "expirationDateTime": expiry.isoformat() + "Z",
            "clientState": self.config.app.subscription_client_state,
        }

        logger.info(f"Creating mail subscription -> {self.notification_url} (expires: {expiry})")
        response = self.graph_client.post("/subscriptions", json=subscription)

        self.db.save_mail_subscription(
            subscription_id=response["id"],
            resource=response.get("resource", self.resource),
            expiration_datetime=parse_graph_datetime(response.get("expirationDateTime", "")) or expiry,
        )
        logger.info(f"✅ Subscription created: {response['id']} (expires: {response.get('expirationDateTime')})")
        return response

    def renew_subscription(self, subscription_id: str) -> Dict[str, Any]:
        """
        Extend an existing subscription and update the stored expiration.

        Raises:
            ResourceNotFoundError: Subscription no longer exists in Graph
            GraphAPIError: Any other renewal failure
        """
        new_expiry = self._new_expiration()
        logger.info(f"Renewing subscription {subscription_id[:20]}... (new expiry: {new_expiry})")
        response = self.graph_client.patch(
            f"/subscriptions/{subscription_id}",
            json={"expirationDateTime": new_expiry.isoformat() + "Z"},
        )

        stored = self.db.get_mail_subscription()
        self.db.save_mail_subscription(
            subscription_id=subscription_id,
            resource=stored.resource if stored else self.resource,
            expiration_datetime=parse_graph_datetime(response.get("expirationDateTime", "")) or new_expiry,
        )
        logger.info(f"✅ Subscription renewed: {response.get('expirationDateTime', new_expiry)}")
        return response

    def renew_if_expiring(self) -> str:
        """
        Ensure a live subscription exists.

        Returns:
            "created", "renewed", or "ok" (no action needed)
        """
        stored = self.db.get_mail_subscription()
        if not stored:
            logger.warning("No stored mail subscription, creating one...")
            self.create_subscription()
            return "created"

        threshold = utc_now() + timedelta(hours=self.config.app.subscription_renew_threshold_hours)
        if stored.expiration_datetime and stored.expiration_datetime > threshold:
            hours_remaining = (stored.expiration_datetime - utc_now()).total_seconds() / 3600
            logger.debug(f"Subscription {stored.subscription_id[:20]}... valid ({hours_remaining:.1f}h remaining)")
            return "ok"

        try:
            self.renew_subscription(stored.subscription_id)
            return "renewed"
        except ResourceNotFoundError:
            logger.warning(f"Subscription {stored.subscription_id[:20]}... no longer exists, recreating...")
            self.db.delete_mail_subscription()
            self.create_subscription()
            return "created"

    def delete_subscription(self, subscription_id: str) -> bool:
        """Delete a subscription in Graph and forget it locally."""
        try:
            self.graph_client.delete(f"/subscriptions/{subscription_id}")
            logger.info(f"Deleted subscription: {subscription_id}")
        except ResourceNotFoundError:
            logger.info(f"Subscription {subscription_id} already gone")
        except GraphAPIError as e:
            logger.error(f"Failed to delete subscription {subscription_id}: {e}")
            return False
        self.db.delete_mail_subscription()
        return True

    def get_status(self) -> Dict[str, Any]:
        """Stored subscription metadata for display."""
        stored = self.db.get_mail_subscription()
        if not stored:
            return {"exists": False}
        hours_remaining = None
        if stored.expiration_datetime:
            hours_remaining = round((stored.expiration_datetime - utc_now()).total_seconds() / 3600, 1)
        return {
            "exists": True,
            "subscription_id": stored.subscription_id,
            "resource": stored.resource,
            "expiration_datetime": stored.expiration_datetime,
            "hours_remaining": hours_remaining,
            "updated_at": stored.updated_at,
        }
