"""
Mailbox Client

Reads messages from and replies through the watched mailbox using Microsoft Graph API.
All endpoints are scoped to /users/{mailbox} (application permissions).
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Dict, Any

from ..core.exceptions import GraphAPIError, MailSendError
from ..graph.client import GraphAPIClient
from ..utils.text_utils import clean_draft_text, plain_text_to_html


logger = logging.getLogger(__name__)


@dataclass
class MailMessage:
    """The fields of a Graph message the notifier needs."""

    id: str
    sender_name: str
    sender_address: str
    subject: str
    content_type: str  # "html" or "text"
    content: str
    conversation_id: str

    @classmethod
    def from_graph(cls, data: Dict[str, Any]) -> "MailMessage":
        from_data = (data.get("from") or {}).get("emailAddress") or {}
        body = data.get("body") or {}
        address = from_data.get("address") or ""
        return cls(
            id=data.get("id", ""),
            sender_name=from_data.get("name") or address or "Unknown",
            sender_address=address.lower(),
            subject=data.get("subject") or "",
            content_type=(body.get("contentType") or "text").lower(),
            content=body.get("content") or "",
            conversation_id=data.get("conversationId") or "",
        )


class MailboxClient:
    """
    Mail operations on a single mailbox.

    Usage:
        client = GraphAPIClient(config.graph_api)
        mailbox = MailboxClient(client, config.graph_api.mailbox)
        message = mailbox.fetch_message(message_id)
    """

    def __init__(self, graph_client: GraphAPIClient, mailbox_email: str):
        """
        Initialize mailbox client.

        Args:
            graph_client: Authenticated Graph API client
            mailbox_email: Address (or UPN) of the mailbox to operate on
        """
        self.graph_client = graph_client
        self.mailbox_email = mailbox_email

    @property
    def inbox_messages_path(self) -> str:
        return f"/users/{self.mailbox_email}/mailFolders/Inbox/messages"

    def fetch_message(self, message_id: str) -> MailMessage:
        """
        Fetch a single message with sender, body and conversation id.

        Raises:
            ResourceNotFoundError: Message no longer exists
            GraphAPIError: Any other Graph failure
        """
        endpoint = f"/users/{self.mailbox_email}/messages/{message_id}"
        params = {"$select": "id,from,subject,body,conversationId"}
        data = self.graph_client.get(endpoint, params=params)
        return MailMessage.from_graph(data)

    def count_thread_messages(self, conversation_id: str) -> int:
        """
        Count inbox messages in a conversation, capped at 2.

        Only "is this a thread" matters, so at most two ids are requested.
        """
        if not conversation_id:
            return 0
        escaped = conversation_id.replace("'", "''")
        params = {
            "$filter": f"conversationId eq '{escaped}'",
            "$top": 2,
            "$select": "id",
        }
        data = self.graph_client.get(self.inbox_messages_path, params=params)
        return len(data.get("value", []))

    def send_reply(self, message_id: str, plain_text: str) -> None:
        """
        Reply to a message with a plain-text body rendered as HTML paragraphs.

        Raises:
            MailSendError: If Graph rejects the reply
        """
        endpoint = f"/users/{self.mailbox_email}/messages/{message_id}/reply"
        payload = {
            "message": {
                "body": {
                    "contentType": "HTML",
                    "content": plain_text_to_html(clean_draft_text(plain_text)),
                }
            }
        }
        try:
            self.graph_client.post(endpoint, json=payload)
        except GraphAPIError as e:
            logger.error(f"Failed to send reply to {message_id[:20]}...: {e}")
            raise MailSendError(f"Reply failed: {e}") from e
        logger.info(f"Sent reply to message {message_id[:20]}...")

    def get_mailbox_profile(self) -> Dict[str, str]:
        """Display name and address of the mailbox owner."""
        data = self.graph_client.get(
            f"/users/{self.mailbox_email}",
            params={"$select": "displayName,mail,userPrincipalName"},
        )
        return {
            "display_name": data.get("displayName") or data.get("userPrincipalName") or "Unknown",
            "email": data.get("mail") or data.get("userPrincipalName") or self.mailbox_email,
        }

    def count_recent_inbox_messages(self, days: int = 30, max_messages: int = 999) -> int:
        """Number of inbox messages received in the last `days` days (bounded by max_messages)."""
        since = datetime.now(timezone.utc) - timedelta(days=days)
        params = {
            "$filter": f"receivedDateTime ge {since.strftime('%Y-%m-%dT%H:%M:%SZ')}",
            "$top": max_messages,
            "$select": "id",
        }
        data = self.graph_client.get(self.inbox_messages_path, params=params)
        return len(data.get("value", []))

    def list_recent_messages(self, top: int = 10) -> List[Dict[str, Any]]:
        """Most recent inbox messages (subject, sender, received time, preview)."""
        params = {
            "$top": top,
            "$orderby": "receivedDateTime desc",
            "$select": "id,subject,from,receivedDateTime,bodyPreview",
        }
        data = self.graph_client.get(self.inbox_messages_path, params=params)

        result = []
        for msg in data.get("value", []):
            from_data = (msg.get("from") or {}).get("emailAddress") or {}
            result.append({
                "id": msg.get("id"),
                "subject": msg.get("subject", ""),
                "from_name": from_data.get("name", ""),
                "from_email": (from_data.get("address") or "").lower(),
                "received_datetime": msg.get("receivedDateTime"),
                "body_preview": msg.get("bodyPreview", ""),
            })
        return result
