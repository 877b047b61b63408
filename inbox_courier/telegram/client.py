"""
Telegram Bot API Client

Thin requests-based wrapper over https://api.telegram.org/bot<token>/<method>.
Messages default to HTML parse mode; callers escape user content.
"""

import logging
from typing import Any, Dict, List, Optional
import requests

from ..core.config import TelegramConfig
from ..core.exceptions import TelegramAPIError


logger = logging.getLogger(__name__)


def inline_keyboard(rows: List[List[Dict[str, str]]]) -> Dict[str, Any]:
    """Build a reply_markup dict from rows of {"text", "callback_data"} buttons."""
    return {"inline_keyboard": rows}


class TelegramBotClient:
    """
    Telegram Bot API client.

    When no bot token is configured every call logs a warning and returns
    None, so the service can run (and be tested) without Telegram.

    Usage:
        bot = TelegramBotClient(config.telegram)
        message_id = bot.send_message(chat_id, "<b>Hello</b>")
    """

    API_URL = "https://api.telegram.org/bot{token}/{method}"
    TIMEOUT_SECONDS = 15

    def __init__(self, config: TelegramConfig):
        self.config = config
        if not config.bot_token:
            logger.warning("TELEGRAM_BOT_TOKEN not set; Telegram calls will be skipped")

    @property
    def is_configured(self) -> bool:
        return bool(self.config.bot_token)

    def _call(self, method: str, payload: Dict[str, Any]) -> Any:
        """
        Invoke a Bot API method.

        Returns:
            The "result" field of the response, or None when unconfigured

        Raises:
            TelegramAPIError: Transport failure or {"ok": false}
        """
        if not self.is_configured:
            logger.warning(f"Skipping Telegram {method}: bot token not configured")
            return None

        url = self.API_URL.format(token=self.config.bot_token, method=method)
        try:
            response = requests.post(url, json=payload, timeout=self.TIMEOUT_SECONDS)
        except requests.RequestException as e:
            raise TelegramAPIError(f"Telegram {method} request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            raise TelegramAPIError(f"Telegram {method} failed: HTTP {response.status_code} {response.text[:200]}")

        if not data.get("ok"):
            raise TelegramAPIError(
                f"Telegram {method} failed: {data.get('error_code', response.status_code)} {data.get('description', '')}"
            )
        return data.get("result")

    def send_message(
        self,
        chat_id: int,
        text: str,
        reply_markup: Optional[Dict[str, Any]] = None,
        parse_mode: Optional[str] = "HTML",
    ) -> Optional[int]:
        """
        Send a message.

        Returns:
            message_id of the sent message (None when unconfigured)
        """
        payload: Dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        if reply_markup:
            payload["reply_markup"] = reply_markup

        result = self._call("sendMessage", payload)
        if result is None:
            return None
        logger.debug(f"Telegram message {result.get('message_id')} sent to chat {chat_id}")
        return result.get("message_id")

    def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        reply_markup: Optional[Dict[str, Any]] = None,
        parse_mode: Optional[str] = "HTML",
    ) -> None:
        """Replace the text (and keyboard) of an existing message."""
        payload: Dict[str, Any] = {"chat_id": chat_id, "message_id": message_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        if reply_markup:
            payload["reply_markup"] = reply_markup

        try:
            self._call("editMessageText", payload)
        except TelegramAPIError as e:
            # Re-pressing a button that shows the same content is harmless
            if "message is not modified" in str(e):
                logger.debug(f"Message {message_id} in chat {chat_id} unchanged")
                return
            raise

    def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None) -> None:
        """Acknowledge a button press (stops the client-side spinner)."""
        payload: Dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
        self._call("answerCallbackQuery", payload)

    def set_webhook(self, url: str, secret_token: Optional[str] = None) -> bool:
        """Register the webhook URL for message and callback_query updates."""
        payload: Dict[str, Any] = {
            "url": url,
            "allowed_updates": ["message", "callback_query"],
            "drop_pending_updates": False,
        }
        if secret_token:
            payload["secret_token"] = secret_token
        result = self._call("setWebhook", payload)
        if result is not None:
            logger.info(f"Telegram webhook set: {url}")
        return bool(result)

    def get_webhook_info(self) -> Optional[Dict[str, Any]]:
        return self._call("getWebhookInfo", {})
