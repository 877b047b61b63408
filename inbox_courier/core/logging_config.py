"""
Logging configuration for Inbox Courier.

Bot API URLs carry the Telegram bot token in their path, and requests puts
the URL into its exception text, so every handler gets a filter that masks
tokens before a record is written.
"""

import logging
import logging.handlers
import re
from pathlib import Path


BOT_TOKEN_PATTERN = re.compile(r"bot\d+:[A-Za-z0-9_-]+")

# Levels for chatty third-party loggers
LIBRARY_LOG_LEVELS = {
    "urllib3": logging.WARNING,
    "httpx": logging.WARNING,
    "anthropic": logging.INFO,
    "msal": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "uvicorn.access": logging.WARNING,
}


class BotTokenFilter(logging.Filter):
    """Replaces `bot<id>:<secret>` in the rendered message with `bot<redacted>`."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if "bot" in message and BOT_TOKEN_PATTERN.search(message):
            record.msg = BOT_TOKEN_PATTERN.sub("bot<redacted>", message)
            record.args = None
        return True


def setup_logging(
    log_level: str = "INFO", log_file: str = None, log_to_console: bool = True, log_format: str = "standard"
):
    """
    Configure application logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (None = no file logging)
        log_to_console: Whether to log to console
        log_format: Format style ('standard', 'detailed')
    """
    formats = {
        "standard": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        "detailed": "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(funcName)s - %(message)s",
    }
    formatter = logging.Formatter(formats.get(log_format, formats["standard"]), datefmt="%Y-%m-%d %H:%M:%S")
    token_filter = BotTokenFilter()

    handlers = []
    if log_to_console:
        handlers.append(logging.StreamHandler())
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
                encoding="utf-8",
            )
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))
    root_logger.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(token_filter)
        root_logger.addHandler(handler)

    for name, level in LIBRARY_LOG_LEVELS.items():
        logging.getLogger(name).setLevel(level)

    logging.info(f"Logging configured: level={log_level}, file={log_file}")
