"""
Configuration management for Inbox Courier.

Loads configuration from:
1. .env file (secrets - never committed)
2. config.yaml (runtime settings)
"""

from dataclasses import dataclass, field, fields
from typing import List, Optional
import logging
import os
import yaml
from dotenv import load_dotenv


logger = logging.getLogger(__name__)


@dataclass
class GraphAPIConfig:
    """Microsoft Graph API configuration."""

    client_id: str
    client_secret: str
    tenant_id: str
    authority: str
    mailbox: str = ""  # Mailbox (UPN or address) watched for new mail
    scopes: List[str] = field(
        default_factory=lambda: [
            "https://graph.microsoft.com/.default"  # Application permissions
        ]
    )

    def __post_init__(self):
        """Build authority URL from tenant ID if not provided."""
        if self.tenant_id and not self.authority:
            self.authority = f"https://login.microsoftonline.com/{self.tenant_id}"

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.tenant_id and self.mailbox)


@dataclass
class DatabaseConfig:
    """Database configuration (PostgreSQL by default, any SQLAlchemy URL via DATABASE_URL)."""

    host: str = "localhost"
    port: int = 5432
    database: str = "inbox_courier"
    user: str = "postgres"
    password: str = ""
    url: str = ""

    @property
    def connection_string(self) -> str:
        """Generate connection string (explicit URL wins)."""
        if self.url:
            return self.url
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"


@dataclass
class ClaudeConfig:
    """Anthropic Claude API configuration."""

    api_key: str
    model: str = "claude-haiku-4-5"
    max_tokens: int = 800
    temperature: float = 0.3


@dataclass
class TelegramConfig:
    """Telegram Bot API configuration."""

    bot_token: str = ""
    webhook_secret: str = ""  # Echoed by Telegram in X-Telegram-Bot-Api-Secret-Token

    def is_configured(self) -> bool:
        return bool(self.bot_token)


@dataclass
class AppConfig:
    """Runtime application configuration (from config.yaml)."""

    # Public base URL used for Graph and Telegram webhook registration
    base_url: str = "http://localhost:8000"

    # Subscriber registry
    max_subscribers: int = 2

    # Reply sign-off (appended to every outgoing reply, never generated)
    organization_name: str = "Naked Car Studio"
    sign_off_closing: str = "Best regards,"

    # Summaries
    generation_enabled: bool = True
    short_body_max_chars: int = 40
    fallback_snippet_chars: int = 150
    telegram_message_max_length: int = 4096

    # Expiry windows
    view_ttl_hours: int = 24
    session_ttl_hours: int = 2
    processed_marker_ttl_days: int = 30

    # Graph mail subscription
    subscription_client_state: str = "inbox-courier-subscription"
    subscription_expiration_minutes: int = 4230
    subscription_renew_threshold_hours: int = 24

    # Housekeeping (expired row sweep + subscription renewal)
    housekeeping_enabled: bool = True
    housekeeping_interval_minutes: int = 30


class ConfigManager:
    """Central configuration manager.

    Loads configuration from:
    - .env file for secrets (Graph API, Claude API, Telegram token, DB credentials)
    - config.yaml for runtime settings
    """

    def __init__(self, env_file: Optional[str] = None, config_file: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            env_file: Path to .env file (default: .env in working directory)
            config_file: Path to config.yaml file (default: config.yaml in working directory)
        """
        if env_file is None:
            env_file = ".env"
        load_dotenv(env_file)

        if config_file is None:
            config_file = "config.yaml"
        self.config_file = config_file

        self._load_env_config()
        self._load_yaml_config()

    def _load_env_config(self):
        """Load secrets from .env file."""

        self.graph_api = GraphAPIConfig(
            client_id=os.getenv("GRAPH_CLIENT_ID", ""),
            client_secret=os.getenv("GRAPH_CLIENT_SECRET", ""),
            tenant_id=os.getenv("GRAPH_TENANT_ID", ""),
            authority=os.getenv("GRAPH_AUTHORITY", ""),
            mailbox=os.getenv("GRAPH_MAILBOX", ""),
        )

        self.database = DatabaseConfig(
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "5432")),
            database=os.getenv("DB_NAME", "inbox_courier"),
            user=os.getenv("DB_USER", "postgres"),
            password=os.getenv("DB_PASSWORD", ""),
            url=os.getenv("DATABASE_URL", ""),
        )

        self.claude = ClaudeConfig(
            api_key=os.getenv("CLAUDE_API_KEY", ""),
            model=os.getenv("CLAUDE_MODEL", "claude-haiku-4-5"),
            max_tokens=int(os.getenv("CLAUDE_MAX_TOKENS", "800")),
            temperature=float(os.getenv("CLAUDE_TEMPERATURE", "0.3")),
        )

        self.telegram = TelegramConfig(
            bot_token=os.getenv("TELEGRAM_BOT_TOKEN", ""),
            webhook_secret=os.getenv("TELEGRAM_WEBHOOK_SECRET", ""),
        )

        self._base_url_override = os.getenv("BASE_URL", "")

    def _load_yaml_config(self):
        """Load runtime configuration from config.yaml."""
        if os.path.exists(self.config_file):
            try:
                with open(self.config_file, "r") as f:
                    data = yaml.safe_load(f) or {}

                # Extract claude_model before passing to AppConfig (not an AppConfig field)
                claude_model = data.pop("claude_model", None)

                known = {f.name for f in fields(AppConfig)}
                unknown = sorted(set(data) - known)
                if unknown:
                    logger.warning(f"Ignoring unknown config.yaml keys: {', '.join(unknown)}")

                self.app = AppConfig(**{k: v for k, v in data.items() if k in known})

                if claude_model:
                    self.claude.model = claude_model
            except Exception as e:
                logger.warning(f"Failed to load {self.config_file}: {e}; using default configuration")
                self.app = AppConfig()
        else:
            self.app = AppConfig()

        if self._base_url_override:
            self.app.base_url = self._base_url_override

    def reload_yaml_config(self):
        """Reload runtime configuration from config.yaml."""
        self._load_yaml_config()

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if not self.graph_api.client_id:
            errors.append("GRAPH_CLIENT_ID not set in .env")
        if not self.graph_api.client_secret:
            errors.append("GRAPH_CLIENT_SECRET not set in .env")
        if not self.graph_api.tenant_id:
            errors.append("GRAPH_TENANT_ID not set in .env")
        if not self.graph_api.mailbox:
            errors.append("GRAPH_MAILBOX not set in .env")

        if not self.database.url and not self.database.password:
            errors.append("DATABASE_URL or DB_PASSWORD not set in .env")

        if not self.telegram.bot_token:
            errors.append("TELEGRAM_BOT_TOKEN not set in .env")

        if self.app.generation_enabled and not self.claude.api_key:
            errors.append("CLAUDE_API_KEY not set in .env (generation_enabled is true)")

        if self.app.max_subscribers < 1:
            errors.append("max_subscribers must be >= 1")
        if self.app.view_ttl_hours < 1 or self.app.session_ttl_hours < 1:
            errors.append("view_ttl_hours and session_ttl_hours must be >= 1")
        if not self.app.organization_name.strip():
            errors.append("organization_name must not be empty")

        return errors


# Global singleton instance
_config: Optional[ConfigManager] = None


def get_config(env_file: Optional[str] = None, config_file: Optional[str] = None) -> ConfigManager:
    """
    Get global configuration manager instance (singleton).

    Args:
        env_file: Path to .env file (only used on first call)
        config_file: Path to config.yaml file (only used on first call)

    Returns:
        ConfigManager instance
    """
    global _config
    if _config is None:
        _config = ConfigManager(env_file=env_file, config_file=config_file)
    return _config
