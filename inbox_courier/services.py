"""
Service wiring.

Builds the object graph used by the web app from one
ConfigManager and DatabaseManager.
"""

from dataclasses import dataclass
from typing import Optional

from .ai.claude_client import ClaudeClient
from .ai.drafting import ReplyDrafter
from .ai.summarizer import EmailSummarizer
from .bot.registry import SubscriberRegistry
from .bot.reply_session import ReplySessionMachine
from .bot.update_handler import UpdateHandler
from .core.config import ConfigManager
from .core.database import DatabaseManager
from .graph.client import GraphAPIClient
from .graph.mail import MailboxClient
from .telegram.client import TelegramBotClient
from .webhooks.deduplicator import EventDeduplicator
from .webhooks.mail_handler import MailNotificationHandler, NotificationDispatcher
from .webhooks.subscription_manager import SubscriptionManager


@dataclass
class Services:
    config: ConfigManager
    db: DatabaseManager
    graph_client: GraphAPIClient
    mailbox: MailboxClient
    telegram: TelegramBotClient
    registry: SubscriberRegistry
    mail_handler: MailNotificationHandler
    update_handler: UpdateHandler
    subscriptions: SubscriptionManager


def build_services(config: ConfigManager, db: Optional[DatabaseManager] = None) -> Services:
    """
    Create every long-lived component.

    Args:
        config: Loaded configuration
        db: DatabaseManager to use (default: one built from config.database)

    Returns:
        Services container
    """
    if db is None:
        db = DatabaseManager(config.database.connection_string)

    app = config.app
    graph_client = GraphAPIClient(config.graph_api)
    mailbox = MailboxClient(graph_client, config.graph_api.mailbox)
    telegram = TelegramBotClient(config.telegram)
    registry = SubscriberRegistry(db, max_subscribers=app.max_subscribers)

    claude = ClaudeClient(config.claude)
    summarizer = EmailSummarizer(
        client=claude if claude.is_configured else None,
        generation_enabled=app.generation_enabled,
        short_body_max_chars=app.short_body_max_chars,
        fallback_snippet_chars=app.fallback_snippet_chars,
    )
    drafter = ReplyDrafter(
        claude if claude.is_configured else None,
        organization_name=app.organization_name,
        closing=app.sign_off_closing,
    )

    dispatcher = NotificationDispatcher(app, db, mailbox, telegram, summarizer, registry)
    mail_handler = MailNotificationHandler(
        EventDeduplicator(db, ttl_days=app.processed_marker_ttl_days),
        dispatcher,
        client_state=app.subscription_client_state,
    )
    reply_sessions = ReplySessionMachine(app, db, telegram, drafter, mailbox, registry)
    update_handler = UpdateHandler(db, telegram, mailbox, registry, reply_sessions)

    return Services(
        config=config,
        db=db,
        graph_client=graph_client,
        mailbox=mailbox,
        telegram=telegram,
        registry=registry,
        mail_handler=mail_handler,
        update_handler=update_handler,
        subscriptions=SubscriptionManager(config, graph_client, db),
    )
