"""
Inbox Courier - CLI Entry Point

Command-line interface for running and administering the mailbox to
Telegram relay.
"""

import sys

import click

from .cli.subscription_commands import subscriptions
from .core.config import get_config
from .core.database import DatabaseManager
from .core.exceptions import GraphAPIError, TelegramAPIError
from .core.logging_config import setup_logging
from .graph.client import GraphAPIClient
from .graph.mail import MailboxClient
from .telegram.client import TelegramBotClient


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option("--log-file", type=str, help="Log file path")
@click.pass_context
def cli(ctx, verbose, log_file):
    """Inbox Courier CLI.

    Relays new mailbox messages to Telegram with AI summaries and drafts
    replies from the chat.
    """
    ctx.ensure_object(dict)

    log_level = "DEBUG" if verbose else "INFO"
    setup_logging(log_level=log_level, log_file=log_file)

    ctx.obj["verbose"] = verbose
    ctx.obj["log_file"] = log_file


# ============================================================================
# MAIN OPERATIONS
# ============================================================================


@cli.command()
@click.option("--host", default="0.0.0.0", help="Web server host")
@click.option("--port", default=8000, type=int, help="Web server port")
def serve(host, port):
    """Start the webhook server.

    Example:
        inbox-courier serve --port 8000
    """
    import uvicorn
    from .web.app import create_app

    click.echo(f"🌐 Starting webhook server on {host}:{port}")
    uvicorn.run(create_app(), host=host, port=port, log_level="info")


# ============================================================================
# DATABASE MANAGEMENT
# ============================================================================


@cli.group()
def db():
    """Database management commands."""
    pass


@db.command("init")
@click.option("--drop", is_flag=True, help="Drop existing tables first (DESTRUCTIVE!)")
def db_init(drop):
    """Initialize database schema.

    Example:
        inbox-courier db init
        inbox-courier db init --drop  # Recreate all tables
    """
    try:
        config = get_config()
        database = DatabaseManager(config.database.connection_string)

        if drop:
            if not click.confirm("⚠️  This will drop all existing tables. Are you sure?"):
                click.echo("Aborted.")
                return
            click.echo("🗑️  Dropping existing tables...")
            database.drop_tables()

        click.echo("📦 Creating database tables...")
        database.create_tables()

        click.echo("✅ Database initialized successfully")

    except Exception as e:
        click.echo(f"❌ Failed to initialize database: {e}", err=True)
        sys.exit(1)


@db.command("purge-expired")
def db_purge_expired():
    """Delete expired dedup markers, views and reply sessions."""
    try:
        config = get_config()
        stats = DatabaseManager(config.database.connection_string).purge_expired()
    except Exception as e:
        click.echo(f"❌ Purge failed: {e}", err=True)
        sys.exit(1)

    for table, count in stats.items():
        click.echo(f"  {table}: {count} row(s) deleted")
    click.echo("✅ Purge complete")


# ============================================================================
# MAILBOX
# ============================================================================


@cli.group()
def inbox():
    """Mailbox inspection."""
    pass


@inbox.command("recent")
@click.option("--top", default=5, type=int, help="Number of messages to show")
def inbox_recent(top):
    """List the most recent inbox messages."""
    config = get_config()
    mailbox = MailboxClient(GraphAPIClient(config.graph_api), config.graph_api.mailbox)

    try:
        messages = mailbox.list_recent_messages(top=top)
    except GraphAPIError as e:
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"📬 {config.graph_api.mailbox}: {len(messages)} recent message(s)")
    click.echo("=" * 80)
    for msg in messages:
        click.echo(f"{msg['received_datetime']}  {msg['from_name'] or msg['from_email']}")
        click.echo(f"  {msg['subject']}")
        if msg["body_preview"]:
            click.echo(f"  {msg['body_preview'][:100]}")
        click.echo("-" * 80)


# ============================================================================
# TELEGRAM
# ============================================================================


@cli.group()
def telegram():
    """Telegram bot setup."""
    pass


@telegram.command("set-webhook")
@click.option("--url", type=str, help="Webhook URL (default: {base_url}/api/webhook/telegram)")
def telegram_set_webhook(url):
    """Point the bot at this server's Telegram webhook."""
    config = get_config()
    client = TelegramBotClient(config.telegram)
    if not client.is_configured:
        click.echo("❌ TELEGRAM_BOT_TOKEN not set in .env", err=True)
        sys.exit(1)

    url = url or f"{config.app.base_url.rstrip('/')}/api/webhook/telegram"
    try:
        client.set_webhook(url, config.telegram.webhook_secret or None)
    except TelegramAPIError as e:
        click.echo(f"❌ Failed to set webhook: {e}", err=True)
        sys.exit(1)

    click.echo(f"✅ Telegram webhook set: {url}")
    if not config.telegram.webhook_secret:
        click.echo("⚠️  TELEGRAM_WEBHOOK_SECRET not set; updates are not authenticated")


# ============================================================================
# CONFIGURATION
# ============================================================================


@cli.group()
def config():
    """Configuration management."""
    pass


@config.command("check")
def config_check():
    """Show configuration status and validate it.

    Example:
        inbox-courier config check
    """
    cfg = get_config()
    errors = cfg.validate()

    click.echo("\n⚙️  Current Configuration")
    click.echo("=" * 80)

    click.echo("\n📊 Runtime Settings (config.yaml):")
    click.echo(f"  Base URL: {cfg.app.base_url}")
    click.echo(f"  Max Subscribers: {cfg.app.max_subscribers}")
    click.echo(f"  Organization: {cfg.app.organization_name}")
    click.echo(f"  Summaries: {'Claude (' + cfg.claude.model + ')' if cfg.app.generation_enabled else 'Fallback only'}")
    click.echo(f"  View / Session TTL: {cfg.app.view_ttl_hours}h / {cfg.app.session_ttl_hours}h")
    click.echo(f"  Housekeeping: {'Every ' + str(cfg.app.housekeeping_interval_minutes) + 'm' if cfg.app.housekeeping_enabled else 'Disabled'}")

    click.echo("\n🔐 Credentials Status (.env):")
    click.echo(f"  Graph API: {'Configured' if cfg.graph_api.is_configured() else 'Not set'}")
    click.echo(f"  Mailbox: {cfg.graph_api.mailbox or 'Not set'}")
    click.echo(f"  Claude API: {'Configured' if cfg.claude.api_key else 'Not set'}")
    click.echo(f"  Telegram Bot: {'Configured' if cfg.telegram.is_configured() else 'Not set'}")

    if not errors:
        click.echo("\n✅ Configuration is valid\n")
        return

    click.echo("\n❌ Configuration has errors:")
    for error in errors:
        click.echo(f"   • {error}")
    click.echo("")
    sys.exit(1)


cli.add_command(subscriptions)


# ============================================================================
# ENTRY POINT
# ============================================================================


if __name__ == "__main__":
    cli(obj={})
