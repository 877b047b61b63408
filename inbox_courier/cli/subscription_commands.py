"""
CLI commands for the Microsoft Graph inbox subscription.
"""

import sys

import click

from ..core.config import get_config
from ..core.database import DatabaseManager
from ..core.exceptions import GraphAPIError
from ..graph.client import GraphAPIClient
from ..webhooks.subscription_manager import SubscriptionManager


def _manager() -> SubscriptionManager:
    config = get_config()
    db = DatabaseManager(config.database.connection_string)
    return SubscriptionManager(config, GraphAPIClient(config.graph_api), db)


@click.group()
def subscriptions():
    """Manage the Graph change-notification subscription for the inbox."""
    pass


@subscriptions.command("create")
def create_command():
    """
    Create a new inbox subscription.

    The web server must already be reachable at base_url so Graph can
    complete the validation handshake.

    Example:
        inbox-courier subscriptions create
    """
    manager = _manager()
    click.echo(f"📡 Creating subscription -> {manager.notification_url}")

    try:
        response = manager.create_subscription()
    except GraphAPIError as e:
        click.echo(f"❌ Failed to create subscription: {e}", err=True)
        sys.exit(1)

    click.echo(f"✅ Subscription created: {response['id']}")
    click.echo(f"   Expires: {response.get('expirationDateTime')}")


@subscriptions.command("renew")
@click.option("--force", is_flag=True, help="Renew even if the subscription is not close to expiring")
def renew_command(force):
    """
    Renew the stored subscription (or recreate it if it is gone).

    Example:
        inbox-courier subscriptions renew
        inbox-courier subscriptions renew --force
    """
    manager = _manager()

    try:
        if force:
            status = manager.get_status()
            if not status["exists"]:
                click.echo("ℹ️  No stored subscription; creating one")
                manager.create_subscription()
                action = "created"
            else:
                manager.renew_subscription(status["subscription_id"])
                action = "renewed"
        else:
            action = manager.renew_if_expiring()
    except GraphAPIError as e:
        click.echo(f"❌ Renewal failed: {e}", err=True)
        sys.exit(1)

    if action == "ok":
        click.echo("✅ Subscription is valid, nothing to do")
    else:
        click.echo(f"✅ Subscription {action}")


@subscriptions.command("status")
def status_command():
    """Show the stored subscription."""
    status = _manager().get_status()

    click.echo("📋 Inbox Subscription")
    click.echo("=" * 80)

    if not status["exists"]:
        click.echo("No subscription stored. Run: inbox-courier subscriptions create")
        return

    click.echo(f"ID: {status['subscription_id']}")
    click.echo(f"Resource: {status['resource']}")
    click.echo(f"Expires: {status['expiration_datetime']} UTC ({status['hours_remaining']}h remaining)")
    click.echo(f"Updated: {status['updated_at']}")


@subscriptions.command("delete")
def delete_command():
    """Delete the stored subscription in Graph."""
    manager = _manager()
    status = manager.get_status()
    if not status["exists"]:
        click.echo("No subscription stored.")
        return

    click.echo(f"🗑️  Deleting subscription {status['subscription_id']}...")
    if manager.delete_subscription(status["subscription_id"]):
        click.echo("✅ Subscription deleted")
    else:
        click.echo("❌ Failed to delete subscription", err=True)
        sys.exit(1)
