"""
Unit tests for the Graph inbox subscription lifecycle with a mocked Graph client.
"""

from datetime import datetime, timedelta

import pytest
from unittest.mock import Mock

from inbox_courier.core.config import AppConfig, GraphAPIConfig
from inbox_courier.core.database import utc_now
from inbox_courier.core.exceptions import ResourceNotFoundError
from inbox_courier.webhooks.subscription_manager import SubscriptionManager, parse_graph_datetime


@pytest.fixture
def config():
    config = Mock()
    config.app = AppConfig(base_url="https://courier.example.com/")
    config.graph_api = GraphAPIConfig(
        client_id="cid", client_secret="secret", tenant_id="tenant", authority="",
        mailbox="studio@example.com",
    )
    return config


@pytest.fixture
def mock_graph_client():
    client = Mock()
    client.post = Mock(return_value={
        "id": "sub-new",
        "resource": "/users/studio@example.com/mailFolders('Inbox')/messages",
        "expirationDateTime": "2030-01-03T10:00:00.1234567Z",
    })
    client.patch = Mock(return_value={"expirationDateTime": "2030-01-05T10:00:00.0000000Z"})
    client.delete = Mock(return_value=True)
    return client


@pytest.fixture
def manager(config, mock_graph_client, test_db):
    return SubscriptionManager(config, mock_graph_client, test_db)


class TestParseGraphDatetime:
    """Tests for parse_graph_datetime."""

    def test_seven_digit_fraction(self):
        assert parse_graph_datetime("2030-01-03T10:00:00.1234567Z") == datetime(2030, 1, 3, 10, 0, 0, 123456)

    def test_no_fraction(self):
        assert parse_graph_datetime("2030-01-03T10:00:00Z") == datetime(2030, 1, 3, 10, 0, 0)

    def test_invalid(self):
        assert parse_graph_datetime("") is None
        assert parse_graph_datetime("not a date") is None


class TestCreateSubscription:
    """Tests for create_subscription."""

    def test_request_and_storage(self, manager, mock_graph_client, test_db):
        manager.create_subscription()

        endpoint = mock_graph_client.post.call_args[0][0]
        body = mock_graph_client.post.call_args.kwargs["json"]
        assert endpoint == "/subscriptions"
        assert body["changeType"] == "created"
        assert body["notificationUrl"] == "https://courier.example.com/api/webhook/mail"
        assert body["resource"] == "/users/studio@example.com/mailFolders('Inbox')/messages"
        assert body["clientState"] == "inbox-courier-subscription"
        assert body["expirationDateTime"].endswith("Z")

        stored = test_db.get_mail_subscription()
        assert stored.subscription_id == "sub-new"
        assert stored.expiration_datetime == datetime(2030, 1, 3, 10, 0, 0, 123456)


class TestRenewIfExpiring:
    """Tests for renew_if_expiring."""

    def test_creates_when_missing(self, manager, mock_graph_client):
        assert manager.renew_if_expiring() == "created"
        mock_graph_client.post.assert_called_once()

    def test_valid_subscription_left_alone(self, manager, mock_graph_client, test_db):
        test_db.save_mail_subscription("sub-1", "/r", utc_now() + timedelta(days=2))

        assert manager.renew_if_expiring() == "ok"
        mock_graph_client.patch.assert_not_called()

    def test_renews_when_close_to_expiry(self, manager, mock_graph_client, test_db):
        test_db.save_mail_subscription("sub-1", "/r", utc_now() + timedelta(hours=3))

        assert manager.renew_if_expiring() == "renewed"
        assert mock_graph_client.patch.call_args[0][0] == "/subscriptions/sub-1"
        stored = test_db.get_mail_subscription()
        assert stored.subscription_id == "sub-1"
        assert stored.expiration_datetime == datetime(2030, 1, 5, 10, 0, 0)

    def test_recreates_when_gone(self, manager, mock_graph_client, test_db):
        test_db.save_mail_subscription("sub-1", "/r", utc_now() + timedelta(hours=3))
        mock_graph_client.patch.side_effect = ResourceNotFoundError("gone")

        assert manager.renew_if_expiring() == "created"
        assert test_db.get_mail_subscription().subscription_id == "sub-new"


class TestStatusAndDelete:
    """Tests for get_status and delete_subscription."""

    def test_status_without_subscription(self, manager):
        assert manager.get_status() == {"exists": False}

    def test_status(self, manager, test_db):
        test_db.save_mail_subscription("sub-1", "/r", utc_now() + timedelta(hours=10))

        status = manager.get_status()

        assert status["exists"] is True
        assert status["subscription_id"] == "sub-1"
        assert 9.5 < status["hours_remaining"] <= 10

    def test_delete(self, manager, mock_graph_client, test_db):
        test_db.save_mail_subscription("sub-1", "/r", utc_now() + timedelta(hours=10))

        assert manager.delete_subscription("sub-1") is True
        mock_graph_client.delete.assert_called_once_with("/subscriptions/sub-1")
        assert test_db.get_mail_subscription() is None
