"""
Tests for the HTTP surface (webhooks and health checks) using FastAPI's TestClient.
"""

import pytest
from unittest.mock import AsyncMock, Mock

from fastapi.testclient import TestClient

from inbox_courier.core.config import AppConfig, ClaudeConfig, GraphAPIConfig, TelegramConfig
from inbox_courier.web.app import create_app, run_housekeeping_once
from inbox_courier.core.exceptions import GraphAPIError
from tests.factories import GraphAPITestFactory, TelegramTestFactory


@pytest.fixture
def config():
    config = Mock()
    config.app = AppConfig(housekeeping_enabled=False)
    config.graph_api = GraphAPIConfig(client_id="", client_secret="", tenant_id="", authority="")
    config.claude = ClaudeConfig(api_key="")
    config.telegram = TelegramConfig(bot_token="123:abc", webhook_secret="s3cret")
    config.validate = Mock(return_value=[])
    return config


@pytest.fixture
def services(config, test_db):
    services = Mock()
    services.config = config
    services.db = test_db
    services.registry.chat_ids = Mock(return_value=[1001])
    services.mail_handler.handle_notification = AsyncMock(return_value={"dispatched": 1})
    services.update_handler.handle_update = AsyncMock(return_value={"status": "idle_hint"})
    return services


@pytest.fixture
def client(config, services):
    return TestClient(create_app(config=config, services=services))


class TestMailWebhook:
    """POST /api/webhook/mail."""

    def test_validation_token_echoed(self, client, services):
        response = client.post("/api/webhook/mail?validationToken=abc%20123")

        assert response.status_code == 200
        assert response.text == "abc 123"
        assert response.headers["content-type"].startswith("text/plain")
        services.mail_handler.handle_notification.assert_not_called()

    def test_notification_accepted_and_processed(self, client, services):
        payload = GraphAPITestFactory.create_notification(["M1"])

        response = client.post("/api/webhook/mail", json=payload)

        assert response.status_code == 202
        services.mail_handler.handle_notification.assert_awaited_once_with(payload)

    def test_invalid_body(self, client, services):
        response = client.post(
            "/api/webhook/mail", content="not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        services.mail_handler.handle_notification.assert_not_called()

    def test_processing_error_does_not_affect_response(self, client, services):
        services.mail_handler.handle_notification.side_effect = RuntimeError("boom")

        response = client.post("/api/webhook/mail", json=GraphAPITestFactory.create_notification(["M1"]))

        assert response.status_code == 202


class TestTelegramWebhook:
    """POST /api/webhook/telegram."""

    def test_valid_secret(self, client, services):
        update = TelegramTestFactory.create_text_update(text="/start")

        response = client.post(
            "/api/webhook/telegram",
            json=update,
            headers={"X-Telegram-Bot-Api-Secret-Token": "s3cret"},
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        services.update_handler.handle_update.assert_awaited_once_with(update)

    def test_wrong_secret_rejected(self, client, services):
        response = client.post(
            "/api/webhook/telegram",
            json=TelegramTestFactory.create_text_update(),
            headers={"X-Telegram-Bot-Api-Secret-Token": "guess"},
        )

        assert response.status_code == 403
        services.update_handler.handle_update.assert_not_called()

    def test_missing_secret_rejected(self, client, services):
        response = client.post("/api/webhook/telegram", json=TelegramTestFactory.create_text_update())

        assert response.status_code == 403

    def test_no_secret_configured(self, client, config, services):
        config.telegram.webhook_secret = ""

        response = client.post("/api/webhook/telegram", json=TelegramTestFactory.create_text_update())

        assert response.status_code == 200
        services.update_handler.handle_update.assert_awaited_once()


class TestHealth:
    """Health endpoints."""

    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_detailed(self, client):
        data = client.get("/api/health/detailed").json()

        assert data["status"] == "healthy"
        assert data["components"]["database"]["status"] == "healthy"
        assert data["components"]["graph_api"]["status"] == "not_configured"
        assert data["components"]["telegram"]["subscribers"] == 1

    def test_detailed_reports_config_problems(self, client, config):
        config.validate.return_value = ["GRAPH_CLIENT_ID not set in .env"]

        data = client.get("/api/health/detailed").json()

        assert data["status"] == "degraded"
        assert data["components"]["configuration"]["problems"] == ["GRAPH_CLIENT_ID not set in .env"]


class TestHousekeeping:
    """One housekeeping pass."""

    @pytest.mark.asyncio
    async def test_purges_and_skips_unconfigured_graph(self, services):
        services.db = Mock()
        services.subscriptions.renew_if_expiring = Mock()

        await run_housekeeping_once(services)

        services.db.purge_expired.assert_called_once()
        services.subscriptions.renew_if_expiring.assert_not_called()

    @pytest.mark.asyncio
    async def test_renews_subscription(self, services, config):
        config.graph_api = GraphAPIConfig(
            client_id="cid", client_secret="secret", tenant_id="t", authority="", mailbox="m@example.com"
        )
        services.db = Mock()
        services.subscriptions.renew_if_expiring = Mock(side_effect=GraphAPIError("validation timed out"))

        await run_housekeeping_once(services)

        services.subscriptions.renew_if_expiring.assert_called_once()
