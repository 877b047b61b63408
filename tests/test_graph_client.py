"""
Unit tests for the Graph API client, mailbox operations and the Telegram client,
with HTTP and MSAL mocked out.
"""

import pytest
from unittest.mock import Mock, patch

import requests

from inbox_courier.core.config import GraphAPIConfig, TelegramConfig
from inbox_courier.core.exceptions import (
    AuthenticationError,
    GraphAPIError,
    MailSendError,
    RateLimitError,
    ResourceNotFoundError,
    TelegramAPIError,
)
from inbox_courier.graph.client import GraphAPIClient
from inbox_courier.graph.mail import MailboxClient, MailMessage
from inbox_courier.telegram.client import TelegramBotClient
from tests.factories import GraphAPITestFactory


def make_response(status_code=200, json_data=None, headers=None):
    response = Mock()
    response.status_code = status_code
    response.headers = headers or {}
    response.json = Mock(return_value=json_data if json_data is not None else {})
    response.text = str(json_data)
    response.content = b"x" if json_data is not None else b""
    return response


@pytest.fixture
def msal_app():
    with patch("inbox_courier.graph.client.ConfidentialClientApplication") as msal_cls:
        app = msal_cls.return_value
        app.acquire_token_for_client.return_value = {"access_token": "tok-1", "expires_in": 3600}
        yield app


@pytest.fixture
def graph_client(msal_app):
    config = GraphAPIConfig(
        client_id="cid", client_secret="secret", tenant_id="tenant", authority="",
        mailbox="studio@example.com",
    )
    return GraphAPIClient(config)


class TestGraphAPIClient:
    """Tests for GraphAPIClient._request status handling."""

    def test_token_cached(self, graph_client, msal_app):
        with patch("inbox_courier.graph.client.requests.request", return_value=make_response(200, {"id": "x"})):
            graph_client.get("/users/a")
            graph_client.get("/users/b")

        assert msal_app.acquire_token_for_client.call_count == 1

    def test_401_refreshes_token_once(self, graph_client, msal_app):
        msal_app.acquire_token_for_client.side_effect = [
            {"access_token": "tok-1", "expires_in": 3600},
            {"access_token": "tok-2", "expires_in": 3600},
        ]
        responses = [make_response(401, {"error": {"message": "expired"}}), make_response(200, {"id": "x"})]

        with patch("inbox_courier.graph.client.requests.request", side_effect=responses) as request:
            assert graph_client.get("/users/a") == {"id": "x"}

        assert request.call_count == 2
        assert request.call_args.kwargs["headers"]["Authorization"] == "Bearer tok-2"

    def test_second_401_raises(self, graph_client):
        responses = [make_response(401, {}), make_response(401, {})]

        with patch("inbox_courier.graph.client.requests.request", side_effect=responses) as request:
            with pytest.raises(AuthenticationError):
                graph_client.get("/users/a")

        assert request.call_count == 2

    def test_404(self, graph_client):
        with patch("inbox_courier.graph.client.requests.request",
                   return_value=make_response(404, {"error": {"message": "gone"}})):
            with pytest.raises(ResourceNotFoundError):
                graph_client.get("/users/a/messages/M1")

    def test_429_not_retried(self, graph_client):
        with patch("inbox_courier.graph.client.requests.request",
                   return_value=make_response(429, {}, {"Retry-After": "10"})) as request:
            with pytest.raises(RateLimitError):
                graph_client.get("/users/a")

        assert request.call_count == 1

    def test_transport_error(self, graph_client):
        with patch("inbox_courier.graph.client.requests.request",
                   side_effect=requests.ConnectionError("refused")):
            with pytest.raises(GraphAPIError, match="refused"):
                graph_client.get("/users/a")

    def test_token_failure(self, graph_client, msal_app):
        msal_app.acquire_token_for_client.return_value = {"error": "invalid_client", "error_description": "bad secret"}

        with pytest.raises(AuthenticationError, match="bad secret"):
            graph_client.get("/users/a")

    def test_delete_returns_true_on_204(self, graph_client):
        with patch("inbox_courier.graph.client.requests.request", return_value=make_response(204)):
            assert graph_client.delete("/subscriptions/sub-1") is True


class TestMailboxClient:
    """Tests for MailboxClient with a mocked GraphAPIClient."""

    def test_fetch_message(self):
        client = Mock()
        client.get.return_value = GraphAPITestFactory.create_message(conversation_id="conv-1")

        message = MailboxClient(client, "studio@example.com").fetch_message("M1")

        assert client.get.call_args[0][0] == "/users/studio@example.com/messages/M1"
        assert message.sender_name == "Jane"
        assert message.conversation_id == "conv-1"
        assert message.content_type == "text"

    def test_sender_name_falls_back_to_address(self):
        message = MailMessage.from_graph(GraphAPITestFactory.create_message(sender_name="", sender_address="Bob@Example.com"))

        assert message.sender_name == "Bob@Example.com"
        assert message.sender_address == "bob@example.com"

    def test_count_thread_messages_escapes_quotes(self):
        client = Mock()
        client.get.return_value = {"value": [{"id": "a"}, {"id": "b"}]}

        count = MailboxClient(client, "studio@example.com").count_thread_messages("it's")

        assert count == 2
        params = client.get.call_args.kwargs["params"]
        assert params["$filter"] == "conversationId eq 'it''s'"
        assert params["$top"] == 2

    def test_send_reply_html_body(self):
        client = Mock()

        MailboxClient(client, "studio@example.com").send_reply("M1", "Dear Jane,\n\n\n\nFriday works <3\n\nBest regards,")

        endpoint = client.post.call_args[0][0]
        body = client.post.call_args.kwargs["json"]["message"]["body"]
        assert endpoint == "/users/studio@example.com/messages/M1/reply"
        assert body["contentType"] == "HTML"
        assert body["content"] == "<p>Dear Jane,</p>\n<p>Friday works &lt;3</p>\n<p>Best regards,</p>"

    def test_send_reply_failure(self):
        client = Mock()
        client.post.side_effect = ResourceNotFoundError("gone")

        with pytest.raises(MailSendError):
            MailboxClient(client, "studio@example.com").send_reply("M1", "Dear Jane,")


class TestTelegramBotClient:
    """Tests for TelegramBotClient._call and helpers."""

    def test_send_message(self):
        bot = TelegramBotClient(TelegramConfig(bot_token="123:abc"))
        response = make_response(200, {"ok": True, "result": {"message_id": 77}})

        with patch("inbox_courier.telegram.client.requests.post", return_value=response) as post:
            message_id = bot.send_message(1001, "<b>Hi</b>", reply_markup={"inline_keyboard": []})

        assert message_id == 77
        assert post.call_args[0][0] == "https://api.telegram.org/bot123:abc/sendMessage"
        assert post.call_args.kwargs["json"]["parse_mode"] == "HTML"

    def test_not_ok_raises(self):
        bot = TelegramBotClient(TelegramConfig(bot_token="123:abc"))
        response = make_response(400, {"ok": False, "error_code": 400, "description": "chat not found"})

        with patch("inbox_courier.telegram.client.requests.post", return_value=response):
            with pytest.raises(TelegramAPIError, match="chat not found"):
                bot.send_message(1001, "hi")

    def test_not_modified_is_ignored(self):
        bot = TelegramBotClient(TelegramConfig(bot_token="123:abc"))
        response = make_response(400, {
            "ok": False, "error_code": 400,
            "description": "Bad Request: message is not modified",
        })

        with patch("inbox_courier.telegram.client.requests.post", return_value=response):
            bot.edit_message_text(1001, 60, "same")

    def test_unconfigured_skips_calls(self):
        bot = TelegramBotClient(TelegramConfig())

        with patch("inbox_courier.telegram.client.requests.post") as post:
            assert bot.send_message(1001, "hi") is None

        post.assert_not_called()
