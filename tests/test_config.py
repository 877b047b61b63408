"""
Unit tests for ConfigManager (.env secrets plus config.yaml runtime settings).
"""

import logging

import pytest

from inbox_courier.core.config import ConfigManager


ENV_KEYS = [
    "GRAPH_CLIENT_ID", "GRAPH_CLIENT_SECRET", "GRAPH_TENANT_ID", "GRAPH_AUTHORITY", "GRAPH_MAILBOX",
    "DATABASE_URL", "DB_PASSWORD", "CLAUDE_API_KEY", "CLAUDE_MODEL",
    "TELEGRAM_BOT_TOKEN", "TELEGRAM_WEBHOOK_SECRET", "BASE_URL",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return tmp_path


def make_config(tmp_path, yaml_text=None):
    config_file = tmp_path / "config.yaml"
    if yaml_text is not None:
        config_file.write_text(yaml_text)
    return ConfigManager(env_file=str(tmp_path / "missing.env"), config_file=str(config_file))


class TestConfigManager:
    """Tests for loading and validation."""

    def test_defaults_without_yaml(self, clean_env):
        config = make_config(clean_env)

        assert config.app.max_subscribers == 2
        assert config.app.organization_name == "Naked Car Studio"
        assert config.app.view_ttl_hours == 24
        assert config.claude.model == "claude-haiku-4-5"

    def test_yaml_values_and_claude_model(self, clean_env):
        config = make_config(clean_env, "max_subscribers: 3\norganization_name: Acme\nclaude_model: claude-sonnet-4-5\n")

        assert config.app.max_subscribers == 3
        assert config.app.organization_name == "Acme"
        assert config.claude.model == "claude-sonnet-4-5"

    def test_unknown_keys_ignored(self, clean_env, caplog):
        with caplog.at_level(logging.WARNING, logger="inbox_courier.core.config"):
            config = make_config(clean_env, "max_subscribers: 4\nfavourite_colour: blue\n")

        assert config.app.max_subscribers == 4
        assert "favourite_colour" in caplog.text

    def test_broken_yaml_falls_back_to_defaults(self, clean_env):
        config = make_config(clean_env, "max_subscribers: [1, 2\n")

        assert config.app.max_subscribers == 2

    def test_env_values(self, clean_env, monkeypatch):
        monkeypatch.setenv("GRAPH_TENANT_ID", "tenant-1")
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
        monkeypatch.setenv("BASE_URL", "https://courier.example.com")

        config = make_config(clean_env, "base_url: http://ignored.example.com\n")

        assert config.graph_api.authority == "https://login.microsoftonline.com/tenant-1"
        assert config.telegram.bot_token == "123:abc"
        assert config.app.base_url == "https://courier.example.com"

    def test_validate_reports_missing_secrets(self, clean_env):
        problems = make_config(clean_env).validate()

        assert "GRAPH_CLIENT_ID not set in .env" in problems
        assert "TELEGRAM_BOT_TOKEN not set in .env" in problems
        assert any(p.startswith("CLAUDE_API_KEY") for p in problems)

    def test_validate_complete(self, clean_env, monkeypatch):
        for key, value in {
            "GRAPH_CLIENT_ID": "cid",
            "GRAPH_CLIENT_SECRET": "secret",
            "GRAPH_TENANT_ID": "tenant",
            "GRAPH_MAILBOX": "studio@example.com",
            "DATABASE_URL": "sqlite:///courier.db",
            "TELEGRAM_BOT_TOKEN": "123:abc",
        }.items():
            monkeypatch.setenv(key, value)

        config = make_config(clean_env, "generation_enabled: false\n")

        assert config.validate() == []
        assert config.graph_api.is_configured()

    def test_validate_rejects_bad_limits(self, clean_env):
        problems = make_config(clean_env, "max_subscribers: 0\norganization_name: '  '\n").validate()

        assert "max_subscribers must be >= 1" in problems
        assert "organization_name must not be empty" in problems
