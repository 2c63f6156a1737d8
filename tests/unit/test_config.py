"""Unit tests for configuration loading."""

import os

import pytest

from feed_relay.config import LOGIN_FLOWS, ServerConfig, load_config


@pytest.fixture
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("FEED_RELAY_"):
            monkeypatch.delenv(key)
    return monkeypatch


class TestLoadConfig:
    """Tests for environment-driven configuration."""

    def test_defaults(self, clean_env):
        config = load_config()

        assert config.site_url == "https://aidoru-online.me/"
        assert config.login_flow is LOGIN_FLOWS["account-update"]
        assert config.cache_dir == "torrent-cache"
        assert config.retry_interval == 300.0
        assert config.request_timeout == 30.0
        assert config.base_url == "http://localhost:3001"

    def test_reads_environment(self, clean_env):
        clean_env.setenv("FEED_RELAY_USERNAME", "alice")
        clean_env.setenv("FEED_RELAY_PASSWORD", "secret")
        clean_env.setenv("FEED_RELAY_SITE_URL", "https://tracker.example")
        clean_env.setenv("FEED_RELAY_LOGIN_FLOW", "csrf-token")
        clean_env.setenv("FEED_RELAY_CHECK_INTERVAL", "90")
        clean_env.setenv("FEED_RELAY_REQUEST_TIMEOUT", "0")
        clean_env.setenv("FEED_RELAY_VERIFY_TLS", "false")
        clean_env.setenv("FEED_RELAY_PUBLIC_BASE_URL", "https://relay.example/")

        config = load_config()

        assert config.username == "alice"
        assert config.password == "secret"
        assert config.site_url == "https://tracker.example/"
        assert config.login_flow.csrf_cookie == "csrfp_token"
        assert config.check_interval == 90.0
        assert config.request_timeout is None
        assert config.verify_tls is False
        assert config.base_url == "https://relay.example"

    def test_unknown_login_flow(self, clean_env):
        clean_env.setenv("FEED_RELAY_LOGIN_FLOW", "oauth")

        with pytest.raises(ValueError, match="Unknown login flow"):
            load_config()

    def test_malformed_number(self, clean_env):
        clean_env.setenv("FEED_RELAY_RETRY_INTERVAL", "five minutes")

        with pytest.raises(ValueError, match="FEED_RELAY_RETRY_INTERVAL"):
            load_config()


class TestUpstreamUrls:
    """Tests for upstream URL construction."""

    def test_urls_are_relative_to_site(self):
        config = ServerConfig(site_url="https://tracker.example")

        assert config.rss_url == "https://tracker.example/rss.php"
        assert config.download_url("42") == "https://tracker.example/download.php?id=42"
        assert config.site("/login.php") == "https://tracker.example/login.php"
