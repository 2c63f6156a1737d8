"""Configuration for feed_relay.

All settings come from environment variables prefixed with ``FEED_RELAY_``.
The upstream login procedure is described by a ``LoginFlow``; the two flows
the tracker has used are available as presets.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional


BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_11_6) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/66.0.3343.3 Safari/537.36"
)


@dataclass(frozen=True)
class LoginFlow:
    """Describes how to (re-)authenticate against the upstream site.

    Paths are relative to the site URL. A flow with ``account_update_path``
    posts a browser fingerprint before logging in; a flow with
    ``csrf_cookie`` reads that cookie from the login page and submits it
    with the credentials.
    """

    name: str
    login_page_path: str = "login.php"
    login_endpoint_path: str = "login.php?type=login"
    account_update_path: Optional[str] = None
    csrf_cookie: Optional[str] = None
    session_cookie: str = "sid"
    probe_header: str = "refresh"
    extra_form: Dict[str, str] = field(default_factory=lambda: {"do": "login", "language": ""})


LOGIN_FLOWS: Dict[str, LoginFlow] = {
    "account-update": LoginFlow(
        name="account-update",
        account_update_path="account-upd.php",
    ),
    "csrf-token": LoginFlow(
        name="csrf-token",
        csrf_cookie="csrfp_token",
    ),
}


@dataclass
class ServerConfig:
    """Runtime configuration for the relay and its HTTP front door."""

    name: str = "feed_relay"
    log_level: str = "INFO"

    username: str = ""
    password: str = ""
    site_url: str = "https://aidoru-online.me/"
    login_flow: LoginFlow = field(default_factory=lambda: LOGIN_FLOWS["account-update"])
    rss_path: str = "rss.php"
    download_path: str = "download.php?id={artifact_id}"

    cache_dir: str = "torrent-cache"
    check_interval: float = 600.0
    retry_interval: float = 300.0
    request_timeout: Optional[float] = 30.0
    verify_tls: bool = True

    host: str = "127.0.0.1"
    port: int = 3001
    public_base_url: str = ""

    feed_title: str = "aidoru online plain"
    feed_description: str = "created by feed_relay"
    feed_link: str = "http://github.com/larvata/aidoru-online-rss-interop"

    def __post_init__(self):
        if not self.site_url.endswith("/"):
            self.site_url += "/"

    @property
    def base_url(self) -> str:
        """Base URL local clients use to reach this server."""
        return self.public_base_url.rstrip("/") or f"http://localhost:{self.port}"

    def site(self, path: str) -> str:
        """Absolute upstream URL for a path relative to the site root."""
        return self.site_url + path.lstrip("/")

    @property
    def rss_url(self) -> str:
        return self.site(self.rss_path)

    def download_url(self, artifact_id: str) -> str:
        return self.site(self.download_path.format(artifact_id=artifact_id))


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"FEED_RELAY_{key}", default)


def _env_float(key: str, default: float) -> float:
    raw = _env(key)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"FEED_RELAY_{key} must be a number, got {raw!r}") from e


def _env_bool(key: str, default: bool) -> bool:
    raw = _env(key)
    if not raw:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_config() -> ServerConfig:
    """Build a ServerConfig from FEED_RELAY_* environment variables.

    Raises:
        ValueError: If a numeric setting is malformed or the login flow is unknown
    """
    flow_name = _env("LOGIN_FLOW", "account-update")
    if flow_name not in LOGIN_FLOWS:
        raise ValueError(
            f"Unknown login flow '{flow_name}', expected one of {sorted(LOGIN_FLOWS)}"
        )

    timeout = _env_float("REQUEST_TIMEOUT", 30.0)

    defaults = ServerConfig()
    return ServerConfig(
        log_level=_env("LOG_LEVEL", defaults.log_level).upper(),
        username=_env("USERNAME"),
        password=_env("PASSWORD"),
        site_url=_env("SITE_URL", defaults.site_url),
        login_flow=LOGIN_FLOWS[flow_name],
        cache_dir=_env("CACHE_DIR", defaults.cache_dir),
        check_interval=_env_float("CHECK_INTERVAL", defaults.check_interval),
        retry_interval=_env_float("RETRY_INTERVAL", defaults.retry_interval),
        request_timeout=timeout if timeout > 0 else None,
        verify_tls=_env_bool("VERIFY_TLS", True),
        host=_env("HOST", defaults.host),
        port=int(_env_float("PORT", defaults.port)),
        public_base_url=_env("PUBLIC_BASE_URL"),
        feed_title=_env("FEED_TITLE", defaults.feed_title),
        feed_description=_env("FEED_DESCRIPTION", defaults.feed_description),
        feed_link=_env("FEED_LINK", defaults.feed_link),
    )


_config: Optional[ServerConfig] = None


def get_config() -> ServerConfig:
    """Get the process-wide configuration, loading it on first use."""
    global _config

    if _config is None:
        _config = load_config()
    return _config
