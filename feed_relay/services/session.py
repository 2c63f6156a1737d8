"""Upstream session management.

This module checks whether the shared client still holds a logged-in session
and, when it does not, replays the site's login flow to mint a new one.
"""

import logging
import re
import secrets
from datetime import datetime
from typing import Dict, Optional

import httpx
from bs4 import BeautifulSoup

from feed_relay.config import ServerConfig
from feed_relay.exceptions import AuthError
from feed_relay.models.schemas import SessionState


logger = logging.getLogger(__name__)


def find_session_id(set_cookie_headers, cookie_name: str = "sid") -> str:
    """Return the session id carried by a list of Set-Cookie headers, or ''."""
    pattern = re.compile(rf"(?:^|\s|;){re.escape(cookie_name)}=(\S+?)(?:;|$)")
    for header in set_cookie_headers:
        match = pattern.search(header)
        if match:
            return match.group(1)
    return ""


def extract_csrf_token(response: httpx.Response, name: str) -> Optional[str]:
    """Read a CSRF token from the response cookies, or a hidden form input.

    Args:
        response: Login page response
        name: Cookie (and form field) name of the token

    Returns:
        The token, or None if the page carries none
    """
    token = response.cookies.get(name)
    if token:
        return token

    soup = BeautifulSoup(response.text, "lxml")
    field = soup.find("input", attrs={"name": name})
    if field and field.get("value"):
        return field["value"]
    return None


class SessionManager:
    """Keeps the shared client authenticated against the upstream site.

    The manager never retries inside a call; a failure raises AuthError and
    the poll loop decides when to try again.
    """

    def __init__(self, client: httpx.AsyncClient, config: ServerConfig):
        self.client = client
        self.config = config
        self.flow = config.login_flow
        self.state = SessionState()
        # minted once per process, like a browser profile
        self.fingerprint = secrets.token_hex(16)

    async def ensure_authenticated(self) -> SessionState:
        """Verify the session and log in again if it has lapsed.

        Returns:
            The updated session state (always authenticated)

        Raises:
            AuthError: On network failure, unexpected status or rejected credentials
        """
        try:
            authenticated = await self.check_login_state()
            if not authenticated:
                logger.info(f"Session not authenticated, logging in with '{self.flow.name}' flow")
                authenticated = await self.login()
        except AuthError as e:
            self._record(False, str(e))
            raise
        except httpx.HTTPError as e:
            self._record(False, f"network error: {e}")
            raise AuthError(f"network error: {e}") from e

        if not authenticated:
            self._record(False, "login rejected: no session cookie in response")
            raise AuthError("login rejected: no session cookie in response")

        self._record(True, None)
        return self.state

    async def check_login_state(self) -> bool:
        """Probe an authenticated-only page; a login redirect header means logged out."""
        response = await self.client.get(self.config.site_url)
        self._expect_ok(response, "liveness probe")
        return self.flow.probe_header not in response.headers

    async def login(self) -> bool:
        """Run the configured login flow.

        Returns:
            True if the login response set the session cookie
        """
        login_page_url = self.config.site(self.flow.login_page_path)
        page = await self.client.get(login_page_url)
        self._expect_ok(page, "login page")

        form: Dict[str, str] = {
            "username": self.config.username,
            "password": self.config.password,
        }
        form.update(self.flow.extra_form)

        if self.flow.csrf_cookie:
            token = extract_csrf_token(page, self.flow.csrf_cookie)
            if not token:
                raise AuthError(f"login page carried no '{self.flow.csrf_cookie}' token")
            form[self.flow.csrf_cookie] = token

        if self.flow.account_update_path:
            await self.account_update(login_page_url)

        response = await self.client.post(
            self.config.site(self.flow.login_endpoint_path),
            data=form,
            headers={
                "Content-Type": "application/x-www-form-urlencoded",
                "Origin": self._origin,
                "Referer": login_page_url,
            },
            follow_redirects=False,
        )
        self._expect_ok(response, "login")

        sid = find_session_id(
            response.headers.get_list("set-cookie"), self.flow.session_cookie
        )
        return bool(sid)

    async def account_update(self, referer: str) -> None:
        """Post the browser fingerprint the site requires before a login."""
        response = await self.client.post(
            self.config.site(self.flow.account_update_path),
            data={"f": self.fingerprint},
            headers={
                "Referer": referer,
                "Origin": self._origin,
                "X-Requested-With": "XMLHttpRequest",
            },
            follow_redirects=False,
        )
        self._expect_ok(response, "account update")

    @property
    def _origin(self) -> str:
        url = httpx.URL(self.config.site_url)
        return f"{url.scheme}://{url.netloc.decode('ascii')}"

    @staticmethod
    def _expect_ok(response: httpx.Response, step: str) -> None:
        if response.status_code != 200:
            raise AuthError(f"{step}: unexpected status code {response.status_code}")

    def _record(self, authenticated: bool, error: Optional[str]) -> None:
        self.state.authenticated = authenticated
        self.state.error = error
        self.state.last_checked = datetime.now()
        if error:
            logger.warning(f"Authentication failed: {error}")
