"""CudaTel GUI login/logout over HTTP.

The socket CONNECT message carries a GUI session token, so a connection first
logs in against the GUI with the credentials of the active environment.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, cast

import aiohttp

from cudatel_live.const import HTTP_TIMEOUT_SECONDS
from cudatel_live.logging_abstraction import get_logger
from cudatel_live.transport.exceptions import AuthenticationError

__all__ = [
    "AuthResult",
    "Authenticator",
]

logger = get_logger(__name__)

LOGIN_PATH = "/gui/login/login"
LOGOUT_PATH = "/gui/login/logout"
SESSION_COOKIE = "bps_session"
# Keys checked, in order, for the session token in a login response
SESSION_KEYS = ("sessionid", "session_id", "sessid", "bps_session")


@dataclass
class AuthResult:
    """Outcome of a successful login.

    Attributes:
        session_id: GUI session token to present in CONNECT
        data: Decoded login response body
    """

    session_id: str
    data: dict[str, Any] = field(default_factory=dict)


def _find_session_id(body: Mapping[str, object]) -> str | None:
    for key in SESSION_KEYS:
        value = body.get(key)
        if isinstance(value, str) and value:
            return value
    nested = body.get("data")
    if isinstance(nested, Mapping):
        return _find_session_id(cast("Mapping[str, object]", nested))
    return None


class Authenticator:
    """Logs in to and out of the CudaTel GUI with an aiohttp ClientSession."""

    lp: str = "Authenticator"

    def __init__(
        self,
        base_url: str,
        http_session: aiohttp.ClientSession | None = None,
        api_timeout: float = HTTP_TIMEOUT_SECONDS,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.http_session = http_session
        self.api_timeout = api_timeout
        self.session_id: str | None = None
        self._owns_session = http_session is None

    async def _check_session(self) -> aiohttp.ClientSession:
        """Create the aiohttp session when missing or closed."""
        if not self.http_session or self.http_session.closed:
            logger.debug("%s:_check_session: Creating new aiohttp ClientSession", self.lp)
            self.http_session = aiohttp.ClientSession()
            self._owns_session = True
        return self.http_session

    async def open(self, credentials: Mapping[str, Any]) -> AuthResult:
        """Log in with ``credentials`` (posted as a form).

        Raises:
            AuthenticationError: On HTTP failure, rejection, or a response without a session id
        """
        lp = f"{self.lp}:open:"
        sesh = await self._check_session()
        url = f"{self.base_url}{LOGIN_PATH}"
        form = {str(key): str(value) for key, value in credentials.items()}

        try:
            async with sesh.post(
                url,
                data=form,
                timeout=aiohttp.ClientTimeout(total=self.api_timeout),
            ) as r:
                r.raise_for_status()
                try:
                    json_result: object = cast("object", await r.json(content_type=None))
                except ValueError:
                    json_result = {}
                cookie = r.cookies.get(SESSION_COOKIE)
        except aiohttp.ClientResponseError as e:
            logger.exception("%s HTTP error during login", lp, extra={"status": e.status, "url": url})
            raise AuthenticationError("http_error", status=e.status) from e
        except (aiohttp.ClientError, TimeoutError) as e:
            logger.exception("%s Login request failed", lp, extra={"url": url, "error": str(e)})
            raise AuthenticationError("request_failed") from e

        body: dict[str, Any] = cast("dict[str, Any]", json_result) if isinstance(json_result, dict) else {}
        if body.get("error"):
            logger.error("%s Login rejected", lp, extra={"error": body.get("error")})
            raise AuthenticationError("rejected")

        session_id = _find_session_id(body) or (cookie.value if cookie is not None else None)
        if not session_id:
            raise AuthenticationError("no_session_id")

        self.session_id = session_id
        logger.info("%s Logged in", lp, extra={"url": url})
        return AuthResult(session_id=session_id, data=body)

    async def shut(self) -> bool:
        """Log out the current GUI session.

        Returns:
            True when the server confirmed the logout
        """
        lp = f"{self.lp}:shut:"
        if not self.session_id:
            logger.debug("%s No GUI session to log out", lp)
            return True

        sesh = await self._check_session()
        url = f"{self.base_url}{LOGOUT_PATH}"
        try:
            async with sesh.post(url, timeout=aiohttp.ClientTimeout(total=self.api_timeout)) as r:
                r.raise_for_status()
        except (aiohttp.ClientError, TimeoutError) as e:
            logger.warning("%s Logout failed", lp, extra={"url": url, "error": str(e)})
            return False
        else:
            self.session_id = None
            logger.info("%s Logged out", lp)
            return True

    async def close(self) -> None:
        """Close the aiohttp session if this authenticator created it."""
        lp = f"{self.lp}:close:"
        if self._owns_session and self.http_session and not self.http_session.closed:
            logger.debug("%s Closing aiohttp ClientSession", lp)
            await self.http_session.close()
        self.http_session = None
