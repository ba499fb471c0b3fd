import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional

import httpx

from planner.services.erp_errors import ERPAuthenticationError

logger = logging.getLogger(__name__)


class ERPAuthenticator:
    """
    Exchange ERP credentials for a token and cache it.

    State is explicit (`token`, `expires_at`, `pending`) and owned by the instance,
    so one authenticator is shared by everything that talks to the same ERP.
    Concurrent callers that find no valid token await the same in-flight login
    instead of each posting to /auth/.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        username: str,
        password: str,
        ttl_seconds: float = 3600,
        scheme: str = "Token",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.http_client = http_client
        self.username = username
        self.password = password
        self.ttl_seconds = ttl_seconds
        self.scheme = scheme
        self.clock = clock

        self.token: Optional[str] = None
        self.expires_at: Optional[float] = None
        self.pending: Optional[asyncio.Future] = None

    def has_valid_token(self) -> bool:
        return bool(self.token) and self.expires_at is not None and self.clock() < self.expires_at

    def invalidate(self) -> None:
        self.token = None
        self.expires_at = None

    async def _login(self) -> str:
        logger.info("Authenticating with ERP", extra={"username": self.username})
        try:
            response = await self.http_client.post(
                "/auth/",
                json={"username": self.username, "password": self.password},
            )
            response.raise_for_status()
            token = response.json().get("auth_token")
        except httpx.HTTPStatusError as exc:
            raise ERPAuthenticationError(
                f"ERP rejected credentials (HTTP {exc.response.status_code})"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ERPAuthenticationError(f"ERP authentication failed: {exc}") from exc

        if not token:
            raise ERPAuthenticationError("ERP auth response did not include auth_token")

        self.token = token
        self.expires_at = self.clock() + self.ttl_seconds
        logger.info("ERP authentication succeeded")
        return token

    def _clear_pending(self, _future: asyncio.Future) -> None:
        self.pending = None

    async def authenticate(self) -> str:
        """Log in, joining an in-flight login if there is one."""
        if self.pending is None:
            self.pending = asyncio.ensure_future(self._login())
            self.pending.add_done_callback(self._clear_pending)
        # shield: one caller being cancelled must not cancel the shared login
        return await asyncio.shield(self.pending)

    async def get_token(self) -> str:
        if self.has_valid_token():
            return self.token
        return await self.authenticate()

    async def get_auth_headers(self) -> Dict[str, str]:
        token = await self.get_token()
        return {
            "Authorization": f"{self.scheme} {token}",
            "Content-Type": "application/json",
        }


AuthHeaderProvider = Callable[[], Awaitable[Dict[str, str]]]
