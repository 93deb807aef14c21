"""
Login with Amazon (LWA) access tokens for SP-API calls.

One LwaTokenProvider lives for the whole process (held on app.state). The token is cached
with an expiry TOKEN_EXPIRY_MARGIN_SEC shorter than its real TTL and is considered expired
once now >= expires_at. A refresh is a single shared asyncio task: callers arriving while it
is in flight await the same task instead of starting their own exchange.
"""
import asyncio
import logging
import time
from typing import Callable, Optional

import httpx

from app.config import settings
from app.errors import UpstreamFetchError
from app.services.http_client import error_message, new_client

logger = logging.getLogger(__name__)

LWA_TOKEN_URL = "https://api.amazon.com/auth/o2/token"
DEFAULT_EXPIRES_IN = 3600


async def exchange_refresh_token(
    client: httpx.AsyncClient,
    client_id: str,
    client_secret: str,
    refresh_token: str,
    token_url: str = LWA_TOKEN_URL,
) -> tuple[str, int]:
    """Exchange LWA refresh token for access token. Returns (access_token, expires_in seconds)."""
    try:
        resp = await client.post(
            token_url,
            data={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": client_id,
                "client_secret": client_secret,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
    except httpx.HTTPError as e:
        raise UpstreamFetchError("Amazon LWA", f"token request failed: {e}") from e
    if not resp.is_success:
        raise UpstreamFetchError("Amazon LWA", f"LWA token error: {error_message(resp)}", upstream_status=resp.status_code)
    data = resp.json()
    token = data.get("access_token") if isinstance(data, dict) else None
    if not token:
        raise UpstreamFetchError("Amazon LWA", "LWA token response has no access_token", upstream_status=resp.status_code)
    try:
        expires_in = int(data.get("expires_in") or DEFAULT_EXPIRES_IN)
    except (TypeError, ValueError):
        expires_in = DEFAULT_EXPIRES_IN
    return token, expires_in


class LwaTokenProvider:
    """Memoized LWA access token with single-flight refresh."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        *,
        token_url: str = LWA_TOKEN_URL,
        expiry_margin: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        client_factory: Callable[[], httpx.AsyncClient] = new_client,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.token_url = token_url
        self.expiry_margin = settings.TOKEN_EXPIRY_MARGIN_SEC if expiry_margin is None else expiry_margin
        self._clock = clock
        self._client_factory = client_factory
        self._token: Optional[str] = None
        self._expires_at = 0.0
        self._refresh_task: Optional[asyncio.Task] = None
        self.refresh_count = 0

    @property
    def is_expired(self) -> bool:
        return self._token is None or self._clock() >= self._expires_at

    def invalidate(self) -> None:
        """Drop the cached token (e.g. after a 401/403 from SP-API)."""
        self._token = None
        self._expires_at = 0.0

    async def _refresh(self) -> str:
        self.refresh_count += 1
        async with self._client_factory() as client:
            token, expires_in = await exchange_refresh_token(
                client, self.client_id, self.client_secret, self.refresh_token, self.token_url
            )
        self._token = token
        self._expires_at = self._clock() + max(expires_in - self.expiry_margin, 0)
        logger.info("LWA access token refreshed (valid for %ss)", max(expires_in - self.expiry_margin, 0))
        return token

    async def get_token(self) -> str:
        if not self.is_expired:
            return self._token  # type: ignore[return-value]
        if self._refresh_task is None:
            self._refresh_task = asyncio.ensure_future(self._refresh())
        task = self._refresh_task
        try:
            # shield: one cancelled caller must not cancel the refresh the others await
            return await asyncio.shield(task)
        finally:
            if task.done() and self._refresh_task is task:
                self._refresh_task = None
