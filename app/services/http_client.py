"""
Shared HTTP helpers for external APIs: one AsyncClient per request with a timeout,
upstream error extraction, and exponential backoff with jitter for rate-limited calls.
"""
import asyncio
import logging
import random
from typing import Any, Optional

import httpx

from app.config import settings
from app.errors import UpstreamFetchError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
RETRY_BACKOFF_BASE = 1.0  # seconds
MAX_JITTER = 1.0  # seconds


def new_client(timeout: Optional[float] = None, **kwargs: Any) -> httpx.AsyncClient:
    """AsyncClient with the configured upstream timeout."""
    return httpx.AsyncClient(timeout=timeout or settings.HTTP_TIMEOUT_SEC or DEFAULT_TIMEOUT, **kwargs)


def backoff_delay(attempt: int, jitter: Optional[float] = None) -> float:
    """2**attempt seconds plus up to one second of jitter (attempt starts at 1)."""
    if attempt <= 0:
        return 0.0
    if jitter is None:
        jitter = random.random() * MAX_JITTER
    return RETRY_BACKOFF_BASE * (2 ** attempt) + jitter


async def sleep_backoff(attempt: int) -> float:
    delay = backoff_delay(attempt)
    await asyncio.sleep(delay)
    return delay


def error_message(resp: httpx.Response) -> str:
    """Best-effort human message from an error response (Graph API, Shopify, SP-API shapes)."""
    try:
        data = resp.json()
    except ValueError:
        return (resp.text or resp.reason_phrase or "")[:300]
    if isinstance(data, dict):
        err = data.get("error") or data.get("errors")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, list) and err and isinstance(err[0], dict):
            return str(err[0].get("message") or err[0])
        if err:
            return str(err)
    return str(data)[:300]


def raise_for_upstream(resp: httpx.Response, source: str) -> None:
    """Raise UpstreamFetchError for any non-2xx response from a must-have source."""
    if resp.is_success:
        return
    message = error_message(resp)
    logger.warning("%s API %s %s -> %s %s", source, resp.request.method, resp.request.url.path, resp.status_code, message[:200])
    raise UpstreamFetchError(source, message, upstream_status=resp.status_code)


async def get_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    source: str,
    params: Optional[dict] = None,
    headers: Optional[dict] = None,
) -> tuple[Any, httpx.Response]:
    """GET and decode JSON; transport failures and non-2xx become UpstreamFetchError."""
    try:
        resp = await client.get(url, params=params, headers=headers)
    except httpx.HTTPError as e:
        logger.warning("%s API GET %s failed: %s", source, url.split("?")[0], e)
        raise UpstreamFetchError(source, f"Request failed: {e}") from e
    raise_for_upstream(resp, source)
    try:
        return resp.json(), resp
    except ValueError as e:
        raise UpstreamFetchError(source, "Invalid JSON response", upstream_status=resp.status_code) from e
