"""
Amazon SP-API service for order retrieval and buyer info.
Every call carries an LWA access token (x-amz-access-token) and a SigV4 signature.
429 responses are retried with exponential backoff plus jitter, up to max_retries attempts;
after that RateLimitExceededError names the endpoint.
Docs: https://developer-docs.amazon.com/sp-api/docs/orders-api
"""
import json
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional
from urllib.parse import quote, urlencode

import httpx

from app.config import settings, AMAZON_REQUIRED
from app.errors import ConfigurationError, RateLimitExceededError, UpstreamFetchError
from app.services.aws_signer import AwsSigV4Signer
from app.services.http_client import error_message, sleep_backoff
from app.services.lwa_token import LwaTokenProvider

logger = logging.getLogger(__name__)


class AmazonSpApiClient:
    """Signed SP-API client. The token provider is shared; the signer is per credentials."""

    def __init__(
        self,
        token_provider: LwaTokenProvider,
        signer: AwsSigV4Signer,
        base_url: Optional[str] = None,
        max_retries: Optional[int] = None,
    ):
        self.token_provider = token_provider
        self.signer = signer
        self.base_url = (base_url or settings.SP_API_BASE_URL).rstrip("/")
        self.max_retries = max_retries or settings.SP_API_MAX_RETRIES

    async def signed_request(
        self,
        client: httpx.AsyncClient,
        method: str,
        path: str,
        params: Optional[dict] = None,
        body: Optional[dict] = None,
    ) -> dict:
        """Send one signed request; returns decoded JSON ({} for empty body)."""
        query = urlencode(sorted((params or {}).items()), quote_via=quote, safe="-_.~")
        url = f"{self.base_url}{path}" + (f"?{query}" if query else "")
        payload = json.dumps(body) if body is not None else ""
        for attempt in range(1, self.max_retries + 1):
            access_token = await self.token_provider.get_token()
            headers = self.signer.sign(
                method,
                url,
                headers={"x-amz-access-token": access_token, "Content-Type": "application/json"},
                body=payload,
            )
            try:
                resp = await client.request(method, url, headers=headers, content=payload or None)
            except httpx.HTTPError as e:
                raise UpstreamFetchError("Amazon SP-API", f"{path}: request failed: {e}") from e
            if resp.is_success:
                return resp.json() if resp.content else {}
            if resp.status_code != 429:
                if resp.status_code in (401, 403):
                    self.token_provider.invalidate()
                raise UpstreamFetchError(
                    "Amazon SP-API",
                    f"{path} failed with status {resp.status_code}: {error_message(resp)}",
                    upstream_status=resp.status_code,
                )
            if attempt >= self.max_retries:
                break
            delay = await sleep_backoff(attempt)
            logger.warning("Rate limited for %s (attempt %s/%s). Retried after %.1fs", path, attempt, self.max_retries, delay)
        raise RateLimitExceededError(path, self.max_retries)

    async def get_orders(
        self,
        client: httpx.AsyncClient,
        *,
        created_after: Optional[datetime] = None,
        marketplace_id: Optional[str] = None,
        max_pages: int = 10,
    ) -> list[dict[str, Any]]:
        """
        Fetch orders from Amazon SP-API Orders v0.
        Uses GET orders/v0/orders with CreatedAfter and MarketplaceIds, following NextToken.
        """
        if created_after is None:
            created_after = datetime.now(timezone.utc) - timedelta(days=30)
        if created_after.tzinfo is None:
            created_after = created_after.replace(tzinfo=timezone.utc)
        base_params: dict[str, Any] = {
            "CreatedAfter": created_after.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "MarketplaceIds": marketplace_id or settings.AMAZON_MARKETPLACE_ID,
            "MaxResultsPerPage": 100,
        }
        all_orders: list[dict[str, Any]] = []
        next_token: Optional[str] = None
        for page in range(1, max_pages + 1):
            params = {"NextToken": next_token, "MarketplaceIds": base_params["MarketplaceIds"]} if next_token else base_params
            data = await self.signed_request(client, "GET", "/orders/v0/orders", params=params)
            payload = data.get("payload") or {}
            orders = payload.get("Orders") or []
            all_orders.extend(orders)
            logger.info("Amazon orders page %s: got %s (total so far: %s)", page, len(orders), len(all_orders))
            next_token = payload.get("NextToken")
            if not next_token or not orders:
                break
        return all_orders

    async def get_buyer_info(self, client: httpx.AsyncClient, order_id: str) -> dict:
        """GET /orders/v0/orders/{orderId}/buyerInfo -> {"name": BuyerName or "N/A"}."""
        data = await self.signed_request(client, "GET", f"/orders/v0/orders/{order_id}/buyerInfo")
        payload = data.get("payload") or {}
        return {"orderId": order_id, "name": payload.get("BuyerName") or "N/A", "email": payload.get("BuyerEmail")}


def build_token_provider() -> LwaTokenProvider:
    missing = settings.missing_for(*AMAZON_REQUIRED)
    if missing:
        raise ConfigurationError(missing)
    return LwaTokenProvider(settings.LWA_CLIENT_ID, settings.LWA_CLIENT_SECRET, settings.LWA_REFRESH_TOKEN)


def get_amazon_client(token_provider: LwaTokenProvider) -> AmazonSpApiClient:
    missing = settings.missing_for(*AMAZON_REQUIRED)
    if missing:
        raise ConfigurationError(missing)
    signer = AwsSigV4Signer(settings.AWS_ACCESS_KEY, settings.AWS_SECRET_KEY, settings.AWS_REGION)
    return AmazonSpApiClient(token_provider, signer)


def normalize_amazon_order_to_common(amazon_order: dict[str, Any]) -> dict[str, Any]:
    """
    Map one Amazon SP-API order (v0) to the listing shape used for Shopify orders.
    Order items are not in the list response, so no line items are included.
    """
    order_id = amazon_order.get("AmazonOrderId") or ""
    order_total = amazon_order.get("OrderTotal") or {}
    try:
        total = float(Decimal(str(order_total.get("Amount") or 0)))
    except ArithmeticError:
        total = 0.0
    status = amazon_order.get("OrderStatus") or ""
    ship = amazon_order.get("ShippingAddress") or {}
    if status == "Canceled":
        listing_status = "Cancelled"
    elif status in ("Shipped", "PartiallyShipped"):
        listing_status = "Shipped"
    elif status in ("Pending", "Unshipped"):
        listing_status = "New"
    else:
        listing_status = "Processing"
    return {
        "platform": "Amazon",
        "id": order_id,
        "originalId": order_id,
        "date": (amazon_order.get("PurchaseDate") or "")[:10],
        "name": ship.get("Name") or "Amazon Customer",
        "total": round(total, 2),
        "currency": order_total.get("CurrencyCode") or "INR",
        "status": listing_status,
        "paymentMethod": "COD" if (amazon_order.get("PaymentMethod") or "").upper() == "COD" else "Prepaid",
    }
