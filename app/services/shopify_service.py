"""
Shopify Admin API service - orders for the performance pipeline and the orders listing.
Defaults to API version 2024-07 (SHOPIFY_API_VERSION overrides). Never expose access_token to frontend.
Supports cursor pagination (Link header): pages are followed sequentially until no rel="next".
"""
import logging
import re
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import httpx

from app.errors import UpstreamFetchError
from app.models import NoteAttribute, Order, ZERO
from app.services.http_client import get_json
from app.services.timezones import IST

logger = logging.getLogger(__name__)

API_VERSION = "2024-07"
PAGE_LIMIT = 250
MAX_LISTING_PAGES = 100
# 250 orders per page; a range past this many pages is cut short with a warning
MAX_RANGE_PAGES = 400


def _parse_link_next(link_header: Optional[str]) -> Optional[str]:
    """Parse Link header; return URL for rel=next if present. Shopify uses cursor pagination."""
    if not link_header:
        return None
    # Format: <url>; rel="next", <url>; rel="previous"
    for part in link_header.split(","):
        part = part.strip()
        if re.search(r';\s*rel="?next"?', part, re.IGNORECASE):
            match = re.search(r"<([^>]+)>", part)
            if match:
                return match.group(1).strip()
    return None


def _base_url(shop_domain: str, api_version: str = API_VERSION) -> str:
    shop = shop_domain.lower().strip().replace("https://", "").rstrip("/")
    if not shop.endswith(".myshopify.com"):
        shop = f"{shop}.myshopify.com" if "." not in shop else shop
    return f"https://{shop}/admin/api/{api_version or API_VERSION}"


def _headers(access_token: str) -> dict:
    return {
        "X-Shopify-Access-Token": access_token,
        "Accept": "application/json",
    }


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    # Shopify always sends an offset; treat naive values as IST (shop timezone)
    return dt if dt.tzinfo else dt.replace(tzinfo=IST)


def _parse_money(value: Any, order_ref: Any = None) -> Decimal:
    if value in (None, ""):
        return ZERO
    try:
        amount = Decimal(str(value).replace(",", ""))
    except InvalidOperation:
        logger.warning("Shopify order %s: unparseable amount %r, using 0", order_ref, value)
        return ZERO
    if not amount.is_finite():
        logger.warning("Shopify order %s: non-finite amount %r, using 0", order_ref, value)
        return ZERO
    return amount


def _total_refunded(raw: dict) -> Decimal:
    """Sum of successful refund transactions."""
    total = ZERO
    for refund in raw.get("refunds") or []:
        for tx in (refund or {}).get("transactions") or []:
            if tx.get("kind") == "refund" and tx.get("status") == "success":
                total += _parse_money(tx.get("amount"), raw.get("id"))
    return total


def _customer_name(raw: dict) -> str:
    ship = raw.get("shipping_address") or {}
    name = f"{ship.get('first_name') or ''} {ship.get('last_name') or ''}".strip()
    return name or "N/A"


def normalize_order(raw: dict) -> Optional[Order]:
    """
    Map one Shopify order payload to an Order.
    Returns None when the record has no id or no parseable created_at (unusable for
    status or date bucketing); every other malformed field degrades to empty/zero.
    """
    if not isinstance(raw, dict) or raw.get("id") in (None, ""):
        logger.warning("Shopify order without id skipped")
        return None
    created_at = _parse_datetime(raw.get("created_at"))
    if created_at is None:
        logger.warning("Shopify order %s: unparseable created_at %r, skipped", raw.get("id"), raw.get("created_at"))
        return None
    notes = tuple(
        NoteAttribute(name=str(n.get("name") or ""), value=str(n.get("value") or ""))
        for n in (raw.get("note_attributes") or [])
        if isinstance(n, dict)
    )
    awbs = tuple(
        str(f["tracking_number"]).strip()
        for f in (raw.get("fulfillments") or [])
        if isinstance(f, dict) and f.get("tracking_number")
    )
    return Order(
        id=str(raw["id"]),
        name=str(raw.get("name") or raw["id"]),
        created_at=created_at,
        total_price=_parse_money(raw.get("total_price"), raw.get("id")),
        cancelled_at=_parse_datetime(raw.get("cancelled_at")),
        fulfillment_status=raw.get("fulfillment_status"),
        financial_status=raw.get("financial_status"),
        tags=str(raw.get("tags") or ""),
        note_attributes=notes,
        landing_site=raw.get("landing_site"),
        referring_site=raw.get("referring_site"),
        source_name=raw.get("source_name"),
        awbs=awbs,
        total_refunded=_total_refunded(raw),
        customer_name=_customer_name(raw),
    )


async def _fetch_all_pages(
    client: httpx.AsyncClient,
    url: str,
    access_token: str,
    params: dict,
    max_pages: int,
) -> list[dict]:
    all_orders: list[dict] = []
    page = 0
    next_url: Optional[str] = url
    page_params: Optional[dict] = params
    while next_url and page < max_pages:
        page += 1
        data, resp = await get_json(client, next_url, source="Shopify", params=page_params, headers=_headers(access_token))
        orders = (data or {}).get("orders") or []
        all_orders.extend(orders)
        logger.info("Shopify orders page %s: got %s (total so far: %s)", page, len(orders), len(all_orders))
        next_url = _parse_link_next(resp.headers.get("link"))
        page_params = None  # next URL carries page_info and limit; extra params would replace its query
    if next_url:
        logger.warning("Shopify pagination stopped after %s page(s); more orders remain", page)
    return all_orders


async def fetch_orders_since(
    client: httpx.AsyncClient,
    shop_domain: str,
    access_token: str,
    since: date,
    api_version: str = API_VERSION,
    max_pages: int = MAX_RANGE_PAGES,
) -> list[Order]:
    """
    All orders created on or after `since` (IST midnight), any status.
    GET /admin/api/2024-07/orders.json?status=any&limit=250&created_at_min=...
    """
    created_at_min = datetime.combine(since, time.min, tzinfo=IST).isoformat()
    raw_orders = await _fetch_all_pages(
        client,
        f"{_base_url(shop_domain, api_version)}/orders.json",
        access_token,
        {"status": "any", "limit": PAGE_LIMIT, "created_at_min": created_at_min},
        max_pages=max_pages,
    )
    orders = [o for o in (normalize_order(r) for r in raw_orders) if o is not None]
    logger.info("Shopify: %s usable order(s) of %s since %s", len(orders), len(raw_orders), since)
    return orders


async def fetch_recent_orders(
    client: httpx.AsyncClient,
    shop_domain: str,
    access_token: str,
    max_pages: int = MAX_LISTING_PAGES,
    api_version: str = API_VERSION,
) -> list[Order]:
    """Newest-first listing of all orders (capped at max_pages pages)."""
    raw_orders = await _fetch_all_pages(
        client,
        f"{_base_url(shop_domain, api_version)}/orders.json",
        access_token,
        {"status": "any", "limit": PAGE_LIMIT, "order": "created_at desc"},
        max_pages=max_pages,
    )
    return [o for o in (normalize_order(r) for r in raw_orders) if o is not None]


async def fetch_order(
    client: httpx.AsyncClient,
    shop_domain: str,
    access_token: str,
    order_id: str,
    api_version: str = API_VERSION,
) -> dict:
    """Raw Shopify order payload (GET /orders/{id}.json), for shipment actions."""
    data, _ = await get_json(
        client,
        f"{_base_url(shop_domain, api_version)}/orders/{order_id}.json",
        source="Shopify",
        headers=_headers(access_token),
    )
    order = (data or {}).get("order") if isinstance(data, dict) else None
    if not isinstance(order, dict):
        raise UpstreamFetchError("Shopify", f"Order {order_id} missing from response")
    return order
