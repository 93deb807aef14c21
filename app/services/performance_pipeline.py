"""
Performance pipeline: fetch -> resolve status -> attribute -> aggregate.

Shopify orders, Meta daily spend and Meta ad entities are must-have inputs fetched
concurrently; the first failure aborts the run. RapidShyp tracking is best-effort and
runs after the orders are known. Credentials are checked before any network call.
"""
import asyncio
import logging
from datetime import date
from typing import Any, Optional

import httpx

from app.config import Settings, ORDERS_REQUIRED, PIPELINE_REQUIRED
from app.errors import ConfigurationError
from app.models import AdLevel, Order, ResolvedOrder
from app.services import aggregator, attribution, meta_ads_service, rapidshyp_service, shopify_service
from app.services.http_client import new_client
from app.services.status_resolver import listing_status, resolve
from app.services.timezones import ist_date

logger = logging.getLogger(__name__)


def _require(config: Settings, names) -> None:
    missing = config.missing_for(*names)
    if missing:
        logger.error("Missing configuration: %s", ", ".join(missing))
        raise ConfigurationError(missing)


def _order_row(item: ResolvedOrder) -> dict[str, Any]:
    order = item.order
    return {
        "id": order.id,
        "name": order.name,
        "date": ist_date(order.created_at).isoformat(),
        "total": float(round(order.total_price, 2)),
        "status": item.status.value,
        "trackingStatus": item.tracking.status if item.tracking else None,
        "awb": order.awbs[0] if order.awbs else None,
        "courier": item.tracking.courier if item.tracking else None,
        "attribution": item.attribution.to_dict(),
    }


def listing_row(order: Order) -> dict[str, Any]:
    """One row of the plain orders listing (net of refunds)."""
    return {
        "platform": "Shopify",
        "id": order.name,
        "originalId": order.id,
        "date": ist_date(order.created_at).isoformat(),
        "name": order.customer_name,
        "total": float(round(order.net_total, 2)),
        "status": listing_status(order).value,
        "paymentMethod": order.payment_method.value,
    }


async def _fetch_inputs(
    client: httpx.AsyncClient,
    config: Settings,
    since: date,
    until: date,
    level: AdLevel,
) -> tuple[list[Order], dict, list]:
    """Must-have fetches, concurrently; the first failure cancels the rest and propagates."""
    tasks = [
        asyncio.ensure_future(shopify_service.fetch_orders_since(
            client, config.SHOPIFY_SHOP_URL, config.SHOPIFY_TOKEN, since,
            api_version=config.SHOPIFY_API_VERSION,
        )),
        asyncio.ensure_future(meta_ads_service.fetch_daily_spend(
            client, config.FACEBOOK_AD_ACCOUNT_ID, config.FACEBOOK_ACCESS_TOKEN, since, until,
            api_version=config.META_API_VERSION,
        )),
        asyncio.ensure_future(meta_ads_service.fetch_ad_entities(
            client, config.FACEBOOK_AD_ACCOUNT_ID, config.FACEBOOK_ACCESS_TOKEN, since, until, level,
            api_version=config.META_API_VERSION,
        )),
    ]
    try:
        orders, daily_spend, entities = await asyncio.gather(*tasks)
    except BaseException:
        pending = [t for t in tasks if not t.done()]
        for task in pending:
            task.cancel()
        # collect the cancelled fetches before the shared client closes
        await asyncio.gather(*pending, return_exceptions=True)
        raise
    return orders, daily_spend, entities


async def _run(
    client: httpx.AsyncClient,
    config: Settings,
    since: date,
    until: date,
    level: AdLevel,
) -> dict[str, Any]:
    orders, daily_spend, entities = await _fetch_inputs(client, config, since, until, level)

    tracker = rapidshyp_service.get_client(config.RAPIDSHYP_API_KEY, config.RAPIDSHYP_API_BASE_URL)
    tracking = await tracker.fetch_tracking_records(client, orders) if tracker else {}
    if tracker is None:
        logger.info("RAPIDSHYP_API_KEY not set: statuses come from Shopify fields only")

    resolved = [
        ResolvedOrder(
            order=order,
            status=resolve(order, tracking.get(order.id)),
            attribution=attribution.match(order, entities),
            tracking=tracking.get(order.id),
        )
        for order in orders
    ]
    in_range = aggregator.within_range(resolved, since, until)

    time_series = aggregator.build_time_series(in_range, daily_spend, since, until)
    rollup = aggregator.build_entity_rollup(in_range, entities)
    attributed = sum(1 for r in in_range if r.attribution.is_attributed)
    logger.info(
        "Performance %s..%s (%s): %s order(s) in range, %s attributed, %s tracked",
        since, until, level.value, len(in_range), attributed, len(tracking),
    )
    return {
        "timeSeries": [b.to_dict(include_children=False) for b in time_series],
        "entityPerformance": [b.to_dict() for b in rollup],
        "termPerformance": aggregator.flatten_terms(rollup),
        "totals": aggregator.build_totals(time_series).to_dict(include_children=False),
        "orders": [_order_row(r) for r in in_range],
    }


async def run_performance_pipeline(
    config: Settings,
    since: date,
    until: date,
    level: AdLevel = AdLevel.AD,
    client: Optional[httpx.AsyncClient] = None,
) -> dict[str, Any]:
    """
    Full performance report for [since, until] (IST calendar days).
    Raises ConfigurationError before any fetch, UpstreamFetchError on a must-have failure.
    """
    _require(config, PIPELINE_REQUIRED)
    level = AdLevel(level)
    if client is None:
        async with new_client() as owned:
            return await _run(owned, config, since, until, level)
    return await _run(client, config, since, until, level)


async def list_orders(config: Settings, client: Optional[httpx.AsyncClient] = None) -> list[dict[str, Any]]:
    """Newest-first Shopify orders listing."""
    _require(config, ORDERS_REQUIRED)
    if client is None:
        async with new_client() as owned:
            orders = await shopify_service.fetch_recent_orders(
                owned, config.SHOPIFY_SHOP_URL, config.SHOPIFY_TOKEN, api_version=config.SHOPIFY_API_VERSION
            )
    else:
        orders = await shopify_service.fetch_recent_orders(
            client, config.SHOPIFY_SHOP_URL, config.SHOPIFY_TOKEN, api_version=config.SHOPIFY_API_VERSION
        )
    logger.info("Orders listing: %s order(s)", len(orders))
    return [listing_row(o) for o in orders]
