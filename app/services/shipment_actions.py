"""
Shipment actions on a single Shopify order through RapidShyp.

Processing -> create the RapidShyp shipment from the Shopify order.
Cancelled  -> cancel the RapidShyp shipment.
Labels are fetched by public order name and returned base64-encoded for the browser.
"""
import base64
import logging
from typing import Any, Optional

import httpx

from app.config import Settings, SHIPMENT_REQUIRED
from app.errors import ConfigurationError
from app.models import ShipmentAction
from app.services import rapidshyp_service, shopify_service
from app.services.http_client import new_client

logger = logging.getLogger(__name__)


def _carrier(config: Settings) -> rapidshyp_service.RapidShypClient:
    missing = config.missing_for(*SHIPMENT_REQUIRED)
    if missing:
        logger.error("Missing configuration: %s", ", ".join(missing))
        raise ConfigurationError(missing)
    return rapidshyp_service.get_client(config.RAPIDSHYP_API_KEY, config.RAPIDSHYP_API_BASE_URL)


async def _order(client: httpx.AsyncClient, config: Settings, order_id: str) -> dict:
    return await shopify_service.fetch_order(
        client, config.SHOPIFY_SHOP_URL, config.SHOPIFY_TOKEN, order_id, api_version=config.SHOPIFY_API_VERSION
    )


async def _update(
    client: httpx.AsyncClient,
    carrier: rapidshyp_service.RapidShypClient,
    config: Settings,
    order_id: str,
    action: ShipmentAction,
) -> dict[str, Any]:
    order = await _order(client, config, order_id)
    if action == ShipmentAction.PROCESSING:
        await carrier.create_shipment(client, rapidshyp_service.build_shipment_payload(order))
    else:
        await carrier.cancel_shipment(client, order.get("name") or order_id)
    logger.info("Order %s (%s) moved to %s", order_id, order.get("name"), action.value)
    return {"success": True, "orderId": order_id, "newStatus": action.value}


async def update_order_status(
    config: Settings,
    order_id: str,
    new_status: ShipmentAction,
    client: Optional[httpx.AsyncClient] = None,
) -> dict[str, Any]:
    """
    Push a status change for one Shopify order (numeric id) to RapidShyp.
    Raises ConfigurationError before any call, UpstreamFetchError when Shopify or RapidShyp fails.
    """
    action = ShipmentAction(new_status)
    carrier = _carrier(config)
    if client is None:
        async with new_client() as owned:
            return await _update(owned, carrier, config, order_id, action)
    return await _update(client, carrier, config, order_id, action)


async def _label(
    client: httpx.AsyncClient,
    carrier: rapidshyp_service.RapidShypClient,
    config: Settings,
    order_id: str,
) -> dict[str, Any]:
    order = await _order(client, config, order_id)
    content, mime_type = await carrier.get_label(client, order.get("name") or order_id)
    logger.info("Label for order %s: %s bytes (%s)", order.get("name"), len(content), mime_type)
    return {"labelData": base64.b64encode(content).decode("ascii"), "mimeType": mime_type}


async def get_label(config: Settings, order_id: str, client: Optional[httpx.AsyncClient] = None) -> dict[str, Any]:
    """Shipping label for one Shopify order: {labelData (base64), mimeType}."""
    carrier = _carrier(config)
    if client is None:
        async with new_client() as owned:
            return await _label(owned, carrier, config, order_id)
    return await _label(client, carrier, config, order_id)
