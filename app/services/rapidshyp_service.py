"""
RapidShyp API client.
Tracking: POST /track_order {"awb": "..."} with header rapidshyp-token: <API_KEY>.
Best-effort input: a failed lookup is logged and the order falls back to its Shopify status.
Shipments and labels (Authorization: Bearer <API_KEY>): POST /shipments, POST /shipments/cancel,
GET /labels?order_id=<order name>. These are explicit user actions, so failures raise.
"""
import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

import httpx

from app.errors import UpstreamFetchError
from app.models import Order, PaymentMethod, TrackingRecord
from app.services.http_client import raise_for_upstream

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.rapidshyp.com/rapidshyp/apis/v1"
SOURCE = "RapidShyp"


class TrackingLookupError(Exception):
    """One AWB lookup failed (HTTP error, bad payload, network)."""


def _parse_track_response(awb: str, data: dict) -> Optional[TrackingRecord]:
    """
    Response: { "success": true, "records": [ { "shipment_details": [ {
        "current_tracking_status_desc": "...", "current_tracking_status": "...",
        "current_status_date": "...", "courier_name": "..." } ] } ] }
    """
    if not isinstance(data, dict) or not data.get("success"):
        return None
    records = data.get("records") or []
    if not records or not isinstance(records[0], dict):
        return None
    shipments = records[0].get("shipment_details") or []
    if not shipments or not isinstance(shipments[0], dict):
        return None
    shipment = shipments[0]
    status = shipment.get("current_tracking_status_desc") or shipment.get("current_tracking_status")
    if not status:
        return None
    return TrackingRecord(
        awb=awb,
        status=str(status),
        status_date=shipment.get("current_status_date"),
        courier=shipment.get("courier_name"),
    )


def _price(value: Any) -> float:
    try:
        return float(Decimal(str(value or "0")))
    except InvalidOperation:
        return 0.0


def build_shipment_payload(order: dict) -> dict:
    """
    RapidShyp /shipments payload from a raw Shopify order.
    order_id is the public order name (#1001); payment is Prepaid only when financial_status is paid.
    """
    shipping = order.get("shipping_address") or {}
    customer = order.get("customer") or {}
    name = " ".join(p for p in (shipping.get("first_name"), shipping.get("last_name")) if p)
    paid = (order.get("financial_status") or "") == "paid"
    return {
        "order_id": order.get("name"),
        "customer_details": {
            "name": name,
            "phone": shipping.get("phone") or customer.get("phone"),
            "email": order.get("email") or customer.get("email"),
        },
        "delivery_address": {
            "address_line_1": shipping.get("address1"),
            "address_line_2": shipping.get("address2") or "",
            "city": shipping.get("city"),
            "state": shipping.get("province"),
            "zip_code": shipping.get("zip"),
            "country": shipping.get("country_code"),
        },
        "line_items": [
            {
                "sku": item.get("sku"),
                "name": item.get("name"),
                "quantity": int(item.get("quantity") or 1),
                "price": _price(item.get("price")),
            }
            for item in (order.get("line_items") or [])
            if isinstance(item, dict)
        ],
        "payment_method": (PaymentMethod.PREPAID if paid else PaymentMethod.COD).value,
        "order_total": _price(order.get("total_price")),
    }


class RapidShypClient:
    """
    RapidShyp API client.
    POST https://api.rapidshyp.com/rapidshyp/apis/v1/track_order
    """

    def __init__(self, api_key: str, base_url: Optional[str] = None):
        self.api_key = api_key
        self.base_url = (base_url or API_BASE_URL).rstrip("/")

    def _headers(self) -> dict:
        return {"rapidshyp-token": self.api_key, "Content-Type": "application/json"}

    def _bearer_headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    async def _send(self, client: httpx.AsyncClient, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await client.request(method, f"{self.base_url}/{path}", headers=self._bearer_headers(), **kwargs)
        except httpx.HTTPError as e:
            logger.warning("RapidShyp %s %s failed: %s", method, path, e)
            raise UpstreamFetchError(SOURCE, f"Request failed: {e}") from e
        raise_for_upstream(resp, SOURCE)
        return resp

    async def track_awb(self, client: httpx.AsyncClient, awb: str) -> Optional[TrackingRecord]:
        """
        Tracking for one AWB. Returns None when the carrier does not know it;
        raises TrackingLookupError on HTTP/network failure.
        """
        url = f"{self.base_url}/track_order"
        try:
            resp = await client.post(url, json={"awb": awb}, headers=self._headers())
        except httpx.HTTPError as e:
            raise TrackingLookupError(f"network error for AWB {awb}: {e}") from e
        if not resp.is_success:
            raise TrackingLookupError(f"HTTP {resp.status_code} for AWB {awb}")
        try:
            data = resp.json()
        except ValueError as e:
            raise TrackingLookupError(f"invalid JSON for AWB {awb}") from e
        return _parse_track_response(awb, data)

    async def fetch_tracking_records(
        self,
        client: httpx.AsyncClient,
        orders: Iterable[Order],
    ) -> dict[str, TrackingRecord]:
        """
        One concurrent lookup per order that has at least one AWB (the first one).
        Returns {order.id: TrackingRecord}; failed or unknown lookups are omitted.
        """
        targets = [o for o in orders if o.awbs]
        if not targets:
            return {}
        results = await asyncio.gather(
            *(self.track_awb(client, o.awbs[0]) for o in targets),
            return_exceptions=True,
        )
        records: dict[str, TrackingRecord] = {}
        failed = 0
        for order, result in zip(targets, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                failed += 1
                logger.warning("RapidShyp lookup failed for order %s: %s", order.name, result)
                continue
            if result is not None:
                records[order.id] = result
        logger.info(
            "RapidShyp: %s status(es) for %s order(s) with AWB, %s failed",
            len(records), len(targets), failed,
        )
        return records

    async def create_shipment(self, client: httpx.AsyncClient, payload: dict) -> dict:
        """POST /shipments; returns RapidShyp's JSON response ({} when empty)."""
        resp = await self._send(client, "POST", "shipments", json=payload)
        logger.info("RapidShyp shipment created for %s", payload.get("order_id"))
        return resp.json() if resp.content else {}

    async def cancel_shipment(self, client: httpx.AsyncClient, order_name: str) -> dict:
        """POST /shipments/cancel for one order (by public order name)."""
        resp = await self._send(client, "POST", "shipments/cancel", json={"order_id": order_name})
        logger.info("RapidShyp shipment cancelled for %s", order_name)
        return resp.json() if resp.content else {}

    async def get_label(self, client: httpx.AsyncClient, order_name: str) -> tuple[bytes, str]:
        """Shipping label for one order: (file bytes, mime type). PDF unless RapidShyp says otherwise."""
        resp = await self._send(client, "GET", "labels", params={"order_id": order_name})
        mime_type = (resp.headers.get("content-type") or "application/pdf").split(";")[0].strip()
        return resp.content, mime_type or "application/pdf"


def get_client(api_key: Optional[str], base_url: Optional[str] = None) -> Optional[RapidShypClient]:
    """Return a client instance, or None when no API key is configured."""
    key = (api_key or "").strip()
    if not key:
        return None
    return RapidShypClient(api_key=key, base_url=base_url)
