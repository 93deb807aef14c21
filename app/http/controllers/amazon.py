"""
Amazon SP-API routes (orders listing, buyer info).
One LwaTokenProvider is shared by every request through app.state.
"""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from app.errors import PipelineError
from app.services.amazon_service import (
    build_token_provider,
    get_amazon_client,
    normalize_amazon_order_to_common,
)
from app.services.http_client import new_client
from app.services.lwa_token import LwaTokenProvider

logger = logging.getLogger(__name__)
router = APIRouter()


def _token_provider(request: Request) -> LwaTokenProvider:
    provider = getattr(request.app.state, "lwa_token_provider", None)
    if provider is None:
        provider = build_token_provider()
        request.app.state.lwa_token_provider = provider
    return provider


@router.get("/orders")
async def get_amazon_orders(
    request: Request,
    created_after: Optional[datetime] = Query(None, description="ISO 8601; defaults to 30 days ago"),
    max_pages: int = Query(10, ge=1, le=50),
):
    """Amazon orders normalized to the same listing shape as Shopify orders."""
    try:
        client = get_amazon_client(_token_provider(request))
        async with new_client() as http:
            raw = await client.get_orders(http, created_after=created_after, max_pages=max_pages)
    except PipelineError as e:
        logger.exception("Amazon orders failed: %s", e)
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    return [normalize_amazon_order_to_common(o) for o in raw]


@router.get("/orders/{order_id}/buyer-info")
async def get_amazon_buyer_info(order_id: str, request: Request):
    """Buyer name for one Amazon order ("N/A" when Amazon withholds it)."""
    try:
        client = get_amazon_client(_token_provider(request))
        async with new_client() as http:
            return await client.get_buyer_info(http, order_id)
    except PipelineError as e:
        logger.exception("Amazon buyer info failed for %s: %s", order_id, e)
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
