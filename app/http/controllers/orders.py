"""
Orders routes: listing, status update (RapidShyp shipment), shipping label
"""
import logging

from fastapi import APIRouter, HTTPException

from app.config import settings
from app.errors import PipelineError
from app.http.requests.schemas import StatusUpdateRequest
from app.services import shipment_actions
from app.services.performance_pipeline import list_orders

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def get_orders():
    """Newest-first Shopify orders with net total, payment method and listing status."""
    try:
        return await list_orders(settings)
    except PipelineError as e:
        logger.exception("Orders listing failed: %s", e)
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.post("/{order_id}/status")
async def update_order_status(order_id: str, request: StatusUpdateRequest):
    """Processing creates the RapidShyp shipment; Cancelled cancels it."""
    try:
        return await shipment_actions.update_order_status(settings, order_id, request.newStatus)
    except PipelineError as e:
        logger.exception("Status update to %s failed for order %s: %s", request.newStatus.value, order_id, e)
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.get("/{order_id}/label")
async def get_order_label(order_id: str):
    """Shipping label as base64 with its mime type."""
    try:
        return await shipment_actions.get_label(settings, order_id)
    except PipelineError as e:
        logger.exception("Label fetch failed for order %s: %s", order_id, e)
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
