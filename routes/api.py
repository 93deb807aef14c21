"""
Central API route registration. All HTTP controllers are mounted here with /api prefix.
"""
import logging
from fastapi import FastAPI

from app.http.controllers import amazon, orders, performance

logger = logging.getLogger(__name__)


def register_routes(app: FastAPI, settings) -> None:
    """Register all API routers. Call from main.py after creating the FastAPI app."""
    prefix = settings.API_PREFIX
    app.include_router(performance.router, prefix=f"{prefix}/performance", tags=["performance"])
    app.include_router(orders.router, prefix=f"{prefix}/orders", tags=["orders"])
    app.include_router(amazon.router, prefix=f"{prefix}/amazon", tags=["amazon"])
    logger.info("Routes registered under %s", prefix)
