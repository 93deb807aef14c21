"""
Shared fixtures and factories for the test suite.
"""
from datetime import datetime
from decimal import Decimal

import httpx
import pytest

from app.config import Settings
from app.models import (
    AdEntity,
    AdLevel,
    AttributionKind,
    AttributionResult,
    NoteAttribute,
    Order,
    ResolvedOrder,
    ResolvedStatus,
)
from app.services.timezones import IST


def make_order(order_id="1001", created_at=None, total="500.00", notes=None, **kwargs) -> Order:
    """Order factory; notes is a {name: value} dict of note attributes."""
    return Order(
        id=str(order_id),
        name=kwargs.pop("name", f"#{order_id}"),
        created_at=created_at or datetime(2024, 6, 1, 12, 0, tzinfo=IST),
        total_price=Decimal(total),
        note_attributes=tuple(NoteAttribute(k, v) for k, v in (notes or {}).items()),
        **kwargs,
    )


def make_entity(entity_id, name, level=AdLevel.AD, spend="0", **kwargs) -> AdEntity:
    return AdEntity(id=str(entity_id), name=name, level=level, spend=Decimal(spend), **kwargs)


def make_resolved(order, status=ResolvedStatus.PROCESSING, attribution=None) -> ResolvedOrder:
    if attribution is None:
        attribution = AttributionResult(kind=AttributionKind.UNATTRIBUTED, source="direct")
    return ResolvedOrder(order=order, status=status, attribution=attribution)


def mock_client(handler) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by handler(request) -> httpx.Response."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def configured_settings():
    """Settings with every upstream credential filled in."""
    config = Settings()
    config.SHOPIFY_SHOP_URL = "test-shop.myshopify.com"
    config.SHOPIFY_TOKEN = "shpat_test"
    config.FACEBOOK_ACCESS_TOKEN = "fb-token"
    config.FACEBOOK_AD_ACCOUNT_ID = "act_123"
    config.RAPIDSHYP_API_KEY = ""
    config.LWA_CLIENT_ID = "amzn1.application-oa2-client.test"
    config.LWA_CLIENT_SECRET = "lwa-secret"
    config.LWA_REFRESH_TOKEN = "Atzr|refresh"
    config.AWS_ACCESS_KEY = "AKIDEXAMPLE"
    config.AWS_SECRET_KEY = "wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY"
    return config
