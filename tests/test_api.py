"""
API tests - routes, validation and error mapping with the pipeline mocked
"""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from app.errors import ConfigurationError, RateLimitExceededError, UpstreamFetchError
from app.models import AdLevel, ShipmentAction
from main import app as api

REPORT = {
    "timeSeries": [{"date": "2024-06-01", "revenue": 500.0}, {"date": "2024-06-02", "revenue": 0.0}],
    "entityPerformance": [{"id": "s1", "name": "Summer-Sale", "terms": []}],
    "termPerformance": [],
    "totals": {"totalOrders": 1},
    "orders": [{"id": "5001"}],
}


@pytest.fixture
def client():
    api.state.lwa_token_provider = None
    return TestClient(api)


def mock_pipeline(**kwargs):
    return patch("app.http.controllers.performance.run_performance_pipeline", AsyncMock(**kwargs))


class TestPerformanceRoutes:
    """/api/performance*"""

    def test_daily(self, client):
        with mock_pipeline(return_value=REPORT) as pipeline:
            resp = client.get("/api/performance/daily", params={"since": "2024-06-01", "until": "2024-06-02"})
        assert resp.status_code == 200
        assert resp.json() == REPORT["timeSeries"]
        _, since, until, level = pipeline.await_args.args
        assert (since.isoformat(), until.isoformat(), level) == ("2024-06-01", "2024-06-02", AdLevel.AD)

    def test_adsets_level(self, client):
        with mock_pipeline(return_value=REPORT) as pipeline:
            resp = client.get("/api/performance/adsets", params={"since": "2024-06-01", "until": "2024-06-02", "level": "adset"})
        assert resp.status_code == 200
        assert set(resp.json()) == {"entityPerformance", "termPerformance", "orders"}
        assert pipeline.await_args.args[3] == AdLevel.ADSET

    def test_full_report(self, client):
        with mock_pipeline(return_value=REPORT):
            resp = client.get("/api/performance", params={"since": "2024-06-01", "until": "2024-06-01"})
        assert resp.status_code == 200
        assert resp.json()["totals"] == {"totalOrders": 1}

    def test_missing_dates_is_400(self, client):
        resp = client.get("/api/performance/daily", params={"since": "2024-06-01"})
        assert resp.status_code == 400

    def test_reversed_range_is_400(self, client):
        with mock_pipeline(return_value=REPORT) as pipeline:
            resp = client.get("/api/performance/daily", params={"since": "2024-06-05", "until": "2024-06-01"})
        assert resp.status_code == 400
        assert "until" in resp.json()["detail"]
        pipeline.assert_not_awaited()

    def test_range_longer_than_a_year_is_400(self, client):
        with mock_pipeline(return_value=REPORT) as pipeline:
            resp = client.get("/api/performance/daily", params={"since": "2000-01-01", "until": "2024-06-01"})
        assert resp.status_code == 400
        assert "366 days" in resp.json()["detail"]
        pipeline.assert_not_awaited()

    def test_full_year_is_accepted(self, client):
        with mock_pipeline(return_value=REPORT):
            resp = client.get("/api/performance/daily", params={"since": "2024-01-01", "until": "2024-12-31"})
        assert resp.status_code == 200

    def test_unknown_level_is_400(self, client):
        resp = client.get("/api/performance/adsets", params={"since": "2024-06-01", "until": "2024-06-02", "level": "campaign"})
        assert resp.status_code == 400

    def test_configuration_error_is_500(self, client):
        with mock_pipeline(side_effect=ConfigurationError(["SHOPIFY_TOKEN"])):
            resp = client.get("/api/performance/daily", params={"since": "2024-06-01", "until": "2024-06-02"})
        assert resp.status_code == 500
        detail = resp.json()["detail"]
        assert detail["error"] == "Server configuration error: API credentials missing."
        assert detail["details"] == "SHOPIFY_TOKEN"

    def test_upstream_error_is_502(self, client):
        error = UpstreamFetchError("Facebook", "Invalid OAuth access token.", upstream_status=400)
        with mock_pipeline(side_effect=error):
            resp = client.get("/api/performance/daily", params={"since": "2024-06-01", "until": "2024-06-02"})
        assert resp.status_code == 502
        detail = resp.json()["detail"]
        assert detail["source"] == "Facebook"
        assert detail["upstreamStatus"] == 400
        assert detail["error"] == "Facebook API Error (400)"


class TestOrdersRoute:
    """/api/orders*"""

    def test_listing(self, client):
        rows = [{"id": "#1001", "status": "New"}]
        with patch("app.http.controllers.orders.list_orders", AsyncMock(return_value=rows)):
            resp = client.get("/api/orders")
        assert resp.status_code == 200
        assert resp.json() == rows

    def test_status_update(self, client):
        result = {"success": True, "orderId": "5551", "newStatus": "Processing"}
        with patch("app.services.shipment_actions.update_order_status", AsyncMock(return_value=result)) as update:
            resp = client.post("/api/orders/5551/status", json={"newStatus": "Processing"})
        assert resp.status_code == 200
        assert resp.json() == result
        _, order_id, new_status = update.await_args.args
        assert (order_id, new_status) == ("5551", ShipmentAction.PROCESSING)

    def test_unsupported_status_is_400(self, client):
        resp = client.post("/api/orders/5551/status", json={"newStatus": "Delivered"})
        assert resp.status_code == 400

    def test_status_update_carrier_error_is_502(self, client):
        error = UpstreamFetchError("RapidShyp", "duplicate order", upstream_status=400)
        with patch("app.services.shipment_actions.update_order_status", AsyncMock(side_effect=error)):
            resp = client.post("/api/orders/5551/status", json={"newStatus": "Cancelled"})
        assert resp.status_code == 502
        assert resp.json()["detail"]["source"] == "RapidShyp"

    def test_label(self, client):
        label = {"labelData": "JVBERi0xLjQ=", "mimeType": "application/pdf"}
        with patch("app.services.shipment_actions.get_label", AsyncMock(return_value=label)):
            resp = client.get("/api/orders/5551/label")
        assert resp.status_code == 200
        assert resp.json() == label


class TestAmazonRoutes:
    """/api/amazon/*"""

    def test_buyer_info(self, client):
        sp = MagicMock()
        sp.get_buyer_info = AsyncMock(return_value={"orderId": "402-1", "name": "N/A", "email": None})
        with patch("app.http.controllers.amazon.build_token_provider", MagicMock()) as build, \
                patch("app.http.controllers.amazon.get_amazon_client", MagicMock(return_value=sp)):
            first = client.get("/api/amazon/orders/402-1/buyer-info")
            second = client.get("/api/amazon/orders/402-1/buyer-info")
        assert first.status_code == 200
        assert first.json()["name"] == "N/A"
        assert second.status_code == 200
        # one token provider shared across requests
        build.assert_called_once()

    def test_orders_rate_limited_is_502(self, client):
        sp = MagicMock()
        sp.get_orders = AsyncMock(side_effect=RateLimitExceededError("/orders/v0/orders", 5))
        with patch("app.http.controllers.amazon.build_token_provider", MagicMock()), \
                patch("app.http.controllers.amazon.get_amazon_client", MagicMock(return_value=sp)):
            resp = client.get("/api/amazon/orders")
        assert resp.status_code == 502
        assert resp.json()["detail"]["upstreamStatus"] == 429

    def test_orders_normalized(self, client):
        sp = MagicMock()
        sp.get_orders = AsyncMock(return_value=[{"AmazonOrderId": "402-1", "OrderStatus": "Shipped"}])
        with patch("app.http.controllers.amazon.build_token_provider", MagicMock()), \
                patch("app.http.controllers.amazon.get_amazon_client", MagicMock(return_value=sp)):
            resp = client.get("/api/amazon/orders")
        assert resp.status_code == 200
        assert resp.json()[0]["status"] == "Shipped"


class TestHealth:
    """/health"""

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert set(body["integrations"]) == {"shopify", "meta", "rapidshyp", "amazon"}
        assert body["status"] in ("ok", "degraded")
