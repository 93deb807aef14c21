"""
Meta Ads service tests - insights paging, daily spend, entity parsing
"""
import json
from datetime import date
from decimal import Decimal

import httpx
import pytest

from app.errors import UpstreamFetchError
from app.models import AdLevel
from app.services import meta_ads_service
from conftest import mock_client

SINCE = date(2024, 6, 1)
UNTIL = date(2024, 6, 2)


class TestDailySpend:
    """time_increment=1 insights"""

    @pytest.mark.asyncio
    async def test_follows_paging_next(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if "after" not in request.url.params:
                assert request.url.path == "/v18.0/act_123/insights"
                assert request.url.params["time_increment"] == "1"
                assert json.loads(request.url.params["time_range"]) == {"since": "2024-06-01", "until": "2024-06-02"}
                return httpx.Response(200, json={
                    "data": [{"spend": "120.50", "date_start": "2024-06-01"}],
                    "paging": {"next": "https://graph.facebook.com/v18.0/act_123/insights?after=c1"},
                })
            return httpx.Response(200, json={"data": [{"spend": "80", "date_start": "2024-06-02"}]})

        async with mock_client(handler) as client:
            spend = await meta_ads_service.fetch_daily_spend(client, "act_123", "fb-token", SINCE, UNTIL)

        assert len(calls) == 2
        assert spend == {SINCE: Decimal("120.50"), UNTIL: Decimal("80")}

    @pytest.mark.asyncio
    async def test_graph_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": {"message": "Invalid OAuth access token.", "code": 190}})

        async with mock_client(handler) as client:
            with pytest.raises(UpstreamFetchError) as exc_info:
                await meta_ads_service.fetch_daily_spend(client, "123", "bad", SINCE, UNTIL)
        err = exc_info.value
        assert err.source == "Facebook"
        assert err.upstream_status == 400
        assert err.details == "Invalid OAuth access token."

    @pytest.mark.asyncio
    async def test_api_version_from_caller(self):
        paths = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            return httpx.Response(200, json={"data": []})

        async with mock_client(handler) as client:
            spend = await meta_ads_service.fetch_daily_spend(client, "act_123", "fb-token", SINCE, UNTIL, api_version="v19.0")
        assert spend == {}
        assert paths == ["/v19.0/act_123/insights"]


class TestAdEntities:
    """level=ad and level=adset rows"""

    @pytest.mark.asyncio
    async def test_ad_level(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["level"] == "ad"
            return httpx.Response(200, json={"data": [
                {"ad_id": "1", "ad_name": "Reel", "adset_id": "10", "adset_name": "Summer", "campaign_name": "Q2", "spend": "55.5"},
                {"ad_name": "no id", "spend": "1"},
            ]})

        async with mock_client(handler) as client:
            entities = await meta_ads_service.fetch_ad_entities(client, "123", "fb-token", SINCE, UNTIL)

        assert len(entities) == 1
        ad = entities[0]
        assert (ad.id, ad.name, ad.level) == ("1", "Reel", AdLevel.AD)
        assert (ad.parent_id, ad.parent_name, ad.campaign_name) == ("10", "Summer", "Q2")
        assert ad.spend == Decimal("55.5")

    @pytest.mark.asyncio
    async def test_adset_level(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["level"] == "adset"
            return httpx.Response(200, json={"data": [
                {"adset_id": "10", "adset_name": "Summer-Sale", "campaign_id": "7", "campaign_name": "Q2", "spend": "1000"},
            ]})

        async with mock_client(handler) as client:
            entities = await meta_ads_service.fetch_ad_entities(client, "123", "fb-token", SINCE, UNTIL, AdLevel.ADSET)

        assert [(e.id, e.name, e.level, e.spend) for e in entities] == [("10", "Summer-Sale", AdLevel.ADSET, Decimal("1000"))]
