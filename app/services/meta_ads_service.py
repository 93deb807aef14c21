"""
Meta (Facebook) Marketing API: daily ad spend and ad / ad set metadata.
GET https://graph.facebook.com/v18.0/act_<AD_ACCOUNT_ID>/insights?fields=...&time_range={since,until}
Requires: ad_account_id, access_token (from env).
Both are must-have inputs for the performance pipeline: any non-2xx raises UpstreamFetchError.
"""
import json
import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import httpx

from app.models import AdEntity, AdLevel, ZERO
from app.services.http_client import get_json

logger = logging.getLogger(__name__)

META_GRAPH_BASE = "https://graph.facebook.com"
API_VERSION = "v18.0"
PAGE_LIMIT = 1000

LEVEL_FIELDS = {
    AdLevel.AD: "ad_id,ad_name,adset_id,adset_name,campaign_name,spend",
    AdLevel.ADSET: "adset_id,adset_name,campaign_id,campaign_name,spend",
}


def _insights_url(ad_account_id: str, api_version: str = API_VERSION) -> str:
    # Strip "act_" if provided
    act_id = (ad_account_id or "").strip().replace("act_", "")
    return f"{META_GRAPH_BASE}/{api_version or API_VERSION}/act_{act_id}/insights"


def _time_range(since: date, until: date) -> str:
    return json.dumps({"since": since.isoformat(), "until": until.isoformat()})


def _spend(value: Any) -> Decimal:
    try:
        spend = Decimal(str(value or "0").replace(",", ""))
    except InvalidOperation:
        logger.warning("Meta Ads: unparseable spend %r, using 0", value)
        return ZERO
    return spend if spend.is_finite() else ZERO


async def _fetch_insights(
    client: httpx.AsyncClient,
    ad_account_id: str,
    params: dict,
    api_version: str = API_VERSION,
) -> list[dict]:
    """Follow paging.next until exhausted; rows concatenated in API order."""
    rows: list[dict] = []
    url: Optional[str] = _insights_url(ad_account_id, api_version)
    page_params: Optional[dict] = params
    while url:
        data, _ = await get_json(client, url, source="Facebook", params=page_params)
        batch = data.get("data") if isinstance(data, dict) else None
        rows.extend(r for r in (batch or []) if isinstance(r, dict))
        url = ((data or {}).get("paging") or {}).get("next") if isinstance(data, dict) else None
        page_params = None  # next URL carries every param, including the token
    return rows


async def fetch_daily_spend(
    client: httpx.AsyncClient,
    ad_account_id: str,
    access_token: str,
    since: date,
    until: date,
    api_version: str = API_VERSION,
) -> dict[date, Decimal]:
    """
    Account spend per day (time_increment=1).
    Returns {date_start: spend}; days without delivery are simply absent.
    """
    rows = await _fetch_insights(client, ad_account_id, {
        "access_token": access_token,
        "fields": "spend,date_start",
        "time_range": _time_range(since, until),
        "time_increment": 1,
        "limit": PAGE_LIMIT,
    }, api_version)
    spend_by_day: dict[date, Decimal] = {}
    for row in rows:
        try:
            day = date.fromisoformat(str(row.get("date_start")))
        except ValueError:
            logger.warning("Meta Ads: row without valid date_start skipped: %s", row)
            continue
        spend_by_day[day] = spend_by_day.get(day, ZERO) + _spend(row.get("spend"))
    logger.info("Meta Ads: daily spend for %s day(s) between %s and %s", len(spend_by_day), since, until)
    return spend_by_day


def _entity_from_row(row: dict, level: AdLevel) -> Optional[AdEntity]:
    if level == AdLevel.AD:
        if not row.get("ad_id"):
            return None
        return AdEntity(
            id=str(row["ad_id"]),
            name=str(row.get("ad_name") or row["ad_id"]),
            level=level,
            spend=_spend(row.get("spend")),
            parent_id=str(row["adset_id"]) if row.get("adset_id") else None,
            parent_name=row.get("adset_name"),
            campaign_name=row.get("campaign_name"),
        )
    if not row.get("adset_id"):
        return None
    return AdEntity(
        id=str(row["adset_id"]),
        name=str(row.get("adset_name") or row["adset_id"]),
        level=level,
        spend=_spend(row.get("spend")),
        parent_id=str(row["campaign_id"]) if row.get("campaign_id") else None,
        parent_name=row.get("campaign_name"),
        campaign_name=row.get("campaign_name"),
    )


async def fetch_ad_entities(
    client: httpx.AsyncClient,
    ad_account_id: str,
    access_token: str,
    since: date,
    until: date,
    level: AdLevel = AdLevel.AD,
    api_version: str = API_VERSION,
) -> list[AdEntity]:
    """Ads or ad sets with spend aggregated over [since, until]."""
    level = AdLevel(level)
    rows = await _fetch_insights(client, ad_account_id, {
        "access_token": access_token,
        "level": level.value,
        "fields": LEVEL_FIELDS[level],
        "time_range": _time_range(since, until),
        "limit": PAGE_LIMIT,
    }, api_version)
    entities = [e for e in (_entity_from_row(r, level) for r in rows) if e is not None]
    logger.info("Meta Ads: %s %s entit(ies) between %s and %s", len(entities), level.value, since, until)
    return entities
