"""
Performance routes: daily time series and ad / ad set rollups.
"""
import logging
from datetime import date

from fastapi import APIRouter, HTTPException, Query
from pydantic import ValidationError

from app.config import settings
from app.errors import PipelineError
from app.http.requests.schemas import PerformanceQuery, validation_detail
from app.models import AdLevel
from app.services.performance_pipeline import run_performance_pipeline

logger = logging.getLogger(__name__)
router = APIRouter()


def _query(since: date, until: date, level: AdLevel) -> PerformanceQuery:
    try:
        return PerformanceQuery(since=since, until=until, level=level)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=validation_detail(e))


async def _report(query: PerformanceQuery) -> dict:
    try:
        return await run_performance_pipeline(settings, query.since, query.until, query.level)
    except PipelineError as e:
        logger.exception("Performance pipeline failed for %s..%s: %s", query.since, query.until, e)
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.get("")
async def get_performance(
    since: date = Query(..., description="First IST day, YYYY-MM-DD"),
    until: date = Query(..., description="Last IST day, YYYY-MM-DD"),
    level: AdLevel = Query(AdLevel.AD),
):
    """Full report: timeSeries, entityPerformance, termPerformance, totals and orders."""
    return await _report(_query(since, until, level))


@router.get("/daily")
async def get_daily_performance(
    since: date = Query(...),
    until: date = Query(...),
):
    """One bucket per IST day in [since, until], ascending."""
    result = await _report(_query(since, until, AdLevel.AD))
    return result["timeSeries"]


@router.get("/adsets")
async def get_adset_performance(
    since: date = Query(...),
    until: date = Query(...),
    level: AdLevel = Query(AdLevel.AD),
):
    """Ad set rollup (ads as terms at level=ad) plus the per-order breakdown."""
    result = await _report(_query(since, until, level))
    return {
        "entityPerformance": result["entityPerformance"],
        "termPerformance": result["termPerformance"],
        "orders": result["orders"],
    }
