"""
Fold resolved + attributed orders into performance buckets.

- time series: one bucket per IST calendar day in [since, until], zero-filled, ascending
- entity rollup: one bucket per ad set (ads as children) or per ad set entity, seeded from
  the ad fetch so zero-order entities still show spend, plus "Unattributed / Organic" whose
  children are traffic sources; descending by spend, ties in input order
Spend only ever comes from the ad fetch. Derived metrics are computed once, after folding.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Sequence

from app.models import (
    AdEntity,
    AdLevel,
    AttributionKind,
    PerformanceBucket,
    ResolvedOrder,
    ZERO,
)
from app.services.timezones import dates_between, ist_date

logger = logging.getLogger(__name__)

UNATTRIBUTED_ID = "unattributed"
UNATTRIBUTED_NAME = "Unattributed / Organic"
TOTAL_ID = "total"

CENT = Decimal("0.01")
TENTH = Decimal("0.1")
HUNDRED = Decimal("100")


def safe_divide(numerator: Decimal, denominator: Decimal) -> Decimal:
    """numerator / denominator, or 0 when the denominator is 0."""
    if not denominator:
        return ZERO
    return Decimal(numerator) / Decimal(denominator)


def compute_metrics(bucket: PerformanceBucket) -> PerformanceBucket:
    """Fill cpo, roas and rto_percentage for the bucket and all of its children."""
    total = Decimal(bucket.total_orders)
    bucket.cpo = safe_divide(bucket.spend, total).quantize(CENT)
    bucket.roas = safe_divide(bucket.revenue, bucket.spend).quantize(CENT)
    bucket.rto_percentage = (safe_divide(Decimal(bucket.rto_orders), total) * HUNDRED).quantize(TENTH)
    for child in bucket.children.values():
        compute_metrics(child)
    return bucket


def sort_by_spend(buckets: Iterable[PerformanceBucket]) -> list[PerformanceBucket]:
    """Descending by spend; sorted() keeps input order for equal spend even with reverse=True."""
    return sorted(buckets, key=lambda b: b.spend, reverse=True)


def within_range(resolved: Iterable[ResolvedOrder], since: date, until: date) -> list[ResolvedOrder]:
    """Orders whose IST creation date falls in [since, until]."""
    return [r for r in resolved if since <= ist_date(r.order.created_at) <= until]


def build_time_series(
    resolved: Iterable[ResolvedOrder],
    daily_spend: Mapping[date, Decimal],
    since: date,
    until: date,
) -> list[PerformanceBucket]:
    days = {
        day: PerformanceBucket(id=day.isoformat(), name=day.isoformat(), day=day, spend=daily_spend.get(day, ZERO))
        for day in dates_between(since, until)
    }
    skipped = 0
    for item in resolved:
        bucket = days.get(ist_date(item.order.created_at))
        if bucket is None:
            skipped += 1
            continue
        bucket.add_order(item.status, item.order.total_price)
    if skipped:
        logger.debug("Time series: %s order(s) outside %s..%s skipped", skipped, since, until)
    return [compute_metrics(days[day]) for day in sorted(days)]


def _seed_entities(entities: Sequence[AdEntity]) -> dict[str, PerformanceBucket]:
    buckets: dict[str, PerformanceBucket] = {}
    for entity in entities:
        if entity.level == AdLevel.AD:
            parent_id = entity.parent_id or entity.id
            parent = buckets.get(parent_id)
            if parent is None:
                parent = buckets[parent_id] = PerformanceBucket(id=parent_id, name=entity.parent_name or parent_id)
            child = parent.child(entity.id, entity.name)
            child.spend += entity.spend
            parent.spend += entity.spend
        else:
            bucket = buckets.get(entity.id)
            if bucket is None:
                bucket = buckets[entity.id] = PerformanceBucket(id=entity.id, name=entity.name)
            bucket.spend += entity.spend
    return buckets


def build_entity_rollup(
    resolved: Iterable[ResolvedOrder],
    entities: Sequence[AdEntity],
) -> list[PerformanceBucket]:
    buckets = _seed_entities(entities)
    unattributed = PerformanceBucket(id=UNATTRIBUTED_ID, name=UNATTRIBUTED_NAME)
    for item in resolved:
        attribution = item.attribution
        parent: Optional[PerformanceBucket] = None
        child: Optional[PerformanceBucket] = None
        if attribution.kind == AttributionKind.AD:
            parent = buckets.get(attribution.parent_id or attribution.entity_id or "")
            child = parent.children.get(attribution.entity_id) if parent else None
        elif attribution.kind == AttributionKind.ADSET:
            parent = buckets.get(attribution.entity_id or "")
        if parent is None:
            if attribution.is_attributed:
                logger.warning("Order %s attributed to unknown entity %s", item.order.name, attribution.entity_id)
            parent = unattributed
            source = attribution.source or "direct"
            child = unattributed.child(source, source)
        amount = item.order.total_price
        parent.add_order(item.status, amount)
        if child is not None:
            child.add_order(item.status, amount)
    rollup = list(buckets.values()) + [unattributed]
    for bucket in rollup:
        compute_metrics(bucket)
        bucket.children = {c.id: c for c in sort_by_spend(bucket.children.values())}
    return sort_by_spend(rollup)


def build_totals(time_series: Sequence[PerformanceBucket]) -> PerformanceBucket:
    """Whole-range KPI bucket: the sum of the daily buckets."""
    total = PerformanceBucket(id=TOTAL_ID, name="Total")
    for day in time_series:
        total.spend += day.spend
        total.total_orders += day.total_orders
        total.revenue += day.revenue
        total.delivered_orders += day.delivered_orders
        total.cancelled_orders += day.cancelled_orders
        total.rto_orders += day.rto_orders
        total.in_transit_orders += day.in_transit_orders
        total.processing_orders += day.processing_orders
        total.exception_orders += day.exception_orders
    return compute_metrics(total)


def flatten_terms(rollup: Sequence[PerformanceBucket]) -> list[dict]:
    """Child buckets as one list, each tagged with its parent (the per-ad / per-source view)."""
    return [
        {**child.to_dict(include_children=False), "adsetId": parent.id, "adsetName": parent.name}
        for parent in rollup
        for child in parent.children.values()
    ]
