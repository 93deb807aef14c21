"""
Order -> ad attribution.

Rules, first success wins:
1. token = note attribute utm_content, else utm_content on the landing-site URL
2. numeric token -> exact ad/ad set id, and nothing else (no fuzzy fallback on a miss)
3. otherwise name containment: an entity matches when its normalized name is a substring
   of one of the order's normalized candidate fields (field contains name, never the reverse).
   Names are tried in tiers: entity name, parent (ad set) name, campaign name; the longest
   matching name in the first tier with a match wins.
4. no match -> unattributed, with a coarse traffic source from utm_source or the referrer
"""
import logging
import re
from typing import Iterable, Optional, Sequence
from urllib.parse import parse_qs, urlsplit

from app.models import AdEntity, AdLevel, AttributionKind, AttributionResult, Order

logger = logging.getLogger(__name__)

MIN_NAME_LENGTH = 3
_NUMERIC = re.compile(r"[0-9]+")
# whitespace, underscore, hyphen, unicode dashes and minus sign
_SEPARATORS = re.compile(r"[\s_\-\u2010-\u2015\u2212]+")

NAME_TIERS = (
    ("name", lambda e: e.name),
    ("parent_name", lambda e: e.parent_name),
    ("campaign_name", lambda e: e.campaign_name),
)

REFERRER_SOURCES = (
    ("facebook", "Facebook"),
    ("google", "Google"),
    ("instagram", "Instagram"),
    ("bing", "Bing"),
)


def normalize_token(value: Optional[str]) -> str:
    """Lowercase and drop every separator: 'Summer-Sale', 'summer_sale', 'Summer Sale' -> 'summersale'."""
    return _SEPARATORS.sub("", str(value or "")).lower()


def field_contains_name(field: Optional[str], name: Optional[str]) -> bool:
    """True when the normalized entity name appears inside the normalized order field."""
    key = normalize_token(name)
    if len(key) < MIN_NAME_LENGTH:
        return False
    return key in normalize_token(field)


def _landing_params(order: Order) -> dict:
    if not order.landing_site:
        return {}
    try:
        return {k: v[0] for k, v in parse_qs(urlsplit(order.landing_site).query).items() if v}
    except ValueError:
        return {}


def _landing_path(order: Order) -> str:
    if not order.landing_site:
        return ""
    try:
        return urlsplit(order.landing_site).path
    except ValueError:
        return ""


def utm_value(order: Order, key: str) -> Optional[str]:
    """UTM value from note attributes (checkout capture), else from the landing-site query."""
    value = order.note_attribute(key) or _landing_params(order).get(key)
    value = (value or "").strip()
    return value or None


def extract_attribution_token(order: Order) -> Optional[str]:
    return utm_value(order, "utm_content")


def candidate_fields(order: Order, token: Optional[str] = None) -> list[str]:
    """Normalized order fields that may carry an ad, ad set or campaign name."""
    raw = [
        token,
        order.tags,
        " ".join(a.value for a in order.note_attributes),
        utm_value(order, "utm_campaign"),
        utm_value(order, "utm_content"),
        utm_value(order, "utm_term"),
        order.source_name,
        _landing_path(order),
    ]
    return [f for f in (normalize_token(v) for v in raw) if f]


def find_by_name(fields: Sequence[str], entities: Sequence[AdEntity]) -> tuple[Optional[AdEntity], Optional[str]]:
    """(entity, tier) for the longest name contained in any field, first tier with a hit."""
    for tier, name_of in NAME_TIERS:
        best: Optional[AdEntity] = None
        best_len = 0
        for entity in entities:
            key = normalize_token(name_of(entity))
            if len(key) <= best_len:
                continue
            if any(field_contains_name(f, key) for f in fields):
                best, best_len = entity, len(key)
        if best is not None:
            return best, tier
    return None, None


def _host(url: str) -> str:
    try:
        parts = urlsplit(url if "//" in url else f"//{url}")
    except ValueError:
        return url.lower()
    return (parts.hostname or url).lower()


def infer_traffic_source(order: Order) -> str:
    """Coarse source label for unattributed orders."""
    utm_source = utm_value(order, "utm_source")
    if utm_source:
        return utm_source
    referrer = (order.referring_site or "").strip()
    if not referrer:
        return "direct"
    host = _host(referrer)
    for needle, label in REFERRER_SOURCES:
        if needle in host:
            return label
    if host == "t.co" or host.endswith(".t.co") or "twitter.com" in host:
        return "Twitter/X"
    return "Other"


def _attributed(entity: AdEntity, token: Optional[str], matched_on: str) -> AttributionResult:
    kind = AttributionKind.AD if entity.level == AdLevel.AD else AttributionKind.ADSET
    return AttributionResult(
        kind=kind,
        entity_id=entity.id,
        parent_id=entity.parent_id,
        token=token,
        matched_on=matched_on,
    )


def _unattributed(order: Order, token: Optional[str]) -> AttributionResult:
    return AttributionResult(
        kind=AttributionKind.UNATTRIBUTED,
        source=infer_traffic_source(order),
        token=token,
    )


def match(order: Order, entities: Iterable[AdEntity]) -> AttributionResult:
    """Attribute one order. Pure: same (order, entities) always gives the same result."""
    entities = list(entities)
    token = extract_attribution_token(order)
    if token and _NUMERIC.fullmatch(token):
        for entity in entities:
            if entity.id == token:
                return _attributed(entity, token, "id")
        return _unattributed(order, token)
    entity, tier = find_by_name(candidate_fields(order, token), entities)
    if entity is not None:
        return _attributed(entity, token, tier)
    return _unattributed(order, token)
