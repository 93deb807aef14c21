"""
Unified order status: Shopify fields + optional carrier tracking -> one ResolvedStatus.

Precedence: cancelled_at > carrier tracking status > Shopify fallback (rto tag, else Processing).
Carrier vocabularies differ per courier, so tracking text is classified by keyword rows,
checked top to bottom; RTO/RETURN sit above DELIVERED so "RTO DELIVERED" is an RTO.
"""
import logging
import re
from typing import Optional

from app.models import ListingStatus, Order, ResolvedStatus, TrackingRecord

logger = logging.getLogger(__name__)

# Phrases that contain DELIVERED but mean the opposite; checked before the DELIVERED row.
NOT_DELIVERED = ("UNDELIVERED", "NOT DELIVERED")

TRACKING_KEYWORDS = (
    (("RTO", "RETURN"), ResolvedStatus.RTO),
    (("DELIVERED",), ResolvedStatus.DELIVERED),
    (("OFD", "OUT FOR DELIVERY", "OUTSCAN", "TRANSIT", "DISPATCH", "SHIPPED"), ResolvedStatus.IN_TRANSIT),
    (("PICKUP", "PUC", "MANIFEST", "CREATED", "ASSIGNED", "WEIGHT", "UNDELIVERED", "NDR", "REATTEMPT"), ResolvedStatus.PROCESSING),
    (("EXCEPTION", "LOST", "DAMAGED"), ResolvedStatus.EXCEPTION),
    (("CANCEL",), ResolvedStatus.CANCELLED),
)

# DEL is a carrier short code; as a substring it would also hit DELHI, MODEL, ...
_DEL_WORD = re.compile(r"\bDEL\b")
_RTO_WORD = re.compile(r"(?<![a-z0-9])rto(?![a-z0-9])")


def normalize_tracking_status(raw: Optional[str]) -> str:
    return " ".join(str(raw or "").split()).upper()


def classify_tracking_status(raw: Optional[str]) -> Optional[ResolvedStatus]:
    """
    Classify a carrier status string. Returns None for an empty status (no signal);
    unknown non-empty text is Processing.
    """
    status = normalize_tracking_status(raw)
    if not status:
        return None
    for keywords, resolved in TRACKING_KEYWORDS:
        if resolved == ResolvedStatus.DELIVERED:
            if any(p in status for p in NOT_DELIVERED):
                continue
            if "DELIVERED" in status or _DEL_WORD.search(status):
                return resolved
            continue
        if any(k in status for k in keywords):
            return resolved
    return ResolvedStatus.PROCESSING


def has_rto_tag(order: Order) -> bool:
    """RTO as a word inside any comma-separated tag (RTO, rto-initiated, RTO Delivered; not Mortons)."""
    return any(_RTO_WORD.search(tag) for tag in (order.tags or "").lower().split(","))


def platform_fallback(order: Order) -> ResolvedStatus:
    """
    Status from Shopify fields alone.
    Fulfilled orders without carrier data stay Processing: fulfillment only says a label exists.
    """
    if order.cancelled_at:
        return ResolvedStatus.CANCELLED
    if has_rto_tag(order):
        return ResolvedStatus.RTO
    return ResolvedStatus.PROCESSING


def resolve(order: Order, tracking: Optional[TrackingRecord] = None) -> ResolvedStatus:
    """Unified lifecycle status for one order. Pure; never raises."""
    if order.cancelled_at:
        return ResolvedStatus.CANCELLED
    if tracking is not None:
        try:
            classified = classify_tracking_status(tracking.status)
        except (TypeError, AttributeError) as e:
            logger.debug("Order %s: unreadable tracking payload (%s), using Shopify fields", order.name, e)
            classified = None
        if classified is not None:
            return classified
    return platform_fallback(order)


def listing_status(order: Order) -> ListingStatus:
    """Coarse status for the plain orders listing (Shopify fields only)."""
    if order.cancelled_at:
        return ListingStatus.CANCELLED
    if order.fulfillment_status == "fulfilled":
        return ListingStatus.SHIPPED
    if not order.fulfillment_status:
        return ListingStatus.NEW
    return ListingStatus.PROCESSING
