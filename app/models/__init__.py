"""
Domain records for the performance pipeline.
All record and enum definitions live here for simplicity and to avoid circular imports.
Records are transient: built from upstream payloads on every request, never persisted.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Optional, Tuple
import enum

ZERO = Decimal("0")


# Enums
class ResolvedStatus(str, enum.Enum):
    NEW = "New"
    PROCESSING = "Processing"
    IN_TRANSIT = "In-Transit"
    DELIVERED = "Delivered"
    RTO = "RTO"
    CANCELLED = "Cancelled"
    EXCEPTION = "Exception"

class ListingStatus(str, enum.Enum):
    NEW = "New"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    CANCELLED = "Cancelled"

class AdLevel(str, enum.Enum):
    AD = "ad"
    ADSET = "adset"

class AttributionKind(str, enum.Enum):
    AD = "ad"
    ADSET = "adset"
    UNATTRIBUTED = "unattributed"

class PaymentMethod(str, enum.Enum):
    PREPAID = "Prepaid"
    COD = "COD"

class ShipmentAction(str, enum.Enum):
    PROCESSING = "Processing"
    CANCELLED = "Cancelled"


# Upstream inputs (read-only)
@dataclass(frozen=True)
class NoteAttribute:
    name: str
    value: str


@dataclass(frozen=True)
class Order:
    """One Shopify order, normalized. Pipeline stages derive views; they never mutate it."""
    id: str
    name: str
    created_at: datetime
    total_price: Decimal = ZERO
    cancelled_at: Optional[datetime] = None
    fulfillment_status: Optional[str] = None
    financial_status: Optional[str] = None
    tags: str = ""
    note_attributes: Tuple[NoteAttribute, ...] = ()
    landing_site: Optional[str] = None
    referring_site: Optional[str] = None
    source_name: Optional[str] = None
    awbs: Tuple[str, ...] = ()
    total_refunded: Decimal = ZERO
    customer_name: str = "N/A"

    def note_attribute(self, name: str) -> Optional[str]:
        """First non-empty note attribute value with this name."""
        for attr in self.note_attributes:
            if attr.name == name and attr.value:
                return attr.value
        return None

    @property
    def net_total(self) -> Decimal:
        return self.total_price - self.total_refunded

    @property
    def payment_method(self) -> PaymentMethod:
        return PaymentMethod.PREPAID if (self.financial_status or "") == "paid" else PaymentMethod.COD


@dataclass(frozen=True)
class AdEntity:
    """Ad or ad set with spend aggregated over the requested range."""
    id: str
    name: str
    level: AdLevel
    spend: Decimal = ZERO
    parent_id: Optional[str] = None
    parent_name: Optional[str] = None
    campaign_name: Optional[str] = None


@dataclass(frozen=True)
class TrackingRecord:
    awb: str
    status: str
    status_date: Optional[str] = None
    courier: Optional[str] = None


# Derived
@dataclass(frozen=True)
class AttributionResult:
    kind: AttributionKind
    entity_id: Optional[str] = None
    parent_id: Optional[str] = None
    source: Optional[str] = None
    token: Optional[str] = None
    matched_on: str = "none"

    @property
    def is_attributed(self) -> bool:
        return self.kind != AttributionKind.UNATTRIBUTED

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "entityId": self.entity_id,
            "parentId": self.parent_id,
            "source": self.source,
            "token": self.token,
            "matchedOn": self.matched_on,
        }


@dataclass(frozen=True)
class ResolvedOrder:
    """An order with its resolved status and attribution, as handed to the aggregator."""
    order: Order
    status: ResolvedStatus
    attribution: AttributionResult
    tracking: Optional[TrackingRecord] = None


# Status -> counter attribute on PerformanceBucket. New has no counter of its own.
STATUS_COUNTERS = {
    ResolvedStatus.NEW: "processing_orders",
    ResolvedStatus.PROCESSING: "processing_orders",
    ResolvedStatus.IN_TRANSIT: "in_transit_orders",
    ResolvedStatus.DELIVERED: "delivered_orders",
    ResolvedStatus.RTO: "rto_orders",
    ResolvedStatus.CANCELLED: "cancelled_orders",
    ResolvedStatus.EXCEPTION: "exception_orders",
}

# Statuses whose order value is not expected to be collected
NON_REVENUE_STATUSES = (ResolvedStatus.CANCELLED, ResolvedStatus.RTO)


@dataclass
class PerformanceBucket:
    """
    Rollup for one day, ad set, ad or traffic source.
    Counters are folded per order; cpo/roas/rto_percentage are filled once by the aggregator.
    """
    id: str
    name: str
    spend: Decimal = ZERO
    total_orders: int = 0
    revenue: Decimal = ZERO
    delivered_orders: int = 0
    cancelled_orders: int = 0
    rto_orders: int = 0
    in_transit_orders: int = 0
    processing_orders: int = 0
    exception_orders: int = 0
    cpo: Decimal = ZERO
    roas: Decimal = ZERO
    rto_percentage: Decimal = ZERO
    day: Optional[date] = None
    children: Dict[str, "PerformanceBucket"] = field(default_factory=dict)

    def add_order(self, status: ResolvedStatus, amount: Decimal) -> None:
        self.total_orders += 1
        counter = STATUS_COUNTERS[status]
        setattr(self, counter, getattr(self, counter) + 1)
        if status not in NON_REVENUE_STATUSES:
            self.revenue += amount

    @property
    def status_total(self) -> int:
        return sum(getattr(self, counter) for counter in set(STATUS_COUNTERS.values()))

    def child(self, child_id: str, name: Optional[str] = None) -> "PerformanceBucket":
        """Get or create a child bucket."""
        if child_id not in self.children:
            self.children[child_id] = PerformanceBucket(id=child_id, name=name or child_id)
        return self.children[child_id]

    def to_dict(self, include_children: bool = True) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "spend": float(round(self.spend, 2)),
            "totalOrders": self.total_orders,
            "revenue": float(round(self.revenue, 2)),
            "deliveredOrders": self.delivered_orders,
            "cancelledOrders": self.cancelled_orders,
            "rtoOrders": self.rto_orders,
            "inTransitOrders": self.in_transit_orders,
            "processingOrders": self.processing_orders,
            "exceptionOrders": self.exception_orders,
            "cpo": float(self.cpo),
            "roas": float(self.roas),
            "rtoPercentage": float(self.rto_percentage),
        }
        if self.day is not None:
            data["date"] = self.day.isoformat()
        if include_children:
            data["terms"] = [c.to_dict() for c in self.children.values()]
        return data
