"""
Billing Domain Models.

Invoices, orders and the tagged unions that replace loose (type, id) pairs
for "who pays" (``Billable``) and "what is being paid for" (``Origin``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from hub_kernel.logging_config import get_logger

logger = get_logger("modules.billing.models")


class InvoiceStatus(str, Enum):
    """Invoice lifecycle states."""
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    VOID = "void"
    PARTIALLY_PAID = "partially_paid"


class OrderStatus(str, Enum):
    """Order fulfilment states."""
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


# -----------------------------------------------------------------------------
# Tagged unions
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class UserBillable:
    """A registered user pays."""
    user_id: UUID


@dataclass(frozen=True)
class MemberBillable:
    """A workspace member account pays."""
    member_id: UUID


Billable = UserBillable | MemberBillable


@dataclass(frozen=True)
class EventOrigin:
    """Invoice raised for an event booking."""
    event_id: UUID


@dataclass(frozen=True)
class OrderOrigin:
    """Invoice raised for a shop order."""
    order_id: UUID


Origin = EventOrigin | OrderOrigin


def billable_to_columns(billable: Billable) -> tuple[str, UUID]:
    if isinstance(billable, UserBillable):
        return "user", billable.user_id
    if isinstance(billable, MemberBillable):
        return "member", billable.member_id
    raise TypeError(f"Unsupported billable: {billable!r}")


def billable_from_columns(kind: str, ident: UUID) -> Billable:
    if kind == "user":
        return UserBillable(ident)
    if kind == "member":
        return MemberBillable(ident)
    raise ValueError(f"Unknown billable type: {kind}")


def origin_to_columns(origin: Origin | None) -> tuple[str | None, UUID | None]:
    if origin is None:
        return None, None
    if isinstance(origin, EventOrigin):
        return "event", origin.event_id
    if isinstance(origin, OrderOrigin):
        return "order", origin.order_id
    raise TypeError(f"Unsupported origin: {origin!r}")


def origin_from_columns(kind: str | None, ident: UUID | None) -> Origin | None:
    if kind is None or ident is None:
        return None
    if kind == "event":
        return EventOrigin(ident)
    if kind == "order":
        return OrderOrigin(ident)
    raise ValueError(f"Unknown origin type: {kind}")


# -----------------------------------------------------------------------------
# Value objects and DTOs
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class LineItem:
    """One invoice line before persistence."""
    description: str
    quantity: int
    unit_price: Decimal
    reference_id: UUID | None = None

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError("quantity must be positive")
        if self.unit_price < 0:
            raise ValueError("unit_price cannot be negative")

    @property
    def amount(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal


@dataclass(frozen=True)
class Invoice:
    """Read model of an invoice."""
    id: UUID
    invoice_number: str
    status: InvoiceStatus
    billable: Billable
    origin: Origin | None
    currency: str
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    amount_paid: Decimal = Decimal("0")
    issue_date: datetime | None = None
    due_date: datetime | None = None
    paid_at: datetime | None = None
    items: tuple[LineItem, ...] = ()
    billing_details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OrderLine:
    """One ordered product."""
    product_name: str
    quantity: int
    unit_price: Decimal
    sku: str | None = None
    is_digital: bool = False

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError("quantity must be positive")
        if self.unit_price < 0:
            raise ValueError("unit_price cannot be negative")

    @property
    def amount(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class Order:
    """Read model of an order."""
    id: UUID
    order_number: str
    status: OrderStatus
    customer: Billable
    currency: str
    subtotal: Decimal
    discount_total: Decimal
    tax: Decimal
    total: Decimal
    paid_at: datetime | None = None
    tracking_number: str | None = None
    lines: tuple[OrderLine, ...] = ()
