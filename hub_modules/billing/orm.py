"""
Module: hub_modules.billing.orm
Responsibility: SQLAlchemy ORM persistence models for invoices and orders.
Architecture position: Modules > Billing > ORM.  Inherits from TrackedBase
    and StatusTrackedMixin (hub_kernel.db.base).

Invariants enforced:
    - All monetary fields use Decimal (Numeric(38,9)) -- NEVER float.
    - Status enums stored as String(50); only the billing StateMachines
      write them after creation.
    - Billable and origin are persisted as (type, id) pairs and rebuilt into
      tagged unions in to_dto(); unknown types fail loudly.
    - invoice_number and order_number are unique.

Failure modes:
    - IntegrityError on duplicate invoice/order numbers.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hub_kernel.db.base import StatusTrackedMixin, TrackedBase


# =============================================================================
# InvoiceModel
# =============================================================================


class InvoiceModel(StatusTrackedMixin, TrackedBase):
    """
    ORM model for invoices.

    Maps to: hub_modules.billing.models.Invoice (frozen dataclass).
    """

    __tablename__ = "billing_invoices"

    __table_args__ = (
        Index("idx_invoice_number", "invoice_number", unique=True),
        Index("idx_invoice_status", "status"),
        Index("idx_invoice_origin", "origin_type", "origin_id"),
        Index("idx_invoice_billable", "billable_type", "billable_id"),
    )

    invoice_number: Mapped[str] = mapped_column(String(50))

    billable_type: Mapped[str] = mapped_column(String(20))
    billable_id: Mapped[UUID] = mapped_column()
    origin_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    origin_id: Mapped[UUID | None] = mapped_column(nullable=True)

    currency: Mapped[str] = mapped_column(String(3))
    subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    tax_rate: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    amount_paid: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    issue_date: Mapped[datetime | None] = mapped_column(nullable=True)
    due_date: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    billing_details: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    extra_data: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)

    items: Mapped[list["InvoiceItemModel"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItemModel.position",
    )

    def to_dto(self):
        """Convert ORM model to frozen Invoice DTO."""
        from hub_modules.billing.models import (
            Invoice,
            InvoiceStatus,
            billable_from_columns,
            origin_from_columns,
        )
        return Invoice(
            id=self.id,
            invoice_number=self.invoice_number,
            status=InvoiceStatus(self.status),
            billable=billable_from_columns(self.billable_type, self.billable_id),
            origin=origin_from_columns(self.origin_type, self.origin_id),
            currency=self.currency,
            subtotal=self.subtotal,
            tax_rate=self.tax_rate,
            tax_amount=self.tax_amount,
            total=self.total,
            amount_paid=self.amount_paid,
            issue_date=self.issue_date,
            due_date=self.due_date,
            paid_at=self.paid_at,
            items=tuple(item.to_dto() for item in self.items),
            billing_details=dict(self.billing_details or {}),
        )

    def __repr__(self) -> str:
        return f"<InvoiceModel {self.invoice_number} {self.status} {self.total} {self.currency}>"


class InvoiceItemModel(TrackedBase):
    """ORM model for one invoice line."""

    __tablename__ = "billing_invoice_items"

    __table_args__ = (
        Index("idx_invoice_item_invoice", "invoice_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(ForeignKey("billing_invoices.id"))
    position: Mapped[int] = mapped_column(default=0)
    description: Mapped[str] = mapped_column(String(255))
    quantity: Mapped[int] = mapped_column()
    unit_price: Mapped[Decimal] = mapped_column()
    amount: Mapped[Decimal] = mapped_column()
    reference_id: Mapped[UUID | None] = mapped_column(nullable=True)

    invoice: Mapped[InvoiceModel] = relationship(back_populates="items")

    def to_dto(self):
        from hub_modules.billing.models import LineItem
        return LineItem(
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            reference_id=self.reference_id,
        )

    def __repr__(self) -> str:
        return f"<InvoiceItemModel {self.description} x{self.quantity}>"


# =============================================================================
# OrderModel
# =============================================================================


class OrderModel(StatusTrackedMixin, TrackedBase):
    """
    ORM model for shop orders.

    Maps to: hub_modules.billing.models.Order (frozen dataclass).
    """

    __tablename__ = "billing_orders"

    __table_args__ = (
        Index("idx_order_number", "order_number", unique=True),
        Index("idx_order_status", "status"),
        Index("idx_order_customer", "customer_type", "customer_id"),
    )

    order_number: Mapped[str] = mapped_column(String(50))
    customer_type: Mapped[str] = mapped_column(String(20))
    customer_id: Mapped[UUID] = mapped_column()

    currency: Mapped[str] = mapped_column(String(3))
    subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    discount_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    tax: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_gateway: Mapped[str | None] = mapped_column(String(50), nullable=True)
    tracking_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    billing_address: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    shipping_address: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    shipped_at: Mapped[datetime | None] = mapped_column(nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(nullable=True)

    lines: Mapped[list["OrderLineModel"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLineModel.position",
    )

    @property
    def is_digital(self) -> bool:
        return bool(self.lines) and all(line.is_digital for line in self.lines)

    def to_dto(self):
        """Convert ORM model to frozen Order DTO."""
        from hub_modules.billing.models import Order, OrderStatus, billable_from_columns
        return Order(
            id=self.id,
            order_number=self.order_number,
            status=OrderStatus(self.status),
            customer=billable_from_columns(self.customer_type, self.customer_id),
            currency=self.currency,
            subtotal=self.subtotal,
            discount_total=self.discount_total,
            tax=self.tax,
            total=self.total,
            paid_at=self.paid_at,
            tracking_number=self.tracking_number,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<OrderModel {self.order_number} {self.status} {self.total} {self.currency}>"


class OrderLineModel(TrackedBase):
    """ORM model for one ordered product."""

    __tablename__ = "billing_order_lines"

    __table_args__ = (
        Index("idx_order_line_order", "order_id"),
    )

    order_id: Mapped[UUID] = mapped_column(ForeignKey("billing_orders.id"))
    position: Mapped[int] = mapped_column(default=0)
    product_name: Mapped[str] = mapped_column(String(255))
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    quantity: Mapped[int] = mapped_column()
    unit_price: Mapped[Decimal] = mapped_column()
    amount: Mapped[Decimal] = mapped_column()
    is_digital: Mapped[bool] = mapped_column(Boolean, default=False)

    order: Mapped[OrderModel] = relationship(back_populates="lines")

    def to_dto(self):
        from hub_modules.billing.models import OrderLine
        return OrderLine(
            product_name=self.product_name,
            quantity=self.quantity,
            unit_price=self.unit_price,
            sku=self.sku,
            is_digital=self.is_digital,
        )

    def __repr__(self) -> str:
        return f"<OrderLineModel {self.product_name} x{self.quantity}>"
