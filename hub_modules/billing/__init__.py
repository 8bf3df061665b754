"""
Billing Module (``hub_modules.billing``).

Responsibility
--------------
The billing collaborator of the booking flow: invoices raised for event
bookings and shop orders, payment settlement, overdue sweeps, and the order
fulfilment lifecycle.

Architecture position
---------------------
**Modules layer** -- models, workflows, config and a transaction-owning
service facade over the kernel ``StateMachine``.

Invariants enforced
-------------------
* Invoice and order statuses change only through ``INVOICE_WORKFLOW`` and
  ``ORDER_WORKFLOW``; every change is written to the status history.
* Who pays and what is paid for are tagged unions (``Billable``,
  ``Origin``), never loose type strings.

Failure modes
-------------
* ``InvoiceStateError`` / ``InvalidTransitionError`` for illegal operations.
* Database exceptions propagate after session rollback.
"""

from hub_modules.billing.config import BillingConfig
from hub_modules.billing.models import (
    Billable,
    EventOrigin,
    Invoice,
    InvoiceStatus,
    LineItem,
    MemberBillable,
    Order,
    OrderLine,
    OrderOrigin,
    OrderStatus,
    Origin,
    UserBillable,
)
from hub_modules.billing.service import InvoiceService, OrderService
from hub_modules.billing.workflows import INVOICE_WORKFLOW, ORDER_WORKFLOW

__all__ = [
    "Billable",
    "BillingConfig",
    "EventOrigin",
    "INVOICE_WORKFLOW",
    "Invoice",
    "InvoiceService",
    "InvoiceStatus",
    "LineItem",
    "MemberBillable",
    "ORDER_WORKFLOW",
    "Order",
    "OrderLine",
    "OrderOrigin",
    "OrderService",
    "OrderStatus",
    "Origin",
    "UserBillable",
]
