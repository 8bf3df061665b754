"""
Billing Workflows.

State machines for invoices and orders.
"""

from hub_kernel.domain.workflow import Guard, Transition, Workflow
from hub_kernel.logging_config import get_logger
from hub_modules.billing.models import InvoiceStatus, OrderStatus

logger = get_logger("modules.billing.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

HAS_LINE_ITEMS = Guard(
    name="has_line_items",
    description="Invoice carries at least one line item",
)

PAYMENT_CAPTURED = Guard(
    name="payment_captured",
    description="Payment gateway confirmed the charge",
)

logger.info(
    "billing_workflow_guards_defined",
    extra={"guards": [HAS_LINE_ITEMS.name, PAYMENT_CAPTURED.name]},
)


# -----------------------------------------------------------------------------
# Invoice Workflow
# -----------------------------------------------------------------------------

_I = InvoiceStatus

INVOICE_WORKFLOW = Workflow(
    name="billing_invoice",
    description="Invoice issue and settlement",
    entity_type="invoice",
    status_enum=InvoiceStatus,
    initial_state=_I.DRAFT.value,
    states=tuple(s.value for s in InvoiceStatus),
    transitions=(
        Transition(_I.DRAFT.value, _I.SENT.value, action="send", guard=HAS_LINE_ITEMS, events=("InvoiceSent",)),
        Transition(_I.DRAFT.value, _I.VOID.value, action="void", events=("InvoiceVoided",)),
        Transition(_I.SENT.value, _I.PAID.value, action="mark_paid", guard=PAYMENT_CAPTURED, events=("InvoicePaid",)),
        Transition(_I.SENT.value, _I.PARTIALLY_PAID.value, action="record_partial_payment"),
        Transition(_I.SENT.value, _I.OVERDUE.value, action="mark_overdue", events=("InvoiceOverdue",)),
        Transition(_I.SENT.value, _I.VOID.value, action="void", events=("InvoiceVoided",)),
        Transition(_I.OVERDUE.value, _I.PAID.value, action="mark_paid", guard=PAYMENT_CAPTURED, events=("InvoicePaid",)),
        Transition(_I.OVERDUE.value, _I.PARTIALLY_PAID.value, action="record_partial_payment"),
        Transition(_I.OVERDUE.value, _I.VOID.value, action="void", events=("InvoiceVoided",)),
        Transition(_I.PARTIALLY_PAID.value, _I.PAID.value, action="mark_paid", guard=PAYMENT_CAPTURED, events=("InvoicePaid",)),
        Transition(_I.PARTIALLY_PAID.value, _I.OVERDUE.value, action="mark_overdue", events=("InvoiceOverdue",)),
        Transition(_I.PARTIALLY_PAID.value, _I.VOID.value, action="void", events=("InvoiceVoided",)),
    ),
    terminal_states=(_I.PAID.value, _I.VOID.value),
)

logger.info(
    "billing_invoice_workflow_registered",
    extra={
        "workflow_name": INVOICE_WORKFLOW.name,
        "state_count": len(INVOICE_WORKFLOW.states),
        "transition_count": len(INVOICE_WORKFLOW.transitions),
    },
)


# -----------------------------------------------------------------------------
# Order Workflow
# -----------------------------------------------------------------------------

_O = OrderStatus

ORDER_WORKFLOW = Workflow(
    name="billing_order",
    description="Order payment and fulfilment",
    entity_type="order",
    status_enum=OrderStatus,
    initial_state=_O.PENDING.value,
    states=tuple(s.value for s in OrderStatus),
    transitions=(
        Transition(_O.PENDING.value, _O.PROCESSING.value, action="pay", guard=PAYMENT_CAPTURED, events=("OrderPaid",)),
        Transition(_O.PROCESSING.value, _O.SHIPPED.value, action="ship", events=("OrderShipped",)),
        Transition(_O.PROCESSING.value, _O.COMPLETED.value, action="fulfil_digital", events=("OrderCompleted",)),
        Transition(_O.SHIPPED.value, _O.OUT_FOR_DELIVERY.value, action="dispatch"),
        Transition(_O.OUT_FOR_DELIVERY.value, _O.DELIVERED.value, action="deliver", events=("OrderDelivered",)),
        Transition(_O.DELIVERED.value, _O.COMPLETED.value, action="complete", events=("OrderCompleted",)),
        # Cancellation from any non-terminal state
        Transition(_O.PENDING.value, _O.CANCELLED.value, action="cancel", events=("OrderCancelled",)),
        Transition(_O.PROCESSING.value, _O.CANCELLED.value, action="cancel", events=("OrderCancelled",)),
        Transition(_O.SHIPPED.value, _O.CANCELLED.value, action="cancel", events=("OrderCancelled",)),
        Transition(_O.OUT_FOR_DELIVERY.value, _O.CANCELLED.value, action="cancel", events=("OrderCancelled",)),
        Transition(_O.DELIVERED.value, _O.CANCELLED.value, action="cancel", events=("OrderCancelled",)),
        # Refunds once money has moved
        Transition(_O.PROCESSING.value, _O.REFUNDED.value, action="refund", events=("OrderRefunded",)),
        Transition(_O.SHIPPED.value, _O.REFUNDED.value, action="refund", events=("OrderRefunded",)),
        Transition(_O.OUT_FOR_DELIVERY.value, _O.REFUNDED.value, action="refund", events=("OrderRefunded",)),
        Transition(_O.DELIVERED.value, _O.REFUNDED.value, action="refund", events=("OrderRefunded",)),
    ),
    terminal_states=(_O.COMPLETED.value, _O.CANCELLED.value, _O.REFUNDED.value),
)

logger.info(
    "billing_order_workflow_registered",
    extra={
        "workflow_name": ORDER_WORKFLOW.name,
        "state_count": len(ORDER_WORKFLOW.states),
        "transition_count": len(ORDER_WORKFLOW.transitions),
    },
)
