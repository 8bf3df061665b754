"""
Tests for InvoiceService: creation, sending, settlement, failure and the
overdue sweep.
"""

import re
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from hub_kernel.exceptions import InvalidTransitionError, InvoiceNotFoundError, InvoiceStateError
from hub_kernel.selectors.status_history_selector import StatusHistorySelector
from hub_modules.billing import (
    BillingConfig,
    EventOrigin,
    InvoiceService,
    InvoiceStatus,
    LineItem,
    MemberBillable,
    UserBillable,
)
from hub_modules.billing.helpers import compute_totals, quantize_money


@pytest.fixture
def invoices(session, dispatcher, deterministic_clock):
    return InvoiceService(session, dispatcher, deterministic_clock)


@pytest.fixture
def event_id():
    return uuid4()


@pytest.fixture
def draft_invoice(invoices, event_id, test_actor_id):
    return invoices.create_invoice(
        UserBillable(uuid4()),
        EventOrigin(event_id),
        [LineItem("Demo Day - General Admission", 2, Decimal("50.00"))],
        actor_id=test_actor_id,
        tax_rate=Decimal("10"),
    )


@pytest.fixture
def sent_invoice(invoices, draft_invoice, test_actor_id):
    return invoices.send(draft_invoice.id, test_actor_id)


class TestTotals:

    def test_tax_is_rounded_to_cents(self):
        totals = compute_totals(
            [LineItem("a", 3, Decimal("3.33")), LineItem("b", 1, Decimal("0.015"))],
            Decimal("15"),
        )
        assert totals.subtotal == Decimal("10.01")
        assert totals.tax_amount == Decimal("1.50")
        assert totals.total == Decimal("11.51")

    def test_quantize_rounds_half_up(self):
        assert quantize_money(Decimal("2.345")) == Decimal("2.35")
        assert quantize_money(Decimal("2.344")) == Decimal("2.34")

    def test_line_item_validation(self):
        with pytest.raises(ValueError):
            LineItem("zero", 0, Decimal("1"))
        with pytest.raises(ValueError):
            LineItem("negative", 1, Decimal("-1"))


class TestCreateInvoice:

    def test_creates_draft_with_totals(self, draft_invoice, event_id):
        assert draft_invoice.status == InvoiceStatus.DRAFT.value
        assert draft_invoice.subtotal == Decimal("100.00")
        assert draft_invoice.tax_amount == Decimal("10.00")
        assert draft_invoice.total == Decimal("110.00")
        assert draft_invoice.origin_type == "event"
        assert draft_invoice.origin_id == event_id
        assert draft_invoice.billable_type == "user"
        assert len(draft_invoice.items) == 1

    def test_invoice_number_format(self, draft_invoice):
        assert re.fullmatch(r"INV-202503-[0-9A-F]{6}", draft_invoice.invoice_number)

    def test_default_tax_rate_from_config(self, session, dispatcher, deterministic_clock, test_actor_id):
        service = InvoiceService(
            session, dispatcher, deterministic_clock, BillingConfig(default_tax_rate=Decimal("0")),
        )
        invoice = service.create_invoice(
            MemberBillable(uuid4()), None, [LineItem("Desk", 1, Decimal("200"))], test_actor_id,
        )
        assert invoice.total == Decimal("200.00")
        assert invoice.origin_type is None
        assert invoice.billable_type == "member"

    def test_creation_recorded_in_history(self, session, draft_invoice):
        latest = StatusHistorySelector(session).latest_for("invoice", draft_invoice.id)
        assert latest.from_status is None
        assert latest.to_status == "draft"

    def test_dto_round_trips_tagged_unions(self, draft_invoice, event_id):
        dto = draft_invoice.to_dto()
        assert dto.origin == EventOrigin(event_id)
        assert isinstance(dto.billable, UserBillable)


class TestSend:

    def test_send_stamps_dates(self, sent_invoice, deterministic_clock):
        now = deterministic_clock.now_utc()
        assert sent_invoice.status == InvoiceStatus.SENT.value
        assert sent_invoice.issue_date == now
        assert sent_invoice.due_date == now + timedelta(days=7)

    def test_sent_event_carries_routing(self, sent_invoice, dispatcher, event_id):
        sent = [e for e in dispatcher.published if e.name == "InvoiceSent"]
        assert len(sent) == 1
        assert sent[0].payload["origin_type"] == "event"
        assert sent[0].payload["origin_id"] == str(event_id)

    def test_cannot_send_twice(self, invoices, sent_invoice, test_actor_id):
        with pytest.raises(InvalidTransitionError):
            invoices.send(sent_invoice.id, test_actor_id)

    def test_unknown_invoice(self, invoices, test_actor_id):
        with pytest.raises(InvoiceNotFoundError):
            invoices.send(uuid4(), test_actor_id)


class TestPayment:

    def test_full_payment(self, invoices, sent_invoice, dispatcher, deterministic_clock):
        invoice = invoices.mark_as_paid(sent_invoice.id, payment_reference="pi_123")

        assert invoice.status == InvoiceStatus.PAID.value
        assert invoice.amount_paid == Decimal("110.00")
        assert invoice.paid_at == deterministic_clock.now_utc()
        assert invoice.extra_data["payment_reference"] == "pi_123"
        paid = [e for e in dispatcher.published if e.name == "InvoicePaid"]
        assert paid[0].payload["invoice_id"] == str(invoice.id)
        assert paid[0].payload["total"] == str(invoice.total)

    def test_partial_then_full(self, invoices, sent_invoice, dispatcher):
        invoice = invoices.mark_as_paid(sent_invoice.id, amount=Decimal("60"))
        assert invoice.status == InvoiceStatus.PARTIALLY_PAID.value
        assert "InvoicePaid" not in dispatcher.published_names()

        invoice = invoices.mark_as_paid(sent_invoice.id, amount=Decimal("20"))
        assert invoice.status == InvoiceStatus.PARTIALLY_PAID.value
        assert invoice.amount_paid == Decimal("80")

        invoice = invoices.mark_as_paid(sent_invoice.id)
        assert invoice.status == InvoiceStatus.PAID.value
        assert invoice.amount_paid == Decimal("110.00")

    def test_draft_cannot_be_paid(self, invoices, draft_invoice):
        with pytest.raises(InvoiceStateError) as exc_info:
            invoices.mark_as_paid(draft_invoice.id)
        assert exc_info.value.status == "draft"

    def test_non_positive_amount_rejected(self, invoices, sent_invoice):
        with pytest.raises(ValueError):
            invoices.mark_as_paid(sent_invoice.id, amount=Decimal("0"))

    def test_payment_failure_keeps_status(self, invoices, sent_invoice, dispatcher):
        invoice = invoices.mark_payment_failed(sent_invoice.id, reason="card_declined")
        assert invoice.status == InvoiceStatus.SENT.value
        failed = [e for e in dispatcher.published if e.name == "InvoicePaymentFailed"]
        assert failed[0].payload["reason"] == "card_declined"
        assert failed[0].payload["origin_type"] == "event"

    def test_paid_invoice_cannot_fail(self, invoices, sent_invoice):
        invoices.mark_as_paid(sent_invoice.id)
        with pytest.raises(InvoiceStateError):
            invoices.mark_payment_failed(sent_invoice.id, reason="late webhook")


class TestVoidAndOverdue:

    def test_void(self, invoices, sent_invoice, dispatcher, test_actor_id):
        invoice = invoices.void(sent_invoice.id, "Booking abandoned", test_actor_id)
        assert invoice.status == InvoiceStatus.VOID.value
        assert invoice.void_reason == "Booking abandoned"
        assert "InvoiceVoided" in dispatcher.published_names()

    def test_void_is_terminal(self, invoices, sent_invoice, test_actor_id):
        invoices.void(sent_invoice.id, "dup", test_actor_id)
        with pytest.raises(InvalidTransitionError):
            invoices.void(sent_invoice.id, "again", test_actor_id)

    def test_overdue_sweep(self, invoices, sent_invoice, deterministic_clock):
        assert invoices.mark_overdue_invoices() == 0

        deterministic_clock.advance(8 * 24 * 3600)
        assert invoices.mark_overdue_invoices() == 1
        assert invoices.get(sent_invoice.id).status == InvoiceStatus.OVERDUE.value
        assert invoices.mark_overdue_invoices() == 0

    def test_overdue_invoice_can_still_be_paid(self, invoices, sent_invoice, deterministic_clock):
        invoices.mark_overdue_invoices(as_of=deterministic_clock.now_utc() + timedelta(days=30))
        invoice = invoices.mark_as_paid(sent_invoice.id)
        assert invoice.status == InvoiceStatus.PAID.value
