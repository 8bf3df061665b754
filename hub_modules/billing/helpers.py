"""
Billing pure helpers: money rounding, invoice totals and document numbers.
"""

from __future__ import annotations

import secrets
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from hub_modules.billing.models import InvoiceTotals, LineItem

CENT = Decimal("0.01")


def quantize_money(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def compute_totals(items: Iterable[LineItem], tax_rate: Decimal) -> InvoiceTotals:
    """Subtotal, tax at ``tax_rate`` percent, and total, each rounded to cents."""
    subtotal = quantize_money(sum((item.amount for item in items), Decimal("0")))
    tax_amount = quantize_money(subtotal * tax_rate / Decimal("100"))
    return InvoiceTotals(
        subtotal=subtotal,
        tax_rate=tax_rate,
        tax_amount=tax_amount,
        total=subtotal + tax_amount,
    )


def _suffix(length: int = 6) -> str:
    return secrets.token_hex(length)[:length].upper()


def generate_invoice_number(prefix: str, now: datetime) -> str:
    """``INV-202503-3FA9C1``"""
    return f"{prefix}-{now:%Y%m}-{_suffix()}"


def generate_order_number(prefix: str, now: datetime) -> str:
    """``ORD-20250303-0B71DE``"""
    return f"{prefix}-{now:%Y%m%d}-{_suffix()}"
