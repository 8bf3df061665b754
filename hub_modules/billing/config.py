"""
Billing Configuration Schema.

Defaults mirror the platform's historical behaviour: 15% tax on event
invoices, due seven days after sending.
"""

from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Any, Self

from hub_kernel.logging_config import get_logger

logger = get_logger("modules.billing.config")


@dataclass
class BillingConfig:
    """
    Configuration schema for the billing module.

        config = BillingConfig.from_dict(settings["billing"])
    """

    # Percent, e.g. Decimal("15") for 15%
    default_tax_rate: Decimal = Decimal("15")
    invoice_due_days: int = 7
    default_currency: str = "USD"
    invoice_number_prefix: str = "INV"
    order_number_prefix: str = "ORD"

    def __post_init__(self):
        self.default_tax_rate = Decimal(str(self.default_tax_rate))
        if not Decimal("0") <= self.default_tax_rate <= Decimal("100"):
            raise ValueError(
                f"default_tax_rate must be within 0..100, got {self.default_tax_rate}"
            )
        if self.invoice_due_days < 0:
            raise ValueError("invoice_due_days cannot be negative")
        if len(self.default_currency) != 3:
            raise ValueError(f"default_currency must be an ISO 4217 code, got '{self.default_currency}'")
        if not self.invoice_number_prefix or not self.order_number_prefix:
            raise ValueError("number prefixes must be non-empty")

        logger.info(
            "billing_config_initialized",
            extra={
                "default_tax_rate": str(self.default_tax_rate),
                "invoice_due_days": self.invoice_due_days,
                "default_currency": self.default_currency,
            },
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Self:
        """Build from a settings mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})
