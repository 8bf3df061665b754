"""
Space booking pricing (``hub_modules.space_booking.pricing``).

Pure calculation, no I/O.  The order of benefits is fixed: the booker's
free credits cover whole units first, then the plan discount (a percentage
of the base price) comes off, and the total never drops below zero.
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from hub_kernel.domain.intervals import TimeRange
from hub_modules.space_booking.config import SpaceBookingConfig
from hub_modules.space_booking.models import PriceCalculation, PriceUnit, ResourceType
from hub_modules.space_booking.orm import SpaceResourceModel

CENT = Decimal("0.01")
ZERO = Decimal("0")

# Private offices switch to day and month pricing at these lengths.
_DAY_MINUTES = PriceUnit.DAY.minutes
_MONTH_PRICING_MINUTES = 28 * _DAY_MINUTES


def price_unit_for(resource: SpaceResourceModel, minutes: int) -> PriceUnit:
    """Meeting rooms by the hour, hot desks by the day, offices by length."""
    kind = ResourceType(resource.resource_type)
    if kind is ResourceType.MEETING_ROOM:
        return PriceUnit.HOUR
    if kind is ResourceType.HOT_DESK:
        return PriceUnit.DAY
    if minutes >= _MONTH_PRICING_MINUTES and resource.monthly_rate:
        return PriceUnit.MONTH
    if minutes >= _DAY_MINUTES and resource.daily_rate:
        return PriceUnit.DAY
    return PriceUnit.HOUR


def unit_price_for(
    resource: SpaceResourceModel, unit: PriceUnit, config: SpaceBookingConfig,
) -> Decimal:
    """The configured rate, else the hourly rate scaled to ``unit``, else zero."""
    rate = resource.rate_for(unit.value)
    if rate is not None:
        return rate
    if not resource.hourly_rate:
        return ZERO
    hours = {
        PriceUnit.HOUR: 1,
        PriceUnit.DAY: config.hours_per_day,
        PriceUnit.WEEK: config.hours_per_week,
        PriceUnit.MONTH: config.hours_per_month,
    }[unit]
    return resource.hourly_rate * hours


def calculate_price(
    resource: SpaceResourceModel,
    span: TimeRange,
    config: SpaceBookingConfig,
    *,
    plan_id: UUID | None = None,
    available_credits: Decimal = ZERO,
) -> PriceCalculation:
    minutes = int(span.duration.total_seconds() // 60)
    unit = price_unit_for(resource, minutes)
    quantity = math.ceil(unit.from_minutes(minutes))
    unit_price = unit_price_for(resource, unit, config)
    base = unit_price * quantity

    discount_percent = resource.discount_percent_for(plan_id)
    discount = (base * discount_percent / 100).quantize(CENT, rounding=ROUND_HALF_UP)
    credits = min(max(available_credits, ZERO), Decimal(quantity))

    total = max(ZERO, base - credits * unit_price - discount).quantize(CENT, rounding=ROUND_HALF_UP)
    return PriceCalculation(
        unit_price=unit_price,
        price_unit=unit,
        quantity=quantity,
        base_price=base,
        discount_percent=discount_percent,
        discount_amount=discount,
        credits_used=credits,
        total_price=total,
        duration_minutes=minutes,
    )
