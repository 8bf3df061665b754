"""
Pricing rules for space bookings: the unit each resource type is charged
in, the hourly fallback, plan discounts, credits and the zero floor.
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from hub_kernel.domain.intervals import TimeRange
from hub_modules.space_booking import PriceUnit, ResourceType, SpaceBookingConfig, calculate_price
from hub_modules.space_booking.orm import SpaceResourceModel

START = datetime(2025, 3, 5, 9, 0, tzinfo=UTC)
CONFIG = SpaceBookingConfig()


def resource(kind=ResourceType.MEETING_ROOM, hourly="20", daily=None, monthly=None, rules=()):
    return SpaceResourceModel(
        name="Space",
        slug="space",
        resource_type=kind.value,
        hourly_rate=Decimal(hourly) if hourly else None,
        daily_rate=Decimal(daily) if daily else None,
        monthly_rate=Decimal(monthly) if monthly else None,
        pricing_rules=list(rules),
    )


def span(**length) -> TimeRange:
    return TimeRange(START, START + timedelta(**length))


class TestUnits:

    def test_meeting_room_rounds_up_to_whole_hours(self):
        price = calculate_price(resource(), span(minutes=90), CONFIG)
        assert price.price_unit is PriceUnit.HOUR
        assert price.quantity == 2
        assert price.base_price == Decimal("40")
        assert price.total_price == Decimal("40.00")
        assert price.duration_minutes == 90

    def test_hot_desk_is_charged_per_day(self):
        desk = resource(ResourceType.HOT_DESK, hourly=None, daily="25")
        price = calculate_price(desk, span(hours=3), CONFIG)
        assert price.price_unit is PriceUnit.DAY
        assert price.quantity == 1
        assert price.total_price == Decimal("25.00")

    def test_hot_desk_without_day_rate_falls_back_to_eight_hours(self):
        desk = resource(ResourceType.HOT_DESK, hourly="5")
        price = calculate_price(desk, span(hours=3), CONFIG)
        assert price.unit_price == Decimal("40")
        assert price.total_price == Decimal("40.00")

    @pytest.mark.parametrize(
        "length, unit, quantity",
        [
            ({"hours": 5}, PriceUnit.HOUR, 5),
            ({"days": 2}, PriceUnit.DAY, 2),
            ({"days": 30}, PriceUnit.MONTH, 1),
        ],
    )
    def test_private_office_unit_follows_length(self, length, unit, quantity):
        office = resource(ResourceType.PRIVATE_OFFICE, hourly="30", daily="200", monthly="3000")
        price = calculate_price(office, span(**length), CONFIG)
        assert price.price_unit is unit
        assert price.quantity == quantity

    def test_private_office_without_month_rate_stays_daily(self):
        office = resource(ResourceType.PRIVATE_OFFICE, hourly="30", daily="200")
        price = calculate_price(office, span(days=30), CONFIG)
        assert price.price_unit is PriceUnit.DAY
        assert price.quantity == 30

    def test_free_resource(self):
        price = calculate_price(resource(hourly=None), span(hours=2), CONFIG)
        assert price.unit_price == Decimal("0")
        assert price.total_price == Decimal("0.00")


class TestDiscountsAndCredits:

    def test_plan_discount(self):
        plan_id = uuid4()
        room = resource(rules=[{"plan_id": str(plan_id), "discount_percent": 25}])
        price = calculate_price(room, span(hours=2), CONFIG, plan_id=plan_id)
        assert price.discount_percent == 25
        assert price.discount_amount == Decimal("10.00")
        assert price.total_price == Decimal("30.00")

    def test_other_plans_pay_full_price(self):
        room = resource(rules=[{"plan_id": str(uuid4()), "discount_percent": 25}])
        price = calculate_price(room, span(hours=2), CONFIG, plan_id=uuid4())
        assert price.discount_amount == Decimal("0.00")
        assert price.total_price == Decimal("40.00")

    def test_credits_limited_to_the_quantity(self):
        price = calculate_price(resource(), span(hours=2), CONFIG, available_credits=Decimal("5"))
        assert price.credits_used == Decimal("2")
        assert price.total_price == Decimal("0.00")

    def test_credits_and_discount_never_go_below_zero(self):
        plan_id = uuid4()
        room = resource(rules=[{"plan_id": str(plan_id), "discount_percent": 50}])
        price = calculate_price(
            room, span(hours=2), CONFIG, plan_id=plan_id, available_credits=Decimal("1"),
        )
        # 40 - 20 (one credit) - 20 (half price) leaves nothing to pay.
        assert price.total_price == Decimal("0.00")
        more = calculate_price(
            room, span(hours=3), CONFIG, plan_id=plan_id, available_credits=Decimal("2"),
        )
        assert more.total_price == Decimal("0.00")

    def test_partial_credits(self):
        price = calculate_price(resource(), span(hours=3), CONFIG, available_credits=Decimal("1"))
        assert price.credits_used == Decimal("1")
        assert price.total_price == Decimal("40.00")
