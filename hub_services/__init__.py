"""
hub_services -- cross-module orchestration.

Services here compose module services that each own a single concern
(events, billing) into one transaction, wire billing outcomes back to the
modules that raised the invoices, and turn membership periods into space
booking credits.
"""

from hub_services.event_booking import BookingResult, EventBookingService
from hub_services.membership_listeners import register_membership_listeners
from hub_services.payment_listeners import register_payment_listeners

__all__ = [
    "BookingResult",
    "EventBookingService",
    "register_membership_listeners",
    "register_payment_listeners",
]
