"""
Typed exception hierarchy for the hub kernel and its modules.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Booking, pipeline and scheduling flows surface their failures to people
("not enough tickets", "cohort is full").  Callers must be able to branch on
the failure without parsing message text, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - WRONG way:
    try:
        booking.create_booking(...)
    except Exception as e:
        if "not enough" in str(e):
            show_availability()

Example - RIGHT way:
    try:
        booking.create_booking(...)
    except InsufficientStockError as e:
        show_availability(requested=e.requested, available=e.available)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    HubError (base)
    |
    +-- EntityNotFoundError
    |   +-- StockUnitNotFoundError
    |   +-- InvoiceNotFoundError / OrderNotFoundError
    |   +-- EventNotFoundError / AttendeeNotFoundError
    |   +-- CohortNotFoundError / ApplicationNotFoundError
    |   +-- MentorNotFoundError / SessionNotFoundError
    |   +-- SpaceResourceNotFoundError / SpaceBookingNotFoundError
    |   +-- PlanNotFoundError / MemberNotFoundError / SubscriptionNotFoundError
    |
    +-- InventoryError
    |   +-- InsufficientStockError
    |
    +-- WorkflowError
    |   +-- InvalidTransitionError
    |   +-- UntypedStatusError
    |
    +-- BookingError
    |   +-- RegistrationClosedError
    |   +-- GuestNotAllowedError
    |   +-- EmptyBookingError
    |   +-- InvalidUnitError
    |   +-- UnitNotPurchasableError
    |   +-- QuantityExceedsLimitError
    |   +-- CheckInError
    |   +-- TicketNotIssuableError
    |   +-- InvalidTicketCodeError
    |
    +-- BillingError
    |   +-- InvoiceStateError
    |
    +-- ApplicationError
    |   +-- CohortNotAcceptingError
    |   +-- CohortCapacityError
    |   +-- OnboardingError
    |
    +-- SchedulingError
    |   +-- InvalidTimeRangeError
    |   +-- MentorUnavailableError
    |   +-- WeeklySessionLimitError
    |   +-- SchedulingConflictError
    |   +-- FeedbackNotAllowedError
    |
    +-- SpaceBookingError
    |   +-- ResourceUnavailableError
    |   +-- BookingNotModifiableError
    |
    +-- MembershipError
    |   +-- PlanUnavailableError
    |   +-- MemberInactiveError
    |   +-- NotCorporateMemberError
    |   +-- SubscriptionNotRenewableError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR HANDLING GUIDELINES
===============================================================================

1. Validation errors (WorkflowError, BookingError, ApplicationError,
   SchedulingError, SpaceBookingError, MembershipError) are the caller's
   fault.  Surface e.code and the message; never retry.
2. InsufficientStockError is resource contention.  Report immediately, let
   the buyer choose again.
3. EntityNotFoundError raised mid-transaction is an integrity failure.  The
   owning service rolls back and the error propagates.
4. Module services and orchestrators roll back the session before
   re-raising any of these.
"""

from __future__ import annotations

from uuid import UUID


class HubError(Exception):
    """
    Base exception for all hub errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "HUB_ERROR"


# Lookup exceptions


class EntityNotFoundError(HubError):
    """A referenced row does not exist."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: UUID | str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} not found: {entity_id}")


class StockUnitNotFoundError(EntityNotFoundError):
    code: str = "STOCK_UNIT_NOT_FOUND"

    def __init__(self, unit_id: UUID | str):
        super().__init__("StockUnit", unit_id)


class InvoiceNotFoundError(EntityNotFoundError):
    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: UUID | str):
        super().__init__("Invoice", invoice_id)


class OrderNotFoundError(EntityNotFoundError):
    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: UUID | str):
        super().__init__("Order", order_id)


class EventNotFoundError(EntityNotFoundError):
    code: str = "EVENT_NOT_FOUND"

    def __init__(self, event_id: UUID | str):
        super().__init__("Event", event_id)


class AttendeeNotFoundError(EntityNotFoundError):
    code: str = "ATTENDEE_NOT_FOUND"

    def __init__(self, attendee_id: UUID | str):
        super().__init__("Attendee", attendee_id)


class CohortNotFoundError(EntityNotFoundError):
    code: str = "COHORT_NOT_FOUND"

    def __init__(self, cohort_id: UUID | str):
        super().__init__("Cohort", cohort_id)


class ApplicationNotFoundError(EntityNotFoundError):
    code: str = "APPLICATION_NOT_FOUND"

    def __init__(self, application_id: UUID | str):
        super().__init__("Application", application_id)


class MentorNotFoundError(EntityNotFoundError):
    code: str = "MENTOR_NOT_FOUND"

    def __init__(self, mentor_id: UUID | str):
        super().__init__("Mentor", mentor_id)


class SessionNotFoundError(EntityNotFoundError):
    code: str = "MENTORSHIP_SESSION_NOT_FOUND"

    def __init__(self, session_id: UUID | str):
        super().__init__("MentorshipSession", session_id)


class SpaceResourceNotFoundError(EntityNotFoundError):
    code: str = "SPACE_RESOURCE_NOT_FOUND"

    def __init__(self, resource_id: UUID | str):
        super().__init__("SpaceResource", resource_id)


class SpaceBookingNotFoundError(EntityNotFoundError):
    code: str = "SPACE_BOOKING_NOT_FOUND"

    def __init__(self, booking_id: UUID | str):
        super().__init__("SpaceBooking", booking_id)


class PlanNotFoundError(EntityNotFoundError):
    code: str = "PLAN_NOT_FOUND"

    def __init__(self, plan_id: UUID | str):
        super().__init__("Plan", plan_id)


class MemberNotFoundError(EntityNotFoundError):
    code: str = "MEMBER_NOT_FOUND"

    def __init__(self, member_id: UUID | str):
        super().__init__("Member", member_id)


class SubscriptionNotFoundError(EntityNotFoundError):
    code: str = "SUBSCRIPTION_NOT_FOUND"

    def __init__(self, subscription_id: UUID | str):
        super().__init__("Subscription", subscription_id)


# Inventory exceptions


class InventoryError(HubError):
    """Base exception for stock ledger errors."""

    code: str = "INVENTORY_ERROR"


class InsufficientStockError(InventoryError):
    """Requested quantity exceeds what the unit can still hold."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, unit_id: UUID | str, requested: int, available: int):
        self.unit_id = str(unit_id)
        self.requested = requested
        self.available = available
        super().__init__(
            f"Not enough tickets available. Requested: {requested}, "
            f"Available: {available}"
        )


# Workflow exceptions


class WorkflowError(HubError):
    """Base exception for status transition errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidTransitionError(WorkflowError):
    """The workflow graph has no edge from the current status to the target."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, entity_type: str, from_status: str, to_status: str):
        self.entity_type = entity_type
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Cannot transition {entity_type} from {from_status} to {to_status}"
        )


class UntypedStatusError(WorkflowError):
    """A raw value was offered where the workflow's status enum is required."""

    code: str = "UNTYPED_STATUS"

    def __init__(self, entity_type: str, value: object, expected: str):
        self.entity_type = entity_type
        self.value = repr(value)
        self.expected = expected
        super().__init__(
            f"{entity_type} status must be a {expected}, got {value!r}"
        )


# Booking exceptions


class BookingError(HubError):
    """Base exception for event booking errors."""

    code: str = "BOOKING_ERROR"


class RegistrationClosedError(BookingError):
    code: str = "REGISTRATION_CLOSED"

    def __init__(self, event_id: UUID | str):
        self.event_id = str(event_id)
        super().__init__("Registration is not open for this event.")


class GuestNotAllowedError(BookingError):
    code: str = "GUEST_NOT_ALLOWED"

    def __init__(self, event_id: UUID | str):
        self.event_id = str(event_id)
        super().__init__("Guest registration is not allowed. Please log in.")


class EmptyBookingError(BookingError):
    code: str = "EMPTY_BOOKING"

    def __init__(self) -> None:
        super().__init__("No tickets selected.")


class InvalidUnitError(BookingError):
    """The ticket type does not exist or belongs to another event."""

    code: str = "INVALID_TICKET_TYPE"

    def __init__(self, unit_id: UUID | str, event_id: UUID | str):
        self.unit_id = str(unit_id)
        self.event_id = str(event_id)
        super().__init__(f"Invalid ticket type {unit_id} for event {event_id}")


class UnitNotPurchasableError(BookingError):
    code: str = "TICKET_TYPE_NOT_PURCHASABLE"

    def __init__(self, unit_id: UUID | str, name: str):
        self.unit_id = str(unit_id)
        self.name = name
        super().__init__(f"Ticket type '{name}' is not available for purchase.")


class QuantityExceedsLimitError(BookingError):
    code: str = "QUANTITY_EXCEEDS_LIMIT"

    def __init__(
        self,
        unit_id: UUID | str,
        name: str,
        requested: int,
        maximum: int,
        minimum: int = 1,
    ):
        self.unit_id = str(unit_id)
        self.name = name
        self.requested = requested
        self.maximum = maximum
        self.minimum = minimum
        super().__init__(
            f"Quantity {requested} for '{name}' is outside the allowed range "
            f"{minimum}..{maximum}."
        )


class CheckInError(BookingError):
    code: str = "CHECK_IN_REJECTED"

    def __init__(self, attendee_id: UUID | str, status: str):
        self.attendee_id = str(attendee_id)
        self.status = status
        super().__init__(f"Attendee {attendee_id} cannot be checked in from {status}")


class TicketNotIssuableError(BookingError):
    """Only confirmed or checked-in attendees hold a ticket."""

    code: str = "TICKET_NOT_ISSUABLE"

    def __init__(self, attendee_id: UUID | str, status: str):
        self.attendee_id = str(attendee_id)
        self.status = status
        super().__init__(f"Attendee {attendee_id} holds no valid ticket in status {status}")


class InvalidTicketCodeError(BookingError):
    code: str = "INVALID_TICKET_CODE"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid ticket code: {reason}")


# Billing exceptions


class BillingError(HubError):
    """Base exception for invoice and order errors."""

    code: str = "BILLING_ERROR"


class InvoiceStateError(BillingError):
    """Operation is not valid for the invoice's current status."""

    code: str = "INVOICE_STATE"

    def __init__(self, invoice_id: UUID | str, status: str, operation: str):
        self.invoice_id = str(invoice_id)
        self.status = status
        self.operation = operation
        super().__init__(f"Cannot {operation} invoice {invoice_id} in status {status}")


# Application pipeline exceptions


class ApplicationError(HubError):
    """Base exception for incubation pipeline errors."""

    code: str = "APPLICATION_ERROR"


class CohortNotAcceptingError(ApplicationError):
    code: str = "COHORT_NOT_ACCEPTING"

    def __init__(self, cohort_id: UUID | str):
        self.cohort_id = str(cohort_id)
        super().__init__("This cohort is not currently accepting applications.")


class CohortCapacityError(ApplicationError):
    code: str = "COHORT_AT_CAPACITY"

    def __init__(self, cohort_id: UUID | str, capacity: int, accepted: int):
        self.cohort_id = str(cohort_id)
        self.capacity = capacity
        self.accepted = accepted
        super().__init__(
            f"Cohort {cohort_id} has reached its capacity ({accepted}/{capacity})."
        )


class OnboardingError(ApplicationError):
    code: str = "ONBOARDING_REJECTED"

    def __init__(self, application_id: UUID | str, reason: str):
        self.application_id = str(application_id)
        self.reason = reason
        super().__init__(f"Cannot onboard application {application_id}: {reason}")


# Scheduling exceptions


class SchedulingError(HubError):
    """Base exception for mentorship scheduling errors."""

    code: str = "SCHEDULING_ERROR"


class InvalidTimeRangeError(SchedulingError):
    code: str = "INVALID_TIME_RANGE"

    def __init__(self, start: object, end: object):
        self.start = start
        self.end = end
        super().__init__(f"Time range start {start} must precede end {end}")


class MentorUnavailableError(SchedulingError):
    code: str = "MENTOR_UNAVAILABLE"

    def __init__(self, mentor_id: UUID | str):
        self.mentor_id = str(mentor_id)
        super().__init__("This mentor is not currently available.")


class WeeklySessionLimitError(SchedulingError):
    code: str = "WEEKLY_SESSION_LIMIT"

    def __init__(self, mentor_id: UUID | str, limit: int):
        self.mentor_id = str(mentor_id)
        self.limit = limit
        super().__init__("This mentor has reached their weekly session limit.")


class SchedulingConflictError(SchedulingError):
    code: str = "SCHEDULING_CONFLICT"

    def __init__(self, mentor_id: UUID | str, conflicting_session_ids: list[str]):
        self.mentor_id = str(mentor_id)
        self.conflicting_session_ids = conflicting_session_ids
        super().__init__("The mentor has a scheduling conflict at this time.")


class FeedbackNotAllowedError(SchedulingError):
    code: str = "FEEDBACK_NOT_ALLOWED"

    def __init__(self, session_id: UUID | str, reason: str):
        self.session_id = str(session_id)
        self.reason = reason
        super().__init__(reason)


# Space booking exceptions


class SpaceBookingError(HubError):
    """Base exception for meeting room, desk and office bookings."""

    code: str = "SPACE_BOOKING_ERROR"


class ResourceUnavailableError(SpaceBookingError):
    """
    The resource cannot be booked for the requested range.

    ``reason`` is one of ``inactive``, ``outside_operating_hours``,
    ``too_short``, ``too_long`` or ``conflict``.
    """

    code: str = "RESOURCE_UNAVAILABLE"

    def __init__(
        self,
        resource_id: UUID | str,
        reason: str,
        conflicting_booking_ids: list[str] | None = None,
    ):
        self.resource_id = str(resource_id)
        self.reason = reason
        self.conflicting_booking_ids = conflicting_booking_ids or []
        super().__init__("Resource is not available for the requested time slot.")


class BookingNotModifiableError(SpaceBookingError):
    code: str = "BOOKING_NOT_MODIFIABLE"

    def __init__(self, booking_id: UUID | str, reason: str):
        self.booking_id = str(booking_id)
        self.reason = reason
        super().__init__(f"Booking {booking_id} cannot be modified: {reason}")


# Membership exceptions


class MembershipError(HubError):
    """Base exception for members, plans and subscriptions."""

    code: str = "MEMBERSHIP_ERROR"


class PlanUnavailableError(MembershipError):
    code: str = "PLAN_UNAVAILABLE"

    def __init__(self, plan_id: UUID | str, reason: str):
        self.plan_id = str(plan_id)
        self.reason = reason
        super().__init__(f"Plan {plan_id} cannot take new subscriptions: {reason}")


class MemberInactiveError(MembershipError):
    code: str = "MEMBER_INACTIVE"

    def __init__(self, member_id: UUID | str):
        self.member_id = str(member_id)
        super().__init__(f"Member {member_id} is deactivated.")


class NotCorporateMemberError(MembershipError):
    code: str = "NOT_CORPORATE_MEMBER"

    def __init__(self, member_id: UUID | str):
        self.member_id = str(member_id)
        super().__init__("Parent member must be a corporate account.")


class SubscriptionNotRenewableError(MembershipError):
    code: str = "SUBSCRIPTION_NOT_RENEWABLE"

    def __init__(self, subscription_id: UUID | str, status: str):
        self.subscription_id = str(subscription_id)
        self.status = status
        super().__init__(f"Subscription {subscription_id} cannot be renewed from {status}.")


# Immutability exceptions


class ImmutabilityError(HubError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Status history entries and settled stock reservations are append-only.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
