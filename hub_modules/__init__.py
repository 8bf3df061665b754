"""
Hub Modules.

Stateful orchestration over the hub kernel.  Each module contains:
- Domain models (enums, tagged unions, frozen read models)
- ORM models (one table per aggregate)
- Workflows (status graphs for the kernel StateMachine)
- Configuration (dataclass settings)
- Services (transaction-owning operations)

Modules:
- Billing: Invoices, orders, payment settlement
- Events: Events, ticket types, attendees, tickets and check-in
- Incubation: Cohorts, applications, mentors, mentorship sessions
- Membership: Plans, members, subscriptions and their expiry sweeps
- Space booking: Rooms, desks and offices, priced bookings and credits
"""

from hub_modules import billing, events, incubation, membership, space_booking

__all__ = [
    "billing",
    "events",
    "incubation",
    "membership",
    "space_booking",
]
