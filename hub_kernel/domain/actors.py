"""Well-known actor identities."""

from uuid import UUID

# Scheduled sweeps and payment webhooks act as this actor.
SYSTEM_ACTOR_ID = UUID(int=0)
