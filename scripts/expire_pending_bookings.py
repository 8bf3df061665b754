#!/usr/bin/env python3
"""
Expire event bookings whose invoice went unpaid past its due date.

Each matching invoice is voided and the attendees still waiting on it move
to expired, giving their held tickets back to stock.  Settings come from
hub_config; --database-url and DATABASE_URL override the database.

Usage:
    python3 scripts/expire_pending_bookings.py
    python3 scripts/expire_pending_bookings.py --as-of 2025-07-01T00:00:00+00:00
"""

from __future__ import annotations

import argparse
import sys
from datetime import UTC, datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_moment(value: str) -> datetime:
    moment = datetime.fromisoformat(value)
    return moment if moment.tzinfo else moment.replace(tzinfo=UTC)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Expire unpaid event bookings.")
    parser.add_argument("--database-url", type=str, default=None, help="Overrides the configured database")
    parser.add_argument("--config", type=Path, default=None, help="Settings YAML (defaults to HUB_CONFIG)")
    parser.add_argument("--as-of", type=_parse_moment, default=None, help="ISO timestamp, defaults to now")
    args = parser.parse_args(argv)

    from hub_config import get_active_settings
    from hub_kernel.db.engine import create_tables, init_engine_from_url, session_scope
    from hub_kernel.domain.clock import SystemClock
    from hub_kernel.logging_config import configure_logging, get_logger
    from hub_kernel.services.event_dispatcher import DomainEventDispatcher
    from hub_services import EventBookingService

    settings = get_active_settings(args.config)
    configure_logging(level=settings.log_level)
    logger = get_logger("scripts.expire_pending_bookings")

    init_engine_from_url(args.database_url or settings.database_url)
    create_tables()
    try:
        with session_scope() as session:
            booking = EventBookingService(
                session,
                DomainEventDispatcher(),
                clock=SystemClock(),
                events_config=settings.events,
                billing_config=settings.billing,
            )
            count = booking.expire_unpaid_bookings(as_of=args.as_of)
    except Exception:
        logger.exception("expire_pending_bookings_failed")
        return 1

    print(f"Expired bookings on {count} invoice(s).")
    return 0


if __name__ == "__main__":
    sys.exit(main())
