#!/usr/bin/env python3
"""
Daily subscription sweep: flag subscriptions ending soon, expire (or start
the grace period of) those past their end date, and expire those whose
grace period has run out.

Meant for a daily scheduler.  Settings come from hub_config (HUB_CONFIG or
the packaged defaults); --database-url and DATABASE_URL override the
database.

Usage:
    python3 scripts/process_subscriptions.py
    python3 scripts/process_subscriptions.py --as-of 2025-07-01
    python3 scripts/process_subscriptions.py --notice-days 14
"""

from __future__ import annotations

import argparse
import sys
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_day(value: str) -> date:
    return date.fromisoformat(value[:10])


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the daily subscription expiry sweeps.")
    parser.add_argument("--database-url", type=str, default=None, help="Overrides the configured database")
    parser.add_argument("--config", type=Path, default=None, help="Settings YAML (defaults to HUB_CONFIG)")
    parser.add_argument("--as-of", type=_parse_day, default=None, help="ISO date, defaults to today")
    parser.add_argument("--notice-days", type=int, default=None, help="Overrides expiring_notice_days")
    args = parser.parse_args(argv)

    from hub_config import get_active_settings
    from hub_kernel.db.engine import create_tables, init_engine_from_url, session_scope
    from hub_kernel.domain.clock import SystemClock
    from hub_kernel.logging_config import configure_logging, get_logger
    from hub_kernel.services.event_dispatcher import DomainEventDispatcher
    from hub_modules.membership import SubscriptionService

    settings = get_active_settings(args.config)
    configure_logging(level=settings.log_level)
    logger = get_logger("scripts.process_subscriptions")

    init_engine_from_url(args.database_url or settings.database_url)
    create_tables()
    try:
        with session_scope() as session:
            service = SubscriptionService(session, DomainEventDispatcher(), SystemClock(), settings.membership)
            expiring = service.process_expiring(days=args.notice_days, as_of=args.as_of)
            expired = service.process_expired(as_of=args.as_of)
            lapsed = service.process_grace_period_expiration(as_of=args.as_of)
    except Exception:
        logger.exception("process_subscriptions_failed")
        return 1

    print(f"Subscriptions: {expiring} expiring, {expired} expired, {lapsed} grace period ended.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
