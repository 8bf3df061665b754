"""
Operator scripts run end to end against a throwaway SQLite file.
"""

import pytest

from hub_kernel.db.engine import reset_engine
from scripts import expire_pending_bookings, mark_overdue_invoices, process_subscriptions


@pytest.fixture
def database_url(tmp_path, monkeypatch):
    monkeypatch.delenv("HUB_CONFIG", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    yield f"sqlite:///{tmp_path / 'hub.db'}"
    reset_engine()


@pytest.mark.parametrize(
    "script, expected",
    [
        (mark_overdue_invoices, "Marked 0 invoice(s) overdue."),
        (expire_pending_bookings, "Expired bookings on 0 invoice(s)."),
        (process_subscriptions, "Subscriptions: 0 expiring, 0 expired, 0 grace period ended."),
    ],
)
def test_empty_database(script, expected, database_url, capsys):
    assert script.main(["--database-url", database_url, "--as-of", "2025-07-01T00:00:00"]) == 0
    assert expected in capsys.readouterr().out


def test_bad_timestamp_is_a_usage_error(database_url):
    with pytest.raises(SystemExit):
        mark_overdue_invoices.main(["--database-url", database_url, "--as-of", "next tuesday"])
