"""
Human-readable sequential codes: ``APP-2025-0001``, ``MEM-2025-0042``.

Pure helpers; the owning service finds the highest issued code with
``latest_code_order`` and a unique index on the column catches races.
"""

from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.orm import InstrumentedAttribute


def next_sequence_code(prefix: str, year: int, last_code: str | None) -> str:
    """
    ``APP-2025-0001``, then ``APP-2025-0002`` ...

    ``last_code`` is the highest code already issued for ``year``.  The
    counter is zero-padded to four digits and keeps growing past 9999.
    """
    sequence = int(last_code.rsplit("-", 1)[-1]) + 1 if last_code else 1
    return f"{prefix}-{year}-{sequence:04d}"


def latest_code_order(column: InstrumentedAttribute) -> tuple:
    """ORDER BY terms that put the numerically highest code first."""
    return func.length(column).desc(), column.desc()
