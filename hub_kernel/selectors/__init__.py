"""Read-only selectors over kernel tables."""

from hub_kernel.selectors.status_history_selector import (
    StatusHistoryRecord,
    StatusHistorySelector,
)

__all__ = ["StatusHistoryRecord", "StatusHistorySelector"]
