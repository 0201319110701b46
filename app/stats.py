"""
Site statistics kept in the site_stats singleton row (id=1).

Counters only ever increase. Every increment is a single UPDATE statement,
so concurrent callers cannot lose updates. Stats are non-critical: storage
failures are logged and absorbed here instead of failing the request. A
write that times out on a held lock is logged as a lost update.
"""

import logging

from app.errors import StorageBusyError, StorageError
from app.storage import Store
from app.utils import format_ts, utc_now

logger = logging.getLogger(__name__)


STAT_FIELDS = ("page_views", "unique_visitors", "total_contacts", "total_downloads")

# One fixed statement per counter; field names never reach SQL from callers
_INCREMENT_STATEMENTS = {
    field: (
        f"UPDATE site_stats SET {field} = {field} + :amount, "
        f"last_updated = :now WHERE id = 1"
    )
    for field in STAT_FIELDS
}


def empty_stats() -> dict:
    stats = {field: 0 for field in STAT_FIELDS}
    stats["last_updated"] = None
    return stats


class StatsAggregator:
    """Increment and read the site counters."""

    def __init__(self, store: Store):
        self.store = store

    def increment(self, field: str, amount: int = 1) -> None:
        """
        Add `amount` to a counter and refresh last_updated.

        Args:
            field: One of STAT_FIELDS
            amount: Non-negative increment

        Raises:
            ValueError: field is not a known counter or amount is negative
        """
        statement = _INCREMENT_STATEMENTS.get(field)
        if statement is None:
            raise ValueError(f"Unknown stats field: {field!r}")
        if amount < 0:
            raise ValueError("Stats counters only increase")

        try:
            self.store.execute(statement, {"amount": amount, "now": format_ts(utc_now())})
        except StorageBusyError as e:
            logger.error(
                "Stats update lost: database locked",
                extra={"field": field, "amount": amount, "error": str(e)},
            )
        except StorageError as e:
            logger.error(f"Error updating {field}: {e}")

    def read(self) -> dict:
        """Current counters, or all zeros if they cannot be read."""
        try:
            row = self.store.query_one(
                "SELECT page_views, unique_visitors, total_contacts, total_downloads, last_updated "
                "FROM site_stats WHERE id = 1"
            )
        except StorageError as e:
            logger.warning(f"Falling back to empty stats: {e}")
            return empty_stats()
        return row if row is not None else empty_stats()
