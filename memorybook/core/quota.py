"""
Monthly usage quota enforcement.

Billing periods are calendar months in UTC, identified by their first
instant. The ledger is keyed by (user, period start) so periods line up with
calendar months no matter when in the month a user signed up.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ..storage.repository import StoryStore
from ..utils.logger import get_logger
from .errors import StorageWriteError

logger = get_logger(__name__)


@dataclass(frozen=True)
class QuotaDecision:
    """Outcome of a quota check."""
    allowed: bool
    current_calls: int


def current_period_start(now: Optional[datetime] = None) -> str:
    """First instant of the current calendar month in UTC, ISO-8601.

    Uses millisecond precision with a ``Z`` suffix, e.g.
    ``2026-10-01T00:00:00.000Z``.

    Args:
        now: Reference time (defaults to the current time). Naive values
            are taken to be UTC.

    Returns:
        Period start string used as the ledger key
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    return f"{now.year:04d}-{now.month:02d}-01T00:00:00.000Z"


class QuotaLedger:
    """Per-user, per-period call counter against a fixed free allowance.

    Reads fail closed: a ledger that cannot be read raises
    ``StorageReadError`` and never grants quota.
    """

    def __init__(self, store: StoryStore, quota: int = 5):
        """Initialize the ledger.

        Args:
            store: Storage backend holding usage rows
            quota: Free calls allowed per billing period

        Raises:
            ValueError: If quota is not positive
        """
        if quota <= 0:
            raise ValueError("quota must be > 0")
        self.store = store
        self.quota = quota

    def check_and_reserve(self, user_id: str, period_start: str) -> QuotaDecision:
        """Check the allowance and, if allowed, take one call atomically.

        Args:
            user_id: Caller's user identifier
            period_start: Billing period key from ``current_period_start``

        Returns:
            QuotaDecision with the pre-request call count

        Raises:
            StorageReadError: If the ledger cannot be read or reserved
        """
        allowed, current_calls = self.store.reserve_usage(user_id, period_start, self.quota)
        if allowed:
            logger.debug("Reserved call %d/%d for user %s in %s",
                         current_calls + 1, self.quota, user_id, period_start)
        else:
            logger.info("Quota of %d reached for user %s in %s", self.quota, user_id, period_start)
        return QuotaDecision(allowed=allowed, current_calls=current_calls)

    def release(self, user_id: str, period_start: str) -> None:
        """Return a reserved call after a failed generation.

        Best-effort: a failed release is logged, never raised, since the
        request is already failing for another reason.
        """
        try:
            self.store.release_usage(user_id, period_start)
        except StorageWriteError as e:
            logger.error("Usage release error for user %s in %s: %s",
                         user_id, period_start, e.details)

    def usage(self, user_id: str, period_start: str) -> int:
        """Calls recorded for (user, period); zero when no row exists."""
        row = self.store.get_usage(user_id, period_start)
        return row.calls if row else 0
