"""
Cost calculation over the usage ledger.

All windows are sliding and measured from the clock's current time, not
aligned to calendar weeks.

Read failures are fail-open: a cost that cannot be computed counts as 0 so
that a storage outage does not lock every user out. The trade-off is that
the weekly cap is not enforced while the ledger is unreadable.
"""

import time
from decimal import Decimal
from typing import Callable

from transcribomatic.logger import get_logger
from transcribomatic.storage.models import CostCheckpoint, UsageAction, WordStats
from transcribomatic.storage.repository import LedgerRepository

from .pricing import DEFAULT_RATES, CostBreakdown, TokenRates, calculate_breakdown

WEEK_SECONDS = 7 * 24 * 60 * 60

log = get_logger("costs")


class CostCalculator:
    """Derives dollar costs for a user from raw ledger records."""

    def __init__(
        self,
        repository: LedgerRepository,
        rates: TokenRates = DEFAULT_RATES,
        clock: Callable[[], float] = time.time,
    ):
        self.repository = repository
        self.rates = rates
        self.clock = clock

    def week_start(self) -> int:
        return int(self.clock()) - WEEK_SECONDS

    def _breakdown_since(self, unique_id: str, since: int) -> CostBreakdown:
        tokens = self.repository.sum_token_usage(unique_id, since)
        image_count = self.repository.count_events(unique_id, UsageAction.PICTURE, since)
        return calculate_breakdown(tokens, image_count, self.rates)

    def cost_since(self, unique_id: str, since: int) -> Decimal:
        """Total cost of token usage and pictures with ``created_at >= since``.

        Returns:
            Cost in dollars, or 0 if the ledger could not be read
        """
        try:
            return self._breakdown_since(unique_id, since).total_cost
        except Exception as e:
            log.error("cost_calculation_failed", unique_id=unique_id, since=since, error=str(e))
            return Decimal("0")

    def weekly_cost(self, unique_id: str) -> Decimal:
        """Cost over the trailing 7 x 24h."""
        return self.cost_since(unique_id, self.week_start())

    def weekly_breakdown(self, unique_id: str) -> CostBreakdown:
        """Per-class cost report over the trailing week (zeros on read failure)."""
        try:
            return self._breakdown_since(unique_id, self.week_start())
        except Exception as e:
            log.error("cost_breakdown_failed", unique_id=unique_id, error=str(e))
            return CostBreakdown()

    def weekly_word_stats(self, unique_id: str) -> WordStats:
        try:
            return self.repository.word_stats(unique_id, self.week_start())
        except Exception as e:
            log.error("word_stats_failed", unique_id=unique_id, error=str(e))
            return WordStats()

    def update_checkpoint(self, unique_id: str) -> bool:
        """Append a cost checkpoint when the last one is over a week old.

        The incremental cost since the previous checkpoint (or since the
        epoch when there is none) is stored only if it is positive, so
        repeated calls within a week write at most one row. Checkpoints are
        an audit trail; ``weekly_cost`` never reads them.

        Returns:
            True if a checkpoint row was written
        """
        now = int(self.clock())
        try:
            last = self.repository.last_checkpoint_at(unique_id)
        except Exception as e:
            log.error("checkpoint_read_failed", unique_id=unique_id, error=str(e))
            return False

        if last is not None and last >= now - WEEK_SECONDS:
            return False

        cost = self.cost_since(unique_id, last or 0)
        if cost <= 0:
            return False

        try:
            self.repository.insert_checkpoint(
                CostCheckpoint(unique_id=unique_id, cost=cost, created_at=now)
            )
        except Exception as e:
            log.error("checkpoint_write_failed", unique_id=unique_id, error=str(e))
            return False
        log.info("checkpoint_written", unique_id=unique_id, cost=str(cost))
        return True
