"""
Usage ledger.

Best-effort, append-only telemetry: a failed write is logged and reported
as ``False`` but never fails the caller's request.
"""

import time
from typing import Any, Callable, Mapping, Optional

from transcribomatic.logger import get_logger
from transcribomatic.storage.models import TokenUsageRecord, UsageAction, UsageEvent
from transcribomatic.storage.repository import LedgerRepository

from .token_counter import TokenUsage

log = get_logger("ledger")


class UsageLedger:
    """Appends usage events and token usage records for a user."""

    def __init__(self, repository: LedgerRepository, clock: Callable[[], float] = time.time):
        self.repository = repository
        self.clock = clock

    def record_event(self, unique_id: str, action: UsageAction, details: str = "") -> bool:
        """Append one usage event.

        Args:
            unique_id: User the event belongs to
            action: Kind of event
            details: Prompt, word count or note, depending on ``action``

        Returns:
            True when the event was written
        """
        event = UsageEvent(
            unique_id=unique_id,
            action=UsageAction(action),
            details=details or "",
            created_at=int(self.clock()),
        )
        try:
            self.repository.insert_usage_event(event)
        except Exception as e:
            log.error("usage_event_write_failed", unique_id=unique_id,
                      action=event.action.value, error=str(e))
            return False
        return True

    def record_token_usage(self, unique_id: str, usage_report: Optional[Mapping[str, Any]]) -> bool:
        """Append one token usage record extracted from an API usage report."""
        try:
            record = TokenUsageRecord(
                unique_id=unique_id,
                created_at=int(self.clock()),
                usage=TokenUsage.from_report(usage_report),
            )
            self.repository.insert_token_usage(record)
        except Exception as e:
            log.error("token_usage_write_failed", unique_id=unique_id, error=str(e))
            return False
        return True
