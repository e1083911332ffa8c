"""
In-memory ledger.

Implements the same read/aggregate contract as the SQLite repository so the
core can run without a database.
"""

import threading
from dataclasses import replace
from functools import reduce
from typing import Dict, List, Optional

from transcribomatic.core.token_counter import TokenUsage

from .models import CostCheckpoint, TokenUsageRecord, UsageAction, UsageEvent, User, WordStats
from .repository import LedgerRepository


def _word_count(details: str) -> int:
    # Mirrors CAST(details AS INTEGER): leading digits, otherwise 0
    digits = ""
    for char in details.strip():
        if not char.isdigit():
            break
        digits += char
    return int(digits) if digits else 0


class InMemoryLedgerRepository(LedgerRepository):
    """Ledger kept in Python lists, guarded by a lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self.users: Dict[str, User] = {}
        self.events: List[UsageEvent] = []
        self.token_records: List[TokenUsageRecord] = []
        self.checkpoints: List[CostCheckpoint] = []

    def initialize_schema(self) -> None:
        pass

    def get_user(self, unique_id: str) -> Optional[User]:
        with self._lock:
            return self.users.get(unique_id)

    def save_user(
        self,
        unique_id: str,
        show_transcription: bool,
        show_paralanguage: bool,
        show_image: bool,
        now: int,
    ) -> User:
        with self._lock:
            existing = self.users.get(unique_id)
            if existing is None:
                user = User(
                    unique_id=unique_id,
                    show_transcription=show_transcription,
                    show_paralanguage=show_paralanguage,
                    show_image=show_image,
                    enabled=True,
                    created_at=now,
                    updated_at=now,
                )
            else:
                user = replace(
                    existing,
                    show_transcription=show_transcription,
                    show_paralanguage=show_paralanguage,
                    show_image=show_image,
                    updated_at=now,
                )
            self.users[unique_id] = user
            return user

    def insert_usage_event(self, event: UsageEvent) -> None:
        with self._lock:
            self.events.append(event)

    def insert_token_usage(self, record: TokenUsageRecord) -> None:
        with self._lock:
            self.token_records.append(record)

    def sum_token_usage(self, unique_id: str, since: int) -> TokenUsage:
        with self._lock:
            matching = [
                r.usage for r in self.token_records
                if r.unique_id == unique_id and r.created_at >= since
            ]
        return reduce(lambda acc, usage: acc + usage, matching, TokenUsage())

    def count_events(self, unique_id: str, action: UsageAction, since: int) -> int:
        with self._lock:
            return sum(
                1 for e in self.events
                if e.unique_id == unique_id and e.action == action and e.created_at >= since
            )

    def word_stats(self, unique_id: str, since: int) -> WordStats:
        with self._lock:
            counts = [
                _word_count(e.details) for e in self.events
                if e.unique_id == unique_id
                and e.action == UsageAction.TRANSCRIPTION
                and e.created_at >= since
            ]
        if not counts:
            return WordStats()
        return WordStats(
            transcription_count=len(counts),
            total_words=sum(counts),
            avg_words_per_transcription=sum(counts) / len(counts),
        )

    def last_checkpoint_at(self, unique_id: str) -> Optional[int]:
        with self._lock:
            times = [c.created_at for c in self.checkpoints if c.unique_id == unique_id]
        return max(times) if times else None

    def insert_checkpoint(self, checkpoint: CostCheckpoint) -> None:
        with self._lock:
            self.checkpoints.append(checkpoint)

    def list_checkpoints(self, unique_id: str) -> List[CostCheckpoint]:
        with self._lock:
            matching = [c for c in self.checkpoints if c.unique_id == unique_id]
        return list(reversed(sorted(matching, key=lambda c: c.created_at)))
