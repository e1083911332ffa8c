"""
Repository pattern for data access.

Handles database operations and data persistence logic. The ledger tables
are append-only; only ``users`` rows are ever updated.
"""

import abc
import sqlite3
from decimal import Decimal
from typing import List, Optional

from transcribomatic.core.token_counter import TokenUsage

from .db import connection
from .models import CostCheckpoint, TokenUsageRecord, UsageAction, UsageEvent, User, WordStats

TOKEN_COLUMNS = (
    "total_tokens",
    "input_tokens",
    "output_tokens",
    "cached_tokens",
    "input_text_tokens",
    "input_audio_tokens",
    "cached_text_tokens",
    "cached_audio_tokens",
    "output_text_tokens",
    "output_audio_tokens",
)

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    unique_id TEXT NOT NULL UNIQUE,
    show_transcription INTEGER NOT NULL DEFAULT 1,
    show_paralanguage INTEGER NOT NULL DEFAULT 1,
    show_image INTEGER NOT NULL DEFAULT 1,
    enabled INTEGER NOT NULL DEFAULT 1,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS api_usage (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    unique_id TEXT NOT NULL,
    action TEXT NOT NULL,
    details TEXT NOT NULL DEFAULT '',
    created_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_api_usage_unique_id_action_created_at
    ON api_usage (unique_id, action, created_at);

CREATE TABLE IF NOT EXISTS usage_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    unique_id TEXT NOT NULL,
    total_tokens INTEGER NOT NULL DEFAULT 0,
    input_tokens INTEGER NOT NULL DEFAULT 0,
    output_tokens INTEGER NOT NULL DEFAULT 0,
    cached_tokens INTEGER NOT NULL DEFAULT 0,
    input_text_tokens INTEGER NOT NULL DEFAULT 0,
    input_audio_tokens INTEGER NOT NULL DEFAULT 0,
    cached_text_tokens INTEGER NOT NULL DEFAULT 0,
    cached_audio_tokens INTEGER NOT NULL DEFAULT 0,
    output_text_tokens INTEGER NOT NULL DEFAULT 0,
    output_audio_tokens INTEGER NOT NULL DEFAULT 0,
    created_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_usage_log_unique_id_created_at
    ON usage_log (unique_id, created_at);

CREATE TABLE IF NOT EXISTS usage_cost (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    unique_id TEXT NOT NULL,
    cost TEXT NOT NULL,
    created_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_usage_cost_unique_id_created_at
    ON usage_cost (unique_id, created_at);
"""


class LedgerRepository(abc.ABC):
    """Read/aggregate/append contract the core depends on.

    ``since`` filters are inclusive (``created_at >= since``).
    """

    @abc.abstractmethod
    def initialize_schema(self) -> None:
        pass

    @abc.abstractmethod
    def get_user(self, unique_id: str) -> Optional[User]:
        """Return the user whether or not it is enabled."""

    @abc.abstractmethod
    def save_user(
        self,
        unique_id: str,
        show_transcription: bool,
        show_paralanguage: bool,
        show_image: bool,
        now: int,
    ) -> User:
        """Create the user (enabled) or update its display settings."""

    @abc.abstractmethod
    def insert_usage_event(self, event: UsageEvent) -> None:
        pass

    @abc.abstractmethod
    def insert_token_usage(self, record: TokenUsageRecord) -> None:
        pass

    @abc.abstractmethod
    def sum_token_usage(self, unique_id: str, since: int) -> TokenUsage:
        pass

    @abc.abstractmethod
    def count_events(self, unique_id: str, action: UsageAction, since: int) -> int:
        pass

    @abc.abstractmethod
    def word_stats(self, unique_id: str, since: int) -> WordStats:
        pass

    @abc.abstractmethod
    def last_checkpoint_at(self, unique_id: str) -> Optional[int]:
        pass

    @abc.abstractmethod
    def insert_checkpoint(self, checkpoint: CostCheckpoint) -> None:
        pass

    @abc.abstractmethod
    def list_checkpoints(self, unique_id: str) -> List[CostCheckpoint]:
        """Checkpoints for a user, newest first."""


class SQLiteLedgerRepository(LedgerRepository):
    """Ledger stored in a SQLite file.

    A connection is opened per operation, so one instance can be shared by
    request handlers running on different threads.
    """

    def __init__(self, db_path: str = "transcribomatic.db"):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def initialize_schema(self) -> None:
        """Create the four tables and their indexes if they don't exist."""
        with connection(self.db_path) as conn:
            conn.executescript(SCHEMA)

    def get_user(self, unique_id: str) -> Optional[User]:
        with connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE unique_id = ?", (unique_id,)
            ).fetchone()
        return _row_to_user(row) if row else None

    def save_user(
        self,
        unique_id: str,
        show_transcription: bool,
        show_paralanguage: bool,
        show_image: bool,
        now: int,
    ) -> User:
        with connection(self.db_path) as conn:
            conn.execute("""
                INSERT INTO users
                (unique_id, show_transcription, show_paralanguage, show_image,
                 enabled, created_at, updated_at)
                VALUES (?, ?, ?, ?, 1, ?, ?)
                ON CONFLICT(unique_id) DO UPDATE SET
                    show_transcription = excluded.show_transcription,
                    show_paralanguage = excluded.show_paralanguage,
                    show_image = excluded.show_image,
                    updated_at = excluded.updated_at
            """, (
                unique_id,
                int(show_transcription),
                int(show_paralanguage),
                int(show_image),
                now,
                now,
            ))
            row = conn.execute(
                "SELECT * FROM users WHERE unique_id = ?", (unique_id,)
            ).fetchone()
        return _row_to_user(row)

    def insert_usage_event(self, event: UsageEvent) -> None:
        """Append a single event to the ledger."""
        with connection(self.db_path) as conn:
            conn.execute(
                "INSERT INTO api_usage (unique_id, action, details, created_at) VALUES (?, ?, ?, ?)",
                (event.unique_id, UsageAction(event.action).value, event.details, event.created_at),
            )

    def insert_token_usage(self, record: TokenUsageRecord) -> None:
        """Append a single token usage record to the ledger."""
        columns = ", ".join(TOKEN_COLUMNS)
        placeholders = ", ".join("?" for _ in TOKEN_COLUMNS)
        with connection(self.db_path) as conn:
            conn.execute(
                f"INSERT INTO usage_log (unique_id, {columns}, created_at) "
                f"VALUES (?, {placeholders}, ?)",
                (
                    record.unique_id,
                    *(getattr(record.usage, column) for column in TOKEN_COLUMNS),
                    record.created_at,
                ),
            )

    def sum_token_usage(self, unique_id: str, since: int) -> TokenUsage:
        sums = ", ".join(f"COALESCE(SUM({column}), 0) AS {column}" for column in TOKEN_COLUMNS)
        with connection(self.db_path) as conn:
            row = conn.execute(
                f"SELECT {sums} FROM usage_log WHERE unique_id = ? AND created_at >= ?",
                (unique_id, since),
            ).fetchone()
        return TokenUsage(**{column: int(row[column]) for column in TOKEN_COLUMNS})

    def count_events(self, unique_id: str, action: UsageAction, since: int) -> int:
        with connection(self.db_path) as conn:
            row = conn.execute("""
                SELECT COUNT(*) FROM api_usage
                WHERE unique_id = ? AND action = ? AND created_at >= ?
            """, (unique_id, UsageAction(action).value, since)).fetchone()
        return int(row[0] or 0)

    def word_stats(self, unique_id: str, since: int) -> WordStats:
        with connection(self.db_path) as conn:
            row = conn.execute("""
                SELECT
                    COUNT(*) AS transcription_count,
                    COALESCE(SUM(CAST(details AS INTEGER)), 0) AS total_words,
                    COALESCE(AVG(CAST(details AS INTEGER)), 0) AS avg_words
                FROM api_usage
                WHERE unique_id = ? AND action = ? AND created_at >= ?
            """, (unique_id, UsageAction.TRANSCRIPTION.value, since)).fetchone()
        return WordStats(
            transcription_count=int(row["transcription_count"]),
            total_words=int(row["total_words"]),
            avg_words_per_transcription=float(row["avg_words"]),
        )

    def last_checkpoint_at(self, unique_id: str) -> Optional[int]:
        with connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT MAX(created_at) FROM usage_cost WHERE unique_id = ?", (unique_id,)
            ).fetchone()
        return int(row[0]) if row[0] is not None else None

    def insert_checkpoint(self, checkpoint: CostCheckpoint) -> None:
        with connection(self.db_path) as conn:
            conn.execute(
                "INSERT INTO usage_cost (unique_id, cost, created_at) VALUES (?, ?, ?)",
                (checkpoint.unique_id, str(checkpoint.cost), checkpoint.created_at),
            )

    def list_checkpoints(self, unique_id: str) -> List[CostCheckpoint]:
        with connection(self.db_path) as conn:
            rows = conn.execute("""
                SELECT unique_id, cost, created_at FROM usage_cost
                WHERE unique_id = ?
                ORDER BY created_at DESC, id DESC
            """, (unique_id,)).fetchall()
        return [
            CostCheckpoint(
                unique_id=row["unique_id"],
                cost=Decimal(row["cost"]),
                created_at=int(row["created_at"]),
            )
            for row in rows
        ]


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        unique_id=row["unique_id"],
        show_transcription=bool(row["show_transcription"]),
        show_paralanguage=bool(row["show_paralanguage"]),
        show_image=bool(row["show_image"]),
        enabled=bool(row["enabled"]),
        created_at=int(row["created_at"]),
        updated_at=int(row["updated_at"]),
    )
