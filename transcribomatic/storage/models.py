"""
Data models for storage layer.

Defines database entities and data structures. Timestamps are UNIX epoch
seconds.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict

from transcribomatic.core.token_counter import TokenUsage


class UsageAction(str, Enum):
    """Kinds of events recorded in the usage ledger."""
    LOGIN = "login"
    PICTURE = "picture"
    TRANSCRIPTION = "transcription"
    MANAGE = "manage"


@dataclass(frozen=True)
class User:
    """Account and display settings, keyed by ``unique_id``."""
    unique_id: str
    show_transcription: bool = True
    show_paralanguage: bool = True
    show_image: bool = True
    enabled: bool = True
    created_at: int = 0
    updated_at: int = 0

    def display_config(self) -> Dict[str, bool]:
        return {
            "showTranscription": self.show_transcription,
            "showParalanguage": self.show_paralanguage,
            "showImage": self.show_image,
        }


@dataclass(frozen=True)
class UsageEvent:
    """Immutable record of one API action.

    ``details`` holds the image prompt for pictures, the word count for
    transcriptions and a free-text note for management actions.
    """
    unique_id: str
    action: UsageAction
    details: str
    created_at: int


@dataclass(frozen=True)
class TokenUsageRecord:
    """Immutable record of one reported token usage."""
    unique_id: str
    created_at: int
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass(frozen=True)
class CostCheckpoint:
    """Sparse cost rollup kept as a historical trail."""
    unique_id: str
    cost: Decimal
    created_at: int


@dataclass(frozen=True)
class WordStats:
    """Transcription word statistics over a time window."""
    transcription_count: int = 0
    total_words: int = 0
    avg_words_per_transcription: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "transcriptionCount": self.transcription_count,
            "totalWords": self.total_words,
            "avgWordsPerTranscription": self.avg_words_per_transcription,
        }
