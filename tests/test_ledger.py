"""
Unit tests for the usage ledger.
"""

from unittest.mock import Mock

from transcribomatic.core.ledger import UsageLedger
from transcribomatic.core.token_counter import TokenUsage
from transcribomatic.storage.models import UsageAction
from transcribomatic.storage.repository import LedgerRepository

from conftest import NOW


class TestRecordEvent:
    """Test usage event recording."""

    def test_event_is_stamped_with_clock(self, memory_repository, clock):
        """Verify events carry the clock time."""
        ledger = UsageLedger(memory_repository, clock=clock)
        assert ledger.record_event("user1", UsageAction.PICTURE, "a cat") is True

        event = memory_repository.events[0]
        assert event.unique_id == "user1"
        assert event.action == UsageAction.PICTURE
        assert event.details == "a cat"
        assert event.created_at == NOW

    def test_action_from_string(self, memory_repository, clock):
        """Verify plain action names are accepted."""
        ledger = UsageLedger(memory_repository, clock=clock)
        ledger.record_event("user1", "login")
        assert memory_repository.events[0].action == UsageAction.LOGIN
        assert memory_repository.events[0].details == ""

    def test_write_failure_returns_false(self, clock):
        """Verify a failed insert is reported but not raised."""
        repository = Mock(spec=LedgerRepository)
        repository.insert_usage_event.side_effect = RuntimeError("database is locked")

        ledger = UsageLedger(repository, clock=clock)
        assert ledger.record_event("user1", UsageAction.LOGIN) is False


class TestRecordTokenUsage:
    """Test token usage recording."""

    def test_report_is_flattened(self, memory_repository, clock):
        """Verify nested report fields are stored as counts."""
        ledger = UsageLedger(memory_repository, clock=clock)
        report = {
            "total_tokens": 30,
            "input_token_details": {"audio_tokens": 20},
            "output_token_details": {"text_tokens": 10},
        }
        assert ledger.record_token_usage("user1", report) is True

        record = memory_repository.token_records[0]
        assert record.created_at == NOW
        assert record.usage == TokenUsage(total_tokens=30, input_audio_tokens=20,
                                          output_text_tokens=10)

    def test_infinite_count_is_zero(self, memory_repository, clock):
        """Verify an out-of-range count is stored as 0 instead of raising."""
        ledger = UsageLedger(memory_repository, clock=clock)
        report = {"input_token_details": {"text_tokens": float("1e400")}, "total_tokens": 4}
        assert ledger.record_token_usage("user1", report) is True

        assert memory_repository.token_records[0].usage == TokenUsage(total_tokens=4)

    def test_clock_failure_returns_false(self, memory_repository):
        """Verify errors while building the record stay inside the ledger."""
        def broken_clock():
            raise RuntimeError("clock unavailable")

        ledger = UsageLedger(memory_repository, clock=broken_clock)
        assert ledger.record_token_usage("user1", {"total_tokens": 1}) is False
        assert memory_repository.token_records == []

    def test_write_failure_returns_false(self, clock):
        """Verify a failed insert is reported but not raised."""
        repository = Mock(spec=LedgerRepository)
        repository.insert_token_usage.side_effect = RuntimeError("disk full")

        ledger = UsageLedger(repository, clock=clock)
        assert ledger.record_token_usage("user1", {"total_tokens": 1}) is False
