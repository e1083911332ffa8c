"""
Unit tests for token validation and the weekly spending cap.
"""

from decimal import Decimal
from unittest.mock import Mock

import pytest

from transcribomatic.core.costs import CostCalculator
from transcribomatic.core.errors import InvalidToken, TokenRequired, WeeklyLimitExceeded
from transcribomatic.core.gate import TokenGate, ValidationStatus
from transcribomatic.core.token_counter import TokenUsage
from transcribomatic.core.tokens import TokenContext, issue_token
from transcribomatic.storage.models import TokenUsageRecord

from conftest import NOW, SECRET


def _gate(spend):
    calculator = Mock(spec=CostCalculator)
    calculator.weekly_cost.return_value = Decimal(spend)
    return TokenGate(SECRET, calculator, Decimal("2.00"))


class TestTokenGate:
    """Test validation outcomes."""

    def test_empty_secret_rejected(self):
        """Verify a gate cannot be built without a secret."""
        with pytest.raises(ValueError, match="signing secret"):
            TokenGate("", Mock(spec=CostCalculator), Decimal("2.00"))

    def test_valid_user_token(self):
        """Verify a user token under the cap validates."""
        gate = _gate("1.99")
        result = gate.validate(gate.issue("user1", TokenContext.USER), TokenContext.USER)
        assert result.ok
        assert result.status == ValidationStatus.VALID
        assert result.unique_id == "user1"
        gate.calculator.weekly_cost.assert_called_once_with("user1")

    @pytest.mark.parametrize("spend", ["2.00", "2.0001", "150"])
    def test_spend_at_or_over_cap(self, spend):
        """Verify the cap is reached when spend equals it."""
        gate = _gate(spend)
        result = gate.validate(gate.issue("user1", TokenContext.USER), TokenContext.USER)
        assert result.status == ValidationStatus.LIMIT_EXCEEDED
        assert result.spend == Decimal(spend)
        assert result.cap == Decimal("2.00")
        assert "Weekly cost limit of $2.00 exceeded" in result.message

    def test_manage_tokens_are_never_capped(self):
        """Verify management tokens skip the spend check."""
        gate = _gate("1000")
        result = gate.validate(gate.issue("user1", TokenContext.MANAGE), TokenContext.MANAGE)
        assert result.ok
        gate.calculator.weekly_cost.assert_not_called()

    def test_invalid_token_skips_spend_check(self):
        """Verify a bad signature is rejected before any ledger read."""
        gate = _gate("0")
        result = gate.validate("user1:deadbeef", TokenContext.USER)
        assert result.status == ValidationStatus.INVALID
        assert result.unique_id is None
        assert result.message == "Invalid or expired token"
        gate.calculator.weekly_cost.assert_not_called()

    def test_wrong_context(self):
        """Verify a manage token does not open user endpoints."""
        gate = _gate("0")
        result = gate.validate(gate.issue("user1", TokenContext.MANAGE), TokenContext.USER)
        assert result.status == ValidationStatus.INVALID


class TestRequire:
    """Test the raising form of validation."""

    def test_returns_unique_id(self):
        """Verify a valid token yields its id."""
        gate = _gate("0")
        assert gate.require(issue_token("user1", "user", SECRET), TokenContext.USER) == "user1"

    @pytest.mark.parametrize("token", [None, ""])
    def test_missing_token(self, token):
        """Verify an absent token raises TokenRequired."""
        with pytest.raises(TokenRequired) as exc_info:
            _gate("0").require(token, TokenContext.USER)
        assert exc_info.value.status_code == 400

    def test_invalid_token(self):
        """Verify a bad token raises InvalidToken."""
        with pytest.raises(InvalidToken) as exc_info:
            _gate("0").require("garbage", TokenContext.USER)
        assert exc_info.value.status_code == 401

    def test_limit_exceeded(self):
        """Verify an over-cap user token raises with spend and cap."""
        gate = _gate("2.5")
        with pytest.raises(WeeklyLimitExceeded) as exc_info:
            gate.require(gate.issue("user1", TokenContext.USER), TokenContext.USER)
        assert exc_info.value.status_code == 429
        assert exc_info.value.spend == Decimal("2.5")
        assert exc_info.value.message == (
            "Weekly cost limit of $2.00 exceeded. Current spend: $2.5000"
        )


class TestGateWithLedger:
    """Test the cap against real ledger data."""

    def test_user_locked_out_then_released(self, repository, clock):
        """Verify the cap blocks while spend is in the window and lifts after."""
        calculator = CostCalculator(repository, clock=clock)
        gate = TokenGate(SECRET, calculator, Decimal("2.00"))
        token = gate.issue("user1", TokenContext.USER)

        assert gate.validate(token, TokenContext.USER).ok

        repository.insert_token_usage(TokenUsageRecord(
            unique_id="user1",
            created_at=NOW,
            usage=TokenUsage(output_audio_tokens=25_000),
        ))
        assert gate.validate(token, TokenContext.USER).status == ValidationStatus.LIMIT_EXCEEDED

        clock.advance(7 * 24 * 60 * 60 + 1)
        assert gate.validate(token, TokenContext.USER).ok
