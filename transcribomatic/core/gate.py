"""
Token validation and weekly spend enforcement.

Enforcement order:
1. Signature - the token must be well formed and signed for the context
2. Weekly cap - "user" tokens only, trailing 7-day cost must be below the cap

The cap is a soft limit: concurrent requests for the same user read the
cost without any lock and may all pass on the same snapshot.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum, auto
from typing import Optional, Union

from transcribomatic.logger import get_logger

from .costs import CostCalculator
from .errors import InvalidToken, TokenRequired, WeeklyLimitExceeded, format_limit_message
from .tokens import TokenContext, decode_token, issue_token

log = get_logger("gate")


class ValidationStatus(Enum):
    VALID = auto()
    INVALID = auto()
    LIMIT_EXCEEDED = auto()


@dataclass(frozen=True)
class TokenValidation:
    """Outcome of validating a token.

    ``spend`` and ``cap`` are only set for LIMIT_EXCEEDED.
    """
    status: ValidationStatus
    unique_id: Optional[str] = None
    spend: Optional[Decimal] = None
    cap: Optional[Decimal] = None

    @property
    def ok(self) -> bool:
        return self.status == ValidationStatus.VALID

    @property
    def message(self) -> str:
        if self.status == ValidationStatus.LIMIT_EXCEEDED:
            return format_limit_message(self.spend, self.cap)
        if self.status == ValidationStatus.INVALID:
            return "Invalid or expired token"
        return "ok"


INVALID = TokenValidation(ValidationStatus.INVALID)


class TokenGate:
    """Issues and validates context-scoped tokens."""

    def __init__(self, secret: str, calculator: CostCalculator, weekly_limit: Decimal):
        if not secret:
            raise ValueError("signing secret is required and cannot be empty")
        self.secret = secret
        self.calculator = calculator
        self.weekly_limit = Decimal(weekly_limit)

    def issue(self, unique_id: str, context: Union[TokenContext, str]) -> str:
        return issue_token(unique_id, context, self.secret)

    def validate(self, token: Optional[str], context: Union[TokenContext, str]) -> TokenValidation:
        """Validate a token for a context without raising.

        Args:
            token: Token as presented by the client
            context: "user" or "manage"

        Returns:
            TokenValidation; LIMIT_EXCEEDED is only possible for "user"
        """
        unique_id = decode_token(token, context, self.secret)
        if unique_id is None:
            return INVALID

        if context == TokenContext.USER:
            spend = self.calculator.weekly_cost(unique_id)
            if spend >= self.weekly_limit:
                log.info("weekly_limit_exceeded", unique_id=unique_id,
                         spend=str(spend), cap=str(self.weekly_limit))
                return TokenValidation(
                    ValidationStatus.LIMIT_EXCEEDED,
                    unique_id=unique_id,
                    spend=spend,
                    cap=self.weekly_limit,
                )

        return TokenValidation(ValidationStatus.VALID, unique_id=unique_id)

    def require(self, token: Optional[str], context: Union[TokenContext, str]) -> str:
        """Validate a token and return its unique id.

        Raises:
            TokenRequired: If no token was given
            InvalidToken: If the token is malformed or wrongly signed
            WeeklyLimitExceeded: If a "user" token is over the weekly cap
        """
        if not token:
            raise TokenRequired()

        result = self.validate(token, context)
        if result.status == ValidationStatus.LIMIT_EXCEEDED:
            raise WeeklyLimitExceeded(result.spend, result.cap)
        if not result.ok:
            raise InvalidToken()
        return result.unique_id
