"""
Account flows: management access, login and usage logging.

Each flow validates its token first, then reads or writes the ledger.
Users are provisioned lazily the first time a valid management token is
presented.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Tuple
from urllib.parse import quote

from transcribomatic.logger import get_logger
from transcribomatic.storage.models import UsageAction, User, WordStats
from transcribomatic.storage.repository import LedgerRepository

from .costs import CostCalculator
from .errors import BadRequest, FeatureDisabled, LedgerWriteError, TokenRequired, UserNotFound
from .gate import TokenGate
from .ledger import UsageLedger
from .pricing import CostBreakdown
from .tokens import TokenContext

log = get_logger("accounts")


def _flag(enabled: bool) -> str:
    return "enabled" if enabled else "disabled"


def build_user_url(base_url: str, user_token: str) -> str:
    return f"{base_url.rstrip('/')}/?token={quote(user_token, safe='')}"


def build_management_url(base_url: str, management_token: str) -> str:
    return f"{base_url.rstrip('/')}/manage?token={quote(management_token, safe='')}"


@dataclass(frozen=True)
class ManagementView:
    """What a management token holder gets to see."""
    user: User
    created: bool
    user_token: str
    user_url: str
    breakdown: CostBreakdown
    word_stats: WordStats

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uniqueId": self.user.unique_id,
            "created": self.created,
            "enabled": self.user.enabled,
            "config": self.user.display_config(),
            "userToken": self.user_token,
            "userUrl": self.user_url,
            "weeklyCost": self.breakdown.to_dict(),
            "weeklyWords": self.word_stats.to_dict(),
        }


class AccountService:
    """Coordinates token validation, user settings and the usage ledger."""

    def __init__(
        self,
        repository: LedgerRepository,
        gate: TokenGate,
        ledger: UsageLedger,
        calculator: CostCalculator,
        base_url: str = "",
        clock: Callable[[], float] = time.time,
    ):
        self.repository = repository
        self.gate = gate
        self.ledger = ledger
        self.calculator = calculator
        self.base_url = base_url
        self.clock = clock

    def open_management(self, token: Optional[str]) -> ManagementView:
        """Validate a management token, creating the user on first use.

        Raises:
            TokenRequired: If no token was given
            InvalidToken: If the token is not a valid management token
        """
        unique_id = self.gate.require(token, TokenContext.MANAGE)

        user = self.repository.get_user(unique_id)
        created = user is None
        if created:
            user = self.repository.save_user(unique_id, True, True, True, now=int(self.clock()))
            log.info("user_created", unique_id=unique_id)
            self.ledger.record_event(unique_id, UsageAction.MANAGE, "User account created")
        else:
            self.ledger.record_event(unique_id, UsageAction.MANAGE, "Management page accessed")

        user_token = self.gate.issue(unique_id, TokenContext.USER)
        return ManagementView(
            user=user,
            created=created,
            user_token=user_token,
            user_url=build_user_url(self.base_url, user_token),
            breakdown=self.calculator.weekly_breakdown(unique_id),
            word_stats=self.calculator.weekly_word_stats(unique_id),
        )

    def update_settings(
        self,
        token: Optional[str],
        show_transcription: bool,
        show_paralanguage: bool,
        show_image: bool,
    ) -> User:
        """Save display settings for the management token's user."""
        unique_id = self.gate.require(token, TokenContext.MANAGE)
        user = self.repository.save_user(
            unique_id,
            show_transcription,
            show_paralanguage,
            show_image,
            now=int(self.clock()),
        )
        details = (
            f"Config updated: transcription={_flag(show_transcription)}, "
            f"paralanguage={_flag(show_paralanguage)}, image={_flag(show_image)}"
        )
        self.ledger.record_event(unique_id, UsageAction.MANAGE, details)
        return user

    def _enabled_user(self, unique_id: str) -> User:
        user = self.repository.get_user(unique_id)
        if user is None or not user.enabled:
            raise UserNotFound()
        return user

    def login(self, token: Optional[str]) -> User:
        """Log a user token in and return the user's settings.

        Raises:
            TokenRequired, InvalidToken, WeeklyLimitExceeded: From the gate
            UserNotFound: If the user does not exist or is disabled
        """
        unique_id = self.gate.require(token, TokenContext.USER)
        user = self._enabled_user(unique_id)
        self.ledger.record_event(unique_id, UsageAction.LOGIN)
        self.calculator.update_checkpoint(unique_id)
        return user

    def log_usage(
        self,
        token: Optional[str],
        usage: Optional[Mapping[str, Any]],
        word_count: int = 0,
    ) -> None:
        """Record a usage report and, when words were transcribed, a transcription event.

        Raises:
            BadRequest: If the usage report is missing
            LedgerWriteError: If either ledger write failed
        """
        if not token:
            raise TokenRequired()
        if not usage:
            raise BadRequest("Usage data required")

        unique_id = self.gate.require(token, TokenContext.USER)

        token_logged = self.ledger.record_token_usage(unique_id, usage)
        transcription_logged = True
        if word_count > 0:
            transcription_logged = self.ledger.record_event(
                unique_id, UsageAction.TRANSCRIPTION, str(word_count)
            )

        if not (token_logged and transcription_logged):
            raise LedgerWriteError("Failed to log usage data")

    def authorize_image(
        self,
        token: Optional[str],
        description: Optional[str]
    ) -> Tuple[str, str]:
        """Check a user may generate an image.

        Returns:
            The unique id and the trimmed description

        Raises:
            FeatureDisabled: If image generation is off for the account
            BadRequest: If the description is empty
        """
        unique_id = self.gate.require(token, TokenContext.USER)
        user = self._enabled_user(unique_id)
        if not user.show_image:
            raise FeatureDisabled("Image generation disabled for this account")

        description = (description or "").strip()
        if not description:
            raise BadRequest("Description parameter is required")
        return unique_id, description
