"""
Service wiring.

Builds the ledger, cost calculator, gate and account service around one
explicitly constructed repository.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional

from transcribomatic.config.loader import AppConfig
from transcribomatic.core.accounts import AccountService
from transcribomatic.core.costs import CostCalculator
from transcribomatic.core.gate import TokenGate
from transcribomatic.core.ledger import UsageLedger
from transcribomatic.sdk.openai_client import RealtimeOpenAI
from transcribomatic.storage.repository import LedgerRepository, SQLiteLedgerRepository


@dataclass
class ProxyServices:
    config: AppConfig
    repository: LedgerRepository
    ledger: UsageLedger
    calculator: CostCalculator
    gate: TokenGate
    accounts: AccountService
    openai: RealtimeOpenAI


def build_services(
    config: AppConfig,
    repository: Optional[LedgerRepository] = None,
    openai_client: Optional[RealtimeOpenAI] = None,
    clock: Callable[[], float] = time.time,
) -> ProxyServices:
    """Construct every service from configuration.

    Args:
        config: Loaded application configuration
        repository: Ledger store; a SQLite repository at ``config.db_path``
            when omitted
        openai_client: Outbound client; built from ``config.openai`` when omitted
        clock: Source of the current UNIX time
    """
    if repository is None:
        repository = SQLiteLedgerRepository(config.db_path)
    ledger = UsageLedger(repository, clock=clock)
    calculator = CostCalculator(repository, rates=config.rates, clock=clock)
    gate = TokenGate(config.signing_secret, calculator, config.weekly_cost_limit)
    accounts = AccountService(
        repository,
        gate,
        ledger,
        calculator,
        base_url=config.base_url,
        clock=clock,
    )
    if openai_client is None:
        openai_client = RealtimeOpenAI(
            api_key=config.openai.api_key,
            organization=config.openai.organization,
            project=config.openai.project,
            timeout=config.openai.timeout,
        )
    return ProxyServices(
        config=config,
        repository=repository,
        ledger=ledger,
        calculator=calculator,
        gate=gate,
        accounts=accounts,
        openai=openai_client,
    )
