"""Paper executor — simulated venue for dry runs and tests.

Draws a last digit (digit contracts) or a direction (CALL/PUT) from its
RNG, settles the contract against its barrier and pays out through the
``RewardTable``.  No network access.
"""

import logging
import random
import time
from typing import Callable, Optional

from hummingbird.contracts.models import (
    AccountSnapshot,
    ContractType,
    NextTradeParams,
    TradeOutcome,
)
from hummingbird.errors import ExecutionError
from hummingbird.rewards.table import RewardTable, default_reward_table

logger = logging.getLogger("hummingbird.executor")


def settle(contract_type: ContractType, barrier, last_digit: int, rose: bool) -> bool:
    """Return ``True`` when the contract wins for the drawn tick."""
    family = contract_type.family
    if family is ContractType.CALL:
        return rose
    if family is ContractType.PUT:
        return not rose
    if family is ContractType.DIGITEVEN:
        return last_digit % 2 == 0
    if family is ContractType.DIGITODD:
        return last_digit % 2 == 1
    if family is ContractType.DIGITDIFF:
        return last_digit != int(barrier)
    if family is ContractType.DIGITOVER:
        return last_digit > int(barrier)
    if family is ContractType.DIGITUNDER:
        return last_digit < int(barrier)
    raise ExecutionError(f"Cannot settle contract type {contract_type.value}")


class PaperExecutor:
    """In-memory ``TradeExecutor`` with a simulated balance.

    Args:
        balance: Starting account balance.
        currency: Account currency.
        rewards: Payout table; defaults to the built-in table.
        rng: Random source for ticks (seed it for repeatable runs).
        clock: Returns epoch seconds for outcome timestamps.
    """

    def __init__(
        self,
        balance: float = 1000.0,
        currency: str = "USD",
        rewards: Optional[RewardTable] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if balance < 0:
            raise ValueError(f"balance must be >= 0, got {balance}")
        self._balance = float(balance)
        self._currency = currency
        self._rewards = rewards or default_reward_table()
        self._rng = rng or random.Random()
        self._clock = clock
        self._contract_seq = 0
        self.history: list[TradeOutcome] = []

    @property
    def balance(self) -> float:
        return self._balance

    async def get_account(self) -> AccountSnapshot:
        return AccountSnapshot(
            balance=round(self._balance, 2),
            currency=self._currency,
            login_id="PAPER",
        )

    async def execute(self, params: NextTradeParams) -> TradeOutcome:
        """Buy and settle *params* immediately.

        Raises ``ExecutionError`` when the stake exceeds the balance.
        """
        stake = params.amount
        if stake > self._balance:
            raise ExecutionError(
                f"Insufficient balance: stake {stake:.2f} > balance {self._balance:.2f}"
            )

        last_digit = self._rng.randint(0, 9)
        rose = self._rng.random() < 0.5
        won = settle(params.contract_type, params.barrier, last_digit, rose)

        self._contract_seq += 1
        self._balance -= stake
        if won:
            pct = self._rewards.percentage_for(params.contract_type, stake)
            profit = round(stake * pct / 100.0, 2)
            self._balance += stake + profit
        else:
            profit = -stake

        outcome = TradeOutcome(
            is_win=won,
            stake=stake,
            profit=profit,
            balance=round(self._balance, 2),
            timestamp=self._clock(),
            contract_id=f"paper-{self._contract_seq}",
            symbol=params.symbol,
            contract_type=params.contract_type,
            currency=params.currency,
        )
        self.history.append(outcome)
        logger.debug(
            "Paper trade %s %s stake=%.2f digit=%d → %s (%.2f)",
            outcome.contract_id,
            params.contract_type.value,
            stake,
            last_digit,
            "WIN" if won else "LOSS",
            profit,
        )
        return outcome
