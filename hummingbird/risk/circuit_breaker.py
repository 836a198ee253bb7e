"""Circuit breakers — loss ceilings, balance validation, rapid-loss detection.

No timers: every cooldown is a stored deadline compared against the
injected clock on the next query.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

logger = logging.getLogger("hummingbird.risk")


@dataclass(frozen=True)
class RapidLossConfig:
    """Rapid-loss burst detection.

    Args:
        time_window_seconds: Sliding window losses are counted in.
        threshold: Qualifying losses inside the window that trip the breaker.
        min_stake_multiplier: A loss qualifies when its amount is at least
                              this multiple of the base stake.
        initial_cooldown_seconds: Cooldown after the first trigger.
        max_cooldown_seconds: Cooldown ceiling.
        cooldown_multiplier: Growth factor per repeated trigger.
    """

    time_window_seconds: float = 30.0
    threshold: int = 2
    min_stake_multiplier: float = 1.0
    initial_cooldown_seconds: float = 30.0
    max_cooldown_seconds: float = 300.0
    cooldown_multiplier: float = 2.0


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Limits evaluated by ``RiskManager.check_circuit_breakers``."""

    max_absolute_loss: float = 1000.0
    max_daily_loss: float = 500.0
    max_consecutive_losses: int = 5
    max_balance_percentage_loss: float = 0.5  # fraction of balance one stake may risk
    min_balance_multiplier: float = 3.0  # balance after a trade must cover N × base stake
    cooldown_seconds: float = 60.0
    rapid_loss: RapidLossConfig = field(default_factory=RapidLossConfig)


@dataclass(frozen=True)
class CircuitBreakerState:
    triggered: bool = False
    last_triggered: float = 0.0
    last_reason: str = ""
    reasons: tuple[str, ...] = ()
    safety_mode_until: float = 0.0


@dataclass(frozen=True)
class BalanceCheck:
    """Result of validating a proposed stake against the account balance."""

    is_valid: bool
    reasons: tuple[str, ...]
    balance: float
    proposed_stake: float
    risk_percentage: float
    required_minimum: float
    available_after_trade: float


def validate_account_balance(
    amount: float,
    balance: float,
    base_stake: float,
    config: CircuitBreakerConfig,
) -> BalanceCheck:
    """Check *amount* against *balance*.

    Reasons: ``insufficient_balance`` (stake above balance),
    ``minimum_balance_violation`` (balance after the trade below
    ``min_balance_multiplier × base_stake``), ``max_risk_exceeded`` (stake
    above ``max_balance_percentage_loss`` of the balance).
    """
    reasons: list[str] = []
    risk_percentage = (amount / balance) * 100.0 if balance > 0 else float("inf")
    available_after_trade = balance - amount
    required_minimum = base_stake * config.min_balance_multiplier

    if amount > balance:
        reasons.append("insufficient_balance")
    if available_after_trade < required_minimum:
        reasons.append("minimum_balance_violation")
    if risk_percentage > config.max_balance_percentage_loss * 100.0:
        reasons.append("max_risk_exceeded")

    return BalanceCheck(
        is_valid=not reasons,
        reasons=tuple(reasons),
        balance=balance,
        proposed_stake=amount,
        risk_percentage=risk_percentage,
        required_minimum=required_minimum,
        available_after_trade=available_after_trade,
    )


@dataclass(frozen=True)
class RapidLossState:
    recent_losses: tuple[tuple[float, float], ...]  # (timestamp, amount)
    last_trigger_time: float
    trigger_count: int
    current_cooldown_seconds: float
    active: bool


class RapidLossTracker:
    """Sliding-window loss counter with exponential cooldown backoff.

    The trigger count survives cooldown expiry so a repeat offender waits
    ``initial × multiplier^(count-1)`` (capped) on each new incident.  Only
    :meth:`clear` resets it.
    """

    def __init__(
        self,
        config: RapidLossConfig,
        base_stake: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._base_stake = base_stake
        self._clock = clock
        self._losses: list[tuple[float, float]] = []
        self._last_trigger_time: float = 0.0
        self._trigger_count: int = 0
        self._cooldown: float = 0.0
        self._active: bool = False

    @property
    def qualifying_amount(self) -> float:
        return self._config.min_stake_multiplier * self._base_stake

    @property
    def trigger_count(self) -> int:
        return self._trigger_count

    @property
    def current_cooldown(self) -> float:
        return self._cooldown

    def record(self, amount: float) -> bool:
        """Record a loss; returns ``False`` when it is too small to qualify."""
        if amount < self.qualifying_amount:
            return False
        self._losses.append((self._clock(), amount))
        return True

    def _purge(self, now: float) -> None:
        window = self._config.time_window_seconds
        self._losses = [(ts, amt) for ts, amt in self._losses if now - ts <= window]

    def in_cooldown(self) -> bool:
        """``True`` while a cooldown is running; expiry clears losses lazily."""
        if not self._active:
            return False
        deadline = self.deadline()
        if self._clock() >= deadline:
            # Losses from before expiry belong to the incident just served.
            self._losses = [(ts, amt) for ts, amt in self._losses if ts > deadline]
            self._active = False
            return False
        return True

    def cooldown_remaining(self) -> float:
        if not self.in_cooldown():
            return 0.0
        return max(0.0, self._last_trigger_time + self._cooldown - self._clock())

    def check(self, amount: Optional[float] = None) -> bool:
        """Optionally record *amount*, then report whether a burst is active."""
        if amount is not None:
            self.record(amount)
        if self.in_cooldown():
            return True

        now = self._clock()
        self._purge(now)
        if len(self._losses) < self._config.threshold:
            return False

        self._trigger_count += 1
        self._last_trigger_time = now
        self._cooldown = min(
            self._config.initial_cooldown_seconds
            * self._config.cooldown_multiplier ** (self._trigger_count - 1),
            self._config.max_cooldown_seconds,
        )
        self._active = True
        logger.warning(
            "RAPID_LOSS_DETECTED losses=%d total=%.2f cooldown=%.0fs trigger_count=%d",
            len(self._losses),
            sum(amt for _, amt in self._losses),
            self._cooldown,
            self._trigger_count,
        )
        return True

    def deadline(self) -> float:
        return self._last_trigger_time + self._cooldown

    def state(self) -> RapidLossState:
        return RapidLossState(
            recent_losses=tuple(self._losses),
            last_trigger_time=self._last_trigger_time,
            trigger_count=self._trigger_count,
            current_cooldown_seconds=self._cooldown,
            active=self._active,
        )

    def clear(self) -> None:
        """Forget everything, including the trigger count."""
        self._losses = []
        self._last_trigger_time = 0.0
        self._trigger_count = 0
        self._cooldown = 0.0
        self._active = False
