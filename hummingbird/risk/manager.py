"""Risk manager — turns a stream of trade outcomes into the next trade.

One instance belongs to exactly one trading session; calls must be
serialised by the caller.  There are no timers: safety-mode and cooldown
expiry are compared against the injected clock whenever state is queried.

State machine::

    NORMAL → RECOVERING (losses outstanding) → SAFETY_MODE (cooldown) → NORMAL
"""

import logging
import random
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional, Union

from hummingbird.contracts.factory import ContractParamsFactory, random_digit
from hummingbird.contracts.models import (
    AccountSnapshot,
    Basis,
    ContractType,
    DurationUnit,
    NextTradeParams,
    TradeMetadata,
    TradeOutcome,
)
from hummingbird.errors import InvalidTradeOutcome
from hummingbird.risk import safety
from hummingbird.risk.circuit_breaker import (
    BalanceCheck,
    CircuitBreakerConfig,
    CircuitBreakerState,
    RapidLossState,
    RapidLossTracker,
    validate_account_balance,
)
from hummingbird.risk.safety import SOURCE_RISK_MANAGER, SafetyStatus
from hummingbird.strategy.analysis import StrategyMetrics
from hummingbird.strategy.compiler import StrategyParser
from hummingbird.strategy.registry import default_recovery

logger = logging.getLogger("hummingbird.risk")

MAX_RECOVERY_ATTEMPTS = 5
SAFETY_CONSECUTIVE_MULTIPLIER = 2  # × strategy max_consecutive_losses
BALANCE_FLOOR_MULTIPLIER = 3  # × base stake
LAST_RESORT_MULTIPLIER = 12  # × outstanding loss

RECOVERY_MODES = ("compounding", "last_resort")


@dataclass(frozen=True)
class RiskManagerState:
    consecutive_losses: int
    total_loss_amount: float
    daily_loss_amount: float
    winning_trades: int
    losing_trades: int
    total_trades: int
    recovery_attempts: int
    max_stake_seen: float
    min_stake_seen: float
    current_strategy_index: int
    current_recovery_step: int
    last_result_win: Optional[bool]
    safety: SafetyStatus


def _utc_date(timestamp: float) -> date:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).date()


class RiskManager:
    """Stake sizing, recovery sequencing and safety gating for one session.

    Args:
        base_stake: Stake of the first step; every risk threshold scales off it.
        market: Default symbol when a step does not name one.
        currency: Default account currency.
        contract_type: Contract used for safety and fallback trades.
        duration_value: Default contract duration.
        duration_unit: Default duration unit.
        parser: Compiled strategies; ``None`` uses the built-in
                ``default_recovery`` strategy for *base_stake*.
        breaker_config: Circuit-breaker limits (defaults when ``None``).
        recovery_mode: ``"compounding"`` follows the compiled steps;
                       ``"last_resort"`` additionally arms a single large
                       DIGITDIFF trade after a partial recovery.
        clock: Returns epoch seconds.
        rng: Random source for DIGITDIFF barriers.

    Raises:
        ValueError: Invalid base stake, market, currency, contract type or
                    recovery mode.
    """

    def __init__(
        self,
        base_stake: float,
        market: str,
        currency: str,
        contract_type: Union[ContractType, str],
        duration_value: int = 1,
        duration_unit: DurationUnit = DurationUnit.TICKS,
        parser: Optional[StrategyParser] = None,
        breaker_config: Optional[CircuitBreakerConfig] = None,
        recovery_mode: str = "compounding",
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ) -> None:
        if not isinstance(base_stake, (int, float)) or base_stake <= 0:
            raise ValueError(f"base_stake must be positive, got {base_stake!r}")
        if not market:
            raise ValueError("market is required")
        if not currency:
            raise ValueError("currency is required")
        if recovery_mode not in RECOVERY_MODES:
            raise ValueError(
                f"recovery_mode must be one of {RECOVERY_MODES}, got {recovery_mode!r}"
            )

        self._base_stake = float(base_stake)
        self._market = market
        self._currency = currency
        self._contract_type = ContractType.parse(contract_type)
        self._duration_value = duration_value
        self._duration_unit = duration_unit
        self._recovery_mode = recovery_mode
        self._clock = clock
        self._rng = rng or random.Random()
        self._parser = parser or StrategyParser(
            default_recovery(self._base_stake, market, self._contract_type)
        )
        self._breaker_config = breaker_config or CircuitBreakerConfig()
        self._factory = ContractParamsFactory(
            symbol=market,
            currency=currency,
            duration_value=duration_value,
            duration_unit=duration_unit,
            rng=self._rng,
        )
        self._rapid = RapidLossTracker(
            self._breaker_config.rapid_loss, self._base_stake, clock
        )

        self._safety: SafetyStatus = safety.INACTIVE
        self._breaker_state = CircuitBreakerState()
        self._reset_counters()
        self._loss_day: date = _utc_date(clock())

    def _reset_counters(self) -> None:
        self._consecutive_losses = 0
        self._total_loss = 0.0
        self._daily_loss = 0.0
        self._winning_trades = 0
        self._losing_trades = 0
        self._total_trades = 0
        self._recovery_attempts = 0
        self._max_stake_seen = 0.0
        self._min_stake_seen = 0.0
        self._last_result_win: Optional[bool] = None
        self._last_trade_time = 0.0
        self._last_resort_armed = False

    # ── Properties ───────────────────────────────────────────────────────

    @property
    def base_stake(self) -> float:
        return self._base_stake

    @property
    def parser(self) -> StrategyParser:
        return self._parser

    @property
    def breaker_config(self) -> CircuitBreakerConfig:
        return self._breaker_config

    @property
    def breaker_state(self) -> CircuitBreakerState:
        return self._breaker_state

    @property
    def consecutive_losses(self) -> int:
        return self._consecutive_losses

    @property
    def total_loss_amount(self) -> float:
        return self._total_loss

    @property
    def daily_loss_amount(self) -> float:
        self._roll_daily_loss()
        return self._daily_loss

    @property
    def recovery_attempts(self) -> int:
        return self._recovery_attempts

    @property
    def safety(self) -> SafetyStatus:
        return self._safety

    # ── Result processing ────────────────────────────────────────────────

    def process_result(self, outcome: Union[TradeOutcome, dict[str, Any]]) -> NextTradeParams:
        """Apply one settled trade and return what to trade next.

        Malformed input never raises: it yields a safety response tagged
        ``invalid_trade_data``.  A result that breaches a safety trigger
        yields a safety response instead of a next step.
        """
        try:
            outcome = TradeOutcome.from_dict(outcome)
        except InvalidTradeOutcome as exc:
            logger.warning("Invalid trade result received: %s", exc)
            return self.safety_response(safety.REASON_INVALID_TRADE_DATA)

        self._roll_daily_loss()

        try:
            self._total_trades += 1
            self._last_resort_armed = False
            self._last_result_win = outcome.is_win
            self._last_trade_time = self._clock()
            self._track_stake(outcome.stake)

            if outcome.is_win:
                self.handle_win(outcome)
            else:
                self.handle_loss(outcome)

            if self.is_in_safety_mode():
                return self.safety_response(self._safety.reason)

            reason = self.should_enter_safety_mode(outcome)
            if reason is not None:
                self.enter_safety_mode(reason)
                return self.safety_response(reason)
        except Exception:
            logger.exception("Error processing trade result")
            self.enter_safety_mode(safety.REASON_PROCESSING_ERROR)
            return self.safety_response(safety.REASON_PROCESSING_ERROR)

        return self.get_next_trade_params()

    def _track_stake(self, stake: float) -> None:
        if self._max_stake_seen == 0 or stake > self._max_stake_seen:
            self._max_stake_seen = stake
        if self._min_stake_seen == 0 or stake < self._min_stake_seen:
            self._min_stake_seen = stake

    def handle_win(self, outcome: TradeOutcome) -> None:
        self._consecutive_losses = 0
        self._winning_trades += 1
        self._recovery_attempts = 0

        if self._total_loss <= 0:
            return

        recovered = max(0.0, outcome.profit)
        self._total_loss = max(0.0, self._total_loss - recovered)
        if self._total_loss == 0:
            logger.info("Full recovery achieved (recovered %.2f)", recovered)
            self._last_resort_armed = False
        else:
            logger.info(
                "Partial recovery: %.2f recovered, %.2f remaining",
                recovered,
                self._total_loss,
            )
            if self._recovery_mode == "last_resort":
                self._last_resort_armed = True

    def handle_loss(self, outcome: TradeOutcome) -> None:
        self._consecutive_losses += 1
        self._losing_trades += 1
        self._recovery_attempts += 1

        loss = outcome.stake
        self._total_loss += loss
        self._daily_loss += loss
        self._rapid.record(loss)

        logger.warning(
            "Loss recorded: trade_loss=%.2f total_loss=%.2f consecutive=%d",
            loss,
            self._total_loss,
            self._consecutive_losses,
        )

        if self._recovery_attempts >= MAX_RECOVERY_ATTEMPTS and not self.is_in_safety_mode():
            self.enter_safety_mode(safety.REASON_MAX_RECOVERY_ATTEMPTS)

    def should_enter_safety_mode(self, outcome: TradeOutcome) -> Optional[str]:
        """Return the first tripped safety trigger's reason, or ``None``."""
        config = self._parser.config()
        if self._consecutive_losses >= config.max_consecutive_losses * SAFETY_CONSECUTIVE_MULTIPLIER:
            return safety.REASON_EXCESSIVE_CONSECUTIVE_LOSSES
        if self._recovery_attempts >= MAX_RECOVERY_ATTEMPTS:
            return safety.REASON_MAX_RECOVERY_ATTEMPTS
        if outcome.balance < self._base_stake * BALANCE_FLOOR_MULTIPLIER:
            return safety.REASON_BALANCE_BELOW_FLOOR
        if self._total_loss > self._base_stake * config.max_risk_exposure:
            return safety.REASON_MAX_RISK_EXPOSURE
        return None

    # ── Next trade ───────────────────────────────────────────────────────

    def get_next_trade_params(self) -> NextTradeParams:
        if self.is_in_safety_mode():
            return self.safety_response(self._safety.reason)

        try:
            if self._last_resort_armed:
                return self._last_resort_params()

            table = self._parser.table()
            step = table.step_for_losses(self._consecutive_losses)
            return self._factory.create(
                step.contract_type or self._contract_type,
                step.amount,
                step.barrier,
                symbol=step.symbol or self._market,
                currency=step.currency or self._currency,
                duration_value=step.duration_value or self._duration_value,
                duration_unit=step.duration_unit or self._duration_unit,
                basis=step.basis,
                metadata=TradeMetadata(
                    strategy=table.config.name,
                    step_number=step.step_number,
                    recovery_mode=self._recovery_mode if self._consecutive_losses else None,
                ),
            )
        except Exception:
            logger.exception("Error getting next trade params, using base-stake fallback")
            return self._base_trade_params()

    def _last_resort_params(self) -> NextTradeParams:
        amount = round(self._total_loss * LAST_RESORT_MULTIPLIER, 2)
        logger.warning(
            "LAST_RESORT trade armed: outstanding=%.2f stake=%.2f",
            self._total_loss,
            amount,
        )
        return self._factory.create(
            ContractType.DIGITDIFF,
            amount,
            random_digit(self._rng),
            basis=Basis.STAKE,
            metadata=TradeMetadata(
                strategy=self._parser.config().name,
                recovery_mode="last_resort",
            ),
        )

    def _base_trade_params(self, metadata: Optional[TradeMetadata] = None) -> NextTradeParams:
        return self._factory.create(
            self._contract_type,
            self._base_stake,
            basis=Basis.STAKE,
            metadata=metadata,
        )

    def safety_response(self, reason: Optional[str]) -> NextTradeParams:
        """Minimal-risk base-stake trade tagged ``safety_mode=True``."""
        return self._base_trade_params(
            TradeMetadata(
                safety_mode=True,
                reason=reason,
                cooldown_remaining=self._safety.remaining(self._clock()),
                strategy=self._parser.config().name,
            )
        )

    # ── Safety mode ──────────────────────────────────────────────────────

    def enter_safety_mode(
        self,
        reason: str,
        cooldown: Optional[float] = None,
        source: str = SOURCE_RISK_MANAGER,
    ) -> None:
        """Activate safety mode for *cooldown* seconds (breaker default)."""
        now = self._clock()
        if cooldown is None:
            cooldown = self._breaker_config.cooldown_seconds
        until = now + cooldown
        if self._safety.is_active(now):
            until = max(until, self._safety.until)
        self._safety = SafetyStatus(active=True, until=until, reason=reason, source=source)
        logger.warning(
            "SAFETY_MODE entered: reason=%s source=%s cooldown=%.0fs",
            reason,
            source,
            until - now,
        )

    def is_in_safety_mode(self) -> bool:
        """``True`` while the cooldown runs; expiry returns to normal lazily."""
        if not self._safety.active:
            return False
        if self._safety.is_active(self._clock()):
            return True
        logger.info("Safety mode expired (reason was %s)", self._safety.reason)
        self._safety = safety.INACTIVE
        return False

    def reset_safety_mode(self) -> None:
        """Clear safety mode, breaker state and all rapid-loss history."""
        self._safety = safety.INACTIVE
        self._breaker_state = CircuitBreakerState()
        self._rapid.clear()
        logger.info("Safety mode reset")

    # ── Circuit breakers ─────────────────────────────────────────────────

    def check_circuit_breakers(self, account: AccountSnapshot) -> bool:
        """Evaluate every breaker; ``True`` means stop trading.

        A trip updates the breaker state and safety status and is logged.
        """
        self._roll_daily_loss()
        config = self._breaker_config
        reasons: list[str] = []

        if self._daily_loss >= config.max_daily_loss:
            reasons.append(safety.REASON_DAILY_LOSS_LIMIT)
        if self._total_loss >= config.max_absolute_loss:
            reasons.append(safety.REASON_ABSOLUTE_LOSS_LIMIT)
        if self._consecutive_losses >= config.max_consecutive_losses:
            reasons.append(safety.REASON_MAX_CONSECUTIVE_LOSSES)
        if not self.validate_account_balance(self._base_stake, account).is_valid:
            reasons.append(safety.REASON_BALANCE_VALIDATION)
        if self.check_rapid_losses():
            reasons.append(safety.REASON_RAPID_LOSS)

        if not reasons:
            return False

        now = self._clock()
        until = now + config.cooldown_seconds
        source = safety.SOURCE_CIRCUIT_BREAKER
        if safety.REASON_RAPID_LOSS in reasons:
            until = max(until, self._rapid.deadline())
            if len(reasons) == 1:
                source = safety.SOURCE_RAPID_LOSS

        self._breaker_state = CircuitBreakerState(
            triggered=True,
            last_triggered=now,
            last_reason=reasons[-1],
            reasons=tuple(reasons),
            safety_mode_until=until,
        )
        self.enter_safety_mode(reasons[-1], cooldown=until - now, source=source)
        logger.warning("CIRCUIT_BREAKER triggered: reasons=%s", ",".join(reasons))
        return True

    def validate_account_balance(self, amount: float, account: AccountSnapshot) -> BalanceCheck:
        return validate_account_balance(
            amount, account.balance, self._base_stake, self._breaker_config
        )

    # ── Rapid loss ───────────────────────────────────────────────────────

    def record_rapid_loss(self, amount: float) -> bool:
        return self._rapid.record(amount)

    def check_rapid_losses(self, amount: Optional[float] = None) -> bool:
        return self._rapid.check(amount)

    def is_in_rapid_loss_cooldown(self) -> bool:
        return self._rapid.in_cooldown()

    def rapid_loss_cooldown_remaining(self) -> float:
        return self._rapid.cooldown_remaining()

    def rapid_loss_state(self) -> RapidLossState:
        return self._rapid.state()

    # ── Lifecycle & reporting ────────────────────────────────────────────

    def _roll_daily_loss(self) -> None:
        today = _utc_date(self._clock())
        if today != self._loss_day:
            if self._daily_loss:
                logger.info("Daily loss reset (%.2f on %s)", self._daily_loss, self._loss_day)
            self._daily_loss = 0.0
            self._loss_day = today

    def reset(self) -> None:
        """Trading stopped: forget counters, losses and safety state."""
        self._reset_counters()
        self._loss_day = _utc_date(self._clock())
        self.reset_safety_mode()

    def state(self) -> RiskManagerState:
        self.is_in_safety_mode()
        self._roll_daily_loss()
        steps = len(self._parser.table())
        return RiskManagerState(
            consecutive_losses=self._consecutive_losses,
            total_loss_amount=self._total_loss,
            daily_loss_amount=self._daily_loss,
            winning_trades=self._winning_trades,
            losing_trades=self._losing_trades,
            total_trades=self._total_trades,
            recovery_attempts=self._recovery_attempts,
            max_stake_seen=self._max_stake_seen,
            min_stake_seen=self._min_stake_seen,
            current_strategy_index=self._parser.active_index,
            current_recovery_step=min(self._consecutive_losses, steps - 1),
            last_result_win=self._last_result_win,
            safety=self._safety,
        )

    def strategy_metrics(self) -> StrategyMetrics:
        return self._parser.metrics()

    def strategy_meta(self) -> dict:
        return self._parser.meta_info()

    def strategy_visualization(self) -> dict:
        return self._parser.visualization()
