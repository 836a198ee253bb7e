"""HummingBird — trading session (orchestration loop).

Connects the risk manager and an executor into a single polling loop.
Circuit breakers are checked → next trade is decided → executor places
and settles it → the outcome is fed back into the risk manager.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from hummingbird.api.routers import update_session_status
from hummingbird.contracts.models import AccountSnapshot, TradeOutcome
from hummingbird.executor.base import TradeExecutor
from hummingbird.models.session_config import SessionConfig
from hummingbird.risk.manager import RiskManager
from hummingbird.stats import calculate_stats

logger = logging.getLogger("hummingbird.session")


class TradingSession:
    """Runs one decide-execute-settle cycle per call.

    Args:
        config: Per-session settings.
        risk_manager: The session's own ``RiskManager``.
        executor: A ``TradeExecutor`` (venue adapter, ``PaperExecutor`` or mock).
    """

    def __init__(
        self,
        config: SessionConfig,
        risk_manager: RiskManager,
        executor: TradeExecutor,
    ) -> None:
        self._config = config
        self._risk = risk_manager
        self._executor = executor
        self._running: bool = False
        self._cycle_count: int = 0
        self._outcomes: list[TradeOutcome] = []

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def risk_manager(self) -> RiskManager:
        return self._risk

    @property
    def running(self) -> bool:
        return self._running

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    @property
    def outcomes(self) -> list[TradeOutcome]:
        return list(self._outcomes)

    def stats(self) -> dict:
        return calculate_stats(self._outcomes)

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Fetch the opening balance and mark the session running."""
        try:
            account = await self._executor.get_account()
            update_session_status(
                session_name=self.name,
                mode="running",
                market=self._config.market,
                strategy=self._risk.parser.config().name,
                balance=account.balance,
                running=True,
                started_at=datetime.now(timezone.utc).isoformat(),
            )
        except Exception as exc:
            logger.error(
                "Session '%s' — failed to initialise (executor unreachable?): %s",
                self.name, exc,
            )
        self._running = True

    def stop(self) -> None:
        """Signal the session to stop after the current cycle."""
        self._running = False

    # ── Polling loop ─────────────────────────────────────────────────────

    async def run(
        self,
        poll_interval: Optional[float] = None,
        max_cycles: int = 0,
    ) -> list[dict]:
        """Run the trading loop until stopped.

        Args:
            poll_interval: Seconds between cycles. Defaults to the session
                           config.
            max_cycles: Stop after this many cycles (0 = unlimited).

        Returns:
            List of per-cycle result dicts.
        """
        if poll_interval is None:
            poll_interval = self._config.poll_interval_seconds
        results: list[dict] = []
        cycle = 0

        while self._running:
            cycle += 1
            self._cycle_count += 1
            try:
                result = await self.run_once()
                results.append(result)
                logger.info("Session '%s' cycle %d: %s", self.name, cycle, result.get("action"))
            except Exception as exc:
                logger.error("Session '%s' cycle %d error: %s", self.name, cycle, exc)
                results.append({"action": "error", "reason": str(exc)})

            update_session_status(
                session_name=self.name,
                cycle_count=self._cycle_count,
                last_cycle_at=datetime.now(timezone.utc).isoformat(),
            )

            if max_cycles > 0 and cycle >= max_cycles:
                break

            # Interruptible sleep — checks _running at least once a second
            remaining = poll_interval
            while remaining > 0 and self._running:
                step = min(1.0, remaining)
                await asyncio.sleep(step)
                remaining -= step

        self._running = False
        update_session_status(session_name=self.name, running=False, stats=self.stats())
        return results

    # ── Single cycle ─────────────────────────────────────────────────────

    async def run_once(self) -> dict:
        """Execute one trading cycle.

        Returns a dict describing the action taken:

        - ``{"action": "stopped", "reason": "take_profit"|"stop_loss", ...}``
        - ``{"action": "halted", "reason": "<breaker reason>", ...}``
        - ``{"action": "skipped", "reason": "safety_mode", ...}``
        - ``{"action": "trade_settled", ...}``
        """
        # 1 ── Session limits
        reason = self._limit_reached()
        if reason is not None:
            net_pnl = round(sum(o.profit for o in self._outcomes), 2)
            logger.warning(
                "Session '%s' stopping: %s reached (net P&L %.2f)", self.name, reason, net_pnl,
            )
            self.stop()
            update_session_status(session_name=self.name, mode="stopped", running=False)
            return {"action": "stopped", "reason": reason, "net_pnl": net_pnl}

        # 2 ── Circuit breakers
        account = await self._executor.get_account()
        if self._risk.check_circuit_breakers(account):
            breaker = self._risk.breaker_state
            self._push_status(account)
            return {
                "action": "halted",
                "reason": breaker.last_reason,
                "reasons": list(breaker.reasons),
            }

        # 3 ── Decide
        params = self._risk.get_next_trade_params()
        if params.is_safety_trade and not self._config.trade_in_safety_mode:
            self._push_status(account)
            return {
                "action": "skipped",
                "reason": "safety_mode",
                "safety_reason": params.metadata.reason,
                "cooldown_remaining": round(params.metadata.cooldown_remaining, 1),
            }

        # 4 ── Execute + settle
        outcome = await self._executor.execute(params)
        self._outcomes.append(outcome)
        next_params = self._risk.process_result(outcome)

        self._push_status(
            AccountSnapshot(balance=outcome.balance, currency=account.currency),
            last_trade={
                "contract_id": outcome.contract_id,
                "contract_type": params.contract_type.value,
                "amount": params.amount,
                "is_win": outcome.is_win,
                "profit": outcome.profit,
            },
        )
        return {
            "action": "trade_settled",
            "contract_id": outcome.contract_id,
            "contract_type": params.contract_type.value,
            "amount": params.amount,
            "barrier": params.barrier,
            "is_win": outcome.is_win,
            "profit": outcome.profit,
            "balance": outcome.balance,
            "step_number": params.metadata.step_number,
            "recovery_mode": params.metadata.recovery_mode,
            "next_amount": next_params.amount,
            "safety_mode": next_params.is_safety_trade,
            "safety_reason": next_params.metadata.reason,
        }

    def _limit_reached(self) -> Optional[str]:
        """Name the cumulative P&L limit the session has hit, if any."""
        net_pnl = sum(o.profit for o in self._outcomes)
        if self._config.take_profit is not None and net_pnl >= self._config.take_profit:
            return "take_profit"
        if self._config.stop_loss is not None and net_pnl <= -self._config.stop_loss:
            return "stop_loss"
        return None

    def _push_status(self, account: AccountSnapshot, **extra) -> None:
        state = self._risk.state()
        breaker = self._risk.breaker_state
        update_session_status(
            session_name=self.name,
            balance=account.balance,
            consecutive_losses=state.consecutive_losses,
            total_loss_amount=round(state.total_loss_amount, 2),
            daily_loss_amount=round(state.daily_loss_amount, 2),
            safety_mode=state.safety.active,
            safety_reason=state.safety.reason,
            circuit_breaker_active=breaker.triggered,
            circuit_breaker_reasons=list(breaker.reasons),
            **extra,
        )
