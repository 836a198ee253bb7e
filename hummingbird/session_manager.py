"""SessionManager — runs multiple TradingSessions concurrently.

Each enabled ``SessionConfig`` gets its own ``RiskManager`` and
``TradingSession``.  Sessions run as concurrent ``asyncio`` tasks; each
session serialises its own calls into its risk manager.
"""

import asyncio
import logging
import random
from typing import Callable, Optional, Sequence

from hummingbird.executor.base import TradeExecutor
from hummingbird.models.session_config import SessionConfig
from hummingbird.risk.circuit_breaker import CircuitBreakerConfig
from hummingbird.risk.manager import RiskManager
from hummingbird.session import TradingSession
from hummingbird.strategy.compiler import StrategyParser
from hummingbird.strategy.models import StrategyConfig
from hummingbird.strategy.registry import get_strategy

logger = logging.getLogger("hummingbird.session_manager")


class SessionManager:
    """Lifecycle manager for one-or-many trading sessions.

    Args:
        sessions: ``SessionConfig`` items (disabled ones are ignored).
        executor_factory: Called with each ``SessionConfig`` to build that
                          session's executor.
        strategies: Strategies loaded from a document, used by sessions
                    that set ``strategy_index``.
        breaker_config: Circuit-breaker limits shared by every session.
        rng: Random source handed to each risk manager.
    """

    def __init__(
        self,
        sessions: list[SessionConfig],
        executor_factory: Callable[[SessionConfig], TradeExecutor],
        strategies: Optional[Sequence[StrategyConfig]] = None,
        breaker_config: Optional[CircuitBreakerConfig] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._configs = [s for s in sessions if s.enabled]
        self._executor_factory = executor_factory
        self._strategies = list(strategies) if strategies else None
        self._breaker_config = breaker_config
        self._rng = rng
        self._sessions: dict[str, TradingSession] = {}
        self._tasks: dict[str, asyncio.Task] = {}

        names = [s.name for s in self._configs]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate session names: {names}")

    # ── Public API ───────────────────────────────────────────────────────

    @property
    def sessions(self) -> dict[str, TradingSession]:
        """Map of session-name → ``TradingSession``."""
        return dict(self._sessions)

    @property
    def session_names(self) -> list[str]:
        return list(self._sessions.keys())

    def _build_parser(self, config: SessionConfig) -> StrategyParser:
        if config.strategy_index is not None:
            if self._strategies is None:
                raise ValueError(
                    f"Session '{config.name}' selects strategy_index "
                    f"{config.strategy_index} but no strategy document was loaded"
                )
            return StrategyParser(
                self._strategies,
                strategy_index=config.strategy_index,
                base_stake=config.base_stake,
            )
        strategy = get_strategy(
            config.strategy,
            config.base_stake,
            symbol=config.market,
            contract_type=config.contract_type,
        )
        return StrategyParser(strategy)

    def build_sessions(self) -> None:
        """Instantiate a ``TradingSession`` per enabled config.

        Call **once** before :meth:`run_all`.
        """
        for config in self._configs:
            parser = self._build_parser(config)
            risk_manager = RiskManager(
                base_stake=config.base_stake,
                market=config.market,
                currency=config.currency,
                contract_type=config.contract_type,
                duration_value=config.duration_value,
                duration_unit=config.duration_unit,
                parser=parser,
                breaker_config=self._breaker_config,
                recovery_mode=config.recovery_mode,
                rng=self._rng,
            )
            session = TradingSession(config, risk_manager, self._executor_factory(config))
            self._sessions[config.name] = session
            logger.info(
                "Registered session '%s' → %s on %s (base stake %.2f)",
                config.name,
                parser.config().name,
                config.market,
                config.base_stake,
            )

    async def initialize_all(self) -> None:
        for name, session in self._sessions.items():
            await session.initialize()
            logger.info("Initialised session '%s'.", name)

    async def run_all(self, max_cycles: int = 0) -> dict[str, list[dict]]:
        """Launch all sessions concurrently and wait for them to finish.

        Returns:
            ``{session_name: [cycle_results]}`` for every session.
        """
        if not self._sessions:
            self.build_sessions()

        await self.initialize_all()

        async def _run_session(name: str, session: TradingSession):
            logger.info("Starting session '%s'.", name)
            return await session.run(max_cycles=max_cycles)

        self._tasks = {
            name: asyncio.create_task(_run_session(name, s))
            for name, s in self._sessions.items()
        }

        results: dict[str, list[dict]] = {}
        for name, task in self._tasks.items():
            try:
                results[name] = await task
            except Exception as exc:
                logger.error("Session '%s' crashed: %s", name, exc)
                results[name] = [{"action": "error", "reason": str(exc)}]
        return results

    def stop_all(self) -> None:
        """Signal every session to stop gracefully."""
        for name, session in self._sessions.items():
            session.stop()
            logger.info("Stop signal sent to session '%s'.", name)

    def stop_session(self, name: str) -> None:
        session = self._sessions.get(name)
        if session:
            session.stop()
            logger.info("Stop signal sent to session '%s'.", name)

    def get_status(self, name: Optional[str] = None) -> dict:
        """Return aggregated or per-session status."""
        if name is not None:
            session = self._sessions.get(name)
            if session is None:
                return {"error": f"Unknown session: {name}"}
            return self._session_status(session)
        return {"sessions": {n: self._session_status(s) for n, s in self._sessions.items()}}

    @staticmethod
    def _session_status(session: TradingSession) -> dict:
        state = session.risk_manager.state()
        return {
            "session_name": session.name,
            "running": session.running,
            "cycle_count": session.cycle_count,
            "consecutive_losses": state.consecutive_losses,
            "total_loss_amount": round(state.total_loss_amount, 2),
            "safety_mode": state.safety.active,
            "safety_reason": state.safety.reason,
        }
