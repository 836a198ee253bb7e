"""HummingBird — application entry point.

Boots the FastAPI internal server and provides the CLI entry point for
simulate, compile and serve modes.
"""

import logging

from fastapi import FastAPI

from hummingbird.api.routers import router

app = FastAPI(title="HummingBird Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("hummingbird")


@app.get("/health")
async def health():
    """Liveness check."""
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _build_parser():
    import argparse

    parser = argparse.ArgumentParser(description="HummingBird trading decision engine")
    parser.add_argument(
        "--mode",
        choices=["simulate", "compile", "serve"],
        default="simulate",
        help="simulate: paper-trade a session; compile: print the step table; "
             "serve: API server plus paper sessions (default: simulate)",
    )
    parser.add_argument("--trades", type=int, default=20, help="Cycles to simulate (default: 20)")
    parser.add_argument("--strategies", help="Strategy document (JSON); overrides STRATEGIES_PATH")
    parser.add_argument("--strategy-index", type=int, default=None,
                        help="Strategy to use from the document (default: first)")
    parser.add_argument("--base-stake", type=float, default=None, help="Overrides BASE_STAKE")
    parser.add_argument("--seed", type=int, default=None, help="Seed for repeatable simulations")
    parser.add_argument("--env", default=None, help="Path to a .env file")
    return parser


def _run_cli(argv=None) -> None:
    """Parse CLI arguments and dispatch to the appropriate mode."""
    import asyncio
    import json
    import random

    from hummingbird.api.routers import configure_routers
    from hummingbird.config import load_breaker_config, load_config
    from hummingbird.strategy.loader import load_strategy_document

    args = _build_parser().parse_args(argv)
    config = load_config(args.env)

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    base_stake = args.base_stake or config.base_stake
    strategies_path = args.strategies or config.strategies_path
    strategies = load_strategy_document(strategies_path) if strategies_path else None
    strategy_index = args.strategy_index
    if strategies is not None and strategy_index is None:
        strategy_index = 0

    rng = random.Random(args.seed) if args.seed is not None else random.Random()
    session_config = _session_config(config, base_stake, strategy_index, args.mode)
    manager = _build_manager(config, session_config, strategies, load_breaker_config(args.env), rng)
    manager.build_sessions()

    session = manager.sessions[session_config.name]
    configure_routers(parser=session.risk_manager.parser, session_manager=manager)

    if args.mode == "compile":
        print(json.dumps(session.risk_manager.parser.formatted_output(), indent=2))
        return

    import signal

    def handle_shutdown(signum, frame):
        logger.info("Shutdown signal received — stopping gracefully.")
        manager.stop_all()

    signal.signal(signal.SIGINT, handle_shutdown)

    if args.mode == "serve":
        asyncio.run(_serve(manager, config.health_port))
    else:
        asyncio.run(_simulate(manager, args.trades))


def _session_config(config, base_stake: float, strategy_index, mode: str):
    from hummingbird.models.session_config import SessionConfig

    return SessionConfig(
        name="paper",
        base_stake=base_stake,
        market=config.market,
        currency=config.currency,
        contract_type=config.contract_type,
        duration_value=config.duration_value,
        duration_unit=config.duration_unit,
        strategy=config.strategy,
        strategy_index=strategy_index,
        recovery_mode=config.recovery_mode,
        trade_in_safety_mode=config.trade_in_safety_mode,
        take_profit=config.take_profit,
        stop_loss=config.stop_loss,
        poll_interval_seconds=0.0 if mode == "simulate" else config.poll_interval_seconds,
    )


def _build_manager(config, session_config, strategies, breaker_config, rng):
    from hummingbird.executor.paper import PaperExecutor
    from hummingbird.session_manager import SessionManager

    return SessionManager(
        sessions=[session_config],
        executor_factory=lambda _: PaperExecutor(
            balance=config.paper_balance,
            currency=config.currency,
            rng=rng,
        ),
        strategies=strategies,
        breaker_config=breaker_config,
        rng=rng,
    )


async def _simulate(manager, trades: int) -> None:
    """Run every session for *trades* cycles against the paper executor."""
    await manager.run_all(max_cycles=trades)
    for name, session in manager.sessions.items():
        stats = session.stats()
        logger.info(
            "Session '%s' complete: %d trades, PnL: $%.2f, Win rate: %.1f%%, longest losing streak: %d",
            name,
            stats["total_trades"],
            stats["net_pnl"],
            stats["win_rate"] * 100,
            stats["longest_losing_streak"],
        )


async def _serve(manager, port: int = 8080) -> None:
    """Start the API server and all sessions concurrently."""
    import asyncio

    import uvicorn

    server = uvicorn.Server(uvicorn.Config(app, host="0.0.0.0", port=port, log_level="info"))

    logger.info("API available at http://localhost:%d", port)
    results = await asyncio.gather(
        server.serve(),
        manager.run_all(),
        return_exceptions=True,
    )
    logger.info("HummingBird stopped. Results: %s", results)


if __name__ == "__main__":
    _run_cli()
