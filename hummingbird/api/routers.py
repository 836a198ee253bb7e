"""Internal API routers — /status, /strategies, /rewards and /control endpoints.

No business logic. Reads shared state pushed by the trading sessions and
delegates to the strategy parser, reward table and session manager.
"""

import logging
import math
from typing import Optional

from fastapi import APIRouter

from hummingbird.contracts.labels import label_for
from hummingbird.contracts.models import ContractType
from hummingbird.errors import UnsupportedContractType
from hummingbird.rewards.table import RewardTable, default_reward_table

logger = logging.getLogger("hummingbird.api")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_DEFAULT_SESSION_STATUS: dict = {
    "mode": "idle",
    "running": False,
    "market": None,
    "strategy": None,
    "balance": None,
    "cycle_count": 0,
    "started_at": None,
    "last_cycle_at": None,
    "last_trade": None,
    "consecutive_losses": 0,
    "total_loss_amount": 0.0,
    "safety_mode": False,
    "safety_reason": None,
    "circuit_breaker_active": False,
    "circuit_breaker_reasons": [],
}

# Keyed by session name → status dict
_session_statuses: dict[str, dict] = {}

_parser = None  # StrategyParser, set via configure_routers()
_session_manager = None  # SessionManager, set via configure_routers()
_rewards: RewardTable = default_reward_table()


def configure_routers(
    parser=None,
    session_manager=None,
    rewards: Optional[RewardTable] = None,
) -> None:
    """Inject dependencies from the application startup.

    Args:
        parser: A ``StrategyParser`` serving ``/strategies``.
        session_manager: A ``SessionManager`` for control actions.
        rewards: Reward table for ``/rewards``; defaults to the built-in one.
    """
    global _parser, _session_manager, _rewards  # noqa: PLW0603
    _parser = parser
    _session_manager = session_manager
    _rewards = rewards or default_reward_table()


def update_session_status(session_name: str = "default", **fields) -> None:
    """Update individual fields of a session's status dict."""
    if session_name not in _session_statuses:
        _session_statuses[session_name] = {
            **_DEFAULT_SESSION_STATUS,
            "session_name": session_name,
        }
    _session_statuses[session_name].update(fields)


def reset_session_statuses() -> None:
    _session_statuses.clear()


# ── Endpoints ────────────────────────────────────────────────────────────


@router.get("/status")
async def get_status():
    """Return status for all sessions."""
    return {"sessions": dict(_session_statuses)}


@router.get("/status/{session_name}")
async def get_session_status(session_name: str):
    """Return status for a single session."""
    status = _session_statuses.get(session_name)
    if status is None:
        return {"error": f"Unknown session: {session_name}"}
    return status


@router.get("/strategies")
async def get_strategies():
    """List the loaded strategies with their risk profile."""
    if _parser is None:
        return {"strategies": []}
    strategies = []
    for index in range(_parser.strategy_count):
        config = _parser.config(index)
        meta = _parser.meta_info(index)
        strategies.append({
            "index": index,
            "name": config.name,
            "title": meta.get("title"),
            "steps": len(_parser.table(index)),
            "base_stake": _parser.table(index).base_stake,
            "is_aggressive": config.is_aggressive,
            "risk_profile": meta["risk_profile"],
            "recommended_balance": meta["recommended_balance"],
        })
    return {"strategies": strategies, "active": _parser.active_index}


@router.get("/strategies/{index}/steps")
async def get_strategy_steps(index: int):
    """Return the compiled step table of one strategy."""
    if _parser is None:
        return {"error": "No strategies loaded"}
    if not 0 <= index < _parser.strategy_count:
        return {"error": f"Invalid strategy index: {index}"}
    output = _parser.formatted_output(index)
    output["visualization"] = _parser.visualization(index)
    return output


@router.get("/rewards/{contract_type}")
async def get_rewards(contract_type: str):
    """Return the payout tiers for a contract type."""
    try:
        parsed = ContractType.parse(contract_type)
        tiers = _rewards.tiers_for(parsed)
    except (ValueError, UnsupportedContractType) as exc:
        return {"error": str(exc)}
    return {
        "contract_type": parsed.value,
        "label": label_for(parsed),
        "tiers": [
            {
                "min_stake": t.min_stake,
                "max_stake": None if math.isinf(t.max_stake) else t.max_stake,
                "reward_percentage": t.reward_percentage,
            }
            for t in tiers
        ],
    }


# ── Control actions ──────────────────────────────────────────────────────


@router.post("/control/session/{session_name}/stop")
async def stop_session(session_name: str):
    """Stop a single session after its current cycle.

    Risk counters stay readable; ``/reset`` clears them.
    """
    if _session_manager is None:
        return {"error": "No session manager"}
    if session_name not in _session_manager.sessions:
        return {"error": f"Unknown session: {session_name}"}
    _session_manager.stop_session(session_name)
    update_session_status(session_name=session_name, running=False, mode="stopped")
    logger.info("Session '%s' stopped via API.", session_name)
    return {"status": "stopped", "session": session_name}


@router.post("/control/session/{session_name}/reset-safety")
async def reset_session_safety(session_name: str):
    """Clear safety mode, breaker state and rapid-loss history of a session."""
    if _session_manager is None:
        return {"error": "No session manager"}
    session = _session_manager.sessions.get(session_name)
    if session is None:
        return {"error": f"Unknown session: {session_name}"}
    session.risk_manager.reset_safety_mode()
    update_session_status(
        session_name=session_name,
        safety_mode=False,
        safety_reason=None,
        circuit_breaker_active=False,
        circuit_breaker_reasons=[],
    )
    logger.warning("Session '%s' safety mode reset via API.", session_name)
    return {"status": "safety_reset", "session": session_name}


@router.post("/control/session/{session_name}/reset")
async def reset_session(session_name: str):
    """Forget a session's counters, losses and safety state."""
    if _session_manager is None:
        return {"error": "No session manager"}
    session = _session_manager.sessions.get(session_name)
    if session is None:
        return {"error": f"Unknown session: {session_name}"}
    session.risk_manager.reset()
    update_session_status(
        session_name=session_name,
        consecutive_losses=0,
        total_loss_amount=0.0,
        safety_mode=False,
        safety_reason=None,
        circuit_breaker_active=False,
        circuit_breaker_reasons=[],
    )
    logger.warning("Session '%s' risk state reset via API.", session_name)
    return {"status": "reset", "session": session_name}


@router.post("/control/emergency-stop")
async def emergency_stop():
    """Emergency stop — halt every session."""
    if _session_manager is not None:
        _session_manager.stop_all()
        for name in _session_manager.session_names:
            update_session_status(session_name=name, running=False, mode="stopped")
    logger.warning("EMERGENCY STOP triggered via API.")
    return {"status": "emergency_stopped"}
