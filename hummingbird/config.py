"""HummingBird — application configuration.

Loads .env variables into typed config objects.
Validates values on startup.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from hummingbird.contracts.models import ContractType, DurationUnit
from hummingbird.risk.circuit_breaker import CircuitBreakerConfig, RapidLossConfig


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    base_stake: float
    market: str
    currency: str
    contract_type: ContractType
    duration_value: int
    duration_unit: DurationUnit
    strategies_path: Optional[str]  # strategy document; None uses the built-in registry
    strategy: str  # registry key when no document is given
    recovery_mode: str  # "compounding" or "last_resort"
    trade_in_safety_mode: bool
    take_profit: Optional[float]  # stop once net P&L reaches +take_profit
    stop_loss: Optional[float]  # stop once net P&L reaches -stop_loss
    poll_interval_seconds: float
    paper_balance: float
    log_level: str
    health_port: int


def _env_float(name: str, default: str) -> float:
    raw = os.environ.get(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number, got {raw!r}") from None


def _env_int(name: str, default: str) -> int:
    raw = os.environ.get(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}") from None


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_limit(name: str) -> Optional[float]:
    """Optional positive session limit; unset or empty disables it."""
    if not os.environ.get(name, "").strip():
        return None
    value = _env_float(name, "")
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` naming the variable when a value is malformed or
    out of range.
    """
    load_dotenv(dotenv_path=env_path)

    base_stake = _env_float("BASE_STAKE", "1.0")
    if base_stake <= 0:
        raise ValueError(f"BASE_STAKE must be positive, got {base_stake}")

    try:
        contract_type = ContractType.parse(os.environ.get("CONTRACT_TYPE", "DIGITEVEN"))
        duration_unit = DurationUnit(os.environ.get("DURATION_UNIT", "t"))
    except ValueError as exc:
        raise ValueError(f"Invalid contract settings: {exc}") from None

    recovery_mode = os.environ.get("RECOVERY_MODE", "compounding")
    if recovery_mode not in ("compounding", "last_resort"):
        raise ValueError(f"RECOVERY_MODE must be 'compounding' or 'last_resort', got {recovery_mode!r}")

    return Config(
        base_stake=base_stake,
        market=os.environ.get("MARKET", "R_100"),
        currency=os.environ.get("CURRENCY", "USD"),
        contract_type=contract_type,
        duration_value=_env_int("DURATION_VALUE", "1"),
        duration_unit=duration_unit,
        strategies_path=os.environ.get("STRATEGIES_PATH") or None,
        strategy=os.environ.get("STRATEGY", "default_recovery"),
        recovery_mode=recovery_mode,
        trade_in_safety_mode=_env_bool("TRADE_IN_SAFETY_MODE", "false"),
        poll_interval_seconds=_env_float("POLL_INTERVAL_SECONDS", "1.0"),
        take_profit=_env_limit("TAKE_PROFIT"),
        stop_loss=_env_limit("STOP_LOSS"),
        paper_balance=_env_float("PAPER_BALANCE", "1000.0"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        health_port=_env_int("HEALTH_PORT", "8080"),
    )


def load_breaker_config(env_path: str | None = None) -> CircuitBreakerConfig:
    """Build circuit-breaker limits from ``BREAKER_*`` / ``RAPID_LOSS_*`` variables."""
    load_dotenv(dotenv_path=env_path)

    rapid = RapidLossConfig(
        time_window_seconds=_env_float("RAPID_LOSS_WINDOW_SECONDS", "30"),
        threshold=_env_int("RAPID_LOSS_THRESHOLD", "2"),
        min_stake_multiplier=_env_float("RAPID_LOSS_MIN_STAKE_MULTIPLIER", "1"),
        initial_cooldown_seconds=_env_float("RAPID_LOSS_INITIAL_COOLDOWN_SECONDS", "30"),
        max_cooldown_seconds=_env_float("RAPID_LOSS_MAX_COOLDOWN_SECONDS", "300"),
        cooldown_multiplier=_env_float("RAPID_LOSS_COOLDOWN_MULTIPLIER", "2"),
    )
    if rapid.threshold < 1:
        raise ValueError(f"RAPID_LOSS_THRESHOLD must be >= 1, got {rapid.threshold}")

    return CircuitBreakerConfig(
        max_absolute_loss=_env_float("BREAKER_MAX_ABSOLUTE_LOSS", "1000"),
        max_daily_loss=_env_float("BREAKER_MAX_DAILY_LOSS", "500"),
        max_consecutive_losses=_env_int("BREAKER_MAX_CONSECUTIVE_LOSSES", "5"),
        max_balance_percentage_loss=_env_float("BREAKER_MAX_BALANCE_PCT_LOSS", "0.5"),
        min_balance_multiplier=_env_float("BREAKER_MIN_BALANCE_MULTIPLIER", "3"),
        cooldown_seconds=_env_float("BREAKER_COOLDOWN_SECONDS", "60"),
        rapid_loss=rapid,
    )
