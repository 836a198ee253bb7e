"""Strategy document loader — JSON → validated ``StrategyConfig``.

Documents have the shape::

    {"strategies": [{"strategyName": ..., "strategySteps": [...], ...}]}

Every key is checked against an explicit whitelist; unknown keys, wrong
types and unknown enum codes raise ``InvalidStrategyDefinition`` naming the
offending field instead of being silently defaulted.
"""

import json
import logging
import pathlib
from typing import Any, Mapping, Optional, Union

from hummingbird.contracts.models import Basis, ContractType, Currency, DurationUnit
from hummingbird.errors import InvalidStrategyDefinition
from hummingbird.strategy.models import StrategyConfig, StrategyMeta, StrategyStep

logger = logging.getLogger("hummingbird.strategy")

DEFAULT_MAX_RISK_EXPOSURE = 15.0

_STRATEGY_KEYS = {
    "strategyName", "strategySteps", "isAggressive", "baseStake", "minStake",
    "maxStake", "maxSequence", "maxConsecutiveLosses", "maxRiskExposure",
    "profitPercentage", "lossRecoveryPercentage", "anticipatedProfitPercentage",
    "basis", "currency", "meta",
}
_STEP_KEYS = {
    "amount", "basis", "currency", "contractType", "symbol",
    "contractDurationValue", "contractDurationUnits", "barrier",
}
_META_KEYS = {
    "title", "description", "version", "publisher", "timestamp", "signature", "id",
}


def _fail(where: str, message: str) -> InvalidStrategyDefinition:
    return InvalidStrategyDefinition(f"{where}: {message}")


def _check_keys(where: str, data: Mapping, allowed: set) -> None:
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise _fail(where, f"unknown field(s): {', '.join(unknown)}")


def _number(where: str, key: str, value: Any, *, positive: bool = False,
            minimum: Optional[float] = None) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _fail(where, f"'{key}' must be a number, got {value!r}")
    if positive and value <= 0:
        raise _fail(where, f"'{key}' must be positive, got {value}")
    if minimum is not None and value < minimum:
        raise _fail(where, f"'{key}' must be >= {minimum}, got {value}")
    return float(value)


def _integer(where: str, key: str, value: Any, minimum: int = 1) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise _fail(where, f"'{key}' must be an integer, got {value!r}")
    if value < minimum:
        raise _fail(where, f"'{key}' must be >= {minimum}, got {value}")
    return value


def _enum(where: str, key: str, enum_cls, value: Any):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise _fail(where, f"'{key}' must be one of {allowed}, got {value!r}") from None


def _parse_step(where: str, raw: Any, basis: Basis, currency: str) -> StrategyStep:
    if not isinstance(raw, Mapping):
        raise _fail(where, "step must be an object")
    _check_keys(where, raw, _STEP_KEYS)

    if "amount" not in raw:
        raise _fail(where, "'amount' is required")
    amount = _number(where, "amount", raw["amount"], positive=True)

    symbol = raw.get("symbol")
    if not isinstance(symbol, str) or not symbol.strip():
        raise _fail(where, "'symbol' is required")

    try:
        contract_type = ContractType.parse(raw.get("contractType"))
    except ValueError as exc:
        raise _fail(where, f"'contractType': {exc}") from None

    barrier = raw.get("barrier")
    if barrier is not None and (isinstance(barrier, bool)
                                or not isinstance(barrier, (int, str))):
        raise _fail(where, f"'barrier' must be a digit or token, got {barrier!r}")

    return StrategyStep(
        amount=amount,
        contract_type=contract_type,
        symbol=symbol.strip(),
        duration_value=_integer(where, "contractDurationValue",
                                raw.get("contractDurationValue", 1)),
        duration_unit=_enum(where, "contractDurationUnits", DurationUnit,
                            raw.get("contractDurationUnits", DurationUnit.TICKS.value)),
        basis=_enum(where, "basis", Basis, raw.get("basis", basis.value)),
        currency=_enum(where, "currency", Currency, raw.get("currency", currency)).value,
        barrier=barrier,
    )


def _parse_meta(where: str, raw: Any) -> StrategyMeta:
    if raw is None:
        return StrategyMeta()
    if not isinstance(raw, Mapping):
        raise _fail(where, "'meta' must be an object")
    _check_keys(f"{where}.meta", raw, _META_KEYS)
    values = {k: raw[k] for k in _META_KEYS if k in raw}
    for key, value in values.items():
        if key == "timestamp":
            values[key] = _number(where, "meta.timestamp", value)
        elif not isinstance(value, str):
            raise _fail(where, f"'meta.{key}' must be a string")
    return StrategyMeta(**values)


def parse_strategy(raw: Any, index: int = 0) -> StrategyConfig:
    """Validate one strategy object and apply documented defaults.

    Defaults: ``basis=stake``, ``currency=USD``, ``maxSequence`` = step
    count, ``maxConsecutiveLosses`` = step count − 1 (at least 1),
    ``maxRiskExposure=15``, ``baseStake`` = first step amount.
    """
    where = f"strategies[{index}]"
    if not isinstance(raw, Mapping):
        raise _fail(where, "strategy must be an object")
    _check_keys(where, raw, _STRATEGY_KEYS)

    name = raw.get("strategyName")
    if not isinstance(name, str) or not name.strip():
        raise _fail(where, "'strategyName' is required")
    where = f"{where} '{name}'"

    basis = _enum(where, "basis", Basis, raw.get("basis", Basis.STAKE.value))
    currency = _enum(where, "currency", Currency, raw.get("currency", Currency.USD.value)).value

    raw_steps = raw.get("strategySteps")
    if not isinstance(raw_steps, list) or not raw_steps:
        raise _fail(where, "'strategySteps' must be a non-empty list")
    steps = tuple(
        _parse_step(f"{where} step {i + 1}", s, basis, currency)
        for i, s in enumerate(raw_steps)
    )

    max_sequence = _integer(where, "maxSequence", raw.get("maxSequence", len(steps)))
    if max_sequence < len(steps):
        raise _fail(where, f"'maxSequence' ({max_sequence}) is shorter than "
                           f"the {len(steps)} step template(s)")

    is_aggressive = raw.get("isAggressive", False)
    if not isinstance(is_aggressive, bool):
        raise _fail(where, "'isAggressive' must be a bool")

    base_stake = _number(where, "baseStake", raw.get("baseStake", steps[0].amount),
                         positive=True)
    min_stake = _number(where, "minStake", raw.get("minStake", 0.35), positive=True)
    max_stake = _number(where, "maxStake", raw.get("maxStake", 5000.0), positive=True)
    if min_stake > max_stake:
        raise _fail(where, "'minStake' exceeds 'maxStake'")

    return StrategyConfig(
        name=name.strip(),
        steps=steps,
        base_stake=base_stake,
        max_sequence=max_sequence,
        max_consecutive_losses=_integer(
            where, "maxConsecutiveLosses",
            raw.get("maxConsecutiveLosses", max(len(steps) - 1, 1)),
        ),
        max_risk_exposure=_number(
            where, "maxRiskExposure",
            raw.get("maxRiskExposure", DEFAULT_MAX_RISK_EXPOSURE), positive=True,
        ),
        is_aggressive=is_aggressive,
        min_stake=min_stake,
        max_stake=max_stake,
        profit_percentage=_number(where, "profitPercentage",
                                  raw.get("profitPercentage", 0), minimum=0),
        loss_recovery_percentage=_number(where, "lossRecoveryPercentage",
                                         raw.get("lossRecoveryPercentage", 0), minimum=0),
        anticipated_profit_percentage=_number(
            where, "anticipatedProfitPercentage",
            raw.get("anticipatedProfitPercentage", 0), minimum=0,
        ),
        basis=basis,
        currency=currency,
        meta=_parse_meta(where, raw.get("meta")),
    )


def parse_strategy_document(document: Any) -> list[StrategyConfig]:
    """Validate a whole ``{"strategies": [...]}`` document."""
    if not isinstance(document, Mapping):
        raise InvalidStrategyDefinition("Strategy document must be an object")
    _check_keys("document", document, {"strategies"})
    strategies = document.get("strategies")
    if not isinstance(strategies, list) or not strategies:
        raise InvalidStrategyDefinition("Invalid strategy document: no strategies found")
    return [parse_strategy(raw, i) for i, raw in enumerate(strategies)]


def load_strategy_document(
    source: Union[str, pathlib.Path, Mapping],
) -> list[StrategyConfig]:
    """Load and validate strategies from a JSON file path or a mapping."""
    if isinstance(source, Mapping):
        return parse_strategy_document(source)

    path = pathlib.Path(source)
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise InvalidStrategyDefinition(f"Strategy file not found: {path}") from None
    except json.JSONDecodeError as exc:
        raise InvalidStrategyDefinition(f"Strategy file {path} is not valid JSON: {exc}") from None

    configs = parse_strategy_document(document)
    logger.info("Loaded %d strategy definition(s) from %s", len(configs), path)
    return configs
