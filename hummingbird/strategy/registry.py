"""Strategy registry — maps built-in strategy names to config factories.

Used when a session is started without a strategy document.
"""

from typing import Callable

from hummingbird.contracts.models import ContractType, DEFAULT_MARKET, DurationUnit
from hummingbird.strategy.models import StrategyConfig, StrategyStep


def default_recovery(
    base_stake: float,
    symbol: str = DEFAULT_MARKET,
    contract_type: ContractType = ContractType.DIGITEVEN,
) -> StrategyConfig:
    """One template repeated for up to five compounding recovery steps."""
    return StrategyConfig(
        name="DefaultRecovery",
        steps=(StrategyStep(amount=base_stake, contract_type=contract_type, symbol=symbol),),
        base_stake=base_stake,
        max_sequence=5,
        max_consecutive_losses=5,
        max_risk_exposure=15.0,
    )


def even_odd_alternating(
    base_stake: float,
    symbol: str = DEFAULT_MARKET,
    contract_type: ContractType = ContractType.DIGITEVEN,
) -> StrategyConfig:
    """Enter on *contract_type*, recover on the opposite parity."""
    opposite = (
        ContractType.DIGITODD if contract_type is ContractType.DIGITEVEN
        else ContractType.DIGITEVEN
    )
    return StrategyConfig(
        name="EvenOddAlternating",
        steps=(
            StrategyStep(amount=base_stake, contract_type=contract_type, symbol=symbol),
            StrategyStep(amount=base_stake, contract_type=opposite, symbol=symbol),
        ),
        base_stake=base_stake,
        max_sequence=6,
        max_consecutive_losses=5,
        max_risk_exposure=20.0,
    )


def over_under_shield(
    base_stake: float,
    symbol: str = DEFAULT_MARKET,
    contract_type: ContractType = ContractType.DIGITOVER_1,
) -> StrategyConfig:
    """High-probability digit entry, recovery on even/odd over five ticks."""
    return StrategyConfig(
        name="OverUnderShield",
        steps=(
            StrategyStep(amount=base_stake, contract_type=contract_type, symbol=symbol),
            StrategyStep(
                amount=base_stake,
                contract_type=ContractType.DIGITEVEN,
                symbol=symbol,
                duration_value=5,
                duration_unit=DurationUnit.TICKS,
            ),
        ),
        base_stake=base_stake,
        max_sequence=4,
        max_consecutive_losses=3,
        max_risk_exposure=10.0,
    )


STRATEGY_REGISTRY: dict[str, Callable[..., StrategyConfig]] = {
    "default_recovery": default_recovery,
    "even_odd_alternating": even_odd_alternating,
    "over_under_shield": over_under_shield,
}


def get_strategy(name: str, base_stake: float, **kwargs) -> StrategyConfig:
    """Build a registered strategy by key.

    Raises ``KeyError`` if the strategy name is not registered.
    """
    if name not in STRATEGY_REGISTRY:
        raise KeyError(
            f"Unknown strategy '{name}'. "
            f"Available: {', '.join(STRATEGY_REGISTRY.keys())}"
        )
    return STRATEGY_REGISTRY[name](base_stake, **kwargs)
