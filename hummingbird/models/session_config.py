"""Session configuration dataclass.

Represents one trading session run by the ``SessionManager``.
"""

from dataclasses import dataclass
from typing import Optional

from hummingbird.contracts.models import ContractType, DEFAULT_MARKET, DurationUnit


@dataclass(frozen=True)
class SessionConfig:
    """Configuration for a single trading session.

    Each session owns one ``RiskManager`` and trades one strategy, either
    a built-in registry key (``strategy``) or an entry of the loaded
    strategy document (``strategy_index``).
    """

    name: str
    base_stake: float
    market: str = DEFAULT_MARKET
    currency: str = "USD"
    contract_type: ContractType = ContractType.DIGITEVEN
    duration_value: int = 1
    duration_unit: DurationUnit = DurationUnit.TICKS
    strategy: str = "default_recovery"  # registry key, used when strategy_index is None
    strategy_index: Optional[int] = None  # index into the strategy document
    recovery_mode: str = "compounding"
    trade_in_safety_mode: bool = False  # place the base-stake safety trade instead of waiting
    take_profit: Optional[float] = None  # net P&L target that ends the session
    stop_loss: Optional[float] = None  # net loss that ends the session
    poll_interval_seconds: float = 1.0
    enabled: bool = True
