"""Strategy data models — typed representations of recovery strategies."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from hummingbird.contracts.models import (
    Barrier,
    Basis,
    ContractType,
    Currency,
    DurationUnit,
)


@dataclass(frozen=True)
class StrategyStep:
    """One planned trade template."""

    amount: float
    contract_type: ContractType
    symbol: str
    duration_value: int = 1
    duration_unit: DurationUnit = DurationUnit.TICKS
    basis: Basis = Basis.STAKE
    currency: str = Currency.USD.value
    barrier: Barrier = None


@dataclass(frozen=True)
class StrategyMeta:
    """Publishing metadata carried by a strategy document."""

    title: str = "Untitled Strategy"
    description: str = ""
    version: str = "1.0.0"
    publisher: str = "Unknown"
    timestamp: Optional[float] = None
    signature: str = ""
    id: str = ""


@dataclass(frozen=True)
class StrategyConfig:
    """A validated recovery strategy.

    ``max_risk_exposure`` is a multiplier on the base stake bounding any
    single computed stake (unless ``is_aggressive``) and the total loss
    tolerated before safety mode.
    """

    name: str
    steps: tuple[StrategyStep, ...]
    base_stake: float
    max_sequence: int
    max_consecutive_losses: int
    max_risk_exposure: float = 15.0
    is_aggressive: bool = False
    min_stake: float = 0.35
    max_stake: float = 5000.0
    profit_percentage: float = 0.0
    loss_recovery_percentage: float = 0.0
    anticipated_profit_percentage: float = 0.0
    basis: Basis = Basis.STAKE
    currency: str = Currency.USD.value
    meta: StrategyMeta = field(default_factory=StrategyMeta)

    @property
    def first_step(self) -> StrategyStep:
        return self.steps[0]

    def template_for(self, sequence_index: int) -> tuple[int, StrategyStep]:
        """Template used at *sequence_index*; the last one repeats."""
        index = min(sequence_index, len(self.steps) - 1)
        return index, self.steps[index]


@dataclass(frozen=True)
class CompiledStep:
    """A concrete, profit-annotated trade in the recovery sequence."""

    step_number: int  # 1-based position in the sequence
    template_index: int
    amount: float
    basis: Basis
    currency: str
    contract_type: ContractType
    symbol: str
    duration_value: int
    duration_unit: DurationUnit
    barrier: Barrier
    profit_percentage: float
    anticipated_profit: float
    formula: str


@dataclass(frozen=True)
class CompiledStepTable:
    """Ordered recovery steps produced by compiling a strategy."""

    config: StrategyConfig
    base_stake: float
    steps: tuple[CompiledStep, ...]

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self):
        return iter(self.steps)

    def __getitem__(self, index: int) -> CompiledStep:
        return self.steps[index]

    @property
    def amounts(self) -> list[float]:
        return [s.amount for s in self.steps]

    def step_for_losses(self, consecutive_losses: int) -> CompiledStep:
        """Step to trade after *consecutive_losses* losses in a row."""
        return self.steps[min(max(consecutive_losses, 0), len(self.steps) - 1)]
