"""Strategy compiler — turns a ``StrategyConfig`` into concrete recovery steps.

Recovery stake formula for every step after the first::

    carry      = sum of computed stakes of all prior steps
    step_pct   = reward % for this step's type at carry (base stake if 0)
    first_pct  = reward % for the first step's type at base stake
    stake      = carry + carry × step_pct/100 + base × first_pct/100

The stake covers the carried loss, its expected profit, and a fresh
base-stake profit margin.  Non-aggressive strategies clamp each stake to
``base × max_risk_exposure``.
"""

from __future__ import annotations

import json
import logging
import random
from dataclasses import asdict
from typing import Any, Mapping, Optional, Sequence, Union

from hummingbird.contracts.factory import default_barrier
from hummingbird.contracts.models import ContractType
from hummingbird.errors import InvalidStrategyDefinition, RiskLimitExceeded
from hummingbird.rewards.table import RewardTable, default_reward_table
from hummingbird.strategy import analysis
from hummingbird.strategy.loader import parse_strategy_document
from hummingbird.strategy.models import (
    CompiledStep,
    CompiledStepTable,
    StrategyConfig,
    StrategyStep,
)

logger = logging.getLogger("hummingbird.strategy")


def validate_config(config: StrategyConfig) -> None:
    """Raise ``InvalidStrategyDefinition`` for a config that cannot compile."""
    if not config.steps:
        raise InvalidStrategyDefinition(f"Strategy '{config.name}' has no steps")
    for i, step in enumerate(config.steps, start=1):
        if not step.amount > 0:
            raise InvalidStrategyDefinition(
                f"Strategy '{config.name}' step {i}: amount must be positive, "
                f"got {step.amount}"
            )
        if not step.symbol:
            raise InvalidStrategyDefinition(
                f"Strategy '{config.name}' step {i}: symbol is required"
            )
        if not isinstance(step.contract_type, ContractType):
            raise InvalidStrategyDefinition(
                f"Strategy '{config.name}' step {i}: unknown contract type "
                f"{step.contract_type!r}"
            )
    if config.max_sequence < len(config.steps):
        raise InvalidStrategyDefinition(
            f"Strategy '{config.name}': max_sequence ({config.max_sequence}) "
            f"is shorter than its {len(config.steps)} step(s)"
        )


def _make_step(
    number: int,
    template_index: int,
    template: StrategyStep,
    amount: float,
    profit_pct: float,
    anticipated: float,
    formula: str,
    rng: random.Random,
) -> CompiledStep:
    barrier = template.barrier
    if barrier is None:
        barrier = default_barrier(template.contract_type, rng)
    return CompiledStep(
        step_number=number,
        template_index=template_index,
        amount=amount,
        basis=template.basis,
        currency=template.currency,
        contract_type=template.contract_type,
        symbol=template.symbol,
        duration_value=template.duration_value,
        duration_unit=template.duration_unit,
        barrier=barrier,
        profit_percentage=profit_pct,
        anticipated_profit=anticipated,
        formula=formula,
    )


def compile_strategy(
    config: StrategyConfig,
    base_stake: Optional[float] = None,
    rewards: Optional[RewardTable] = None,
    rng: Optional[random.Random] = None,
) -> CompiledStepTable:
    """Compile *config* into a ``CompiledStepTable``.

    Pure and repeatable: without an explicit *rng*, random DIGITDIFF
    barriers are drawn from a generator seeded by the strategy name and
    base stake, so identical inputs give identical tables.

    Raises:
        InvalidStrategyDefinition: Empty steps, non-positive amounts,
            missing symbols, unknown contract types or non-positive stake.
    """
    validate_config(config)
    base = config.base_stake if base_stake is None else base_stake
    if not base > 0:
        raise InvalidStrategyDefinition(f"Base stake must be positive, got {base}")

    rewards = rewards or default_reward_table()
    rng = rng or random.Random(f"{config.name}:{base}")
    cap = base * config.max_risk_exposure
    first_type = config.first_step.contract_type

    steps: list[CompiledStep] = []
    carry = 0.0

    for i in range(config.max_sequence):
        template_index, template = config.template_for(i)
        contract_type = template.contract_type

        if i == 0:
            amount = base
            profit_pct = rewards.percentage_for(contract_type, amount)
            anticipated = amount * (profit_pct / 100.0)
            formula = f"Base Stake: {amount:.2f} ({profit_pct:.2f}%)"
        else:
            step_pct = rewards.percentage_for(contract_type, carry if carry > 0 else base)
            first_pct = rewards.percentage_for(first_type, base)
            amount = carry + carry * (step_pct / 100.0) + base * (first_pct / 100.0)
            profit_pct = rewards.percentage_for(contract_type, amount)
            anticipated = amount * (profit_pct / 100.0)
            formula = (
                f"Recovery: {carry:.2f} + ({carry:.2f} × {step_pct:.2f}%) + "
                f"({base:.2f} × {first_pct:.2f}%) = {amount:.2f}"
            )
            if not config.is_aggressive and amount > cap:
                amount = cap
                anticipated = amount * (profit_pct / 100.0)
                formula += f" (Capped at {cap:.2f} due to risk management)"

        steps.append(_make_step(
            i + 1, template_index, template, amount, profit_pct, anticipated, formula, rng,
        ))
        carry += amount

    logger.debug(
        "Compiled strategy '%s' (base %.2f): %d steps, max stake %.2f",
        config.name, base, len(steps), max(s.amount for s in steps),
    )
    return CompiledStepTable(config=config, base_stake=base, steps=tuple(steps))


class StrategyParser:
    """Compiles one or many strategies from a document and serves their steps.

    Args:
        source: A strategy document mapping, a single ``StrategyConfig`` or a
                list of them.
        strategy_index: Select one strategy from a document; ``None`` compiles
                        every strategy.  Step queries without an explicit
                        index use the selected (or first) strategy.
        base_stake: Overrides each strategy's own base stake.
        rewards: Reward table used for planning.

    Raises:
        InvalidStrategyDefinition: Invalid document or out-of-range index.
    """

    def __init__(
        self,
        source: Union[Mapping, StrategyConfig, Sequence[StrategyConfig]],
        strategy_index: Optional[int] = None,
        base_stake: Optional[float] = None,
        rewards: Optional[RewardTable] = None,
    ) -> None:
        if isinstance(source, StrategyConfig):
            configs = [source]
        elif isinstance(source, Mapping):
            configs = parse_strategy_document(source)
        else:
            configs = list(source)
        if not configs:
            raise InvalidStrategyDefinition("Invalid strategy document: no strategies found")

        if strategy_index is not None:
            if not 0 <= strategy_index < len(configs):
                raise InvalidStrategyDefinition(f"Invalid strategy index: {strategy_index}")
            configs = [configs[strategy_index]]

        self._rewards = rewards or default_reward_table()
        self._base_stake_override = base_stake
        self._configs = configs
        self._tables = [
            compile_strategy(c, base_stake, self._rewards) for c in configs
        ]
        self._active = 0

    # ── Selection ────────────────────────────────────────────────────────

    @property
    def strategy_count(self) -> int:
        return len(self._tables)

    @property
    def active_index(self) -> int:
        return self._active

    def select(self, index: int) -> None:
        """Make strategy *index* the one served by default."""
        if not 0 <= index < len(self._tables):
            raise InvalidStrategyDefinition(f"Invalid strategy index: {index}")
        self._active = index

    @property
    def base_stake(self) -> float:
        return self.table().base_stake

    def config(self, index: Optional[int] = None) -> StrategyConfig:
        return self.table(index).config

    def table(self, index: Optional[int] = None) -> CompiledStepTable:
        return self._tables[self._active if index is None else index]

    # ── Step queries ─────────────────────────────────────────────────────

    def all_steps(self, index: Optional[int] = None) -> list[CompiledStep]:
        return list(self.table(index).steps)

    def step(self, sequence_number: int, index: Optional[int] = None) -> CompiledStep:
        """Return step *sequence_number* (0-based); ``IndexError`` when out of range."""
        steps = self.table(index).steps
        if not 0 <= sequence_number < len(steps):
            raise IndexError(f"Invalid sequence number: {sequence_number}")
        return steps[sequence_number]

    def next_step(self, consecutive_losses: int) -> CompiledStep:
        """Step to trade after *consecutive_losses* losses.

        Raises ``RiskLimitExceeded`` once the strategy's loss limit is hit.
        """
        config = self.config()
        if consecutive_losses >= config.max_consecutive_losses:
            raise RiskLimitExceeded(
                f"Max consecutive losses reached ({config.max_consecutive_losses})"
            )
        return self.table().step_for_losses(consecutive_losses)

    def safe_step(self, sequence_number: int, index: Optional[int] = None):
        """Like :meth:`step` but returns ``{"error": ...}`` instead of raising."""
        try:
            if index is not None and not 0 <= index < len(self._tables):
                return {"error": f"Invalid strategy index: {index}"}
            return self.step(sequence_number, index)
        except IndexError as exc:
            return {"error": str(exc)}

    def should_enter_recovery(self, total_loss: float) -> bool:
        config = self.config()
        return 0 < total_loss < config.base_stake * config.max_risk_exposure

    # ── Reporting ────────────────────────────────────────────────────────

    def metrics(self, index: Optional[int] = None) -> analysis.StrategyMetrics:
        return analysis.strategy_metrics(self.table(index))

    def visualization(self, index: Optional[int] = None) -> dict:
        return analysis.visualization(self.table(index))

    def meta_info(self, index: Optional[int] = None) -> dict:
        table = self.table(index)
        meta = asdict(table.config.meta)
        meta["risk_profile"] = analysis.risk_profile(table.config)
        meta["recommended_balance"] = analysis.recommended_balance(table)
        return meta

    def formatted_output(self, index: Optional[int] = None) -> dict:
        """Meta, configuration scalars and steps as plain JSON-ready data."""
        table = self.table(index)
        config = table.config
        return {
            "meta": self.meta_info(index),
            "configuration": {
                "strategy_name": config.name,
                "is_aggressive": config.is_aggressive,
                "base_stake": table.base_stake,
                "max_sequence": config.max_sequence,
                "profit_percentage": config.profit_percentage,
                "loss_recovery_percentage": config.loss_recovery_percentage,
                "anticipated_profit_percentage": config.anticipated_profit_percentage,
                "max_consecutive_losses": config.max_consecutive_losses,
                "max_risk_exposure": config.max_risk_exposure,
            },
            "steps": [step_to_dict(s) for s in table.steps],
        }

    def optimize(
        self,
        criteria: analysis.OptimizationCriteria,
        index: Optional[int] = None,
    ) -> list[CompiledStep]:
        return analysis.optimize(self.table(index), criteria, self._rewards)

    def optimize_with_preset(self, preset: str, index: Optional[int] = None) -> list[CompiledStep]:
        """Optimise with the ``conservative`` or ``aggressive`` preset."""
        presets = analysis.optimization_presets(self.table(index).base_stake)
        if preset not in presets:
            raise KeyError(f"Unknown preset '{preset}'. Available: {', '.join(presets)}")
        return self.optimize(presets[preset], index)

    def serialize(self) -> str:
        """JSON snapshot that :meth:`deserialize` recompiles identically."""
        return json.dumps({
            "strategies": [config_to_document(c) for c in self._configs],
            "base_stake": self._base_stake_override,
            "active": self._active,
        })

    @classmethod
    def deserialize(cls, payload: str, rewards: Optional[RewardTable] = None) -> "StrategyParser":
        data = json.loads(payload)
        parser = cls(
            {"strategies": data["strategies"]},
            base_stake=data.get("base_stake"),
            rewards=rewards,
        )
        parser.select(data.get("active", 0))
        return parser


def step_to_dict(step: CompiledStep) -> dict:
    """Plain-data view of a compiled step with enum values unwrapped."""
    data = asdict(step)
    data["basis"] = step.basis.value
    data["contract_type"] = step.contract_type.value
    data["duration_unit"] = step.duration_unit.value
    return data


def config_to_document(config: StrategyConfig) -> dict[str, Any]:
    """Render *config* back into the strategy document schema."""
    return {
        "strategyName": config.name,
        "strategySteps": [
            {
                "amount": s.amount,
                "basis": s.basis.value,
                "currency": s.currency,
                "contractType": s.contract_type.value,
                "symbol": s.symbol,
                "contractDurationValue": s.duration_value,
                "contractDurationUnits": s.duration_unit.value,
                **({"barrier": s.barrier} if s.barrier is not None else {}),
            }
            for s in config.steps
        ],
        "isAggressive": config.is_aggressive,
        "baseStake": config.base_stake,
        "minStake": config.min_stake,
        "maxStake": config.max_stake,
        "maxSequence": config.max_sequence,
        "maxConsecutiveLosses": config.max_consecutive_losses,
        "maxRiskExposure": config.max_risk_exposure,
        "profitPercentage": config.profit_percentage,
        "lossRecoveryPercentage": config.loss_recovery_percentage,
        "anticipatedProfitPercentage": config.anticipated_profit_percentage,
        "basis": config.basis.value,
        "currency": config.currency,
        "meta": {k: v for k, v in asdict(config.meta).items() if v is not None},
    }
