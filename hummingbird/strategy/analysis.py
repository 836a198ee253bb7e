"""Strategy analysis — metrics, chart data and optimisation over compiled steps.

Pure functions over ``CompiledStepTable``; nothing here mutates a table.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, TYPE_CHECKING

from hummingbird.rewards.table import RewardTable, default_reward_table

if TYPE_CHECKING:
    from hummingbird.strategy.models import CompiledStep, CompiledStepTable, StrategyConfig


@dataclass(frozen=True)
class StrategyMetrics:
    total_risk_exposure: float
    max_single_risk: float
    reward_to_risk_ratios: tuple[float, ...]
    average_reward_to_risk_ratio: float
    max_reward_to_risk_ratio: float
    min_reward_to_risk_ratio: float
    win_probability: float
    risk_of_ruin: float


@dataclass(frozen=True)
class OptimizationCriteria:
    max_risk: Optional[float] = None
    target_profit: Optional[float] = None
    risk_multiplier: Optional[float] = None


@dataclass(frozen=True)
class OptimizationAnalysis:
    original_risk: float
    optimized_risk: float
    original_potential: float
    optimized_potential: float
    risk_reduction: float
    potential_gain: float


def strategy_metrics(table: CompiledStepTable) -> StrategyMetrics:
    """Exposure and reward/risk summary of a compiled table.

    ``win_probability`` is the share of steps with positive anticipated
    profit; ``risk_of_ruin`` the share of exposure on steps without.
    """
    steps = table.steps
    if not steps:
        return StrategyMetrics(0.0, 0.0, (), 0.0, 0.0, 0.0, 0.0, 0.0)

    ratios = tuple(s.anticipated_profit / s.amount for s in steps)
    total = sum(s.amount for s in steps)
    losing_exposure = sum(s.amount for s in steps if s.anticipated_profit <= 0)
    return StrategyMetrics(
        total_risk_exposure=total,
        max_single_risk=max(s.amount for s in steps),
        reward_to_risk_ratios=ratios,
        average_reward_to_risk_ratio=sum(ratios) / len(ratios),
        max_reward_to_risk_ratio=max(ratios),
        min_reward_to_risk_ratio=min(ratios),
        win_probability=sum(1 for s in steps if s.anticipated_profit > 0) / len(steps),
        risk_of_ruin=losing_exposure / total if total else 0.0,
    )


def visualization(table: CompiledStepTable) -> dict:
    """Chart rows per step plus totals."""
    return {
        "chart_data": [
            {
                "step": s.step_number,
                "amount": round(s.amount, 2),
                "potential_profit": round(s.anticipated_profit, 2),
                "risk_percentage": round(s.amount / table.base_stake * 100.0, 2),
            }
            for s in table.steps
        ],
        "summary": {
            "total_potential_profit": round(sum(s.anticipated_profit for s in table.steps), 2),
            "max_drawdown": round(sum(s.amount for s in table.steps), 2),
        },
    }


def recommended_balance(table: CompiledStepTable) -> float:
    """Largest stake × sequence length × 1.5 buffer."""
    if not table.steps:
        return 0.0
    largest = max(s.amount for s in table.steps)
    return round(largest * table.config.max_sequence * 1.5, 2)


def risk_profile(config: StrategyConfig) -> str:
    if config.is_aggressive:
        return "aggressive"
    if config.max_risk_exposure < 10:
        return "conservative"
    return "moderate"


def optimization_presets(base_stake: float) -> dict[str, OptimizationCriteria]:
    return {
        "conservative": OptimizationCriteria(max_risk=base_stake * 3, risk_multiplier=1.1),
        "aggressive": OptimizationCriteria(max_risk=base_stake * 10, risk_multiplier=1.5),
    }


def validate_optimization_criteria(criteria: OptimizationCriteria, base_stake: float) -> None:
    if criteria.max_risk is not None and criteria.max_risk < base_stake:
        raise ValueError("Max risk cannot be less than base stake")
    if criteria.risk_multiplier is not None and criteria.risk_multiplier < 1:
        raise ValueError("Risk multiplier must be >= 1")
    if criteria.target_profit is not None and criteria.target_profit <= 0:
        raise ValueError("Target profit must be positive")


def _rescaled(step: CompiledStep, amount: float, note: str, rewards: RewardTable) -> CompiledStep:
    pct = rewards.percentage_for(step.contract_type, amount)
    return replace(
        step,
        amount=amount,
        profit_percentage=pct,
        anticipated_profit=amount * pct / 100.0,
        formula=f"{step.formula} → {note}",
    )


def optimize(
    table: CompiledStepTable,
    criteria: OptimizationCriteria,
    rewards: Optional[RewardTable] = None,
) -> list[CompiledStep]:
    """Return a re-sized copy of the table's steps.

    Applied in order: cap at ``max_risk``; shrink recovery steps to the
    stake that reaches ``target_profit``; multiply recovery steps by
    ``risk_multiplier``.  Profit percentages are re-looked-up for the new
    stakes.
    """
    validate_optimization_criteria(criteria, table.base_stake)
    rewards = rewards or default_reward_table()
    optimized: list[CompiledStep] = []

    for index, step in enumerate(table.steps):
        current = step
        if criteria.max_risk is not None and current.amount > criteria.max_risk:
            current = _rescaled(current, criteria.max_risk,
                                f"Optimized to max risk {criteria.max_risk:.2f}", rewards)
        if criteria.target_profit is not None and index > 0 and current.profit_percentage > 0:
            needed = criteria.target_profit / (current.profit_percentage / 100.0)
            if needed < current.amount:
                current = _rescaled(current, needed,
                                    f"Optimized for target profit {criteria.target_profit:.2f}",
                                    rewards)
        if criteria.risk_multiplier is not None and index > 0:
            current = _rescaled(current, current.amount * criteria.risk_multiplier,
                                f"Risk multiplied by {criteria.risk_multiplier}x", rewards)
        optimized.append(current)

    return optimized


def analyze_optimization(
    original: list[CompiledStep],
    optimized: list[CompiledStep],
) -> OptimizationAnalysis:
    original_risk = sum(s.amount for s in original)
    optimized_risk = sum(s.amount for s in optimized)
    original_potential = sum(s.anticipated_profit for s in original)
    optimized_potential = sum(s.anticipated_profit for s in optimized)
    return OptimizationAnalysis(
        original_risk=original_risk,
        optimized_risk=optimized_risk,
        original_potential=original_potential,
        optimized_potential=optimized_potential,
        risk_reduction=1 - optimized_risk / original_risk if original_risk else 0.0,
        potential_gain=(optimized_potential / original_potential) - 1 if original_potential else 0.0,
    )
