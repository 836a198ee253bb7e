"""Tests for the strategy compiler, StrategyParser, analysis and registry.

Stake arithmetic for a DIGITEVEN base stake of 1 (95 % at [1, 2)):

    step 1: 1
    step 2: 1 + 1×0.95 + 1×0.95                 = 2.90
    step 3: 3.90 + 3.90×0.9533 + 0.95           = 8.56787
    step 4: 12.46787 + 12.46787×0.954 + 0.95    = 25.31 → capped at 15
"""

import pytest

from hummingbird.contracts.models import ContractType
from hummingbird.errors import InvalidStrategyDefinition, RiskLimitExceeded
from hummingbird.strategy.analysis import (
    OptimizationCriteria,
    analyze_optimization,
    validate_optimization_criteria,
)
from hummingbird.strategy.compiler import StrategyParser, compile_strategy
from hummingbird.strategy.models import StrategyConfig, StrategyStep
from hummingbird.strategy.registry import STRATEGY_REGISTRY, default_recovery, get_strategy


# ── Helpers ──────────────────────────────────────────────────────────────


def _make_config(**overrides) -> StrategyConfig:
    defaults = dict(
        name="Test",
        steps=(StrategyStep(amount=1.0, contract_type=ContractType.DIGITEVEN, symbol="R_100"),),
        base_stake=1.0,
        max_sequence=5,
        max_consecutive_losses=5,
        max_risk_exposure=15.0,
    )
    defaults.update(overrides)
    return StrategyConfig(**defaults)


def _document() -> dict:
    return {
        "strategies": [
            {
                "strategyName": "Even",
                "strategySteps": [
                    {"amount": 1, "contractType": "DIGITEVEN", "symbol": "R_100"},
                ],
                "maxSequence": 5,
                "maxConsecutiveLosses": 5,
            },
            {
                "strategyName": "Diff",
                "strategySteps": [
                    {"amount": 2, "contractType": "DIGITDIFF", "symbol": "R_10"},
                ],
                "maxSequence": 3,
                "maxConsecutiveLosses": 2,
                "maxRiskExposure": 5,
            },
        ]
    }


# ── compile_strategy ─────────────────────────────────────────────────────


class TestCompileStrategy:
    def test_first_step_uses_base_stake(self):
        """Base stake 1 on DIGITEVEN → 95 % → anticipated profit 0.95."""
        table = compile_strategy(_make_config())
        first = table[0]
        assert first.amount == 1.0
        assert first.profit_percentage == 95.00
        assert first.anticipated_profit == pytest.approx(0.95)
        assert first.step_number == 1

    def test_recovery_formula(self):
        table = compile_strategy(_make_config())
        assert table[1].amount == pytest.approx(2.90)
        assert table[1].profit_percentage == 95.50
        assert table[2].amount == pytest.approx(8.56787, abs=1e-5)
        assert table[2].profit_percentage == 95.40

    def test_non_aggressive_clamp(self):
        table = compile_strategy(_make_config())
        assert table[3].amount == 15.0
        assert table[3].anticipated_profit == pytest.approx(15.0 * 0.954)
        assert "Capped at 15.00" in table[3].formula
        assert table[4].amount == 15.0

    def test_lower_exposure_clamps_earlier(self):
        table = compile_strategy(_make_config(max_risk_exposure=5.0))
        assert table[2].amount == 5.0
        assert table[2].anticipated_profit == pytest.approx(5.0 * 0.954)

    def test_aggressive_not_clamped(self):
        table = compile_strategy(_make_config(is_aggressive=True))
        assert table[3].amount > 15.0

    def test_max_sequence_exceeds_templates(self):
        table = compile_strategy(_make_config(is_aggressive=True, max_sequence=6))
        assert len(table) == 6
        assert {s.template_index for s in table} == {0}
        amounts = table.amounts
        assert all(b > a for a, b in zip(amounts, amounts[1:]))

    def test_templates_cycle_last_repeats(self):
        steps = (
            StrategyStep(amount=1.0, contract_type=ContractType.DIGITEVEN, symbol="R_100"),
            StrategyStep(amount=1.0, contract_type=ContractType.DIGITODD, symbol="R_100"),
        )
        table = compile_strategy(_make_config(steps=steps, max_sequence=4))
        assert [s.template_index for s in table] == [0, 1, 1, 1]
        assert table[1].barrier == "ODD"

    def test_compile_is_idempotent(self):
        config = _make_config(
            steps=(StrategyStep(amount=1.0, contract_type=ContractType.DIGITDIFF, symbol="R_100"),),
        )
        assert compile_strategy(config) == compile_strategy(config)

    def test_base_stake_override(self):
        table = compile_strategy(_make_config(), base_stake=2.0)
        assert table.base_stake == 2.0
        assert table[0].amount == 2.0
        assert table[0].profit_percentage == 95.50

    def test_empty_steps_rejected(self):
        with pytest.raises(InvalidStrategyDefinition, match="no steps"):
            compile_strategy(_make_config(steps=()))

    def test_non_positive_amount_rejected(self):
        steps = (StrategyStep(amount=0.0, contract_type=ContractType.CALL, symbol="R_100"),)
        with pytest.raises(InvalidStrategyDefinition, match="amount"):
            compile_strategy(_make_config(steps=steps))

    def test_missing_symbol_rejected(self):
        steps = (StrategyStep(amount=1.0, contract_type=ContractType.CALL, symbol=""),)
        with pytest.raises(InvalidStrategyDefinition, match="symbol"):
            compile_strategy(_make_config(steps=steps))

    def test_unknown_contract_type_rejected(self):
        steps = (StrategyStep(amount=1.0, contract_type="DIGITMATCH", symbol="R_100"),)
        with pytest.raises(InvalidStrategyDefinition, match="contract type"):
            compile_strategy(_make_config(steps=steps))


# ── StrategyParser ───────────────────────────────────────────────────────


class TestStrategyParser:
    def test_compiles_every_strategy(self):
        parser = StrategyParser(_document())
        assert parser.strategy_count == 2
        assert len(parser.all_steps()) == 5
        assert len(parser.all_steps(1)) == 3

    def test_strategy_index_selects_one(self):
        parser = StrategyParser(_document(), strategy_index=1)
        assert parser.strategy_count == 1
        assert parser.config().name == "Diff"

    def test_invalid_strategy_index(self):
        with pytest.raises(InvalidStrategyDefinition, match="index"):
            StrategyParser(_document(), strategy_index=7)

    def test_select_changes_default(self):
        parser = StrategyParser(_document())
        parser.select(1)
        assert parser.active_index == 1
        assert parser.base_stake == 2.0

    def test_step_out_of_range(self):
        parser = StrategyParser(_document())
        with pytest.raises(IndexError):
            parser.step(99)

    def test_next_step_by_losses(self):
        parser = StrategyParser(_document())
        assert parser.next_step(0).step_number == 1
        assert parser.next_step(2).step_number == 3

    def test_next_step_at_loss_limit(self):
        parser = StrategyParser(_document())
        with pytest.raises(RiskLimitExceeded, match="5"):
            parser.next_step(5)

    def test_safe_step_returns_error(self):
        parser = StrategyParser(_document())
        assert "error" in parser.safe_step(99)
        assert "error" in parser.safe_step(0, index=5)
        assert parser.safe_step(0).amount == 1.0

    def test_should_enter_recovery(self):
        parser = StrategyParser(_document())
        assert parser.should_enter_recovery(0) is False
        assert parser.should_enter_recovery(3) is True
        assert parser.should_enter_recovery(20) is False

    def test_meta_info(self):
        meta = StrategyParser(_document()).meta_info()
        assert meta["risk_profile"] == "moderate"
        assert meta["recommended_balance"] == pytest.approx(15.0 * 5 * 1.5)
        assert StrategyParser(_document()).meta_info(1)["risk_profile"] == "conservative"

    def test_formatted_output(self):
        output = StrategyParser(_document()).formatted_output()
        assert output["configuration"]["strategy_name"] == "Even"
        assert output["steps"][0]["contract_type"] == "DIGITEVEN"
        assert len(output["steps"]) == 5

    def test_serialize_roundtrip(self):
        parser = StrategyParser(_document(), base_stake=2.0)
        parser.select(1)
        restored = StrategyParser.deserialize(parser.serialize())
        assert restored.active_index == 1
        assert restored.all_steps(0) == parser.all_steps(0)
        assert restored.all_steps(1) == parser.all_steps(1)

    def test_accepts_single_config(self):
        parser = StrategyParser(default_recovery(1.0))
        assert parser.config().name == "DefaultRecovery"


# ── Analysis ─────────────────────────────────────────────────────────────


class TestAnalysis:
    def test_metrics(self):
        parser = StrategyParser(_document())
        metrics = parser.metrics()
        assert metrics.total_risk_exposure == pytest.approx(sum(parser.table().amounts))
        assert metrics.max_single_risk == 15.0
        assert metrics.win_probability == 1.0
        assert metrics.risk_of_ruin == 0.0

    def test_visualization(self):
        viz = StrategyParser(_document()).visualization()
        assert len(viz["chart_data"]) == 5
        assert viz["chart_data"][0]["risk_percentage"] == 100.0
        assert viz["summary"]["max_drawdown"] > 0

    def test_conservative_preset(self):
        optimized = StrategyParser(_document()).optimize_with_preset("conservative")
        assert optimized[0].amount == 1.0
        assert optimized[1].amount == pytest.approx(2.9 * 1.1)
        assert max(s.amount for s in optimized) <= 3.0 * 1.1 + 1e-9

    def test_unknown_preset(self):
        with pytest.raises(KeyError, match="Unknown preset"):
            StrategyParser(_document()).optimize_with_preset("yolo")

    def test_criteria_validation(self):
        with pytest.raises(ValueError, match="base stake"):
            validate_optimization_criteria(OptimizationCriteria(max_risk=0.5), 1.0)
        with pytest.raises(ValueError, match="Risk multiplier"):
            validate_optimization_criteria(OptimizationCriteria(risk_multiplier=0.9), 1.0)

    def test_analyze_optimization(self):
        parser = StrategyParser(_document())
        original = parser.all_steps()
        optimized = parser.optimize(OptimizationCriteria(max_risk=3.0))
        analysis = analyze_optimization(original, optimized)
        assert analysis.optimized_risk < analysis.original_risk
        assert 0 < analysis.risk_reduction < 1


# ── Registry ─────────────────────────────────────────────────────────────


class TestRegistry:
    def test_registered_names(self):
        assert set(STRATEGY_REGISTRY) == {
            "default_recovery", "even_odd_alternating", "over_under_shield",
        }

    def test_get_strategy(self):
        config = get_strategy("over_under_shield", 2.0)
        assert config.base_stake == 2.0
        assert config.steps[0].contract_type is ContractType.DIGITOVER_1
        assert len(compile_strategy(config)) == config.max_sequence

    def test_unknown_strategy(self):
        with pytest.raises(KeyError, match="Available"):
            get_strategy("martingale", 1.0)
