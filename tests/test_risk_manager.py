"""Tests for RiskManager — recovery sequencing, safety mode and breakers."""

from unittest.mock import MagicMock

import pytest

from hummingbird.contracts.models import (
    AccountSnapshot,
    ContractType,
    TradeOutcome,
)
from hummingbird.risk.circuit_breaker import CircuitBreakerConfig, RapidLossConfig
from hummingbird.risk.manager import RiskManager
from hummingbird.strategy.compiler import StrategyParser
from hummingbird.strategy.models import StrategyConfig, StrategyStep


# ── Helpers ──────────────────────────────────────────────────────────────


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


# Rapid-loss detection is exercised separately; keep it out of the way here.
_QUIET_RAPID = RapidLossConfig(threshold=100)


def _make_manager(clock=None, breaker_config=None, **overrides) -> RiskManager:
    defaults = dict(
        base_stake=1.0,
        market="R_100",
        currency="USD",
        contract_type=ContractType.DIGITEVEN,
        clock=clock or FakeClock(),
        breaker_config=breaker_config or CircuitBreakerConfig(rapid_loss=_QUIET_RAPID),
    )
    defaults.update(overrides)
    return RiskManager(**defaults)


def _loss(stake: float = 1.0, balance: float = 1000.0) -> TradeOutcome:
    return TradeOutcome(
        is_win=False, stake=stake, profit=-stake, balance=balance,
        timestamp=1_700_000_000, contract_id="c",
    )


def _win(stake: float = 1.0, profit: float = 0.95, balance: float = 1000.0) -> TradeOutcome:
    return TradeOutcome(
        is_win=True, stake=stake, profit=profit, balance=balance,
        timestamp=1_700_000_000, contract_id="c",
    )


def _parser(**overrides) -> StrategyParser:
    defaults = dict(
        name="Tight",
        steps=(StrategyStep(amount=1.0, contract_type=ContractType.DIGITEVEN, symbol="R_100"),),
        base_stake=1.0,
        max_sequence=5,
        max_consecutive_losses=5,
        max_risk_exposure=15.0,
    )
    defaults.update(overrides)
    return StrategyParser(StrategyConfig(**defaults))


# ── Construction ─────────────────────────────────────────────────────────


class TestConstruction:
    @pytest.mark.parametrize("stake", [0, -1, "1"])
    def test_invalid_base_stake(self, stake):
        with pytest.raises(ValueError, match="base_stake"):
            _make_manager(base_stake=stake)

    def test_missing_market(self):
        with pytest.raises(ValueError, match="market"):
            _make_manager(market="")

    def test_unknown_contract_type(self):
        with pytest.raises(ValueError):
            _make_manager(contract_type="DIGITMATCH")

    def test_unknown_recovery_mode(self):
        with pytest.raises(ValueError, match="recovery_mode"):
            _make_manager(recovery_mode="martingale")

    def test_default_strategy_first_trade(self):
        params = _make_manager().get_next_trade_params()
        assert params.amount == 1.0
        assert params.contract_type is ContractType.DIGITEVEN
        assert params.barrier == "EVEN"
        assert params.metadata.step_number == 1
        assert params.metadata.recovery_mode is None
        assert params.is_safety_trade is False


# ── Recovery sequencing ──────────────────────────────────────────────────


class TestRecovery:
    def test_loss_advances_to_recovery_step(self):
        rm = _make_manager()
        params = rm.process_result(_loss())
        assert rm.consecutive_losses == 1
        assert rm.total_loss_amount == 1.0
        assert params.amount == pytest.approx(2.90)
        assert params.metadata.step_number == 2
        assert params.metadata.recovery_mode == "compounding"

    def test_win_recovers_and_returns_to_base(self):
        rm = _make_manager()
        rm.process_result(_loss())
        params = rm.process_result(_win(stake=2.9, profit=2.77))
        assert rm.consecutive_losses == 0
        assert rm.total_loss_amount == 0.0
        assert rm.recovery_attempts == 0
        assert params.amount == 1.0

    def test_partial_recovery_keeps_remaining_loss(self):
        rm = _make_manager()
        rm.process_result(_loss(stake=1.0))
        rm.process_result(_loss(stake=2.9))
        rm.process_result(_win(stake=1.0, profit=0.95))
        assert rm.total_loss_amount == pytest.approx(3.9 - 0.95)
        assert rm.consecutive_losses == 0

    def test_total_loss_never_negative(self):
        rm = _make_manager()
        rm.process_result(_win(profit=5.0))
        assert rm.total_loss_amount == 0.0

    def test_step_index_clamped_to_table(self):
        rm = _make_manager(parser=_parser(max_consecutive_losses=10, max_risk_exposure=100))
        for _ in range(4):
            rm.process_result(_loss(stake=1.0))
        assert rm.get_next_trade_params().metadata.step_number == 5
        assert rm.state().current_recovery_step == 4

    def test_dict_input_accepted(self):
        rm = _make_manager()
        params = rm.process_result({
            "is_win": False, "stake": 1, "profit": -1, "balance": 100,
            "timestamp": 1_700_000_000, "contract_id": "c-1",
        })
        assert rm.consecutive_losses == 1
        assert params.metadata.step_number == 2

    def test_counters_consistent(self):
        rm = _make_manager()
        for outcome in (_loss(), _win(), _loss(), _loss(), _win(profit=3.0)):
            rm.process_result(outcome)
        state = rm.state()
        assert state.winning_trades + state.losing_trades == state.total_trades == 5
        assert state.max_stake_seen == 1.0
        assert state.min_stake_seen == 1.0
        assert state.last_result_win is True


# ── Safety mode ──────────────────────────────────────────────────────────


class TestSafetyMode:
    def test_invalid_result_yields_safety_response(self):
        rm = _make_manager()
        params = rm.process_result({"stake": 1})
        assert params.is_safety_trade
        assert params.metadata.reason == "invalid_trade_data"
        assert params.amount == 1.0
        assert rm.state().total_trades == 0

    @pytest.mark.parametrize("stake", [-5.0, 0.0, float("nan"), float("inf")])
    def test_bad_outcome_instance_yields_safety_response(self, stake):
        rm = _make_manager()
        bad = TradeOutcome(
            is_win=False, stake=stake, profit=-1.0, balance=1000.0,
            timestamp=1_700_000_000, contract_id="c",
        )
        params = rm.process_result(bad)
        assert params.is_safety_trade
        assert params.metadata.reason == "invalid_trade_data"
        assert rm.total_loss_amount == 0.0
        assert rm.state().total_trades == 0

    def test_outcome_instance_without_contract_id_rejected(self):
        rm = _make_manager()
        bad = TradeOutcome(
            is_win=True, stake=1.0, profit=0.95, balance=1000.0,
            timestamp=1_700_000_000, contract_id="",
        )
        assert rm.process_result(bad).metadata.reason == "invalid_trade_data"

    def test_manual_entry_defaults_to_risk_manager_source(self):
        rm = _make_manager()
        rm.enter_safety_mode("manual")
        assert rm.safety.active
        assert rm.safety.source == "risk_manager"

    def test_max_recovery_attempts(self):
        rm = _make_manager()
        for _ in range(4):
            params = rm.process_result(_loss(stake=1.0))
            assert not params.is_safety_trade
        params = rm.process_result(_loss(stake=1.0))
        assert params.is_safety_trade
        assert params.metadata.reason == "max_recovery_attempts"
        assert params.amount == 1.0
        assert params.contract_type is ContractType.DIGITEVEN
        assert rm.safety.source == "risk_manager"

    def test_balance_below_floor(self):
        rm = _make_manager()
        params = rm.process_result(_loss(stake=1.0, balance=2.0))
        assert params.is_safety_trade
        assert params.metadata.reason == "balance_below_floor"
        assert params.metadata.cooldown_remaining == pytest.approx(60.0)

    def test_max_risk_exposure(self):
        rm = _make_manager()
        rm.process_result(_loss(stake=10.0))
        params = rm.process_result(_loss(stake=10.0))
        assert params.metadata.reason == "max_risk_exposure_exceeded"

    def test_excessive_consecutive_losses(self):
        rm = _make_manager(parser=_parser(max_consecutive_losses=1))
        rm.process_result(_loss())
        params = rm.process_result(_loss())
        assert params.metadata.reason == "excessive_consecutive_losses"

    def test_results_still_counted_in_safety_mode(self):
        rm = _make_manager()
        rm.process_result(_loss(balance=2.0))
        params = rm.process_result(_win(balance=2.95))
        assert params.is_safety_trade
        assert rm.state().total_trades == 2
        assert rm.total_loss_amount == pytest.approx(0.05)

    def test_safety_expires_lazily(self):
        clock = FakeClock()
        rm = _make_manager(clock=clock)
        rm.process_result(_loss(balance=2.0))
        assert rm.is_in_safety_mode()
        clock.now += 30
        assert rm.get_next_trade_params().metadata.cooldown_remaining == pytest.approx(30.0)
        clock.now += 31
        assert not rm.is_in_safety_mode()
        assert not rm.get_next_trade_params().is_safety_trade

    def test_reset_safety_mode(self):
        rm = _make_manager()
        rm.process_result(_loss(balance=2.0))
        rm.reset_safety_mode()
        assert not rm.is_in_safety_mode()
        assert rm.total_loss_amount == 1.0

    def test_re_entry_keeps_later_deadline(self):
        clock = FakeClock()
        rm = _make_manager(clock=clock)
        rm.enter_safety_mode("manual", cooldown=600)
        rm.enter_safety_mode("balance_below_floor", cooldown=10)
        assert rm.safety.until == clock.now + 600
        assert rm.safety.reason == "balance_below_floor"

    def test_reset_clears_everything(self):
        rm = _make_manager()
        for _ in range(5):
            rm.process_result(_loss())
        rm.reset()
        state = rm.state()
        assert state.total_trades == 0
        assert state.consecutive_losses == 0
        assert state.total_loss_amount == 0.0
        assert not state.safety.active


# ── Last-resort recovery ─────────────────────────────────────────────────


class TestLastResort:
    def test_partial_recovery_arms_digitdiff(self):
        rm = _make_manager(recovery_mode="last_resort")
        rm.process_result(_loss(stake=1.0))
        params = rm.process_result(_win(profit=0.5))
        assert params.contract_type is ContractType.DIGITDIFF
        assert params.amount == pytest.approx(6.0)
        assert 0 <= params.barrier <= 9
        assert params.metadata.recovery_mode == "last_resort"

    def test_repeated_query_is_stable(self):
        rm = _make_manager(recovery_mode="last_resort")
        rm.process_result(_loss(stake=1.0))
        rm.process_result(_win(profit=0.5))
        assert rm.get_next_trade_params().contract_type is ContractType.DIGITDIFF

    def test_disarmed_by_next_result(self):
        rm = _make_manager(recovery_mode="last_resort")
        rm.process_result(_loss(stake=1.0))
        rm.process_result(_win(profit=0.5))
        params = rm.process_result(_win(stake=6.0, profit=0.5))
        assert params.contract_type is ContractType.DIGITEVEN
        assert rm.total_loss_amount == 0.0

    def test_compounding_never_arms(self):
        rm = _make_manager()
        rm.process_result(_loss(stake=1.0))
        params = rm.process_result(_win(profit=0.5))
        assert params.contract_type is ContractType.DIGITEVEN


# ── Circuit breakers ─────────────────────────────────────────────────────


class TestCircuitBreakers:
    def test_healthy_account_passes(self):
        rm = _make_manager()
        assert rm.check_circuit_breakers(AccountSnapshot(balance=1000.0)) is False
        assert rm.breaker_state.triggered is False

    def test_consecutive_losses_trip(self):
        rm = _make_manager()
        for _ in range(5):
            rm.process_result(_loss())
        assert rm.check_circuit_breakers(AccountSnapshot(balance=1000.0)) is True
        state = rm.breaker_state
        assert state.reasons == ("max_consecutive_losses",)
        assert rm.safety.source == "circuit_breaker"
        assert rm.safety.reason == "max_consecutive_losses"

    def test_balance_validation_trip(self):
        rm = _make_manager()
        assert rm.check_circuit_breakers(AccountSnapshot(balance=2.0)) is True
        assert rm.breaker_state.last_reason == "balance_validation_failed"
        assert rm.validate_account_balance(1.0, AccountSnapshot(balance=2.0)).reasons == (
            "minimum_balance_violation",
        )

    def test_absolute_loss_trip(self):
        rm = _make_manager(
            breaker_config=CircuitBreakerConfig(max_absolute_loss=3.0, rapid_loss=_QUIET_RAPID),
        )
        for _ in range(3):
            rm.process_result(_loss())
        assert rm.check_circuit_breakers(AccountSnapshot(balance=1000.0)) is True
        assert "absolute_loss_limit" in rm.breaker_state.reasons

    def test_daily_loss_trip_and_rollover(self):
        clock = FakeClock()
        rm = _make_manager(
            clock=clock,
            breaker_config=CircuitBreakerConfig(max_daily_loss=3.0, rapid_loss=_QUIET_RAPID),
        )
        for _ in range(3):
            rm.process_result(_loss())
        assert rm.daily_loss_amount == 3.0
        assert rm.check_circuit_breakers(AccountSnapshot(balance=1000.0)) is True
        assert rm.breaker_state.reasons == ("daily_loss_limit",)

        clock.now += 86_400
        assert rm.daily_loss_amount == 0.0
        assert rm.total_loss_amount == 3.0

    def test_rapid_loss_only(self):
        clock = FakeClock()
        rm = _make_manager(
            clock=clock,
            breaker_config=CircuitBreakerConfig(rapid_loss=RapidLossConfig(threshold=2)),
        )
        rm.process_result(_loss())
        rm.process_result(_loss())
        assert rm.check_circuit_breakers(AccountSnapshot(balance=1000.0)) is True
        assert rm.breaker_state.reasons == ("rapid_loss_detected",)
        assert rm.safety.source == "rapid_loss"
        assert rm.safety.until == clock.now + 60.0
        assert rm.is_in_rapid_loss_cooldown()
        assert rm.rapid_loss_cooldown_remaining() == pytest.approx(30.0)

    def test_rapid_loss_cooldown_extends_safety(self):
        clock = FakeClock()
        rm = _make_manager(
            clock=clock,
            breaker_config=CircuitBreakerConfig(
                cooldown_seconds=10.0,
                rapid_loss=RapidLossConfig(threshold=2, initial_cooldown_seconds=90.0),
            ),
        )
        rm.process_result(_loss())
        rm.process_result(_loss())
        rm.check_circuit_breakers(AccountSnapshot(balance=1000.0))
        assert rm.safety.until == clock.now + 90.0
        assert rm.breaker_state.safety_mode_until == clock.now + 90.0

    def test_reset_safety_clears_rapid_history(self):
        rm = _make_manager(
            breaker_config=CircuitBreakerConfig(rapid_loss=RapidLossConfig(threshold=2)),
        )
        rm.record_rapid_loss(1.0)
        rm.record_rapid_loss(1.0)
        assert rm.check_rapid_losses() is True
        rm.reset_safety_mode()
        assert rm.rapid_loss_state().trigger_count == 0
        assert rm.breaker_state.triggered is False

    def test_small_rapid_losses_ignored(self):
        rm = _make_manager()
        assert rm.record_rapid_loss(0.5) is False


# ── Fallbacks ────────────────────────────────────────────────────────────


class TestFallbacks:
    def test_broken_step_table_falls_back_to_base_trade(self):
        parser = MagicMock()
        parser.table.side_effect = RuntimeError("boom")
        rm = _make_manager(parser=parser)
        params = rm.get_next_trade_params()
        assert params.amount == 1.0
        assert params.contract_type is ContractType.DIGITEVEN
        assert params.barrier == "EVEN"
        assert not params.is_safety_trade

    def test_processing_error_enters_safety_mode(self):
        parser = MagicMock()
        parser.config.side_effect = [RuntimeError("boom"), MagicMock()]
        rm = _make_manager(parser=parser)
        params = rm.process_result(_loss())
        assert rm.safety.reason == "processing_error"
        assert params.is_safety_trade
