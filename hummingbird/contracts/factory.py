"""Barrier selection and contract parameter construction — pure helpers.

``default_barrier`` maps a contract type to the barrier used when a strategy
step does not name one.  Generic ``DIGITOVER`` / ``DIGITUNDER`` default to
the mid-range digit 5.
"""

import random
from typing import Optional

from hummingbird.contracts.models import (
    Barrier,
    Basis,
    ContractType,
    Currency,
    DEFAULT_MARKET,
    DurationUnit,
    NextTradeParams,
    TradeMetadata,
)

GENERIC_DIGIT_BARRIER = 5

_TOKEN_BARRIERS: dict[ContractType, str] = {
    ContractType.DIGITEVEN: "EVEN",
    ContractType.DIGITODD: "ODD",
}


def random_digit(rng: Optional[random.Random] = None) -> int:
    """Uniformly random digit 0–9."""
    return (rng or random).randint(0, 9)


def default_barrier(
    contract_type: ContractType,
    rng: Optional[random.Random] = None,
) -> Barrier:
    """Return the default barrier for *contract_type*.

    - CALL / PUT → ``None``
    - DIGITEVEN / DIGITODD → ``"EVEN"`` / ``"ODD"``
    - DIGITDIFF → random digit 0–9
    - DIGITOVER_n / DIGITUNDER_n → ``n``
    - DIGITOVER / DIGITUNDER → 5
    """
    if contract_type in (ContractType.CALL, ContractType.PUT):
        return None
    if contract_type in _TOKEN_BARRIERS:
        return _TOKEN_BARRIERS[contract_type]
    if contract_type is ContractType.DIGITDIFF:
        return random_digit(rng)
    if contract_type.digit is not None:
        return contract_type.digit
    return GENERIC_DIGIT_BARRIER


def validate_digit(digit) -> int:
    """Return *digit* as an int, raising ``ValueError`` outside 0–9."""
    if isinstance(digit, bool):
        raise ValueError(f"digit must be 0-9, got {digit!r}")
    try:
        value = int(digit)
    except (TypeError, ValueError):
        raise ValueError(f"digit must be 0-9, got {digit!r}") from None
    if value != float(digit) or not 0 <= value <= 9:
        raise ValueError(f"digit must be 0-9, got {digit!r}")
    return value


class ContractParamsFactory:
    """Builds ``NextTradeParams`` with type-appropriate barriers."""

    def __init__(
        self,
        symbol: str = DEFAULT_MARKET,
        currency: str = Currency.USD.value,
        duration_value: int = 1,
        duration_unit: DurationUnit = DurationUnit.TICKS,
        basis: Basis = Basis.STAKE,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._symbol = symbol
        self._currency = currency
        self._duration_value = duration_value
        self._duration_unit = duration_unit
        self._basis = basis
        self._rng = rng

    def create(
        self,
        contract_type: ContractType,
        amount: float,
        barrier: Barrier = None,
        *,
        symbol: Optional[str] = None,
        currency: Optional[str] = None,
        duration_value: Optional[int] = None,
        duration_unit: Optional[DurationUnit] = None,
        basis: Optional[Basis] = None,
        metadata: Optional[TradeMetadata] = None,
    ) -> NextTradeParams:
        """Build params; *barrier* falls back to ``default_barrier``.

        Raises ``ValueError`` for a non-positive amount or a digit barrier
        outside 0–9.
        """
        if amount <= 0:
            raise ValueError(f"amount must be positive, got {amount}")
        if barrier is None:
            barrier = default_barrier(contract_type, self._rng)
        elif contract_type.is_digit and contract_type not in _TOKEN_BARRIERS:
            barrier = validate_digit(barrier)

        return NextTradeParams(
            basis=basis or self._basis,
            symbol=symbol or self._symbol,
            amount=round(amount, 2),
            barrier=barrier,
            currency=currency or self._currency,
            contract_type=contract_type,
            duration_value=duration_value or self._duration_value,
            duration_unit=duration_unit or self._duration_unit,
            metadata=metadata or TradeMetadata(),
        )

    # ── Convenience constructors ─────────────────────────────────────────

    def digit_diff(self, amount: float, predicted_digit: int) -> NextTradeParams:
        return self.create(ContractType.DIGITDIFF, amount, validate_digit(predicted_digit))

    def digit_over(self, amount: float, barrier: int = GENERIC_DIGIT_BARRIER) -> NextTradeParams:
        return self.create(ContractType.DIGITOVER, amount, validate_digit(barrier))

    def digit_under(self, amount: float, barrier: int = GENERIC_DIGIT_BARRIER) -> NextTradeParams:
        return self.create(ContractType.DIGITUNDER, amount, validate_digit(barrier))

    def digit_even(self, amount: float) -> NextTradeParams:
        return self.create(ContractType.DIGITEVEN, amount)

    def digit_odd(self, amount: float) -> NextTradeParams:
        return self.create(ContractType.DIGITODD, amount)

    def rise(self, amount: float) -> NextTradeParams:
        return self.create(ContractType.CALL, amount)

    def fall(self, amount: float) -> NextTradeParams:
        return self.create(ContractType.PUT, amount)
