"""Contract data models — typed representations of venue contracts.

Internal codes only.  Display labels for the chat layer live in
``hummingbird.contracts.labels``.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Union

from hummingbird.errors import InvalidTradeOutcome

Barrier = Union[int, str, None]


class ContractType(str, Enum):
    """Closed set of contract types the engine can trade."""

    CALL = "CALL"
    PUT = "PUT"
    DIGITDIFF = "DIGITDIFF"
    DIGITOVER = "DIGITOVER"
    DIGITUNDER = "DIGITUNDER"
    DIGITEVEN = "DIGITEVEN"
    DIGITODD = "DIGITODD"
    DIGITOVER_0 = "DIGITOVER_0"
    DIGITOVER_1 = "DIGITOVER_1"
    DIGITOVER_2 = "DIGITOVER_2"
    DIGITOVER_3 = "DIGITOVER_3"
    DIGITOVER_4 = "DIGITOVER_4"
    DIGITOVER_5 = "DIGITOVER_5"
    DIGITOVER_6 = "DIGITOVER_6"
    DIGITOVER_7 = "DIGITOVER_7"
    DIGITOVER_8 = "DIGITOVER_8"
    DIGITOVER_9 = "DIGITOVER_9"
    DIGITUNDER_0 = "DIGITUNDER_0"
    DIGITUNDER_1 = "DIGITUNDER_1"
    DIGITUNDER_2 = "DIGITUNDER_2"
    DIGITUNDER_3 = "DIGITUNDER_3"
    DIGITUNDER_4 = "DIGITUNDER_4"
    DIGITUNDER_5 = "DIGITUNDER_5"
    DIGITUNDER_6 = "DIGITUNDER_6"
    DIGITUNDER_7 = "DIGITUNDER_7"
    DIGITUNDER_8 = "DIGITUNDER_8"
    DIGITUNDER_9 = "DIGITUNDER_9"

    @property
    def digit(self) -> Optional[int]:
        """The ``n`` of a ``DIGITOVER_n`` / ``DIGITUNDER_n`` variant."""
        head, sep, tail = self.value.rpartition("_")
        if sep and tail.isdigit():
            return int(tail)
        return None

    @property
    def family(self) -> "ContractType":
        """Generic type a numbered variant belongs to (itself otherwise)."""
        if self.digit is None:
            return self
        return ContractType(self.value.rpartition("_")[0])

    @property
    def is_digit(self) -> bool:
        return self not in (ContractType.CALL, ContractType.PUT)

    @property
    def venue_code(self) -> str:
        """Code submitted to the venue (numbered variants use the family)."""
        return self.family.value

    @classmethod
    def parse(cls, code: Any) -> "ContractType":
        """Resolve a code, accepting the venue's ``EVEN``/``ODD`` aliases.

        Raises ``ValueError`` for anything outside the closed set.
        """
        if isinstance(code, cls):
            return code
        if not isinstance(code, str):
            raise ValueError(f"Contract type must be a string, got {code!r}")
        normalized = code.strip().upper()
        normalized = _CONTRACT_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown contract type '{code}'") from None


_CONTRACT_ALIASES: dict[str, str] = {
    "EVEN": "DIGITEVEN",
    "ODD": "DIGITODD",
    "DIGITDIFFERS": "DIGITDIFF",
    "RISE": "CALL",
    "FALL": "PUT",
}


class Basis(str, Enum):
    STAKE = "stake"
    PAYOUT = "payout"


class DurationUnit(str, Enum):
    TICKS = "t"
    SECONDS = "s"
    MINUTES = "m"
    HOURS = "h"
    DAYS = "d"


class Currency(str, Enum):
    USD = "USD"
    USDT = "USDT"
    USDC = "USDC"
    EUR = "EUR"
    BTC = "BTC"
    ETH = "ETH"


DEFAULT_MARKET = "R_100"


# ── Trade outcome (input) ────────────────────────────────────────────────

# Venue field names accepted as aliases for the canonical outcome keys.
_OUTCOME_ALIASES: dict[str, tuple[str, ...]] = {
    "is_win": ("profit_is_win",),
    "stake": ("buy_price_value",),
    "profit": ("profit_value",),
    "balance": ("balance_value",),
    "timestamp": ("expiry_time", "sell_spot_time"),
    "contract_id": ("buy_transaction",),
    "symbol": ("symbol_short",),
}


def _lookup(data: Mapping[str, Any], key: str) -> Any:
    if key in data:
        return data[key]
    for alias in _OUTCOME_ALIASES.get(key, ()):
        if alias in data:
            return data[alias]
    if key == "balance":
        account = data.get("account") or data.get("userAccount")
        if isinstance(account, Mapping) and "balance" in account:
            return account["balance"]
    raise InvalidTradeOutcome(f"Missing required field: {key}")


def _as_number(key: str, value: Any) -> float:
    if isinstance(value, bool) or value is None:
        raise InvalidTradeOutcome(f"Field '{key}' must be numeric, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidTradeOutcome(
            f"Field '{key}' must be numeric, got {value!r}"
        ) from None
    if math.isnan(number) or math.isinf(number):
        raise InvalidTradeOutcome(f"Field '{key}' must be finite, got {value!r}")
    return number


@dataclass(frozen=True)
class TradeOutcome:
    """A settled contract as reported back by the execution collaborator."""

    is_win: bool
    stake: float
    profit: float  # realized profit; negative on a loss
    balance: float  # account balance after settlement
    timestamp: float  # epoch seconds
    contract_id: str
    symbol: str = ""
    contract_type: Optional[ContractType] = None
    currency: str = Currency.USD.value

    @classmethod
    def from_dict(cls, data: Any) -> "TradeOutcome":
        """Validate an upstream mapping and build an outcome.

        Accepts the canonical keys or the venue's field names
        (``profit_is_win``, ``buy_price_value``, ``profit_value``, ...).

        Instances are re-checked field by field as well.

        Raises ``InvalidTradeOutcome`` naming the offending field.
        """
        if isinstance(data, cls):
            data = asdict(data)
        if not isinstance(data, Mapping):
            raise InvalidTradeOutcome(
                f"Trade outcome must be a mapping, got {type(data).__name__}"
            )

        is_win = _lookup(data, "is_win")
        if not isinstance(is_win, bool):
            raise InvalidTradeOutcome(f"Field 'is_win' must be a bool, got {is_win!r}")

        stake = _as_number("stake", _lookup(data, "stake"))
        if stake <= 0:
            raise InvalidTradeOutcome(f"Field 'stake' must be positive, got {stake}")
        profit = _as_number("profit", _lookup(data, "profit"))
        balance = _as_number("balance", _lookup(data, "balance"))
        if balance < 0:
            raise InvalidTradeOutcome(f"Field 'balance' must be >= 0, got {balance}")
        timestamp = _as_number("timestamp", _lookup(data, "timestamp"))

        contract_id = _lookup(data, "contract_id")
        if isinstance(contract_id, bool) or contract_id in (None, ""):
            raise InvalidTradeOutcome("Field 'contract_id' must be non-empty")

        contract_type = None
        raw_type = data.get("contract_type")
        if raw_type:
            try:
                contract_type = ContractType.parse(raw_type)
            except ValueError as exc:
                raise InvalidTradeOutcome(str(exc)) from None

        symbol = data.get("symbol", data.get("symbol_short", ""))
        return cls(
            is_win=is_win,
            stake=stake,
            profit=profit,
            balance=balance,
            timestamp=timestamp,
            contract_id=str(contract_id),
            symbol=str(symbol or ""),
            contract_type=contract_type,
            currency=str(data.get("currency", Currency.USD.value)),
        )


@dataclass(frozen=True)
class AccountSnapshot:
    """Balance view of the trading account, used by the circuit breakers."""

    balance: float
    currency: str = Currency.USD.value
    login_id: str = ""


# ── Next trade (output) ──────────────────────────────────────────────────


@dataclass(frozen=True)
class TradeMetadata:
    """Side-channel flags for the caller.

    ``safety_mode=True`` marks a protective minimal-risk trade rather than a
    normal recovery step.
    """

    safety_mode: bool = False
    reason: Optional[str] = None
    cooldown_remaining: float = 0.0
    strategy: Optional[str] = None
    step_number: Optional[int] = None
    recovery_mode: Optional[str] = None


@dataclass(frozen=True)
class NextTradeParams:
    """A fully concrete order ready for the execution collaborator."""

    basis: Basis
    symbol: str
    amount: float
    barrier: Barrier
    currency: str
    contract_type: ContractType
    duration_value: int
    duration_unit: DurationUnit
    metadata: TradeMetadata = field(default_factory=TradeMetadata)

    @property
    def is_safety_trade(self) -> bool:
        return self.metadata.safety_mode

    def to_contract_params(self) -> dict:
        """Render the venue-neutral contract parameter mapping."""
        params = {
            "amount": self.amount,
            "basis": self.basis.value,
            "contract_type": self.contract_type.venue_code,
            "currency": self.currency,
            "duration": self.duration_value,
            "duration_unit": self.duration_unit.value,
            "symbol": self.symbol,
        }
        if self.barrier is not None:
            params["barrier"] = str(self.barrier)
        return params
