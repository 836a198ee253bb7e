"""Reward table — stake → payout percentage lookup, pure math, no I/O.

Each contract family owns an ordered list of half-open tiers
``[min_stake, max_stake)`` that must partition ``[0, inf)``.  A table
that leaves a gap or overlap refuses to initialise.
"""

import logging
import math
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from hummingbird.contracts.models import ContractType
from hummingbird.errors import RewardTableError, StakeOutOfRange, UnsupportedContractType

logger = logging.getLogger("hummingbird.rewards")


@dataclass(frozen=True)
class RewardTier:
    """A stake bracket and the payout percentage it earns."""

    min_stake: float
    max_stake: float
    reward_percentage: float

    def covers(self, stake: float) -> bool:
        return self.min_stake <= stake < self.max_stake


def _tiers(breaks: Sequence[float], percentages: Sequence[float]) -> tuple[RewardTier, ...]:
    """Build contiguous tiers from interior breakpoints."""
    bounds = [0.0, *breaks, math.inf]
    return tuple(
        RewardTier(bounds[i], bounds[i + 1], pct)
        for i, pct in enumerate(percentages)
    )


# Venue payout brackets: below 0.50, 0.75, 1, 2, 3, 5, and 5+.
_BREAKS = (0.50, 0.75, 1.00, 2.00, 3.00, 5.00)

DEFAULT_REWARD_TIERS: dict[ContractType, tuple[RewardTier, ...]] = {
    ContractType.DIGITDIFF: _tiers(_BREAKS, (5.71, 6.00, 8.00, 9.00, 9.50, 9.67, 9.67)),
    ContractType.DIGITOVER: _tiers(_BREAKS, (5.71, 6.00, 8.00, 9.00, 9.50, 9.67, 9.67)),
    ContractType.DIGITUNDER: _tiers(_BREAKS, (5.71, 6.00, 8.00, 9.00, 9.50, 9.67, 9.67)),
    ContractType.DIGITEVEN: _tiers(_BREAKS, (88.57, 92.00, 94.67, 95.00, 95.50, 95.33, 95.40)),
    ContractType.DIGITODD: _tiers(_BREAKS, (88.57, 92.00, 94.67, 95.00, 95.50, 95.33, 95.40)),
    ContractType.CALL: _tiers(_BREAKS, (77.14, 78.00, 78.67, 79.00, 79.50, 79.33, 79.40)),
    ContractType.PUT: _tiers(_BREAKS, (77.14, 78.00, 78.67, 79.00, 79.50, 79.33, 79.40)),
}


def validate_tiers(contract_type: ContractType, tiers: Sequence[RewardTier]) -> None:
    """Raise ``RewardTableError`` unless *tiers* partition ``[0, inf)``."""
    if not tiers:
        raise RewardTableError(f"Reward structure for {contract_type.value} is empty")
    if tiers[0].min_stake != 0:
        raise RewardTableError(
            f"Reward structure for {contract_type.value} must start at 0, "
            f"starts at {tiers[0].min_stake}"
        )
    if tiers[-1].max_stake != math.inf:
        raise RewardTableError(
            f"Reward structure for {contract_type.value} must be unbounded, "
            f"ends at {tiers[-1].max_stake}"
        )
    for tier in tiers:
        if not tier.min_stake < tier.max_stake:
            raise RewardTableError(
                f"Empty tier [{tier.min_stake}, {tier.max_stake}) "
                f"for {contract_type.value}"
            )
        if tier.reward_percentage < 0:
            raise RewardTableError(
                f"Negative reward percentage for {contract_type.value}"
            )
    for prev, nxt in zip(tiers, tiers[1:]):
        if prev.max_stake != nxt.min_stake:
            kind = "gap" if prev.max_stake < nxt.min_stake else "overlap"
            raise RewardTableError(
                f"Reward structure for {contract_type.value} has a {kind} "
                f"between {prev.max_stake} and {nxt.min_stake}"
            )


class RewardTable:
    """Per-contract-type tiered payout lookup.

    Args:
        structures: Mapping of contract family → tiers.  Defaults to
                    ``DEFAULT_REWARD_TIERS``.

    Raises:
        RewardTableError: If any tier list fails to partition ``[0, inf)``.
    """

    def __init__(
        self,
        structures: Optional[Mapping[ContractType, Sequence[RewardTier]]] = None,
    ) -> None:
        source = DEFAULT_REWARD_TIERS if structures is None else structures
        validated: dict[ContractType, tuple[RewardTier, ...]] = {}
        for contract_type, tiers in source.items():
            validate_tiers(contract_type, tiers)
            validated[contract_type] = tuple(tiers)
        self._structures = validated

    @property
    def contract_types(self) -> list[ContractType]:
        return list(self._structures)

    def tiers_for(self, contract_type: ContractType) -> tuple[RewardTier, ...]:
        """Return the tiers for *contract_type* (numbered variants use their family)."""
        tiers = self._structures.get(contract_type)
        if tiers is None:
            tiers = self._structures.get(contract_type.family)
        if tiers is None:
            logger.error("No reward structure found for %s", contract_type.value)
            raise UnsupportedContractType(
                f"Unsupported contract type: {contract_type.value}"
            )
        return tiers

    def percentage_for(self, contract_type: ContractType, stake: float) -> float:
        """Payout percentage earned by *stake* on *contract_type*.

        Raises:
            UnsupportedContractType: No tiers for the type.
            StakeOutOfRange: No tier covers *stake* (negative or NaN).
        """
        for tier in self.tiers_for(contract_type):
            if tier.covers(stake):
                return tier.reward_percentage
        logger.error("No reward tier found for stake %s", stake)
        raise StakeOutOfRange(f"Stake amount {stake} out of valid range")

    def anticipated_profit(self, contract_type: ContractType, stake: float) -> float:
        """``stake × percentage / 100``."""
        return stake * (self.percentage_for(contract_type, stake) / 100.0)


_default_table: Optional[RewardTable] = None


def default_reward_table() -> RewardTable:
    """Shared table built from ``DEFAULT_REWARD_TIERS``."""
    global _default_table  # noqa: PLW0603
    if _default_table is None:
        _default_table = RewardTable()
    return _default_table
