"""HummingBird — domain exceptions.

Configuration errors fail fast at construction time.  Runtime data errors
are caught by the risk manager and turned into safety-mode trades.
"""


class HummingBirdError(Exception):
    """Base class for every error raised by the decision engine."""


class InvalidStrategyDefinition(HummingBirdError):
    """A strategy document or config failed schema validation."""


class RewardTableError(HummingBirdError):
    """A reward tier table does not partition ``[0, inf)``."""


class UnsupportedContractType(HummingBirdError):
    """No reward tiers exist for the requested contract type."""


class StakeOutOfRange(HummingBirdError):
    """No reward tier covers the requested stake."""


class InvalidTradeOutcome(HummingBirdError):
    """An upstream trade result is missing fields or malformed."""


class RiskLimitExceeded(HummingBirdError):
    """A recovery step was requested beyond the strategy's loss limit."""


class ExecutionError(HummingBirdError):
    """The executor refused or failed to place a trade."""
