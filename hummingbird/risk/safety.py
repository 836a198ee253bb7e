"""Unified safety status — one value read by every risk check.

Safety mode can be entered by the risk manager itself, by a circuit
breaker trip, or by the rapid-loss detector.  All three write the same
``SafetyStatus``; expiry is evaluated lazily against the clock.
"""

from dataclasses import dataclass
from typing import Optional

SOURCE_RISK_MANAGER = "risk_manager"
SOURCE_CIRCUIT_BREAKER = "circuit_breaker"
SOURCE_RAPID_LOSS = "rapid_loss"

# Reason codes surfaced to callers in ``TradeMetadata.reason``.
REASON_INVALID_TRADE_DATA = "invalid_trade_data"
REASON_PROCESSING_ERROR = "processing_error"
REASON_MAX_RECOVERY_ATTEMPTS = "max_recovery_attempts"
REASON_EXCESSIVE_CONSECUTIVE_LOSSES = "excessive_consecutive_losses"
REASON_BALANCE_BELOW_FLOOR = "balance_below_floor"
REASON_MAX_RISK_EXPOSURE = "max_risk_exposure_exceeded"
REASON_DAILY_LOSS_LIMIT = "daily_loss_limit"
REASON_ABSOLUTE_LOSS_LIMIT = "absolute_loss_limit"
REASON_MAX_CONSECUTIVE_LOSSES = "max_consecutive_losses"
REASON_BALANCE_VALIDATION = "balance_validation_failed"
REASON_RAPID_LOSS = "rapid_loss_detected"


@dataclass(frozen=True)
class SafetyStatus:
    """Whether protective mode is on, until when, and why."""

    active: bool = False
    until: float = 0.0
    reason: Optional[str] = None
    source: Optional[str] = None

    def is_active(self, now: float) -> bool:
        return self.active and now < self.until

    def remaining(self, now: float) -> float:
        """Seconds of cooldown left (0 when inactive or expired)."""
        if not self.active:
            return 0.0
        return max(0.0, self.until - now)


INACTIVE = SafetyStatus()
