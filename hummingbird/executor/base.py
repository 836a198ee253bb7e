"""Executor protocol — the boundary to the trading venue.

The decision engine never talks to the venue; a session hands
``NextTradeParams`` to an executor and feeds the settled outcome back.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from hummingbird.contracts.models import AccountSnapshot, NextTradeParams, TradeOutcome


@runtime_checkable
class TradeExecutor(Protocol):
    """Interface every venue adapter must satisfy."""

    async def execute(self, params: NextTradeParams) -> TradeOutcome:
        """Place the trade, wait for settlement and return the outcome."""
        ...

    async def get_account(self) -> AccountSnapshot:
        """Return the current account balance."""
        ...
