"""Position valuation — pure functions over custody snapshots, no I/O."""
from __future__ import annotations

from ..interfaces.valuation import ExchangeRateCurve
from ..models import CustodyRecord, Position

BPS = 10_000


class LinearExchangeRate:
    """One locked unit is worth one unit of the asset."""

    def rate(self, locked_amount: int, lock_end: int, now: int) -> int:
        return locked_amount


class EscrowBoostCurve:
    """Escrow-boost valuation.

    value = amount + amount * boost_bps * remaining / (max_lock * 10_000)

    ``remaining`` is clamped to ``[0, max_lock]``, so a lock that matures
    later is never worth less and an expired lock is worth exactly its amount.
    """

    def __init__(self, max_lock_seconds: int, boost_bps: int) -> None:
        if max_lock_seconds <= 0:
            raise ValueError("max_lock_seconds must be positive")
        if boost_bps < 0:
            raise ValueError("boost_bps must be non-negative")
        self.max_lock_seconds = max_lock_seconds
        self.boost_bps = boost_bps

    def rate(self, locked_amount: int, lock_end: int, now: int) -> int:
        remaining = min(max(lock_end - now, 0), self.max_lock_seconds)
        boost = locked_amount * self.boost_bps * remaining // (
            self.max_lock_seconds * BPS
        )
        return locked_amount + boost


class ValueOracle:
    """Value positions from their custody's holdings and their share of it."""

    def __init__(self, curve: ExchangeRateCurve) -> None:
        self._curve = curve

    def custody_value(self, custody: CustodyRecord, now: int) -> int:
        """Asset-denominated value of everything a custody holds."""
        locked_value = self._curve.rate(
            custody.locked_balance, custody.lock_end_time, now
        )
        return locked_value + custody.liquid_balance

    def value(
        self,
        position: Position,
        custody: CustodyRecord,
        total_multiplier: int,
        now: int,
    ) -> int:
        """Value of one position: its multiplier's share of the custody value.

        Rounds down, so the shares of co-located positions never sum to more
        than the custody holds.
        """
        if total_multiplier <= 0:
            return 0
        return (
            self.custody_value(custody, now)
            * position.deposit_multiplier
            // total_multiplier
        )
