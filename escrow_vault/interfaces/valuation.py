"""Exchange-rate curve protocol — the external valuation/boost function."""
from typing import Protocol


class ExchangeRateCurve(Protocol):
    """Maps a locked amount and its unlock time to asset-denominated value."""

    def rate(self, locked_amount: int, lock_end: int, now: int) -> int: ...
