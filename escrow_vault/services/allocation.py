"""Proportional reward allocation — per-custody weights, pure splitting."""
from __future__ import annotations

from typing import Iterable, Mapping

from ..models import Position


def split_proportionally(
    pool: int, weights: Mapping[str, int]
) -> tuple[dict[str, int], int]:
    """Split ``pool`` by ``weights``, rounding every share down.

    Returns ``(shares, remainder)`` with ``sum(shares) + remainder == pool``.
    Non-positive weights receive nothing.
    """
    total = sum(w for w in weights.values() if w > 0)
    if pool <= 0 or total <= 0:
        return {key: 0 for key in weights}, max(pool, 0)

    shares = {key: pool * max(w, 0) // total for key, w in weights.items()}
    return shares, pool - sum(shares.values())


class AllocationLedger:
    """Weights used to split rewards among positions sharing a custody.

    A position's weight is its principal at the last recompute. The ledger is
    derived state: ``rebuild`` reproduces it from position records alone.
    """

    def __init__(self) -> None:
        self._weights: dict[str, dict[str, int]] = {}

    @classmethod
    def rebuild(cls, positions: Iterable[Position]) -> AllocationLedger:
        ledger = cls()
        by_custody: dict[str, list[Position]] = {}
        for position in positions:
            by_custody.setdefault(position.custody_address, []).append(position)
        for address, members in by_custody.items():
            ledger.recompute(address, members)
        return ledger

    def recompute(self, custody_address: str, positions: Iterable[Position]) -> None:
        weights = {
            p.position_id: p.principal_amount
            for p in positions
            if p.custody_address == custody_address and p.principal_amount > 0
        }
        if weights:
            self._weights[custody_address] = weights
        else:
            self._weights.pop(custody_address, None)

    def weights(self, custody_address: str) -> dict[str, int]:
        return dict(self._weights.get(custody_address, {}))

    def total(self, custody_address: str) -> int:
        return sum(self._weights.get(custody_address, {}).values())

    def custodies(self) -> list[str]:
        return sorted(self._weights)
