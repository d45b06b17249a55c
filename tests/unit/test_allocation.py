"""Unit tests for proportional reward allocation."""
from __future__ import annotations

from dataclasses import replace

from escrow_vault.models import Position
from escrow_vault.services import AllocationLedger, split_proportionally


def _position(position_id: str, principal: int, custody: str = "0xc1") -> Position:
    return Position(
        position_id=position_id,
        owner=f"0xowner{position_id}",
        principal_amount=principal,
        maturity_timestamp=2_000_000_000,
        custody_address=custody,
    )


class TestSplitProportionally:
    def test_equal_weights(self) -> None:
        shares, remainder = split_proportionally(100, {"1": 5, "2": 5})
        assert shares == {"1": 50, "2": 50}
        assert remainder == 0

    def test_remainder_is_returned(self) -> None:
        shares, remainder = split_proportionally(1001, {"1": 1, "2": 1})
        assert shares == {"1": 500, "2": 500}
        assert remainder == 1

    def test_conserves_pool(self) -> None:
        weights = {"a": 3, "b": 7, "c": 11}
        shares, remainder = split_proportionally(12_345, weights)
        assert sum(shares.values()) + remainder == 12_345

    def test_proportional(self) -> None:
        shares, _ = split_proportionally(400, {"1": 1, "2": 3})
        assert shares == {"1": 100, "2": 300}

    def test_empty_pool(self) -> None:
        shares, remainder = split_proportionally(0, {"1": 5})
        assert shares == {"1": 0}
        assert remainder == 0

    def test_no_weight_keeps_everything(self) -> None:
        shares, remainder = split_proportionally(100, {"1": 0})
        assert shares == {"1": 0}
        assert remainder == 100

    def test_non_positive_weights_get_nothing(self) -> None:
        shares, remainder = split_proportionally(90, {"1": -5, "2": 9})
        assert shares == {"1": 0, "2": 90}
        assert remainder == 0


class TestAllocationLedger:
    def test_recompute_uses_principal(self) -> None:
        ledger = AllocationLedger()
        ledger.recompute("0xc1", [_position("1", 30), _position("2", 10)])
        assert ledger.weights("0xc1") == {"1": 30, "2": 10}
        assert ledger.total("0xc1") == 40

    def test_ignores_other_custodies(self) -> None:
        ledger = AllocationLedger()
        ledger.recompute("0xc1", [_position("1", 30), _position("2", 10, custody="0xc2")])
        assert ledger.weights("0xc1") == {"1": 30}

    def test_empty_custody_is_dropped(self) -> None:
        ledger = AllocationLedger()
        ledger.recompute("0xc1", [_position("1", 30)])
        ledger.recompute("0xc1", [])
        assert ledger.custodies() == []
        assert ledger.weights("0xc1") == {}

    def test_weights_are_a_copy(self) -> None:
        ledger = AllocationLedger()
        ledger.recompute("0xc1", [_position("1", 30)])
        ledger.weights("0xc1")["1"] = 0
        assert ledger.weights("0xc1") == {"1": 30}

    def test_rebuild_matches_incremental(self) -> None:
        positions = [
            _position("1", 30),
            _position("2", 10),
            _position("3", 7, custody="0xc2"),
        ]
        incremental = AllocationLedger()
        incremental.recompute("0xc1", positions)
        incremental.recompute("0xc2", positions)

        rebuilt = AllocationLedger.rebuild(positions)

        assert rebuilt.custodies() == ["0xc1", "0xc2"]
        for address in rebuilt.custodies():
            assert rebuilt.weights(address) == incremental.weights(address)

    def test_weights_follow_principal_changes(self) -> None:
        ledger = AllocationLedger()
        first = _position("1", 30)
        ledger.recompute("0xc1", [first])
        ledger.recompute("0xc1", [replace(first, principal_amount=45)])
        assert ledger.weights("0xc1") == {"1": 45}
