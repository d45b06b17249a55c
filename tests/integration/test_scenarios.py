"""End-to-end lifecycle of escrowed positions.

Two positions are locked for a whale, rewards are distributed by the fee
distributor, the first position is topped up after its lock expired, re-locked
for almost the maximum duration, and finally withdrawn.
"""
from __future__ import annotations

from unittest.mock import patch

import pytest

from escrow_vault.backends import SimClock
from escrow_vault.config import WEEK, YEAR
from escrow_vault.custody import CustodyWallet
from escrow_vault.errors import ExternalCollaboratorUnavailable
from escrow_vault.factory import Backend
from escrow_vault.services import PositionVault

UNIT = 10**18
HOUR = 3600
DAY = 24 * HOUR
TOLERANCE = UNIT // 10_000


async def _lock_two(vault: PositionVault, clock: SimClock, whale: str) -> tuple[str, str]:
    maturity = clock.now() + YEAR
    first = await vault.lock(maturity, 10 * UNIT, whale)
    second = await vault.lock(maturity, 10 * UNIT, whale)
    return first, second


async def _distribute(backend: Backend, clock: SimClock, whale: str) -> None:
    await backend.distributor.fund("LQDR", whale, 100 * UNIT)
    await backend.distributor.fund("WFTM", whale, 100 * UNIT)
    clock.advance(2 * WEEK)


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_lock_values_principal(
        self, vault: PositionVault, clock: SimClock, whale: str
    ) -> None:
        first, second = await _lock_two(vault, clock, whale)

        assert abs(vault.get_value(first) - 10 * UNIT) < TOLERANCE
        assert vault.get_custody_address(first) != vault.get_custody_address(second)

    @pytest.mark.asyncio
    async def test_rewards_reach_owner(
        self, vault: PositionVault, backend: Backend, clock: SimClock, whale: str
    ) -> None:
        first, second = await _lock_two(vault, clock, whale)
        await _distribute(backend, clock, whale)
        lqdr_before = backend.bank.balance("LQDR", whale)
        wftm_before = backend.bank.balance("WFTM", whale)

        await vault.trigger_update(second)
        lqdr_mid = backend.bank.balance("LQDR", whale)
        wftm_mid = backend.bank.balance("WFTM", whale)
        await vault.trigger_update(first)

        assert lqdr_mid > lqdr_before
        assert wftm_mid > wftm_before
        assert backend.bank.balance("LQDR", whale) > lqdr_mid
        assert backend.bank.balance("WFTM", whale) > wftm_mid
        assert vault.get_position(first).rewards_paid == {
            "LQDR": 50 * UNIT,
            "WFTM": 50 * UNIT,
        }

    @pytest.mark.asyncio
    async def test_full_lifecycle(
        self, vault: PositionVault, backend: Backend, clock: SimClock, whale: str
    ) -> None:
        first, second = await _lock_two(vault, clock, whale)
        await _distribute(backend, clock, whale)
        await vault.trigger_update(second)
        await vault.trigger_update(first)

        # Top up after the lock has expired.
        clock.advance(YEAR)
        original_value = vault.get_value(first)
        await vault.top_up(first, 10 * UNIT)
        topped_up_value = vault.get_value(first)
        assert abs(topped_up_value - 2 * original_value) < TOLERANCE

        # Re-lock for just under the maximum duration.
        expiration = clock.now() + 2 * YEAR - HOUR
        await vault.extend(first, expiration)
        extended_value = vault.get_value(first)
        assert extended_value >= topped_up_value
        assert abs(extended_value - 2 * original_value) < UNIT // 10
        custody = vault.get_custody(vault.get_custody_address(first))
        assert custody.locked_balance == 20 * UNIT
        assert custody.lock_end_time == expiration

        # Withdraw once matured.
        clock.advance(2 * YEAR + DAY)
        balance_before = backend.bank.balance("LQDR", whale)
        released = await vault.unlock(first)
        assert released == 20 * UNIT
        assert backend.bank.balance("LQDR", whale) - balance_before == 20 * UNIT

        # The second position is untouched.
        assert vault.get_position(second).principal_amount == 10 * UNIT


class TestSharedCustodyRewards:
    @pytest.mark.asyncio
    async def test_split_siblings_share_rewards(
        self, vault: PositionVault, backend: Backend, clock: SimClock,
        whale: str, outsider: str,
    ) -> None:
        position_id = await vault.lock(clock.now() + YEAR, 10 * UNIT, whale)
        [sibling] = await vault.split(position_id, 1)
        await backend.distributor.fund("WFTM", outsider, 100 * UNIT)
        clock.advance(2 * WEEK)

        payouts = await vault.trigger_update(sibling)

        assert sorted((p.position_id, p.amount) for p in payouts) == [
            (position_id, 50 * UNIT),
            (sibling, 50 * UNIT),
        ]
        assert vault.get_position(position_id).rewards_paid == {"WFTM": 50 * UNIT}
        assert vault.get_position(sibling).rewards_paid == {"WFTM": 50 * UNIT}

    @pytest.mark.asyncio
    async def test_remainder_carried_to_next_harvest(
        self, vault: PositionVault, backend: Backend, clock: SimClock,
        whale: str, outsider: str,
    ) -> None:
        position_id = await vault.lock(clock.now() + YEAR, 10 * UNIT, whale)
        await vault.split(position_id, 1)
        address = vault.get_custody_address(position_id)

        await backend.distributor.fund("WFTM", outsider, 1001)
        clock.advance(2 * WEEK)
        await vault.trigger_update(position_id)
        assert vault.get_custody(address).reward_carry == {"WFTM": 1}
        assert backend.bank.balance("WFTM", address) == 1

        await backend.distributor.fund("WFTM", outsider, 1001)
        clock.advance(2 * WEEK)
        payouts = await vault.trigger_update(position_id)
        assert [p.amount for p in payouts] == [501, 501]
        assert vault.get_custody(address).reward_carry == {}

    @pytest.mark.asyncio
    async def test_nothing_to_harvest(
        self, vault: PositionVault, backend: Backend, clock: SimClock, whale: str
    ) -> None:
        position_id = await vault.lock(clock.now() + YEAR, 10 * UNIT, whale)
        await backend.distributor.fund("WFTM", whale, 100 * UNIT)

        assert await vault.trigger_update(position_id, b"\x01\x02") == []

        clock.advance(2 * WEEK)
        payouts = await vault.trigger_update(position_id)
        assert [(p.token, p.amount) for p in payouts] == [("WFTM", 100 * UNIT)]

    @pytest.mark.asyncio
    async def test_interrupted_payout_is_carried(
        self, vault: PositionVault, backend: Backend, clock: SimClock,
        whale: str, outsider: str,
    ) -> None:
        position_id = await vault.lock(clock.now() + YEAR, 10 * UNIT, whale)
        [sibling] = await vault.split(position_id, 1)
        address = vault.get_custody_address(position_id)
        await backend.distributor.fund("WFTM", outsider, 100 * UNIT)
        clock.advance(2 * WEEK)

        pay = CustodyWallet.pay
        calls = 0

        async def flaky_pay(self, token, recipient, amount):
            nonlocal calls
            calls += 1
            if calls == 2:
                raise ConnectionError("transfer dropped")
            await pay(self, token, recipient, amount)

        with patch.object(CustodyWallet, "pay", flaky_pay):
            with pytest.raises(ExternalCollaboratorUnavailable):
                await vault.trigger_update(position_id)

        assert vault.get_position(position_id).rewards_paid == {"WFTM": 50 * UNIT}
        assert vault.get_position(sibling).rewards_paid == {}
        assert vault.get_custody(address).reward_carry == {"WFTM": 50 * UNIT}

        await backend.distributor.fund("WFTM", outsider, 100 * UNIT)
        clock.advance(2 * WEEK)
        await vault.trigger_update(position_id)
        assert vault.get_position(position_id).rewards_paid == {"WFTM": 125 * UNIT}
        assert vault.get_position(sibling).rewards_paid == {"WFTM": 75 * UNIT}
        assert vault.get_custody(address).reward_carry == {}
