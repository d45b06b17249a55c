"""In-process collaborators: clock, token bank, voting escrow, fee distributor
and certificate ledger.

They follow the rules of a veCRV-style escrow closely enough to exercise the
vault end to end without a chain.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from ..config import WEEK, YEAR
from ..errors import HarvestUnavailable
from ..models import CertificateConfig, LockedBalance

logger = logging.getLogger(__name__)


class EscrowError(RuntimeError):
    """Raised by the simulated escrow where the real contract would revert."""


class InsufficientBalance(RuntimeError):
    pass


# ---------------------------------------------------------------------------
# Clocks
# ---------------------------------------------------------------------------


class SystemClock:
    def now(self) -> int:
        return int(time.time())


class SimClock:
    """Manually advanced clock."""

    def __init__(self, start: int | None = None) -> None:
        self._now = int(time.time()) if start is None else int(start)

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("Time only moves forward")
        self._now += int(seconds)
        return self._now


# ---------------------------------------------------------------------------
# Token balances
# ---------------------------------------------------------------------------


class SimulatedBank:
    """Balances keyed by (token, holder)."""

    def __init__(self) -> None:
        self._balances: dict[tuple[str, str], int] = {}

    def mint(self, token: str, holder: str, amount: int) -> None:
        key = (token, holder)
        self._balances[key] = self._balances.get(key, 0) + amount

    def balance(self, token: str, holder: str) -> int:
        return self._balances.get((token, holder), 0)

    async def balance_of(self, token: str, holder: str) -> int:
        return self.balance(token, holder)

    async def transfer(
        self, token: str, sender: str, recipient: str, amount: int
    ) -> None:
        if amount < 0:
            raise ValueError(f"Negative transfer of {token}: {amount}")
        available = self.balance(token, sender)
        if available < amount:
            raise InsufficientBalance(
                f"{sender} holds {available} {token}, cannot send {amount}"
            )
        self._balances[(token, sender)] = available - amount
        self.mint(token, recipient, amount)


# ---------------------------------------------------------------------------
# Voting escrow
# ---------------------------------------------------------------------------


class SimulatedVotingEscrow:
    """One lock per address; voting power decays linearly to zero at unlock."""

    def __init__(
        self,
        token: str,
        bank: SimulatedBank,
        clock: SimClock | SystemClock,
        max_lock_seconds: int = 2 * YEAR,
        address: str = "0xescrow",
    ) -> None:
        self.token = token
        self.address = address
        self.max_lock_seconds = max_lock_seconds
        self._bank = bank
        self._clock = clock
        self._locks: dict[str, LockedBalance] = {}

    def _check_unlock_time(self, unlock_time: int, now: int) -> None:
        if unlock_time <= now:
            raise EscrowError("Can only lock until time in the future")
        if unlock_time > now + self.max_lock_seconds:
            raise EscrowError("Voting lock exceeds the maximum duration")

    def _live_lock(self, address: str, now: int) -> LockedBalance:
        lock = self._locks.get(address, LockedBalance())
        if lock.amount <= 0:
            raise EscrowError("No existing lock found")
        if lock.end <= now:
            raise EscrowError("Cannot modify an expired lock. Withdraw")
        return lock

    async def locked(self, address: str) -> LockedBalance:
        return self._locks.get(address, LockedBalance())

    async def create_lock(self, address: str, amount: int, unlock_time: int) -> None:
        now = self._clock.now()
        if amount <= 0:
            raise EscrowError("Need non-zero value")
        if self._locks.get(address, LockedBalance()).amount > 0:
            raise EscrowError("Withdraw old tokens first")
        self._check_unlock_time(unlock_time, now)
        await self._bank.transfer(self.token, address, self.address, amount)
        self._locks[address] = LockedBalance(amount=amount, end=unlock_time)

    async def increase_amount(self, address: str, amount: int) -> None:
        now = self._clock.now()
        if amount <= 0:
            raise EscrowError("Need non-zero value")
        lock = self._live_lock(address, now)
        await self._bank.transfer(self.token, address, self.address, amount)
        self._locks[address] = LockedBalance(amount=lock.amount + amount, end=lock.end)

    async def increase_unlock_time(self, address: str, unlock_time: int) -> None:
        now = self._clock.now()
        lock = self._live_lock(address, now)
        if unlock_time <= lock.end:
            raise EscrowError("Can only increase lock duration")
        self._check_unlock_time(unlock_time, now)
        self._locks[address] = LockedBalance(amount=lock.amount, end=unlock_time)

    async def withdraw(self, address: str) -> int:
        now = self._clock.now()
        lock = self._locks.get(address, LockedBalance())
        if lock.amount <= 0:
            return 0
        if now < lock.end:
            raise EscrowError("The lock didn't expire")
        await self._bank.transfer(self.token, self.address, address, lock.amount)
        del self._locks[address]
        return lock.amount

    def voting_power(self, address: str, at: int) -> int:
        lock = self._locks.get(address, LockedBalance())
        if lock.amount <= 0 or at >= lock.end:
            return 0
        return lock.amount * (lock.end - at) // self.max_lock_seconds

    def total_voting_power(self, at: int) -> int:
        return sum(self.voting_power(address, at) for address in self._locks)


# ---------------------------------------------------------------------------
# Fee distributor
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _Emission:
    index: int
    token: str
    amount: int
    epoch_start: int


class SimulatedFeeDistributor:
    """Weekly fee distribution by voting power.

    Funds sent during an epoch become claimable once the epoch has ended, and
    each address receives ``amount * power / total_power`` with both powers
    taken at the epoch end from the escrow's current locks.
    """

    def __init__(
        self,
        escrow: SimulatedVotingEscrow,
        bank: SimulatedBank,
        clock: SimClock | SystemClock,
        epoch_seconds: int = WEEK,
        address: str = "0xdistributor",
    ) -> None:
        self.address = address
        self.epoch_seconds = epoch_seconds
        self._escrow = escrow
        self._bank = bank
        self._clock = clock
        self._emissions: list[_Emission] = []
        self._claimed: dict[str, set[int]] = {}

    def epoch_start(self, timestamp: int) -> int:
        return timestamp // self.epoch_seconds * self.epoch_seconds

    async def fund(self, token: str, sender: str, amount: int) -> None:
        """Transfer ``amount`` of ``token`` in and schedule it for this epoch."""
        await self._bank.transfer(token, sender, self.address, amount)
        self._emissions.append(
            _Emission(
                index=len(self._emissions),
                token=token,
                amount=amount,
                epoch_start=self.epoch_start(self._clock.now()),
            )
        )
        logger.debug("Distributor funded with %d %s", amount, token)

    async def claim(self, address: str) -> dict[str, int]:
        now = self._clock.now()
        seen = self._claimed.get(address, set())
        ready = [
            e for e in self._emissions
            if e.index not in seen and e.epoch_start + self.epoch_seconds <= now
        ]
        if not ready:
            raise HarvestUnavailable(f"No claimable epoch for {address}")

        payouts: dict[str, int] = {}
        for emission in ready:
            at = emission.epoch_start + self.epoch_seconds
            total = self._escrow.total_voting_power(at)
            if total <= 0:
                continue
            share = emission.amount * self._escrow.voting_power(address, at) // total
            if share > 0:
                payouts[emission.token] = payouts.get(emission.token, 0) + share

        for token, amount in sorted(payouts.items()):
            await self._bank.transfer(token, self.address, address, amount)
        self._claimed[address] = seen | {e.index for e in ready}
        return payouts


# ---------------------------------------------------------------------------
# Certificate ledger
# ---------------------------------------------------------------------------


class InMemoryPositionLedger:
    """Issues sequential certificate ids and holds the lock-opening allow-list."""

    def __init__(self) -> None:
        self._next_id = 1
        self._allow_list: set[str] = set()
        self.certificates: dict[str, tuple[str, CertificateConfig]] = {}
        self.burned: list[str] = []

    def modify_allow_list(self, address: str, listed: bool) -> None:
        if listed:
            self._allow_list.add(address.lower())
        else:
            self._allow_list.discard(address.lower())

    async def is_allow_listed(self, address: str) -> bool:
        return address.lower() in self._allow_list

    async def issue(self, owner: str, config: CertificateConfig) -> str:
        position_id = str(self._next_id)
        self._next_id += 1
        self.certificates[position_id] = (owner, config)
        return position_id

    async def burn(self, position_id: str) -> None:
        if position_id not in self.certificates:
            raise LookupError(f"Certificate {position_id} does not exist")
        del self.certificates[position_id]
        self.burned.append(position_id)
