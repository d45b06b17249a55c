"""Custody wallet — owns one external lock on behalf of one position group."""
from __future__ import annotations

import hashlib
import logging
from dataclasses import replace
from typing import Awaitable, TypeVar

from ..calls import guarded
from ..errors import ExternalCollaboratorUnavailable
from ..interfaces.bank import AssetBank
from ..interfaces.escrow import ExternalLock
from ..models import CustodyRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CustodyWallet:
    """Proxy for the external lock held at a single custody address.

    Every method returns a refreshed ``CustodyRecord``; the caller decides
    whether to commit it. Each collaborator call runs under its own timeout
    and fails with ``ExternalCollaboratorUnavailable``, so a compensating
    refund always runs after a failed lock step.
    """

    def __init__(
        self,
        address: str,
        asset: str,
        escrow: ExternalLock,
        bank: AssetBank,
        timeout: float = 30.0,
    ) -> None:
        self.address = address
        self.asset = asset
        self._escrow = escrow
        self._bank = bank
        self._timeout = timeout

    @staticmethod
    def derive_address(vault_address: str, nonce: int) -> str:
        """Deterministic custody address for the vault's ``nonce``-th wallet."""
        digest = hashlib.sha3_256(
            f"custody:{vault_address.lower()}:{nonce}".encode()
        ).digest()
        return f"0x{digest[-20:].hex()}"

    async def _lock_call(self, awaitable: Awaitable[T]) -> T:
        return await guarded(awaitable, "external lock", self._timeout)

    async def _bank_call(self, awaitable: Awaitable[T]) -> T:
        return await guarded(awaitable, "asset bank", self._timeout)

    async def _refund(self, funder: str, amount: int) -> None:
        try:
            await self._bank_call(
                self._bank.transfer(self.asset, self.address, funder, amount)
            )
        except ExternalCollaboratorUnavailable as e:
            # Funds stay at the custody address; the next refresh sees them.
            logger.error(
                "Refund of %d to %s from custody %s failed: %s",
                amount, funder, self.address, e,
            )

    async def refresh(self, record: CustodyRecord) -> CustodyRecord:
        """Re-read lock state and liquid asset held outside the lock."""
        lock = await self._lock_call(self._escrow.locked(self.address))
        held = await self._bank_call(self._bank.balance_of(self.asset, self.address))
        # Carried rewards in the asset token are not principal.
        liquid = max(held - record.reward_carry.get(self.asset, 0), 0)
        return replace(
            record,
            locked_balance=lock.amount,
            # Keep the last known end after a withdrawal zeroes the lock.
            lock_end_time=lock.end if lock.amount > 0 else record.lock_end_time,
            liquid_balance=liquid,
        )

    async def open(
        self, record: CustodyRecord, funder: str, amount: int, unlock_time: int
    ) -> CustodyRecord:
        """Pull ``amount`` from ``funder`` and lock it until ``unlock_time``."""
        await self._bank_call(
            self._bank.transfer(self.asset, funder, self.address, amount)
        )
        try:
            await self._lock_call(
                self._escrow.create_lock(self.address, amount, unlock_time)
            )
        except ExternalCollaboratorUnavailable:
            logger.warning(
                "Lock creation failed for custody %s; returning %d to %s",
                self.address, amount, funder,
            )
            await self._refund(funder, amount)
            raise
        logger.debug("Custody %s locked %d until %d", self.address, amount, unlock_time)
        return await self.refresh(record)

    async def deposit(
        self, record: CustodyRecord, funder: str, amount: int, now: int
    ) -> CustodyRecord:
        """Add ``amount`` to the lock, or hold it liquid once the lock expired."""
        lock = await self._lock_call(self._escrow.locked(self.address))
        await self._bank_call(
            self._bank.transfer(self.asset, funder, self.address, amount)
        )
        if lock.is_live(now):
            try:
                await self._lock_call(self._escrow.increase_amount(self.address, amount))
            except ExternalCollaboratorUnavailable:
                logger.warning(
                    "Lock top-up failed for custody %s; returning %d to %s",
                    self.address, amount, funder,
                )
                await self._refund(funder, amount)
                raise
        else:
            logger.info(
                "Lock for custody %s has expired; holding %d liquid",
                self.address, amount,
            )
        return await self.refresh(record)

    async def extend(
        self, record: CustodyRecord, unlock_time: int, now: int
    ) -> CustodyRecord:
        """Keep everything the custody holds locked until at least ``unlock_time``."""
        lock = await self._lock_call(self._escrow.locked(self.address))
        if lock.is_live(now):
            if unlock_time > lock.end:
                await self._lock_call(
                    self._escrow.increase_unlock_time(self.address, unlock_time)
                )
            return await self.refresh(record)

        if lock.amount > 0:
            await self._lock_call(self._escrow.withdraw(self.address))
        current = await self.refresh(record)
        if current.liquid_balance > 0:
            logger.info(
                "Re-locking %d for custody %s until %d",
                current.liquid_balance, self.address, unlock_time,
            )
            await self._lock_call(
                self._escrow.create_lock(
                    self.address, current.liquid_balance, unlock_time
                )
            )
        return await self.refresh(current)

    async def release(self, record: CustodyRecord) -> CustodyRecord:
        """Withdraw a matured lock into the custody's liquid balance."""
        lock = await self._lock_call(self._escrow.locked(self.address))
        if lock.amount > 0:
            withdrawn = await self._lock_call(self._escrow.withdraw(self.address))
            logger.debug("Custody %s withdrew %d", self.address, withdrawn)
        return await self.refresh(record)

    async def pay(self, token: str, recipient: str, amount: int) -> None:
        if amount > 0:
            await self._bank_call(
                self._bank.transfer(token, self.address, recipient, amount)
            )
