"""Position vault — entry points consumed by the position ledger.

Every mutating operation runs under its custody group's lock, validates its
arguments before touching any collaborator, and commits new records only
once the collaborator calls it depends on have succeeded.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Awaitable, Iterable, Mapping, TypeVar

from ..config import VaultConfig
from ..custody import CustodyWallet
from ..errors import (
    ExtensionsExhausted,
    ExternalCollaboratorUnavailable,
    InvalidAmount,
    InvalidMaturity,
    MaturityNotIncreasing,
    NotAllowListed,
    NotMatured,
    SharedCustody,
    SplitsExhausted,
    UnknownCustody,
    UnknownPosition,
)
from ..interfaces.bank import AssetBank
from ..interfaces.clock import Clock
from ..interfaces.distributor import RewardDistributor
from ..interfaces.escrow import ExternalLock
from ..interfaces.ledger import PositionLedger
from ..models import (
    WAD,
    CertificateConfig,
    CustodyRecord,
    DisplayState,
    Position,
    RewardPayout,
)
from ..oracles import ValueOracle
from .allocation import AllocationLedger
from ..calls import describe, guarded
from .display import build_display_fields
from .harvester import RewardHarvester

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_positive_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class PositionVault:
    """Isolated custody, valuation and reward reallocation per position."""

    def __init__(
        self,
        config: VaultConfig,
        *,
        escrow: ExternalLock,
        distributor: RewardDistributor,
        bank: AssetBank,
        ledger: PositionLedger,
        clock: Clock,
        oracle: ValueOracle,
        token_decimals: Mapping[str, int] | None = None,
    ) -> None:
        self._config = config
        self.address = config.address
        self.asset = config.asset
        self._escrow = escrow
        self._bank = bank
        self._ledger = ledger
        self._clock = clock
        self._oracle = oracle
        self._token_decimals = dict(token_decimals or {})

        self._allocation = AllocationLedger()
        self._harvester = RewardHarvester(
            distributor, self._allocation, config.collaborator_timeout
        )

        self._positions: dict[str, Position] = {}
        self._custodies: dict[str, CustodyRecord] = {}
        self._wallets: dict[str, CustodyWallet] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._custody_nonce = 0

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _call(self, awaitable: Awaitable[T], collaborator: str) -> T:
        return await guarded(awaitable, collaborator, self._config.collaborator_timeout)

    def _position(self, position_id: str) -> Position:
        position = self._positions.get(position_id)
        if position is None:
            raise UnknownPosition(f"Unknown position {position_id}")
        return position

    def _custody_lock(self, address: str) -> asyncio.Lock:
        return self._locks.setdefault(address, asyncio.Lock())

    def _siblings(self, custody_address: str) -> list[Position]:
        return [
            p for p in self._positions.values() if p.custody_address == custody_address
        ]

    def _total_multiplier(self, custody_address: str) -> int:
        return sum(p.deposit_multiplier for p in self._siblings(custody_address))

    @staticmethod
    def _require_timestamp(maturity: object) -> None:
        if not isinstance(maturity, int) or isinstance(maturity, bool):
            raise InvalidMaturity(f"Maturity must be an integer timestamp, got {maturity!r}")

    def _require_maturity(self, maturity: int, now: int) -> None:
        self._require_timestamp(maturity)
        if maturity <= now:
            raise InvalidMaturity(f"Maturity {maturity} is not in the future (now {now})")
        if maturity > now + self._config.max_lock_seconds:
            raise InvalidMaturity(
                f"Maturity {maturity} exceeds the maximum lock of "
                f"{self._config.max_lock_seconds}s"
            )

    def _commit(
        self,
        custody: CustodyRecord,
        positions: Iterable[Position] = (),
        removed: Iterable[str] = (),
    ) -> None:
        self._custodies[custody.address] = custody
        for position in positions:
            self._positions[position.position_id] = position
        for position_id in removed:
            self._positions.pop(position_id, None)
        self._allocation.recompute(custody.address, self._siblings(custody.address))

    async def _burn_orphan(self, position_id: str) -> None:
        """Burn a certificate issued by an operation that is being aborted."""
        try:
            await self._call(self._ledger.burn(position_id), "position ledger")
        except ExternalCollaboratorUnavailable as e:
            logger.error("Could not burn orphaned certificate %s: %s", position_id, e)

    # ------------------------------------------------------------------
    # Principal operations
    # ------------------------------------------------------------------

    async def lock(self, maturity_timestamp: int, amount: int, owner: str) -> str:
        """Open a new isolated custody holding ``amount`` until maturity."""
        now = self._clock.now()
        if not _is_positive_int(amount):
            raise InvalidAmount(f"Amount must be a positive integer, got {amount!r}")
        self._require_maturity(maturity_timestamp, now)

        allowed = await self._call(
            self._ledger.is_allow_listed(self.address), "position ledger"
        )
        if not allowed:
            raise NotAllowListed(f"Vault {self.address} may not open locks")

        address = CustodyWallet.derive_address(self.address, self._custody_nonce)
        self._custody_nonce += 1
        wallet = CustodyWallet(
            address,
            self.asset,
            self._escrow,
            self._bank,
            timeout=self._config.collaborator_timeout,
        )
        certificate = CertificateConfig(
            asset=self.asset,
            deposit_amount=amount,
            maturity=maturity_timestamp,
            deposit_multiplier=WAD,
            splits=self._config.default_splits,
            maturity_extensions=self._config.default_extensions,
        )

        async with self._custody_lock(address):
            position_id = await self._call(
                self._ledger.issue(owner, certificate), "position ledger"
            )
            try:
                custody = await wallet.open(
                    CustodyRecord(address=address, owner_position_id=position_id),
                    owner,
                    amount,
                    maturity_timestamp,
                )
            except ExternalCollaboratorUnavailable:
                await self._burn_orphan(position_id)
                raise

            position = Position(
                position_id=position_id,
                owner=owner,
                principal_amount=custody.raw_balance,
                maturity_timestamp=maturity_timestamp,
                custody_address=address,
                deposit_multiplier=WAD,
                splits_remaining=self._config.default_splits,
                extensions_remaining=self._config.default_extensions,
            )
            self._wallets[address] = wallet
            self._commit(custody, [position])

        logger.info(
            "Position %s locked %d %s in custody %s until %d",
            position_id, position.principal_amount, self.asset,
            describe(address), maturity_timestamp,
        )
        return position_id

    async def top_up(
        self,
        position_id: str,
        amount: int,
        multiplier_delta: int | None = None,
        funder: str | None = None,
    ) -> int:
        """Add ``amount`` to a position's custody; returns the new principal.

        Principal grows by what the custody was actually credited. The deposit
        multiplier grows by ``added * M / B`` (``M`` the custody's total
        multiplier, ``B`` its raw balance before the deposit), so co-located
        positions keep their value. An explicit ``multiplier_delta`` is only
        accepted for a custody with a single occupant.
        """
        if not _is_positive_int(amount):
            raise InvalidAmount(f"Amount must be a positive integer, got {amount!r}")
        if multiplier_delta is not None and (
            not isinstance(multiplier_delta, int) or multiplier_delta < 0
        ):
            raise InvalidAmount(f"Invalid multiplier delta {multiplier_delta!r}")

        position = self._position(position_id)
        address = position.custody_address
        async with self._custody_lock(address):
            position = self._position(position_id)
            siblings = self._siblings(address)
            if multiplier_delta is not None and len(siblings) > 1:
                raise SharedCustody(
                    f"Custody of position {position_id} is shared; "
                    "its multiplier is derived from the deposit"
                )

            now = self._clock.now()
            wallet = self._wallets[address]
            before = await wallet.refresh(self._custodies[address])
            after = await wallet.deposit(before, funder or position.owner, amount, now)
            added = after.raw_balance - before.raw_balance
            if added <= 0:
                raise ExternalCollaboratorUnavailable(
                    f"Custody {address} was not credited for a deposit of {amount}"
                )

            if multiplier_delta is None:
                total_multiplier = sum(p.deposit_multiplier for p in siblings)
                if before.raw_balance > 0:
                    multiplier_delta = added * total_multiplier // before.raw_balance
                else:
                    multiplier_delta = WAD

            updated = replace(
                position,
                principal_amount=position.principal_amount + added,
                deposit_multiplier=position.deposit_multiplier + multiplier_delta,
            )
            self._commit(after, [updated])

        logger.info(
            "Position %s topped up by %d (principal now %d)",
            position_id, added, updated.principal_amount,
        )
        return updated.principal_amount

    async def extend(self, position_id: str, new_maturity: int) -> None:
        """Push a position's maturity (and its custody lock) further out."""
        self._require_timestamp(new_maturity)
        position = self._position(position_id)
        address = position.custody_address
        async with self._custody_lock(address):
            position = self._position(position_id)
            now = self._clock.now()
            if new_maturity <= position.maturity_timestamp:
                raise MaturityNotIncreasing(
                    f"New maturity {new_maturity} does not extend "
                    f"{position.maturity_timestamp}"
                )
            if position.extensions_remaining <= 0:
                raise ExtensionsExhausted(f"Position {position_id} has no extensions left")
            self._require_maturity(new_maturity, now)
            if len(self._siblings(address)) > 1:
                raise SharedCustody(
                    f"Custody of position {position_id} still serves sibling positions"
                )

            custody = await self._wallets[address].extend(
                self._custodies[address], new_maturity, now
            )
            updated = replace(
                position,
                maturity_timestamp=new_maturity,
                extensions_remaining=position.extensions_remaining - 1,
            )
            self._commit(custody, [updated])

        logger.info("Position %s extended to %d", position_id, new_maturity)

    async def split(self, position_id: str, quantity: int) -> list[str]:
        """Carve ``quantity`` sibling positions out of a position.

        The position and its new siblings share custody and maturity; principal
        and multiplier are divided into ``quantity + 1`` equal parts, with
        rounding remainders kept by the original. Returns the new ids.
        """
        if not _is_positive_int(quantity):
            raise InvalidAmount(f"Split quantity must be a positive integer, got {quantity!r}")

        position = self._position(position_id)
        address = position.custody_address
        async with self._custody_lock(address):
            position = self._position(position_id)
            if position.splits_remaining <= 0 or quantity > position.splits_remaining:
                raise SplitsExhausted(
                    f"Position {position_id} has {position.splits_remaining} splits left"
                )
            parts = quantity + 1
            if position.principal_amount < parts or position.deposit_multiplier < parts:
                raise InvalidAmount(f"Position {position_id} is too small to split {parts} ways")

            principal_part = position.principal_amount // parts
            multiplier_part = position.deposit_multiplier // parts
            splits_left = position.splits_remaining - quantity
            certificate = CertificateConfig(
                asset=self.asset,
                deposit_amount=principal_part,
                maturity=position.maturity_timestamp,
                deposit_multiplier=multiplier_part,
                splits=splits_left,
                maturity_extensions=position.extensions_remaining,
            )

            issued: list[str] = []
            try:
                for _ in range(quantity):
                    issued.append(
                        await self._call(
                            self._ledger.issue(position.owner, certificate),
                            "position ledger",
                        )
                    )
            except ExternalCollaboratorUnavailable:
                for orphan in issued:
                    await self._burn_orphan(orphan)
                raise

            siblings = [
                Position(
                    position_id=sibling_id,
                    owner=position.owner,
                    principal_amount=principal_part,
                    maturity_timestamp=position.maturity_timestamp,
                    custody_address=address,
                    deposit_multiplier=multiplier_part,
                    splits_remaining=splits_left,
                    extensions_remaining=position.extensions_remaining,
                )
                for sibling_id in issued
            ]
            original = replace(
                position,
                principal_amount=position.principal_amount - principal_part * quantity,
                deposit_multiplier=position.deposit_multiplier - multiplier_part * quantity,
                splits_remaining=splits_left,
            )
            self._commit(self._custodies[address], [original, *siblings])

        logger.info("Position %s split into %s", position_id, [position_id, *issued])
        return issued

    async def unlock(self, position_id: str, quantity: int = 1) -> int:
        """Withdraw a matured position to its owner and destroy it.

        Returns the amount released. Once the payout transfer has succeeded
        the position is destroyed, even if burning the certificate afterwards
        fails; that failure is then reported without undoing the payout.
        """
        if not _is_positive_int(quantity) or quantity != 1:
            raise InvalidAmount(f"A position certificate holds one unit, got {quantity!r}")

        position = self._position(position_id)
        address = position.custody_address
        async with self._custody_lock(address):
            position = self._position(position_id)
            now = self._clock.now()
            if not position.is_matured(now):
                raise NotMatured(
                    f"Position {position_id} matures at {position.maturity_timestamp} (now {now})"
                )

            wallet = self._wallets[address]
            siblings = self._siblings(address)
            total_multiplier = sum(p.deposit_multiplier for p in siblings)
            last = len(siblings) == 1

            custody = await wallet.release(self._custodies[address])
            if last:
                released = custody.liquid_balance
            else:
                released = self._oracle.value(position, custody, total_multiplier, now)
            await wallet.pay(self.asset, position.owner, released)

            # Past this point the payout is final.
            custody = replace(custody, liquid_balance=custody.liquid_balance - released)
            self._commit(custody, removed=[position_id])
            failures: list[str] = []

            if last:
                failures.extend(await self._release_custody(wallet, custody, position))
            try:
                await self._call(self._ledger.burn(position_id), "position ledger")
            except ExternalCollaboratorUnavailable as e:
                failures.append(f"certificate burn failed: {e}")

        logger.info(
            "Position %s unlocked, released %d %s to %s",
            position_id, released, self.asset, describe(position.owner),
        )
        if failures:
            raise ExternalCollaboratorUnavailable(
                f"Position {position_id} was paid out, but " + "; ".join(failures)
            )
        return released

    async def _release_custody(
        self, wallet: CustodyWallet, custody: CustodyRecord, position: Position
    ) -> list[str]:
        """Sweep carried rewards to the last owner and forget the custody."""
        carry = dict(custody.reward_carry)
        for token in sorted(custody.reward_carry):
            try:
                await wallet.pay(token, position.owner, custody.reward_carry[token])
            except ExternalCollaboratorUnavailable as e:
                self._custodies[custody.address] = replace(custody, reward_carry=carry)
                return [f"reward sweep failed: {e}"]
            del carry[token]

        self._custodies.pop(custody.address, None)
        self._wallets.pop(custody.address, None)
        self._locks.pop(custody.address, None)
        logger.info("Custody %s released", describe(custody.address))
        return []

    # ------------------------------------------------------------------
    # Rewards
    # ------------------------------------------------------------------

    async def trigger_update(
        self, position_id: str, aux_data: bytes = b""
    ) -> list[RewardPayout]:
        """Harvest the position's custody and pay every co-located owner.

        ``aux_data`` is accepted for ledger compatibility and not interpreted.
        Returns the payouts made; empty when nothing was claimable.
        """
        position = self._position(position_id)
        address = position.custody_address
        async with self._custody_lock(address):
            self._position(position_id)
            now = self._clock.now()
            if aux_data:
                logger.debug("Ignoring %d bytes of aux data for %s", len(aux_data), position_id)

            siblings = self._siblings(address)
            outcome = await self._harvester.harvest_and_distribute(
                self._wallets[address], self._custodies[address], siblings, now
            )

            paid_by_position: dict[str, dict[str, int]] = {}
            for payout in outcome.payouts:
                totals = paid_by_position.setdefault(payout.position_id, {})
                totals[payout.token] = totals.get(payout.token, 0) + payout.amount

            updated = []
            for sibling in siblings:
                gains = paid_by_position.get(sibling.position_id)
                if not gains:
                    continue
                rewards = dict(sibling.rewards_paid)
                for token, amount in gains.items():
                    rewards[token] = rewards.get(token, 0) + amount
                updated.append(replace(sibling, rewards_paid=rewards))
            self._commit(outcome.custody, updated)

        if outcome.error is not None:
            raise outcome.error
        return list(outcome.payouts)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_value(self, position_id: str) -> int:
        """Current asset-denominated value of a position. No side effects."""
        position = self._position(position_id)
        return self._oracle.value(
            position,
            self._custodies[position.custody_address],
            self._total_multiplier(position.custody_address),
            self._clock.now(),
        )

    def get_display_state(self, position_id: str) -> DisplayState:
        position = self._position(position_id)
        custody = self._custodies[position.custody_address]
        fields = build_display_fields(
            position,
            custody,
            self.get_value(position_id),
            self.asset,
            self._token_decimals,
        )
        return DisplayState(custody_address=custody.address, fields=fields)

    def get_custody_address(self, position_id: str) -> str:
        return self._position(position_id).custody_address

    def get_position(self, position_id: str) -> Position:
        return self._position(position_id)

    def get_custody(self, custody_address: str) -> CustodyRecord:
        custody = self._custodies.get(custody_address)
        if custody is None:
            raise UnknownCustody(f"Unknown custody {custody_address}")
        return custody

    def positions_for_custody(self, custody_address: str) -> list[Position]:
        return self._siblings(custody_address)
