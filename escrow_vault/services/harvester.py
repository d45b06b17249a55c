"""Reward harvesting — claim pooled rewards, reallocate them by weight."""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable, Mapping

from ..custody import CustodyWallet
from ..errors import ExternalCollaboratorUnavailable, HarvestUnavailable
from ..interfaces.distributor import RewardDistributor
from ..models import CustodyRecord, HarvestRecord, Position, RewardPayout
from .allocation import AllocationLedger, split_proportionally
from ..calls import describe, guarded

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HarvestOutcome:
    """Result of one harvest: the custody to commit and what was paid."""

    custody: CustodyRecord
    payouts: tuple[RewardPayout, ...] = ()
    harvest: HarvestRecord | None = None
    error: ExternalCollaboratorUnavailable | None = None


def plan_payouts(
    custody: CustodyRecord,
    claimed: Mapping[str, int],
    weights: Mapping[str, int],
    owners: Mapping[str, str],
) -> tuple[list[RewardPayout], dict[str, int]]:
    """Allocate claimed rewards plus the carried remainder of earlier harvests.

    Returns the payouts and the new per-token carry.
    """
    pools = dict(custody.reward_carry)
    for token, amount in claimed.items():
        pools[token] = pools.get(token, 0) + amount

    payouts: list[RewardPayout] = []
    carry: dict[str, int] = {}
    for token in sorted(pools):
        shares, remainder = split_proportionally(pools[token], weights)
        for position_id in sorted(shares):
            amount = shares[position_id]
            if amount > 0:
                payouts.append(
                    RewardPayout(
                        position_id=position_id,
                        beneficiary=owners[position_id],
                        token=token,
                        amount=amount,
                    )
                )
        if remainder > 0:
            carry[token] = remainder
    return payouts, carry


class RewardHarvester:
    """Pull rewards for a custody and route them to every co-located owner."""

    def __init__(
        self,
        distributor: RewardDistributor,
        allocation: AllocationLedger,
        timeout: float,
    ) -> None:
        self._distributor = distributor
        self._allocation = allocation
        self._timeout = timeout

    async def harvest(self, wallet: CustodyWallet, now: int) -> HarvestRecord | None:
        """Claim everything accrued to the custody; ``None`` if no epoch is ready."""
        try:
            claimed = await guarded(
                self._distributor.claim(wallet.address),
                "reward distributor",
                self._timeout,
            )
        except HarvestUnavailable as e:
            logger.info("Nothing to harvest for custody %s: %s", describe(wallet.address), e)
            return None

        claimed = {token: amount for token, amount in claimed.items() if amount > 0}
        for token, amount in sorted(claimed.items()):
            logger.info(
                "Harvested %d %s for custody %s", amount, token, describe(wallet.address)
            )
        return HarvestRecord(custody_address=wallet.address, claimed=claimed, timestamp=now)

    async def harvest_and_distribute(
        self,
        wallet: CustodyWallet,
        custody: CustodyRecord,
        positions: Iterable[Position],
        now: int,
    ) -> HarvestOutcome:
        record = await self.harvest(wallet, now)
        if record is None:
            return HarvestOutcome(custody=custody)

        owners = {p.position_id: p.owner for p in positions}
        weights = {
            position_id: weight
            for position_id, weight in self._allocation.weights(custody.address).items()
            if position_id in owners
        }
        payouts, carry = plan_payouts(custody, record.claimed, weights, owners)

        paid: list[RewardPayout] = []
        for index, payout in enumerate(payouts):
            try:
                await guarded(
                    wallet.pay(payout.token, payout.beneficiary, payout.amount),
                    "asset bank",
                    self._timeout,
                )
            except ExternalCollaboratorUnavailable as e:
                # Unpaid shares stay in custody for the next harvest.
                for unpaid in payouts[index:]:
                    carry[unpaid.token] = carry.get(unpaid.token, 0) + unpaid.amount
                logger.error(
                    "Reward payout interrupted for custody %s after %d of %d transfers",
                    describe(custody.address), len(paid), len(payouts),
                )
                return HarvestOutcome(
                    custody=replace(custody, reward_carry=carry),
                    payouts=tuple(paid),
                    harvest=record,
                    error=e,
                )
            paid.append(payout)

        return HarvestOutcome(
            custody=replace(custody, reward_carry=carry),
            payouts=tuple(paid),
            harvest=record,
        )
