"""Reward distributor protocol — pooled periodic emissions keyed by address."""
from typing import Protocol


class RewardDistributor(Protocol):
    """Abstract interface for claiming rewards accrued to an address.

    ``claim`` pays every claimable token to ``address`` and returns the amounts
    keyed by token. Raises ``HarvestUnavailable`` when no epoch is claimable.
    """

    async def claim(self, address: str) -> dict[str, int]: ...
