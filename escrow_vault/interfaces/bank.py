"""Asset bank protocol — token balance and transfer abstraction."""
from typing import Protocol


class AssetBank(Protocol):
    """Abstract interface for moving fungible tokens between addresses."""

    async def transfer(
        self, token: str, sender: str, recipient: str, amount: int
    ) -> None: ...

    async def balance_of(self, token: str, holder: str) -> int: ...
