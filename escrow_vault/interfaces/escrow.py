"""External lock protocol — voting-escrow style time lock."""
from typing import Protocol

from ..models import LockedBalance


class ExternalLock(Protocol):
    """Abstract interface for a time lock with one unlock schedule per address."""

    async def locked(self, address: str) -> LockedBalance: ...

    async def create_lock(self, address: str, amount: int, unlock_time: int) -> None: ...

    async def increase_amount(self, address: str, amount: int) -> None: ...

    async def increase_unlock_time(self, address: str, unlock_time: int) -> None: ...

    async def withdraw(self, address: str) -> int: ...
