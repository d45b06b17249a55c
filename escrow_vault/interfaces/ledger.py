"""Position ledger protocol — certificate issuance, burn and allow-list gate."""
from typing import Protocol

from ..models import CertificateConfig


class PositionLedger(Protocol):
    """Abstract interface to the ledger that owns the certificates."""

    async def issue(self, owner: str, config: CertificateConfig) -> str: ...

    async def burn(self, position_id: str) -> None: ...

    async def is_allow_listed(self, address: str) -> bool: ...
