"""Collaborators reached over JSON-RPC.

Amounts and timestamps travel as decimal strings so that 256-bit values
survive JSON encoding.
"""
from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

from ..errors import HarvestUnavailable
from ..models import CertificateConfig, LockedBalance
from ..rpc import JsonRpcClient

logger = logging.getLogger(__name__)


def _to_int(value: Any) -> int:
    if value is None or value == "":
        return 0
    return int(value)


class RpcVotingEscrow:
    """External lock behind ``escrow_*`` RPC methods."""

    def __init__(self, client: JsonRpcClient, escrow_address: str) -> None:
        self._client = client
        self._escrow = escrow_address

    async def locked(self, address: str) -> LockedBalance:
        result = await self._client.rpc_call("escrow_locked", [self._escrow, address])
        result = result or {}
        return LockedBalance(
            amount=_to_int(result.get("amount")), end=_to_int(result.get("end"))
        )

    async def create_lock(self, address: str, amount: int, unlock_time: int) -> None:
        await self._client.rpc_call(
            "escrow_createLock",
            [self._escrow, address, str(amount), str(unlock_time)],
        )

    async def increase_amount(self, address: str, amount: int) -> None:
        await self._client.rpc_call(
            "escrow_increaseAmount", [self._escrow, address, str(amount)]
        )

    async def increase_unlock_time(self, address: str, unlock_time: int) -> None:
        await self._client.rpc_call(
            "escrow_increaseUnlockTime", [self._escrow, address, str(unlock_time)]
        )

    async def withdraw(self, address: str) -> int:
        result = await self._client.rpc_call("escrow_withdraw", [self._escrow, address])
        return _to_int((result or {}).get("amount"))


class RpcFeeDistributor:
    """Reward distributor behind ``distributor_*`` RPC methods."""

    def __init__(self, client: JsonRpcClient, distributor_address: str) -> None:
        self._client = client
        self._distributor = distributor_address

    async def claim(self, address: str) -> dict[str, int]:
        result = await self._client.rpc_call(
            "distributor_claim", [self._distributor, address]
        )
        result = result or {}
        if not result.get("claimable", False):
            raise HarvestUnavailable(
                result.get("reason") or f"No claimable epoch for {address}"
            )
        return {
            token: _to_int(amount)
            for token, amount in result.get("claimed", {}).items()
        }


class RpcAssetBank:
    """Token balances and transfers behind ``token_*`` RPC methods."""

    def __init__(self, client: JsonRpcClient) -> None:
        self._client = client

    async def transfer(
        self, token: str, sender: str, recipient: str, amount: int
    ) -> None:
        await self._client.rpc_call(
            "token_transfer", [token, sender, recipient, str(amount)]
        )

    async def balance_of(self, token: str, holder: str) -> int:
        result = await self._client.rpc_call("token_balanceOf", [token, holder])
        return _to_int(result)


class RpcPositionLedger:
    """Certificate ledger behind ``ledger_*`` RPC methods."""

    def __init__(self, client: JsonRpcClient) -> None:
        self._client = client

    async def issue(self, owner: str, config: CertificateConfig) -> str:
        encoded = {
            key: str(value) if isinstance(value, int) else value
            for key, value in asdict(config).items()
        }
        result = await self._client.rpc_call("ledger_issue", [owner, encoded])
        position_id = (result or {}).get("positionId")
        if not position_id:
            raise RuntimeError(f"Ledger returned no position id: {result!r}")
        return str(position_id)

    async def burn(self, position_id: str) -> None:
        await self._client.rpc_call("ledger_burn", [position_id])

    async def is_allow_listed(self, address: str) -> bool:
        result = await self._client.rpc_call("ledger_isAllowListed", [address])
        return bool(result)
