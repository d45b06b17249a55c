"""Collaborator implementations: in-process simulation and JSON-RPC."""
from .rpc import RpcAssetBank, RpcFeeDistributor, RpcPositionLedger, RpcVotingEscrow
from .simulated import (
    EscrowError,
    InMemoryPositionLedger,
    InsufficientBalance,
    SimClock,
    SimulatedBank,
    SimulatedFeeDistributor,
    SimulatedVotingEscrow,
    SystemClock,
)

__all__ = [
    "EscrowError",
    "InMemoryPositionLedger",
    "InsufficientBalance",
    "RpcAssetBank",
    "RpcFeeDistributor",
    "RpcPositionLedger",
    "RpcVotingEscrow",
    "SimClock",
    "SimulatedBank",
    "SimulatedFeeDistributor",
    "SimulatedVotingEscrow",
    "SystemClock",
]
