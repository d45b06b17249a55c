"""Protocol interfaces for the escrow vault's external collaborators."""
from .bank import AssetBank
from .clock import Clock
from .distributor import RewardDistributor
from .escrow import ExternalLock
from .ledger import PositionLedger
from .valuation import ExchangeRateCurve

__all__ = [
    "AssetBank",
    "Clock",
    "ExchangeRateCurve",
    "ExternalLock",
    "PositionLedger",
    "RewardDistributor",
]
