"""Service modules"""
from .allocation import AllocationLedger, split_proportionally
from .harvester import HarvestOutcome, RewardHarvester
from .vault import PositionVault

__all__ = [
    "AllocationLedger",
    "HarvestOutcome",
    "PositionVault",
    "RewardHarvester",
    "split_proportionally",
]
