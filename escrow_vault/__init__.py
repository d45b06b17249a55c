"""Per-position voting-escrow custody backend for FNFT deposit certificates."""
from .errors import (
    ExtensionsExhausted,
    ExternalCollaboratorUnavailable,
    HarvestUnavailable,
    InvalidAmount,
    InvalidMaturity,
    MaturityNotIncreasing,
    NotAllowListed,
    NotMatured,
    SharedCustody,
    SplitsExhausted,
    UnknownCustody,
    UnknownPosition,
    VaultError,
)
from .services import PositionVault

__all__ = [
    "ExtensionsExhausted",
    "ExternalCollaboratorUnavailable",
    "HarvestUnavailable",
    "InvalidAmount",
    "InvalidMaturity",
    "MaturityNotIncreasing",
    "NotAllowListed",
    "NotMatured",
    "PositionVault",
    "SharedCustody",
    "SplitsExhausted",
    "UnknownCustody",
    "UnknownPosition",
    "VaultError",
]
