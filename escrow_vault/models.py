"""Data models — all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass, field

# Fixed-point scale for deposit multipliers: WAD == 1.0
WAD = 10**18


@dataclass(frozen=True)
class LockedBalance:
    """The external lock's view of a single custody address."""

    amount: int = 0
    end: int = 0

    def is_live(self, now: int) -> bool:
        return self.amount > 0 and self.end > now


@dataclass(frozen=True)
class CertificateConfig:
    """Initial certificate configuration handed to the position ledger."""

    asset: str
    deposit_amount: int
    maturity: int
    deposit_multiplier: int = WAD
    splits: int = 0
    maturity_extensions: int = 0


@dataclass(frozen=True)
class Position:
    """Accounting record of one FNFT-backed locked deposit."""

    position_id: str
    owner: str
    principal_amount: int
    maturity_timestamp: int
    custody_address: str
    deposit_multiplier: int = WAD
    splits_remaining: int = 0
    extensions_remaining: int = 0
    rewards_paid: dict[str, int] = field(default_factory=dict)

    def is_matured(self, now: int) -> bool:
        return now >= self.maturity_timestamp


@dataclass(frozen=True)
class CustodyRecord:
    """Mirror of a custody wallet's holdings."""

    address: str
    owner_position_id: str
    locked_balance: int = 0
    lock_end_time: int = 0
    liquid_balance: int = 0
    reward_carry: dict[str, int] = field(default_factory=dict)

    @property
    def raw_balance(self) -> int:
        return self.locked_balance + self.liquid_balance


@dataclass(frozen=True)
class HarvestRecord:
    """Rewards claimed for one custody during one update call."""

    custody_address: str
    claimed: dict[str, int]
    timestamp: int


@dataclass(frozen=True)
class RewardPayout:
    position_id: str
    beneficiary: str
    token: str
    amount: int


@dataclass(frozen=True)
class DisplayState:
    """Read-only projection of a position for observers."""

    custody_address: str
    fields: tuple[str, ...] = ()
