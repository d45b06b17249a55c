"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from escrow_vault.backends import SimClock
from escrow_vault.config import (
    AppConfig,
    DistributorConfig,
    EscrowConfig,
    ValuationConfig,
    VaultConfig,
)
from escrow_vault.factory import Backend, build_backend, build_vault
from escrow_vault.models import WAD, CustodyRecord, Position
from escrow_vault.services import PositionVault

HOUR = 3600
DAY = 24 * HOUR
WEEK = 7 * DAY
YEAR = 365 * DAY

UNIT = 10**18
START = 1_700_000_000

VAULT = "0xvault"
WHALE = "0x2CA3a2b525E75b2F20f59dEcCaE3ffa4bdf3EAa2"
OUTSIDER = "0x0dDAFB4C1885Df3088f21403DAdc69E0b6E963d2"


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_vault_config() -> VaultConfig:
    return VaultConfig(
        address=VAULT,
        asset="LQDR",
        default_splits=3,
        default_extensions=5,
        max_lock_seconds=2 * YEAR,
        collaborator_timeout=5.0,
    )


@pytest.fixture()
def sample_app_config(sample_vault_config: VaultConfig) -> AppConfig:
    return AppConfig(
        backend="simulated",
        vault=sample_vault_config,
        escrow=EscrowConfig(address="0xescrow", max_lock_seconds=2 * YEAR),
        distributor=DistributorConfig(address="0xdistributor", epoch_seconds=WEEK),
        valuation=ValuationConfig(curve="linear"),
        token_decimals={"LQDR": 18, "WFTM": 18},
    )


# ---------------------------------------------------------------------------
# Simulated collaborators and vault
# ---------------------------------------------------------------------------


@pytest.fixture()
def whale() -> str:
    return WHALE


@pytest.fixture()
def outsider() -> str:
    return OUTSIDER


@pytest.fixture()
def clock() -> SimClock:
    return SimClock(START)


@pytest.fixture()
def backend(sample_app_config: AppConfig, clock: SimClock) -> Backend:
    backend = build_backend(sample_app_config, clock)
    backend.ledger.modify_allow_list(sample_app_config.vault.address, True)
    for holder in (WHALE, OUTSIDER):
        backend.bank.mint("LQDR", holder, 1_000 * UNIT)
        backend.bank.mint("WFTM", holder, 1_000 * UNIT)
    return backend


@pytest.fixture()
def vault(sample_app_config: AppConfig, backend: Backend) -> PositionVault:
    return build_vault(sample_app_config, backend)


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_position() -> Position:
    return Position(
        position_id="1",
        owner=WHALE,
        principal_amount=10 * UNIT,
        maturity_timestamp=START + YEAR,
        custody_address="0xcustody",
        deposit_multiplier=WAD,
        splits_remaining=3,
        extensions_remaining=5,
    )


@pytest.fixture()
def sample_custody() -> CustodyRecord:
    return CustodyRecord(
        address="0xcustody",
        owner_position_id="1",
        locked_balance=10 * UNIT,
        lock_end_time=START + YEAR,
    )


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    backend: simulated
    vault:
      address: "0xvault"
      asset: LQDR
      default_splits: 2
      default_extensions: 4
      collaborator_timeout: 10
    escrow:
      address: "0xescrow"
      max_lock_seconds: 63072000
    distributor:
      address: "0xdistributor"
      epoch_seconds: 604800
    valuation:
      curve: boost
      boost_bps: 2500
    rpc:
      endpoints: ["https://rpc.example.com"]
      timeout: 10
    token_decimals: {LQDR: 18, WFTM: 18, USDC: 6}
    logging:
      level: DEBUG
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
