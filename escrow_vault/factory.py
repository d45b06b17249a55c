"""Assemble a vault and its collaborators from configuration."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from .backends import (
    InMemoryPositionLedger,
    RpcAssetBank,
    RpcFeeDistributor,
    RpcPositionLedger,
    RpcVotingEscrow,
    SimClock,
    SimulatedBank,
    SimulatedFeeDistributor,
    SimulatedVotingEscrow,
    SystemClock,
)
from .config import AppConfig, load_config
from .interfaces import (
    AssetBank,
    Clock,
    ExchangeRateCurve,
    ExternalLock,
    PositionLedger,
    RewardDistributor,
)
from .logging_setup import configure_logging
from .oracles import EscrowBoostCurve, LinearExchangeRate, ValueOracle
from .rpc import JsonRpcClient
from .services import PositionVault

logger = logging.getLogger(__name__)

# Registry of exchange-rate curve factories keyed by curve name.
_CURVE_FACTORIES: dict[str, Callable[[AppConfig], ExchangeRateCurve]] = {
    "linear": lambda cfg: LinearExchangeRate(),
    "boost": lambda cfg: EscrowBoostCurve(
        cfg.escrow.max_lock_seconds, cfg.valuation.boost_bps
    ),
}


@dataclass(frozen=True)
class Backend:
    """The external collaborators a vault drives."""

    escrow: ExternalLock
    distributor: RewardDistributor
    bank: AssetBank
    ledger: PositionLedger
    clock: Clock


def build_curve(config: AppConfig) -> ExchangeRateCurve:
    factory = _CURVE_FACTORIES.get(config.valuation.curve)
    if factory is None:
        raise ValueError(f"No exchange-rate curve named '{config.valuation.curve}'")
    return factory(config)


def build_backend(config: AppConfig, clock: Any = None) -> Backend:
    """Build collaborators for ``config.backend``.

    ``clock`` overrides the default clock (a ``SimClock`` for the simulated
    backend, the system clock for rpc).
    """
    if config.backend == "simulated":
        clock = clock or SimClock()
        bank = SimulatedBank()
        escrow = SimulatedVotingEscrow(
            config.vault.asset,
            bank,
            clock,
            max_lock_seconds=config.escrow.max_lock_seconds,
            address=config.escrow.address,
        )
        distributor = SimulatedFeeDistributor(
            escrow,
            bank,
            clock,
            epoch_seconds=config.distributor.epoch_seconds,
            address=config.distributor.address,
        )
        return Backend(
            escrow=escrow,
            distributor=distributor,
            bank=bank,
            ledger=InMemoryPositionLedger(),
            clock=clock,
        )

    if config.backend == "rpc":
        client = JsonRpcClient(config.rpc)
        return Backend(
            escrow=RpcVotingEscrow(client, config.escrow.address),
            distributor=RpcFeeDistributor(client, config.distributor.address),
            bank=RpcAssetBank(client),
            ledger=RpcPositionLedger(client),
            clock=clock or SystemClock(),
        )

    raise ValueError(f"Unknown backend '{config.backend}'")


def build_vault(config: AppConfig, backend: Backend | None = None) -> PositionVault:
    """Create a ``PositionVault`` wired to ``backend`` (built from config if omitted)."""
    backend = backend or build_backend(config)
    vault = PositionVault(
        config.vault,
        escrow=backend.escrow,
        distributor=backend.distributor,
        bank=backend.bank,
        ledger=backend.ledger,
        clock=backend.clock,
        oracle=ValueOracle(build_curve(config)),
        token_decimals=config.token_decimals,
    )
    logger.info(
        "Vault %s ready (%s backend, %s curve)",
        vault.address, config.backend, config.valuation.curve,
    )
    return vault


def vault_from_config(config_path: str | Path | None = None) -> PositionVault:
    """Load configuration, set up logging and build the vault it describes."""
    config = load_config(config_path)
    configure_logging(config.logging.level)
    return build_vault(config)
