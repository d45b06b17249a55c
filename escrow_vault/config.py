"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

WEEK = 7 * 24 * 3600
YEAR = 365 * 24 * 3600

BACKENDS = ("simulated", "rpc")

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VaultConfig:
    address: str = "0xvault"
    asset: str = "LQDR"
    default_splits: int = 3
    default_extensions: int = 5
    max_lock_seconds: int = 2 * YEAR
    collaborator_timeout: float = 30.0


@dataclass(frozen=True)
class EscrowConfig:
    address: str = "0xescrow"
    max_lock_seconds: int = 2 * YEAR


@dataclass(frozen=True)
class DistributorConfig:
    address: str = "0xdistributor"
    epoch_seconds: int = WEEK


@dataclass(frozen=True)
class ValuationConfig:
    curve: str = "linear"
    boost_bps: int = 0


@dataclass(frozen=True)
class RpcConfig:
    endpoints: tuple[str, ...] = ()
    timeout: int = 10


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class AppConfig:
    backend: str = "simulated"
    vault: VaultConfig = field(default_factory=VaultConfig)
    escrow: EscrowConfig = field(default_factory=EscrowConfig)
    distributor: DistributorConfig = field(default_factory=DistributorConfig)
    valuation: ValuationConfig = field(default_factory=ValuationConfig)
    rpc: RpcConfig = field(default_factory=RpcConfig)
    token_decimals: dict[str, int] = field(default_factory=dict)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_vault(raw: dict[str, Any], escrow: EscrowConfig) -> VaultConfig:
    return VaultConfig(
        address=raw.get("address", VaultConfig.address),
        asset=raw.get("asset", VaultConfig.asset),
        default_splits=int(raw.get("default_splits", 3)),
        default_extensions=int(raw.get("default_extensions", 5)),
        # The vault never asks for a lock the escrow would refuse.
        max_lock_seconds=int(raw.get("max_lock_seconds", escrow.max_lock_seconds)),
        collaborator_timeout=float(raw.get("collaborator_timeout", 30.0)),
    )


def _build_escrow(raw: dict[str, Any]) -> EscrowConfig:
    return EscrowConfig(
        address=raw.get("address", EscrowConfig.address),
        max_lock_seconds=int(raw.get("max_lock_seconds", 2 * YEAR)),
    )


def _build_distributor(raw: dict[str, Any]) -> DistributorConfig:
    return DistributorConfig(
        address=raw.get("address", DistributorConfig.address),
        epoch_seconds=int(raw.get("epoch_seconds", WEEK)),
    )


def _build_valuation(raw: dict[str, Any]) -> ValuationConfig:
    return ValuationConfig(
        curve=raw.get("curve", "linear"),
        boost_bps=int(raw.get("boost_bps", 0)),
    )


def _build_rpc(raw: dict[str, Any]) -> RpcConfig:
    return RpcConfig(
        endpoints=tuple(raw.get("endpoints", [])),
        timeout=int(raw.get("timeout", 10)),
    )


def _build_token_decimals(raw: dict[str, Any]) -> dict[str, int]:
    return {symbol: int(decimals) for symbol, decimals in raw.items()}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from the package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    escrow = _build_escrow(raw.get("escrow", {}))
    cfg = AppConfig(
        backend=raw.get("backend", "simulated"),
        vault=_build_vault(raw.get("vault", {}), escrow),
        escrow=escrow,
        distributor=_build_distributor(raw.get("distributor", {})),
        valuation=_build_valuation(raw.get("valuation", {})),
        rpc=_build_rpc(raw.get("rpc", {})),
        token_decimals=_build_token_decimals(raw.get("token_decimals", {})),
        logging=LoggingConfig(level=raw.get("logging", {}).get("level", "INFO")),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if cfg.backend not in BACKENDS:
        raise ValueError(
            f"Unknown backend '{cfg.backend}' (expected one of {', '.join(BACKENDS)})"
        )
    if not cfg.vault.address:
        raise ValueError("Vault address must be configured")
    if not cfg.vault.asset:
        raise ValueError("Vault asset must be configured")
    if cfg.vault.default_splits < 0 or cfg.vault.default_extensions < 0:
        raise ValueError("Default split/extension budgets must be non-negative")
    if cfg.vault.max_lock_seconds <= 0:
        raise ValueError("max_lock_seconds must be positive")
    if cfg.vault.max_lock_seconds > cfg.escrow.max_lock_seconds:
        raise ValueError("Vault max_lock_seconds exceeds the escrow maximum")
    if cfg.vault.collaborator_timeout <= 0:
        raise ValueError("collaborator_timeout must be positive")
    if cfg.distributor.epoch_seconds <= 0:
        raise ValueError("epoch_seconds must be positive")
    if cfg.valuation.boost_bps < 0:
        raise ValueError("boost_bps must be non-negative")
    if cfg.backend == "rpc" and not cfg.rpc.endpoints:
        raise ValueError("The rpc backend needs at least one endpoint")
    if cfg.backend == "rpc":
        # Endpoint fallback must finish inside one collaborator call.
        budget = cfg.rpc.timeout * len(cfg.rpc.endpoints)
        if cfg.vault.collaborator_timeout <= budget:
            raise ValueError(
                f"collaborator_timeout ({cfg.vault.collaborator_timeout}s) must exceed "
                f"rpc.timeout x endpoints ({budget}s)"
            )
