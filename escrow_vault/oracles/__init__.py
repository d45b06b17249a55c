"""Valuation oracles."""
from .value import EscrowBoostCurve, LinearExchangeRate, ValueOracle

__all__ = ["EscrowBoostCurve", "LinearExchangeRate", "ValueOracle"]
