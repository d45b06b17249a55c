"""Per-position custody of external locks."""
from .wallet import CustodyWallet

__all__ = ["CustodyWallet"]
