"""Vault error taxonomy."""
from __future__ import annotations


class VaultError(Exception):
    """Base class for every error raised by the vault."""


class InvalidAmount(VaultError):
    pass


class InvalidMaturity(VaultError):
    pass


class MaturityNotIncreasing(VaultError):
    pass


class UnknownPosition(VaultError):
    pass


class UnknownCustody(VaultError):
    """No custody is held at the given address (never opened, or released)."""


class SplitsExhausted(VaultError):
    pass


class ExtensionsExhausted(VaultError):
    pass


class NotMatured(VaultError):
    pass


class NotAllowListed(VaultError):
    """The vault is not on the position ledger's lock-opening allow-list."""


class SharedCustody(VaultError):
    """The operation needs exclusive use of a custody that still serves siblings."""


class HarvestUnavailable(VaultError):
    """The distributor has no claimable epoch yet. Recoverable; retry later."""


class ExternalCollaboratorUnavailable(VaultError):
    """An external lock, distributor, bank or ledger call failed or timed out."""
