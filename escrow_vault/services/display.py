"""Pure formatting helpers for observer-facing display state — no I/O."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Mapping

from ..models import WAD, CustodyRecord, Position

DEFAULT_DECIMALS = 18


def format_amount(raw: int, decimals: int = DEFAULT_DECIMALS) -> str:
    """Render a raw integer amount in whole units, e.g. 10**18 → "1.0000"."""
    return f"{raw / 10**decimals:,.4f}"


def format_timestamp(timestamp: int) -> str:
    if timestamp <= 0:
        return "—"
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime(
        "%Y-%m-%d %H:%M:%S UTC"
    )


def format_token_amounts(
    amounts: Mapping[str, int], token_decimals: Mapping[str, int]
) -> str:
    """Return e.g. "LQDR 1.5000, WFTM 0.2500", or "—" when empty."""
    parts = [
        f"{token} {format_amount(amount, token_decimals.get(token, DEFAULT_DECIMALS))}"
        for token, amount in sorted(amounts.items())
        if amount > 0
    ]
    return ", ".join(parts) if parts else "—"


def build_display_fields(
    position: Position,
    custody: CustodyRecord,
    value: int,
    asset: str,
    token_decimals: Mapping[str, int],
) -> tuple[str, ...]:
    decimals = token_decimals.get(asset, DEFAULT_DECIMALS)
    return (
        f"Position: {position.position_id}",
        f"Owner: {position.owner}",
        f"Principal: {format_amount(position.principal_amount, decimals)} {asset}",
        f"Value: {format_amount(value, decimals)} {asset}",
        f"Deposit multiplier: {position.deposit_multiplier / WAD:.6f}",
        f"Maturity: {format_timestamp(position.maturity_timestamp)}",
        f"Lock end: {format_timestamp(custody.lock_end_time)}",
        f"Splits remaining: {position.splits_remaining}",
        f"Extensions remaining: {position.extensions_remaining}",
        f"Rewards paid: {format_token_amounts(position.rewards_paid, token_decimals)}",
        f"Rewards carried: {format_token_amounts(custody.reward_carry, token_decimals)}",
    )
