"""
Utility functions for the SOL Flywheel.

This module provides amount conversions between SOL and lamports, the spend
sizing rule, keypair loading and timestamp helpers.
"""

import json
from datetime import UTC, datetime
from decimal import ROUND_DOWN, Decimal
from pathlib import Path

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from sol_flywheel.core.constants import LAMPORTS_PER_SOL


def sol_to_lamports(sol_amount: Decimal) -> int:
    """
    Convert SOL to lamports, rounding down to a whole lamport.

    Args:
        sol_amount: Amount in SOL

    Returns:
        Amount in lamports
    """
    lamports = (Decimal(str(sol_amount)) * LAMPORTS_PER_SOL).to_integral_value(
        rounding=ROUND_DOWN
    )
    return int(lamports)


def lamports_to_sol(lamports: int) -> Decimal:
    """
    Convert lamports to SOL.

    Args:
        lamports: Amount in lamports

    Returns:
        Amount in SOL
    """
    return Decimal(lamports) / Decimal(LAMPORTS_PER_SOL)


def compute_spendable(balance: int, reserve: int, max_spend: int) -> int:
    """
    Compute how many lamports a tick may spend.

    spendable = clamp(balance - reserve, 0, max_spend)

    Args:
        balance: Current treasury balance in lamports
        reserve: Lamports kept back for transaction fees
        max_spend: Upper bound per tick in lamports

    Returns:
        Spendable lamports
    """
    return max(0, min(balance - reserve, max_spend))


def format_sol_amount(amount: Decimal, precision: int = 9, include_symbol: bool = True) -> str:
    """
    Format a SOL amount for display.

    Args:
        amount: Amount in SOL
        precision: Number of decimal places
        include_symbol: Whether to append " SOL"

    Returns:
        Formatted string
    """
    formatted = f"{amount:.{precision}f}"
    return f"{formatted} SOL" if include_symbol else formatted


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def load_keypair(keypair_path: str | None = None, secret_key: str | None = None) -> Keypair:
    """
    Load the treasury keypair.

    A keypair file (JSON array of 64 bytes, as written by ``solana-keygen``)
    takes precedence over a base58-encoded secret key.

    Raises:
        ValueError: If neither source is available or the key material is invalid
    """
    if keypair_path and Path(keypair_path).exists():
        data = json.loads(Path(keypair_path).read_text(encoding="utf-8"))
        return Keypair.from_bytes(bytes(data))
    if secret_key:
        return Keypair.from_base58_string(secret_key.strip())
    raise ValueError("No wallet keypair file or secret key configured")


def parse_pubkey(value: str) -> Pubkey:
    """
    Parse a base58 public key.

    Raises:
        ValueError: If the value is not a valid public key
    """
    try:
        return Pubkey.from_string(value.strip())
    except Exception as e:
        raise ValueError(f"Invalid public key: {value!r}") from e
