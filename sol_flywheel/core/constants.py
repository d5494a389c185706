"""
Constants module for the SOL Flywheel.

This module defines the ledger addresses, unit conversions and default
operating parameters used throughout the application.
"""

from decimal import Decimal
from typing import Final

# ======== Ledger Constants ========
# 1 SOL = 1,000,000,000 lamports
LAMPORTS_PER_SOL: Final[int] = 1_000_000_000

# Wrapped SOL mint, used as the swap input
NATIVE_MINT: Final[str] = "So11111111111111111111111111111111111111112"

# Address with no known private key; tokens sent here are unrecoverable
INCINERATOR_ADDRESS: Final[str] = "1nc1nerator11111111111111111111111111111111"


# ======== Spend Policy Defaults ========
# Buffer kept back for transaction fees
DEFAULT_FEE_RESERVE_SOL: Final[Decimal] = Decimal("0.05")

# Smallest swap worth submitting
DEFAULT_MIN_SPEND_SOL: Final[Decimal] = Decimal("0.05")

# Largest swap per tick
DEFAULT_MAX_SPEND_SOL: Final[Decimal] = Decimal("2")

# 100 bps = 1%
DEFAULT_SLIPPAGE_BPS: Final[int] = 100


# ======== Scheduling Constants ========
# Every 20 minutes
DEFAULT_TICK_INTERVAL_SECONDS: Final[int] = 20 * 60

# Wait for the token balance to reflect a confirmed swap
DEFAULT_SETTLEMENT_DELAY_SECONDS: Final[float] = 2.5


# ======== Accounting Constants ========
# Number of run records kept in history
HISTORY_LIMIT: Final[int] = 100


# ======== Swap Venue Constants ========
DEFAULT_SWAP_BASE_URL: Final[str] = "https://quote-api.jup.ag/v6"
DEFAULT_RPC_URL: Final[str] = "https://api.mainnet-beta.solana.com"

# Maximum number of attempts for read-only ledger queries
LEDGER_READ_MAX_ATTEMPTS: Final[int] = 3
