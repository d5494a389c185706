"""
Core module for the SOL Flywheel.

This module exports the main models, constants, exceptions and utilities used
throughout the project.
"""

__version__ = "0.1.0"

# Re-export common models and utilities
from .models import (
    # Ledger models
    TreasuryAccount,
    SettlementRecord,
    SettlementKind,
    SettlementState,

    # Swap and disposal models
    SwapQuote,
    DisposalMode,
    DisposalResult,

    # Accounting models
    RunRecord,
    RunStatus,
    Totals,
    FlywheelState,
)

from .constants import (
    LAMPORTS_PER_SOL,
    NATIVE_MINT,
    INCINERATOR_ADDRESS,
    HISTORY_LIMIT,
)

from .exceptions import (
    FlywheelError,
    ConfigError,
    StateCorruptedError,
    SwapError,
    QuoteUnavailable,
    SwapBuildFailed,
    SubmissionFailed,
    SwapNotConfirmed,
    DisposalError,
    BurnFailed,
    TransferFailed,
    DisposalNotConfirmed,
)

from .utils import (
    sol_to_lamports,
    lamports_to_sol,
    compute_spendable,
    format_sol_amount,
    load_keypair,
    parse_pubkey,
    utc_now,
)

from .logger import logger

# Export all for easier imports
__all__ = [
    # Version
    "__version__",

    # Models
    "TreasuryAccount", "SettlementRecord", "SettlementKind", "SettlementState",
    "SwapQuote", "DisposalMode", "DisposalResult",
    "RunRecord", "RunStatus", "Totals", "FlywheelState",

    # Constants
    "LAMPORTS_PER_SOL", "NATIVE_MINT", "INCINERATOR_ADDRESS", "HISTORY_LIMIT",

    # Exceptions
    "FlywheelError", "ConfigError", "StateCorruptedError",
    "SwapError", "QuoteUnavailable", "SwapBuildFailed", "SubmissionFailed", "SwapNotConfirmed",
    "DisposalError", "BurnFailed", "TransferFailed", "DisposalNotConfirmed",

    # Utilities
    "sol_to_lamports", "lamports_to_sol", "compute_spendable", "format_sol_amount",
    "load_keypair", "parse_pubkey", "utc_now",

    # Logger
    "logger",
]
