"""
Error taxonomy for the SOL Flywheel.

Swap errors abort a tick before anything is recorded. Disposal errors happen
after a confirmed swap and are recorded as a partial run.
"""


class FlywheelError(Exception):
    """Base exception for all flywheel errors."""

    pass


class ConfigError(FlywheelError):
    """Invalid or missing configuration, credentials or addresses."""

    pass


class StateCorruptedError(FlywheelError):
    """The persisted state file exists but cannot be parsed."""

    pass


# ======== Swap Errors ========


class SwapError(FlywheelError):
    """Base class for failures between quote and swap confirmation."""

    pass


class QuoteUnavailable(SwapError):
    """The venue returned no viable route for the requested amount."""

    pass


class SwapBuildFailed(SwapError):
    """The venue could not construct a swap transaction for the quote."""

    pass


class SubmissionFailed(SwapError):
    """The network or ledger rejected the signed swap transaction."""

    pass


class SwapNotConfirmed(SwapError):
    """The swap was included but reported an execution error."""

    pass


# ======== Disposal Errors ========


class DisposalError(FlywheelError):
    """Base class for failures while burning or incinerating tokens."""

    pass


class BurnFailed(DisposalError):
    """The burn transaction was rejected."""

    pass


class TransferFailed(DisposalError):
    """The transfer to the sink account was rejected."""

    pass


class DisposalNotConfirmed(DisposalError):
    """The disposal was included but reported an execution error."""

    pass
