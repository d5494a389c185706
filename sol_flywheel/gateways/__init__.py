"""
Gateway module for the SOL Flywheel.

This module provides the abstract gateways the flywheel talks to: the ledger
(Solana JSON-RPC) and the swap venue (Jupiter HTTP API). Each gateway abstracts
the wire calls, signing and error translation for its service; concrete
implementations live in ``solana_gateway`` and ``jupiter_gateway``.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from sol_flywheel.core.models import SettlementKind, SettlementRecord, SwapQuote


class GatewayError(Exception):
    """Base exception for all gateway-related errors."""

    pass


class GatewayConnectionError(GatewayError):
    """Exception raised when the remote service cannot be reached."""

    pass


class RpcResponseError(GatewayError):
    """Exception raised when the node answers a request with a JSON-RPC error."""

    pass


class TransactionRejectedError(GatewayError):
    """Exception raised when the ledger refuses a submitted transaction."""

    pass


class TransactionFailedError(GatewayError):
    """Exception raised when a transaction was included but failed to execute."""

    def __init__(self, signature: str, error: str):
        super().__init__(f"Transaction {signature} failed: {error}")
        self.signature = signature
        self.error = error


class VenueError(GatewayError):
    """Exception raised when the swap venue returns an error or an unusable response."""

    pass


class LedgerGateway(ABC):
    """Base abstract class for ledger access on behalf of the treasury wallet."""

    @property
    @abstractmethod
    def payer(self) -> Pubkey:
        """Public key of the wallet that signs and pays for transactions."""
        pass

    @abstractmethod
    async def get_native_balance(self, owner: Pubkey) -> int:
        """
        Get the SOL balance of an account.

        Args:
            owner: Account to query

        Returns:
            Balance in lamports
        """
        pass

    @abstractmethod
    async def get_token_balance(self, token_account: Pubkey) -> int:
        """
        Get the raw balance of a token account.

        Args:
            token_account: Token account to query

        Returns:
            Raw token amount, 0 if the account does not exist
        """
        pass

    @abstractmethod
    async def get_mint_decimals(self, mint: Pubkey) -> int:
        """Get the decimals of a token mint."""
        pass

    @abstractmethod
    async def account_exists(self, address: Pubkey) -> bool:
        """Check whether an account has been created on the ledger."""
        pass

    @abstractmethod
    async def send_serialized_transaction(
        self, transaction: bytes, kind: SettlementKind
    ) -> SettlementRecord:
        """
        Sign and submit a transaction built by a third party.

        Args:
            transaction: Serialized unsigned versioned transaction
            kind: What the transaction does

        Returns:
            Submitted settlement record

        Raises:
            TransactionRejectedError: If the ledger refuses the transaction
            GatewayConnectionError: If the ledger cannot be reached
        """
        pass

    @abstractmethod
    async def send_instructions(
        self, instructions: Sequence[Instruction], kind: SettlementKind
    ) -> SettlementRecord:
        """
        Build, sign and submit a single transaction from instructions.

        Raises:
            TransactionRejectedError: If the ledger refuses the transaction
            GatewayConnectionError: If the ledger cannot be reached
        """
        pass

    @abstractmethod
    async def confirm(self, settlement: SettlementRecord) -> SettlementRecord:
        """
        Wait for a submitted transaction to reach "confirmed" commitment.

        Returns:
            The settlement record in the confirmed state

        Raises:
            TransactionFailedError: If the transaction reports an execution error
            GatewayConnectionError: If confirmation cannot be obtained
        """
        pass

    async def close(self) -> None:
        """Release network resources."""
        pass


class SwapVenueGateway(ABC):
    """Base abstract class for swap venues."""

    @abstractmethod
    async def get_quote(
        self, input_mint: str, output_mint: str, amount: int, slippage_bps: int
    ) -> SwapQuote:
        """
        Request a quote.

        Raises:
            VenueError: If the venue errors or returns no route
        """
        pass

    @abstractmethod
    async def build_swap_transaction(self, quote: SwapQuote, user_pubkey: Pubkey) -> bytes:
        """
        Request a serialized, unsigned swap transaction for a quote.

        Raises:
            VenueError: If the venue cannot build the transaction
        """
        pass

    async def close(self) -> None:
        """Release network resources."""
        pass
