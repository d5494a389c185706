"""
Solana Gateway module for the SOL Flywheel.

This module provides the ledger gateway implementation backed by the Solana
JSON-RPC. It handles balance queries, transaction construction and signing with
the treasury keypair, submission and confirmation, and translation of RPC
failures into gateway errors. Read-only queries are retried on transport
errors; submissions and confirmations never are.
"""

from collections.abc import Sequence
from typing import Any

from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed, Processed
from solana.rpc.core import (
    RPCException,
    TransactionExpiredBlockheightExceededError,
    UnconfirmedTxError,
)
from solana.rpc.types import TxOpts
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from sol_flywheel.core.constants import LEDGER_READ_MAX_ATTEMPTS
from sol_flywheel.core.logger import get_settlement_logger, logger
from sol_flywheel.core.models import SettlementKind, SettlementRecord
from sol_flywheel.gateways import (
    GatewayConnectionError,
    GatewayError,
    LedgerGateway,
    RpcResponseError,
    TransactionFailedError,
    TransactionRejectedError,
)

# Error text returned by the node for an uninitialized token account
MISSING_ACCOUNT_MESSAGE = "could not find account"


class SolanaGateway(LedgerGateway):
    """Gateway implementation for the Solana JSON-RPC."""

    def __init__(self, rpc_url: str, keypair: Keypair, client: AsyncClient | None = None):
        """
        Initialize the Solana gateway.

        Args:
            rpc_url: JSON-RPC endpoint
            keypair: Treasury keypair used to sign and pay for transactions
            client: Pre-built RPC client (default: a new AsyncClient for rpc_url)
        """
        self.rpc_url = rpc_url
        self.keypair = keypair
        self.client = client or AsyncClient(rpc_url, commitment=Confirmed)
        self.mint_decimals_cache: dict[Pubkey, int] = {}
        self.settlement_logger = get_settlement_logger()

    @property
    def payer(self) -> Pubkey:
        return self.keypair.pubkey()

    @retry(
        retry=retry_if_exception_type(SolanaRpcException),
        stop=stop_after_attempt(LEDGER_READ_MAX_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _read_with_retry(self, method: Any, *args: Any, **kwargs: Any) -> Any:
        """
        Execute a read-only RPC method with retry logic for transport errors.

        Args:
            method: Bound AsyncClient method
            *args: Positional arguments for the method
            **kwargs: Keyword arguments for the method

        Returns:
            Parsed RPC response
        """
        return await method(*args, **kwargs)

    async def _read(self, method: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return await self._read_with_retry(method, *args, **kwargs)
        except SolanaRpcException as e:
            logger.error("Solana RPC unreachable", rpc_url=self.rpc_url, exc_info=True)
            raise GatewayConnectionError(f"Solana RPC request failed: {str(e)}") from e
        except RPCException as e:
            raise RpcResponseError(f"Solana RPC returned an error: {str(e)}") from e

    async def get_native_balance(self, owner: Pubkey) -> int:
        resp = await self._read(self.client.get_balance, owner, commitment=Processed)
        return int(resp.value)

    async def get_token_balance(self, token_account: Pubkey) -> int:
        try:
            resp = await self._read(
                self.client.get_token_account_balance, token_account, commitment=Confirmed
            )
        except RpcResponseError as e:
            if MISSING_ACCOUNT_MESSAGE not in str(e):
                logger.error("Token balance query failed", token_account=str(token_account))
                raise
            # The account has not been created yet
            logger.debug("Token account not found", token_account=str(token_account))
            return 0
        return int(resp.value.amount)

    async def get_mint_decimals(self, mint: Pubkey) -> int:
        if mint in self.mint_decimals_cache:
            return self.mint_decimals_cache[mint]

        resp = await self._read(self.client.get_account_info_json_parsed, mint)
        if resp.value is None:
            raise GatewayError(f"Mint account not found: {mint}")

        decimals = int(resp.value.data.parsed["info"]["decimals"])
        self.mint_decimals_cache[mint] = decimals
        return decimals

    async def account_exists(self, address: Pubkey) -> bool:
        resp = await self._read(self.client.get_account_info, address)
        return resp.value is not None

    async def _submit(
        self,
        transaction: VersionedTransaction,
        kind: SettlementKind,
        last_valid_block_height: int | None = None,
    ) -> SettlementRecord:
        """Submit a signed transaction with preflight checks enabled."""
        try:
            resp = await self.client.send_raw_transaction(
                bytes(transaction),
                opts=TxOpts(skip_preflight=False, preflight_commitment=Confirmed),
            )
        except RPCException as e:
            logger.error("Transaction rejected", kind=kind.value, error=str(e))
            raise TransactionRejectedError(f"{kind.value} transaction rejected: {str(e)}") from e
        except SolanaRpcException as e:
            logger.error("Transaction submission failed", kind=kind.value, exc_info=True)
            raise GatewayConnectionError(
                f"{kind.value} transaction submission failed: {str(e)}"
            ) from e

        settlement = SettlementRecord(
            signature=str(resp.value),
            kind=kind,
            last_valid_block_height=last_valid_block_height,
        )
        self.settlement_logger.info(
            "Transaction submitted", signature=settlement.signature, kind=kind.value
        )
        return settlement

    async def send_serialized_transaction(
        self, transaction: bytes, kind: SettlementKind
    ) -> SettlementRecord:
        try:
            unsigned = VersionedTransaction.from_bytes(transaction)
            signed = VersionedTransaction(unsigned.message, [self.keypair])
        except Exception as e:
            raise TransactionRejectedError(f"Cannot sign {kind.value} transaction: {str(e)}") from e
        return await self._submit(signed, kind)

    async def send_instructions(
        self, instructions: Sequence[Instruction], kind: SettlementKind
    ) -> SettlementRecord:
        latest = (await self._read(self.client.get_latest_blockhash, Confirmed)).value
        try:
            message = MessageV0.try_compile(
                self.payer,
                list(instructions),
                [],
                latest.blockhash,
            )
            transaction = VersionedTransaction(message, [self.keypair])
        except Exception as e:
            raise TransactionRejectedError(f"Cannot sign {kind.value} transaction: {str(e)}") from e
        return await self._submit(transaction, kind, latest.last_valid_block_height)

    async def confirm(self, settlement: SettlementRecord) -> SettlementRecord:
        signature = Signature.from_string(settlement.signature)
        try:
            resp = await self.client.confirm_transaction(
                signature,
                commitment=Confirmed,
                last_valid_block_height=settlement.last_valid_block_height,
            )
        except (UnconfirmedTxError, TransactionExpiredBlockheightExceededError) as e:
            raise GatewayConnectionError(
                f"Transaction {settlement.signature} was not confirmed: {str(e)}"
            ) from e
        except (RPCException, SolanaRpcException) as e:
            raise GatewayConnectionError(
                f"Confirmation of {settlement.signature} failed: {str(e)}"
            ) from e

        status = resp.value[0] if resp.value else None
        if status is None:
            raise GatewayConnectionError(f"No status for transaction {settlement.signature}")
        if status.err is not None:
            self.settlement_logger.error(
                "Transaction failed",
                signature=settlement.signature,
                kind=settlement.kind.value,
                error=str(status.err),
            )
            raise TransactionFailedError(settlement.signature, str(status.err))

        self.settlement_logger.info(
            "Transaction confirmed", signature=settlement.signature, kind=settlement.kind.value
        )
        return settlement.confirmed()

    async def close(self) -> None:
        await self.client.close()
