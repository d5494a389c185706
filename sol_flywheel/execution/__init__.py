"""
Execution module for the SOL Flywheel.

This module provides the three building blocks of a flywheel tick:
1. BalanceReader - SOL balance of the treasury and raw balance of its token account
2. SwapClient - quote, build, sign, submit and confirm a SOL -> token swap
3. DisposalExecutor - burn the token account's full balance, or move it to the incinerator

Each component translates gateway failures into the flywheel error taxonomy so
the cycle can tell a swap failure (nothing to record) from a disposal failure
(swap already settled).
"""

from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    BurnCheckedParams,
    TransferCheckedParams,
    burn_checked,
    create_associated_token_account,
    get_associated_token_address,
    transfer_checked,
)

from sol_flywheel.core.constants import INCINERATOR_ADDRESS, NATIVE_MINT
from sol_flywheel.core.exceptions import (
    BurnFailed,
    DisposalError,
    DisposalNotConfirmed,
    QuoteUnavailable,
    SubmissionFailed,
    SwapBuildFailed,
    SwapNotConfirmed,
    TransferFailed,
)
from sol_flywheel.core.logger import logger
from sol_flywheel.core.models import (
    DisposalMode,
    DisposalResult,
    SettlementKind,
    SettlementRecord,
    TreasuryAccount,
)
from sol_flywheel.gateways import (
    GatewayError,
    LedgerGateway,
    SwapVenueGateway,
    TransactionFailedError,
    VenueError,
)


class BalanceReader:
    """Reads treasury balances from the ledger."""

    def __init__(self, ledger: LedgerGateway, account: TreasuryAccount):
        self.ledger = ledger
        self.account = account

    async def native_balance(self) -> int:
        """SOL balance of the treasury owner in lamports."""
        return await self.ledger.get_native_balance(self.account.owner)

    async def token_balance(self) -> int:
        """Raw balance of the treasury's token account for the target mint."""
        return await self.ledger.get_token_balance(self.account.token_account)


class SwapClient:
    """
    Swaps SOL for the target token through the swap venue.

    There is no retry at any step: a failure aborts the tick and the next
    scheduled tick starts over with a fresh quote.
    """

    def __init__(
        self,
        venue: SwapVenueGateway,
        ledger: LedgerGateway,
        account: TreasuryAccount,
        slippage_bps: int,
    ):
        """
        Initialize the swap client.

        Args:
            venue: Swap venue gateway
            ledger: Ledger gateway that signs and submits the swap
            account: Treasury account receiving the tokens
            slippage_bps: Slippage tolerance in basis points
        """
        self.venue = venue
        self.ledger = ledger
        self.account = account
        self.slippage_bps = slippage_bps

    async def swap(self, lamports: int) -> SettlementRecord:
        """
        Swap ``lamports`` of SOL for the target token.

        Args:
            lamports: Amount of SOL to spend, in lamports

        Returns:
            The confirmed swap settlement

        Raises:
            QuoteUnavailable: If the venue returns no viable route
            SwapBuildFailed: If the venue cannot build a transaction
            SubmissionFailed: If the ledger rejects the transaction
            SwapNotConfirmed: If the transaction fails or cannot be confirmed
        """
        output_mint = str(self.account.mint)

        try:
            quote = await self.venue.get_quote(
                NATIVE_MINT, output_mint, lamports, self.slippage_bps
            )
        except VenueError as e:
            raise QuoteUnavailable(f"No quote for {lamports} lamports: {str(e)}") from e

        try:
            transaction = await self.venue.build_swap_transaction(quote, self.account.owner)
        except VenueError as e:
            raise SwapBuildFailed(f"Swap transaction unavailable: {str(e)}") from e

        try:
            settlement = await self.ledger.send_serialized_transaction(
                transaction, SettlementKind.SWAP
            )
        except GatewayError as e:
            raise SubmissionFailed(f"Swap submission failed: {str(e)}") from e

        logger.info(
            "Swap submitted",
            signature=settlement.signature,
            lamports=lamports,
            expected_out=quote.out_amount,
            min_out=quote.other_amount_threshold,
        )

        try:
            return await self.ledger.confirm(settlement)
        except TransactionFailedError as e:
            raise SwapNotConfirmed(f"Swap {e.signature} failed on-chain: {e.error}") from e
        except GatewayError as e:
            raise SwapNotConfirmed(f"Swap {settlement.signature} not confirmed: {str(e)}") from e


class DisposalExecutor:
    """
    Takes the token account's entire balance out of circulation.

    The full balance is disposed of, not just what the current tick bought, so
    leftovers from missed ticks or earlier failures are swept as well.
    """

    def __init__(self, ledger: LedgerGateway, sink_owner: str = INCINERATOR_ADDRESS):
        self.ledger = ledger
        self.sink_owner = Pubkey.from_string(sink_owner)

    async def dispose(self, mode: DisposalMode, account: TreasuryAccount) -> DisposalResult:
        """
        Dispose of the full balance of ``account.token_account``.

        Args:
            mode: Burn in place or transfer to the incinerator
            account: Treasury account holding the tokens

        Returns:
            Disposed raw amount and the confirmed settlement, or (0, None) when empty

        Raises:
            BurnFailed: If the burn transaction is rejected
            TransferFailed: If the incinerator transfer is rejected
            DisposalNotConfirmed: If the disposal fails or cannot be confirmed
        """
        error_class = TransferFailed if mode == DisposalMode.INCINERATE else BurnFailed
        try:
            amount = await self.ledger.get_token_balance(account.token_account)
        except GatewayError as e:
            raise error_class(f"Cannot read token balance: {str(e)}") from e

        if amount == 0:
            logger.info("Nothing to dispose", token_account=str(account.token_account))
            return DisposalResult(disposed_raw=0)

        if mode == DisposalMode.INCINERATE:
            settlement = await self._transfer_to_sink(account, amount)
        else:
            settlement = await self._burn(account, amount)

        try:
            confirmed = await self.ledger.confirm(settlement)
        except TransactionFailedError as e:
            raise DisposalNotConfirmed(f"Disposal {e.signature} failed on-chain: {e.error}") from e
        except GatewayError as e:
            raise DisposalNotConfirmed(
                f"Disposal {settlement.signature} not confirmed: {str(e)}"
            ) from e

        logger.info(
            "Tokens disposed",
            mode=mode.value,
            amount_raw=str(amount),
            signature=confirmed.signature,
        )
        return DisposalResult(disposed_raw=amount, settlement=confirmed)

    async def _decimals(self, account: TreasuryAccount, error_class: type[DisposalError]) -> int:
        try:
            return await self.ledger.get_mint_decimals(account.mint)
        except GatewayError as e:
            raise error_class(f"Cannot read mint decimals: {str(e)}") from e

    async def _burn(self, account: TreasuryAccount, amount: int) -> SettlementRecord:
        decimals = await self._decimals(account, BurnFailed)
        instruction = burn_checked(
            BurnCheckedParams(
                program_id=TOKEN_PROGRAM_ID,
                account=account.token_account,
                mint=account.mint,
                owner=account.owner,
                amount=amount,
                decimals=decimals,
            )
        )

        try:
            return await self.ledger.send_instructions([instruction], SettlementKind.BURN)
        except GatewayError as e:
            raise BurnFailed(f"Burn of {amount} raw tokens rejected: {str(e)}") from e

    async def _transfer_to_sink(self, account: TreasuryAccount, amount: int) -> SettlementRecord:
        decimals = await self._decimals(account, TransferFailed)
        sink_token_account = get_associated_token_address(self.sink_owner, account.mint)

        try:
            sink_exists = await self.ledger.account_exists(sink_token_account)
        except GatewayError as e:
            raise TransferFailed(f"Cannot look up sink token account: {str(e)}") from e

        instructions = []
        if not sink_exists:
            logger.info("Creating sink token account", address=str(sink_token_account))
            instructions.append(
                create_associated_token_account(
                    payer=self.ledger.payer, owner=self.sink_owner, mint=account.mint
                )
            )
        instructions.append(
            transfer_checked(
                TransferCheckedParams(
                    program_id=TOKEN_PROGRAM_ID,
                    source=account.token_account,
                    mint=account.mint,
                    dest=sink_token_account,
                    owner=account.owner,
                    amount=amount,
                    decimals=decimals,
                )
            )
        )

        try:
            return await self.ledger.send_instructions(instructions, SettlementKind.TRANSFER)
        except GatewayError as e:
            raise TransferFailed(f"Transfer of {amount} raw tokens rejected: {str(e)}") from e
