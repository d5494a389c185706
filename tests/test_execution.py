"""
Unit tests for the SOL Flywheel execution module.

This module contains tests for the balance reader, the swap client's error
translation and the disposal executor's instruction building.
"""

import pytest
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address
from solders.pubkey import Pubkey

from sol_flywheel.core.constants import INCINERATOR_ADDRESS, NATIVE_MINT
from sol_flywheel.core.exceptions import (
    BurnFailed,
    DisposalNotConfirmed,
    QuoteUnavailable,
    SubmissionFailed,
    SwapBuildFailed,
    SwapNotConfirmed,
    TransferFailed,
)
from sol_flywheel.core.models import DisposalMode, SettlementKind, SettlementState
from sol_flywheel.execution import BalanceReader, DisposalExecutor, SwapClient
from sol_flywheel.gateways import (
    GatewayConnectionError,
    TransactionFailedError,
    TransactionRejectedError,
    VenueError,
)


class TestBalanceReader:

    async def test_reads_owner_and_token_account(self, ledger, account):
        ledger.token_balances[account.token_account] = 42
        reader = BalanceReader(ledger, account)

        assert await reader.native_balance() == 1_000_000_000
        assert await reader.token_balance() == 42

    async def test_missing_token_account_reads_zero(self, ledger, account):
        ledger.token_balances.clear()
        reader = BalanceReader(ledger, account)

        assert await reader.token_balance() == 0


class TestSwapClient:

    @pytest.fixture
    def client(self, venue, ledger, account):
        return SwapClient(venue, ledger, account, slippage_bps=100)

    async def test_successful_swap(self, client, venue, ledger, account):
        settlement = await client.swap(950_000_000)

        assert settlement.state == SettlementState.CONFIRMED
        assert settlement.kind == SettlementKind.SWAP
        assert venue.quotes == [(NATIVE_MINT, str(account.mint), 950_000_000)]
        assert ledger.token_balances[account.token_account] == 1000

    async def test_quote_failure(self, client, venue, ledger):
        venue.quote_error = VenueError("no route")

        with pytest.raises(QuoteUnavailable):
            await client.swap(1_000)
        assert ledger.sent == []

    async def test_build_failure(self, client, venue, ledger):
        venue.build_error = VenueError("HTTP 500")

        with pytest.raises(SwapBuildFailed):
            await client.swap(1_000)
        assert ledger.sent == []

    async def test_submission_failure(self, client, ledger):
        ledger.send_errors[SettlementKind.SWAP] = TransactionRejectedError("slippage exceeded")

        with pytest.raises(SubmissionFailed, match="slippage exceeded"):
            await client.swap(1_000)

    async def test_failed_on_chain(self, client, ledger):
        ledger.confirm_errors[SettlementKind.SWAP] = TransactionFailedError(
            "swap-sig-1", "InstructionError"
        )

        with pytest.raises(SwapNotConfirmed, match="failed on-chain"):
            await client.swap(1_000)

    async def test_confirmation_timeout(self, client, ledger):
        ledger.confirm_errors[SettlementKind.SWAP] = GatewayConnectionError("block height exceeded")

        with pytest.raises(SwapNotConfirmed, match="not confirmed"):
            await client.swap(1_000)


class TestDisposalExecutor:

    async def test_zero_balance_submits_nothing(self, ledger, account):
        executor = DisposalExecutor(ledger)

        result = await executor.dispose(DisposalMode.BURN, account)

        assert result.disposed_raw == 0
        assert result.action_tx is None
        assert ledger.sent == []

    async def test_burn_full_balance(self, ledger, account):
        ledger.token_balances[account.token_account] = 1500
        executor = DisposalExecutor(ledger)

        result = await executor.dispose(DisposalMode.BURN, account)

        assert result.disposed_raw == 1500
        assert result.action_tx == "burn-sig-1"
        kind, instructions = ledger.sent[0]
        assert kind == SettlementKind.BURN
        assert len(instructions) == 1
        burn_ix = instructions[0]
        assert burn_ix.program_id == TOKEN_PROGRAM_ID
        assert [meta.pubkey for meta in burn_ix.accounts] == [
            account.token_account,
            account.mint,
            account.owner,
        ]

    async def test_incinerate_creates_sink_account(self, ledger, account):
        ledger.token_balances[account.token_account] = 1000
        executor = DisposalExecutor(ledger)

        result = await executor.dispose(DisposalMode.INCINERATE, account)

        assert result.disposed_raw == 1000
        kind, instructions = ledger.sent[0]
        assert kind == SettlementKind.TRANSFER
        assert [ix.program_id for ix in instructions] == [
            ASSOCIATED_TOKEN_PROGRAM_ID,
            TOKEN_PROGRAM_ID,
        ]
        sink = get_associated_token_address(Pubkey.from_string(INCINERATOR_ADDRESS), account.mint)
        transfer_keys = [meta.pubkey for meta in instructions[1].accounts]
        assert transfer_keys[0] == account.token_account
        assert sink in transfer_keys

    async def test_incinerate_reuses_existing_sink_account(self, ledger, account):
        ledger.token_balances[account.token_account] = 1000
        sink = get_associated_token_address(Pubkey.from_string(INCINERATOR_ADDRESS), account.mint)
        ledger.existing_accounts.add(sink)
        executor = DisposalExecutor(ledger)

        await executor.dispose(DisposalMode.INCINERATE, account)

        _, instructions = ledger.sent[0]
        assert [ix.program_id for ix in instructions] == [TOKEN_PROGRAM_ID]

    async def test_burn_rejected(self, ledger, account):
        ledger.token_balances[account.token_account] = 1000
        ledger.send_errors[SettlementKind.BURN] = TransactionRejectedError("insufficient funds")

        with pytest.raises(BurnFailed):
            await DisposalExecutor(ledger).dispose(DisposalMode.BURN, account)

    async def test_transfer_rejected(self, ledger, account):
        ledger.token_balances[account.token_account] = 1000
        ledger.send_errors[SettlementKind.TRANSFER] = TransactionRejectedError("rejected")

        with pytest.raises(TransferFailed):
            await DisposalExecutor(ledger).dispose(DisposalMode.INCINERATE, account)

    async def test_disposal_not_confirmed(self, ledger, account):
        ledger.token_balances[account.token_account] = 1000
        ledger.confirm_errors[SettlementKind.BURN] = TransactionFailedError("burn-sig-1", "err")

        with pytest.raises(DisposalNotConfirmed):
            await DisposalExecutor(ledger).dispose(DisposalMode.BURN, account)
        assert ledger.token_balances[account.token_account] == 1000

    @pytest.mark.parametrize(
        "mode,error_class",
        [(DisposalMode.BURN, BurnFailed), (DisposalMode.INCINERATE, TransferFailed)],
    )
    async def test_balance_read_failure(self, ledger, account, mode, error_class):
        ledger.read_error = GatewayConnectionError("rpc down")

        with pytest.raises(error_class, match="Cannot read token balance"):
            await DisposalExecutor(ledger).dispose(mode, account)
        assert ledger.sent == []
