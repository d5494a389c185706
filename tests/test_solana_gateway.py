"""
Unit tests for the Solana gateway.

The JSON-RPC client is replaced by an ``AsyncMock``; transactions are built
and signed with real solders types.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from solana.exceptions import SolanaRpcException
from solana.rpc.core import RPCException, UnconfirmedTxError
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0, to_bytes_versioned
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction
from tenacity import wait_none

from sol_flywheel.core.models import SettlementKind, SettlementRecord, SettlementState
from sol_flywheel.gateways import (
    GatewayConnectionError,
    RpcResponseError,
    TransactionFailedError,
    TransactionRejectedError,
)
from sol_flywheel.gateways.solana_gateway import SolanaGateway


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch):
    monkeypatch.setattr(SolanaGateway._read_with_retry.retry, "wait", wait_none())


@pytest.fixture
def keypair():
    return Keypair()


@pytest.fixture
def client():
    return AsyncMock()


@pytest.fixture
def gateway(keypair, client):
    return SolanaGateway("http://localhost:8899", keypair, client=client)


def value(v):
    return SimpleNamespace(value=v)


class TestReads:

    async def test_native_balance(self, gateway, client):
        client.get_balance.return_value = value(1_500_000_000)

        assert await gateway.get_native_balance(gateway.payer) == 1_500_000_000

    async def test_token_balance(self, gateway, client):
        client.get_token_account_balance.return_value = value(SimpleNamespace(amount="12345"))

        assert await gateway.get_token_balance(Pubkey.new_unique()) == 12345

    async def test_missing_token_account_is_zero(self, gateway, client):
        client.get_token_account_balance.side_effect = RPCException("could not find account")

        assert await gateway.get_token_balance(Pubkey.new_unique()) == 0

    async def test_node_error_on_token_balance_is_raised(self, gateway, client):
        client.get_token_account_balance.side_effect = RPCException("Node is behind by 50 slots")

        with pytest.raises(RpcResponseError, match="Node is behind"):
            await gateway.get_token_balance(Pubkey.new_unique())

    async def test_node_errors_are_translated(self, gateway, client):
        client.get_account_info_json_parsed.side_effect = RPCException("Node is behind by 50 slots")
        client.get_account_info.side_effect = RPCException("Node is behind by 50 slots")
        client.get_latest_blockhash.side_effect = RPCException("Node is behind by 50 slots")

        with pytest.raises(RpcResponseError):
            await gateway.get_mint_decimals(Pubkey.new_unique())
        with pytest.raises(RpcResponseError):
            await gateway.account_exists(Pubkey.new_unique())
        with pytest.raises(RpcResponseError):
            await gateway.send_instructions([], SettlementKind.BURN)
        # JSON-RPC errors are answers, not transport failures
        assert client.get_account_info_json_parsed.await_count == 1

    async def test_transport_errors_are_retried(self, gateway, client):
        client.get_balance.side_effect = [
            SolanaRpcException("timeout"),
            value(7),
        ]

        assert await gateway.get_native_balance(gateway.payer) == 7
        assert client.get_balance.await_count == 2

    async def test_exhausted_retries(self, gateway, client):
        client.get_balance.side_effect = SolanaRpcException("timeout")

        with pytest.raises(GatewayConnectionError):
            await gateway.get_native_balance(gateway.payer)
        assert client.get_balance.await_count == 3

    async def test_mint_decimals_are_cached(self, gateway, client):
        parsed = SimpleNamespace(data=SimpleNamespace(parsed={"info": {"decimals": 6}}))
        client.get_account_info_json_parsed.return_value = value(parsed)
        mint = Pubkey.new_unique()

        assert await gateway.get_mint_decimals(mint) == 6
        assert await gateway.get_mint_decimals(mint) == 6
        assert client.get_account_info_json_parsed.await_count == 1

    async def test_account_exists(self, gateway, client):
        client.get_account_info.return_value = value(None)
        assert await gateway.account_exists(Pubkey.new_unique()) is False

        client.get_account_info.return_value = value(object())
        assert await gateway.account_exists(Pubkey.new_unique()) is True


class TestSubmission:

    async def test_serialized_transaction_is_signed_by_treasury(self, gateway, client, keypair):
        message = MessageV0.try_compile(keypair.pubkey(), [], [], Hash.default())
        unsigned = VersionedTransaction.populate(message, [Signature.default()])
        returned = Signature.new_unique()
        client.send_raw_transaction.return_value = value(returned)

        settlement = await gateway.send_serialized_transaction(bytes(unsigned), SettlementKind.SWAP)

        assert settlement.signature == str(returned)
        assert settlement.kind == SettlementKind.SWAP
        assert settlement.state == SettlementState.SUBMITTED
        sent = VersionedTransaction.from_bytes(client.send_raw_transaction.await_args.args[0])
        assert sent.signatures[0].verify(keypair.pubkey(), to_bytes_versioned(sent.message))

    async def test_garbage_transaction_is_rejected(self, gateway, client):
        with pytest.raises(TransactionRejectedError):
            await gateway.send_serialized_transaction(b"garbage", SettlementKind.SWAP)
        client.send_raw_transaction.assert_not_awaited()

    async def test_instructions_carry_block_height(self, gateway, client, keypair):
        client.get_latest_blockhash.return_value = value(
            SimpleNamespace(blockhash=Hash.new_unique(), last_valid_block_height=4242)
        )
        client.send_raw_transaction.return_value = value(Signature.new_unique())
        ix = transfer(
            TransferParams(from_pubkey=keypair.pubkey(), to_pubkey=Pubkey.new_unique(), lamports=1)
        )

        settlement = await gateway.send_instructions([ix], SettlementKind.BURN)

        assert settlement.last_valid_block_height == 4242
        assert settlement.kind == SettlementKind.BURN

    async def test_uncompilable_instructions_are_rejected(self, gateway, client, keypair):
        client.get_latest_blockhash.return_value = value(
            SimpleNamespace(blockhash="not-a-blockhash", last_valid_block_height=1)
        )
        ix = transfer(
            TransferParams(from_pubkey=keypair.pubkey(), to_pubkey=Pubkey.new_unique(), lamports=1)
        )

        with pytest.raises(TransactionRejectedError, match="Cannot sign burn transaction"):
            await gateway.send_instructions([ix], SettlementKind.BURN)
        client.send_raw_transaction.assert_not_awaited()

    async def test_preflight_rejection(self, gateway, client, keypair):
        client.get_latest_blockhash.return_value = value(
            SimpleNamespace(blockhash=Hash.new_unique(), last_valid_block_height=1)
        )
        client.send_raw_transaction.side_effect = RPCException("insufficient funds")
        ix = transfer(
            TransferParams(from_pubkey=keypair.pubkey(), to_pubkey=Pubkey.new_unique(), lamports=1)
        )

        with pytest.raises(TransactionRejectedError, match="insufficient funds"):
            await gateway.send_instructions([ix], SettlementKind.BURN)


class TestConfirm:

    @pytest.fixture
    def settlement(self):
        return SettlementRecord(
            signature=str(Signature.new_unique()),
            kind=SettlementKind.SWAP,
            last_valid_block_height=100,
        )

    async def test_confirmed(self, gateway, client, settlement):
        client.confirm_transaction.return_value = value([SimpleNamespace(err=None)])

        confirmed = await gateway.confirm(settlement)

        assert confirmed.state == SettlementState.CONFIRMED
        assert confirmed.signature == settlement.signature

    async def test_failed_on_chain(self, gateway, client, settlement):
        client.confirm_transaction.return_value = value([SimpleNamespace(err="InstructionError")])

        with pytest.raises(TransactionFailedError) as excinfo:
            await gateway.confirm(settlement)
        assert excinfo.value.signature == settlement.signature

    async def test_unconfirmed(self, gateway, client, settlement):
        client.confirm_transaction.side_effect = UnconfirmedTxError("timed out")

        with pytest.raises(GatewayConnectionError):
            await gateway.confirm(settlement)
