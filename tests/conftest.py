"""
Shared fixtures for the SOL Flywheel tests.

The ledger and swap venue are replaced by in-memory fakes implementing the
gateway interfaces; everything above the gateways runs unmodified.
"""

import asyncio
from collections.abc import Sequence
from decimal import Decimal

import pytest
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from sol_flywheel.accounting import StateManager
from sol_flywheel.core.models import (
    DisposalMode,
    SettlementKind,
    SettlementRecord,
    SwapQuote,
    TreasuryAccount,
)
from sol_flywheel.core.utils import sol_to_lamports
from sol_flywheel.execution import BalanceReader, DisposalExecutor, SwapClient
from sol_flywheel.flywheel import FlywheelCycle
from sol_flywheel.gateways import LedgerGateway, SwapVenueGateway


class FakeLedger(LedgerGateway):
    """
    In-memory ledger.

    A confirmed swap credits ``swap_output`` raw tokens to the treasury token
    account; a confirmed burn or transfer empties it.
    """

    def __init__(self, account: TreasuryAccount, native_balance: int = 0, token_balance: int = 0):
        self.account = account
        self.native_balance = native_balance
        self.token_balances: dict[Pubkey, int] = {account.token_account: token_balance}
        self.decimals = 6
        self.swap_output = 0
        self.existing_accounts: set[Pubkey] = set()
        self.send_errors: dict[SettlementKind, Exception] = {}
        self.confirm_errors: dict[SettlementKind, Exception] = {}
        self.read_error: Exception | None = None
        self.sent: list[tuple[SettlementKind, list[Instruction]]] = []
        self.closed = False

    @property
    def payer(self) -> Pubkey:
        return self.account.owner

    async def get_native_balance(self, owner: Pubkey) -> int:
        if self.read_error:
            raise self.read_error
        return self.native_balance

    async def get_token_balance(self, token_account: Pubkey) -> int:
        if self.read_error:
            raise self.read_error
        return self.token_balances.get(token_account, 0)

    async def get_mint_decimals(self, mint: Pubkey) -> int:
        return self.decimals

    async def account_exists(self, address: Pubkey) -> bool:
        return address in self.existing_accounts

    def _submit(self, kind: SettlementKind, instructions: list[Instruction]) -> SettlementRecord:
        if kind in self.send_errors:
            raise self.send_errors[kind]
        self.sent.append((kind, instructions))
        return SettlementRecord(
            signature=f"{kind.value}-sig-{len(self.sent)}",
            kind=kind,
            last_valid_block_height=1000,
        )

    async def send_serialized_transaction(
        self, transaction: bytes, kind: SettlementKind
    ) -> SettlementRecord:
        return self._submit(kind, [])

    async def send_instructions(
        self, instructions: Sequence[Instruction], kind: SettlementKind
    ) -> SettlementRecord:
        return self._submit(kind, list(instructions))

    async def confirm(self, settlement: SettlementRecord) -> SettlementRecord:
        if settlement.kind in self.confirm_errors:
            raise self.confirm_errors[settlement.kind]
        token_account = self.account.token_account
        if settlement.kind == SettlementKind.SWAP:
            self.token_balances[token_account] = (
                self.token_balances.get(token_account, 0) + self.swap_output
            )
        else:
            self.token_balances[token_account] = 0
        return settlement.confirmed()

    async def close(self) -> None:
        self.closed = True


class FakeVenue(SwapVenueGateway):
    """Swap venue returning a fixed quote."""

    def __init__(self, out_amount: int = 1000):
        self.out_amount = out_amount
        self.quote_error: Exception | None = None
        self.build_error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.quotes: list[tuple[str, str, int]] = []

    async def get_quote(
        self, input_mint: str, output_mint: str, amount: int, slippage_bps: int
    ) -> SwapQuote:
        if self.gate is not None:
            await self.gate.wait()
        if self.quote_error:
            raise self.quote_error
        self.quotes.append((input_mint, output_mint, amount))
        payload = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "inAmount": str(amount),
            "outAmount": str(self.out_amount),
            "otherAmountThreshold": str(self.out_amount * 99 // 100),
            "slippageBps": slippage_bps,
            "priceImpactPct": "0.001",
            "routePlan": [{"percent": 100}],
        }
        return SwapQuote.from_venue(payload)

    async def build_swap_transaction(self, quote: SwapQuote, user_pubkey: Pubkey) -> bytes:
        if self.build_error:
            raise self.build_error
        return b"unsigned-swap-transaction"


async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def treasury_keypair():
    return Keypair()


@pytest.fixture
def target_mint():
    return Pubkey.new_unique()


@pytest.fixture
def account(treasury_keypair, target_mint):
    return TreasuryAccount.derive(treasury_keypair.pubkey(), target_mint)


@pytest.fixture
def ledger(account):
    ledger = FakeLedger(account, native_balance=sol_to_lamports(Decimal("1.0")))
    ledger.swap_output = 1000
    return ledger


@pytest.fixture
def venue():
    return FakeVenue(out_amount=1000)


@pytest.fixture
def state_manager(tmp_path):
    return StateManager(tmp_path / "data" / "metrics.json")


@pytest.fixture
def make_cycle(state_manager, ledger, venue, account):
    def _make(mode: DisposalMode = DisposalMode.BURN, **overrides):
        params = dict(
            state_manager=state_manager,
            balance_reader=BalanceReader(ledger, account),
            swap_client=SwapClient(venue, ledger, account, slippage_bps=100),
            disposal_executor=DisposalExecutor(ledger),
            account=account,
            fee_reserve_lamports=sol_to_lamports(Decimal("0.05")),
            min_spend_lamports=sol_to_lamports(Decimal("0.05")),
            max_spend_lamports=sol_to_lamports(Decimal("2")),
            disposal_mode=mode,
            settlement_delay_seconds=2.5,
            sleep=no_sleep,
        )
        params.update(overrides)
        return FlywheelCycle(**params)

    return _make
