"""
Core data models for the SOL Flywheel.

This module defines the Pydantic models used throughout the application:
treasury identity, swap quotes, ledger settlements, run records and the
persisted flywheel state. Persisted models use camelCase aliases so the state
file keeps the same shape the dashboard reads.
"""

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator
from pydantic.alias_generators import to_camel
from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from sol_flywheel.core.constants import HISTORY_LIMIT


def _iso(value: datetime) -> str:
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


# ======== Enums ========


class DisposalMode(str, Enum):
    """How acquired tokens are taken out of circulation."""

    BURN = "burn"
    INCINERATE = "incinerate"


class RunStatus(str, Enum):
    """Outcome of a recorded tick."""

    COMPLETED = "completed"
    DISPOSAL_FAILED = "disposal_failed"


class SettlementKind(str, Enum):
    """What a submitted transaction does."""

    SWAP = "swap"
    BURN = "burn"
    TRANSFER = "transfer"


class SettlementState(str, Enum):
    """Lifecycle of a submitted transaction."""

    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


# ======== Ledger Models ========


class TreasuryAccount(BaseModel):
    """The treasury wallet and its associated token account for the target mint."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    owner: Pubkey
    mint: Pubkey
    token_account: Pubkey

    @classmethod
    def derive(cls, owner: Pubkey, mint: Pubkey) -> "TreasuryAccount":
        """Build the account with its token account derived from (owner, mint)."""
        return cls(
            owner=owner, mint=mint, token_account=get_associated_token_address(owner, mint)
        )

    @model_validator(mode="after")
    def validate_token_account(self) -> "TreasuryAccount":
        """Ensure the token account is the associated account of (owner, mint)."""
        expected = get_associated_token_address(self.owner, self.mint)
        if self.token_account != expected:
            raise ValueError(
                f"Token account {self.token_account} is not the associated account "
                f"of owner {self.owner} for mint {self.mint}"
            )
        return self


class SettlementRecord(BaseModel):
    """A signed transaction submitted to the ledger."""

    signature: str
    kind: SettlementKind
    state: SettlementState = SettlementState.SUBMITTED
    last_valid_block_height: int | None = None
    error: str | None = None
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def confirmed(self) -> "SettlementRecord":
        return self.model_copy(update={"state": SettlementState.CONFIRMED})

    def failed(self, error: str) -> "SettlementRecord":
        return self.model_copy(update={"state": SettlementState.FAILED, "error": error})


# ======== Swap Models ========


class SwapQuote(BaseModel):
    """
    A venue quote for swapping SOL into the target token.

    ``raw`` keeps the venue's response verbatim because the swap request must
    post it back unchanged. A quote is consumed by exactly one swap request.
    """

    input_mint: str
    output_mint: str
    in_amount: int = Field(ge=0, description="Input amount in lamports")
    out_amount: int = Field(ge=0, description="Expected output in raw token units")
    other_amount_threshold: int = Field(
        default=0, ge=0, description="Minimum output after slippage"
    )
    slippage_bps: int = Field(ge=0)
    price_impact_pct: Decimal | None = None
    route_plan: list[dict[str, Any]]
    raw: dict[str, Any]

    @classmethod
    def from_venue(cls, payload: dict[str, Any]) -> "SwapQuote":
        """Parse a Jupiter quote response."""
        return cls(
            input_mint=payload["inputMint"],
            output_mint=payload["outputMint"],
            in_amount=int(payload["inAmount"]),
            out_amount=int(payload["outAmount"]),
            other_amount_threshold=int(payload.get("otherAmountThreshold") or 0),
            slippage_bps=int(payload.get("slippageBps") or 0),
            price_impact_pct=payload.get("priceImpactPct"),
            route_plan=payload["routePlan"],
            raw=payload,
        )


class DisposalResult(BaseModel):
    """Outcome of a disposal; ``settlement`` is None when there was nothing to dispose."""

    disposed_raw: int = Field(ge=0)
    settlement: SettlementRecord | None = None

    @property
    def action_tx(self) -> str | None:
        return self.settlement.signature if self.settlement else None


# ======== Accounting Models ========


class CamelModel(BaseModel):
    """Base for models persisted with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RunRecord(CamelModel):
    """One completed tick, as appended to history."""

    model_config = ConfigDict(frozen=True)

    time: datetime
    sol_used: Decimal = Field(ge=0, description="SOL spent on the swap")
    tokens_bought_raw: int = Field(default=0, ge=0)
    tokens_burned_raw: int = Field(default=0, ge=0)
    swap_tx: str
    action_tx: str | None = None
    mode: DisposalMode
    status: RunStatus = RunStatus.COMPLETED
    error: str | None = None

    @field_serializer("time")
    def serialize_time(self, value: datetime) -> str:
        return _iso(value)

    @field_serializer("sol_used")
    def serialize_sol(self, value: Decimal) -> float:
        return float(value)

    @field_serializer("tokens_bought_raw", "tokens_burned_raw")
    def serialize_raw(self, value: int) -> str:
        return str(value)


class Totals(CamelModel):
    """Running aggregates over every run ever recorded."""

    sol_spent: Decimal = Field(default=Decimal("0"), ge=0)
    tokens_bought_raw: int = Field(default=0, ge=0)
    tokens_burned_raw: int = Field(default=0, ge=0)

    def add(self, record: RunRecord) -> "Totals":
        """Return new totals including ``record``."""
        return Totals(
            sol_spent=self.sol_spent + record.sol_used,
            tokens_bought_raw=self.tokens_bought_raw + record.tokens_bought_raw,
            tokens_burned_raw=self.tokens_burned_raw + record.tokens_burned_raw,
        )

    @field_serializer("sol_spent")
    def serialize_sol(self, value: Decimal) -> float:
        return float(value)

    @field_serializer("tokens_bought_raw", "tokens_burned_raw")
    def serialize_raw(self, value: int) -> str:
        return str(value)


class FlywheelState(CamelModel):
    """Everything the flywheel persists between ticks."""

    running: bool = False
    last_run_at: datetime | None = None
    totals: Totals = Field(default_factory=Totals)
    history: list[RunRecord] = Field(default_factory=list)

    def record_run(self, record: RunRecord, limit: int = HISTORY_LIMIT) -> None:
        """Add ``record`` to the totals and prepend it to history, evicting the oldest."""
        self.totals = self.totals.add(record)
        self.history.insert(0, record)
        del self.history[limit:]
        self.last_run_at = record.time

    def status(self) -> dict[str, Any]:
        """The public status view: running flag and last run time."""
        return {
            "running": self.running,
            "lastRunAt": _iso(self.last_run_at) if self.last_run_at else None,
        }

    @field_serializer("last_run_at")
    def serialize_last_run_at(self, value: datetime | None) -> str | None:
        return _iso(value) if value else None
