"""
Flywheel module for the SOL Flywheel.

This module provides the FlywheelCycle, which composes the balance reader, swap
client, disposal executor and state manager into one tick, and the
FlywheelScheduler, which fires the cycle at a fixed interval.

At most one cycle is in flight at any time: ``trigger`` skips an invocation
while a previous tick is still awaiting settlement, because overlapping ticks
would race on the treasury's balances and on the state file.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from sol_flywheel import monitoring
from sol_flywheel.accounting import StateManager
from sol_flywheel.core.exceptions import DisposalError
from sol_flywheel.core.logger import log_execution_time, logger
from sol_flywheel.core.models import (
    DisposalMode,
    DisposalResult,
    RunRecord,
    RunStatus,
    TreasuryAccount,
)
from sol_flywheel.core.utils import (
    compute_spendable,
    format_sol_amount,
    lamports_to_sol,
    utc_now,
)
from sol_flywheel.execution import BalanceReader, DisposalExecutor, SwapClient
from sol_flywheel.gateways import GatewayError


class FlywheelCycle:
    """One buy-and-burn tick: size, swap, wait, dispose, record."""

    def __init__(
        self,
        state_manager: StateManager,
        balance_reader: BalanceReader,
        swap_client: SwapClient,
        disposal_executor: DisposalExecutor,
        account: TreasuryAccount,
        fee_reserve_lamports: int,
        min_spend_lamports: int,
        max_spend_lamports: int,
        disposal_mode: DisposalMode = DisposalMode.BURN,
        settlement_delay_seconds: float = 2.5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize the flywheel cycle.

        Args:
            state_manager: Owner of the persisted flywheel state
            balance_reader: Reads SOL and token balances
            swap_client: Swaps SOL for the target token
            disposal_executor: Burns or incinerates the token balance
            account: Treasury account
            fee_reserve_lamports: Lamports never spent, kept for fees
            min_spend_lamports: Ticks that could spend less than this are no-ops
            max_spend_lamports: Upper bound per tick
            disposal_mode: Burn in place or transfer to the incinerator
            settlement_delay_seconds: Wait between swap confirmation and balance read
            sleep: Coroutine used for the settlement delay
        """
        self.state_manager = state_manager
        self.balance_reader = balance_reader
        self.swap_client = swap_client
        self.disposal_executor = disposal_executor
        self.account = account
        self.fee_reserve_lamports = fee_reserve_lamports
        self.min_spend_lamports = min_spend_lamports
        self.max_spend_lamports = max_spend_lamports
        self.disposal_mode = disposal_mode
        self.settlement_delay_seconds = settlement_delay_seconds
        self._sleep = sleep
        self._lock = asyncio.Lock()

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    async def trigger(self) -> RunRecord | None:
        """
        Run one tick if the flywheel is started and no tick is in flight.

        Every error is logged and swallowed; the next trigger is the retry.

        Returns:
            The recorded run, or None if nothing was recorded
        """
        if not self.state_manager.state.running:
            logger.debug("Flywheel stopped, tick skipped")
            return None

        if self._lock.locked():
            logger.warning("Previous flywheel tick still in flight, tick skipped")
            monitoring.record_tick("skipped")
            return None

        async with self._lock:
            try:
                return await self.run_once()
            except DisposalError:
                logger.error("Flywheel disposal failed after swap", exc_info=True)
                monitoring.record_tick("disposal_failed")
            except Exception:
                logger.error("Flywheel tick failed", exc_info=True)
                monitoring.record_tick("failed")
        return None

    @log_execution_time()
    async def run_once(self) -> RunRecord | None:
        """
        Execute one tick.

        Returns:
            The recorded run, or None when the spendable amount is below minimum

        Raises:
            SwapError: If the swap fails; nothing is recorded
            DisposalError: If disposal fails after the swap; a partial run is recorded first
            GatewayError: If the balance cannot be read before the swap
        """
        started_at = utc_now()
        logger.info("Flywheel tick", time=started_at.isoformat())

        balance = await self.balance_reader.native_balance()
        spendable = compute_spendable(
            balance, self.fee_reserve_lamports, self.max_spend_lamports
        )
        if spendable < self.min_spend_lamports:
            logger.info(
                "Skip: balance under reserve + min",
                balance_lamports=balance,
                spendable_lamports=spendable,
                min_spend_lamports=self.min_spend_lamports,
            )
            monitoring.record_tick("noop")
            return None

        balance_before = await self.balance_reader.token_balance()

        swap = await self.swap_client.swap(spendable)
        logger.info("Swap confirmed", signature=swap.signature, lamports=spendable)

        # Confirmation does not guarantee the token balance is visible yet
        await self._sleep(self.settlement_delay_seconds)

        bought = 0
        try:
            balance_after = await self.balance_reader.token_balance()
            bought = max(balance_after - balance_before, 0)
            disposal = await self.disposal_executor.dispose(self.disposal_mode, self.account)
        except (DisposalError, GatewayError) as e:
            self._record(
                started_at,
                spendable,
                bought,
                swap.signature,
                DisposalResult(disposed_raw=0),
                status=RunStatus.DISPOSAL_FAILED,
                error=str(e),
            )
            if isinstance(e, DisposalError):
                raise
            raise DisposalError(f"Token balance unavailable after swap: {str(e)}") from e

        record = self._record(started_at, spendable, bought, swap.signature, disposal)
        monitoring.record_tick("completed")
        logger.info(
            "Flywheel tick completed",
            sol_used=format_sol_amount(record.sol_used),
            tokens_bought_raw=str(record.tokens_bought_raw),
            tokens_disposed_raw=str(record.tokens_burned_raw),
            swap_tx=record.swap_tx,
            action_tx=record.action_tx,
            mode=record.mode.value,
        )
        return record

    def _record(
        self,
        started_at: datetime,
        lamports: int,
        bought: int,
        swap_tx: str,
        disposal: DisposalResult,
        status: RunStatus = RunStatus.COMPLETED,
        error: str | None = None,
    ) -> RunRecord:
        record = RunRecord(
            time=started_at,
            sol_used=lamports_to_sol(lamports),
            tokens_bought_raw=bought,
            tokens_burned_raw=disposal.disposed_raw,
            swap_tx=swap_tx,
            action_tx=disposal.action_tx,
            mode=self.disposal_mode,
            status=status,
            error=error,
        )
        self.state_manager.mutate(lambda state: state.record_run(record))
        monitoring.record_run(lamports, bought, disposal.disposed_raw)
        return record


class FlywheelScheduler:
    """
    Fires the flywheel cycle every ``interval_seconds``.

    Each firing runs as its own task so a slow tick never delays the timer;
    overlapping firings are collapsed by the cycle's run lock.
    """

    def __init__(self, cycle: FlywheelCycle, interval_seconds: float):
        self.cycle = cycle
        self.interval_seconds = interval_seconds
        self.running = False
        self.task: asyncio.Task | None = None
        self.tick_tasks: set[asyncio.Task] = set()

    async def start(self) -> None:
        """Start the timer loop."""
        if self.running:
            logger.warning("FlywheelScheduler is already running")
            return

        self.running = True
        self.task = asyncio.create_task(self._timer_loop())
        logger.info("FlywheelScheduler started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        """Stop the timer and wait for an in-flight tick to settle."""
        if not self.running:
            return

        self.running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
            self.task = None

        if self.tick_tasks:
            logger.info("Waiting for in-flight flywheel tick to finish")
            await asyncio.gather(*self.tick_tasks, return_exceptions=True)

        logger.info("FlywheelScheduler stopped")

    def fire(self) -> asyncio.Task:
        """Start one trigger in the background."""
        task = asyncio.create_task(self.cycle.trigger())
        self.tick_tasks.add(task)
        task.add_done_callback(self.tick_tasks.discard)
        return task

    async def _timer_loop(self) -> None:
        while self.running:
            await asyncio.sleep(self.interval_seconds)
            self.fire()
