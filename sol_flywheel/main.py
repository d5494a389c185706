#!/usr/bin/env python3
"""
SOL Flywheel - Main Application Entry Point

This module serves as the entry point for the SOL Flywheel. It initializes all
components, sets up the event loop, and runs the interval scheduler alongside
the control API until the process is asked to stop.
"""
import argparse
import asyncio
import os
import sys

import uvicorn
import uvloop
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from sol_flywheel import __version__, monitoring
from sol_flywheel.accounting import StateManager
from sol_flywheel.api import create_app
from sol_flywheel.config import LOG_LEVELS, AppConfig, Environment, get_config
from sol_flywheel.core.exceptions import (
    ConfigError,
    DisposalError,
    FlywheelError,
    SwapError,
)
from sol_flywheel.core.logger import logger, setup_logger
from sol_flywheel.core.models import TreasuryAccount
from sol_flywheel.core.utils import load_keypair, sol_to_lamports
from sol_flywheel.execution import BalanceReader, DisposalExecutor, SwapClient
from sol_flywheel.flywheel import FlywheelCycle, FlywheelScheduler
from sol_flywheel.gateways import GatewayError, LedgerGateway, SwapVenueGateway
from sol_flywheel.gateways.jupiter_gateway import JupiterGateway
from sol_flywheel.gateways.solana_gateway import SolanaGateway

# Global variables for clean shutdown
ledger: LedgerGateway | None = None
venue: SwapVenueGateway | None = None
scheduler: FlywheelScheduler | None = None


def initialize_keypair(config: AppConfig) -> Keypair:
    """
    Load the treasury keypair.

    Raises:
        ConfigError: If no usable key material is configured
    """
    secret = config.solana.wallet_secret_key
    try:
        keypair = load_keypair(
            config.solana.wallet_keypair_path,
            secret.get_secret_value() if secret else None,
        )
    except (ValueError, OSError) as e:
        raise ConfigError(f"Cannot load treasury keypair: {str(e)}") from e

    if str(keypair.pubkey()) != config.admin.allowed_pubkey:
        logger.warning(
            "Treasury keypair pubkey does not match the allowed admin pubkey",
            treasury=str(keypair.pubkey()),
            admin=config.admin.allowed_pubkey,
        )
    return keypair


def initialize_gateways(config: AppConfig, keypair: Keypair) -> tuple[LedgerGateway, SwapVenueGateway]:
    """
    Initialize the ledger and swap venue gateways.

    Returns:
        Ledger gateway and swap venue gateway
    """
    logger.info("Initializing gateways", rpc_url=config.solana.rpc_url, venue=config.swap.base_url)
    ledger_gateway = SolanaGateway(config.solana.rpc_url, keypair)
    venue_gateway = JupiterGateway(
        config.swap.base_url,
        prioritization_fee_lamports=config.swap.prioritization_fee_lamports,
        timeout=config.swap.timeout_seconds,
    )
    return ledger_gateway, venue_gateway


def initialize_cycle(
    config: AppConfig,
    ledger_gateway: LedgerGateway,
    venue_gateway: SwapVenueGateway,
    state_manager: StateManager,
) -> FlywheelCycle:
    """
    Wire the flywheel cycle from configuration.

    Returns:
        FlywheelCycle instance
    """
    account = TreasuryAccount.derive(
        ledger_gateway.payer, Pubkey.from_string(config.flywheel.target_mint)
    )
    logger.info(
        "Initializing flywheel",
        treasury=str(account.owner),
        mint=str(account.mint),
        token_account=str(account.token_account),
        mode=config.flywheel.disposal_mode.value,
    )

    return FlywheelCycle(
        state_manager=state_manager,
        balance_reader=BalanceReader(ledger_gateway, account),
        swap_client=SwapClient(venue_gateway, ledger_gateway, account, config.swap.slippage_bps),
        disposal_executor=DisposalExecutor(ledger_gateway),
        account=account,
        fee_reserve_lamports=sol_to_lamports(config.flywheel.fee_reserve_sol),
        min_spend_lamports=sol_to_lamports(config.flywheel.min_spend_sol),
        max_spend_lamports=sol_to_lamports(config.flywheel.max_spend_sol),
        disposal_mode=config.flywheel.disposal_mode,
        settlement_delay_seconds=config.flywheel.settlement_delay_seconds,
    )


def configure_logging(config: AppConfig, cli_level: str | None = None) -> None:
    """
    Re-apply logging once the configured level is known.

    Args:
        config: Application configuration
        cli_level: Level given on the command line, which wins over the configuration
    """
    os.environ["SOL_FLYWHEEL_LOG_LEVEL"] = cli_level or config.log_level
    setup_logger()


async def run_single_tick(cycle: FlywheelCycle) -> int:
    """
    Run one tick outside the scheduler.

    Returns:
        Exit code, 1 when the tick fails
    """
    try:
        record = await cycle.run_once()
    except (SwapError, DisposalError, GatewayError):
        logger.error("Single tick failed", exc_info=True)
        return 1

    logger.info(
        "Single tick finished",
        recorded=record is not None,
        swap_tx=record.swap_tx if record else None,
    )
    return 0


async def shutdown() -> None:
    """
    Perform a clean shutdown of all components.
    """
    logger.info("Shutting down SOL Flywheel")

    if scheduler:
        await scheduler.stop()

    for gateway in (venue, ledger):
        if gateway:
            await gateway.close()

    logger.info("Shutdown complete")


async def main_async(args: argparse.Namespace, config: AppConfig) -> int:
    """
    Asynchronous main function.

    Args:
        args: Command-line arguments
        config: Application configuration

    Returns:
        Exit code
    """
    global ledger, venue, scheduler

    try:
        keypair = initialize_keypair(config)
        ledger, venue = initialize_gateways(config, keypair)

        state_manager = StateManager(config.storage.state_file)
        state = state_manager.load()
        monitoring.set_running(state.running)

        cycle = initialize_cycle(config, ledger, venue, state_manager)

        if args.run_once:
            return await run_single_tick(cycle)

        if not args.no_metrics:
            monitoring.start_metrics_server(config.metrics_port)

        scheduler = FlywheelScheduler(cycle, config.flywheel.tick_interval_seconds)
        await scheduler.start()

        app = create_app(
            state_manager,
            Pubkey.from_string(config.admin.allowed_pubkey),
            config.api.frontend_origins,
        )
        server = uvicorn.Server(
            uvicorn.Config(app, host=config.api.host, port=config.api.port, log_config=None)
        )

        logger.info(
            f"SOL Flywheel v{__version__} started in {config.environment.value} mode",
            port=config.api.port,
            running=state.running,
        )

        # uvicorn owns SIGINT/SIGTERM and returns once asked to exit
        await server.serve()
        return 0

    except FlywheelError:
        logger.critical("SOL Flywheel failed to start", exc_info=True)
        return 1
    except Exception:
        logger.critical("Unhandled exception in main loop", exc_info=True)
        return 1
    finally:
        await shutdown()


def parse_args() -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(description="SOL Flywheel")

    parser.add_argument(
        "--version",
        action="version",
        version=f"SOL Flywheel v{__version__}",
    )

    parser.add_argument("--config-dir", type=str, help="Path to configuration directory")

    parser.add_argument(
        "--environment",
        type=str,
        choices=[e.value for e in Environment],
        help="Environment to run in (development, devnet, production)",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=LOG_LEVELS,
        help="Log level",
    )

    parser.add_argument(
        "--run-once",
        action="store_true",
        help="Run a single flywheel tick and exit, regardless of the running flag",
    )

    parser.add_argument("--no-metrics", action="store_true", help="Disable metrics server")

    return parser.parse_args()


def main() -> int:
    """
    Main entry point.

    Returns:
        Exit code
    """
    args = parse_args()

    if args.config_dir:
        os.environ["SOL_FLYWHEEL_CONFIG_DIR"] = args.config_dir

    if args.environment:
        os.environ["SOL_FLYWHEEL_ENVIRONMENT"] = args.environment

    if args.log_level:
        os.environ["SOL_FLYWHEEL_LOG_LEVEL"] = args.log_level

    setup_logger()

    try:
        config = get_config()
    except ConfigError:
        logger.critical("Invalid configuration", exc_info=True)
        return 1

    configure_logging(config, args.log_level)

    logger.info(
        f"Starting SOL Flywheel v{__version__}",
        environment=config.environment.value,
        mode=config.flywheel.disposal_mode.value,
    )

    uvloop.install()

    return asyncio.run(main_async(args, config))


if __name__ == "__main__":
    sys.exit(main())
