"""
SOL Flywheel - Autonomous Buy-and-Burn Agent

This package converts a treasury wallet's SOL into a target SPL token on a fixed
schedule through the Jupiter swap API, then burns the acquired tokens or sends
them to the incinerator address, keeping durable running totals of every tick.
"""

__version__ = "0.1.0"
__author__ = "SOL Flywheel Team"
__license__ = "MIT"


from sol_flywheel.core.logger import logger

# Setup package-level logger
logger.info(f"SOL Flywheel v{__version__} initialized")
