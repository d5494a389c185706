"""
Prometheus metrics for the SOL Flywheel.

Counters track tick outcomes and cumulative volumes; the running flag is
exported as a gauge. The exporter is started by ``main`` on ``metrics_port``.
"""

from prometheus_client import Counter, Gauge, start_http_server

from sol_flywheel.core.logger import logger

TICKS_TOTAL = Counter(
    "flywheel_ticks_total",
    "Flywheel tick outcomes",
    labelnames=["outcome"],
)
LAMPORTS_SPENT_TOTAL = Counter(
    "flywheel_lamports_spent_total",
    "Lamports swapped into the target token",
)
TOKENS_BOUGHT_TOTAL = Counter(
    "flywheel_tokens_bought_raw_total",
    "Raw target-token units acquired",
)
TOKENS_DISPOSED_TOTAL = Counter(
    "flywheel_tokens_disposed_raw_total",
    "Raw target-token units burned or incinerated",
)
RUNNING = Gauge(
    "flywheel_running",
    "1 when the flywheel is started, 0 when stopped",
)


def record_tick(outcome: str) -> None:
    TICKS_TOTAL.labels(outcome).inc()


def record_run(lamports: int, bought_raw: int, disposed_raw: int) -> None:
    LAMPORTS_SPENT_TOTAL.inc(lamports)
    TOKENS_BOUGHT_TOTAL.inc(bought_raw)
    TOKENS_DISPOSED_TOTAL.inc(disposed_raw)


def set_running(running: bool) -> None:
    RUNNING.set(1 if running else 0)


def start_metrics_server(port: int) -> None:
    """Expose the metrics on ``port``."""
    logger.info(f"Starting metrics server on port {port}")
    start_http_server(port)
