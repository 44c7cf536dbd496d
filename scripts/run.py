#!/usr/bin/env python3
"""Monitoring entrypoint — wires the engine and alarm delivery and runs.

Usage::

    # Run with default config
    python scripts/run.py

    # Custom config file
    python scripts/run.py --config config/settings.yaml

    # Override log level
    python scripts/run.py --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import structlog

from sugarwatch.core.config import load_settings
from sugarwatch.core.logging import setup_logging
from sugarwatch.core.types import LifecycleEvent
from sugarwatch.engine.engine import MonitoringEngine
from sugarwatch.monitor.factory import create_alert_dispatcher

logger = structlog.get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    """Start monitoring and run until interrupted."""
    settings = load_settings(args.config)
    setup_logging(level=args.log_level)

    if not settings.nightscout.api_secret.get_secret_value():
        logger.error("api_secret_missing")
        print(
            "No Nightscout API secret configured. Set nightscout.api_secret in "
            "config/settings.yaml.",
            file=sys.stderr,
        )
        return 1

    logger.info(
        "monitor_starting",
        base_url=settings.nightscout.base_url,
        normal_interval_secs=settings.polling.normal_interval_secs,
        webhook=settings.alerts.webhook.enabled,
    )

    # ── Engine + alarm delivery ──────────────────────────────────
    engine = MonitoringEngine(settings)
    dispatcher = create_alert_dispatcher(settings.alerts)
    engine.on_alarm(dispatcher.on_alarm)
    engine.on_state_change(dispatcher.on_state_change)

    await engine.start()

    # ── Wait for shutdown signal ─────────────────────────────────
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows: signal handlers not supported on ProactorEventLoop
            pass

    try:
        await stop_event.wait()
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")

    # ── Graceful shutdown ────────────────────────────────────────
    logger.info("monitor_shutting_down")
    await engine.handle_lifecycle(LifecycleEvent.WILL_TERMINATE)
    await dispatcher.close()

    snap = engine.snapshot()
    logger.info(
        "monitor_stopped",
        last_value=snap.value,
        restarts=engine.scheduler.restart_count,
    )
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run the Nightscout glucose monitoring engine.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
