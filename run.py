#!/usr/bin/env python3
"""
Flash-loan arbitrage bot -- single entry point.

Pipeline:
  1. Scan the price feed for cross-venue price deltas
  2. Size a flash loan for the best one
  3. Submit it to the owner's ArbitrageEngine (atomic: profit or full revert)
  4. Record the outcome
  5. Repeat

Usage:
  python run.py --scan-only     # one scan, print opportunities, exit
  python run.py --run           # deploy an engine and run the loop in the foreground
  python run.py                 # dashboard API; start/stop via POST /bot/start, /bot/stop
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading

from client.dexscreener import FeedUnavailable
from config import Config, load_config
from executor.runtime import BotRuntime
from monitor.logger import setup_logging
from report.server import start_server

logger = logging.getLogger("run")

_BANNER = """
==================================================
  Flash Arbitrage Bot
==================================================
"""


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Flash-loan arbitrage bot")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--scan-only", action="store_true", help="Scan once, print opportunities and exit")
    mode.add_argument("--run", action="store_true", help="Deploy an engine and run the loop in the foreground")
    parser.add_argument("--json-log", type=str, default=None, help="Path to JSON log file for machine-readable output")
    parser.add_argument("--host", type=str, default=None, help="Dashboard bind address (default: API_HOST)")
    parser.add_argument("--port", type=int, default=None, help="Dashboard port (default: API_PORT)")
    return parser.parse_args(argv)


def print_startup(cfg: Config, args: argparse.Namespace) -> None:
    mode = "scan-only" if args.scan_only else ("foreground loop" if args.run else "dashboard")
    logger.info("  Mode:        %s", mode)
    logger.info("  Network:     %s (feed chain %s)", cfg.network_name, cfg.chain_id)
    logger.info("  Tokens:      %d monitored", len(cfg.monitored_tokens))
    logger.info(
        "  Filters:     delta (%.1f%%, %.1f%%) liquidity > $%.0f",
        cfg.min_delta_pct, cfg.max_delta_pct, cfg.min_liquidity_usd,
    )
    logger.info("  Execute at:  > %.1f%% delta, loan <= $%.0f", cfg.execute_threshold_pct, cfg.max_loan_usd)
    logger.info("  Gas cap:     %.1f gwei", cfg.max_gas_price_gwei)


def _scan_once(runtime: BotRuntime) -> int:
    try:
        opportunities = runtime.opportunities()
    except FeedUnavailable as e:
        logger.error("Scan failed: %s", e)
        return 1
    if not opportunities:
        logger.info("No profitable opportunities found")
    print(json.dumps(opportunities, indent=2))
    return 0


def _wait_for_signal(stop_event: threading.Event) -> None:
    def handle_signal(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)
    while not stop_event.wait(1.0):
        pass


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    cfg = load_config()

    log_file_path = setup_logging(cfg.log_level, json_log_file=args.json_log, secrets=[cfg.private_key])
    logger.info(_BANNER.strip())
    logger.info("  Log file: %s", log_file_path)
    print_startup(cfg, args)

    runtime = BotRuntime(cfg)
    logger.info("  Wallet:      %s", runtime.wallet_address)

    if args.scan_only:
        return _scan_once(runtime)

    stop_event = threading.Event()
    if args.run:
        address = runtime.deploy()
        logger.info("Engine deployed at %s", address)
        runtime.start()
    else:
        start_server(runtime, host=args.host or cfg.api_host, port=args.port or cfg.api_port)

    _wait_for_signal(stop_event)

    runtime.stop()
    if runtime.controller is not None:
        runtime.controller.join(timeout=cfg.submit_timeout_sec)
        runtime.controller.close()
    summary = runtime.history.summary()
    logger.info(
        "Session: %d attempts, %d succeeded, %d failed",
        summary["attempts"], summary["successes"], summary["failures"],
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
