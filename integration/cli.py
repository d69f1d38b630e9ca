#!/usr/bin/env python3
"""integration/cli.py

Command-line entry point for the miner.

Usage:
    eidos-miner --account myaccount123 --private-key 5K... [--no-donation]
    eidos-miner --config miner.yaml --workers 4 --batch-size 16

Exit codes:
    - 0: stopped gracefully
    - 1: insufficient funds (after the cooldown)
    - 2: invalid configuration or credential
    - 3: startup queries failed
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

from config.loader import ConfigError, describe, load_config
from integration.miner_runner import InsufficientFundsError, MinerRunner
from ledger.client import LedgerError
from ledger.eos_http import EosHttpLedgerClient
from ledger.pool import EndpointPool
from ledger.signing import KeyLoadError, NoOpSigner, load_private_key, load_signer
from ops.kill_switch import StopSwitch

logger = logging.getLogger("eidos_miner")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="eidos-miner",
        description="Mine EIDOS by sending CPU-sized batches of tiny EOS transfers.",
    )
    ap.add_argument("--config", default="", help="Path to YAML config file")
    ap.add_argument("--account", default=None, help="Your EOS account, must be 12 letters")
    ap.add_argument("--private-key", dest="private_key", default=None, help="Your private key (or EIDOS_MINER_PRIVATE_KEY)")
    ap.add_argument(
        "--signer",
        dest="signer_factory",
        default=None,
        help="Transaction signer factory as 'package.module:callable'",
    )
    ap.add_argument(
        "--donation",
        dest="donation_enabled",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Donate 5%% of mined EIDOS to the author (default: enabled)",
    )
    ap.add_argument("--batch-size", dest="batch_size", type=int, default=None, help="Fixed batch size (0 = automatic)")
    ap.add_argument("--workers", type=int, default=None, help="Number of concurrent dispatch workers")
    ap.add_argument("--endpoint", dest="endpoints", action="append", default=None, help="API endpoint (repeatable)")
    ap.add_argument("--dispatch-period", dest="dispatch_period_sec", type=float, default=None)
    ap.add_argument("--adjust-period", dest="adjust_period_sec", type=float, default=None)
    ap.add_argument("--donation-period", dest="donation_period_sec", type=float, default=None)
    ap.add_argument("--stop-flag", dest="stop_flag_path", default=None, help="Stop when this file appears")
    ap.add_argument("--metrics", dest="metrics_path", default=None, help="Append session metrics to this CSV")
    ap.add_argument("--verbose", action="store_true", help="Debug logging")
    return ap


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    keys = (
        "account",
        "private_key",
        "signer_factory",
        "donation_enabled",
        "batch_size",
        "workers",
        "endpoints",
        "dispatch_period_sec",
        "adjust_period_sec",
        "donation_period_sec",
        "stop_flag_path",
        "metrics_path",
    )
    return {k: getattr(args, k) for k in keys}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

    try:
        config = load_config(args.config or None, overrides=_overrides(args))
        private_key = load_private_key(config.private_key)
        signer = load_signer(config.signer_factory, private_key)
    except (ConfigError, KeyLoadError) as e:
        logger.error(f"Error: {e}")
        return 2

    logger.debug(f"Configuration: {describe(config)}")
    if isinstance(signer, NoOpSigner):
        logger.warning("No transaction signer configured, every batch will fail to submit")

    pool = EndpointPool(config.endpoints)
    client = EosHttpLedgerClient(pool, signer=signer, timeout_sec=config.request_timeout_sec)
    stop_switch = StopSwitch(flag_path=config.stop_flag_path)
    stop_switch.install_signal_handlers()

    runner = MinerRunner(config, client, pool, stop_switch=stop_switch)
    try:
        runner.run()
    except InsufficientFundsError as e:
        logger.error(str(e))
        return 1
    except LedgerError as e:
        logger.error(f"Startup failed: {e}")
        return 3
    return 0


if __name__ == "__main__":
    sys.exit(main())
