#!/usr/bin/env python3
"""server/cli.py

Entry point: loads configuration, sets up logging and serves HTTP.

Usage:
    QUICKNODE_RPC_URL=https://... python -m server.cli [--config proxy.yaml] [--poller] [-v]
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from typing import List, Optional

from aiohttp import web

from config.loader import ConfigError, load_config
from ingestion.rpc.client import sanitize_rpc_url
from .app import create_app

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Privacy RPC Proxy")
    parser.add_argument("--config", default=None, help="Optional YAML config file")
    parser.add_argument("--port", type=int, default=None, help="Override listen port")
    parser.add_argument("--poller", action="store_true", help="Enable the on-chain batch poller")
    parser.add_argument("--poll-interval-ms", type=int, default=None, help="Poller interval (ms)")
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s %(message)s',
        datefmt='%H:%M:%S',
    )

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"[proxy] Config error: {e}", file=sys.stderr)
        return 2

    if args.port is not None:
        config = dataclasses.replace(config, port=args.port)
    if args.poller or args.poll_interval_ms is not None:
        config = config.with_poller(args.poll_interval_ms or config.poll_interval_ms)

    logger.info(
        f"[proxy] Starting Privacy RPC Proxy (rpc={sanitize_rpc_url(config.rpc_url)}, "
        f"port={config.port}, poller={config.enable_poller})"
    )

    web.run_app(create_app(config), host=config.host, port=config.port, print=None)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
