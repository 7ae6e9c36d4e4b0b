"""Command-line entry point.

Usage:
    python -m nexus_portfolio snapshot --wallet ethereum:0xabc... --wallet bitcoin:bc1q...
    python -m nexus_portfolio status
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from redis.asyncio import Redis

from nexus_portfolio.aggregator import PortfolioAggregator
from nexus_portfolio.config import Settings, get_settings
from nexus_portfolio.portfolio.chains import Blockchain
from nexus_portfolio.portfolio.models import Wallet
from nexus_portfolio.status import SERVICE_NAMES, check_all_services

logger = logging.getLogger(__name__)


def parse_wallet(value: str) -> Wallet:
    """Parse a `<blockchain>:<address>` argument."""
    chain, sep, address = value.partition(":")
    if not sep or not address.strip():
        raise argparse.ArgumentTypeError(f"Expected <blockchain>:<address>, got {value!r}")
    try:
        blockchain = Blockchain.parse(chain)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from None
    return Wallet(address=address.strip(), blockchain=blockchain)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nexus_portfolio",
        description="Multi-chain crypto portfolio aggregation",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    snapshot = subparsers.add_parser("snapshot", help="Aggregate wallets and print the snapshot as JSON")
    snapshot.add_argument(
        "--wallet",
        dest="wallets",
        action="append",
        type=parse_wallet,
        required=True,
        help="Wallet as <blockchain>:<address> (repeatable)",
    )

    status = subparsers.add_parser("status", help="Check upstream provider health")
    status.add_argument(
        "--service",
        dest="services",
        action="append",
        choices=SERVICE_NAMES,
        help="Service to check (repeatable, default: all)",
    )
    return parser


async def run_snapshot(settings: Settings, wallets: list[Wallet]) -> dict[str, object]:
    redis = Redis.from_url(settings.redis.url) if settings.redis.url else None
    try:
        async with PortfolioAggregator.from_settings(settings, redis=redis) as aggregator:
            snapshot = await aggregator.snapshot(wallets)
    finally:
        if redis is not None:
            await redis.aclose()
    return snapshot.to_dict()


async def run_status(settings: Settings, services: list[str] | None) -> list[dict[str, str]]:
    statuses = await check_all_services(services or SERVICE_NAMES, settings=settings)
    return [s.to_dict() for s in statuses]


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level=settings.get_logging_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.debug("Settings: %s", settings.redacted_summary())

    if args.command == "snapshot":
        result: object = asyncio.run(run_snapshot(settings, args.wallets))
    else:
        result = asyncio.run(run_status(settings, args.services))

    json.dump(result, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
