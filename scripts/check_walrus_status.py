#!/usr/bin/env python3
"""
Operator script to check Walrus access points and, optionally, a full
store/retrieve round-trip.

The round-trip writes a small random blob for one epoch and needs a
publisher that will pay for it.

Usage:
    python scripts/check_walrus_status.py [--network testnet] [--round-trip]

Options:
    --network      testnet, devnet or mainnet (default: from settings)
    --aggregator   Override the aggregator URL
    --publisher    Override the publisher URL
    --no-relay     Write directly to the publisher
    --round-trip   Store and read back a random blob
    --size         Round-trip payload size in bytes (default 1024)
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from dataclasses import dataclass

from walrus_vault.application.dtos import ExpectedMetadata
from walrus_vault.commons.settings import get_settings
from walrus_vault.commons.telemetry import configure_logging
from walrus_vault.domain.exceptions import WalrusVaultError
from walrus_vault.infrastructure import InfrastructureFactory


@dataclass
class StatusArgs:
    """Parsed command line arguments."""

    network: str | None
    aggregator: str | None
    publisher: str | None
    no_relay: bool
    round_trip: bool
    size: int
    verbose: bool


def parse_args() -> StatusArgs:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Check Walrus endpoint health",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--network", choices=("testnet", "devnet", "mainnet"))
    parser.add_argument("--aggregator", help="Aggregator base URL")
    parser.add_argument("--publisher", help="Publisher base URL")
    parser.add_argument(
        "--no-relay", action="store_true", help="Disable the upload relay"
    )
    parser.add_argument(
        "--round-trip",
        action="store_true",
        help="Store and retrieve a random blob",
    )
    parser.add_argument(
        "--size", type=int, default=1024, help="Round-trip payload size in bytes"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()
    if args.size < 1:
        parser.error("--size must be positive")

    return StatusArgs(
        network=args.network,
        aggregator=args.aggregator,
        publisher=args.publisher,
        no_relay=args.no_relay,
        round_trip=args.round_trip,
        size=args.size,
        verbose=args.verbose,
    )


def build_factory(args: StatusArgs) -> InfrastructureFactory:
    """Settings from the environment with command line overrides applied."""
    settings = get_settings()
    walrus = settings.walrus.model_copy(
        update={
            k: v
            for k, v in {
                "network": args.network,
                "aggregator_url": args.aggregator,
                "publisher_url": args.publisher,
            }.items()
            if v
        }
    )
    relay = settings.relay.model_copy(update={"enabled": not args.no_relay})
    return InfrastructureFactory(
        settings.model_copy(update={"walrus": walrus, "relay": relay})
    )


async def run_checks(args: StatusArgs) -> list[str]:
    """Run the checks and return a list of errors."""
    factory = build_factory(args)
    client = factory.get_blob_client()
    errors: list[str] = []

    try:
        print("\n=== Endpoints ===")
        health = await client.health_check()
        for name, detail in (health.details or {}).items():
            print(f"  {name}: {detail}")
        print(f"  {health.message} ({health.latency_ms:.0f} ms)")
        if not health.healthy:
            errors.append(health.message or "health check failed")

        endpoint = await client.ensure_endpoint()
        print(f"  Selected aggregator: {endpoint}")

        if args.round_trip:
            print("\n=== Round-trip ===")
            payload = os.urandom(args.size)
            try:
                content_id = await client.store(
                    payload, {"identifier": "status-check"}
                )
                print(f"  Stored {len(payload)} bytes as {content_id}")
                blob = await client.retrieve_with_retry(
                    content_id, ExpectedMetadata(identifier="status-check")
                )
            except WalrusVaultError as e:
                errors.append(f"round-trip ({e.error_class}): {e}")
                print(f"  Failed: {e}")
            else:
                ok = blob.payload == payload
                print(
                    f"  Retrieved via {blob.strategy}: "
                    f"{'match' if ok else 'MISMATCH'} (verified={blob.verified})"
                )
                if not ok:
                    errors.append("round-trip payload mismatch")
    finally:
        await factory.close_all()

    return errors


def main() -> None:
    """Main entry point."""
    args = parse_args()
    configure_logging(
        level="DEBUG" if args.verbose else "WARNING", format_type="text"
    )

    print("=" * 50)
    print("  WALRUS STATUS CHECK")
    print("=" * 50)

    errors = asyncio.run(run_checks(args))

    print("\n" + "=" * 50)
    if errors:
        print(f"Completed with {len(errors)} error(s):")
        for error in errors:
            print(f"  - {error}")
        sys.exit(1)
    print("All checks passed!")
    print("=" * 50)


if __name__ == "__main__":
    main()
