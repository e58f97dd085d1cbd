"""Operator commands for the try-on relay.

Usage:
    python -m shootx.cli <command> [OPTIONS]

Examples:
    # Enable try-on for a storefront (creates the shop if needed)
    python -m shootx.cli enable-shop acme.myshopify.com

    # Turn the widget off
    python -m shootx.cli enable-shop acme.myshopify.com --disable

    # Fail jobs stuck in processing for more than 15 minutes
    python -m shootx.cli reconcile --older-than 15

    # Request statistics for a storefront
    python -m shootx.cli stats acme.myshopify.com
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace
from dataclasses import dataclass, field
from typing import Optional, Sequence

import structlog

from shootx.core import timezone  # noqa: F401
from shootx.core.config import Settings, configure_logging
from shootx.core.database import setup_db_session
from shootx.models.tryon_job import TryOnJob, TryOnStatus
from shootx.services.orchestrator import fail_stale_jobs
from shootx.uow import UoWFactory, create_uow_factory

logger = structlog.get_logger()


@dataclass
class ShopStats:
    """Analytics for one storefront."""

    total_requests: int
    completed_requests: int
    recent_requests: list[TryOnJob] = field(default_factory=list)
    top_products: list[tuple[str, str, int]] = field(default_factory=list)

    @property
    def completion_rate(self) -> int:
        """Completed share of all requests, as a rounded percentage."""
        if self.total_requests == 0:
            return 0
        return round(self.completed_requests / self.total_requests * 100)


async def collect_shop_stats(uow_factory: UoWFactory, shop_domain: str) -> ShopStats:
    """Gather request totals, recent requests and top products for a shop."""
    async with await uow_factory() as uow:
        domain = shop_domain.strip().lower()
        return ShopStats(
            total_requests=await uow.tryon_jobs.count_for_shop(domain),
            completed_requests=await uow.tryon_jobs.count_for_shop(
                domain, status=TryOnStatus.COMPLETED
            ),
            recent_requests=await uow.tryon_jobs.recent_for_shop(domain, limit=20),
            top_products=await uow.tryon_jobs.top_products_for_shop(domain, limit=10),
        )


def parse_args(argv: Optional[Sequence[str]] = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(description="ShootX try-on relay operator commands")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    enable = subparsers.add_parser("enable-shop", help="Create a shop and set its try-on flag")
    enable.add_argument("shop_domain", help="Storefront domain, e.g. acme.myshopify.com")
    enable.add_argument(
        "--disable",
        action="store_true",
        help="Turn try-on off instead of on",
    )

    reconcile = subparsers.add_parser(
        "reconcile", help="Fail jobs stuck in processing past the cutoff"
    )
    reconcile.add_argument(
        "--older-than",
        type=int,
        metavar="MINUTES",
        help="Cutoff in minutes (default: STALE_JOB_MINUTES)",
    )

    stats = subparsers.add_parser("stats", help="Show try-on request statistics for a shop")
    stats.add_argument("shop_domain", help="Storefront domain")

    return parser.parse_args(argv)


async def run_enable_shop(uow_factory: UoWFactory, args: Namespace) -> int:
    enabled = not args.disable
    async with await uow_factory() as uow:
        shop = await uow.shops.upsert(args.shop_domain, try_on_enabled=enabled, is_active=True)
        domain = shop.shop_domain

    logger.info("cli.shop_updated", shop=domain, try_on_enabled=enabled)
    print(f"Try-on {'enabled' if enabled else 'disabled'} for {domain}")
    return 0


async def run_reconcile(uow_factory: UoWFactory, settings: Settings, args: Namespace) -> int:
    older_than = settings.stale_job_minutes if args.older_than is None else args.older_than
    count = await fail_stale_jobs(uow_factory, older_than)
    print(f"Marked {count} stale job(s) as failed (older than {older_than} minutes)")
    return 0


async def run_stats(uow_factory: UoWFactory, args: Namespace) -> int:
    stats = await collect_shop_stats(uow_factory, args.shop_domain)

    print("\n" + "=" * 60)
    print(f"Try-On Statistics: {args.shop_domain}")
    print("=" * 60)
    print(f"Total requests: {stats.total_requests}")
    print(f"Completion rate: {stats.completion_rate}%")

    if stats.top_products:
        print("\nTop products:")
        for product_id, product_title, count in stats.top_products:
            print(f"  {count:>5}  {product_title} ({product_id})")

    if stats.recent_requests:
        print("\nRecent requests:")
        for job in stats.recent_requests:
            created = f"{job.created_at:%Y-%m-%d %H:%M}"
            print(f"  {created}  {job.status.value:<10}  {job.product_title}")

    print("=" * 60)
    return 0


async def async_main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error)
    """
    args = parse_args(argv)

    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)

    try:
        if args.command == "enable-shop":
            return await run_enable_shop(uow_factory, args)
        if args.command == "reconcile":
            return await run_reconcile(uow_factory, settings, args)
        return await run_stats(uow_factory, args)
    except Exception as e:
        logger.error("cli.failed", command=args.command, error=str(e), exc_info=True)
        print(f"\nError: {e}", file=sys.stderr)
        return 1
    finally:
        await session_factory.kw["bind"].dispose()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Synchronous wrapper for async_main."""
    return asyncio.run(async_main(argv))
