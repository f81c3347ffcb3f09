#!/usr/bin/env python3
"""Book courier deliveries for confirmed orders.

Retries courier booking for every order still in ``confirmed``, such as
orders whose earlier booking failed. Meant to be run on a schedule
against the SQL order store.

Usage:
    python scripts/book_deliveries.py
    python scripts/book_deliveries.py --instant-only
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from giftflare.application.delivery_service import build_delivery_service
from giftflare.application.order_service import build_order_service
from giftflare.domain.value_objects import DeliveryType
from giftflare.infrastructure.config import settings
from giftflare.infrastructure.logging_config import configure_logging


async def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Book courier deliveries for confirmed orders",
    )
    parser.add_argument(
        "--instant-only",
        action="store_true",
        help="Only book orders with instant delivery",
    )
    parser.add_argument(
        "--page-size",
        type=int,
        default=100,
        help="Orders fetched per page while collecting work (default: 100)",
    )

    args = parser.parse_args()
    configure_logging(settings)

    print("=" * 60)
    print("Giftflare Delivery Booker")
    print("=" * 60)
    print(f"Store backend: {settings.order_store_backend}")
    print(f"Instant only: {args.instant_only}")
    print()

    order_service = build_order_service(settings)
    delivery_service = build_delivery_service(settings, order_service)

    try:
        results = await delivery_service.book_confirmed_orders(
            delivery_type=DeliveryType.INSTANT if args.instant_only else None,
            page_size=args.page_size,
        )
    finally:
        await delivery_service.close()
        await order_service.close()

    failures = 0
    for result in results:
        if result.success:
            print(f"  ✓ {result.order_id}: {result.tracking_id}")
        else:
            failures += 1
            print(f"  ✗ {result.order_id}: {result.error}")

    print()
    print("=" * 60)
    print(f"Booked: {len(results) - failures}  Failed: {failures}")
    print("=" * 60)
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
