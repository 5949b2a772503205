#!/usr/bin/env python3
"""
Stock Restock Script

Adds a lot to the ledger from the command line.

Usage:
    python seed_stock.py --sku luvas --quantity 50
    python seed_stock.py --sku "luva latex m" --quantity 10 --lot-id NF-2291 --received-at 2025-03-01T08:00:00Z
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.time import parse_utc_datetime
from repositories.kv_store import build_store
from repositories.ledger_repository import LedgerRepository
from services.ledger_service import LedgerService
from settings import Settings


def main() -> int:
    parser = argparse.ArgumentParser(description="Add a stock lot to the ledger")
    parser.add_argument("--sku", required=True, help="Item label (normalized automatically)")
    parser.add_argument("--quantity", required=True, help="Units in the new lot (positive integer)")
    parser.add_argument("--lot-id", default=None, help="Lot identifier (generated if omitted)")
    parser.add_argument(
        "--received-at",
        default=None,
        help="ISO-8601 receipt time (default: now; naive values are taken as UTC)",
    )
    parser.add_argument("--actor", default="unknown", help="Who is restocking")
    args = parser.parse_args()

    try:
        settings = Settings.from_env()
        service = LedgerService.load(LedgerRepository(build_store(settings)), settings=settings)

        received_at = parse_utc_datetime(args.received_at) if args.received_at else None
        result = service.restock(
            args.sku,
            args.quantity,
            lot_id=args.lot_id,
            received_at=received_at,
            actor=args.actor,
        )

        if not result.success:
            for error in result.errors:
                print(f"ERROR: {error}", file=sys.stderr)
            return 1

        print(f"Lot {result.lot.lot_id} added to {result.sku}: {result.lot.quantity} unit(s)")
        print(f"{result.sku} now holds {service.total_quantity(result.sku)} unit(s)")
        return 0

    except KeyboardInterrupt:
        print("\n\nRestock interrupted by user")
        return 130

    except Exception as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
