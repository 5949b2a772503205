#!/usr/bin/env python3
"""
History Export Script

Exports the ledger's transaction history (confirmed detections and their
corrections) to a JSON file, newest first, in the stored "savedDetections"
layout.

Usage:
    python export_history.py --output detections.json
    python export_history.py --sku luvas --output luvas_history.json
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.sku import normalize_sku
from repositories.kv_store import build_store
from repositories.ledger_repository import LedgerRepository
from services.history_export_service import export_history
from services.ledger_service import LedgerService
from settings import Settings


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Export the ledger's transaction history to JSON",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Export the whole history
  python export_history.py --output detections.json

  # Export only the transactions for one item
  python export_history.py --sku "luva latex m" --output luvas.json
        """
    )

    parser.add_argument(
        "--output",
        "-o",
        required=True,
        help="Path to output JSON file"
    )

    parser.add_argument(
        "--sku",
        "-s",
        help="Only export transactions for this item label"
    )

    args = parser.parse_args()

    try:
        settings = Settings.from_env()
        service = LedgerService.load(LedgerRepository(build_store(settings)), settings=settings)

        transactions = service.transactions()
        if args.sku:
            sku = normalize_sku(args.sku)
            transactions = tuple(record for record in transactions if record.sku == sku)

        if not transactions:
            print("No transactions found matching the specified filters")
            return 1

        exported = export_history(transactions, args.output)

        corrected = sum(1 for record in transactions if record.correction is not None)
        units = sum(record.quantity_consumed for record in transactions)

        print()
        print("=" * 60)
        print("EXPORT SUMMARY")
        print("=" * 60)
        print(f"Transactions exported: {exported}")
        print(f"  Corrected:           {corrected}")
        print(f"  Units consumed:      {units}")
        print()
        print(f"Output file: {args.output}")
        print("=" * 60)

        return 0

    except KeyboardInterrupt:
        print("\n\nExport interrupted by user")
        return 130

    except Exception as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
