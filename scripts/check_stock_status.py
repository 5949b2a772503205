"""
Check stock status - totals per SKU, low stock and out of stock.
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from repositories.kv_store import build_store
from repositories.ledger_repository import LedgerRepository
from services.ledger_service import LedgerService
from settings import Settings


def check_stock_status():
    """Print per-SKU totals and lots, then the low-stock and out-of-stock lists."""

    settings = Settings.from_env()
    service = LedgerService.load(LedgerRepository(build_store(settings)), settings=settings)
    summary = service.stock_summary(settings.initial_stock_labels)

    print("=" * 50)
    print("STOCK STATUS")
    print("=" * 50)
    print(f"SKUs tracked:              {len(summary.totals)}")
    print(f"Units in stock:            {sum(summary.totals.values())}")
    print(f"Transactions recorded:     {len(service.transactions())}")
    print("=" * 50)

    print("\nBreakdown by SKU (oldest lot first):")
    print("-" * 50)
    for sku in sorted(summary.totals):
        print(f"{sku}: {summary.totals[sku]} in stock")
        for lot in sorted(service.list_lots(sku), key=lambda lot: lot.received_at):
            print(f"    lot {lot.lot_id}: {lot.quantity} (received {lot.received_at.isoformat()})")
    print("-" * 50)

    print(f"\nLow stock (<= {settings.low_stock_threshold}): {', '.join(summary.low_stock) or 'none'}")
    print(f"Out of stock: {', '.join(summary.out_of_stock) or 'none'}")


if __name__ == "__main__":
    check_stock_status()
