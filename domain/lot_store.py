"""
Domain: Lot Store (SKU -> lots).

Holds the mapping from normalized SKU to that SKU's lots and exposes read-only
aggregate queries.

Rules implemented here:
- The total quantity of a SKU is the sum of its lots' quantities and is never
  negative (every Lot enforces quantity >= 0).
- An unknown SKU has total quantity 0 and no lots; queries never fail for it.
- Stored lot order carries no meaning; the FEFO engine re-sorts on every
  consumption.

The store is immutable: every change returns a new LotStore, in the same way
`InventoryLedger` transitions do. Only the Ledger Service decides which store
is current.

Stored stock is resolved once at startup into one of three shapes
(`LotBasedStock`, `LegacyFlatStock`, `AbsentStock`) instead of sniffing the
stored JSON on every load.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union
from uuid import uuid4

from .lot import Lot, total_quantity as _sum_lots
from .sku import normalize_sku
from .time import epoch_millis, require_utc_timestamp

logger = logging.getLogger(__name__)

MIGRATION_LOT_PREFIX: str = "initial"


@dataclass(frozen=True, slots=True)
class LotStore:
    """In-memory SKU -> lots mapping. Not a persistence model."""

    _lots_by_sku: Mapping[str, Tuple[Lot, ...]] = field(default_factory=dict)

    @staticmethod
    def empty() -> "LotStore":
        return LotStore(_lots_by_sku={})

    @staticmethod
    def from_mapping(lots_by_sku: Mapping[str, Iterable[Lot]]) -> "LotStore":
        """
        Build a store from a raw mapping, normalizing SKU keys.

        Keys that normalize to the same SKU have their lots concatenated.
        """

        merged: Dict[str, Tuple[Lot, ...]] = {}
        for raw_sku, lots in lots_by_sku.items():
            sku = normalize_sku(raw_sku)
            merged[sku] = merged.get(sku, ()) + tuple(lots)
        return LotStore(_lots_by_sku=merged)

    def skus(self) -> Tuple[str, ...]:
        return tuple(self._lots_by_sku.keys())

    def list_lots(self, sku: str) -> Tuple[Lot, ...]:
        """Current lots for `sku` in stored order (not FEFO order)."""

        return self._lots_by_sku.get(normalize_sku(sku), ())

    def total_quantity(self, sku: str) -> int:
        return _sum_lots(self.list_lots(sku))

    def as_mapping(self) -> Dict[str, Tuple[Lot, ...]]:
        return dict(self._lots_by_sku)

    def with_lots(self, sku: str, lots: Iterable[Lot]) -> "LotStore":
        """Return a new store where `sku` holds exactly `lots`."""

        updated: Dict[str, Tuple[Lot, ...]] = dict(self._lots_by_sku)
        updated[normalize_sku(sku)] = tuple(lots)
        return LotStore(_lots_by_sku=updated)

    def with_lot_added(self, sku: str, lot: Lot) -> "LotStore":
        """Return a new store with `lot` prepended to the lots of `sku`."""

        return self.with_lots(sku, (lot,) + self.list_lots(sku))


def synthetic_lot_id(prefix: str, at: datetime) -> str:
    """Timestamp-derived lot id, e.g. "lot_1704067200000_3f9a1c2e"."""

    return f"{prefix}_{epoch_millis(at)}_{uuid4().hex[:8]}"


def _coerce_legacy_quantity(sku: str, value: Any) -> int:
    if isinstance(value, bool):
        value = int(value)
    try:
        quantity = int(value or 0)
    except (TypeError, ValueError):
        logger.warning("Legacy stock for %s is not numeric (%r); migrating as 0", sku, value)
        return 0
    if quantity < 0:
        logger.warning("Legacy stock for %s is negative (%d); migrating as 0", sku, quantity)
        return 0
    return quantity


def migrate_legacy_stock(legacy: Mapping[str, Any], migrated_at: datetime) -> LotStore:
    """
    Convert a legacy flat SKU -> quantity mapping into one synthetic lot per SKU.

    Each lot is received at `migrated_at` and gets a distinguishable
    "initial_<ms>_<suffix>" id. Running this twice on the same snapshot yields
    two different synthetic lots; callers must not migrate twice.
    """

    require_utc_timestamp("migrated_at", migrated_at)

    lots_by_sku: Dict[str, Tuple[Lot, ...]] = {}
    for raw_sku, raw_quantity in legacy.items():
        sku = normalize_sku(raw_sku)
        lot = Lot(
            lot_id=synthetic_lot_id(MIGRATION_LOT_PREFIX, migrated_at),
            quantity=_coerce_legacy_quantity(sku, raw_quantity),
            received_at=migrated_at,
        )
        lots_by_sku[sku] = lots_by_sku.get(sku, ()) + (lot,)
    return LotStore(_lots_by_sku=lots_by_sku)


def seed_initial_stock(labels: Iterable[str], quantity: int, seeded_at: datetime) -> LotStore:
    """Create one "initial_<sku>" lot of `quantity` per label for a fresh ledger."""

    require_utc_timestamp("seeded_at", seeded_at)

    lots_by_sku: Dict[str, Tuple[Lot, ...]] = {}
    for label in labels:
        sku = normalize_sku(label)
        lots_by_sku[sku] = (
            Lot(lot_id=f"{MIGRATION_LOT_PREFIX}_{sku}", quantity=quantity, received_at=seeded_at),
        )
    return LotStore(_lots_by_sku=lots_by_sku)


@dataclass(frozen=True, slots=True)
class LotBasedStock:
    """Stored stock already in lot form."""

    store: LotStore


@dataclass(frozen=True, slots=True)
class LegacyFlatStock:
    """Stored stock in the legacy SKU -> integer form, still to be migrated."""

    quantities: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class AbsentStock:
    """Nothing stored yet."""


StoredStock = Union[LotBasedStock, LegacyFlatStock, AbsentStock]


def resolve_stored_stock(
    stock_lots: Optional[LotStore],
    legacy_stock: Optional[Mapping[str, Any]],
) -> StoredStock:
    """
    Decide, once, which shape the stored stock is in.

    Lot-based stock wins whenever present; the legacy mapping is only
    considered when no lots were ever stored.
    """

    if stock_lots is not None:
        return LotBasedStock(store=stock_lots)
    if legacy_stock is not None:
        return LegacyFlatStock(quantities=legacy_stock)
    return AbsentStock()
