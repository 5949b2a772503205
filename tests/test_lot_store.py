"""
Tests for `domain/lot_store.py`.

Covers rules:
- totalQuantity sums lots and is 0 for unknown SKUs.
- SKU keys are normalized on every read and write.
- Store transitions return new stores; prior stores are unchanged.
- Legacy flat stock migrates to one synthetic lot per SKU.
- Stored stock shape is resolved once, lots taking precedence over legacy.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from domain.lot import Lot
from domain.lot_store import (
    AbsentStock,
    LegacyFlatStock,
    LotBasedStock,
    LotStore,
    migrate_legacy_stock,
    resolve_stored_stock,
    seed_initial_stock,
)

T1 = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
MIGRATED_AT = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_total_quantity_for_unknown_sku_is_zero() -> None:
    store = LotStore.empty()

    assert store.total_quantity("scalpel") == 0
    assert store.list_lots("scalpel") == ()


def test_total_quantity_sums_all_lots_of_a_sku() -> None:
    store = LotStore.from_mapping(
        {
            "gloves": [Lot(lot_id="L1", quantity=20, received_at=T1), Lot(lot_id="L2", quantity=5, received_at=T1)],
            "mask": [Lot(lot_id="M1", quantity=3, received_at=T1)],
        }
    )

    assert store.total_quantity("gloves") == 25
    assert store.total_quantity("mask") == 3


def test_lookups_and_writes_use_normalized_skus() -> None:
    """Verify "Luva Latex M" and "luva_latex_m" address the same SKU."""

    store = LotStore.empty().with_lot_added("Luva Latex M", Lot(lot_id="L1", quantity=4, received_at=T1))

    assert store.skus() == ("luva_latex_m",)
    assert store.total_quantity("luva_latex_m") == 4
    assert store.total_quantity("LUVA  latex m") == 4


def test_from_mapping_merges_keys_that_normalize_to_the_same_sku() -> None:
    store = LotStore.from_mapping(
        {
            "Gloves": [Lot(lot_id="L1", quantity=1, received_at=T1)],
            "gloves": [Lot(lot_id="L2", quantity=2, received_at=T1)],
        }
    )

    assert [lot.lot_id for lot in store.list_lots("gloves")] == ["L1", "L2"]


def test_with_lot_added_is_side_effect_free() -> None:
    """Verify adding a lot returns a new store and leaves the prior one unchanged."""

    store0 = LotStore.empty()
    store1 = store0.with_lot_added("gloves", Lot(lot_id="L1", quantity=5, received_at=T1))
    store2 = store1.with_lot_added("gloves", Lot(lot_id="L2", quantity=1, received_at=T1))

    assert store0.total_quantity("gloves") == 0
    assert store1.total_quantity("gloves") == 5
    assert [lot.lot_id for lot in store2.list_lots("gloves")] == ["L2", "L1"]


def test_migrate_legacy_stock_creates_one_synthetic_lot_per_sku() -> None:
    store = migrate_legacy_stock({"soro": 5, "Luvas": "10"}, MIGRATED_AT)

    assert set(store.skus()) == {"soro", "luvas"}
    for sku, expected in (("soro", 5), ("luvas", 10)):
        (lot,) = store.list_lots(sku)
        assert lot.quantity == expected
        assert lot.received_at == MIGRATED_AT
        assert lot.lot_id.startswith("initial_")


def test_migrate_legacy_stock_coerces_unusable_quantities_to_zero() -> None:
    """Verify non-numeric or negative legacy totals never produce negative lots."""

    store = migrate_legacy_stock({"a": None, "b": "lots", "c": -4}, MIGRATED_AT)

    assert store.total_quantity("a") == 0
    assert store.total_quantity("b") == 0
    assert store.total_quantity("c") == 0


def test_migrating_twice_produces_distinct_synthetic_lots() -> None:
    """Verify migration is not idempotent by itself; callers must guard re-migration."""

    first = migrate_legacy_stock({"soro": 5}, MIGRATED_AT)
    second = migrate_legacy_stock({"soro": 5}, MIGRATED_AT)

    assert first.list_lots("soro")[0].lot_id != second.list_lots("soro")[0].lot_id


def test_migrate_legacy_stock_requires_utc_time() -> None:
    with pytest.raises(ValueError):
        migrate_legacy_stock({"soro": 5}, datetime(2025, 1, 1))


def test_seed_initial_stock_creates_named_initial_lots() -> None:
    store = seed_initial_stock(["seringa", "Alcool"], 20, MIGRATED_AT)

    assert store.list_lots("seringa") == (Lot(lot_id="initial_seringa", quantity=20, received_at=MIGRATED_AT),)
    assert store.total_quantity("alcool") == 20


def test_resolve_stored_stock_prefers_lots_over_legacy() -> None:
    lots = LotStore.empty()

    resolved = resolve_stored_stock(lots, {"soro": 5})

    assert isinstance(resolved, LotBasedStock)
    assert resolved.store is lots


def test_resolve_stored_stock_falls_back_to_legacy_then_absent() -> None:
    assert isinstance(resolve_stored_stock(None, {"soro": 5}), LegacyFlatStock)
    assert isinstance(resolve_stored_stock(None, None), AbsentStock)
