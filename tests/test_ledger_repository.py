"""
Tests for `repositories/ledger_repository.py` and `repositories/kv_store.py`.

Covers rules:
- The snapshot is written to "stockLots" and "savedDetections" in the stored
  layout ({lotId, qty, ts} lots; label/score/image/ts/quantity/consumedLots/user
  detections).
- Legacy "stock" is only surfaced when "stockLots" is absent.
- Detections stored before transaction ids existed get one on load.
- Store failures and malformed documents become PersistenceFailure.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from domain.errors import PersistenceFailure
from domain.lot import Lot, LotConsumption
from domain.lot_store import AbsentStock, LegacyFlatStock, LotBasedStock, LotStore
from domain.transaction import CorrectionInfo, TransactionRecord
from repositories.kv_store import InMemoryKeyValueStore
from repositories.ledger_repository import (
    LEGACY_STOCK_KEY,
    SAVED_DETECTIONS_KEY,
    STOCK_LOTS_KEY,
    LedgerRepository,
)

T1 = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
T2 = datetime(2024, 1, 2, 9, 30, 0, tzinfo=timezone.utc)


class _BrokenStore:
    def get(self, key):
        raise ConnectionError("store offline")

    def set_many(self, values):
        raise ConnectionError("store offline")


def test_save_writes_stored_layout() -> None:
    """Verify lots and detections are written with the stored key names."""

    kv = InMemoryKeyValueStore()
    lots = LotStore.empty().with_lot_added("gloves", Lot(lot_id="L1", quantity=5, received_at=T1))
    record = TransactionRecord(
        transaction_id="tx-1",
        label="Gloves",
        sku="gloves",
        timestamp=T2,
        quantity_consumed=15,
        consumed_lots=(LotConsumption(lot_id="L1", quantity_taken=15, received_at=T1),),
        actor="nurse",
        confidence_score=0.93,
        snapshot_ref="data:image/png;base64,AAAA",
    )

    LedgerRepository(kv).save(lots, [record])

    assert kv.get(STOCK_LOTS_KEY) == {
        "gloves": [{"lotId": "L1", "qty": 5, "ts": "2024-01-01T00:00:00+00:00"}]
    }
    assert kv.get(SAVED_DETECTIONS_KEY) == [
        {
            "id": "tx-1",
            "label": "Gloves",
            "score": 0.93,
            "image": "data:image/png;base64,AAAA",
            "ts": "2024-01-02T09:30:00+00:00",
            "quantity": 15,
            "consumedLots": [{"lotId": "L1", "qty": 15, "ts": "2024-01-01T00:00:00+00:00"}],
            "user": "nurse",
        }
    ]


def test_save_then_load_returns_equal_state() -> None:
    kv = InMemoryKeyValueStore()
    repo = LedgerRepository(kv)
    lots = LotStore.empty().with_lot_added("mask", Lot(lot_id="M1", quantity=2, received_at=T1))
    record = TransactionRecord(
        transaction_id="tx-9",
        label="Mask",
        sku="mask",
        timestamp=T2,
        quantity_consumed=1,
        consumed_lots=(LotConsumption(lot_id="M1", quantity_taken=1, received_at=T1),),
        correction=CorrectionInfo(corrected_at=T2, corrected_by="sup", previous_label="gloves", previous_quantity=4),
    )

    repo.save(lots, [record])
    loaded = repo.load()

    assert isinstance(loaded.stock, LotBasedStock)
    assert loaded.stock.store == lots
    assert loaded.transactions == (record,)
    assert loaded.needs_write is False


def test_load_reads_browser_written_snapshot() -> None:
    """Verify ISO timestamps with a trailing 'Z' and un-normalized keys are accepted."""

    kv = InMemoryKeyValueStore(
        {
            STOCK_LOTS_KEY: {"Luva Latex M": [{"lotId": "lot_1", "qty": 7, "ts": "2024-03-01T10:00:00.000Z"}]},
            SAVED_DETECTIONS_KEY: [
                {
                    "label": "luvas",
                    "score": 0.97,
                    "image": "data:image/png;base64,BBBB",
                    "ts": "2024-03-02T10:00:00.000Z",
                    "quantity": 1,
                    "consumedLots": [{"lotId": "lot_1", "qty": 1, "ts": "2024-03-01T10:00:00.000Z"}],
                    "user": "ana",
                }
            ],
        }
    )

    loaded = LedgerRepository(kv).load()

    assert isinstance(loaded.stock, LotBasedStock)
    (lot,) = loaded.stock.store.list_lots("luva_latex_m")
    assert lot.quantity == 7
    assert lot.received_at == datetime(2024, 3, 1, 10, 0, 0, tzinfo=timezone.utc)

    (record,) = loaded.transactions
    assert record.transaction_id
    assert record.sku == "luvas"
    assert record.actor == "ana"
    assert loaded.needs_write is True


def test_load_accepts_detections_saved_before_lot_tracking() -> None:
    """Verify detections without a lot breakdown still load."""

    kv = InMemoryKeyValueStore(
        {
            STOCK_LOTS_KEY: {},
            SAVED_DETECTIONS_KEY: [{"id": "old", "label": "mask", "ts": "2023-12-01T00:00:00Z", "quantity": 2}],
        }
    )

    (record,) = LedgerRepository(kv).load().transactions

    assert record.quantity_consumed == 2
    assert record.consumed_lots == ()
    assert record.actor == "unknown"


def test_load_surfaces_legacy_stock_only_without_lots() -> None:
    legacy_only = InMemoryKeyValueStore({LEGACY_STOCK_KEY: {"soro": 5}})
    both = InMemoryKeyValueStore({LEGACY_STOCK_KEY: {"soro": 5}, STOCK_LOTS_KEY: {}})

    legacy = LedgerRepository(legacy_only).load().stock
    assert isinstance(legacy, LegacyFlatStock)
    assert legacy.quantities == {"soro": 5}

    assert isinstance(LedgerRepository(both).load().stock, LotBasedStock)


def test_load_of_empty_store_is_absent() -> None:
    loaded = LedgerRepository(InMemoryKeyValueStore()).load()

    assert isinstance(loaded.stock, AbsentStock)
    assert loaded.transactions == ()


def test_load_rejects_malformed_lots() -> None:
    """Verify a negative stored quantity is a persistence problem, not a silent fix."""

    kv = InMemoryKeyValueStore({STOCK_LOTS_KEY: {"gloves": [{"lotId": "L1", "qty": -3, "ts": "2024-01-01T00:00:00Z"}]}})

    with pytest.raises(PersistenceFailure):
        LedgerRepository(kv).load()


def test_store_errors_become_persistence_failures() -> None:
    repo = LedgerRepository(_BrokenStore())

    with pytest.raises(PersistenceFailure) as read_error:
        repo.load()
    assert isinstance(read_error.value.cause, ConnectionError)

    with pytest.raises(PersistenceFailure) as write_error:
        repo.save(LotStore.empty(), [])
    assert isinstance(write_error.value.cause, ConnectionError)


def test_in_memory_store_hands_out_copies() -> None:
    """Verify callers cannot mutate stored documents through returned values."""

    kv = InMemoryKeyValueStore({"k": {"a": [1]}})

    value = kv.get("k")
    value["a"].append(2)

    assert kv.get("k") == {"a": [1]}
    assert kv.get("missing") is None
