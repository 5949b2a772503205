"""
Ledger repository (persistence).

Reads and writes the ledger's full snapshot through a key-value blob store.
It contains no business rules about consumption; it only converts between the
stored JSON documents and the domain types, and turns any storage problem into
a PersistenceFailure.

Stored layout:
- "stockLots": sku -> [{"lotId", "qty", "ts"}]
- "savedDetections": newest first, [{"id", "label", "score", "image", "ts",
  "quantity", "consumedLots": [{"lotId", "qty", "ts"}], "user",
  "correctedBy"?, "correctedAt"?, "previousLabel"?, "previousQuantity"?}]
- "stock": legacy sku -> int mapping, only read when "stockLots" is absent

Writes are whole-snapshot overwrites; there are no partial or delta writes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from domain.errors import PersistenceFailure
from domain.lot import Lot, LotConsumption
from domain.lot_store import LotStore, StoredStock, resolve_stored_stock
from domain.sku import normalize_sku
from domain.time import parse_utc_datetime, to_iso_utc
from domain.transaction import UNKNOWN_ACTOR, CorrectionInfo, TransactionRecord
from repositories.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

STOCK_LOTS_KEY: str = "stockLots"
SAVED_DETECTIONS_KEY: str = "savedDetections"
LEGACY_STOCK_KEY: str = "stock"


# ============================================================================
# Stored documents
# ============================================================================

class _Document(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class LotDocument(_Document):
    lot_id: str = Field(..., alias="lotId", min_length=1)
    qty: int = Field(..., ge=0)
    ts: str


class ConsumedLotDocument(_Document):
    lot_id: str = Field(..., alias="lotId")
    qty: int = Field(..., ge=0)
    ts: Optional[str] = None


class DetectionDocument(_Document):
    id: Optional[str] = None
    label: str
    score: Optional[float] = None
    image: Optional[str] = None
    ts: str
    quantity: int = Field(0, ge=0)
    consumed_lots: List[ConsumedLotDocument] = Field(default_factory=list, alias="consumedLots")
    user: Optional[str] = None
    corrected_by: Optional[str] = Field(None, alias="correctedBy")
    corrected_at: Optional[str] = Field(None, alias="correctedAt")
    previous_label: Optional[str] = Field(None, alias="previousLabel")
    previous_quantity: Optional[int] = Field(None, alias="previousQuantity")


# ============================================================================
# Conversions
# ============================================================================

def _lot_to_document(lot: Lot) -> Dict[str, Any]:
    return LotDocument(
        lot_id=lot.lot_id,
        qty=lot.quantity,
        ts=to_iso_utc(lot.received_at, name="received_at"),
    ).model_dump(by_alias=True)


def _document_to_lot(doc: LotDocument) -> Lot:
    return Lot(lot_id=doc.lot_id, quantity=doc.qty, received_at=parse_utc_datetime(doc.ts))


def _transaction_to_document(record: TransactionRecord) -> Dict[str, Any]:
    doc = DetectionDocument(
        id=record.transaction_id,
        label=record.label,
        score=record.confidence_score,
        image=record.snapshot_ref,
        ts=to_iso_utc(record.timestamp, name="timestamp"),
        quantity=record.quantity_consumed,
        consumed_lots=[
            ConsumedLotDocument(
                lot_id=line.lot_id,
                qty=line.quantity_taken,
                ts=to_iso_utc(line.received_at, name="received_at"),
            )
            for line in record.consumed_lots
        ],
        user=record.actor,
    )
    if record.correction is not None:
        doc.corrected_by = record.correction.corrected_by
        doc.corrected_at = to_iso_utc(record.correction.corrected_at, name="corrected_at")
        doc.previous_label = record.correction.previous_label
        doc.previous_quantity = record.correction.previous_quantity
    return doc.model_dump(by_alias=True, exclude_none=True)


def _document_to_transaction(doc: DetectionDocument) -> TransactionRecord:
    timestamp = parse_utc_datetime(doc.ts)

    correction = None
    if doc.corrected_at is not None:
        correction = CorrectionInfo(
            corrected_at=parse_utc_datetime(doc.corrected_at),
            corrected_by=doc.corrected_by or UNKNOWN_ACTOR,
            previous_label=doc.previous_label if doc.previous_label is not None else doc.label,
            previous_quantity=doc.previous_quantity if doc.previous_quantity is not None else doc.quantity,
        )

    return TransactionRecord(
        transaction_id=doc.id or str(uuid4()),
        label=doc.label,
        sku=normalize_sku(doc.label),
        timestamp=timestamp,
        quantity_consumed=doc.quantity,
        consumed_lots=tuple(
            LotConsumption(
                lot_id=line.lot_id,
                quantity_taken=line.qty,
                # Older snapshots did not record the lot's receipt time.
                received_at=parse_utc_datetime(line.ts) if line.ts else timestamp,
            )
            for line in doc.consumed_lots
        ),
        actor=doc.user or UNKNOWN_ACTOR,
        confidence_score=doc.score,
        snapshot_ref=doc.image,
        correction=correction,
    )


def lots_to_documents(store: LotStore) -> Dict[str, List[Dict[str, Any]]]:
    return {sku: [_lot_to_document(lot) for lot in lots] for sku, lots in store.as_mapping().items()}


def transactions_to_documents(transactions: Sequence[TransactionRecord]) -> List[Dict[str, Any]]:
    return [_transaction_to_document(record) for record in transactions]


# ============================================================================
# Repository
# ============================================================================

@dataclass(frozen=True, slots=True)
class LoadedLedger:
    """
    What was found in the store.

    needs_write is True when loading had to invent data (transaction ids for
    records written before ids existed) that must be persisted.
    """

    stock: StoredStock
    transactions: Tuple[TransactionRecord, ...]
    needs_write: bool = False


class LedgerRepository:
    """Snapshot persistence for the ledger on top of a KeyValueStore."""

    def __init__(self, store: KeyValueStore):
        self._store = store

    def _read(self, key: str) -> Optional[Any]:
        try:
            return self._store.get(key)
        except Exception as e:
            raise PersistenceFailure(e, action=f"read {key!r}") from e

    def load(self) -> LoadedLedger:
        """
        Read the stored snapshot.

        Raises PersistenceFailure if the store fails or holds malformed documents.
        """

        raw_lots = self._read(STOCK_LOTS_KEY)
        raw_legacy = self._read(LEGACY_STOCK_KEY) if raw_lots is None else None
        raw_detections = self._read(SAVED_DETECTIONS_KEY) or []

        try:
            stock_lots = None
            if raw_lots is not None:
                stock_lots = LotStore.from_mapping(
                    {
                        sku: [_document_to_lot(LotDocument.model_validate(item)) for item in items]
                        for sku, items in dict(raw_lots).items()
                    }
                )
            legacy = dict(raw_legacy) if raw_legacy is not None else None

            documents = [DetectionDocument.model_validate(item) for item in raw_detections]
            transactions = tuple(_document_to_transaction(doc) for doc in documents)
        except (ValidationError, TypeError, ValueError) as e:
            raise PersistenceFailure(e, action="load ledger snapshot") from e

        missing_ids = sum(1 for doc in documents if not doc.id)
        if missing_ids:
            logger.info("Assigned transaction ids to %d stored detection(s)", missing_ids)

        return LoadedLedger(
            stock=resolve_stored_stock(stock_lots, legacy),
            transactions=transactions,
            needs_write=missing_ids > 0,
        )

    def save(self, lots: LotStore, transactions: Sequence[TransactionRecord]) -> None:
        """
        Overwrite the stored snapshot with `lots` and `transactions`.

        Raises PersistenceFailure if the store rejects the write; the previously
        stored snapshot is then the durable state.
        """

        snapshot = {
            STOCK_LOTS_KEY: lots_to_documents(lots),
            SAVED_DETECTIONS_KEY: transactions_to_documents(transactions),
        }
        try:
            self._store.set_many(snapshot)
        except Exception as e:
            raise PersistenceFailure(e) from e


__all__ = [
    "LEGACY_STOCK_KEY",
    "SAVED_DETECTIONS_KEY",
    "STOCK_LOTS_KEY",
    "LedgerRepository",
    "LoadedLedger",
]
