"""
Lot ledger service.

The stateful orchestrator for hospital supply stock. It owns the SKU -> lots
mapping and the transaction history; nothing else mutates them.

Handles:
- FEFO consumption of confirmed detections (all-or-nothing per SKU)
- Batches of consumptions evaluated SKU by SKU (partial success allowed)
- Restocking with new lots
- Correction of past transactions (reverse, then re-apply)

Single-writer discipline: every top-level operation runs inside one critical
section. Each mutation builds a new immutable LedgerState, hands the full
snapshot to the repository, and only then makes it current. If the write
fails, PersistenceFailure propagates and the previous state stays current.

Business conditions (insufficient stock, invalid quantity, unknown
transaction) are returned as typed failures inside the result objects and are
never raised.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

from domain.errors import (
    CorrectionFailForward,
    DuplicateLot,
    InsufficientStock,
    InvalidQuantity,
    LedgerFailure,
    UnknownTransaction,
)
from domain.fefo import consume_fefo
from domain.lot import Lot, LotConsumption
from domain.lot_store import (
    AbsentStock,
    LegacyFlatStock,
    LotBasedStock,
    LotStore,
    migrate_legacy_stock,
    seed_initial_stock,
    synthetic_lot_id,
)
from domain.sku import normalize_sku
from domain.time import require_utc_timestamp, utc_now
from domain.transaction import UNKNOWN_ACTOR, TransactionRecord
from repositories.ledger_repository import LedgerRepository
from settings import DEFAULT_LOW_STOCK_THRESHOLD, Settings

logger = logging.getLogger(__name__)

RESTOCK_LOT_PREFIX: str = "lot"
CORRECTION_LOT_PREFIX: str = "correction_restock"


@dataclass(frozen=True, slots=True)
class LedgerState:
    """Everything the ledger owns, as one immutable snapshot."""

    lots: LotStore
    transactions: Tuple[TransactionRecord, ...] = ()


@dataclass(frozen=True, slots=True)
class ConsumptionRequest:
    """One confirmed detection to be taken out of stock."""

    sku: str
    quantity: Any
    actor: str = UNKNOWN_ACTOR
    snapshot_ref: Optional[str] = None
    confidence_score: Optional[float] = None


@dataclass(frozen=True, slots=True)
class ConsumeResult:
    """
    Result of a consumption attempt for a single SKU.

    success: True if the stock was debited and a transaction recorded
    sku: normalized SKU the request addressed
    transaction: the recorded TransactionRecord (None on failure)
    failure: InsufficientStock or InvalidQuantity (None on success)
    errors: human-readable messages (empty if success=True)
    """

    success: bool
    sku: str
    transaction: Optional[TransactionRecord] = None
    failure: Optional[LedgerFailure] = None
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class BatchConsumeResult:
    """Per-SKU outcomes of a batch; one failure never undoes another success."""

    outcomes: List[ConsumeResult]

    @property
    def success(self) -> bool:
        return all(outcome.success for outcome in self.outcomes)

    @property
    def succeeded(self) -> List[ConsumeResult]:
        return [outcome for outcome in self.outcomes if outcome.success]

    @property
    def failed(self) -> List[ConsumeResult]:
        return [outcome for outcome in self.outcomes if not outcome.success]

    @property
    def errors(self) -> List[str]:
        return [error for outcome in self.outcomes for error in outcome.errors]


@dataclass(frozen=True, slots=True)
class RestockResult:
    success: bool
    sku: Optional[str]
    lot: Optional[Lot] = None
    failure: Optional[LedgerFailure] = None
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class CorrectionResult:
    """
    Result of correcting a past transaction.

    On a fail-forward outcome success is False, transaction is the untouched
    original record, failure is the InsufficientStock of the re-apply step and
    warning says how much was already returned to stock.
    """

    success: bool
    transaction: Optional[TransactionRecord] = None
    failure: Optional[LedgerFailure] = None
    warning: Optional[CorrectionFailForward] = None
    errors: List[str] = field(default_factory=list)

    @property
    def needs_reconciliation(self) -> bool:
        return self.warning is not None


@dataclass(frozen=True, slots=True)
class StockSummary:
    totals: Dict[str, int]
    low_stock: List[str]
    out_of_stock: List[str]


def parse_quantity(value: Any, *, allow_zero: bool = False) -> Optional[int]:
    """
    Interpret a user-supplied quantity.

    Accepts ints, integral floats and numeric strings; returns None for
    anything else, for negatives, and for zero unless `allow_zero`.
    """

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        quantity = value
    elif isinstance(value, float):
        if not value.is_integer():
            return None
        quantity = int(value)
    elif isinstance(value, str):
        try:
            quantity = int(value.strip())
        except ValueError:
            return None
    else:
        return None

    if quantity < 0 or (quantity == 0 and not allow_zero):
        return None
    return quantity


class LedgerService:
    """
    In-process, single-writer lot ledger.

    Example:
        service = LedgerService.load(LedgerRepository(InMemoryKeyValueStore()))
        service.restock("gloves", 20, lot_id="L1")
        result = service.consume("gloves", 15, actor="nurse.ana")
        if not result.success:
            print(result.errors)
    """

    def __init__(
        self,
        repository: LedgerRepository,
        state: Optional[LedgerState] = None,
        *,
        clock: Callable[[], datetime] = utc_now,
        low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD,
    ):
        self._repository = repository
        self._state = state if state is not None else LedgerState(lots=LotStore.empty())
        self._clock = clock
        self._low_stock_threshold = low_stock_threshold
        self._lock = threading.RLock()

    @classmethod
    def load(
        cls,
        repository: LedgerRepository,
        *,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> "LedgerService":
        """
        Build the service from whatever the repository holds.

        The stored stock shape is resolved once here:
        - lot-based stock is used as is
        - legacy flat stock is migrated to one lot per SKU and written back
          immediately, so it is never migrated twice
        - with nothing stored, the configured initial labels are seeded
        """

        settings = settings or Settings()
        loaded = repository.load()
        stock = loaded.stock
        needs_write = loaded.needs_write

        if isinstance(stock, LotBasedStock):
            lots = stock.store
        elif isinstance(stock, LegacyFlatStock):
            lots = migrate_legacy_stock(stock.quantities, clock())
            needs_write = True
            logger.info("Migrated legacy stock for %d SKU(s) into lots", len(lots.skus()))
        elif isinstance(stock, AbsentStock):
            lots = seed_initial_stock(settings.initial_stock_labels, settings.initial_lot_quantity, clock())
            needs_write = True
            logger.info("Seeded initial stock for %d SKU(s)", len(lots.skus()))
        else:
            raise TypeError(f"Unexpected stored stock: {stock!r}")

        service = cls(
            repository,
            LedgerState(lots=lots, transactions=loaded.transactions),
            clock=clock,
            low_stock_threshold=settings.low_stock_threshold,
        )
        if needs_write:
            with service._lock:
                service._commit(service._state)
        return service

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def state(self) -> LedgerState:
        return self._state

    def total_quantity(self, sku: str) -> int:
        return self._state.lots.total_quantity(sku)

    def list_lots(self, sku: str) -> Tuple[Lot, ...]:
        return self._state.lots.list_lots(sku)

    def skus(self) -> Tuple[str, ...]:
        return self._state.lots.skus()

    def transactions(self) -> Tuple[TransactionRecord, ...]:
        """Transaction history, newest first."""

        return self._state.transactions

    def get_transaction(self, transaction_id: str) -> Optional[TransactionRecord]:
        _, record = self._find_transaction(transaction_id)
        return record

    def stock_summary(self, labels: Optional[Iterable[str]] = None) -> StockSummary:
        """
        Totals per SKU plus the low-stock and out-of-stock lists.

        `labels` adds SKUs that should be reported even if never stocked.
        """

        lots = self._state.lots
        skus = list(lots.skus())
        for label in labels or ():
            sku = normalize_sku(label)
            if sku not in skus:
                skus.append(sku)

        totals = {sku: lots.total_quantity(sku) for sku in skus}
        return StockSummary(
            totals=totals,
            low_stock=[sku for sku, qty in totals.items() if qty <= self._low_stock_threshold],
            out_of_stock=[sku for sku, qty in totals.items() if qty == 0],
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def consume(
        self,
        sku: str,
        quantity: Any,
        actor: str = UNKNOWN_ACTOR,
        snapshot_ref: Optional[str] = None,
        confidence_score: Optional[float] = None,
    ) -> ConsumeResult:
        """
        Take `quantity` units of `sku` out of stock, oldest lots first.

        All-or-nothing: with insufficient stock nothing is debited and the
        result names the requested and available quantities.
        """

        with self._lock:
            label = sku
            key = normalize_sku(label)

            amount = parse_quantity(quantity)
            if amount is None:
                failure = InvalidQuantity(value=quantity)
                return ConsumeResult(success=False, sku=key, failure=failure, errors=[failure.message])

            outcome = consume_fefo(self._state.lots.list_lots(key), amount)
            if not outcome.success:
                failure = InsufficientStock(sku=key, requested=amount, available=outcome.available)
                logger.warning(failure.message)
                return ConsumeResult(success=False, sku=key, failure=failure, errors=[failure.message])

            record = TransactionRecord(
                transaction_id=str(uuid4()),
                label=label,
                sku=key,
                timestamp=self._now(),
                quantity_consumed=amount,
                consumed_lots=outcome.consumed,
                actor=actor or UNKNOWN_ACTOR,
                confidence_score=confidence_score,
                snapshot_ref=snapshot_ref,
            )
            self._commit(
                LedgerState(
                    lots=self._state.lots.with_lots(key, outcome.lots),
                    transactions=(record,) + self._state.transactions,
                )
            )
            logger.info(
                "Consumed %d of %s from %d lot(s) (transaction %s, actor %s)",
                amount,
                key,
                len(outcome.consumed),
                record.transaction_id,
                record.actor,
            )
            return ConsumeResult(success=True, sku=key, transaction=record)

    def consume_batch(self, requests: Sequence[ConsumptionRequest]) -> BatchConsumeResult:
        """
        Consume several confirmed detections, each SKU evaluated on its own.

        SKU A succeeding never depends on SKU B; the caller reports each outcome.
        """

        with self._lock:
            outcomes = [
                self.consume(
                    request.sku,
                    request.quantity,
                    actor=request.actor,
                    snapshot_ref=request.snapshot_ref,
                    confidence_score=request.confidence_score,
                )
                for request in requests
            ]
            return BatchConsumeResult(outcomes=outcomes)

    def restock(
        self,
        sku: str,
        quantity: Any,
        lot_id: Optional[str] = None,
        received_at: Optional[datetime] = None,
        actor: str = UNKNOWN_ACTOR,
    ) -> RestockResult:
        """
        Add a new lot of `quantity` units to `sku`.

        lot_id defaults to a timestamp-derived id; received_at defaults to now
        and, when given, must be a UTC timestamp.
        """

        with self._lock:
            key = normalize_sku(sku)

            amount = parse_quantity(quantity)
            if amount is None:
                failure = InvalidQuantity(value=quantity)
                return RestockResult(success=False, sku=key, failure=failure, errors=[failure.message])

            now = self._now()
            if received_at is not None:
                require_utc_timestamp("received_at", received_at)
            lot_id = (lot_id or "").strip() or synthetic_lot_id(RESTOCK_LOT_PREFIX, now)

            if any(existing.lot_id == lot_id for existing in self._state.lots.list_lots(key)):
                failure = DuplicateLot(sku=key, lot_id=lot_id)
                return RestockResult(success=False, sku=key, failure=failure, errors=[failure.message])

            lot = Lot(lot_id=lot_id, quantity=amount, received_at=received_at or now)
            self._commit(
                LedgerState(
                    lots=self._state.lots.with_lot_added(key, lot),
                    transactions=self._state.transactions,
                )
            )
            logger.info("Restocked %s with lot %s of %d unit(s) (actor %s)", key, lot_id, amount, actor)
            return RestockResult(success=True, sku=key, lot=lot)

    def correct(
        self,
        transaction_id: str,
        new_label: Optional[str] = None,
        new_quantity: Any = None,
        actor: str = UNKNOWN_ACTOR,
    ) -> CorrectionResult:
        """
        Correct a past transaction: reverse it, then re-apply the new values.

        Process:
        1. Find the transaction and read its original SKU and quantity
        2. Return the original quantity to the original SKU as a new
           correction lot received now (pure addition, always succeeds)
        3. Consume `new_quantity` of `new_label` (default: the original label)
           from the lots as they stand after step 2
        4. If step 3 succeeds, replace the record in place with the new label,
           quantity, lot breakdown and correction metadata
        5. If step 3 fails, step 2 is NOT rolled back ("fail forward"): the
           restock is persisted, the record stays unmodified and the result
           carries a CorrectionFailForward warning for manual reconciliation

        new_label of None keeps the original label. new_quantity may be 0,
        meaning the detection should not have consumed anything; a missing
        value, negatives and non-numbers are rejected before any change.
        """

        with self._lock:
            amount = parse_quantity(new_quantity, allow_zero=True)
            if amount is None:
                failure = InvalidQuantity(value=new_quantity)
                return CorrectionResult(success=False, failure=failure, errors=[failure.message])

            index, record = self._find_transaction(transaction_id)
            if record is None:
                failure = UnknownTransaction(transaction_id=transaction_id)
                return CorrectionResult(success=False, failure=failure, errors=[failure.message])

            label = new_label if new_label is not None else record.label
            target_sku = normalize_sku(label)
            now = self._now()

            # Step 2: reverse the original consumption.
            lots = self._state.lots
            restocked = record.quantity_consumed
            if restocked > 0:
                lots = lots.with_lot_added(
                    record.sku,
                    Lot(
                        lot_id=synthetic_lot_id(CORRECTION_LOT_PREFIX, now),
                        quantity=restocked,
                        received_at=now,
                    ),
                )

            # Step 3: re-apply against the post-restock lots.
            consumed: Tuple[LotConsumption, ...] = ()
            if amount > 0:
                outcome = consume_fefo(lots.list_lots(target_sku), amount)
                if not outcome.success:
                    return self._fail_forward(record, lots, target_sku, amount, outcome.available)
                lots = lots.with_lots(target_sku, outcome.lots)
                consumed = outcome.consumed

            # Step 4: update the record in place.
            updated = record.corrected(
                new_label=label,
                new_quantity=amount,
                consumed_lots=consumed,
                corrected_by=actor or UNKNOWN_ACTOR,
                corrected_at=now,
            )
            transactions = list(self._state.transactions)
            transactions[index] = updated
            self._commit(LedgerState(lots=lots, transactions=tuple(transactions)))
            logger.info(
                "Corrected transaction %s: %d of %s -> %d of %s (actor %s)",
                record.transaction_id,
                record.quantity_consumed,
                record.sku,
                amount,
                target_sku,
                updated.correction.corrected_by,
            )
            return CorrectionResult(success=True, transaction=updated)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fail_forward(
        self,
        record: TransactionRecord,
        lots: LotStore,
        target_sku: str,
        requested: int,
        available: int,
    ) -> CorrectionResult:
        failure = InsufficientStock(sku=target_sku, requested=requested, available=available)

        warning = None
        if record.quantity_consumed > 0:
            # The restock of step 2 stands; only the record is left alone.
            self._commit(LedgerState(lots=lots, transactions=self._state.transactions))
            warning = CorrectionFailForward(
                transaction_id=record.transaction_id,
                sku=record.sku,
                restocked_quantity=record.quantity_consumed,
            )
            logger.warning(warning.message)

        logger.warning(failure.message)
        errors = [failure.message] + ([warning.message] if warning is not None else [])
        return CorrectionResult(
            success=False,
            transaction=record,
            failure=failure,
            warning=warning,
            errors=errors,
        )

    def _find_transaction(self, transaction_id: str) -> Tuple[int, Optional[TransactionRecord]]:
        for index, record in enumerate(self._state.transactions):
            if record.transaction_id == transaction_id:
                return index, record
        return -1, None

    def _now(self) -> datetime:
        now = self._clock()
        require_utc_timestamp("clock()", now)
        return now

    def _commit(self, state: LedgerState) -> None:
        """Persist `state` as a full snapshot, then make it current."""

        self._repository.save(state.lots, state.transactions)
        self._state = state


__all__ = [
    "BatchConsumeResult",
    "ConsumeResult",
    "ConsumptionRequest",
    "CorrectionResult",
    "LedgerService",
    "LedgerState",
    "RestockResult",
    "StockSummary",
    "parse_quantity",
]
