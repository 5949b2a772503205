"""
Domain: consumption transactions.

A TransactionRecord is the audit entry written for every confirmed consumption.

Rules implemented here:
- Records are immutable. A correction produces an updated copy that replaces
  the original at the same position in history; records are never deleted.
- consumed_lots lists exactly which lots were debited and by how much, in FEFO
  order. It is what makes a consumption auditable and reversible.
- confidence_score is advisory and never used in stock arithmetic.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional, Tuple

from .lot import LotConsumption
from .sku import normalize_sku
from .time import require_utc_timestamp

UNKNOWN_ACTOR: str = "unknown"


@dataclass(frozen=True, slots=True)
class CorrectionInfo:
    """Who corrected a transaction, when, and what it said before."""

    corrected_at: datetime
    corrected_by: str
    previous_label: str
    previous_quantity: int

    def __post_init__(self) -> None:
        require_utc_timestamp("corrected_at", self.corrected_at)


@dataclass(frozen=True, slots=True)
class TransactionRecord:
    """
    Immutable record of one confirmed consumption.

    label is kept as confirmed by the operator; sku is its normalized form.
    snapshot_ref is opaque to the ledger (a data URI in browser snapshots).
    """

    transaction_id: str
    label: str
    sku: str
    timestamp: datetime
    quantity_consumed: int
    consumed_lots: Tuple[LotConsumption, ...]
    actor: str = UNKNOWN_ACTOR
    confidence_score: Optional[float] = None
    snapshot_ref: Optional[str] = None
    correction: Optional[CorrectionInfo] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("timestamp", self.timestamp)
        if self.quantity_consumed < 0:
            raise ValueError("quantity_consumed must be >= 0")
        # Detections saved before lot tracking carry no breakdown at all.
        taken = sum(line.quantity_taken for line in self.consumed_lots)
        if self.consumed_lots and taken != self.quantity_consumed:
            raise ValueError(
                f"consumed_lots total {taken} does not match quantity_consumed {self.quantity_consumed}"
            )
        if self.confidence_score is not None and not 0.0 <= self.confidence_score <= 1.0:
            raise ValueError("confidence_score must be within [0.0, 1.0]")

    @property
    def is_corrected(self) -> bool:
        return self.correction is not None

    def corrected(
        self,
        *,
        new_label: str,
        new_quantity: int,
        consumed_lots: Tuple[LotConsumption, ...],
        corrected_by: str,
        corrected_at: datetime,
    ) -> "TransactionRecord":
        """Return the corrected copy of this record (same id and capture data)."""

        return replace(
            self,
            label=new_label,
            sku=normalize_sku(new_label),
            quantity_consumed=new_quantity,
            consumed_lots=tuple(consumed_lots),
            correction=CorrectionInfo(
                corrected_at=corrected_at,
                corrected_by=corrected_by,
                previous_label=self.label,
                previous_quantity=self.quantity_consumed,
            ),
        )
