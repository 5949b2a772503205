"""
Domain: FEFO (first-expired-first-out) consumption engine.

Given one SKU's lots and a requested quantity, decide which lots to debit.
"First-expired" is approximated by "oldest received first".

Rules implemented here:
- Lots are ordered ascending by received_at with a stable sort, so lots
  received at the same instant keep their input order.
- Consumption is all-or-nothing: availability is summed before any debit; a
  request larger than the total available debits nothing.
- Exhausted lots (quantity == 0) are skipped during the walk and dropped from
  the resulting lot list.

The engine is pure. It knows nothing about SKUs, persistence or history.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from .lot import Lot, LotConsumption, total_quantity


@dataclass(frozen=True, slots=True)
class FefoOutcome:
    """
    Result of a FEFO consumption attempt.

    success: True if the full requested quantity was allocated
    lots: updated lots (exhausted ones removed) on success; the original input on failure
    consumed: ordered breakdown of debited lots (empty on failure)
    requested: quantity that was asked for
    available: total quantity available before the attempt
    """

    success: bool
    lots: Tuple[Lot, ...]
    consumed: Tuple[LotConsumption, ...]
    requested: int
    available: int

    @property
    def shortfall(self) -> int:
        return max(self.requested - self.available, 0)


def sort_fefo(lots: Sequence[Lot]) -> List[Lot]:
    """Lots oldest-received first; ties keep their input order."""

    return sorted(lots, key=lambda lot: lot.received_at)


def consume_fefo(lots: Sequence[Lot], desired_quantity: int) -> FefoOutcome:
    """
    Debit `desired_quantity` units from `lots`, oldest-received first.

    Raises ValueError for a non-positive or non-integer request; callers
    validate quantities before reaching the engine.
    """

    if isinstance(desired_quantity, bool) or not isinstance(desired_quantity, int):
        raise ValueError(f"desired_quantity must be an int, got {type(desired_quantity)!r}")
    if desired_quantity <= 0:
        raise ValueError("desired_quantity must be > 0")

    original = tuple(lots)
    available = total_quantity(original)

    if available < desired_quantity:
        return FefoOutcome(
            success=False,
            lots=original,
            consumed=(),
            requested=desired_quantity,
            available=available,
        )

    remaining = desired_quantity
    updated: List[Lot] = []
    consumed: List[LotConsumption] = []

    for lot in sort_fefo(original):
        if remaining > 0 and lot.quantity > 0:
            take = min(lot.quantity, remaining)
            lot = lot.debited(take)
            consumed.append(LotConsumption(lot_id=lot.lot_id, quantity_taken=take, received_at=lot.received_at))
            remaining -= take
        if not lot.is_exhausted:
            updated.append(lot)

    return FefoOutcome(
        success=True,
        lots=tuple(updated),
        consumed=tuple(consumed),
        requested=desired_quantity,
        available=available,
    )
