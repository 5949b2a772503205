"""
Domain: stock lots.

A Lot is an indivisible batch of stock for one SKU, received at a known time.

Rules implemented here:
- quantity is a non-negative integer at all times.
- A lot with quantity == 0 is exhausted and eligible for removal from the
  active list.
- received_at is the FEFO ordering key (oldest received is consumed first,
  since no explicit expiry date is tracked).

This module contains only pure domain value objects: no I/O, no persistence.
All timestamps must be passed explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .time import require_utc_timestamp


def _require_non_negative_int(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value)!r}")
    if value < 0:
        raise ValueError(f"{name} must be >= 0")


@dataclass(frozen=True, slots=True)
class Lot:
    """
    Immutable batch of stock for a single SKU.

    Debiting returns a new instance; the original is never mutated.
    """

    lot_id: str
    quantity: int
    received_at: datetime

    def __post_init__(self) -> None:
        if not self.lot_id:
            raise ValueError("lot_id must not be empty")
        _require_non_negative_int("quantity", self.quantity)
        require_utc_timestamp("received_at", self.received_at)

    @property
    def is_exhausted(self) -> bool:
        return self.quantity == 0

    def debited(self, amount: int) -> "Lot":
        """Return a copy of this lot with `amount` units taken out."""

        _require_non_negative_int("amount", amount)
        if amount > self.quantity:
            raise ValueError(
                f"Cannot debit {amount} from lot {self.lot_id!r} holding {self.quantity}"
            )
        return Lot(lot_id=self.lot_id, quantity=self.quantity - amount, received_at=self.received_at)


@dataclass(frozen=True, slots=True)
class LotConsumption:
    """One line of a consumption breakdown: which lot was debited, and by how much."""

    lot_id: str
    quantity_taken: int
    received_at: datetime

    def __post_init__(self) -> None:
        _require_non_negative_int("quantity_taken", self.quantity_taken)
        require_utc_timestamp("received_at", self.received_at)


def total_quantity(lots) -> int:
    """Sum of quantities across `lots` (0 for an empty sequence)."""

    return sum(lot.quantity for lot in lots)
