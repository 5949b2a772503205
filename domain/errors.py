"""
Domain: ledger failure taxonomy.

Business conditions are values, not exceptions: the Ledger Service returns them
inside its result objects and never raises for them. The only raised type is
PersistenceFailure, since the ledger cannot promise durability without the
store.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True, slots=True)
class InsufficientStock:
    sku: str
    requested: int
    available: int

    @property
    def shortfall(self) -> int:
        return max(self.requested - self.available, 0)

    @property
    def message(self) -> str:
        return (
            f"Insufficient stock for {self.sku}. "
            f"Requested: {self.requested}, Available: {self.available}"
        )


@dataclass(frozen=True, slots=True)
class InvalidQuantity:
    value: Any

    @property
    def message(self) -> str:
        return f"Invalid quantity: {self.value!r} (must be a positive whole number)"


@dataclass(frozen=True, slots=True)
class UnknownTransaction:
    transaction_id: str

    @property
    def message(self) -> str:
        return f"Transaction not found: {self.transaction_id}"


@dataclass(frozen=True, slots=True)
class DuplicateLot:
    """A restock named a lot id that the SKU already holds."""

    sku: str
    lot_id: str

    @property
    def message(self) -> str:
        return f"Lot {self.lot_id} already exists for {self.sku}"


@dataclass(frozen=True, slots=True)
class CorrectionFailForward:
    """
    Warning for a correction whose re-apply step failed.

    The original quantity was already restocked and stays restocked; the
    transaction was left untouched. Someone has to reconcile by hand.
    """

    transaction_id: str
    sku: str
    restocked_quantity: int

    @property
    def message(self) -> str:
        return (
            f"Correction of transaction {self.transaction_id} was not applied, but "
            f"{self.restocked_quantity} unit(s) were already returned to {self.sku}. "
            "Manual reconciliation required."
        )


LedgerFailure = Union[InsufficientStock, InvalidQuantity, UnknownTransaction, DuplicateLot]


class PersistenceFailure(RuntimeError):
    """Raised when a ledger snapshot could not be read from or written to the store."""

    def __init__(self, cause: BaseException, action: str = "write ledger snapshot"):
        self.cause = cause
        self.action = action
        super().__init__(f"Failed to {action}: {cause}")
