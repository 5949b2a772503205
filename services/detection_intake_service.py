"""
Detection intake service.

Translates classifier output into confirmed ledger consumptions.

Flow:
1. The capture loop hands over every classification of a sampled frame
2. Classifications above the probability threshold whose label is not ignored
   become candidate detections
3. Candidates are held as one pending confirmation; while it is outstanding no
   new cycle is opened, whatever the camera sees
4. On confirmation each candidate becomes one consumption request (default
   quantity 1) and the batch is sent to the ledger; on cancellation nothing
   touches the ledger

The classifier and the camera are collaborators; this module only sees plain
{label, probability, image_ref} records.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from domain.transaction import UNKNOWN_ACTOR
from services.ledger_service import (
    BatchConsumeResult,
    ConsumptionRequest,
    LedgerService,
    parse_quantity,
)
from settings import DEFAULT_DETECTION_THRESHOLD, DEFAULT_IGNORED_LABELS, Settings

logger = logging.getLogger(__name__)

DEFAULT_CONFIRMED_QUANTITY: int = 1

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _whole_units(value: Any) -> Any:
    """
    Read a typed quantity the way the confirmation form always has: only the
    leading whole number counts, so "2.5" is 2 and "3 un" is 3.
    """

    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        return int(match.group(1)) if match else None
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    return value


@dataclass(frozen=True, slots=True)
class Classification:
    """One classifier prediction for a sampled frame."""

    label: str
    probability: float
    image_ref: Optional[str] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.probability <= 1.0:
            raise ValueError("probability must be within [0.0, 1.0]")


@dataclass(frozen=True, slots=True)
class PendingConfirmation:
    """Detections waiting for a human to confirm or cancel them."""

    detections: List[Classification]

    @property
    def labels(self) -> List[str]:
        return [detection.label for detection in self.detections]


class DetectionIntakeAdapter:
    """Gatekeeper between the classifier loop and the ledger."""

    def __init__(
        self,
        ledger: LedgerService,
        *,
        threshold: float = DEFAULT_DETECTION_THRESHOLD,
        ignored_labels: Iterable[str] = DEFAULT_IGNORED_LABELS,
    ):
        if not 0.0 <= threshold <= 1.0:
            raise ValueError("threshold must be within [0.0, 1.0]")
        self._ledger = ledger
        self._threshold = threshold
        self._ignored = frozenset(label.strip().lower() for label in ignored_labels)
        self._pending: Optional[PendingConfirmation] = None

    @classmethod
    def from_settings(cls, ledger: LedgerService, settings: Settings) -> "DetectionIntakeAdapter":
        return cls(ledger, threshold=settings.detection_threshold, ignored_labels=settings.ignored_labels)

    @property
    def pending(self) -> Optional[PendingConfirmation]:
        return self._pending

    def filter_detections(self, classifications: Iterable[Classification]) -> List[Classification]:
        """Keep predictions strictly above the threshold whose label is not ignored."""

        return [
            c
            for c in classifications
            if c.probability > self._threshold and c.label.strip().lower() not in self._ignored
        ]

    def offer(self, classifications: Iterable[Classification]) -> Optional[PendingConfirmation]:
        """
        Feed one sampling cycle.

        Returns the new pending confirmation, or None if nothing qualified or a
        confirmation is still outstanding.
        """

        if self._pending is not None:
            return None

        detections = self.filter_detections(classifications)
        if not detections:
            return None

        self._pending = PendingConfirmation(detections=detections)
        logger.info("Detections awaiting confirmation: %s", ", ".join(self._pending.labels))
        return self._pending

    def confirm(self, quantity: Any = None, actor: str = UNKNOWN_ACTOR) -> BatchConsumeResult:
        """
        Confirm the pending detections and consume them from the ledger.

        quantity applies to every detection; unspecified, non-numeric or
        non-positive values fall back to 1; fractions are
        truncated to their whole part.
        """

        pending = self._pending
        if pending is None:
            return BatchConsumeResult(outcomes=[])

        amount = parse_quantity(_whole_units(quantity)) or DEFAULT_CONFIRMED_QUANTITY
        requests = [
            ConsumptionRequest(
                sku=detection.label,
                quantity=amount,
                actor=actor or UNKNOWN_ACTOR,
                snapshot_ref=detection.image_ref,
                confidence_score=detection.probability,
            )
            for detection in pending.detections
        ]

        # The confirmation is closed whatever the ledger answers.
        self._pending = None
        return self._ledger.consume_batch(requests)

    def cancel(self) -> None:
        if self._pending is not None:
            logger.info("Detections dismissed: %s", ", ".join(self._pending.labels))
        self._pending = None


__all__ = [
    "Classification",
    "DetectionIntakeAdapter",
    "PendingConfirmation",
]
