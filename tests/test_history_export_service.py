"""
Tests for `services/history_export_service.py`.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from repositories.ledger_repository import DetectionDocument
from services.history_export_service import export_history, render_history
from services.ledger_service import LedgerService

JAN_1 = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def history(service: LedgerService, clock) -> LedgerService:
    service.restock("mask", 5, lot_id="M1", received_at=JAN_1)
    service.restock("soro fisiológico", 5, lot_id="S1", received_at=JAN_1)
    first = service.consume("mask", 2, actor="nurse", confidence_score=0.91).transaction
    clock.advance(minutes=5)
    service.consume("soro fisiológico", 1, actor="nurse", snapshot_ref="data:image/png;base64,DDDD")
    clock.advance(minutes=5)
    service.correct(first.transaction_id, new_quantity=1, actor="supervisor")
    return service


def test_exported_file_reads_back_as_stored_detections(history: LedgerService, tmp_path) -> None:
    """Verify every exported entry validates as a DetectionDocument with matching values."""

    output = tmp_path / "detections.json"

    written = export_history(history.transactions(), output)

    raw = json.loads(output.read_text(encoding="utf-8"))
    documents = [DetectionDocument.model_validate(item) for item in raw]
    assert written == 2
    assert [doc.id for doc in documents] == [record.transaction_id for record in history.transactions()]
    assert [doc.label for doc in documents] == ["soro fisiológico", "mask"]
    assert documents[0].image == "data:image/png;base64,DDDD"
    assert documents[1].quantity == 1
    assert documents[1].corrected_by == "supervisor"
    assert documents[1].previous_quantity == 2
    assert [(line.lot_id, line.qty) for line in documents[1].consumed_lots] == [("M1", 1)]


def test_export_uses_stored_key_names(history: LedgerService) -> None:
    (newest, oldest) = json.loads(render_history(history.transactions()))

    assert "consumedLots" in newest
    assert newest["user"] == "nurse"
    assert oldest["correctedBy"] == "supervisor"
    assert "previousLabel" in oldest
    assert "correctedBy" not in newest


def test_export_keeps_accents_readable(history: LedgerService) -> None:
    assert "fisiológico" in render_history(history.transactions())


def test_export_with_no_transactions_is_rejected(tmp_path) -> None:
    output = tmp_path / "empty.json"

    with pytest.raises(ValueError):
        export_history((), output)

    assert not output.exists()
