"""
History export service.

Writes the transaction history to a JSON file in the same layout the ledger
stores under "savedDetections" (newest first, camelCase keys), so an export
can be read back with the repository's DetectionDocument model.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Sequence, Union

from domain.transaction import TransactionRecord
from repositories.ledger_repository import transactions_to_documents

logger = logging.getLogger(__name__)


def render_history(transactions: Sequence[TransactionRecord]) -> str:
    """
    Serialize transactions as an indented JSON array.

    Snapshot references (base64 images) are kept as stored; labels keep their
    accents (no ASCII escaping).
    """

    return json.dumps(transactions_to_documents(transactions), indent=2, ensure_ascii=False)


def export_history(
    transactions: Sequence[TransactionRecord],
    output_path: Union[str, Path],
) -> int:
    """
    Export transactions to a JSON file.

    Args:
        transactions: Records to export, in the order they should appear
        output_path: Path to the output JSON file

    Returns:
        Number of records written

    Raises:
        ValueError: If there is nothing to export
    """

    if not transactions:
        raise ValueError("No transactions to export")

    path = Path(output_path)
    path.write_text(render_history(transactions) + "\n", encoding="utf-8")

    logger.info("Exported %d transaction(s) to %s", len(transactions), path)
    return len(transactions)


__all__ = ["export_history", "render_history"]
