"""
Runtime configuration.

Values are read from the environment, with a `.env` file in the project root
loaded first (python-dotenv), the same way the Supabase client is configured.

Environment variables:
- LEDGER_BACKEND: "memory" (default) or "supabase"
- SUPABASE_URL / SUPABASE_KEY: required only for the supabase backend
- LEDGER_KV_TABLE: Supabase table holding the key-value snapshot (default "ledger_state")
- DETECTION_THRESHOLD: minimum classifier probability to prompt a confirmation (default 0.85)
- DETECTION_IGNORED_LABELS: semicolon-separated labels never treated as detections
- LOW_STOCK_THRESHOLD: totals at or below this are reported as low stock (default 10)
- INITIAL_LOT_QUANTITY: quantity of each seeded lot on a brand-new ledger (default 20)
- INITIAL_STOCK_LABELS: semicolon-separated labels seeded on a brand-new ledger

Lists are split on ";" because labels may contain commas ("soro_fisiológico_0,9%").
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv

ENV_PATH = Path(__file__).parent / ".env"

DEFAULT_DETECTION_THRESHOLD: float = 0.85
DEFAULT_IGNORED_LABELS: Tuple[str, ...] = ("none / outros", "none", "outros")
DEFAULT_LOW_STOCK_THRESHOLD: int = 10
DEFAULT_INITIAL_LOT_QUANTITY: int = 20
LIST_SEPARATOR: str = ";"

# Labels the supply classifier was trained on.
DEFAULT_INITIAL_STOCK_LABELS: Tuple[str, ...] = (
    "soro_fisiológico_0,9%",
    "mascara",
    "caixa_de_máscara_10_unidades",
    "luva_latex_m_10_unidades",
    "seringa",
    "luvas",
    "alcool",
    "termometro",
    "avental",
    "agulha",
    "tubo_ensaio",
    "pipeta",
    "centrifuga",
    "microscopio",
    "ataduras",
)


def _split_list(raw: Optional[str], default: Tuple[str, ...]) -> Tuple[str, ...]:
    if raw is None:
        return default
    return tuple(part.strip() for part in raw.split(LIST_SEPARATOR) if part.strip())


@dataclass(frozen=True, slots=True)
class Settings:
    backend: str = "memory"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    kv_table: str = "ledger_state"
    detection_threshold: float = DEFAULT_DETECTION_THRESHOLD
    ignored_labels: Tuple[str, ...] = DEFAULT_IGNORED_LABELS
    low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD
    initial_lot_quantity: int = DEFAULT_INITIAL_LOT_QUANTITY
    initial_stock_labels: Tuple[str, ...] = DEFAULT_INITIAL_STOCK_LABELS

    def __post_init__(self) -> None:
        if self.backend not in ("memory", "supabase"):
            raise ValueError(f"Unsupported LEDGER_BACKEND: {self.backend!r}")
        if not 0.0 <= self.detection_threshold <= 1.0:
            raise ValueError("DETECTION_THRESHOLD must be within [0.0, 1.0]")
        if self.low_stock_threshold < 0:
            raise ValueError("LOW_STOCK_THRESHOLD must be >= 0")
        if self.initial_lot_quantity < 0:
            raise ValueError("INITIAL_LOT_QUANTITY must be >= 0")

    @staticmethod
    def from_env(environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from `environ` (defaults to os.environ after loading .env).
        """

        if environ is None:
            load_dotenv(dotenv_path=ENV_PATH)
            environ = os.environ

        return Settings(
            backend=environ.get("LEDGER_BACKEND", "memory").strip().lower(),
            supabase_url=environ.get("SUPABASE_URL"),
            supabase_key=environ.get("SUPABASE_KEY"),
            kv_table=environ.get("LEDGER_KV_TABLE", "ledger_state"),
            detection_threshold=float(environ.get("DETECTION_THRESHOLD", DEFAULT_DETECTION_THRESHOLD)),
            ignored_labels=_split_list(environ.get("DETECTION_IGNORED_LABELS"), DEFAULT_IGNORED_LABELS),
            low_stock_threshold=int(environ.get("LOW_STOCK_THRESHOLD", DEFAULT_LOW_STOCK_THRESHOLD)),
            initial_lot_quantity=int(environ.get("INITIAL_LOT_QUANTITY", DEFAULT_INITIAL_LOT_QUANTITY)),
            initial_stock_labels=_split_list(
                environ.get("INITIAL_STOCK_LABELS"), DEFAULT_INITIAL_STOCK_LABELS
            ),
        )


__all__ = ["Settings"]
