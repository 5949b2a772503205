"""
Key-value blob stores (persistence).

The ledger persists its state as a handful of JSON documents addressed by
string keys ("stockLots", "savedDetections", legacy "stock"). This module
provides *only* the storage of those documents; it knows nothing about lots or
transactions.

Backends:
- InMemoryKeyValueStore: process-local, values round-trip through JSON so that
  callers never share mutable structures with the store.
- SupabaseKeyValueStore: one row per key in a Supabase table
  (`key text primary key, value jsonb, updated_at_utc timestamptz`).
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Protocol

from settings import Settings


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[Any]:
        """Return the stored JSON value for `key`, or None if absent."""

    def set_many(self, values: Mapping[str, Any]) -> None:
        """Overwrite every key in `values` with its JSON value."""


class InMemoryKeyValueStore:
    """Dict-backed store; handy for tests and for running without a database."""

    def __init__(self, initial: Optional[Mapping[str, Any]] = None):
        self._blobs: Dict[str, str] = {}
        if initial:
            self.set_many(initial)

    def get(self, key: str) -> Optional[Any]:
        blob = self._blobs.get(key)
        return json.loads(blob) if blob is not None else None

    def set_many(self, values: Mapping[str, Any]) -> None:
        # Serialize everything first so a bad value leaves the store untouched.
        encoded = {key: json.dumps(value) for key, value in values.items()}
        self._blobs.update(encoded)

    def keys(self) -> list[str]:
        return list(self._blobs.keys())


class SupabaseKeyValueStore:
    """Key-value documents stored as rows of a Supabase table."""

    def __init__(self, client: Any, table: str = "ledger_state"):
        self._client = client
        self._table = table

    @staticmethod
    def from_settings(settings: Settings) -> "SupabaseKeyValueStore":
        from repositories.client import create_supabase_client

        client = create_supabase_client(settings.supabase_url, settings.supabase_key)
        return SupabaseKeyValueStore(client, table=settings.kv_table)

    def get(self, key: str) -> Optional[Any]:
        response = (
            self._client.table(self._table)
            .select("value")
            .eq("key", key)
            .limit(1)
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to read {key!r} from {self._table}: {error}")

        rows = getattr(response, "data", None) or []
        if not rows:
            return None
        return rows[0].get("value")

    def set_many(self, values: Mapping[str, Any]) -> None:
        now = datetime.now(timezone.utc).isoformat()
        payload = [
            {"key": key, "value": value, "updated_at_utc": now}
            for key, value in values.items()
        ]
        if not payload:
            return

        # A single upsert request, so all keys land in one statement.
        response = self._client.table(self._table).upsert(payload, on_conflict="key").execute()
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to write ledger snapshot to {self._table}: {error}")


def build_store(settings: Settings) -> KeyValueStore:
    """Pick the configured backend."""

    if settings.backend == "supabase":
        return SupabaseKeyValueStore.from_settings(settings)
    return InMemoryKeyValueStore()


__all__ = [
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "SupabaseKeyValueStore",
    "build_store",
]
