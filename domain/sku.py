"""
Domain: SKU identifiers.

A SKU is the normalized form of a classifier label and is the ledger's primary
key. Normalization is applied on every lookup and every write:
- lower-case
- every space replaced with the join character ("_"), one for one

Nothing is stripped or collapsed, so keys written by earlier versions of the
app stay reachable: "luva  latex" (two spaces) addresses "luva__latex".
"""

from __future__ import annotations

SKU_JOIN_CHAR: str = "_"


def normalize_sku(label: str) -> str:
    """
    Normalize a label into its SKU key.

    Raises for None, non-string or blank labels; these are programmer errors,
    not business conditions.
    """

    if label is None:
        raise TypeError("sku must not be None")
    if not isinstance(label, str):
        raise TypeError(f"sku must be a string, got {type(label)!r}")
    if not label.strip():
        raise ValueError("sku must not be blank")

    return label.lower().replace(" ", SKU_JOIN_CHAR)
