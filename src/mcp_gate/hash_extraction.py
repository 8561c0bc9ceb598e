"""
Transaction hash extraction from tool output.

The tool server reports a submitted transaction in one of a handful of
shapes: a bare hash, an object with a hash field, a list of MCP content
items whose ``text`` is itself JSON, or a free-text message. The matchers
below are tried in a fixed priority order and the first hit wins.
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional

__all__ = ["NO_HASH", "HASH_FIELDS", "find_transaction_hash", "extract_transaction_hash"]

NO_HASH = "N/A"
HASH_FIELDS = ("hash", "transaction_hash", "txHash")

_HEX64 = re.compile(r"[0-9A-Fa-f]{64}")
_FREE_TEXT = re.compile(r"hash['\":\s]+([0-9A-Fa-f]{64})", re.IGNORECASE)


def _is_hash(value: Any) -> bool:
    return isinstance(value, str) and _HEX64.fullmatch(value) is not None


def _from_fields(obj: dict[str, Any]) -> Optional[str]:
    for field in HASH_FIELDS:
        value = obj.get(field)
        if _is_hash(value):
            return value
    return None


def _from_items(items: list[Any]) -> Optional[str]:
    for item in items:
        if not isinstance(item, dict):
            continue
        text = item.get("text")
        if isinstance(text, str):
            found = find_transaction_hash(text)
            if found:
                return found
        found = _from_fields(item)
        if found:
            return found
    return None


def _from_string(text: str) -> Optional[str]:
    stripped = text.strip()
    if stripped[:1] in ("{", "["):
        try:
            parsed = json.loads(stripped)
        except json.JSONDecodeError:
            pass
        else:
            found = find_transaction_hash(parsed)
            if found:
                return found

    match = _FREE_TEXT.search(text)
    return match.group(1) if match else None


def find_transaction_hash(payload: Any) -> Optional[str]:
    """
    Return the first transaction hash found in ``payload``, or None.

    Priority: bare 64-hex string, object hash fields, list items, JSON text,
    then a ``hash: <hex>`` pattern anywhere in free text.
    """
    if _is_hash(payload):
        return payload
    if isinstance(payload, dict):
        return _from_fields(payload)
    if isinstance(payload, list):
        return _from_items(payload)
    if isinstance(payload, str):
        return _from_string(payload)
    return None


def extract_transaction_hash(payload: Any) -> str:
    """
    Like :func:`find_transaction_hash`, but falls back to ``NO_HASH``.

    >>> extract_transaction_hash({"txHash": "ab" * 32}) == "ab" * 32
    True
    >>> extract_transaction_hash("submitted, no receipt yet")
    'N/A'
    """
    return find_transaction_hash(payload) or NO_HASH
