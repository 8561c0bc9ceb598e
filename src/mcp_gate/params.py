"""
Parameter normalization for completion requests.

Keys every backend understands stay at the top level:
  max_tokens, stream, tools (Anthropic tool declarations), system.
Anything else is backend specific and travels under `extra`.
"""

from __future__ import annotations

from typing import Any

STANDARD_KEYS = {"max_tokens", "stream", "tools", "system"}


def normalize_params(params: dict | None) -> dict:
    """
    Return the standard keys plus an `extra` dict; `stream` defaults to False.

    None values are kept so adapters can decide to drop them.

    >>> normalize_params({"max_tokens": 1024, "metadata": {"user_id": "u1"}})
    {'max_tokens': 1024, 'stream': False, 'extra': {'metadata': {'user_id': 'u1'}}}
    """
    if params is None:
        return {"stream": False, "extra": {}}
    if not isinstance(params, dict):
        raise TypeError(f"params must be a dict, got {type(params).__name__}")

    user_extra = params.get("extra") or {}
    if not isinstance(user_extra, dict):
        raise TypeError("params['extra'] must be a dict")

    std: dict = {}
    moved: dict = {}
    for key, value in params.items():
        if key == "extra":
            continue
        (std if key in STANDARD_KEYS else moved)[key] = value
    std.setdefault("stream", False)

    # an explicit extra wins over moved keys
    std["extra"] = {**moved, **user_extra}
    return std


def merge_params(defaults: dict | None, overrides: dict | None) -> dict:
    """Server defaults overlaid with per-call overrides; `extra` merges per key."""
    merged: dict[str, Any] = dict(defaults or {})
    if overrides:
        extra = {**(merged.get("extra") or {}), **(overrides.get("extra") or {})}
        merged.update({k: v for k, v in overrides.items() if k != "extra"})
        merged["extra"] = extra
    return normalize_params(merged)
