"""Completion backends and their credentials."""

from __future__ import annotations

import os
from enum import Enum

from dotenv import load_dotenv


class Provider(str, Enum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"

    @classmethod
    def parse(cls, value: "str | Provider") -> "Provider":
        """Accept an enum member or its (case-insensitive) name."""
        if isinstance(value, Provider):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError as exc:
            choices = ", ".join(p.value for p in cls)
            raise ValueError(f"Unknown provider {value!r} (expected one of: {choices})") from exc


_ENV_VARS: dict[Provider, str] = {
    Provider.ANTHROPIC: "ANTHROPIC_API_KEY",
    Provider.OPENAI: "OPENAI_API_KEY",
}

DEFAULT_MODELS: dict[Provider, str] = {
    Provider.ANTHROPIC: "claude-3-haiku-20240307",
    Provider.OPENAI: "gpt-4o-mini",
}


def get_api_key(provider: Provider) -> str:
    """Look up the API key for ``provider`` in the environment (and ``.env``)."""
    load_dotenv()
    env = _ENV_VARS.get(provider)
    if not env:
        raise RuntimeError(f"No config for {provider}")
    key = os.getenv(env)
    if not key:
        raise RuntimeError(f"{env} missing")
    return key
