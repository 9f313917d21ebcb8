"""Consultant persona, welcome message and prompt fragments (app/knowledge/consultant.yaml)."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

_CONSULTANT_PATH = Path(__file__).resolve().parents[1] / "knowledge" / "consultant.yaml"

_REQUIRED_KEYS = (
    "welcome_message",
    "system_prompt",
    "closing_rules",
    "catalog_sent_hint",
    "no_knowledge",
    "no_listings",
)


@lru_cache(maxsize=1)
def load_consultant_script() -> dict[str, Any]:
    with _CONSULTANT_PATH.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    missing = [key for key in _REQUIRED_KEYS if not data.get(key)]
    if missing:
        raise ValueError(f"consultant.yaml is missing keys: {', '.join(missing)}")
    return data


def get_welcome_message() -> str:
    return load_consultant_script()["welcome_message"].strip()


def get_fragment(key: str) -> str:
    return str(load_consultant_script()[key]).strip()
