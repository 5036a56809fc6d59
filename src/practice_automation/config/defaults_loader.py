"""Loaders for the packaged default rule set and default due-date table."""

from __future__ import annotations

import copy
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

_CONFIG_DIR = Path(__file__).resolve().parent


def _read_yaml(filename: str) -> Any:
    path = _CONFIG_DIR / filename
    if not path.exists():
        raise FileNotFoundError(f"missing packaged config file {filename}")
    raw = path.read_text(encoding="utf-8")
    return yaml.safe_load(raw)


@lru_cache
def _load_rule_documents() -> tuple[dict[str, Any], ...]:
    data = _read_yaml("default_rules.yaml")
    if isinstance(data, list):
        items = data
    elif isinstance(data, dict):
        items = data.get("rules") or []
    else:
        raise ValueError("default_rules.yaml must be a list or mapping with 'rules'")

    if not isinstance(items, list):
        raise ValueError("rules must be a list")

    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValueError(f"rules[{idx}] must be a mapping")
        if not item.get("id"):
            raise ValueError(f"rules[{idx}] missing id")
    return tuple(items)


def load_default_rules() -> list[dict[str, Any]]:
    """Return fresh copies of the default rule documents.

    Documents are returned raw; callers parse them into typed rules so that a
    broken default fails exactly like a broken stored rule.
    """
    return [copy.deepcopy(item) for item in _load_rule_documents()]


@lru_cache
def _load_due_date_table() -> dict[str, dict[str, int | None]]:
    data = _read_yaml("due_dates.yaml")
    if not isinstance(data, dict):
        raise ValueError("due_dates.yaml must be a mapping with 'due_dates'")
    raw = data.get("due_dates") or {}
    if not isinstance(raw, dict):
        raise ValueError("due_dates must be a mapping")

    table: dict[str, dict[str, int | None]] = {}
    for category, entry in raw.items():
        if not isinstance(entry, dict):
            raise ValueError(f"due_dates[{category!r}] must be a mapping")
        parsed: dict[str, int | None] = {}
        for key, value in entry.items():
            if value is not None and (not isinstance(value, int) or not 1 <= value <= 31):
                raise ValueError(f"due_dates[{category!r}].{key} must be 1..31 or null")
            parsed[str(key)] = value
        table[str(category)] = parsed
    return table


def load_default_due_dates() -> dict[str, dict[str, int | None]]:
    """Return a fresh copy of the default per-category due-day table."""
    return {category: dict(entry) for category, entry in _load_due_date_table().items()}
