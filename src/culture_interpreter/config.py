"""Configuration loading and defaults."""

from __future__ import annotations

import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict

import yaml

DEFAULT_SETTINGS: Dict[str, Any] = {
    "llm": {
        "provider": "anthropic",
        "model": "claude-sonnet-4-5-20250929",
        "timeout_ms": 30000,
        "max_tokens": 1500,
        "temperature": 0.7,
        "base_url": "https://api.anthropic.com",
        "api_version": "2023-06-01",
        "stream_queue_size": 64,
    },
    "pricing": {
        "input_per_1m": 3.00,
        "output_per_1m": 15.00,
        "cache_write_per_1m": 3.75,
        "cache_read_per_1m": 0.30,
    },
    "validation": {
        "emotions_min": 1,
        "emotions_max": 3,
        "suggestions_min": 1,
        "suggestions_max": 5,
    },
    "limits": {
        "message_max_chars": 2000,
        "messages_per_user": None,
    },
    "cost_limits": {
        "daily_usd": 50.0,
        "hourly_usd": 5.0,
        "user_daily_usd": 1.0,
    },
    "database": {
        "path": "data/culture_interpreter.db",
    },
    "server": {
        "host": "127.0.0.1",
        "port": 8000,
    },
    "client": {
        "base_url": "http://127.0.0.1:8000",
        "stream_path": "/api/interpret/stream",
        "buffered_path": "/api/interpret",
        "timeout_seconds": 60,
    },
}

# Environment variable -> (section, key, caster)
ENV_OVERRIDES = {
    "LLM_PROVIDER": ("llm", "provider", str),
    "LLM_MODEL": ("llm", "model", str),
    "LLM_TIMEOUT_MS": ("llm", "timeout_ms", int),
    "DATABASE_PATH": ("database", "path", str),
    "COST_LIMIT_DAILY": ("cost_limits", "daily_usd", float),
    "COST_LIMIT_HOURLY": ("cost_limits", "hourly_usd", float),
    "COST_LIMIT_USER_DAILY": ("cost_limits", "user_daily_usd", float),
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_env(settings: Dict[str, Any]) -> Dict[str, Any]:
    for env_name, (section, key, caster) in ENV_OVERRIDES.items():
        raw = os.getenv(env_name)
        if raw is None or raw.strip() == "":
            continue
        try:
            settings.setdefault(section, {})[key] = caster(raw.strip())
        except ValueError as exc:
            raise ValueError(f"Invalid value for {env_name}: {raw!r}") from exc
    return settings


def load_settings(settings_path: str = "config/settings.yaml") -> Dict[str, Any]:
    """Loads settings.yaml, merges it onto defaults and applies env overrides."""
    merged = deepcopy(DEFAULT_SETTINGS)
    config_path = Path(settings_path)
    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as f:
            user_cfg = yaml.safe_load(f) or {}
        merged = _deep_merge(merged, user_cfg)
    return _apply_env(merged)


def get_api_key() -> str | None:
    key = os.getenv("ANTHROPIC_API_KEY")
    return key.strip() if key and key.strip() else None
