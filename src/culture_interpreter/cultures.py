"""Supported culture codes and display names."""

from __future__ import annotations

from typing import Dict

CULTURE_NAMES: Dict[str, str] = {
    "american": "American",
    "british": "British",
    "german": "German",
    "french": "French",
    "japanese": "Japanese",
    "chinese": "Chinese (Mandarin)",
    "indian": "Indian",
    "spanish": "Spanish",
    "italian": "Italian",
    "dutch": "Dutch",
    "korean": "Korean",
    "brazilian": "Brazilian Portuguese",
    "mexican": "Mexican",
    "australian": "Australian",
    "canadian": "Canadian",
    "russian": "Russian",
    "ukrainian": "Ukrainian",
}

CULTURES = tuple(CULTURE_NAMES)


def is_supported(code: str) -> bool:
    return code in CULTURE_NAMES


def culture_name(code: str) -> str:
    return CULTURE_NAMES.get(code, code.title())
