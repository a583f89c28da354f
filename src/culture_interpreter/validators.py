"""Parsing and structural validation of raw model output."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .llm.errors import ParsingError
from .llm.types import INBOUND, OUTBOUND, InboundResult, InterpretationResult, LLMEmotion, OutboundResult

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


@dataclass(frozen=True)
class ValidationBounds:
    emotions_min: int = 1
    emotions_max: int = 3
    suggestions_min: int = 1
    suggestions_max: int = 5

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "ValidationBounds":
        cfg = config.get("validation", {})
        defaults = cls()
        return cls(
            emotions_min=int(cfg.get("emotions_min", defaults.emotions_min)),
            emotions_max=int(cfg.get("emotions_max", defaults.emotions_max)),
            suggestions_min=int(cfg.get("suggestions_min", defaults.suggestions_min)),
            suggestions_max=int(cfg.get("suggestions_max", defaults.suggestions_max)),
        )


DEFAULT_BOUNDS = ValidationBounds()


def strip_code_fence(raw_text: str) -> str:
    """Returns the first fenced block wherever it sits, or the stripped text."""
    text = raw_text.strip()
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text


def _required_string(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ParsingError(f"Missing or empty {key} field", {"field": key})
    return value


def _score(value: Any) -> Optional[int]:
    """Returns the integer score, or None when it is not an integer in [0, 10]."""
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or not 0 <= value <= 10:
        return None
    return value


def _validate_emotion(item: Any, index: int, same_culture: bool) -> LLMEmotion:
    if not isinstance(item, dict):
        raise ParsingError(f"Emotion at index {index} is not an object", {"index": index})

    name = item.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ParsingError(f"Emotion at index {index} missing name", {"index": index})

    sender_score = _score(item.get("senderScore"))
    if sender_score is None:
        raise ParsingError(f"Emotion at index {index} has invalid senderScore", {"index": index})

    receiver_score = None
    if "receiverScore" in item and item["receiverScore"] is not None:
        receiver_score = _score(item["receiverScore"])
        if receiver_score is None:
            raise ParsingError(f"Emotion at index {index} has invalid receiverScore", {"index": index})
    elif not same_culture:
        raise ParsingError(
            f"Emotion at index {index} missing receiverScore (required for cross-culture)",
            {"index": index},
        )

    explanation = item.get("explanation")
    return LLMEmotion(
        name=name,
        sender_score=sender_score,
        receiver_score=receiver_score,
        explanation=explanation if isinstance(explanation, str) else None,
    )


def _validate_emotions(data: Dict[str, Any], same_culture: bool, bounds: ValidationBounds) -> List[LLMEmotion]:
    raw = data.get("emotions")
    if not isinstance(raw, list) or not raw:
        raise ParsingError("Missing or empty emotions array", {"field": "emotions"})
    if len(raw) < bounds.emotions_min:
        raise ParsingError(
            f"Expected at least {bounds.emotions_min} emotions, got {len(raw)}",
            {"field": "emotions"},
        )
    emotions = [_validate_emotion(item, i, same_culture) for i, item in enumerate(raw)]
    return emotions[: bounds.emotions_max]


def _validate_suggestions(data: Dict[str, Any], bounds: ValidationBounds) -> List[str]:
    raw = data.get("suggestions")
    if not isinstance(raw, list):
        raise ParsingError("Missing suggestions array", {"field": "suggestions"})
    if not bounds.suggestions_min <= len(raw) <= bounds.suggestions_max:
        raise ParsingError(
            f"Expected {bounds.suggestions_min}-{bounds.suggestions_max} suggestions, got {len(raw)}",
            {"field": "suggestions", "count": len(raw)},
        )
    for i, item in enumerate(raw):
        if not isinstance(item, str) or not item.strip():
            raise ParsingError(f"Suggestion at index {i} is empty", {"index": i})
    return list(raw)


def validate(
    raw_text: str,
    mode: str,
    same_culture: bool,
    bounds: ValidationBounds = DEFAULT_BOUNDS,
) -> InterpretationResult:
    """Parses raw model text into an inbound or outbound result.

    Raises ParsingError on any structural problem. Pure: no I/O.
    """
    json_text = strip_code_fence(raw_text)
    try:
        data = json.loads(json_text)
    except json.JSONDecodeError as exc:
        raise ParsingError("Failed to parse response as JSON", {"error": str(exc)}) from exc

    return validate_data(data, mode, same_culture, bounds)


def validate_data(
    data: Any,
    mode: str,
    same_culture: bool,
    bounds: ValidationBounds = DEFAULT_BOUNDS,
) -> InterpretationResult:
    """Validates an already-decoded payload, e.g. the interpretation in a complete event."""
    if not isinstance(data, dict):
        raise ParsingError("Response is not an object", {"type": type(data).__name__})

    if mode == INBOUND:
        return InboundResult(
            bottom_line=_required_string(data, "bottomLine"),
            cultural_context=_required_string(data, "culturalContext"),
            emotions=_validate_emotions(data, same_culture, bounds),
        )
    if mode == OUTBOUND:
        return OutboundResult(
            original_analysis=_required_string(data, "originalAnalysis"),
            suggestions=_validate_suggestions(data, bounds),
            optimized_message=_required_string(data, "optimizedMessage"),
            emotions=_validate_emotions(data, same_culture, bounds),
        )
    raise ParsingError(f"Unknown interpretation mode: {mode}", {"mode": mode})
