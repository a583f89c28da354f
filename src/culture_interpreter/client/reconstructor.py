"""Best-effort reconstruction of a partial result from in-flight JSON text.

Two read paths:

* ``parse_progressive`` is strict. A field is present only once its value is
  syntactically complete (closed string, closed array), so a UI can decide
  which sections are ready to reveal.
* ``extract_live_text`` is lenient. It returns the still-growing value of a
  narrative string field for a typing animation.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional

from ..llm.types import INBOUND, OUTBOUND
from ..validators import DEFAULT_BOUNDS, ValidationBounds, strip_code_fence

STRING_FIELDS = {
    INBOUND: ("bottomLine", "culturalContext"),
    OUTBOUND: ("originalAnalysis", "optimizedMessage"),
}
LIVE_FIELDS = STRING_FIELDS

PartialResult = Dict[str, Any]


def _value_start(text: str, field: str, opener: str) -> Optional[int]:
    match = re.search(r'"%s"\s*:\s*%s' % (re.escape(field), re.escape(opener)), text)
    if not match:
        return None
    return match.end()


def _closing_quote(text: str, start: int) -> Optional[int]:
    escaped = False
    for i in range(start, len(text)):
        char = text[i]
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == '"':
            return i
    return None


def _closing_bracket(text: str, start: int) -> Optional[int]:
    """Index just past the ']' matching the '[' at ``start``, skipping strings."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        char = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def extract_string_field(text: str, field: str) -> Optional[str]:
    start = _value_start(text, field, '"')
    if start is None:
        return None
    end = _closing_quote(text, start)
    if end is None:
        return None
    try:
        value = json.loads(f'"{text[start:end]}"')
    except json.JSONDecodeError:
        return None
    return value or None


def _extract_array(text: str, field: str) -> Optional[List[Any]]:
    start = _value_start(text, field, "[")
    if start is None:
        return None
    end = _closing_bracket(text, start - 1)
    if end is None:
        return None
    try:
        value = json.loads(text[start - 1 : end])
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, list) else None


def _partial_score(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, int):
        return value
    return None


def _partial_emotions(items: Any, bounds: ValidationBounds) -> Optional[List[Dict[str, Any]]]:
    if not isinstance(items, list):
        return None
    emotions = []
    for item in items:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            continue
        sender_score = _partial_score(item.get("senderScore"))
        if sender_score is None:
            continue
        emotion: Dict[str, Any] = {"name": item["name"], "senderScore": sender_score}
        receiver_score = _partial_score(item.get("receiverScore"))
        if receiver_score is not None:
            emotion["receiverScore"] = receiver_score
        if isinstance(item.get("explanation"), str):
            emotion["explanation"] = item["explanation"]
        emotions.append(emotion)
    return emotions[: bounds.emotions_max] or None


def _partial_suggestions(items: Any) -> Optional[List[str]]:
    if isinstance(items, list) and items and all(isinstance(item, str) for item in items):
        return list(items)
    return None


def _from_object(data: Dict[str, Any], mode: str, bounds: ValidationBounds) -> PartialResult:
    result: PartialResult = {}
    for field in STRING_FIELDS[mode]:
        value = data.get(field)
        if isinstance(value, str) and value:
            result[field] = value
    if mode == OUTBOUND:
        suggestions = _partial_suggestions(data.get("suggestions"))
        if suggestions:
            result["suggestions"] = suggestions
    emotions = _partial_emotions(data.get("emotions"), bounds)
    if emotions:
        result["emotions"] = emotions
    return result


def _from_fragment(text: str, mode: str, bounds: ValidationBounds) -> PartialResult:
    result: PartialResult = {}
    for field in STRING_FIELDS[mode]:
        value = extract_string_field(text, field)
        if value:
            result[field] = value
    if mode == OUTBOUND:
        suggestions = _partial_suggestions(_extract_array(text, "suggestions"))
        if suggestions:
            result["suggestions"] = suggestions
    emotions = _partial_emotions(_extract_array(text, "emotions"), bounds)
    if emotions:
        result["emotions"] = emotions
    return result


def parse_progressive(text: str, mode: str, bounds: ValidationBounds = DEFAULT_BOUNDS) -> PartialResult:
    if mode not in STRING_FIELDS:
        raise ValueError(f"Unknown interpretation mode: {mode}")
    if not text or not text.strip():
        return {}
    try:
        data = json.loads(strip_code_fence(text))
    except json.JSONDecodeError:
        return _from_fragment(text, mode, bounds)
    if not isinstance(data, dict):
        return {}
    return _from_object(data, mode, bounds)


def extract_live_text(text: str, field: str) -> Optional[str]:
    """Current value of a string field, even if its closing quote has not arrived."""
    start = _value_start(text, field, '"')
    if start is None:
        return None
    end = _closing_quote(text, start)
    raw = text[start:] if end is None else text[start:end]
    # An odd run of trailing backslashes means an escape was cut off mid-way.
    match = re.search(r"(\\+)(u[0-9a-fA-F]{0,3})?$", raw)
    if match and len(match.group(1)) % 2 == 1:
        raw = raw[: match.end(1) - 1]
    try:
        return json.loads(f'"{raw}"')
    except json.JSONDecodeError:
        return raw


class ProgressiveReconstructor:
    """Tracks one streaming session; fields only ever go from absent to present."""

    def __init__(self, mode: str, bounds: ValidationBounds = DEFAULT_BOUNDS) -> None:
        if mode not in STRING_FIELDS:
            raise ValueError(f"Unknown interpretation mode: {mode}")
        self.mode = mode
        self.bounds = bounds
        self.partial: PartialResult = {}
        self.live_text: Dict[str, str] = {}

    def reset(self) -> None:
        self.partial = {}
        self.live_text = {}

    def update(self, buffer: str) -> PartialResult:
        for key, value in parse_progressive(buffer, self.mode, self.bounds).items():
            self.partial[key] = value
        for field in LIVE_FIELDS[self.mode]:
            value = extract_live_text(buffer, field)
            if value:
                self.live_text[field] = value
        return dict(self.partial)
