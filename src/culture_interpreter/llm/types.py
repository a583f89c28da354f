"""Shared interpretation data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

INBOUND = "inbound"
OUTBOUND = "outbound"
MODES = (INBOUND, OUTBOUND)


@dataclass
class InterpretationRequest:
    message: str
    sender_culture: str
    receiver_culture: str
    same_culture: bool
    mode: str = INBOUND

    @classmethod
    def create(cls, message: str, sender_culture: str, receiver_culture: str, mode: str = INBOUND) -> "InterpretationRequest":
        return cls(
            message=message,
            sender_culture=sender_culture,
            receiver_culture=receiver_culture,
            same_culture=sender_culture == receiver_culture,
            mode=mode,
        )


@dataclass
class LLMEmotion:
    name: str
    sender_score: int
    receiver_score: Optional[int] = None
    explanation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "senderScore": self.sender_score}
        if self.receiver_score is not None:
            data["receiverScore"] = self.receiver_score
        if self.explanation is not None:
            data["explanation"] = self.explanation
        return data


@dataclass
class InboundResult:
    bottom_line: str
    cultural_context: str
    emotions: List[LLMEmotion]
    mode = INBOUND

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bottomLine": self.bottom_line,
            "culturalContext": self.cultural_context,
            "emotions": [e.to_dict() for e in self.emotions],
        }


@dataclass
class OutboundResult:
    original_analysis: str
    suggestions: List[str]
    optimized_message: str
    emotions: List[LLMEmotion]
    mode = OUTBOUND

    def to_dict(self) -> Dict[str, Any]:
        return {
            "originalAnalysis": self.original_analysis,
            "suggestions": list(self.suggestions),
            "optimizedMessage": self.optimized_message,
            "emotions": [e.to_dict() for e in self.emotions],
        }


InterpretationResult = Union[InboundResult, OutboundResult]


@dataclass
class LLMMetadata:
    cost_usd: float
    response_time_ms: int
    token_count: int
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "costUsd": self.cost_usd,
            "responseTimeMs": self.response_time_ms,
            "tokenCount": self.token_count,
            "model": self.model,
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "cacheReadTokens": self.cache_read_tokens,
            "cacheCreationTokens": self.cache_creation_tokens,
        }


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0


@dataclass
class TextChunk:
    text: str
    type = "text"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass
class CompleteChunk:
    """Terminal success item; always the last item a stream yields."""

    interpretation: InterpretationResult
    metadata: LLMMetadata
    interpretation_id: Optional[str] = None
    raw_text: str = field(default="", repr=False)
    type = "complete"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type,
            "interpretation": self.interpretation.to_dict(),
            "metadata": self.metadata.to_dict(),
        }
        if self.interpretation_id is not None:
            data["interpretationId"] = self.interpretation_id
        return data


@dataclass
class ErrorChunk:
    code: str
    message: str
    type = "error"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "error": {"code": self.code, "message": self.message}}


StreamChunk = Union[TextChunk, CompleteChunk, ErrorChunk]


@dataclass
class InterpretationOutput:
    interpretation: InterpretationResult
    metadata: LLMMetadata
