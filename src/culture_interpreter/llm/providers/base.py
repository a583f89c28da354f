"""Interpretation provider interface."""

from __future__ import annotations

from typing import AsyncIterator, Optional, Protocol

from ..types import InterpretationOutput, InterpretationRequest, StreamChunk


class InterpretationProvider(Protocol):
    name: str
    model: str

    async def interpret(self, request: InterpretationRequest, mode: Optional[str] = None) -> InterpretationOutput:
        ...

    def interpret_stream(self, request: InterpretationRequest, mode: Optional[str] = None) -> AsyncIterator[StreamChunk]:
        ...
