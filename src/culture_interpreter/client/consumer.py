"""Per-lane streaming consumer with a single buffered fallback."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set

import httpx

from ..llm.errors import ParsingError
from ..llm.types import InterpretationResult
from ..validators import DEFAULT_BOUNDS, ValidationBounds, validate_data
from .reconstructor import PartialResult, ProgressiveReconstructor
from .sse import SSEDecoder, parse_frame

logger = logging.getLogger(__name__)

UPGRADE_CODES = ("LIMIT_EXCEEDED", "TRIAL_EXPIRED")
NETWORK_ERROR_MESSAGE = "Network error. Please check your connection and try again."
GENERIC_ERROR_MESSAGE = "Interpretation failed. Please try again."


class LaneState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETE = "complete"
    ERRORED = "errored"


@dataclass
class LaneSnapshot:
    mode: str
    state: LaneState
    streaming_text: str = ""
    partial: PartialResult = field(default_factory=dict)
    live_text: Dict[str, str] = field(default_factory=dict)
    result: Optional[InterpretationResult] = None
    error: Optional[Dict[str, str]] = None
    interpretation_id: Optional[str] = None
    messages_remaining: Optional[int] = None
    upgrade_required: bool = False
    is_loading: bool = False

    @property
    def is_streaming(self) -> bool:
        return self.state == LaneState.STREAMING

    @property
    def is_complete(self) -> bool:
        return self.state == LaneState.COMPLETE


class StreamConsumer:
    """One lane: at most one request in flight, owned by this object only.

    ``submit`` streams from the SSE endpoint. An error frame, a read failure,
    a non-OK response or a stream without a terminal frame moves the lane to
    ERRORED and retries once through the buffered endpoint. ``cancel`` aborts
    the transport, drops the buffer and returns to IDLE without retrying.
    """

    def __init__(
        self,
        mode: str,
        client: httpx.AsyncClient,
        stream_path: str = "/api/interpret/stream",
        buffered_path: str = "/api/interpret",
        bounds: ValidationBounds = DEFAULT_BOUNDS,
        on_change: Optional[Callable[[LaneSnapshot], None]] = None,
    ) -> None:
        self.mode = mode
        self._client = client
        self.stream_path = stream_path
        self.buffered_path = buffered_path
        self.bounds = bounds
        self.on_change = on_change
        self._reconstructor = ProgressiveReconstructor(mode, bounds)
        self._task: Optional[asyncio.Task] = None
        self._cancelled: Set[asyncio.Task] = set()
        self._same_culture = True
        self._clear(LaneState.IDLE)

    def _clear(self, state: LaneState) -> None:
        self.state = state
        self._buffer = ""
        self._reconstructor.reset()
        self.result: Optional[InterpretationResult] = None
        self.error: Optional[Dict[str, str]] = None
        self.interpretation_id: Optional[str] = None
        self.messages_remaining: Optional[int] = None
        self.upgrade_required = False
        self.is_loading = state == LaneState.STREAMING

    def snapshot(self) -> LaneSnapshot:
        return LaneSnapshot(
            mode=self.mode,
            state=self.state,
            streaming_text=self._buffer,
            partial=dict(self._reconstructor.partial),
            live_text=dict(self._reconstructor.live_text),
            result=self.result,
            error=dict(self.error) if self.error else None,
            interpretation_id=self.interpretation_id,
            messages_remaining=self.messages_remaining,
            upgrade_required=self.upgrade_required,
            is_loading=self.is_loading,
        )

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self.snapshot())

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    async def submit(self, message: str, sender_culture: str, receiver_culture: str) -> LaneSnapshot:
        self.cancel()
        body = {
            "message": message,
            "sender_culture": sender_culture,
            "receiver_culture": receiver_culture,
            "mode": self.mode,
        }
        self._same_culture = sender_culture == receiver_culture
        self._clear(LaneState.STREAMING)
        self._notify()

        task = asyncio.ensure_future(self._run(body))
        self._task = task
        try:
            await task
        except asyncio.CancelledError:
            if task not in self._cancelled:
                # The caller itself was cancelled.
                self._clear(LaneState.IDLE)
                raise
            self._cancelled.discard(task)
        finally:
            if self._task is task:
                self._task = None
        return self.snapshot()

    def cancel(self) -> bool:
        if not self.in_flight:
            return False
        task = self._task
        self._cancelled.add(task)
        task.cancel()
        self._task = None
        self._clear(LaneState.IDLE)
        logger.info("Streaming request cancelled mode=%s", self.mode)
        self._notify()
        return True

    def reset(self) -> None:
        self.cancel()
        self._clear(LaneState.IDLE)
        self._notify()

    async def _run(self, body: Dict[str, Any]) -> None:
        try:
            completed = await self._stream(body)
        except Exception as exc:
            logger.error("Stream interrupted mode=%s error=%s", self.mode, exc)
            completed = False
        if completed:
            return

        self.state = LaneState.ERRORED
        self._buffer = ""
        self._reconstructor.reset()
        self._notify()
        await self._fallback(body)

    async def _stream(self, body: Dict[str, Any]) -> bool:
        async with self._client.stream("POST", self.stream_path, json=body) as response:
            if response.status_code != 200:
                logger.warning("Streaming endpoint returned status=%d mode=%s", response.status_code, self.mode)
                return False
            decoder = SSEDecoder()
            async for data in response.aiter_bytes():
                for frame in decoder.feed(data):
                    outcome = self._handle_frame(frame)
                    if outcome is not None:
                        return outcome
            for frame in decoder.flush():
                outcome = self._handle_frame(frame)
                if outcome is not None:
                    return outcome
        logger.error("Stream ended without a terminal event mode=%s", self.mode)
        return False

    def _handle_frame(self, frame: str) -> Optional[bool]:
        """Applies one frame. Returns True/False on a terminal event, else None."""
        try:
            event = parse_frame(frame)
        except ValueError as exc:
            logger.warning("Skipping malformed SSE frame mode=%s error=%s", self.mode, exc)
            return None
        if event is None:
            return None

        event_type = event["type"]
        if event_type == "text":
            text = event.get("text")
            if isinstance(text, str) and text:
                self._buffer += text
                self._reconstructor.update(self._buffer)
                self._notify()
            return None
        if event_type == "complete":
            try:
                result = validate_data(event.get("interpretation"), self.mode, self._same_culture, self.bounds)
            except ParsingError as exc:
                logger.error("Complete event failed validation mode=%s error=%s", self.mode, exc)
                return False
            metadata = event.get("metadata") or {}
            self._complete(result, event.get("interpretationId"), metadata.get("messages_remaining"))
            return True
        if event_type == "error":
            error = event.get("error")
            code = error.get("code") if isinstance(error, dict) else None
            logger.warning("Stream error event mode=%s code=%s", self.mode, code)
            return False
        logger.warning("Skipping unknown SSE event type=%s", event_type)
        return None

    def _complete(self, result: InterpretationResult, interpretation_id: Any, messages_remaining: Any) -> None:
        self.state = LaneState.COMPLETE
        self._buffer = ""
        self._reconstructor.reset()
        self._reconstructor.partial = result.to_dict()
        self.result = result
        self.error = None
        self.interpretation_id = interpretation_id if isinstance(interpretation_id, str) else None
        self.messages_remaining = messages_remaining if isinstance(messages_remaining, int) else None
        self.is_loading = False
        self._notify()

    def _fail(self, code: str, message: str, upgrade_required: bool = False) -> None:
        self.state = LaneState.ERRORED
        self.error = {"code": code, "message": message}
        self.upgrade_required = upgrade_required
        self.is_loading = False
        self._notify()

    async def _fallback(self, body: Dict[str, Any]) -> None:
        logger.info("Falling back to buffered interpretation mode=%s", self.mode)
        try:
            response = await self._client.post(self.buffered_path, json=body)
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Buffered fallback failed mode=%s error=%s", self.mode, exc)
            self._fail("INTERNAL_ERROR", NETWORK_ERROR_MESSAGE)
            return

        if not isinstance(payload, dict):
            self._fail("INTERNAL_ERROR", GENERIC_ERROR_MESSAGE)
            return

        if response.status_code == 200 and payload.get("success"):
            data = payload.get("data") or {}
            try:
                result = validate_data(data.get("interpretation"), self.mode, self._same_culture, self.bounds)
            except ParsingError as exc:
                logger.error("Buffered result failed validation mode=%s error=%s", self.mode, exc)
                self._fail("INTERNAL_ERROR", GENERIC_ERROR_MESSAGE)
                return
            metadata = payload.get("metadata") or {}
            self._complete(result, data.get("interpretationId"), metadata.get("messages_remaining"))
            return

        error = payload.get("error")
        if not isinstance(error, dict):
            logger.warning("Buffered error reply without an error object status=%d mode=%s", response.status_code, self.mode)
            error = {}
        code = error.get("code") if isinstance(error.get("code"), str) and error.get("code") else "INTERNAL_ERROR"
        message = error.get("message") if isinstance(error.get("message"), str) and error.get("message") else GENERIC_ERROR_MESSAGE
        self._fail(code, message, upgrade_required=response.status_code == 403 and code in UPGRADE_CODES)
