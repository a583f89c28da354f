"""Server-Sent-Events framing of provider stream chunks."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from .llm.errors import LLMError
from .llm.types import CompleteChunk, ErrorChunk, StreamChunk, TextChunk

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

STREAM_ERROR_CODE = "STREAM_ERROR"
STREAM_ERROR_MESSAGE = "Streaming failed. Please try again."

# Called once with the terminal chunk; returns extra fields for the complete frame.
CompleteHook = Callable[[CompleteChunk], Awaitable[Dict[str, Any]]]


def format_event(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False, separators=(',', ':'))}\n\n"


def error_chunk_for(exc: BaseException) -> ErrorChunk:
    if isinstance(exc, LLMError):
        return ErrorChunk(code=exc.code, message=exc.user_message)
    return ErrorChunk(code=STREAM_ERROR_CODE, message=STREAM_ERROR_MESSAGE)


def frame_chunk(chunk: StreamChunk, extra: Optional[Dict[str, Any]] = None) -> str:
    payload = chunk.to_dict()
    if extra:
        metadata = {**payload.get("metadata", {}), **extra.pop("metadata", {})}
        payload.update(extra)
        if metadata:
            payload["metadata"] = metadata
    return format_event(payload)


async def frame_stream(
    chunks: AsyncIterator[StreamChunk],
    on_complete: Optional[CompleteHook] = None,
) -> AsyncIterator[str]:
    """Turns adapter chunks into SSE frames with exactly one terminal frame.

    A raised adapter error, a failing ``on_complete`` hook, or a stream that
    ends without a complete chunk all produce an error frame.
    """
    started = time.perf_counter()
    first_chunk = True
    try:
        async for chunk in chunks:
            if isinstance(chunk, TextChunk):
                if first_chunk:
                    first_chunk = False
                    logger.info("First chunk after %dms", int((time.perf_counter() - started) * 1000))
                yield frame_chunk(chunk)
            elif isinstance(chunk, CompleteChunk):
                logger.info(
                    "Stream complete after %dms chars=%d",
                    int((time.perf_counter() - started) * 1000),
                    len(chunk.raw_text),
                )
                extra = await on_complete(chunk) if on_complete else {}
                if extra.get("interpretationId") is not None:
                    chunk.interpretation_id = extra.pop("interpretationId")
                yield frame_chunk(chunk, extra)
                return
            elif isinstance(chunk, ErrorChunk):
                yield frame_chunk(chunk)
                return
        raise RuntimeError("Stream completed without final result")
    except Exception as exc:
        logger.error("Streaming interpretation failed error=%s detail=%s", type(exc).__name__, exc)
        yield frame_chunk(error_chunk_for(exc))
    finally:
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()
