import asyncio
import json
import logging

from culture_interpreter.llm.errors import RateLimitError
from culture_interpreter.llm.types import CompleteChunk, InboundResult, LLMEmotion, LLMMetadata, TextChunk
from culture_interpreter.streaming import format_event, frame_stream


def _complete():
    return CompleteChunk(
        interpretation=InboundResult("Short answer.", "Some context.", [LLMEmotion("Calm", 2)]),
        metadata=LLMMetadata(cost_usd=0.001, response_time_ms=120, token_count=10, model="m"),
    )


def _payloads(frames):
    assert all(frame.startswith("data: ") and frame.endswith("\n\n") for frame in frames)
    return [json.loads(frame[len("data: "):]) for frame in frames]


async def _frames(chunks, on_complete=None):
    return [frame async for frame in frame_stream(chunks, on_complete)]


def test_format_event_is_compact_and_keeps_unicode():
    assert format_event({"type": "text", "text": "こんにちは"}) == 'data: {"type":"text","text":"こんにちは"}\n\n'


def test_text_then_complete_with_hook_extras():
    async def chunks():
        yield TextChunk('{"bottom')
        yield TextChunk('Line": "x"}')
        yield _complete()

    async def on_complete(chunk):
        return {"interpretationId": "abc-123", "metadata": {"messages_remaining": 4}}

    payloads = _payloads(asyncio.run(_frames(chunks(), on_complete)))

    assert [p["type"] for p in payloads] == ["text", "text", "complete"]
    complete = payloads[-1]
    assert complete["interpretationId"] == "abc-123"
    assert complete["metadata"]["messages_remaining"] == 4
    assert complete["metadata"]["model"] == "m"
    assert complete["interpretation"]["emotions"] == [{"name": "Calm", "senderScore": 2}]


def test_adapter_error_becomes_single_error_frame():
    async def chunks():
        yield TextChunk("{")
        raise RateLimitError(30)

    payloads = _payloads(asyncio.run(_frames(chunks())))

    assert [p["type"] for p in payloads] == ["text", "error"]
    assert payloads[-1]["error"]["code"] == "LLM_RATE_LIMITED"


def test_stream_without_complete_ends_with_error():
    async def chunks():
        yield TextChunk("{")

    payloads = _payloads(asyncio.run(_frames(chunks())))
    assert payloads[-1] == {
        "type": "error",
        "error": {"code": "STREAM_ERROR", "message": "Streaming failed. Please try again."},
    }


def test_failing_hook_produces_error_instead_of_complete():
    async def chunks():
        yield _complete()

    async def on_complete(chunk):
        raise RuntimeError("database is locked")

    payloads = _payloads(asyncio.run(_frames(chunks(), on_complete)))
    assert [p["type"] for p in payloads] == ["error"]


def test_completion_log_reports_raw_text_length(caplog):
    chunk = _complete()
    chunk.raw_text = '{"bottomLine": "Short answer."}'

    async def chunks():
        yield chunk

    with caplog.at_level(logging.INFO):
        asyncio.run(_frames(chunks()))

    assert f"chars={len(chunk.raw_text)}" in caplog.text
