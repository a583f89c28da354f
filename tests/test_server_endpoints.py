import copy
import json
import logging

from fastapi.testclient import TestClient

from culture_interpreter.config import DEFAULT_SETTINGS
from culture_interpreter.llm.errors import LLMTimeoutError, RateLimitError
from culture_interpreter.llm.types import (
    CompleteChunk,
    InboundResult,
    InterpretationOutput,
    LLMEmotion,
    LLMMetadata,
    TextChunk,
)
from culture_interpreter.models import get_connection
from culture_interpreter.server import create_app


RESULT = InboundResult(
    bottom_line="They are saying no, kindly.",
    cultural_context="Direct refusals feel rude.",
    emotions=[LLMEmotion("Discomfort", 6, 3)],
)
METADATA = LLMMetadata(cost_usd=0.0042, response_time_ms=850, token_count=1400, model="fake-model", input_tokens=1200, output_tokens=200)

BODY = {
    "message": "That would be difficult.",
    "sender_culture": "japanese",
    "receiver_culture": "american",
    "mode": "inbound",
}


class FakeProvider:
    name = "fake"
    model = "fake-model"

    def __init__(self, error=None):
        self.error = error
        self.requests = []

    async def interpret(self, request, mode=None):
        self.requests.append(request)
        if self.error:
            raise self.error
        return InterpretationOutput(interpretation=RESULT, metadata=METADATA)

    async def interpret_stream(self, request, mode=None):
        self.requests.append(request)
        text = json.dumps(RESULT.to_dict())
        for i in range(0, len(text), 20):
            yield TextChunk(text[i : i + 20])
        if self.error:
            raise self.error
        yield CompleteChunk(interpretation=RESULT, metadata=METADATA, raw_text=text)


def _config(tmp_path, messages_per_user=None):
    config = copy.deepcopy(DEFAULT_SETTINGS)
    config["database"]["path"] = str(tmp_path / "app.db")
    config["limits"]["messages_per_user"] = messages_per_user
    return config


def _client(tmp_path, provider=None, messages_per_user=None):
    config = _config(tmp_path, messages_per_user)
    return TestClient(create_app(config, provider=provider or FakeProvider())), config


def _frames(text):
    return [json.loads(frame[len("data: "):]) for frame in text.split("\n\n") if frame.startswith("data: ")]


def test_health_reports_provider(tmp_path):
    client, _ = _client(tmp_path)
    assert client.get("/api/health").json() == {"status": "ok", "provider": "fake", "model": "fake-model"}


def test_buffered_interpretation_envelope_and_persistence(tmp_path):
    provider = FakeProvider()
    client, config = _client(tmp_path, provider, messages_per_user=5)

    res = client.post("/api/interpret", json=BODY, headers={"X-User-Id": "user-1"})

    assert res.status_code == 200
    payload = res.json()
    assert payload["success"] is True
    assert payload["data"]["interpretation"] == RESULT.to_dict()
    assert payload["metadata"] == {"messages_remaining": 4}
    assert provider.requests[0].same_culture is False

    with get_connection(config["database"]["path"]) as conn:
        row = conn.execute("SELECT * FROM interpretations WHERE id = ?", (payload["data"]["interpretationId"],)).fetchone()
        used = conn.execute("SELECT messages_used FROM usage_counters WHERE user_id = 'user-1'").fetchone()
    assert row["character_count"] == len(BODY["message"])
    assert row["streaming"] == 0
    assert row["llm_provider"] == "fake"
    assert "message" not in row.keys()
    assert used["messages_used"] == 1


def test_invalid_input_is_rejected(tmp_path):
    client, _ = _client(tmp_path)
    cases = [
        dict(BODY, message="   "),
        dict(BODY, message="x" * 2001),
        dict(BODY, sender_culture="martian"),
        dict(BODY, receiver_culture=""),
        dict(BODY, mode="sideways"),
        {"message": "hi"},
    ]
    for body in cases:
        for path in ("/api/interpret", "/api/interpret/stream"):
            res = client.post(path, json=body)
            assert res.status_code == 400, body
            assert res.json()["error"]["code"] == "INVALID_INPUT"


def test_usage_limit_refuses_before_calling_provider(tmp_path):
    provider = FakeProvider()
    client, _ = _client(tmp_path, provider, messages_per_user=1)

    assert client.post("/api/interpret", json=BODY, headers={"X-User-Id": "u"}).status_code == 200
    res = client.post("/api/interpret/stream", json=BODY, headers={"X-User-Id": "u"})

    assert res.status_code == 403
    assert res.json()["error"]["code"] == "LIMIT_EXCEEDED"
    assert len(provider.requests) == 1

    other = client.post("/api/interpret", json=BODY, headers={"X-User-Id": "someone-else"})
    assert other.status_code == 200


def test_provider_errors_map_to_status_and_code(tmp_path):
    client, _ = _client(tmp_path, FakeProvider(error=LLMTimeoutError(30000)))

    res = client.post("/api/interpret", json=BODY)

    assert res.status_code == 504
    assert res.json() == {
        "success": False,
        "error": {"code": "LLM_TIMEOUT", "message": "Request timed out. Please try again."},
    }


def test_stream_emits_text_then_complete(tmp_path):
    client, config = _client(tmp_path, messages_per_user=3)

    res = client.post("/api/interpret/stream", json=BODY, headers={"X-User-Id": "streamer"})

    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/event-stream")
    assert res.headers["cache-control"] == "no-cache"
    frames = _frames(res.text)
    assert {f["type"] for f in frames[:-1]} == {"text"}
    assert "".join(f["text"] for f in frames[:-1]) == json.dumps(RESULT.to_dict())
    complete = frames[-1]
    assert complete["type"] == "complete"
    assert complete["interpretation"] == RESULT.to_dict()
    assert complete["metadata"]["messages_remaining"] == 2
    assert complete["metadata"]["costUsd"] == 0.0042

    with get_connection(config["database"]["path"]) as conn:
        row = conn.execute("SELECT streaming FROM interpretations WHERE id = ?", (complete["interpretationId"],)).fetchone()
    assert row["streaming"] == 1


def test_stream_failure_ends_with_error_frame_and_no_usage(tmp_path):
    client, config = _client(tmp_path, FakeProvider(error=RateLimitError(10)), messages_per_user=3)

    res = client.post("/api/interpret/stream", json=BODY, headers={"X-User-Id": "streamer"})

    frames = _frames(res.text)
    assert res.status_code == 200
    assert frames[-1] == {
        "type": "error",
        "error": {"code": "LLM_RATE_LIMITED", "message": "Service is busy. Please try again in a moment."},
    }
    assert [f["type"] for f in frames].count("error") == 1
    assert "complete" not in [f["type"] for f in frames]

    with get_connection(config["database"]["path"]) as conn:
        assert conn.execute("SELECT COUNT(*) AS n FROM usage_counters").fetchone()["n"] == 0


def test_cost_budget_refuses_with_service_overloaded(tmp_path):
    provider = FakeProvider()
    config = _config(tmp_path)
    config["cost_limits"] = {"daily_usd": 50.0, "hourly_usd": 5.0, "user_daily_usd": 0.004}
    client = TestClient(create_app(config, provider=provider))

    assert client.post("/api/interpret", json=BODY, headers={"X-User-Id": "spender"}).status_code == 200

    for path in ("/api/interpret", "/api/interpret/stream"):
        res = client.post(path, json=BODY, headers={"X-User-Id": "spender"})
        assert res.status_code == 503
        assert res.json() == {
            "success": False,
            "error": {
                "code": "SERVICE_OVERLOADED",
                "message": "Service is temporarily overloaded. Please try again later.",
            },
        }
    assert len(provider.requests) == 1

    assert client.post("/api/interpret", json=BODY, headers={"X-User-Id": "newcomer"}).status_code == 200


def test_provider_failure_log_reports_retryability(tmp_path, caplog):
    client, _ = _client(tmp_path, FakeProvider(error=RateLimitError(5)))

    with caplog.at_level(logging.ERROR):
        res = client.post("/api/interpret", json=BODY)

    assert res.status_code == 429
    assert "code=LLM_RATE_LIMITED" in caplog.text
    assert "retryable=False" in caplog.text
