"""HTTP handlers: buffered and streaming interpretation endpoints."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from . import models
from .boundaries import (
    CostBudget,
    InterpretationStore,
    SQLiteCostBudget,
    SQLiteInterpretationStore,
    SQLiteUsageAccountant,
    UsageAccountant,
    UsageDecision,
)
from .cultures import CULTURES, is_supported
from .llm.errors import LLMError
from .llm.factory import create_provider
from .llm.providers.base import InterpretationProvider
from .llm.types import MODES, CompleteChunk, InterpretationRequest
from .streaming import SSE_HEADERS, frame_stream

logger = logging.getLogger(__name__)


class InterpretRequestBody(BaseModel):
    message: str
    sender_culture: str
    receiver_culture: str
    mode: str


def error_response(code: str, message: str, status: int) -> JSONResponse:
    return JSONResponse({"success": False, "error": {"code": code, "message": message}}, status_code=status)


def validate_body(body: InterpretRequestBody, max_chars: int) -> Optional[str]:
    if not body.message.strip():
        return "Message cannot be empty"
    if len(body.message) > max_chars:
        return f"Message must be {max_chars} characters or less"
    if not is_supported(body.sender_culture):
        return f'Invalid sender_culture: "{body.sender_culture}". Must be one of: {", ".join(CULTURES)}'
    if not is_supported(body.receiver_culture):
        return f'Invalid receiver_culture: "{body.receiver_culture}". Must be one of: {", ".join(CULTURES)}'
    if body.mode not in MODES:
        return 'Field "mode" must be either "inbound" or "outbound"'
    return None


def remaining_after(decision: UsageDecision) -> Optional[int]:
    if decision.messages_remaining is None:
        return None
    return max(0, decision.messages_remaining - 1)


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    return (x_user_id or "").strip() or "anonymous"


def create_app(
    config: Dict[str, Any],
    provider: Optional[InterpretationProvider] = None,
    store: Optional[InterpretationStore] = None,
    usage: Optional[UsageAccountant] = None,
    budget: Optional[CostBudget] = None,
) -> FastAPI:
    provider = provider or create_provider(config)
    if store is None or usage is None or budget is None:
        conn = models.get_connection(str(config["database"]["path"]))
        models.apply_migrations(conn)
        limits = config.get("limits", {})
        store = store or SQLiteInterpretationStore(conn)
        usage = usage or SQLiteUsageAccountant(conn, limits.get("messages_per_user"))
        budget = budget or SQLiteCostBudget.from_config(conn, config)
    max_chars = int(config.get("limits", {}).get("message_max_chars", 2000))

    app = FastAPI(title="culture-interpreter")

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("Invalid request body path=%s", request.url.path)
        return error_response("INVALID_INPUT", "Invalid request body", 400)

    def _precheck(body: InterpretRequestBody, user_id: str, streaming: bool) -> tuple[Optional[JSONResponse], Optional[UsageDecision]]:
        error = validate_body(body, max_chars)
        if error:
            logger.info("Invalid request user_id=%s error=%s", user_id, error)
            return error_response("INVALID_INPUT", error, 400), None

        logger.info(
            "Interpretation request user_id=%s culture_pair=%s-%s chars=%d mode=%s streaming=%s",
            user_id,
            body.sender_culture,
            body.receiver_culture,
            len(body.message),
            body.mode,
            streaming,
        )
        decision = usage.check(user_id)
        if not decision.allowed:
            logger.info("Usage limit reached user_id=%s code=%s", user_id, decision.code)
            return error_response(decision.code or "LIMIT_EXCEEDED", decision.message or "Usage limit exceeded", 403), None

        cost_check = budget.check(user_id)
        if not cost_check.allowed:
            return error_response(cost_check.code or "SERVICE_OVERLOADED", cost_check.message or "Service overloaded", 503), None
        return None, decision

    @app.get("/api/health")
    async def health() -> Dict[str, Any]:
        return {"status": "ok", "provider": provider.name, "model": provider.model}

    @app.post("/api/interpret")
    async def interpret(body: InterpretRequestBody, user_id: str = Depends(get_user_id)):
        started = time.perf_counter()
        rejected, decision = _precheck(body, user_id, streaming=False)
        if rejected is not None:
            return rejected

        request = InterpretationRequest.create(body.message, body.sender_culture, body.receiver_culture, body.mode)
        try:
            output = await provider.interpret(request, request.mode)
            interpretation_id = store.save(user_id, request, output.metadata, provider.name, streaming=False)
            usage.record(user_id, interpretation_id, output.metadata)
        except LLMError as exc:
            logger.error(
                "Interpretation failed code=%s error=%s retryable=%s", exc.code, type(exc).__name__, exc.retryable
            )
            return error_response(exc.code, exc.user_message, exc.http_status)
        except Exception:
            logger.exception("Interpretation failed with unexpected error")
            return error_response("INTERNAL_ERROR", "An unexpected error occurred. Please try again.", 500)

        remaining = remaining_after(decision)
        logger.info(
            "Interpretation successful user_id=%s cost_usd=%.6f time_ms=%d",
            user_id,
            output.metadata.cost_usd,
            int((time.perf_counter() - started) * 1000),
        )
        return JSONResponse(
            {
                "success": True,
                "data": {
                    "interpretation": output.interpretation.to_dict(),
                    "interpretationId": interpretation_id,
                },
                "metadata": {"messages_remaining": remaining},
            }
        )

    @app.post("/api/interpret/stream")
    async def interpret_stream(body: InterpretRequestBody, user_id: str = Depends(get_user_id)):
        rejected, decision = _precheck(body, user_id, streaming=True)
        if rejected is not None:
            return rejected

        request = InterpretationRequest.create(body.message, body.sender_culture, body.receiver_culture, body.mode)

        async def on_complete(chunk: CompleteChunk) -> Dict[str, Any]:
            interpretation_id = store.save(user_id, request, chunk.metadata, provider.name, streaming=True)
            usage.record(user_id, interpretation_id, chunk.metadata)
            logger.info(
                "Streaming interpretation successful user_id=%s cost_usd=%.6f",
                user_id,
                chunk.metadata.cost_usd,
            )
            extra: Dict[str, Any] = {"interpretationId": interpretation_id}
            remaining = remaining_after(decision)
            if remaining is not None:
                extra["metadata"] = {"messages_remaining": remaining}
            return extra

        return StreamingResponse(
            frame_stream(provider.interpret_stream(request, request.mode), on_complete),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    return app
