"""Anthropic Messages API provider."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ...prompts import build_cacheable_system_blocks, build_dynamic_prompt
from ...validators import DEFAULT_BOUNDS, ValidationBounds, validate
from ..channel import StreamChannel
from ..errors import AuthError, LLMError, LLMTimeoutError, ParsingError, ProviderError, RateLimitError
from ..pricing import Pricing, calculate_cost
from ..types import (
    CompleteChunk,
    InterpretationOutput,
    InterpretationRequest,
    LLMMetadata,
    StreamChunk,
    TextChunk,
    TokenUsage,
)

logger = logging.getLogger(__name__)

MESSAGES_PATH = "/v1/messages"


def _retry_after(headers: httpx.Headers) -> Optional[int]:
    raw = headers.get("retry-after")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def map_status_error(status_code: int, headers: httpx.Headers, body: str) -> LLMError:
    if status_code == 401:
        return AuthError()
    if status_code == 429:
        return RateLimitError(_retry_after(headers))
    return ProviderError(f"Anthropic API returned HTTP {status_code}", status_code, {"body": body[:500]})


def _usage_from(payload: Dict[str, Any] | None, usage: TokenUsage) -> TokenUsage:
    if not payload:
        return usage
    if "input_tokens" in payload:
        usage.input_tokens = int(payload.get("input_tokens") or 0)
    if "output_tokens" in payload:
        usage.output_tokens = int(payload.get("output_tokens") or 0)
    if "cache_read_input_tokens" in payload:
        usage.cache_read_tokens = int(payload.get("cache_read_input_tokens") or 0)
    if "cache_creation_input_tokens" in payload:
        usage.cache_creation_tokens = int(payload.get("cache_creation_input_tokens") or 0)
    return usage


def _extract_text(data: Dict[str, Any]) -> str:
    content = data.get("content", [])
    if not isinstance(content, list) or not content:
        raise ProviderError("Empty response from Anthropic", 500)
    text = "".join(
        item.get("text", "")
        for item in content
        if isinstance(item, dict) and item.get("type") == "text"
    )
    if not text:
        raise ProviderError("Unexpected response type from Anthropic", 500)
    return text


class AnthropicProvider:
    name = "anthropic"

    def __init__(
        self,
        api_key: str | None,
        model: str = "claude-sonnet-4-5-20250929",
        timeout_ms: int = 30000,
        max_tokens: int = 1500,
        temperature: float = 0.7,
        base_url: str = "https://api.anthropic.com",
        api_version: str = "2023-06-01",
        pricing: Pricing | None = None,
        bounds: ValidationBounds = DEFAULT_BOUNDS,
        stream_queue_size: int = 64,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable is required")
        self._api_key = api_key
        self.model = model
        self.timeout_ms = int(timeout_ms)
        self.max_tokens = int(max_tokens)
        self.temperature = float(temperature)
        self.base_url = base_url
        self.api_version = api_version
        self.pricing = pricing or Pricing()
        self.bounds = bounds
        self.stream_queue_size = int(stream_queue_size)
        self._transport = transport

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        api_key: str | None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "AnthropicProvider":
        llm_cfg = config.get("llm", {})
        return cls(
            api_key=api_key,
            model=str(llm_cfg.get("model", "claude-sonnet-4-5-20250929")),
            timeout_ms=int(llm_cfg.get("timeout_ms", 30000)),
            max_tokens=int(llm_cfg.get("max_tokens", 1500)),
            temperature=float(llm_cfg.get("temperature", 0.7)),
            base_url=str(llm_cfg.get("base_url", "https://api.anthropic.com")),
            api_version=str(llm_cfg.get("api_version", "2023-06-01")),
            pricing=Pricing.from_config(config),
            bounds=ValidationBounds.from_config(config),
            stream_queue_size=int(llm_cfg.get("stream_queue_size", 64)),
            transport=transport,
        )

    @property
    def _timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "x-api-key": self._api_key,
                "anthropic-version": self.api_version,
                "content-type": "application/json",
            },
            timeout=self._timeout_seconds,
            transport=self._transport,
        )

    def _payload(self, request: InterpretationRequest, mode: str, stream: bool) -> Dict[str, Any]:
        prompt = build_dynamic_prompt(
            request.message,
            request.sender_culture,
            request.receiver_culture,
            request.same_culture,
            mode,
        )
        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "system": build_cacheable_system_blocks(),
            "messages": [{"role": "user", "content": prompt}],
        }
        if stream:
            payload["stream"] = True
        return payload

    def _metadata(self, usage: TokenUsage, started: float) -> LLMMetadata:
        return LLMMetadata(
            cost_usd=calculate_cost(usage, self.pricing),
            response_time_ms=int((time.perf_counter() - started) * 1000),
            token_count=usage.input_tokens + usage.output_tokens,
            model=self.model,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            cache_read_tokens=usage.cache_read_tokens,
            cache_creation_tokens=usage.cache_creation_tokens,
        )

    def _log_call(self, request: InterpretationRequest, mode: str, streaming: bool) -> None:
        logger.info(
            "Calling Anthropic culture_pair=%s->%s chars=%d same_culture=%s mode=%s streaming=%s",
            request.sender_culture,
            request.receiver_culture,
            len(request.message),
            request.same_culture,
            mode,
            streaming,
        )

    def _log_failure(self, exc: LLMError, request: InterpretationRequest) -> None:
        logger.error(
            "Anthropic interpretation failed error=%s retryable=%s culture_pair=%s->%s detail=%s",
            type(exc).__name__,
            exc.retryable,
            request.sender_culture,
            request.receiver_culture,
            exc,
        )

    def _log_success(self, metadata: LLMMetadata) -> None:
        logger.info(
            "Anthropic interpretation successful cost_usd=%.6f tokens=%d cache_read=%d time_ms=%d",
            metadata.cost_usd,
            metadata.token_count,
            metadata.cache_read_tokens,
            metadata.response_time_ms,
        )

    async def _post_message(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                res = await client.post(MESSAGES_PATH, json=payload)
                if res.status_code >= 400:
                    raise map_status_error(res.status_code, res.headers, res.text)
                return res.json()
        except httpx.TimeoutException as exc:
            raise LLMTimeoutError(self.timeout_ms) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(str(exc)) from exc
        except ValueError as exc:
            raise ProviderError("Anthropic returned a non-JSON body") from exc

    async def interpret(self, request: InterpretationRequest, mode: str | None = None) -> InterpretationOutput:
        mode = mode or request.mode
        started = time.perf_counter()
        self._log_call(request, mode, streaming=False)
        try:
            try:
                data = await asyncio.wait_for(
                    self._post_message(self._payload(request, mode, stream=False)),
                    timeout=self._timeout_seconds,
                )
            except asyncio.TimeoutError as exc:
                if isinstance(exc, LLMError):
                    raise
                raise LLMTimeoutError(self.timeout_ms) from exc
            interpretation = validate(_extract_text(data), mode, request.same_culture, self.bounds)
        except LLMError as exc:
            self._log_failure(exc, request)
            raise

        metadata = self._metadata(_usage_from(data.get("usage"), TokenUsage()), started)
        self._log_success(metadata)
        return InterpretationOutput(interpretation=interpretation, metadata=metadata)

    async def _pump_stream(
        self,
        request: InterpretationRequest,
        mode: str,
        channel: StreamChannel[StreamChunk],
        started: float,
    ) -> None:
        usage = TokenUsage()
        parts: list[str] = []
        payload = self._payload(request, mode, stream=True)
        try:
            async with self._client() as client:
                async with client.stream("POST", MESSAGES_PATH, json=payload) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise map_status_error(response.status_code, response.headers, body)
                    async for line in response.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        try:
                            event = json.loads(line[5:].strip())
                        except json.JSONDecodeError:
                            logger.warning("Skipping undecodable Anthropic stream line")
                            continue
                        event_type = event.get("type")
                        if event_type == "message_start":
                            _usage_from(event.get("message", {}).get("usage"), usage)
                        elif event_type == "content_block_delta":
                            delta = event.get("delta", {})
                            if delta.get("type") == "text_delta" and delta.get("text"):
                                parts.append(delta["text"])
                                await channel.send(TextChunk(delta["text"]))
                        elif event_type == "message_delta":
                            _usage_from(event.get("usage"), usage)
                        elif event_type == "error":
                            error = event.get("error", {})
                            status = 529 if error.get("type") == "overloaded_error" else 500
                            raise ProviderError(
                                error.get("message", "Anthropic stream error"),
                                status,
                                {"error_type": error.get("type")},
                            )
        except httpx.TimeoutException as exc:
            raise LLMTimeoutError(self.timeout_ms) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(str(exc)) from exc

        full_text = "".join(parts)
        if not full_text:
            raise ParsingError("Stream ended without any text")
        interpretation = validate(full_text, mode, request.same_culture, self.bounds)
        metadata = self._metadata(usage, started)
        self._log_success(metadata)
        await channel.send(CompleteChunk(interpretation=interpretation, metadata=metadata, raw_text=full_text))

    async def interpret_stream(
        self,
        request: InterpretationRequest,
        mode: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Yields one TextChunk per delta, then exactly one CompleteChunk.

        Failures before the CompleteChunk are raised, never yielded.
        """
        mode = mode or request.mode
        started = time.perf_counter()
        self._log_call(request, mode, streaming=True)

        async def produce(channel: StreamChannel[StreamChunk]) -> None:
            try:
                await asyncio.wait_for(
                    self._pump_stream(request, mode, channel, started),
                    timeout=self._timeout_seconds,
                )
            except asyncio.TimeoutError as exc:
                if isinstance(exc, LLMError):
                    raise
                raise LLMTimeoutError(self.timeout_ms) from exc

        channel: StreamChannel[StreamChunk] = StreamChannel(self.stream_queue_size)
        try:
            async for chunk in channel.stream(produce):
                yield chunk
        except LLMError as exc:
            self._log_failure(exc, request)
            raise
