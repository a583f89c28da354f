"""Owns the two independent interpretation lanes."""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

import httpx

from ..llm.types import MODES
from ..validators import ValidationBounds
from .consumer import LaneSnapshot, StreamConsumer


class InterpretationController:
    """Inbound and outbound lanes sharing one HTTP client.

    Each lane keeps its own state, so activity in one never resets or blocks
    the other.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_change: Optional[Callable[[LaneSnapshot], None]] = None,
    ) -> None:
        client_cfg = config.get("client", {})
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=str(client_cfg.get("base_url", "http://127.0.0.1:8000")),
            timeout=float(client_cfg.get("timeout_seconds", 60)),
            transport=transport,
        )
        bounds = ValidationBounds.from_config(config)
        self.lanes: Dict[str, StreamConsumer] = {
            mode: StreamConsumer(
                mode,
                self._client,
                stream_path=str(client_cfg.get("stream_path", "/api/interpret/stream")),
                buffered_path=str(client_cfg.get("buffered_path", "/api/interpret")),
                bounds=bounds,
                on_change=on_change,
            )
            for mode in MODES
        }

    def lane(self, mode: str) -> StreamConsumer:
        try:
            return self.lanes[mode]
        except KeyError:
            raise ValueError(f"Unknown interpretation mode: {mode}") from None

    async def submit(self, mode: str, message: str, sender_culture: str, receiver_culture: str) -> LaneSnapshot:
        return await self.lane(mode).submit(message, sender_culture, receiver_culture)

    def cancel(self, mode: str) -> bool:
        return self.lane(mode).cancel()

    def reset(self, mode: str) -> None:
        """Cancels anything in flight and clears the lane back to IDLE."""
        self.lane(mode).reset()

    def in_flight(self, mode: str) -> bool:
        return self.lane(mode).in_flight

    def snapshots(self) -> Dict[str, LaneSnapshot]:
        return {mode: lane.snapshot() for mode, lane in self.lanes.items()}

    async def aclose(self) -> None:
        for lane in self.lanes.values():
            if lane.in_flight:
                lane.cancel()
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "InterpretationController":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
