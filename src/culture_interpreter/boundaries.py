"""Persistence and usage-accounting boundaries used by the HTTP handler."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Protocol

from . import models
from .llm.types import InterpretationRequest, LLMMetadata

logger = logging.getLogger(__name__)


@dataclass
class UsageDecision:
    allowed: bool
    messages_remaining: Optional[int] = None
    code: Optional[str] = None
    message: Optional[str] = None


class InterpretationStore(Protocol):
    def save(
        self,
        user_id: str,
        request: InterpretationRequest,
        metadata: LLMMetadata,
        provider: str,
        streaming: bool,
    ) -> str:
        """Persists the result metadata and returns the interpretation id."""
        ...


class UsageAccountant(Protocol):
    def check(self, user_id: str) -> UsageDecision:
        ...

    def record(self, user_id: str, interpretation_id: str, metadata: LLMMetadata) -> None:
        ...


class CostBudget(Protocol):
    def check(self, user_id: str) -> UsageDecision:
        ...


class SQLiteInterpretationStore:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def save(
        self,
        user_id: str,
        request: InterpretationRequest,
        metadata: LLMMetadata,
        provider: str,
        streaming: bool,
    ) -> str:
        row = models.create_interpretation(
            self.conn,
            user_id=user_id,
            culture_sender=request.sender_culture,
            culture_receiver=request.receiver_culture,
            character_count=len(request.message),
            interpretation_type=request.mode,
            llm_provider=provider,
            model=metadata.model,
            cost_usd=metadata.cost_usd,
            response_time_ms=metadata.response_time_ms,
            tokens_input=metadata.input_tokens,
            tokens_output=metadata.output_tokens,
            tokens_cached=metadata.cache_read_tokens,
            streaming=streaming,
        )
        return row["id"]


class SQLiteUsageAccountant:
    """Counts messages per user against an optional flat limit."""

    def __init__(self, conn: sqlite3.Connection, messages_per_user: Optional[int] = None) -> None:
        self.conn = conn
        self.messages_per_user = messages_per_user

    def check(self, user_id: str) -> UsageDecision:
        if self.messages_per_user is None:
            return UsageDecision(allowed=True)
        used = models.get_user_usage(self.conn, user_id)
        remaining = max(0, self.messages_per_user - used)
        if remaining == 0:
            return UsageDecision(
                allowed=False,
                messages_remaining=0,
                code="LIMIT_EXCEEDED",
                message=f"You have used all {self.messages_per_user} messages.",
            )
        return UsageDecision(allowed=True, messages_remaining=remaining)

    def record(self, user_id: str, interpretation_id: str, metadata: LLMMetadata) -> None:
        used = models.increment_user_usage(self.conn, user_id)
        logger.info(
            "Recorded usage user_id=%s interpretation_id=%s messages_used=%d cost_usd=%.6f",
            user_id,
            interpretation_id,
            used,
            metadata.cost_usd,
        )


OVERLOADED_CODE = "SERVICE_OVERLOADED"
OVERLOADED_MESSAGE = "Service is temporarily overloaded. Please try again later."
WARNING_RATIO = 0.8


class SQLiteCostBudget:
    """Daily, hourly and per-user daily USD ceilings over persisted interpretation costs.

    Spend is the sum of ``interpretations.cost_usd`` since the start of the
    current UTC day or hour, so saving an interpretation is what tracks its
    cost. A ``None`` limit disables that layer. A database failure while
    checking lets the request through.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        daily_usd: Optional[float] = None,
        hourly_usd: Optional[float] = None,
        user_daily_usd: Optional[float] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.conn = conn
        self.daily_usd = daily_usd
        self.hourly_usd = hourly_usd
        self.user_daily_usd = user_daily_usd
        self._clock = clock

    @classmethod
    def from_config(cls, conn: sqlite3.Connection, config: Dict[str, Any]) -> "SQLiteCostBudget":
        cfg = config.get("cost_limits", {})

        def limit(key: str) -> Optional[float]:
            value = cfg.get(key)
            return None if value is None else float(value)

        return cls(
            conn,
            daily_usd=limit("daily_usd"),
            hourly_usd=limit("hourly_usd"),
            user_daily_usd=limit("user_daily_usd"),
        )

    def check(self, user_id: str) -> UsageDecision:
        now = self._clock()
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0).isoformat()
        hour_start = now.replace(minute=0, second=0, microsecond=0).isoformat()
        layers = (
            ("daily", self.daily_usd, day_start, None),
            ("hourly", self.hourly_usd, hour_start, None),
            ("user", self.user_daily_usd, day_start, user_id),
        )
        try:
            for layer, limit, since, scope in layers:
                if limit is None:
                    continue
                spent = models.sum_cost_since(self.conn, since, scope)
                if spent >= limit:
                    logger.warning(
                        "Cost circuit breaker triggered layer=%s user_id=%s cost_usd=%.4f limit_usd=%.2f",
                        layer,
                        user_id,
                        spent,
                        limit,
                    )
                    return UsageDecision(allowed=False, code=OVERLOADED_CODE, message=OVERLOADED_MESSAGE)
                if scope is None and spent >= limit * WARNING_RATIO:
                    logger.warning(
                        "Cost limit warning threshold layer=%s cost_usd=%.4f limit_usd=%.2f",
                        layer,
                        spent,
                        limit,
                    )
        except sqlite3.Error:
            logger.exception("Cost budget check failed, allowing request user_id=%s", user_id)
        return UsageDecision(allowed=True)
