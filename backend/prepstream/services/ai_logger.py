"""
AI request logging.

Records every generation (success or failure) with token usage, latency
and time to first token. Logging must never break the main flow: store
failures are logged and swallowed.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from prepstream.services.pocketbase import PocketbaseError, PocketbaseService
from prepstream.models.usage import TokenUsage

logger = logging.getLogger(__name__)

AI_LOGS_COLLECTION = "ai_logs"


@dataclass
class LoggerContext:
    """Collects timing metadata while a generation runs."""

    metadata: dict[str, Any] = field(default_factory=dict)
    clock: Callable[[], float] = time.monotonic
    started_at: float = 0.0
    first_token_at: Optional[float] = None

    def __post_init__(self):
        self.started_at = self.clock()

    def mark_first_token(self) -> None:
        if self.first_token_at is None:
            self.first_token_at = self.clock()

    def latency_ms(self) -> int:
        return int((self.clock() - self.started_at) * 1000)

    def time_to_first_token_ms(self) -> Optional[int]:
        if self.first_token_at is None:
            return None
        return int((self.first_token_at - self.started_at) * 1000)


@dataclass(frozen=True)
class AILogEntry:
    interview_id: str
    user_id: str
    action: str
    status: str
    model: str
    prompt: str
    response: str = ""
    error: Optional[str] = None
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    latency_ms: int = 0
    time_to_first_token_ms: Optional[int] = None
    tools_used: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_record(self) -> dict[str, Any]:
        return {
            "interview_id": self.interview_id,
            "user_id": self.user_id,
            "action": self.action,
            "status": self.status,
            "model": self.model,
            "prompt": self.prompt,
            "response": self.response,
            "error": self.error,
            "token_usage": self.token_usage.to_dict(),
            "latency_ms": self.latency_ms,
            "time_to_first_token_ms": self.time_to_first_token_ms,
            "tools_used": self.tools_used,
            "metadata": self.metadata,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


class AILogger:
    """Writes AI request logs to Pocketbase."""

    def __init__(self, pocketbase: PocketbaseService):
        self._pocketbase = pocketbase

    async def _write(self, entry: AILogEntry) -> None:
        try:
            await self._pocketbase.create_record(AI_LOGS_COLLECTION, entry.to_record())
        except PocketbaseError as e:
            logger.error("Failed to log AI request: %s", e.message)

    async def log_ai_request(self, entry: AILogEntry) -> None:
        logger.info(
            "AI %s %s on %s: %d in / %d out (%d total) tokens, %d ms (first token %s ms)",
            entry.action,
            entry.status,
            entry.model,
            entry.token_usage.input_tokens,
            entry.token_usage.output_tokens,
            entry.token_usage.total_tokens,
            entry.latency_ms,
            entry.time_to_first_token_ms,
        )
        await self._write(entry)

    async def log_ai_error(self, entry: AILogEntry) -> None:
        logger.warning("AI %s failed on %s: %s", entry.action, entry.model, entry.error)
        await self._write(entry)
