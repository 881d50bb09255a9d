"""
Dispatch Adapters — Base infrastructure for outbound patient messaging.

Provides:
- ChannelError: structured error hierarchy
- SendResult: success/failure outcome of one send
- DispatchMetrics: send/fail/latency tracking
- DispatchAdapter: abstract base wrapping every send with metrics and
  exception containment, so a failed send is a result, never a raise
"""
from __future__ import annotations

import abc
import time
import structlog
from collections import deque
from dataclasses import dataclass
from typing import Any, Optional

logger = structlog.get_logger()

LATENCY_WINDOW = 500
RECENT_ERRORS = 10


# ══════════════════════════════════════════════════════════════
#  ERRORS
# ══════════════════════════════════════════════════════════════

class ChannelError(Exception):
    """Base exception for all dispatch operations."""

    def __init__(self, message: str, channel: str = "", retryable: bool = False):
        self.channel = channel
        self.retryable = retryable
        super().__init__(message)


class DispatchError(ChannelError):
    """The provider rejected the message or could not be reached."""


# ══════════════════════════════════════════════════════════════
#  SEND RESULT
# ══════════════════════════════════════════════════════════════

@dataclass
class SendResult:
    ok: bool
    error: str = ""
    provider_message_id: str = ""
    latency_ms: float = 0.0

    @classmethod
    def success(cls, provider_message_id: str = "", latency_ms: float = 0.0) -> SendResult:
        return cls(ok=True, provider_message_id=provider_message_id, latency_ms=latency_ms)

    @classmethod
    def failure(cls, error: str, latency_ms: float = 0.0) -> SendResult:
        return cls(ok=False, error=error or "Unknown dispatch failure", latency_ms=latency_ms)


# ══════════════════════════════════════════════════════════════
#  METRICS
# ══════════════════════════════════════════════════════════════

class DispatchMetrics:
    """Tracks send, failure, and latency metrics for one adapter."""

    def __init__(self, channel: str):
        self.channel = channel
        self.messages_sent: int = 0
        self.messages_failed: int = 0
        self._latencies: deque[float] = deque(maxlen=LATENCY_WINDOW)
        self._errors: deque[str] = deque(maxlen=RECENT_ERRORS)

    def record_send(self, latency_ms: float = 0.0):
        self.messages_sent += 1
        if latency_ms > 0:
            self._latencies.append(latency_ms)

    def record_failure(self, error: str = ""):
        self.messages_failed += 1
        if error:
            self._errors.append(error)

    @property
    def avg_latency_ms(self) -> float:
        return sum(self._latencies) / len(self._latencies) if self._latencies else 0.0

    @property
    def failure_rate(self) -> float:
        total = self.messages_sent + self.messages_failed
        return self.messages_failed / total if total > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel": self.channel,
            "sent": self.messages_sent,
            "failed": self.messages_failed,
            "avg_latency_ms": round(self.avg_latency_ms, 1),
            "failure_rate": round(self.failure_rate, 4),
            "recent_errors": list(self._errors),
        }


# ══════════════════════════════════════════════════════════════
#  DISPATCH ADAPTER — Abstract Base
# ══════════════════════════════════════════════════════════════

class DispatchAdapter(abc.ABC):
    """
    Base class for all dispatch adapters.

    Subclasses implement _do_send, returning the provider message id or
    raising ChannelError. A subclass that finds its configuration unusable
    sets ``_config_error``; every send then fails with that reason.
    """

    channel: str = "base"

    def __init__(self):
        self._config_error: Optional[str] = None
        self._metrics = DispatchMetrics(self.channel)

    # ── Abstract hooks ────────────────────────────────────────

    @abc.abstractmethod
    async def _do_send(self, conversation_id: str, content: str) -> str:
        ...

    # ── Public send ───────────────────────────────────────────

    @property
    def configured(self) -> bool:
        return self._config_error is None

    async def send(self, conversation_id: str, content: str) -> SendResult:
        if self._config_error:
            self._metrics.record_failure(self._config_error)
            return SendResult.failure(self._config_error)

        start = time.monotonic()
        try:
            provider_message_id = await self._do_send(conversation_id, content)
        except ChannelError as e:
            latency = (time.monotonic() - start) * 1000
            self._metrics.record_failure(str(e))
            logger.warning("dispatch_failed",
                           channel=self.channel,
                           conversation_id=conversation_id,
                           error=str(e))
            return SendResult.failure(str(e), latency_ms=round(latency, 1))
        except Exception as e:
            latency = (time.monotonic() - start) * 1000
            reason = str(e) or type(e).__name__
            self._metrics.record_failure(reason)
            logger.error("dispatch_unexpected_error",
                         channel=self.channel,
                         conversation_id=conversation_id,
                         error=reason,
                         exc_info=True)
            return SendResult.failure(reason, latency_ms=round(latency, 1))

        latency = (time.monotonic() - start) * 1000
        self._metrics.record_send(latency)
        return SendResult.success(provider_message_id or "", latency_ms=round(latency, 1))

    # ── Health ────────────────────────────────────────────────

    async def health_check(self) -> dict[str, Any]:
        return {
            "channel": self.channel,
            "configured": self.configured,
            "config_error": self._config_error,
            "metrics": self._metrics.to_dict(),
        }

    async def close(self) -> None:
        pass
