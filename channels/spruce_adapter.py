"""
Spruce Health Dispatch Adapter — Delivers staged messages to patient conversations.

Send flow:
1. POST /conversations/{id}/messages with {"body", "type"}
2. On an HTTP error, fall back to POST /messages with
   {"content", "message_type", "conversation_id"}

Retries (per request, before any fallback):
  - connection failures where the request never left (connect error,
    connect timeout, pool timeout), with exponential backoff
  - HTTP 429, after the Retry-After delay when the server sends one
  - HTTP 5xx, with exponential backoff
A read timeout or dropped connection after the request was written is not
retried: the message may already be delivered.

Auth: API keys issued as "aid_..." (or their base64 form "YWlk...") use
Basic auth, everything else is sent as a Bearer token.
"""
from __future__ import annotations

import structlog
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

from channels.base import DispatchAdapter, DispatchError

logger = structlog.get_logger()

DEFAULT_BASE_URL = "https://api.sprucehealth.com/v1"
MAX_RETRY_AFTER_SECONDS = 60.0

# Failures raised before the request body reached the server.
UNSENT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)


class SpruceAdapter(DispatchAdapter):
    """Spruce Health REST API client for outbound conversation messages."""

    channel = "spruce"

    def __init__(
        self,
        api_token: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        max_attempts: int = 3,
        retry_wait: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__()
        self.api_token = (api_token or "").strip()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.retry_wait = retry_wait
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._closed = False

        if not self.api_token:
            self._config_error = "Spruce API token is not configured; sending is disabled"
            logger.error("dispatch_adapter_misconfigured",
                         channel=self.channel,
                         error=self._config_error)

    @property
    def auth_header(self) -> str:
        if self.api_token.startswith("YWlk") or self.api_token.startswith("aid_"):
            return f"Basic {self.api_token}"
        return f"Bearer {self.api_token}"

    async def _get_client(self) -> httpx.AsyncClient:
        if self._closed:
            raise DispatchError("Spruce adapter is closed", channel=self.channel)
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": self.auth_header,
                    "Content-Type": "application/json",
                    "User-Agent": "StagingQueue/1.0",
                },
                timeout=httpx.Timeout(self.timeout, connect=10.0),
                transport=self._transport,
            )
        return self._client

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        client = await self._get_client()
        backoff = wait_exponential(multiplier=self.retry_wait, max=10)

        def wait(retry_state: RetryCallState) -> float:
            exc = retry_state.outcome.exception()
            if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code == 429:
                delay = _retry_after_seconds(exc.response)
                if delay is not None:
                    return delay
            return backoff(retry_state)

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait,
            retry=retry_if_exception(_is_retryable),
            before_sleep=_log_retry,
            reraise=True,
        ):
            with attempt:
                resp = await client.post(path, json=payload)
                if resp.status_code >= 400:
                    logger.error("spruce_api_error",
                                 status=resp.status_code,
                                 body=resp.text[:500],
                                 path=path,
                                 attempt=attempt.retry_state.attempt_number)
                    resp.raise_for_status()
        try:
            return resp.json()
        except ValueError:
            return {}

    # ── Send ──────────────────────────────────────────────────

    async def _do_send(self, conversation_id: str, content: str) -> str:
        try:
            try:
                data = await self._post(
                    f"/conversations/{conversation_id}/messages",
                    {"body": content, "type": "text"},
                )
            except httpx.HTTPStatusError as direct_err:
                logger.warning("spruce_direct_send_failed",
                               conversation_id=conversation_id,
                               status=direct_err.response.status_code)
                data = await self._post("/messages", {
                    "content": content,
                    "message_type": "text",
                    "conversation_id": conversation_id,
                })
        except httpx.HTTPStatusError as e:
            raise DispatchError(
                f"Spruce rejected message ({e.response.status_code}): {_error_detail(e.response)}",
                channel=self.channel,
            ) from e
        except UNSENT_ERRORS as e:
            raise DispatchError(
                f"Spruce unreachable: {str(e) or type(e).__name__}",
                channel=self.channel,
                retryable=True,
            ) from e
        except httpx.TransportError as e:
            # The request may have been delivered; a resend could duplicate it.
            raise DispatchError(
                f"Spruce did not confirm delivery: {str(e) or type(e).__name__}",
                channel=self.channel,
            ) from e

        message_id = _message_id(data)
        logger.info("spruce_message_sent",
                    conversation_id=conversation_id,
                    message_id=message_id)
        return message_id

    async def close(self) -> None:
        self._closed = True
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


def _message_id(data: Any) -> str:
    if not isinstance(data, dict):
        return ""
    if data.get("id"):
        return str(data["id"])
    nested = data.get("message") or data.get("data")
    if isinstance(nested, dict) and nested.get("id"):
        return str(nested["id"])
    return ""


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        for key in ("error", "message", "detail"):
            value = body.get(key)
            if isinstance(value, dict):
                value = value.get("message")
            if value:
                return str(value)[:200]
    return response.text[:200] or response.reason_phrase


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, UNSENT_ERRORS):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


def _retry_after_seconds(response: httpx.Response) -> Optional[float]:
    """Parse Retry-After as delta-seconds or an HTTP date, capped."""
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        delay = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        delay = (when - datetime.now(timezone.utc)).total_seconds()
    return min(max(delay, 0.0), MAX_RETRY_AFTER_SECONDS)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception()
    logger.warning("spruce_request_retry",
                   attempt=retry_state.attempt_number,
                   error=str(exc) or type(exc).__name__,
                   wait_seconds=round(retry_state.next_action.sleep, 2) if retry_state.next_action else None)
