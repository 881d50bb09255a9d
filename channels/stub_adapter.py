"""
Stub Dispatch Adapter — Logs messages instead of delivering them.

Used for local development and demos when no Spruce credentials exist.
Set ``fail_with`` to exercise the error path end to end.
"""
from __future__ import annotations

import uuid
import structlog
from typing import Optional

from channels.base import DispatchAdapter, DispatchError

logger = structlog.get_logger()


class StubAdapter(DispatchAdapter):
    channel = "stub"

    def __init__(self, fail_with: Optional[str] = None):
        super().__init__()
        self.fail_with = fail_with
        self.sent: list[tuple[str, str]] = []

    async def _do_send(self, conversation_id: str, content: str) -> str:
        if self.fail_with:
            raise DispatchError(self.fail_with, channel=self.channel)
        self.sent.append((conversation_id, content))
        message_id = f"stub_{uuid.uuid4().hex[:12]}"
        logger.info("stub_message_sent",
                    conversation_id=conversation_id,
                    message_id=message_id,
                    length=len(content))
        return message_id
