"""
StagingSession — Owns one staging queue and its collaborators.

Constructed per application (or per test), started when the event loop is
running and closed on shutdown. Nothing here is a module-level singleton.
"""
from __future__ import annotations

import structlog
from typing import Any, Optional

from channels.base import DispatchAdapter
from channels.factory import create_dispatch_adapter
from config.settings import Settings
from staging.driver import CountdownDriver
from staging.gate import ApprovalGate
from staging.store import StagingStore

logger = structlog.get_logger()


class StagingSession:

    def __init__(self, settings: Settings, adapter: Optional[DispatchAdapter] = None):
        self.settings = settings
        self.adapter = adapter or create_dispatch_adapter(settings.dispatch)
        self.store = StagingStore(default_countdown=settings.staging.ai_draft_countdown)
        self.driver = CountdownDriver(self.store, self.adapter, interval=settings.staging.tick_interval)
        self.gate = ApprovalGate(
            self.store,
            ai_draft_countdown=settings.staging.ai_draft_countdown,
            quick_reply_countdown=settings.staging.quick_reply_countdown,
            signature=settings.practice_signature,
        )

    async def start(self):
        await self.driver.start_background()
        logger.info("staging_session_started",
                    adapter=self.adapter.channel,
                    adapter_configured=self.adapter.configured)

    async def close(self):
        await self.driver.stop()
        drained = await self.driver.drain(timeout=self.settings.staging.drain_timeout)
        cancelled = 0
        if not drained:
            cancelled = await self.driver.cancel_inflight()
        await self.adapter.close()
        logger.info("staging_session_closed",
                    drained=drained,
                    cancelled_dispatches=cancelled,
                    abandoned_entries=len(self.store.active_entries()))

    async def health(self) -> dict[str, Any]:
        return {
            "driver_running": self.driver.running,
            "ticks": self.driver.ticks,
            "adapter": await self.adapter.health_check(),
            "queue": self.store.stats(),
        }
