"""
Countdown Driver — Ages pending entries once per tick and dispatches them at expiry.

Runs as a background asyncio task inside the application process.
Every store mutation happens on the event loop thread, so no locks are needed;
provider calls run as separate tasks and never block the tick.

Per tick, over a snapshot of the store:

  pending, countdown c > 0   →  countdown = c - 1
  pending, countdown c <= 1  →  sending, dispatch task started

Both rules read the snapshot value, so an entry showing 1s is decremented
to 0 and dispatched in the same pass.

Dispatch result:
  ok       →  sent
  failure  →  error (terminal until a manual resend)
  entry gone (cancelled mid-flight) → result dropped
"""
from __future__ import annotations

import asyncio
import structlog
from typing import Optional

from channels.base import DispatchAdapter, SendResult
from models.schemas import EntryStatus, QueueEntry
from staging.store import StagingStore

logger = structlog.get_logger()


class CountdownDriver:
    """
    Drives the staging store's countdowns and dispatch.

    Usage:
        driver = CountdownDriver(store, adapter)
        await driver.start_background()   # ticks every `interval` seconds
        await driver.tick()                # or advance one step manually
        await driver.stop()
    """

    def __init__(self, store: StagingStore, adapter: DispatchAdapter, interval: float = 1.0):
        self.store = store
        self.adapter = adapter
        self.interval = interval
        self._task: Optional[asyncio.Task] = None
        self._inflight: dict[asyncio.Task, str] = {}     # task → entry id
        self.ticks = 0

    # ── Lifecycle ─────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start_background(self) -> asyncio.Task:
        if self.running:
            logger.warning("countdown_driver_already_running")
            return self._task
        self._task = asyncio.create_task(self._run())
        return self._task

    async def stop(self):
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("countdown_driver_stopped", ticks=self.ticks)

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for in-flight dispatches. Returns False if the timeout expired first."""
        if not self._inflight:
            return True
        done, pending = await asyncio.wait(set(self._inflight), timeout=timeout)
        if pending:
            logger.warning("dispatch_drain_timeout", pending=len(pending))
            return False
        return True

    async def cancel_inflight(self) -> int:
        """
        Cancel dispatches still running and wait for them to finish.

        Every cancelled entry still in the store ends in error with
        "Dispatch cancelled", including tasks cancelled before their first step.
        Returns the number of tasks cancelled.
        """
        inflight = dict(self._inflight)
        if not inflight:
            return 0
        for task in inflight:
            task.cancel()
        await asyncio.gather(*inflight, return_exceptions=True)
        for entry_id in inflight.values():
            self.store.mark_as_error(entry_id, "Dispatch cancelled")
        logger.warning("dispatch_cancelled", count=len(inflight), entry_ids=list(inflight.values()))
        return len(inflight)

    async def _run(self):
        logger.info("countdown_driver_started", interval=self.interval)
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("countdown_tick_error", error=str(e), exc_info=True)

    # ── Tick ──────────────────────────────────────────────────

    async def tick(self) -> list[str]:
        """Advance every pending entry by one second. Returns the ids dispatched."""
        self.ticks += 1
        dispatched = []

        for entry in self.store.list_entries([EntryStatus.PENDING]):
            if entry.countdown > 0:
                self.store.update_countdown(entry.id, entry.countdown - 1)
            if entry.countdown <= 1 and self.store.mark_as_sending(entry.id):
                self._dispatch(entry)
                dispatched.append(entry.id)

        if dispatched:
            logger.info("entries_dispatched", tick=self.ticks, entry_ids=dispatched)
        return dispatched

    # ── Manual actions ────────────────────────────────────────

    async def send_now(self, entry_id: str) -> bool:
        """Dispatch a pending or paused entry without waiting for its countdown."""
        entry = self.store.get(entry_id)
        if entry is None:
            return False
        if entry.status == EntryStatus.PAUSED:
            self.store.resume(entry_id)
        if not self.store.mark_as_sending(entry_id):
            return False
        logger.info("entry_send_now", entry_id=entry_id, countdown=entry.countdown)
        self._dispatch(entry)
        return True

    async def resend(self, entry_id: str) -> bool:
        """Manually retry an entry whose last dispatch failed."""
        entry = self.store.get(entry_id)
        if entry is None or not self.store.mark_for_resend(entry_id):
            return False
        self._dispatch(entry)
        return True

    # ── Dispatch ──────────────────────────────────────────────

    def _dispatch(self, entry: QueueEntry) -> asyncio.Task:
        task = asyncio.create_task(
            self._deliver(entry.id, entry.conversation_id, entry.content),
            name=f"dispatch:{entry.id}",
        )
        self._inflight[task] = entry.id
        task.add_done_callback(lambda t: self._inflight.pop(t, None))
        return task

    async def _deliver(self, entry_id: str, conversation_id: str, content: str):
        try:
            result = await self.adapter.send(conversation_id, content)
        except asyncio.CancelledError:
            self.store.mark_as_error(entry_id, "Dispatch cancelled")
            raise
        except Exception as e:
            logger.error("dispatch_adapter_raised",
                         entry_id=entry_id,
                         error=str(e),
                         exc_info=True)
            result = SendResult.failure(str(e) or type(e).__name__)

        if entry_id not in self.store:
            logger.info("dispatch_result_for_removed_entry",
                        entry_id=entry_id,
                        ok=result.ok)
            return

        if result.ok:
            self.store.mark_as_sent(entry_id, result.provider_message_id)
        else:
            self.store.mark_as_error(entry_id, result.error)
