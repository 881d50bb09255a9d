"""Shared test fixtures for the staging queue."""
import asyncio
import pytest
from typing import Optional

from channels.base import DispatchAdapter, DispatchError
from config.settings import Settings, StagingConfig, DispatchConfig
from staging.store import StagingStore
from staging.driver import CountdownDriver
from staging.gate import ApprovalGate


class RecordingAdapter(DispatchAdapter):
    """Dispatch adapter that records every call and can fail or hold on demand."""

    channel = "recording"

    def __init__(self, fail_with: Optional[str] = None, hold: bool = False):
        super().__init__()
        self.fail_with = fail_with
        self.calls: list[tuple[str, str]] = []
        self.release = asyncio.Event()
        if not hold:
            self.release.set()

    async def _do_send(self, conversation_id: str, content: str) -> str:
        self.calls.append((conversation_id, content))
        await self.release.wait()
        if self.fail_with:
            raise DispatchError(self.fail_with, channel=self.channel)
        return f"msg_{len(self.calls)}"


async def run_ticks(driver: CountdownDriver, count: int):
    """Advance the driver `count` ticks, letting dispatch tasks settle after each."""
    for _ in range(count):
        await driver.tick()
        await driver.drain(timeout=1.0)


@pytest.fixture
def adapter() -> RecordingAdapter:
    return RecordingAdapter()


@pytest.fixture
def failing_adapter() -> RecordingAdapter:
    return RecordingAdapter(fail_with="Spruce rejected message (400): conversation archived")


@pytest.fixture
def store() -> StagingStore:
    return StagingStore(default_countdown=60)


@pytest.fixture
def driver(store, adapter) -> CountdownDriver:
    return CountdownDriver(store, adapter, interval=1.0)


@pytest.fixture
def gate(store) -> ApprovalGate:
    return ApprovalGate(
        store,
        ai_draft_countdown=60,
        quick_reply_countdown=30,
        signature="InstantHPI Team",
    )


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        log_level="WARNING",
        staging=StagingConfig(
            ai_draft_countdown=60,
            quick_reply_countdown=30,
            tick_interval=3600.0,       # never fires on its own during a test
            drain_timeout=1.0,
        ),
        dispatch=DispatchConfig(provider="stub"),
    )
