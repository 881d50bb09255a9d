"""Dispatch adapters for delivering staged messages."""
from channels.base import (
    DispatchAdapter,
    ChannelError,
    DispatchError,
    DispatchMetrics,
    SendResult,
)
from channels.spruce_adapter import SpruceAdapter
from channels.stub_adapter import StubAdapter
from channels.factory import create_dispatch_adapter

__all__ = [
    "DispatchAdapter", "ChannelError", "DispatchError",
    "DispatchMetrics", "SendResult",
    "SpruceAdapter", "StubAdapter", "create_dispatch_adapter",
]
