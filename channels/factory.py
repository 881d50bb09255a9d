"""
Dispatch Adapter Factory — instantiates the configured adapter.

  spruce → SpruceAdapter (production; a missing token yields an adapter
           whose every send fails with the configuration error)
  stub   → StubAdapter (logs instead of sending)
"""
from __future__ import annotations

import structlog

from channels.base import DispatchAdapter
from config.settings import DispatchConfig

logger = structlog.get_logger()

SUPPORTED_PROVIDERS = ("spruce", "stub")


def create_dispatch_adapter(config: DispatchConfig) -> DispatchAdapter:
    """
    Create a dispatch adapter from config.

    Raises:
        ValueError: If the provider is not supported.
    """
    provider = config.provider.lower()

    if provider == "spruce":
        from channels.spruce_adapter import SpruceAdapter
        adapter = SpruceAdapter(
            api_token=config.spruce.api_token,
            base_url=config.spruce.base_url,
            timeout=config.spruce.timeout,
            max_attempts=config.spruce.max_attempts,
        )
        logger.info("dispatch_adapter_created",
                    provider="spruce",
                    configured=adapter.configured)
        return adapter

    elif provider == "stub":
        from channels.stub_adapter import StubAdapter
        logger.info("dispatch_adapter_created", provider="stub")
        return StubAdapter()

    raise ValueError(
        f"Unsupported dispatch provider: {config.provider}. "
        f"Supported: {', '.join(SUPPORTED_PROVIDERS)}"
    )
