"""
Configuration loader for the staging queue service.
Reads settings from YAML file with environment variable substitution.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass
class StagingConfig:
    ai_draft_countdown: int = 60        # seconds before an approved AI draft auto-sends
    quick_reply_countdown: int = 60     # seconds before a quick-reply template auto-sends
    tick_interval: float = 1.0          # countdown driver period
    drain_timeout: float = 10.0         # wait for in-flight sends on shutdown


@dataclass
class SpruceConfig:
    base_url: str = "https://api.sprucehealth.com/v1"
    api_token: str = ""
    timeout: float = 30.0
    max_attempts: int = 3               # transport-level retries per request


@dataclass
class DispatchConfig:
    provider: str = "spruce"            # "spruce" | "stub"
    spruce: SpruceConfig = field(default_factory=SpruceConfig)


@dataclass
class Settings:
    app_name: str = "Command Center Staging Queue"
    debug: bool = False
    log_level: str = "INFO"
    log_format: str = "console"         # "console" | "json"
    practice_signature: str = "InstantHPI Team"
    staging: StagingConfig = field(default_factory=StagingConfig)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)

    def validate(self) -> None:
        errors = []
        if self.staging.ai_draft_countdown < 0:
            errors.append("staging.ai_draft_countdown must be >= 0")
        if self.staging.quick_reply_countdown < 0:
            errors.append("staging.quick_reply_countdown must be >= 0")
        if self.staging.tick_interval <= 0:
            errors.append("staging.tick_interval must be > 0")
        if self.dispatch.provider.lower() not in ("spruce", "stub"):
            errors.append(f"dispatch.provider must be 'spruce' or 'stub', got {self.dispatch.provider!r}")
        if self.log_format not in ("console", "json"):
            errors.append(f"log_format must be 'console' or 'json', got {self.log_format!r}")
        if errors:
            raise ValueError("Config errors:\n  " + "\n  ".join(errors))


_settings: Optional[Settings] = None


def _substitute_env_vars(value: str) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values (empty if unset)."""
    pattern = re.compile(r'\$\{(\w+)\}')
    def replacer(match):
        return os.environ.get(match.group(1), "")
    return pattern.sub(replacer, value)


def _process_values(obj: Any) -> Any:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _process_values(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_process_values(v) for v in obj]
    return obj


def load_settings(config_path: str = None) -> Settings:
    """Load settings from YAML file."""
    global _settings

    if config_path is None:
        config_path = os.environ.get(
            "STAGING_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    settings = Settings()

    if Path(config_path).exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        raw = _process_values(raw)

        settings.app_name = raw.get("app_name", settings.app_name)
        settings.debug = raw.get("debug", settings.debug)
        settings.log_level = str(raw.get("log_level") or settings.log_level).upper()
        settings.log_format = raw.get("log_format", settings.log_format)
        settings.practice_signature = raw.get("practice_signature", settings.practice_signature)

        if "staging" in raw:
            st = raw["staging"] or {}
            settings.staging = StagingConfig(
                ai_draft_countdown=int(st.get("ai_draft_countdown", 60)),
                quick_reply_countdown=int(st.get("quick_reply_countdown", 60)),
                tick_interval=float(st.get("tick_interval", 1.0)),
                drain_timeout=float(st.get("drain_timeout", 10.0)),
            )

        if "dispatch" in raw:
            d = raw["dispatch"] or {}
            sp = d.get("spruce") or {}
            settings.dispatch = DispatchConfig(
                provider=d.get("provider", "spruce"),
                spruce=SpruceConfig(
                    base_url=sp.get("base_url", SpruceConfig.base_url),
                    api_token=sp.get("api_token", ""),
                    timeout=float(sp.get("timeout", 30.0)),
                    max_attempts=int(sp.get("max_attempts", 3)),
                ),
            )

    settings.validate()
    _settings = settings
    return settings


def get_settings() -> Settings:
    """Return cached settings or load from default path."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
