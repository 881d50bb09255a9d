"""
Core data models for the staging queue.
These are the types shared by the store, the driver, the gate and the API.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_entry_id() -> str:
    return f"staged_{uuid.uuid4().hex[:16]}"


# ──────────────────────────────────────────────────────────────
#  Enums
# ──────────────────────────────────────────────────────────────

class EntryStatus(str, Enum):
    PENDING = "pending"       # countdown running
    PAUSED = "paused"         # countdown frozen while the clinician revises
    SENDING = "sending"       # dispatch in flight
    SENT = "sent"
    ERROR = "error"


class EntrySource(str, Enum):
    AI_DRAFT = "ai_draft"
    QUICK_REPLY = "quick_reply"
    MANUAL = "manual"


ACTIVE_STATUSES = frozenset({EntryStatus.PENDING, EntryStatus.PAUSED, EntryStatus.SENDING})
FINISHED_STATUSES = frozenset({EntryStatus.SENT, EntryStatus.ERROR})

URGENT_THRESHOLD_SECONDS = 10


# ──────────────────────────────────────────────────────────────
#  QueueEntry — one approved message awaiting its countdown
# ──────────────────────────────────────────────────────────────

class QueueEntry(BaseModel):
    id: str = Field(default_factory=new_entry_id)
    content: str
    conversation_id: str
    patient_name: str
    patient_id: str = ""
    source_id: str = ""                       # draft id, template id or message id
    source: EntrySource = EntrySource.AI_DRAFT
    ai_generated: bool = True
    initial_countdown: int = Field(default=60, ge=0)
    countdown: int = Field(default=60, ge=0)
    status: EntryStatus = EntryStatus.PENDING
    error_reason: Optional[str] = None
    attempts: int = 0
    provider_message_id: str = ""
    status_history: list[dict[str, Any]] = []
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_urgent(self) -> bool:
        return self.status == EntryStatus.PENDING and self.countdown <= URGENT_THRESHOLD_SECONDS

    def transition(self, new_status: EntryStatus, error_reason: Optional[str] = None) -> None:
        """Move to ``new_status`` and append the change to ``status_history``."""
        now = _utcnow()
        self.status_history.append({
            "from": self.status.value,
            "to": new_status.value,
            "at": now.isoformat(),
        })
        self.status = new_status
        self.error_reason = error_reason if new_status == EntryStatus.ERROR else None
        self.updated_at = now

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        data["is_urgent"] = self.is_urgent
        data["is_active"] = self.is_active
        return data
