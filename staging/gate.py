"""
Approval Gate — Admits clinician-approved content into the staging store.

Sources:
  approve_draft  — AI draft the clinician accepted (possibly after editing)
  quick_reply    — one-click template from the quick reply registry
  submit         — any other approved content

Each source has its own countdown; the caller may override it per entry.
"""
from __future__ import annotations

import structlog
from typing import Optional

from models.schemas import EntrySource, EntryStatus, QueueEntry
from staging.quick_replies import QuickReplyRegistry
from staging.store import StagingStore

logger = structlog.get_logger()


class ApprovalError(ValueError):
    """Raised when content cannot be admitted to the queue."""


class ApprovalGate:

    def __init__(
        self,
        store: StagingStore,
        ai_draft_countdown: int = 60,
        quick_reply_countdown: int = 60,
        signature: str = "",
        quick_replies: Optional[QuickReplyRegistry] = None,
    ):
        self.store = store
        self.ai_draft_countdown = ai_draft_countdown
        self.quick_reply_countdown = quick_reply_countdown
        self.signature = signature
        self.quick_replies = quick_replies or QuickReplyRegistry()

    def approve_draft(
        self,
        content: str,
        conversation_id: str,
        patient_name: str,
        draft_id: str = "",
        patient_id: str = "",
        countdown: Optional[int] = None,
    ) -> QueueEntry:
        return self._admit(
            content, conversation_id, patient_name,
            source=EntrySource.AI_DRAFT,
            source_id=draft_id,
            ai_generated=True,
            countdown=self.ai_draft_countdown if countdown is None else countdown,
            patient_id=patient_id,
        )

    def quick_reply(
        self,
        template_id: str,
        conversation_id: str,
        patient_name: str,
        patient_id: str = "",
        countdown: Optional[int] = None,
    ) -> QueueEntry:
        reply = self.quick_replies.get(template_id)
        if reply is None:
            raise ApprovalError(f"Unknown quick reply template: {template_id}")
        content = self.quick_replies.render(reply, patient_name, self.signature)
        return self._admit(
            content, conversation_id, patient_name,
            source=EntrySource.QUICK_REPLY,
            source_id=template_id,
            ai_generated=False,
            countdown=self.quick_reply_countdown if countdown is None else countdown,
            patient_id=patient_id,
        )

    def submit(
        self,
        content: str,
        conversation_id: str,
        patient_name: str,
        source_id: str = "",
        is_ai_approved: bool = False,
        countdown: Optional[int] = None,
        patient_id: str = "",
    ) -> QueueEntry:
        if countdown is None:
            countdown = self.ai_draft_countdown if is_ai_approved else self.quick_reply_countdown
        return self._admit(
            content, conversation_id, patient_name,
            source=EntrySource.AI_DRAFT if is_ai_approved else EntrySource.MANUAL,
            source_id=source_id,
            ai_generated=is_ai_approved,
            countdown=countdown,
            patient_id=patient_id,
        )

    def revise(self, entry_id: str, content: str) -> QueueEntry:
        """Replace a waiting entry with new content and a fresh countdown."""
        entry = self.store.get(entry_id)
        if entry is None:
            raise ApprovalError(f"Unknown staged entry: {entry_id}")
        if entry.status not in (EntryStatus.PENDING, EntryStatus.PAUSED):
            raise ApprovalError(f"Entry {entry_id} is {entry.status.value} and can no longer be revised")
        self._validate(content, entry.conversation_id)

        self.store.cancel_message(entry_id)
        revised = self._admit(
            content, entry.conversation_id, entry.patient_name,
            source=entry.source,
            source_id=entry.source_id,
            ai_generated=entry.ai_generated,
            countdown=entry.initial_countdown,
            patient_id=entry.patient_id,
        )
        logger.info("entry_revised", replaced_entry_id=entry_id, entry_id=revised.id)
        return revised

    # ── Helpers ───────────────────────────────────────────────

    @staticmethod
    def _validate(content: str, conversation_id: str):
        if not content or not content.strip():
            raise ApprovalError("Message content is empty")
        if not conversation_id or not conversation_id.strip():
            raise ApprovalError("Conversation id is required")

    def _admit(
        self,
        content: str,
        conversation_id: str,
        patient_name: str,
        source: EntrySource,
        source_id: str,
        ai_generated: bool,
        countdown: int,
        patient_id: str,
    ) -> QueueEntry:
        self._validate(content, conversation_id)
        return self.store.add_to_queue(
            content.strip(),
            conversation_id,
            patient_name,
            source_id=source_id,
            is_ai_approved=ai_generated,
            countdown=countdown,
            patient_id=patient_id,
            source=source,
        )
