"""
StagingStore — Dict-backed store for the entries of one staging session.

Features:
  - Guards every transition so stale or racing calls are silent no-ops
  - Hands out copies; only the store mutates entries
  - Single event loop, no locks
  - All data lost on process restart

Transitions:
  pending ⇄ paused
  pending → sending → sent | error
  error   → sending               (manual resend)
"""
from __future__ import annotations

import structlog
from collections import Counter
from typing import Any, Iterable, Optional

from models.schemas import (
    EntrySource, EntryStatus, QueueEntry,
    ACTIVE_STATUSES, FINISHED_STATUSES, new_entry_id,
)

logger = structlog.get_logger()


class StagingStore:
    """Owns the queue entries of a single session, keyed by entry id."""

    def __init__(self, default_countdown: int = 60):
        self.default_countdown = max(0, int(default_countdown))
        self._entries: dict[str, QueueEntry] = {}      # id → entry, insertion ordered

    # ── Create ────────────────────────────────────────────────

    def add_to_queue(
        self,
        content: str,
        conversation_id: str,
        patient_name: str,
        source_id: str = "",
        is_ai_approved: bool = True,
        countdown: Optional[int] = None,
        patient_id: str = "",
        source: Optional[EntrySource] = None,
    ) -> QueueEntry:
        initial = self.default_countdown if countdown is None else max(0, int(countdown))
        if source is None:
            source = EntrySource.AI_DRAFT if is_ai_approved else EntrySource.MANUAL

        entry = QueueEntry(
            content=content,
            conversation_id=conversation_id,
            patient_name=patient_name,
            patient_id=patient_id,
            source_id=source_id,
            source=source,
            ai_generated=is_ai_approved,
            initial_countdown=initial,
            countdown=initial,
        )
        while entry.id in self._entries:
            entry.id = new_entry_id()
        self._entries[entry.id] = entry

        logger.info("entry_staged",
                    entry_id=entry.id,
                    conversation_id=conversation_id,
                    source=source.value,
                    countdown=initial)
        return entry.model_copy(deep=True)

    # ── Countdown ─────────────────────────────────────────────

    def update_countdown(self, entry_id: str, value: int) -> bool:
        entry = self._entries.get(entry_id)
        if entry is None or entry.status != EntryStatus.PENDING:
            return False
        entry.countdown = max(0, int(value))
        return True

    # ── Transitions ───────────────────────────────────────────

    def mark_as_sending(self, entry_id: str) -> bool:
        entry = self._get_in(entry_id, {EntryStatus.PENDING}, "mark_as_sending")
        if entry is None:
            return False
        entry.attempts += 1
        entry.transition(EntryStatus.SENDING)
        return True

    def mark_as_sent(self, entry_id: str, provider_message_id: str = "") -> bool:
        entry = self._get_in(entry_id, {EntryStatus.SENDING}, "mark_as_sent")
        if entry is None:
            return False
        entry.provider_message_id = provider_message_id
        entry.transition(EntryStatus.SENT)
        logger.info("entry_sent", entry_id=entry_id, conversation_id=entry.conversation_id)
        return True

    def mark_as_error(self, entry_id: str, reason: str) -> bool:
        entry = self._get_in(entry_id, {EntryStatus.SENDING}, "mark_as_error")
        if entry is None:
            return False
        entry.transition(EntryStatus.ERROR, error_reason=reason or "Unknown dispatch failure")
        logger.warning("entry_send_failed",
                       entry_id=entry_id,
                       conversation_id=entry.conversation_id,
                       reason=entry.error_reason)
        return True

    def mark_for_resend(self, entry_id: str) -> bool:
        entry = self._get_in(entry_id, {EntryStatus.ERROR}, "mark_for_resend")
        if entry is None:
            return False
        entry.attempts += 1
        entry.transition(EntryStatus.SENDING)
        logger.info("entry_resend", entry_id=entry_id, attempt=entry.attempts)
        return True

    def pause(self, entry_id: str) -> bool:
        entry = self._get_in(entry_id, {EntryStatus.PENDING}, "pause")
        if entry is None:
            return False
        entry.transition(EntryStatus.PAUSED)
        return True

    def resume(self, entry_id: str) -> bool:
        entry = self._get_in(entry_id, {EntryStatus.PAUSED}, "resume")
        if entry is None:
            return False
        entry.transition(EntryStatus.PENDING)
        return True

    # ── Removal ───────────────────────────────────────────────

    def cancel_message(self, entry_id: str) -> bool:
        entry = self._entries.get(entry_id)
        if entry is None:
            logger.debug("cancel_unknown_entry", entry_id=entry_id)
            return False
        if entry.status in FINISHED_STATUSES:
            logger.debug("cancel_finished_entry", entry_id=entry_id, status=entry.status.value)
            return False
        if entry.status == EntryStatus.SENDING:
            # The in-flight result will find nothing and be dropped.
            logger.warning("cancel_while_sending", entry_id=entry_id)
        del self._entries[entry_id]
        logger.info("entry_cancelled", entry_id=entry_id, countdown=entry.countdown)
        return True

    def clear_finished(self) -> int:
        finished = [eid for eid, e in self._entries.items() if e.status in FINISHED_STATUSES]
        for eid in finished:
            del self._entries[eid]
        if finished:
            logger.info("finished_entries_cleared", count=len(finished))
        return len(finished)

    # ── Reads ─────────────────────────────────────────────────

    def get(self, entry_id: str) -> Optional[QueueEntry]:
        entry = self._entries.get(entry_id)
        return entry.model_copy(deep=True) if entry else None

    def list_entries(self, statuses: Optional[Iterable[EntryStatus]] = None) -> list[QueueEntry]:
        wanted = set(statuses) if statuses is not None else None
        return [
            e.model_copy(deep=True)
            for e in self._entries.values()
            if wanted is None or e.status in wanted
        ]

    def active_entries(self) -> list[QueueEntry]:
        return self.list_entries(ACTIVE_STATUSES)

    def stats(self) -> dict[str, Any]:
        counts = Counter(e.status.value for e in self._entries.values())
        return {
            "total": len(self._entries),
            "active": sum(counts[s.value] for s in ACTIVE_STATUSES),
            "by_status": {s.value: counts.get(s.value, 0) for s in EntryStatus},
        }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, entry_id: str) -> bool:
        return entry_id in self._entries

    # ── Helpers ───────────────────────────────────────────────

    def _get_in(self, entry_id: str, allowed: set[EntryStatus], op: str) -> Optional[QueueEntry]:
        entry = self._entries.get(entry_id)
        if entry is None:
            logger.debug("stale_entry_reference", entry_id=entry_id, op=op)
            return None
        if entry.status not in allowed:
            logger.debug("transition_ignored",
                         entry_id=entry_id,
                         op=op,
                         status=entry.status.value)
            return None
        return entry
