"""Tests for ApprovalGate and the quick reply registry."""
import pytest

from models.schemas import EntrySource, EntryStatus
from staging.gate import ApprovalError, ApprovalGate
from staging.quick_replies import (
    DEFAULT_QUICK_REPLIES,
    QuickReply,
    QuickReplyCategory,
    QuickReplyRegistry,
)


class TestApproveDraft:
    def test_admits_pending_ai_draft(self, gate, store):
        entry = gate.approve_draft("  Your labs look normal.  ", "conv-1", "Jane Doe", draft_id="d-9")
        assert entry.status == EntryStatus.PENDING
        assert entry.content == "Your labs look normal."
        assert entry.source == EntrySource.AI_DRAFT
        assert entry.source_id == "d-9"
        assert entry.ai_generated is True
        assert entry.countdown == 60
        assert entry.id in store

    def test_countdown_override(self, gate):
        entry = gate.approve_draft("Hi", "conv-1", "Jane Doe", countdown=5)
        assert entry.countdown == 5

    def test_blank_content_rejected(self, gate, store):
        with pytest.raises(ApprovalError):
            gate.approve_draft("   ", "conv-1", "Jane Doe")
        assert len(store) == 0

    def test_missing_conversation_rejected(self, gate):
        with pytest.raises(ApprovalError):
            gate.approve_draft("Hello", "", "Jane Doe")

    def test_approval_error_is_value_error(self):
        assert issubclass(ApprovalError, ValueError)


class TestQuickReply:
    def test_renders_greeting_and_signature(self, gate):
        entry = gate.quick_reply("general_response", "conv-2", "John Smith")
        assert entry.content.startswith("Dear John Smith,\n\nThank you for reaching out.")
        assert entry.content.endswith("Best regards,\nInstantHPI Team")
        assert entry.source == EntrySource.QUICK_REPLY
        assert entry.source_id == "general_response"
        assert entry.ai_generated is False
        assert entry.countdown == 30

    def test_unknown_template(self, gate, store):
        with pytest.raises(ApprovalError, match="Unknown quick reply"):
            gate.quick_reply("does_not_exist", "conv-2", "John Smith")
        assert len(store) == 0

    def test_without_patient_name_uses_raw_body(self, store):
        gate = ApprovalGate(store, signature="Clinic")
        entry = gate.quick_reply("test_results", "conv-2", "")
        assert entry.content == QuickReplyRegistry().get("test_results").content


class TestSubmit:
    def test_manual_submission(self, gate):
        entry = gate.submit("Typed by hand", "conv-3", "Ann Lee")
        assert entry.source == EntrySource.MANUAL
        assert entry.ai_generated is False
        assert entry.countdown == 30

    def test_ai_submission_uses_draft_countdown(self, gate):
        entry = gate.submit("Drafted", "conv-3", "Ann Lee", source_id="m1", is_ai_approved=True)
        assert entry.source == EntrySource.AI_DRAFT
        assert entry.countdown == 60


class TestRevise:
    def test_replaces_entry_with_fresh_countdown(self, gate, store):
        original = gate.approve_draft("First draft", "conv-1", "Jane Doe", draft_id="d-1", countdown=20)
        store.update_countdown(original.id, 4)

        revised = gate.revise(original.id, "Second draft")

        assert store.get(original.id) is None
        assert revised.id != original.id
        assert revised.content == "Second draft"
        assert revised.countdown == 20
        assert revised.source_id == "d-1"
        assert revised.source == EntrySource.AI_DRAFT
        assert len(store) == 1

    def test_paused_entry_can_be_revised(self, gate, store):
        entry = gate.approve_draft("First", "conv-1", "Jane Doe")
        store.pause(entry.id)
        revised = gate.revise(entry.id, "Better")
        assert revised.status == EntryStatus.PENDING

    def test_sending_entry_cannot_be_revised(self, gate, store):
        entry = gate.approve_draft("First", "conv-1", "Jane Doe")
        store.mark_as_sending(entry.id)
        with pytest.raises(ApprovalError):
            gate.revise(entry.id, "Too late")
        assert store.get(entry.id).content == "First"

    def test_unknown_entry(self, gate):
        with pytest.raises(ApprovalError):
            gate.revise("staged_missing", "Anything")

    def test_blank_revision_keeps_original(self, gate, store):
        entry = gate.approve_draft("First", "conv-1", "Jane Doe")
        with pytest.raises(ApprovalError):
            gate.revise(entry.id, "  ")
        assert store.get(entry.id).content == "First"


class TestQuickReplyRegistry:
    def test_defaults_loaded(self):
        registry = QuickReplyRegistry()
        ids = {r.id for r in registry.list_replies()}
        assert ids == {r.id for r in DEFAULT_QUICK_REPLIES}
        assert len(ids) == 6

    def test_filter_by_category(self):
        registry = QuickReplyRegistry()
        general = registry.list_replies(QuickReplyCategory.GENERAL)
        assert {r.id for r in general} == {"test_results", "general_response"}

    def test_register_custom(self):
        registry = QuickReplyRegistry(replies=[])
        registry.register(QuickReply(
            id="lab_fasting",
            name="Fasting Reminder",
            category=QuickReplyCategory.APPOINTMENT,
            content="Please fast for 12 hours before your lab draw.",
        ))
        assert registry.get("lab_fasting").name == "Fasting Reminder"
        assert len(registry.to_list()) == 1

    def test_empty_template_rejected(self):
        registry = QuickReplyRegistry(replies=[])
        with pytest.raises(ValueError):
            registry.register(QuickReply(
                id="blank", name="Blank", category=QuickReplyCategory.GENERAL, content="  ",
            ))

    def test_render_without_signature(self):
        reply = QuickReplyRegistry().get("urgent_callback")
        text = QuickReplyRegistry.render(reply, "Jane Doe")
        assert text == f"Dear Jane Doe,\n\n{reply.content}"
