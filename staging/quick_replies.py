"""
Quick Reply Registry — One-click message templates for the approval gate.

Templates are indexed by id and category. Rendering wraps the body in the
patient greeting and the practice signature, the same text the clinician
would otherwise type around it.
"""
from __future__ import annotations

import structlog
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel

logger = structlog.get_logger()


class QuickReplyCategory(str, Enum):
    GENERAL = "general"
    APPOINTMENT = "appointment"
    MEDICATION = "medication"
    URGENT = "urgent"
    FOLLOWUP = "followup"


class QuickReply(BaseModel):
    id: str
    name: str
    category: QuickReplyCategory
    content: str


DEFAULT_QUICK_REPLIES = [
    QuickReply(
        id="confirm_appointment",
        name="Confirm Appointment",
        category=QuickReplyCategory.APPOINTMENT,
        content=(
            "Your appointment is confirmed for [DATE] at [TIME]. Please arrive 15 minutes "
            "early. Reply to confirm or call to reschedule."
        ),
    ),
    QuickReply(
        id="prescription_ready",
        name="Prescription Ready",
        category=QuickReplyCategory.MEDICATION,
        content=(
            "Your prescription is ready for pickup at [PHARMACY]. Please bring your ID. "
            "Contact us if you have questions about your medication."
        ),
    ),
    QuickReply(
        id="test_results",
        name="Test Results Available",
        category=QuickReplyCategory.GENERAL,
        content=(
            "Your recent test results are now available. Please log into your patient "
            "portal to view them, or schedule a follow-up to discuss."
        ),
    ),
    QuickReply(
        id="followup_reminder",
        name="Follow-up Reminder",
        category=QuickReplyCategory.FOLLOWUP,
        content=(
            "This is a reminder for your follow-up visit. Please contact us to schedule "
            "at your earliest convenience."
        ),
    ),
    QuickReply(
        id="urgent_callback",
        name="Urgent: Please Call",
        category=QuickReplyCategory.URGENT,
        content=(
            "Please call our office at your earliest convenience regarding your recent "
            "visit. Our number is [PHONE]."
        ),
    ),
    QuickReply(
        id="general_response",
        name="General Response",
        category=QuickReplyCategory.GENERAL,
        content=(
            "Thank you for reaching out. We have received your message and will respond "
            "within 24 hours during business hours."
        ),
    ),
]


class QuickReplyRegistry:
    def __init__(self, replies: Optional[list[QuickReply]] = None):
        self._replies: dict[str, QuickReply] = {}
        for reply in DEFAULT_QUICK_REPLIES if replies is None else replies:
            self.register(reply)

    def register(self, reply: QuickReply):
        if not reply.content.strip():
            raise ValueError(f"Quick reply '{reply.id}' has no content")
        self._replies[reply.id] = reply
        logger.debug("quick_reply_registered", reply_id=reply.id, category=reply.category.value)

    def get(self, reply_id: str) -> Optional[QuickReply]:
        return self._replies.get(reply_id)

    def list_replies(self, category: Optional[QuickReplyCategory] = None) -> list[QuickReply]:
        return [r for r in self._replies.values() if category is None or r.category == category]

    @staticmethod
    def render(reply: QuickReply, patient_name: str = "", signature: str = "") -> str:
        if not patient_name:
            return reply.content
        text = f"Dear {patient_name},\n\n{reply.content}"
        if signature:
            text += f"\n\nBest regards,\n{signature}"
        return text

    def to_list(self) -> list[dict[str, Any]]:
        return [r.model_dump(mode="json") for r in self._replies.values()]
