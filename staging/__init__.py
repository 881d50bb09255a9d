"""
Staging Queue — Holds approved patient messages on a countdown before dispatch.

  ApprovalGate  →  StagingStore  ←  CountdownDriver  →  DispatchAdapter
"""
from staging.store import StagingStore
from staging.driver import CountdownDriver
from staging.gate import ApprovalGate, ApprovalError
from staging.quick_replies import QuickReply, QuickReplyCategory, QuickReplyRegistry
from staging.session import StagingSession

__all__ = [
    "StagingStore", "CountdownDriver", "ApprovalGate", "ApprovalError",
    "QuickReply", "QuickReplyCategory", "QuickReplyRegistry", "StagingSession",
]
