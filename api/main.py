"""
FastAPI Application — REST API for the command-center staging queue.

Provides:
- Approval endpoints that admit AI drafts and quick replies into the queue
- Queue views (active queue and history) for the command center
- Clinician actions: cancel, pause, resume, send now, resend, revise
- Health and adapter diagnostics
"""
from __future__ import annotations

import structlog
from datetime import datetime, timezone
from typing import Any, Optional
from contextlib import asynccontextmanager

# Load .env before any config is read
from dotenv import load_dotenv
load_dotenv()

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from channels.base import DispatchAdapter
from config.log_setup import configure_logging
from config.settings import Settings, get_settings
from models.schemas import EntryStatus, QueueEntry
from staging.gate import ApprovalError
from staging.quick_replies import QuickReplyCategory
from staging.session import StagingSession

logger = structlog.get_logger()


# ──────────────────────────────────────────────────────────────
#  Request Models
# ──────────────────────────────────────────────────────────────

class ApproveDraftRequest(BaseModel):
    content: str
    conversation_id: str
    patient_name: str
    patient_id: str = ""
    draft_id: str = ""
    countdown: Optional[int] = None


class QuickReplyRequest(BaseModel):
    template_id: str
    conversation_id: str
    patient_name: str
    patient_id: str = ""
    countdown: Optional[int] = None


class ReviseRequest(BaseModel):
    content: str


# ──────────────────────────────────────────────────────────────
#  App factory
# ──────────────────────────────────────────────────────────────

def create_app(settings: Settings = None, adapter: DispatchAdapter = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        session = StagingSession(settings, adapter=adapter)
        app.state.staging = session
        await session.start()
        logger.info("staging_api_started", app_name=settings.app_name)
        yield
        await session.close()
        logger.info("staging_api_stopped")

    app = FastAPI(
        title=settings.app_name,
        description="Clinician-approved message staging with countdown auto-send",
        version="1.0.0",
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ApprovalError)
    async def approval_error_handler(request: Request, exc: ApprovalError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    _register_routes(app)
    return app


def get_session(request: Request) -> StagingSession:
    return request.app.state.staging


def _require_entry(session: StagingSession, entry_id: str) -> QueueEntry:
    entry = session.store.get(entry_id)
    if entry is None:
        raise HTTPException(404, "Staged entry not found")
    return entry


def _conflict(entry: QueueEntry, action: str) -> HTTPException:
    return HTTPException(409, f"Cannot {action} an entry that is {entry.status.value}")


# ══════════════════════════════════════════════════════════════
#  ROUTES
# ══════════════════════════════════════════════════════════════

def _register_routes(app: FastAPI):

    @app.get("/health")
    async def health(session: StagingSession = Depends(get_session)):
        return {
            "status": "healthy" if session.adapter.configured else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **await session.health(),
        }

    # ── Queue views ───────────────────────────────────────────

    @app.get("/api/v1/staging")
    async def list_entries(
        status: str = None,
        active: bool = False,
        session: StagingSession = Depends(get_session),
    ):
        if status:
            try:
                entries = session.store.list_entries([EntryStatus(status)])
            except ValueError:
                raise HTTPException(400, f"Unknown status: {status}")
        elif active:
            entries = session.store.active_entries()
        else:
            entries = session.store.list_entries()
        return [e.to_dict() for e in entries]

    @app.get("/api/v1/staging/stats")
    async def queue_stats(session: StagingSession = Depends(get_session)):
        return session.store.stats()

    @app.get("/api/v1/staging/templates")
    async def list_templates(
        category: str = None,
        session: StagingSession = Depends(get_session),
    ):
        registry = session.gate.quick_replies
        if category:
            try:
                replies = registry.list_replies(QuickReplyCategory(category))
            except ValueError:
                raise HTTPException(400, f"Unknown category: {category}")
            return [r.model_dump(mode="json") for r in replies]
        return registry.to_list()

    @app.get("/api/v1/staging/{entry_id}")
    async def get_entry(entry_id: str, session: StagingSession = Depends(get_session)):
        return _require_entry(session, entry_id).to_dict()

    # ── Approval ──────────────────────────────────────────────

    @app.post("/api/v1/staging/drafts", status_code=201)
    async def approve_draft(req: ApproveDraftRequest, session: StagingSession = Depends(get_session)):
        entry = session.gate.approve_draft(
            req.content,
            req.conversation_id,
            req.patient_name,
            draft_id=req.draft_id,
            patient_id=req.patient_id,
            countdown=req.countdown,
        )
        return entry.to_dict()

    @app.post("/api/v1/staging/quick-replies", status_code=201)
    async def queue_quick_reply(req: QuickReplyRequest, session: StagingSession = Depends(get_session)):
        entry = session.gate.quick_reply(
            req.template_id,
            req.conversation_id,
            req.patient_name,
            patient_id=req.patient_id,
            countdown=req.countdown,
        )
        return entry.to_dict()

    # ── Clinician actions ─────────────────────────────────────

    @app.post("/api/v1/staging/{entry_id}/cancel")
    async def cancel_entry(entry_id: str, session: StagingSession = Depends(get_session)):
        return {"entry_id": entry_id, "cancelled": session.store.cancel_message(entry_id)}

    @app.post("/api/v1/staging/{entry_id}/pause")
    async def pause_entry(entry_id: str, session: StagingSession = Depends(get_session)):
        entry = _require_entry(session, entry_id)
        if not session.store.pause(entry_id):
            raise _conflict(entry, "pause")
        return session.store.get(entry_id).to_dict()

    @app.post("/api/v1/staging/{entry_id}/resume")
    async def resume_entry(entry_id: str, session: StagingSession = Depends(get_session)):
        entry = _require_entry(session, entry_id)
        if not session.store.resume(entry_id):
            raise _conflict(entry, "resume")
        return session.store.get(entry_id).to_dict()

    @app.post("/api/v1/staging/{entry_id}/send-now")
    async def send_now(entry_id: str, session: StagingSession = Depends(get_session)):
        entry = _require_entry(session, entry_id)
        if not await session.driver.send_now(entry_id):
            raise _conflict(entry, "send")
        return session.store.get(entry_id).to_dict()

    @app.post("/api/v1/staging/{entry_id}/resend")
    async def resend(entry_id: str, session: StagingSession = Depends(get_session)):
        entry = _require_entry(session, entry_id)
        if not await session.driver.resend(entry_id):
            raise _conflict(entry, "resend")
        return session.store.get(entry_id).to_dict()

    @app.post("/api/v1/staging/{entry_id}/revise")
    async def revise(entry_id: str, req: ReviseRequest, session: StagingSession = Depends(get_session)):
        entry = _require_entry(session, entry_id)
        if entry.status not in (EntryStatus.PENDING, EntryStatus.PAUSED):
            raise _conflict(entry, "revise")
        return session.gate.revise(entry_id, req.content).to_dict()

    @app.delete("/api/v1/staging/finished")
    async def clear_finished(session: StagingSession = Depends(get_session)) -> dict[str, Any]:
        return {"cleared": session.store.clear_finished()}


# Module-level app for `uvicorn api.main:app`; tests build their own via create_app().
app = create_app()


# ══════════════════════════════════════════════════════════════
#  Entry Point
# ══════════════════════════════════════════════════════════════

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
