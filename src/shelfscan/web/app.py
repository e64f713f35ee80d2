"""FastAPI web application driving the scan-to-catalog workflow."""

from __future__ import annotations

import os
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

import structlog
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..core.client import CatalogClient
from ..core.models import LiveScan, ManualEntry, MetadataEntry, screen_name
from ..core.workflow import Workflow, WorkflowConfig
from .browser_camera import BrowserCamera

load_dotenv()

log = structlog.get_logger()

SESSION_TTL = 1800  # 30 minutes
MAX_SESSIONS = 50  # one per scanning station is the norm
MAX_BODY_BYTES = 10_000


@dataclass
class Session:
    workflow: Workflow
    camera: BrowserCamera
    created_at: float = field(default_factory=time.time)
    last_seen: float = field(default_factory=time.time)


# In-memory session store
sessions: dict[str, Session] = {}

# Shared catalog service client, built on first use
_client: CatalogClient | None = None


def _catalog_client() -> CatalogClient:
    global _client
    if _client is None:
        _client = CatalogClient()
    return _client


def _workflow_config() -> WorkflowConfig:
    return WorkflowConfig(
        detailed=os.environ.get("RECORD_VARIANT", "basic") == "detailed",
        start_in_manual_entry=os.environ.get("START_SCREEN", "menu") == "manual",
    )


async def _clean_expired() -> None:
    now = time.time()
    expired = [sid for sid, s in sessions.items() if now - s.last_seen > SESSION_TTL]
    for sid in expired:
        session = sessions.pop(sid, None)
        if session:
            await session.workflow.close()
            log.info("session_expired", session_id=sid)


def describe(workflow: Workflow) -> dict:
    """JSON view of the screen on display."""
    screen = workflow.screen
    state: dict = {"screen": screen_name(screen)}
    if isinstance(screen, ManualEntry):
        state["text"] = screen.text
    elif isinstance(screen, LiveScan):
        state["camera"] = {"status": screen.status.value, "message": screen.message}
    elif isinstance(screen, MetadataEntry):
        record = asdict(screen.record)
        for key in ("entry_method", "title_source", "author_source"):
            record[key] = record[key].value
        state.update(
            {
                "record": record,
                "loading": screen.loading,
                "manual_title": screen.manual_title,
                "manual_author": screen.manual_author,
                "saving": screen.saving,
                "saved": screen.saved,
                "can_save": not (screen.loading or screen.saving or screen.saved),
                "message": screen.message,
            }
        )
    return state


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    for sid in list(sessions):
        await sessions.pop(sid).workflow.close()
    if _client is not None:
        await _client.aclose()


app = FastAPI(title="Shelfscan", docs_url=None, redoc_url=None, lifespan=lifespan)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": "0.1.0",
        "environment": os.environ.get("ENV", "dev"),
        "sessions_active": len(sessions),
    }


async def _body(request: Request) -> dict | JSONResponse:
    content_length = request.headers.get("content-length")
    if content_length and not content_length.isdigit():
        return JSONResponse({"error": "Invalid Content-Length header."}, status_code=400)
    if content_length and int(content_length) > MAX_BODY_BYTES:
        return JSONResponse({"error": "Request too large."}, status_code=413)
    if not content_length or content_length == "0":
        return {}
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse({"error": "Body is not valid JSON."}, status_code=400)
    if not isinstance(body, dict):
        return JSONResponse({"error": "Expected a JSON object."}, status_code=400)
    return body


def _get_session(session_id: str) -> Session | None:
    session = sessions.get(session_id)
    if not session:
        return None
    session.last_seen = time.time()
    return session


def _not_found() -> JSONResponse:
    return JSONResponse({"error": "Session not found or expired."}, status_code=404)


@app.post("/api/sessions")
async def create_session():
    await _clean_expired()
    if len(sessions) >= MAX_SESSIONS:
        return JSONResponse(
            {"error": "Server is busy. Please try again in a few minutes."},
            status_code=503,
        )
    camera = BrowserCamera()
    workflow = Workflow(_catalog_client(), camera, _workflow_config())
    session_id = uuid.uuid4().hex[:12]
    sessions[session_id] = Session(workflow=workflow, camera=camera)
    log.info("session_created", session_id=session_id, detailed=workflow.config.detailed)
    return {"session_id": session_id, "state": describe(workflow)}


@app.get("/api/sessions/{session_id}")
async def get_state(session_id: str):
    s = _get_session(session_id)
    if not s:
        return _not_found()
    return describe(s.workflow)


@app.delete("/api/sessions/{session_id}")
async def end_session(session_id: str):
    s = sessions.pop(session_id, None)
    if not s:
        return _not_found()
    await s.workflow.close()
    return {"status": "closed"}


@app.post("/api/sessions/{session_id}/menu")
async def main_menu(session_id: str):
    s = _get_session(session_id)
    if not s:
        return _not_found()
    s.workflow.show_main_menu()
    return describe(s.workflow)


@app.post("/api/sessions/{session_id}/manual")
async def manual_entry(session_id: str):
    s = _get_session(session_id)
    if not s:
        return _not_found()
    s.workflow.show_manual_entry()
    return describe(s.workflow)


@app.post("/api/sessions/{session_id}/manual/input")
async def manual_input(session_id: str, request: Request):
    s = _get_session(session_id)
    if not s:
        return _not_found()
    body = await _body(request)
    if isinstance(body, JSONResponse):
        return body
    await s.workflow.type_isbn(str(body.get("text", "")))
    return describe(s.workflow)


@app.post("/api/sessions/{session_id}/scanner")
async def open_scanner(session_id: str, request: Request):
    s = _get_session(session_id)
    if not s:
        return _not_found()
    body = await _body(request)
    if isinstance(body, JSONResponse):
        return body
    devices = body.get("devices") or []
    if not isinstance(devices, list):
        return JSONResponse({"error": "devices must be a list."}, status_code=400)
    s.camera.announce([d for d in devices if isinstance(d, dict)], body.get("error"))
    await s.workflow.open_scanner()
    return describe(s.workflow)


@app.post("/api/sessions/{session_id}/scanner/detections")
async def detection(session_id: str, request: Request):
    s = _get_session(session_id)
    if not s:
        return _not_found()
    body = await _body(request)
    if isinstance(body, JSONResponse):
        return body
    if "error" in body:
        s.camera.push_error(body["error"])
    elif "text" in body:
        s.camera.push(str(body["text"]))
    return describe(s.workflow)


@app.post("/api/sessions/{session_id}/fields")
async def update_fields(session_id: str, request: Request):
    s = _get_session(session_id)
    if not s:
        return _not_found()
    body = await _body(request)
    if isinstance(body, JSONResponse):
        return body
    try:
        ignored = s.workflow.set_fields({name: str(value) for name, value in body.items()})
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    state = describe(s.workflow)
    state["ignored"] = ignored
    return state


@app.post("/api/sessions/{session_id}/save")
async def save(session_id: str):
    s = _get_session(session_id)
    if not s:
        return _not_found()
    await s.workflow.save()
    return describe(s.workflow)


def main():
    port = int(os.environ.get("PORT", "8000"))
    is_dev = os.environ.get("ENV", "dev") == "dev"
    uvicorn.run(
        "shelfscan.web.app:app",
        host="0.0.0.0",
        port=port,
        reload=is_dev,
    )
