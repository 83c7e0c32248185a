"""FastAPI web application for BookBrief."""

from __future__ import annotations

import os
import time
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone

import httpx
import structlog
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..core.cache import BookCache
from ..core.catalog import CatalogClient, resolve_suggestions
from ..core.config import Settings
from ..core.models import POPULAR_BOOKS, ErrorKind, ViewState
from ..core.orchestrator import Orchestrator
from ..core.presentation import book_payload
from ..core.summarizer import SummaryGenerator

load_dotenv()

log = structlog.get_logger()

SESSION_TTL = 1800  # 30 minutes
MAX_SESSIONS = 500  # cap total sessions to bound memory
MAX_BODY_BYTES = 10_000

# Rate limiting: per-IP, requests that hit the catalog detail + summary APIs
RATE_LIMIT = int(os.environ.get("RATE_LIMIT", "20"))  # requests per window
RATE_LIMIT_WINDOW = int(os.environ.get("RATE_LIMIT_WINDOW", "60"))  # seconds

ERROR_STATUS = {
    ErrorKind.NO_TITLE: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FETCH_FAILED: 502,
}


@dataclass
class Session:
    orchestrator: Orchestrator
    created_at: float = field(default_factory=time.time)


# In-memory session store
sessions: dict[str, Session] = {}

# Rate limit tracking: IP -> list of timestamps
_rate_log: dict[str, list[float]] = defaultdict(list)

settings = Settings.from_env()

# Catalog detail cache
book_cache = BookCache()

_http: httpx.AsyncClient | None = None


def _client() -> httpx.AsyncClient:
    global _http
    if _http is None:
        _http = httpx.AsyncClient()
    return _http


def build_catalog() -> CatalogClient:
    return CatalogClient(_client(), settings, book_cache)


def build_orchestrator() -> Orchestrator:
    return Orchestrator(build_catalog(), SummaryGenerator(_client(), settings), settings)


def _drop_session(session_id: str) -> None:
    session = sessions.pop(session_id, None)
    if session:
        session.orchestrator.close()


def _clean_expired() -> None:
    now = time.time()
    expired = [sid for sid, s in sessions.items() if now - s.created_at > SESSION_TTL]
    for sid in expired:
        _drop_session(sid)


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _is_rate_limited(ip: str) -> bool:
    now = time.time()
    window_start = now - RATE_LIMIT_WINDOW
    # Trim old entries
    _rate_log[ip] = [t for t in _rate_log[ip] if t > window_start]
    return len(_rate_log[ip]) >= RATE_LIMIT


def _record_request(ip: str) -> None:
    _rate_log[ip].append(time.time())


def _check_rate_limit(request: Request) -> JSONResponse | None:
    ip = _client_ip(request)
    if _is_rate_limited(ip):
        log.warning("rate_limited", ip=ip)
        return JSONResponse(
            {"error": "Too many requests. Please wait a minute and try again."},
            status_code=429,
        )
    _record_request(ip)
    return None


async def _read_body(request: Request) -> dict:
    content_length = request.headers.get("content-length", "")
    if content_length and (not content_length.isdigit() or int(content_length) > MAX_BODY_BYTES):
        return {}
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _view(state: ViewState, session_id: str | None = None) -> dict:
    data = state.to_dict()
    data["book"] = book_payload(state.book) if state.book else None
    if session_id:
        data["session_id"] = session_id
    return data


def _get_session(session_id: str) -> Session | None:
    session = sessions.get(session_id)
    if not session:
        return None
    if time.time() - session.created_at > SESSION_TTL:
        _drop_session(session_id)
        return None
    return session


def _session_not_found() -> JSONResponse:
    return JSONResponse({"error": "Session not found or expired."}, status_code=404)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    for sid in list(sessions):
        _drop_session(sid)
    global _http
    if _http is not None:
        await _http.aclose()
        _http = None


app = FastAPI(title="BookBrief", docs_url=None, redoc_url=None, lifespan=lifespan)


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


@app.get("/api/popular")
async def popular():
    return {
        "books": [
            {"index": i, "title": b.title, "author": b.author, "cover": b.cover}
            for i, b in enumerate(POPULAR_BOOKS)
        ]
    }


@app.get("/api/suggestions")
async def suggestions(q: str = ""):
    query = q.strip()
    if len(query) < settings.min_query_length:
        return {"query": query, "status": "not-searched", "candidates": []}
    result = await resolve_suggestions(build_catalog(), query)
    return {
        "query": result.query,
        "status": result.status.value,
        "candidates": [
            {"id": c.id, "title": c.title, "authors": c.authors, "thumbnail": c.thumbnail}
            for c in result.candidates
        ],
    }


@app.get("/api/summary")
async def summary(request: Request, title: str | None = None):
    """One-shot detail + summary for a title given in the address."""
    limited = _check_rate_limit(request)
    if limited:
        return limited

    orchestrator = build_orchestrator()
    try:
        state = await orchestrator.open_title(title)
    finally:
        orchestrator.close()
    status = ERROR_STATUS.get(state.error, 200) if state.error else 200
    return JSONResponse(_view(state), status_code=status)


@app.post("/api/sessions")
async def create_session():
    _clean_expired()
    if len(sessions) >= MAX_SESSIONS:
        return JSONResponse(
            {"error": "Server is busy. Please try again in a few minutes."},
            status_code=503,
        )
    session_id = uuid.uuid4().hex[:12]
    sessions[session_id] = Session(orchestrator=build_orchestrator())
    log.debug("session_created", session_id=session_id)
    return _view(sessions[session_id].orchestrator.snapshot(), session_id)


@app.get("/api/sessions/{session_id}")
async def get_session(session_id: str):
    s = _get_session(session_id)
    if not s:
        return _session_not_found()
    return _view(s.orchestrator.snapshot(), session_id)


@app.delete("/api/sessions/{session_id}")
async def delete_session(session_id: str):
    if session_id not in sessions:
        return _session_not_found()
    _drop_session(session_id)
    return {"deleted": session_id}


@app.post("/api/sessions/{session_id}/input")
async def session_input(session_id: str, request: Request):
    s = _get_session(session_id)
    if not s:
        return _session_not_found()
    body = await _read_body(request)
    return _view(s.orchestrator.input(str(body.get("text", ""))), session_id)


@app.post("/api/sessions/{session_id}/dismiss")
async def session_dismiss(session_id: str):
    s = _get_session(session_id)
    if not s:
        return _session_not_found()
    return _view(s.orchestrator.dismiss(), session_id)


@app.post("/api/sessions/{session_id}/focus")
async def session_focus(session_id: str):
    s = _get_session(session_id)
    if not s:
        return _session_not_found()
    return _view(s.orchestrator.focus(), session_id)


@app.post("/api/sessions/{session_id}/open")
async def session_open(session_id: str, request: Request):
    s = _get_session(session_id)
    if not s:
        return _session_not_found()
    limited = _check_rate_limit(request)
    if limited:
        return limited
    body = await _read_body(request)
    title = body.get("title")
    if title is None:
        state = await s.orchestrator.submit()
    else:
        state = await s.orchestrator.open_title(str(title))
    return _view(state, session_id)


@app.post("/api/sessions/{session_id}/suggestions/{index}")
async def session_select_suggestion(session_id: str, index: int, request: Request):
    s = _get_session(session_id)
    if not s:
        return _session_not_found()
    candidates = s.orchestrator.snapshot().candidates
    if not 0 <= index < len(candidates):
        return JSONResponse({"error": "No such suggestion."}, status_code=404)
    limited = _check_rate_limit(request)
    if limited:
        return limited
    return _view(await s.orchestrator.select_suggestion(candidates[index]), session_id)


@app.post("/api/sessions/{session_id}/popular/{index}")
async def session_select_popular(session_id: str, index: int, request: Request):
    s = _get_session(session_id)
    if not s:
        return _session_not_found()
    if not 0 <= index < len(POPULAR_BOOKS):
        return JSONResponse({"error": "No such book."}, status_code=404)
    limited = _check_rate_limit(request)
    if limited:
        return limited
    return _view(await s.orchestrator.select_popular(POPULAR_BOOKS[index]), session_id)


@app.post("/api/sessions/{session_id}/retry")
async def session_retry(session_id: str, request: Request):
    s = _get_session(session_id)
    if not s:
        return _session_not_found()
    limited = _check_rate_limit(request)
    if limited:
        return limited
    return _view(await s.orchestrator.retry(), session_id)


def main():
    port = int(os.environ.get("PORT", "8000"))
    is_dev = os.environ.get("ENV", "dev") == "dev"
    uvicorn.run(
        "bookbrief.web.app:app",
        host="0.0.0.0",
        port=port,
        reload=is_dev,
    )
