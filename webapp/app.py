"""FastAPI web application for news question answering.

Launch:
    python -m uvicorn webapp.app:app --reload --port 5000

Or via pipeline:
    python pipeline.py serve --port 5000
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

# Ensure the project root is on sys.path so we can import vectorstore, etc.
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

load_dotenv(PROJECT_ROOT / ".env")

from errors import StoreError
from vectorstore.ingest import IngestionPipeline, build_pipeline
from webapp.rag.query_engine import QueryEngine, build_query_engine
from webapp.sessions import SessionManager

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------

app = FastAPI(
    title="News RAG Chat",
    description="Question answering over recently collected news articles",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Global state, lazy-initialized on first request
# ---------------------------------------------------------------------------

_session_mgr: Optional[SessionManager] = None
_query_engine: Optional[QueryEngine] = None


def _get_session_mgr() -> SessionManager:
    global _session_mgr
    if _session_mgr is None:
        _session_mgr = SessionManager()
    return _session_mgr


def _get_query_engine() -> QueryEngine:
    """Return the shared engine, attaching the session store once it is reachable."""
    global _query_engine
    if _query_engine is None:
        _query_engine = build_query_engine()
    if _query_engine.session_store is None:
        try:
            _query_engine.session_store = _get_session_mgr()
        except StoreError as e:
            logger.warning("Session store unavailable, engine runs without history: %s", e)
    return _query_engine


def _get_ingestion_pipeline() -> IngestionPipeline:
    return build_pipeline()


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class ChatRequest(BaseModel):
    question: str = Field(min_length=1)
    session_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.get("/health")
def health():
    """Report vector store and session store reachability."""
    try:
        checks = _get_query_engine().health_check()
    except Exception as e:
        logger.warning("Health check failed: %s", e)
        return {"status": "degraded", "vector_store": False, "session_store": False, "error": str(e)}
    return {"status": "ok" if all(checks.values()) else "degraded", **checks}


@app.post("/api/session/create")
def api_create_session():
    try:
        session_id = _get_session_mgr().create_session()
    except StoreError as e:
        logger.error("Session creation failed: %s", e)
        raise HTTPException(status_code=500, detail=str(e))
    return {"success": True, "session_id": session_id}


@app.get("/api/session/{session_id}/messages")
def api_session_messages(session_id: str):
    try:
        messages = _get_session_mgr().get_messages(session_id)
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {
        "success": True,
        "session_id": session_id,
        "messages": [m.model_dump(mode="json") for m in messages],
    }


@app.delete("/api/session/{session_id}")
def api_clear_session(session_id: str):
    """Clear a session's history; the id stays valid."""
    try:
        cleared = _get_session_mgr().clear_session(session_id)
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if not cleared:
        raise HTTPException(status_code=404, detail="Session not found")
    return {"success": True, "message": "Session cleared"}


@app.get("/api/sessions")
def api_list_sessions(limit: int = 50):
    try:
        mgr = _get_session_mgr()
        return {"sessions": mgr.list_sessions(limit=limit), "stats": mgr.get_session_stats()}
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/chat")
def api_chat(req: ChatRequest):
    """Answer a question. The body always carries an answer, even on failure."""
    question = req.question.strip()
    if not question:
        raise HTTPException(status_code=400, detail="Question is required")

    session_id = req.session_id
    try:
        mgr = _get_session_mgr()
        if not session_id or mgr.get_session(session_id) is None:
            session_id = mgr.create_session()
    except StoreError as e:
        logger.warning("Session store unavailable, answering without history: %s", e)
        session_id = None

    result = _get_query_engine().process_query(question, session_id=session_id)
    return {"session_id": session_id, **result.to_dict()}


@app.post("/api/news/collect")
def api_collect_news():
    result = _get_ingestion_pipeline().run()
    return result.to_dict()


@app.get("/api/stats")
def api_stats():
    engine = _get_query_engine()
    try:
        collections = engine.get_collection_stats()
    except StoreError as e:
        logger.warning("Collection stats unavailable: %s", e)
        collections = {"error": str(e)}
    try:
        sessions = _get_session_mgr().get_session_stats()
    except StoreError as e:
        sessions = {"error": str(e)}
    return {"collections": collections, "sessions": sessions, "health": engine.health_check()}
