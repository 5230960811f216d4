"""
Ask Server

FastAPI server exposing the ask pipeline.

Endpoints:
- POST /ask: Answer a question about recent activity
- POST /ask/chat: Free chat with the model (no retrieval)
- GET /ask/sessions: 20 newest ask sessions
- GET /ask/sessions/{session_id}: One session's messages, oldest first
- GET /health: Health check

The caller's identity is resolved upstream (auth proxy) and arrives in the
X-User-Id, X-User-Name and X-User-Timezone headers.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..common.config import R3centConfig, ensure_directories, load_config
from ..common.item_store import SQLiteItemStore, StoreError
from ..common.schemas import AskRequest
from ..common.session_ledger import SessionLedger, SessionNotFoundError
from .pipeline import AskPipeline

logger = logging.getLogger("r3cent.retriever.server")


# Global state
config: Optional[R3centConfig] = None
pipeline: Optional[AskPipeline] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize components on startup"""
    global config, pipeline

    print("[Ask] Starting up...")

    # Tests inject a pipeline before startup
    if pipeline is None:
        ensure_directories()
        config = load_config()

        item_store = SQLiteItemStore(config.store.db_path, timeout=config.store.timeout)
        print(f"[Ask] Item store: {config.store.db_path}")

        ledger = SessionLedger(config.store.sessions_path)
        print(f"[Ask] Session ledger: {config.store.sessions_path}")

        pipeline = AskPipeline.from_config(config, item_store=item_store, ledger=ledger)
        if pipeline.synthesizer.has_llm:
            print(f"[Ask] LLM ready ({config.llm.provider}: {config.llm.model})")
        else:
            print("[Ask] LLM not configured (answers fall back to item listings)")

    print("[Ask] Ready")
    yield
    print("[Ask] Shutting down...")


app = FastAPI(
    title="r3cent Ask",
    description="Questions about your recent activity",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# Request/Response Models
# =============================================================================

class ChatRequest(BaseModel):
    """Free chat request"""
    message: str = Field(..., min_length=1)


# =============================================================================
# Error Handlers
# =============================================================================

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "error": "Invalid request",
            "code": "VALIDATION_ERROR",
            "details": [
                {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
                for err in exc.errors()
            ],
        },
    )


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error("Ask failed, item store unavailable: %s", exc)
    return JSONResponse(
        status_code=503,
        content={"error": "Item store unavailable", "code": "STORE_UNAVAILABLE"},
    )


@app.exception_handler(SessionNotFoundError)
async def session_not_found_handler(request: Request, exc: SessionNotFoundError):
    return JSONResponse(
        status_code=404,
        content={"error": "Session not found", "code": "NOT_FOUND"},
    )


def _require_pipeline() -> AskPipeline:
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialized")
    return pipeline


def _require_user(user_id: Optional[str]) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing user identity")
    return user_id


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "ask",
        "initialized": pipeline is not None,
        "llm_available": pipeline.synthesizer.has_llm if pipeline else False,
    }


@app.post("/ask")
async def ask(
    body: AskRequest,
    x_user_id: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
    x_user_timezone: Optional[str] = Header(None),
):
    """Answer a question from the caller's recent items"""
    ask_pipeline = _require_pipeline()
    user_id = _require_user(x_user_id)

    response = await ask_pipeline.ask(
        user_id=user_id,
        query=body.query,
        session_id=body.session_id,
        display_name=x_user_name,
        tz=x_user_timezone,
    )
    return response.model_dump(mode="json", by_alias=True)


@app.post("/ask/chat")
async def chat(body: ChatRequest, x_user_id: Optional[str] = Header(None)):
    """General chat (no context retrieval)"""
    ask_pipeline = _require_pipeline()
    _require_user(x_user_id)

    if not body.message.strip():
        return JSONResponse(status_code=400, content={"error": "Message is required"})

    try:
        answer = await ask_pipeline.chat(body.message)
    except Exception as e:
        logger.warning("Chat failed: %s", e)
        return JSONResponse(status_code=500, content={"error": "Failed to generate response"})

    return {"answer": answer}


@app.get("/ask/sessions")
async def list_sessions(x_user_id: Optional[str] = Header(None)):
    """List the caller's 20 newest ask sessions"""
    ask_pipeline = _require_pipeline()
    user_id = _require_user(x_user_id)

    sessions = ask_pipeline.ledger.list_sessions(user_id, limit=20)
    return {
        "sessions": [
            {
                "id": s.id,
                "title": s.title,
                "created_at": s.created_at.isoformat(),
            }
            for s in sessions
        ]
    }


@app.get("/ask/sessions/{session_id}")
async def get_session(session_id: str, x_user_id: Optional[str] = Header(None)):
    """Get one session and its messages, oldest first"""
    ask_pipeline = _require_pipeline()
    user_id = _require_user(x_user_id)

    session = ask_pipeline.ledger.get_session(session_id, user_id)
    messages = ask_pipeline.ledger.get_messages(session.id)

    return {
        "session": {
            "id": session.id,
            "title": session.title,
            "created_at": session.created_at.isoformat(),
        },
        "messages": [
            {
                "id": m.id,
                "role": m.role,
                "text": m.text,
                "sources": [s.model_dump(mode="json", by_alias=True) for s in m.sources],
                "created_at": m.created_at.isoformat(),
            }
            for m in messages
        ],
    }


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the Ask server"""
    import uvicorn
    from dotenv import load_dotenv

    load_dotenv()
    config = load_config()
    port = config.server.port

    print(f"[Ask] Starting server on port {port}")
    uvicorn.run(
        "r3cent.retriever.server:app",
        host=config.server.host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
