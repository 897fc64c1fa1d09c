from __future__ import annotations

"""FastAPI backend for the Spur support chat widget.

Run with:
    uvicorn spurchat.backend.app:app --reload --port 8000
or:
    spurchat-server --port 8000

Env vars required:
    OPENAI_API_KEY
"""

import argparse
from datetime import datetime
from typing import List

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError

from spurchat.backend.orchestrator import TurnRequest, run_turn
from spurchat.config import missing_env_vars, setup_logging
from spurchat.memory.crud import fetch_history, list_conversations
from spurchat.utils.error_handler import (
    ChatValidationError,
    ConversationNotFoundError,
    StorageError,
)

# App setup
# -----------------------------------------------------------------------------
setup_logging()

app = FastAPI(title="Spur Support Chat", version="0.1.0")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Malformed request bodies (e.g. a non-string userId) are client errors: 400.
    logger.warning("Rejected request to {}: {}", request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={"detail": "Invalid request body."})

# ---------------------------------------------------------------------------
# Pydantic Schemas
# ---------------------------------------------------------------------------


class ChatRequest(BaseModel):
    # Every field is optional at the schema level so that missing values are
    # reported as 400s by the turn validation rather than 422s.
    model_config = ConfigDict(populate_by_name=True)

    message: str | None = None
    session_id: str | None = Field(default=None, alias="sessionId")
    user_id: str | None = Field(default=None, alias="userId")
    name: str | None = Field(
        default=None,
        description="Conversation name. With no message, creates an empty named conversation.",
    )


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reply: str | None = None
    session_id: str = Field(alias="sessionId")


class HistoryEntry(BaseModel):
    sender: str
    content: str
    created_at: datetime


class SessionSummary(BaseModel):
    id: str
    name: str | None
    created_at: datetime


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.post("/api/chat", response_model=ChatResponse, response_model_exclude_none=True)
async def chat(req: ChatRequest, background_tasks: BackgroundTasks):
    missing = missing_env_vars()
    if missing:
        logger.error("Refusing chat turn, missing environment variables: {}", ", ".join(missing))
        raise HTTPException(status_code=500, detail="Missing environment variables.")

    turn = TurnRequest(
        user_id=req.user_id,
        message=req.message,
        session_id=req.session_id,
        name=req.name,
    )

    try:
        result = await run_turn(turn, spawn=background_tasks.add_task)
    except ChatValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except StorageError as e:
        logger.opt(exception=e.__cause__).error("Chat turn aborted: {}", e.message)
        raise HTTPException(status_code=500, detail=e.message)
    except Exception:
        logger.exception("Chat API error")
        raise HTTPException(status_code=500, detail="Internal Server Error")

    return ChatResponse(reply=result.reply, session_id=result.session_id)


@app.get("/api/chat/history", response_model=List[HistoryEntry])
def chat_history(session_id: str | None = Query(default=None, alias="sessionId")):
    if not session_id:
        raise HTTPException(status_code=400, detail="Session ID is required.")

    try:
        messages = fetch_history(session_id)
    except SQLAlchemyError:
        logger.exception("Error fetching messages for session {}", session_id)
        raise HTTPException(status_code=500, detail="Failed to retrieve message history.")

    logger.info("Fetched {} messages for sessionId: {}", len(messages), session_id)
    return messages


@app.get("/api/chat/sessions", response_model=List[SessionSummary])
def chat_sessions(user_id: str | None = Query(default=None, alias="userId")):
    if not user_id:
        raise HTTPException(status_code=400, detail="User ID is required.")

    try:
        conversations = list_conversations(user_id)
    except SQLAlchemyError:
        logger.exception("Error fetching conversations for user {}", user_id)
        raise HTTPException(status_code=500, detail="Failed to retrieve conversations.")

    logger.info("Fetched {} conversations for userId: {}", len(conversations), user_id)
    return conversations


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    import uvicorn

    parser = argparse.ArgumentParser(description="Run the Spur support chat backend.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args()

    uvicorn.run("spurchat.backend.app:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
