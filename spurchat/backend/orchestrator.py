from __future__ import annotations

"""Turn orchestration for one inbound chat message.

The flow is strictly sequential apart from the history/memory fan-out:

1. validate the request (or short-circuit a named conversation creation)
2. resolve the target conversation and check ownership
3. persist the user message
4. read history and memories concurrently
5. schedule auto-titling if this is the conversation's first message
6. generate the reply
7. persist the reply
8. extract and store new user facts
9. return the reply and the conversation id

Steps 1-3 and the history read abort the turn by raising a ``ChatError``.
Everything else degrades.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from spurchat.config import DEFAULT_CONVERSATION_NAME
from spurchat.llm.fact_extractor import summarize_and_store_facts
from spurchat.llm.responder import generate_reply, retitle_conversation
from spurchat.memory import crud
from spurchat.utils.error_handler import (
    ChatValidationError,
    ConversationNotFoundError,
    StorageError,
)

# ``spawn(func, *args)`` schedules a background call without awaiting it.
Spawner = Callable[..., Any]


@dataclass
class TurnRequest:
    user_id: Optional[str]
    message: Optional[str] = None
    session_id: Optional[str] = None
    name: Optional[str] = None


@dataclass
class TurnResult:
    session_id: str
    reply: Optional[str] = None


def _is_blank(value: Optional[str]) -> bool:
    return not isinstance(value, str) or not value.strip()


def _is_first_message(history: List[Dict[str, Any]]) -> bool:
    return len(history) == 1 and history[0]["sender"] == "user"


async def _resolve_conversation(user_id: str, session_id: Optional[str]) -> str:
    if not session_id:
        try:
            return await asyncio.to_thread(crud.create_conversation, user_id, DEFAULT_CONVERSATION_NAME)
        except SQLAlchemyError as e:
            raise StorageError("Failed to start new conversation.") from e

    try:
        conversation = await asyncio.to_thread(crud.get_user_conversation, session_id, user_id)
    except SQLAlchemyError as e:
        raise StorageError("Failed to load conversation.") from e

    if conversation is None:
        raise ConversationNotFoundError("Conversation not found or access denied.")
    return conversation["id"]


async def create_named_conversation(user_id: str, name: str) -> TurnResult:
    try:
        session_id = await asyncio.to_thread(crud.create_conversation, user_id, name)
    except SQLAlchemyError as e:
        raise StorageError("Failed to create new named conversation.") from e
    return TurnResult(session_id=session_id)


async def run_turn(request: TurnRequest, spawn: Spawner) -> TurnResult:
    """Process one chat turn and return the reply with its conversation id.

    ``spawn`` is used for fire-and-forget work (auto-titling); in the HTTP
    layer it is ``BackgroundTasks.add_task``.
    """
    if _is_blank(request.user_id):
        raise ChatValidationError("User ID (Name) is required.")
    user_id = request.user_id

    # Only an absent message turns a named request into a creation; a
    # whitespace-only message is a validation error.
    if not request.message and not _is_blank(request.name):
        return await create_named_conversation(user_id, request.name.strip())
    if _is_blank(request.message):
        raise ChatValidationError("Message content is required.")
    message = request.message

    conversation_id = await _resolve_conversation(user_id, request.session_id)

    try:
        await asyncio.to_thread(crud.log_message, conversation_id, "user", message)
    except SQLAlchemyError as e:
        raise StorageError("Failed to save user message.") from e

    history_task = asyncio.to_thread(crud.fetch_history, conversation_id)
    memories_task = asyncio.to_thread(crud.fetch_memories, user_id)
    history_result, memories_result = await asyncio.gather(
        history_task, memories_task, return_exceptions=True
    )
    if isinstance(history_result, BaseException):
        raise StorageError("Failed to fetch history.") from history_result
    if isinstance(memories_result, BaseException):
        # fetch_memories already fails softly; this only covers the thread
        # hand-off itself.
        logger.error("Memory retrieval failed for user {}: {}", user_id, memories_result)
        memories: List[str] = []
    else:
        memories = memories_result.value

    if memories:
        logger.info("Retrieved {} memories for user {}", len(memories), user_id)
    else:
        logger.info("No memories found for user {}", user_id)

    if _is_first_message(history_result):
        spawn(retitle_conversation, conversation_id, message)

    reply = await asyncio.to_thread(generate_reply, history_result, message, memories)

    try:
        await asyncio.to_thread(crud.log_message, conversation_id, "ai", reply)
    except SQLAlchemyError as e:
        logger.error("Failed to save AI reply for conversation {}: {}", conversation_id, e)

    # Awaited so a short-lived worker does not drop the extraction; the
    # outcome never changes the reply.
    extraction = await asyncio.to_thread(summarize_and_store_facts, user_id, message, reply)
    if not extraction.ok:
        logger.warning("Fact extraction failed for user {}: {}", user_id, extraction.error)

    return TurnResult(session_id=conversation_id, reply=reply)
