from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from spurchat.config import DEFAULT_CONVERSATION_NAME
from spurchat.utils.error_handler import soft_failure
from spurchat.utils.logger import get_logger

from .db import SessionLocal, init_db
from .models import Conversation, Memory, Message

logger = get_logger(__name__)

# Ensure tables exist on first import.
init_db()


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------

def create_conversation(user_id: str, name: Optional[str] = DEFAULT_CONVERSATION_NAME) -> str:
    """Insert an empty conversation owned by ``user_id`` and return its id."""
    db: Session = SessionLocal()
    try:
        conv = Conversation(user_id=user_id, name=name)
        db.add(conv)
        db.commit()
        logger.info("Created conversation %s for user %s (name=%r)", conv.id, user_id, name)
        return conv.id
    finally:
        db.close()


def get_user_conversation(conversation_id: str, user_id: str) -> Optional[Dict[str, Any]]:
    """Return the conversation only if it exists *and* belongs to ``user_id``.

    Absence and foreign ownership both yield ``None`` so callers cannot tell
    the two apart.
    """
    db: Session = SessionLocal()
    try:
        conv = (
            db.query(Conversation)
            .filter(Conversation.id == conversation_id, Conversation.user_id == user_id)
            .one_or_none()
        )
        if conv is None:
            return None
        return {"id": conv.id, "name": conv.name, "created_at": conv.created_at}
    finally:
        db.close()


def rename_conversation(conversation_id: str, name: str) -> None:
    db: Session = SessionLocal()
    try:
        db.query(Conversation).filter(Conversation.id == conversation_id).update({"name": name})
        db.commit()
    finally:
        db.close()


def list_conversations(user_id: str) -> List[Dict[str, Any]]:
    """Return ``user_id``'s conversations, newest first."""
    db: Session = SessionLocal()
    try:
        rows = (
            db.query(Conversation)
            .filter(Conversation.user_id == user_id)
            .order_by(Conversation.created_at.desc())
            .all()
        )
        return [{"id": r.id, "name": r.name, "created_at": r.created_at} for r in rows]
    finally:
        db.close()


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

def log_message(conversation_id: str, sender: str, content: str) -> None:
    """Persist a single chat message to the DB."""
    db: Session = SessionLocal()
    try:
        msg = Message(conversation_id=conversation_id, sender=sender, content=content)
        db.add(msg)
        db.commit()
    finally:
        db.close()


def fetch_history(conversation_id: str) -> List[Dict[str, Any]]:
    """Return *every* message of ``conversation_id``, oldest first.

    There is no limit: the whole conversation is always loaded. Storage errors
    propagate to the caller.
    """
    db: Session = SessionLocal()
    try:
        rows = (
            db.query(Message)
            .filter(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
            .all()
        )
        return [{"sender": r.sender, "content": r.content, "created_at": r.created_at} for r in rows]
    finally:
        db.close()


# ---------------------------------------------------------------------------
# Memories (user facts)
# ---------------------------------------------------------------------------

@soft_failure(default=[])
def fetch_memories(user_id: str) -> List[str]:
    """Return every stored fact for ``user_id``, oldest first.

    Best-effort: wrapped in ``soft_failure`` so a storage error yields an
    empty list instead of failing the chat turn.
    """
    db: Session = SessionLocal()
    try:
        rows = (
            db.query(Memory.content)
            .filter(Memory.user_id == user_id)
            .order_by(Memory.created_at.asc(), Memory.id.asc())
            .all()
        )
        return [r.content for r in rows]
    finally:
        db.close()


def store_memories(user_id: str, facts: Iterable[str]) -> int:
    """Append each fact as a new memory row. No dedup: repeats are stored again."""
    db: Session = SessionLocal()
    try:
        rows = [Memory(user_id=user_id, content=fact) for fact in facts]
        db.add_all(rows)
        db.commit()
        return len(rows)
    finally:
        db.close()
