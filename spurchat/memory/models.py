import datetime
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, CheckConstraint

from .db import Base


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _new_conversation_id() -> str:
    return str(uuid.uuid4())


class Conversation(Base):
    """ORM model for a user-scoped chat thread.

    Attributes
    ----------
    id
        Opaque UUID4 string, handed to the client as ``sessionId``.
    user_id
        Free-text handle supplied by the client. Not authenticated; it only
        partitions conversations between users.
    name
        Display name. "New Chat" until auto-titled or set by the caller.
    created_at
        Timestamp (UTC) when the conversation was created.
    """

    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=_new_conversation_id)
    user_id = Column(String(255), index=True, nullable=False)
    name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


class Message(Base):
    """ORM model representing a single chat message (either user or ai).

    ``sender`` is "user" or "ai"; the prompt builder maps "ai" to the
    "assistant" role when the history is sent to the model.
    """

    __tablename__ = "messages"
    __table_args__ = (CheckConstraint("sender IN ('user', 'ai')", name="ck_messages_sender"),)

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(
        String(36),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    sender = Column(String(8), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


class Memory(Base):
    """A durable fact about a user, visible across all their conversations."""

    __tablename__ = "memories"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), index=True, nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
