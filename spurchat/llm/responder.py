from __future__ import annotations

"""Reply and title generation for the support agent.

Neither function raises: the reply path degrades to a fixed apology so the
user never sees a backend error in the message stream, and titling degrades
to a fallback title.
"""

from typing import Any, Iterable, List, Mapping

from spurchat import config
from spurchat.llm import completion
from spurchat.llm.prompt_builder import build_reply_messages, build_title_messages
from spurchat.memory.crud import rename_conversation
from spurchat.utils.error_handler import SoftResult, soft_failure
from spurchat.utils.logger import get_logger

logger = get_logger(__name__)

APOLOGY_MESSAGE = (
    "I apologize, but I am currently experiencing technical difficulties. "
    "Please try again in a moment."
)
EMPTY_REPLY_MESSAGE = (
    "I apologize, but I could not generate a response at this time. Please try again."
)


def generate_reply(
    history: Iterable[Mapping[str, Any]],
    user_message: str,
    memories: List[str] | None = None,
) -> str:
    """Return the agent's reply to ``user_message``.

    ``history`` is the stored conversation (oldest first, including the current
    message, which is appended again last) and ``memories`` the user's facts.
    """
    messages = build_reply_messages(user_message, history=history, memories=memories)

    try:
        reply = completion.complete(
            messages,
            model=config.COMPLETION_MODEL,
            temperature=config.REPLY_TEMPERATURE,
            max_tokens=config.REPLY_MAX_TOKENS,
        )
    except Exception as e:
        logger.error("Error communicating with the completion API: %s", e)
        return APOLOGY_MESSAGE

    if not reply.strip():
        logger.error("Completion API returned an empty response.")
        return EMPTY_REPLY_MESSAGE
    return reply


def _clean_title(raw: str) -> str:
    return raw.strip().strip("\"'").strip().rstrip(".!?").strip()


@soft_failure(default=config.FALLBACK_TITLE)
def generate_title(first_message: str) -> str:
    """Ask for a 3-5 word title; fails softly to ``FALLBACK_TITLE``."""
    raw = completion.complete(
        build_title_messages(first_message),
        model=config.TITLE_MODEL,
        temperature=config.TITLE_TEMPERATURE,
        max_tokens=config.TITLE_MAX_TOKENS,
    )
    title = _clean_title(raw)
    if not title:
        raise ValueError("completion API returned an empty title")
    return title


def retitle_conversation(conversation_id: str, first_message: str) -> SoftResult[str]:
    """Background task: name a fresh conversation after its first message.

    The stored name only changes when titling succeeded. Any failure, including
    the rename itself, is logged and dropped.
    """
    result = generate_title(first_message)
    if not result.ok:
        logger.warning("Auto-titling failed for conversation %s; keeping current name", conversation_id)
        return result

    try:
        rename_conversation(conversation_id, result.value)
    except Exception as e:
        logger.error("Failed to store title for conversation %s: %s", conversation_id, e)
        return SoftResult(result.value, error=e)

    logger.info("Auto-titled conversation %s as: %s", conversation_id, result.value)
    return result
