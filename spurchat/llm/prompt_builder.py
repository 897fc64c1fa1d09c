from __future__ import annotations

"""Prompt construction helpers for the Spur support agent.

All LLM-facing messages should be assembled via this module so we maintain
one single source of truth for the reply, title and fact-extraction prompts.

Templates live in ``spurchat/prompts/`` and use Jinja2 for simple variable
substitution.  Anything more complex than loops / conditionals should be
implemented in Python and passed into the template context as plain data.
"""

from typing import Any, Dict, Iterable, List, Mapping

import jinja2

from spurchat.config import PROMPTS_DIR

# Stored sender tag -> chat completion role.
SENDER_ROLES = {"user": "user", "ai": "assistant"}

# Lazy-initialised Jinja environment so we only pay the cost once.
_ENV: jinja2.Environment | None = None


def _get_env() -> jinja2.Environment:
    global _ENV
    if _ENV is None:
        _ENV = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(PROMPTS_DIR)),
            autoescape=False,  # we do not render HTML
            trim_blocks=True,
            lstrip_blocks=True,
        )
    return _ENV


def render(template_name: str, **context: Any) -> str:
    return _get_env().get_template(template_name).render(**context).strip()


def history_to_messages(history: Iterable[Mapping[str, Any]]) -> List[Dict[str, str]]:
    """Map stored ``{"sender", "content"}`` rows to chat completion turns."""
    return [
        {"role": SENDER_ROLES.get(entry["sender"], "user"), "content": entry["content"]}
        for entry in history
    ]


# ---------------------------------------------------------------------------
# Public API – build the messages lists
# ---------------------------------------------------------------------------

def build_reply_messages(
    user_message: str,
    *,
    history: Iterable[Mapping[str, Any]] | None = None,
    memories: Iterable[str] | None = None,
) -> List[Dict[str, str]]:
    """Return the chat completion messages for a support reply.

    Parameters
    ----------
    user_message
        The new message from the user.
    history
        Stored messages of the conversation, oldest first, as stored rows.
    memories
        Facts about the user. The "relevant memories" block is only rendered
        when this is non-empty.
    """
    system_prompt = render("system_prompt.jinja", memories=list(memories or []))

    messages: List[Dict[str, str]] = [
        {"role": "system", "content": system_prompt},
    ]
    messages.extend(history_to_messages(history or []))
    # Finally the *current* user message.
    messages.append({"role": "user", "content": user_message})
    return messages


def build_title_messages(first_message: str) -> List[Dict[str, str]]:
    return [{"role": "user", "content": render("title_prompt.jinja", first_message=first_message)}]


def build_fact_messages(user_message: str, ai_reply: str) -> List[Dict[str, str]]:
    prompt = render("fact_extraction_prompt.jinja", user_message=user_message, ai_reply=ai_reply)
    return [{"role": "user", "content": prompt}]
