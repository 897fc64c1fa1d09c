"""Text-completion capability backed by an OpenAI-compatible chat endpoint."""

from typing import Dict, List, Optional

from spurchat.utils.logger import get_logger
from spurchat.utils.openai_client import get_openai_client

logger = get_logger(__name__)


def complete(
    messages: List[Dict[str, str]],
    *,
    model: str,
    temperature: float,
    max_tokens: Optional[int] = None,
    json_output: bool = False,
) -> str:
    """Send ``messages`` to the chat endpoint and return the completion text.

    ``json_output`` requests a JSON object response (the structured-output
    variant used by fact extraction). An empty body is returned as ``""``;
    every client or API error propagates.
    """
    client = get_openai_client()

    params = {
        "model": model,
        "messages": messages,
        "temperature": temperature,
    }
    if max_tokens is not None:
        params["max_tokens"] = max_tokens
    if json_output:
        params["response_format"] = {"type": "json_object"}

    logger.debug("Calling chat completion | model=%s | messages=%d", model, len(messages))
    response = client.chat.completions.create(**params)

    if not response.choices:
        return ""
    return response.choices[0].message.content or ""
