"""Post-turn extraction of durable user facts into the memory store."""

from typing import List

from pydantic import BaseModel, Field, ValidationError

from spurchat import config
from spurchat.llm import completion
from spurchat.llm.prompt_builder import build_fact_messages
from spurchat.memory.crud import store_memories
from spurchat.utils.error_handler import soft_failure
from spurchat.utils.logger import get_logger

logger = get_logger(__name__)


class ExtractedFacts(BaseModel):
    """Shape the extraction prompt asks the model to return."""

    facts: List[str] = Field(default_factory=list)


def parse_facts(raw: str) -> List[str]:
    """Return the non-blank facts in ``raw``; ``[]`` if it does not parse."""
    if not raw or not raw.strip():
        return []
    try:
        parsed = ExtractedFacts.model_validate_json(raw)
    except ValidationError as e:
        logger.warning("Discarding unparseable fact extraction output: %s", e.errors()[:1])
        return []
    return [fact.strip() for fact in parsed.facts if fact.strip()]


def extract_facts(user_message: str, ai_reply: str) -> List[str]:
    raw = completion.complete(
        build_fact_messages(user_message, ai_reply),
        model=config.FACT_MODEL,
        temperature=config.FACT_TEMPERATURE,
        json_output=True,
    )
    return parse_facts(raw)


@soft_failure(default=0)
def summarize_and_store_facts(user_id: str, user_message: str, ai_reply: str) -> int:
    """Extract new facts from one exchange and append them for ``user_id``.

    Returns the number of memory rows written. Wrapped in ``soft_failure``:
    completion or storage errors are logged and reported as ``0`` so they
    never affect the turn.
    """
    facts = extract_facts(user_message, ai_reply)
    if not facts:
        return 0

    logger.info("Extracting %d new facts for user %s", len(facts), user_id)
    return store_memories(user_id, facts)
