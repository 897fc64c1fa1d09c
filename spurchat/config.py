"""
Configuration module for the Spur support chat backend.

This module centralizes all configuration settings, loading values from
environment variables (and a local ``.env`` file) with sensible defaults.
"""
import os
import sys
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from loguru import logger

# Load environment variables from .env file
load_dotenv()

# LLM Configuration
# Any OpenAI-compatible endpoint works (e.g. Groq's https://api.groq.com/openai/v1).
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
LLM_BASE_URL = os.getenv("SPURCHAT_LLM_BASE_URL") or None
COMPLETION_MODEL = os.getenv("SPURCHAT_COMPLETION_MODEL", "gpt-4o-mini")
TITLE_MODEL = os.getenv("SPURCHAT_TITLE_MODEL", COMPLETION_MODEL)
FACT_MODEL = os.getenv("SPURCHAT_FACT_MODEL", COMPLETION_MODEL)

# Sampling parameters per call type
REPLY_TEMPERATURE = 0.7
REPLY_MAX_TOKENS = 1024
TITLE_TEMPERATURE = 0.5
TITLE_MAX_TOKENS = 24
FACT_TEMPERATURE = 0.1

# Storage
DATABASE_URL = os.getenv("SPURCHAT_DATABASE_URL", "sqlite:///./spurchat.db")

# Conversation defaults
DEFAULT_CONVERSATION_NAME = "New Chat"
FALLBACK_TITLE = "New Conversation"

# Logging
LOG_LEVEL = os.getenv("SPURCHAT_LOG_LEVEL", "INFO").upper()

# Paths
BASE_DIR = Path(__file__).resolve().parent
PROMPTS_DIR = BASE_DIR / "prompts"

REQUIRED_ENV_VARS = ["OPENAI_API_KEY"]


def missing_env_vars() -> List[str]:
    """Return the required environment variables that are currently unset."""
    return [var for var in REQUIRED_ENV_VARS if not os.getenv(var)]


def setup_logging() -> None:
    """Install the loguru stderr sink at the configured level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=LOG_LEVEL,
        format="[{time:YYYY-MM-DD HH:mm:ss}] [{level}] {name}: {message}",
    )
    missing = missing_env_vars()
    if missing:
        logger.warning("Missing required environment variables: {}", ", ".join(missing))
