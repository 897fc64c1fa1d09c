"""OpenAI client factory for the completion capability."""

import os
from typing import Optional

import openai
from dotenv import load_dotenv

# Load environment variables from .env file (for local development)
load_dotenv()


def get_openai_client() -> openai.OpenAI:
    """Initialize and return an OpenAI client with proper API key configuration.

    The key comes from ``OPENAI_API_KEY``. ``SPURCHAT_LLM_BASE_URL`` points the
    client at any OpenAI-compatible provider; when unset the SDK default is used.

    Returns:
        openai.OpenAI: Configured OpenAI client

    Raises:
        ValueError: If no API key is found in the environment
    """
    api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise ValueError(
            "OpenAI API key not found. Please set the OPENAI_API_KEY environment variable."
        )

    base_url = os.getenv("SPURCHAT_LLM_BASE_URL") or None
    return openai.OpenAI(api_key=api_key, base_url=base_url)
