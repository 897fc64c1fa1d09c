"""Common infra helpers (logger, error handling, OpenAI client)."""

from .logger import get_logger  # noqa: F401
from .error_handler import (  # noqa: F401
    ChatError,
    ChatValidationError,
    ConversationNotFoundError,
    SoftResult,
    StorageError,
    soft_failure,
)
