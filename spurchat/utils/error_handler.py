"""
Error handling utilities for the Spur support chat backend.

Two kinds of failure exist in a chat turn:

* critical failures abort the turn and are raised as one of the exception
  classes below;
* soft failures degrade to a default value. Functions that may fail softly
  are wrapped with :func:`soft_failure` and return a :class:`SoftResult`.
"""
import functools
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, Tuple, Type, TypeVar, Union

from .logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ChatError(Exception):
    """Base exception for errors that abort a chat turn."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ChatValidationError(ChatError):
    """A required request field is missing or empty."""


class ConversationNotFoundError(ChatError):
    """The conversation does not exist or belongs to another user."""


class StorageError(ChatError):
    """A required read or write against the store failed."""


@dataclass(frozen=True)
class SoftResult(Generic[T]):
    """Outcome of a best-effort step.

    ``value`` is always usable; ``error`` is set when the step failed and
    ``value`` is the default it degraded to.
    """

    value: T
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def soft_failure(
    default: Any = None,
    error_types: Union[Type[Exception], Tuple[Type[Exception], ...]] = Exception,
) -> Callable:
    """Decorator turning exceptions into a logged ``SoftResult(default, exc)``.

    The wrapped function returns its plain value on success; the wrapper
    always returns a ``SoftResult``. ``default`` is copied for list/dict
    defaults so callers never share a mutable instance.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> SoftResult:
            try:
                return SoftResult(func(*args, **kwargs))
            except error_types as e:
                logger.error(f"Error in {func.__name__}: {str(e)}")
                fallback = default.copy() if isinstance(default, (list, dict)) else default
                return SoftResult(fallback, error=e)
        return wrapper
    return decorator
