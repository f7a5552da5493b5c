"""
Engine Error Taxonomy

Every error raised by a public engine operation derives from EngineError
and carries a `user_message` that can be shown as-is. Store exceptions
(see services.storage.interface) never leak past a component: they are
wrapped in StoreFailure with a label naming the operation that failed.
"""

from contextlib import contextmanager
from typing import Iterator, Optional

from period_accounting.services.storage.exceptions import StorageError


class EngineError(Exception):
    """Base class for all engine errors."""

    default_message = "The request could not be completed."

    def __init__(self, message: Optional[str] = None):
        self.user_message = message or self.default_message
        super().__init__(self.user_message)


class InvalidPeriodError(EngineError, ValueError):
    """A period string could not be parsed as YYYY-MM."""

    default_message = "Period must be in YYYY-MM format."

    def __init__(self, value: object = None, message: Optional[str] = None):
        self.value = value
        super().__init__(message)


class NotAuthenticatedError(EngineError):
    """No owner could be resolved for the request."""

    default_message = "Please sign in to continue."


class ValidationFailure(EngineError):
    """Input rejected before anything was written."""

    default_message = "Some of the budget details are invalid."

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class LimitReachedError(EngineError):
    """The owner already has the maximum number of highlighted budgets."""

    def __init__(self, limit: int = 2):
        self.limit = limit
        super().__init__(f"You can highlight at most {limit} budgets.")


class StoreFailure(EngineError):
    """A store read or write failed. The store exception is kept as `cause`."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Failed to {operation}. Please try again.")


def ensure_owner(owner_id: Optional[str]) -> str:
    """Return the owner id, or raise NotAuthenticatedError if there is none."""
    if owner_id is None or not str(owner_id).strip():
        raise NotAuthenticatedError()
    return str(owner_id).strip()


@contextmanager
def store_operation(operation: str) -> Iterator[None]:
    """
    Wrap store exceptions raised inside the block in StoreFailure.

    Usage:
        with store_operation("load budgets"):
            rows = await storage.list_allocations(owner_id, period)
    """
    try:
        yield
    except EngineError:
        raise
    except StorageError as e:
        raise StoreFailure(operation, e) from e


def describe_error(error: BaseException, fallback: Optional[str] = None) -> str:
    """
    Get a message that is safe to show to the user.

    Engine errors carry their own message; anything else falls back to the
    configured generic message.
    """
    if isinstance(error, EngineError):
        return error.user_message
    if fallback is None:
        from period_accounting.config import get_settings
        try:
            fallback = get_settings().engine.generic_error_message
        except Exception:
            fallback = "Something went wrong. Please try again."
    return fallback
