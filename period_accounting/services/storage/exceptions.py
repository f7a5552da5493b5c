"""
Storage Exceptions

Raised by storage backends. Components translate them into engine
errors (see period_accounting.errors) before they reach a caller.
"""


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class CapacityError(StorageError):
    """A per-owner row cap would be exceeded by the write."""

    def __init__(self, message: str, limit: int):
        super().__init__(message)
        self.limit = limit


class FeatureUnavailableError(StorageError):
    """The backing table/worksheet for a feature does not exist."""

    def __init__(self, feature: str, message: str = ""):
        super().__init__(message or f"Storage for '{feature}' is not available")
        self.feature = feature
