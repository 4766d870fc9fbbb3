"""
Custom exceptions for the vector document store.
"""

from typing import Optional


class VectorStoreError(Exception):
    """Base exception for all vector document store errors."""
    pass


class PersistenceError(VectorStoreError):
    """
    Error reading from or writing to the underlying relational store.

    Raised when:
    - The database is unreachable or the connection drops
    - A statement times out
    - A transaction fails or is rolled back
    - A uniqueness constraint on live/current rows is violated

    The store never retries; callers own the retry policy.
    """

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class DimensionMismatchError(VectorStoreError):
    """
    Embedding length disagrees with the store's configured dimensions.

    This is a caller bug: the vector was produced by a different model or
    was truncated. It is never retried.
    """

    def __init__(self, expected: int, actual: int, what: str = "embedding"):
        super().__init__(
            f"{what} has {actual} dimensions, store expects {expected}"
        )
        self.expected = expected
        self.actual = actual


class VectorStoreConfigError(VectorStoreError):
    """
    Error in vector store configuration.

    Raised when:
    - The backend name is not recognized
    - A schema, table or column identifier fails validation
    - Required values (dimensions, password) are missing or out of range
    """
    pass


class InvalidEmbeddingError(VectorStoreError, ValueError):
    """
    Embedding holds values that are not finite numbers.

    Raised for NaN or infinite components and for entries that cannot be
    read as floats. Like DimensionMismatchError it is never retried.
    """
    pass


class VersionRecipeMismatchError(VectorStoreError):
    """
    A live document for the version already belongs to another recipe.

    A version_id identifies one recipe version, so re-upserting it under a
    different recipe_id is refused before anything is written.
    """

    def __init__(self, version_id: str, existing_recipe_id: str, recipe_id: str):
        super().__init__(
            f"version {version_id} belongs to recipe {existing_recipe_id}, "
            f"cannot upsert it under recipe {recipe_id}"
        )
        self.version_id = version_id
        self.existing_recipe_id = existing_recipe_id
        self.recipe_id = recipe_id
