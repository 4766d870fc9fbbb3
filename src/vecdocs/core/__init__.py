"""
Core subpackage for the vector document store.

Contains exceptions and logging utilities.
"""

from .exceptions import (
    VectorStoreError,
    PersistenceError,
    DimensionMismatchError,
    VectorStoreConfigError,
    InvalidEmbeddingError,
    VersionRecipeMismatchError,
)
from .logging import (
    configure_logging,
    log_with_context,
    DocumentContext,
    StructuredFormatter,
    HumanReadableFormatter,
)

__all__ = [
    # Exceptions
    "VectorStoreError",
    "PersistenceError",
    "DimensionMismatchError",
    "VectorStoreConfigError",
    "InvalidEmbeddingError",
    "VersionRecipeMismatchError",
    # Logging
    "configure_logging",
    "log_with_context",
    "DocumentContext",
    "StructuredFormatter",
    "HumanReadableFormatter",
]
