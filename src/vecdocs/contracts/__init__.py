"""
Vector Document Contracts

Data models for stored vector documents and search results.
"""

from .models import (
    DocumentState,
    VectorDocument,
    SearchHit,
    VectorStats,
    validate_embedding,
    serialize_vector,
    parse_vector,
)

__all__ = [
    "DocumentState",
    "VectorDocument",
    "SearchHit",
    "VectorStats",
    "validate_embedding",
    "serialize_vector",
    "parse_vector",
]
