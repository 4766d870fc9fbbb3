"""
Vector Document Data Models

Data models for the vector document table and the results derived from it:
- VectorDocument: one stored embedding for one recipe version
- SearchHit: one similarity search result
- VectorStats: aggregate counts for operational visibility
"""

import json
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from ..core.exceptions import DimensionMismatchError, InvalidEmbeddingError


class DocumentState(Enum):
    """Lifecycle state of a vector document row."""
    CURRENT = "current"
    SUPERSEDED = "superseded"
    DELETED = "deleted"


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@dataclass
class VectorDocument:
    """
    One embedding row.

    Many rows may share a recipe_id (one per version, plus soft-deleted
    history). At most one live row per recipe is current, and at most one
    live row exists per version.

    Attributes:
        id: Surrogate key assigned by the database
        title: Title of the source version at write time
        short_id: Short identifier of the source content
        version_id: Recipe version this embedding represents
        recipe_id: Logical recipe the version belongs to
        embedding: Vector values (may be empty when not selected)
        is_current: Whether this is the recipe's authoritative document
        created_at: Creation timestamp
        updated_at: Last mutation timestamp
        deleted_at: Soft-deletion timestamp, None while live
    """
    id: int
    title: str
    short_id: str
    version_id: str
    recipe_id: str
    embedding: List[float] = field(default_factory=list)
    is_current: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    deleted_at: Optional[datetime] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def state(self) -> DocumentState:
        """Single tagged state; deletion takes precedence over the current flag."""
        if self.deleted_at is not None:
            return DocumentState.DELETED
        if self.is_current:
            return DocumentState.CURRENT
        return DocumentState.SUPERSEDED

    def to_dict(self, include_embedding: bool = False) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = {
            "id": self.id,
            "title": self.title,
            "short_id": self.short_id,
            "version_id": self.version_id,
            "recipe_id": self.recipe_id,
            "is_current": self.is_current,
            "state": self.state.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
        }
        if include_embedding:
            data["embedding"] = list(self.embedding)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VectorDocument":
        """Create from dictionary."""
        embedding = data.get("embedding") or []
        if isinstance(embedding, str):
            embedding = parse_vector(embedding)

        return cls(
            id=int(data["id"]),
            title=data["title"],
            short_id=data["short_id"],
            version_id=data["version_id"],
            recipe_id=data["recipe_id"],
            embedding=list(embedding),
            is_current=bool(data.get("is_current", True)),
            created_at=_parse_timestamp(data.get("created_at")) or datetime.now(timezone.utc),
            updated_at=_parse_timestamp(data.get("updated_at")) or datetime.now(timezone.utc),
            deleted_at=_parse_timestamp(data.get("deleted_at")),
        )


@dataclass
class SearchHit:
    """
    One similarity search result.

    Attributes:
        id: Vector document ID
        title: Denormalized title
        short_id: Denormalized short identifier
        version_id: Matching recipe version
        recipe_id: Matching recipe
        similarity: 1 - cosine distance, in [-1, 1]
    """
    id: int
    title: str
    short_id: str
    version_id: str
    recipe_id: str
    similarity: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "short_id": self.short_id,
            "version_id": self.version_id,
            "recipe_id": self.recipe_id,
            "similarity": self.similarity,
        }


@dataclass
class VectorStats:
    """Row counts across the whole table."""
    total: int = 0
    current: int = 0
    deleted: int = 0

    @property
    def not_current(self) -> int:
        """Live rows that are not current (pre-staged or superseded)."""
        return self.total - self.current - self.deleted

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "current": self.current,
            "deleted": self.deleted,
            "not_current": self.not_current,
        }


# =============================================================================
# Vector helpers
# =============================================================================


def validate_embedding(
    embedding: Sequence[float],
    dimensions: int,
    what: str = "embedding",
) -> List[float]:
    """
    Check an embedding against the store's dimensions and coerce to floats.

    Args:
        embedding: Candidate vector
        dimensions: Expected length
        what: Label used in the error message

    Returns:
        The embedding as a list of floats

    Raises:
        DimensionMismatchError: If the length differs from dimensions
        InvalidEmbeddingError: If it is not a sequence of finite numbers
    """
    if isinstance(embedding, (str, bytes)):
        raise InvalidEmbeddingError(f"{what} must be a sequence of numbers, got text")
    try:
        values = [float(v) for v in embedding]
    except (TypeError, ValueError) as e:
        raise InvalidEmbeddingError(f"{what} must be a sequence of numbers: {e}") from e
    if len(values) != dimensions:
        raise DimensionMismatchError(dimensions, len(values), what=what)
    if not all(math.isfinite(v) for v in values):
        raise InvalidEmbeddingError(f"{what} contains non-finite values")
    return values


def serialize_vector(embedding: Sequence[float]) -> str:
    """
    Serialize a vector as a bracketed numeric list, e.g. "[0.1,0.2,0.3]".

    This is the literal format SQL Server casts to VECTOR(n).
    """
    return json.dumps([float(v) for v in embedding], separators=(",", ":"))


def parse_vector(value: str) -> List[float]:
    """Parse a bracketed numeric list back into floats."""
    return [float(v) for v in json.loads(value)]
