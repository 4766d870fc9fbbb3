"""
Vector document store interface.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from ..contracts.models import SearchHit, VectorDocument, VectorStats, validate_embedding
from ..core.exceptions import VectorStoreConfigError
from ..core.logging import DocumentContext, log_with_context
from .scoping import MembershipTables, normalize_project_ids


logger = logging.getLogger(__name__)


DEFAULT_LIMIT = 10
DEFAULT_THRESHOLD = 0.3


class VectorDocumentStore(ABC):
    """
    Abstract base class for vector document stores.

    A store keeps one embedding per recipe version, at most one live
    current document per recipe, and soft-deleted history. Public methods
    validate inputs and delegate to the backend's `_upsert` / `_search`;
    all other operations are implemented directly by each backend.

    Failures of the underlying database surface as PersistenceError.
    """

    backend_name = "abstract"

    def __init__(self, dimensions: int, membership: Optional[MembershipTables] = None):
        if not isinstance(dimensions, int) or isinstance(dimensions, bool) or dimensions <= 0:
            raise VectorStoreConfigError(f"dimensions must be a positive integer, got {dimensions!r}")
        self.dimensions = dimensions
        self.membership = membership or MembershipTables()

    # =========================================================================
    # Write operations
    # =========================================================================

    def upsert(
        self,
        title: str,
        short_id: str,
        embedding: Sequence[float],
        version_id: str,
        recipe_id: str,
        is_current: bool = True,
    ) -> VectorDocument:
        """
        Create or refresh the live document for a version.

        When is_current is True every other live document of the recipe is
        demoted first, inside the same transaction as the write. When it is
        False the recipe's current document is left alone (pre-staging).

        Args:
            title: Title of the version at write time
            short_id: Short identifier of the source content
            embedding: Vector of exactly `dimensions` floats
            version_id: Recipe version the embedding represents
            recipe_id: Recipe the version belongs to
            is_current: Whether this document becomes the recipe's current one

        Returns:
            The written document

        Raises:
            DimensionMismatchError: If the embedding has the wrong length
            InvalidEmbeddingError: If the embedding holds non-finite values
            VersionRecipeMismatchError: If the live version belongs to another recipe
            PersistenceError: If the write fails (transaction rolled back)
        """
        values = validate_embedding(embedding, self.dimensions)

        with DocumentContext(recipe_id=recipe_id, version_id=version_id, operation="upsert"):
            document = self._upsert(title, short_id, values, version_id, recipe_id, bool(is_current))
            log_with_context(
                logger,
                logging.INFO,
                f"Upserted vector document {document.id} (current={document.is_current})",
                backend=self.backend_name,
            )
        return document

    @abstractmethod
    def _upsert(
        self,
        title: str,
        short_id: str,
        embedding: List[float],
        version_id: str,
        recipe_id: str,
        is_current: bool,
    ) -> VectorDocument:
        """Backend upsert; inputs are already validated."""
        pass

    @abstractmethod
    def mark_recipe_not_current(self, recipe_id: str) -> int:
        """
        Demote every live document of a recipe.

        Args:
            recipe_id: Recipe to demote

        Returns:
            Number of rows touched (0 is not an error)
        """
        pass

    @abstractmethod
    def soft_delete(self, version_id: str) -> bool:
        """
        Soft-delete the live document for a version.

        Args:
            version_id: Version whose document is removed

        Returns:
            True if a live row was deleted, False if there was none
        """
        pass

    # =========================================================================
    # Read operations
    # =========================================================================

    @abstractmethod
    def get_current_for_recipe(self, recipe_id: str) -> Optional[VectorDocument]:
        """
        Get the live current document for a recipe.

        Returns:
            VectorDocument if found, None otherwise
        """
        pass

    @abstractmethod
    def get_by_version(self, version_id: str) -> Optional[VectorDocument]:
        """
        Get the live document for a version, current or not.

        Returns:
            VectorDocument if found, None otherwise
        """
        pass

    @abstractmethod
    def list_for_recipe(
        self,
        recipe_id: str,
        include_deleted: bool = False,
    ) -> List[VectorDocument]:
        """
        List a recipe's documents ordered by id.

        Args:
            recipe_id: Recipe to list
            include_deleted: Whether to include soft-deleted history
        """
        pass

    def similarity_search(
        self,
        query_embedding: Sequence[float],
        limit: int = DEFAULT_LIMIT,
        threshold: float = DEFAULT_THRESHOLD,
        project_ids: Optional[Sequence[str]] = None,
    ) -> List[SearchHit]:
        """
        Find current documents most similar to a query embedding.

        Args:
            query_embedding: Vector of exactly `dimensions` floats
            limit: Maximum number of hits; <= 0 returns an empty list
            threshold: Hits must have similarity strictly above this
            project_ids: Restrict to versions linked to any of these
                projects; empty or None searches everything

        Returns:
            SearchHits ordered closest first

        Raises:
            DimensionMismatchError: If the query has the wrong length
            PersistenceError: If the query fails
        """
        values = validate_embedding(query_embedding, self.dimensions, what="query embedding")
        if limit <= 0:
            return []

        projects = normalize_project_ids(project_ids)
        hits = self._search(values, int(limit), float(threshold), projects)

        logger.debug(
            f"Similarity search returned {len(hits)} hits "
            f"(limit={limit}, threshold={threshold}, projects={len(projects)})"
        )
        return hits

    @abstractmethod
    def _search(
        self,
        query_embedding: List[float],
        limit: int,
        threshold: float,
        project_ids: Tuple[str, ...],
    ) -> List[SearchHit]:
        """Backend search; inputs are already validated and limit > 0."""
        pass

    @abstractmethod
    def get_stats(self) -> VectorStats:
        """Get total, current and deleted row counts."""
        pass

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @abstractmethod
    def init_schema(self) -> None:
        """Create the document table and its indexes if missing."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release database connections."""
        pass

    def __enter__(self) -> "VectorDocumentStore":
        return self

    def __exit__(self, *args) -> None:
        self.close()
