"""
Indexer - Keep vector documents in step with recipe versions.

Called by the background worker after a version is saved or deleted:
- index_version(): embed the version's text and upsert its document
- remove_version(): soft-delete the version's document

Transient persistence failures are retried with exponential backoff;
dimension mismatches and embedding failures are not.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from .contracts.models import VectorDocument
from .core.exceptions import PersistenceError
from .core.logging import DocumentContext, log_with_context
from .store.base import VectorDocumentStore
from .utils.retry import RetryConfig, retry_with_backoff


logger = logging.getLogger(__name__)


EmbedFunction = Callable[[str], Sequence[float]]


@dataclass
class RecipeVersion:
    """The fields of a recipe version the indexer needs."""
    version_id: str
    recipe_id: str
    title: str
    short_id: str
    content: str
    is_current: bool = True

    def embedding_text(self) -> str:
        """Text sent to the embedding model."""
        return f"{self.title}\n\n{self.content}".strip()


class VersionIndexer:
    """
    Writes embeddings for recipe versions into a vector document store.

    Example:
        >>> indexer = VersionIndexer(store, embed=openai_embed)
        >>> indexer.index_version(RecipeVersion("v2", "r1", "Soup", "soup", "..."))
        >>> indexer.remove_version("v1")
    """

    def __init__(
        self,
        store: VectorDocumentStore,
        embed: EmbedFunction,
        retry_config: Optional[RetryConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the indexer.

        Args:
            store: Vector document store to write to
            embed: Function returning the embedding for a text
            retry_config: Backoff settings for PersistenceError retries
            sleep: Sleep function (injectable for tests)
        """
        self.store = store
        self.embed = embed
        self.retry_config = retry_config or RetryConfig()
        self._sleep = sleep

    def _with_retry(self, operation, operation_name: str):
        result = retry_with_backoff(
            operation,
            self.retry_config,
            retry_on=(PersistenceError,),
            operation_name=operation_name,
            sleep=self._sleep,
        )
        if not result.success:
            raise result.error
        return result.result

    def index_version(self, version: RecipeVersion) -> VectorDocument:
        """
        Embed a version and upsert its vector document.

        Raises:
            DimensionMismatchError: If the model returned the wrong length
            PersistenceError: If the write still fails after all retries
        """
        with DocumentContext(
            recipe_id=version.recipe_id,
            version_id=version.version_id,
            operation="index_version",
        ):
            started = time.time()
            embedding = list(self.embed(version.embedding_text()))

            document = self._with_retry(
                lambda: self.store.upsert(
                    title=version.title,
                    short_id=version.short_id,
                    embedding=embedding,
                    version_id=version.version_id,
                    recipe_id=version.recipe_id,
                    is_current=version.is_current,
                ),
                operation_name=f"upsert {version.version_id}",
            )

            elapsed_ms = int((time.time() - started) * 1000)
            log_with_context(
                logger,
                logging.INFO,
                f"Indexed version as document {document.id} in {elapsed_ms}ms",
            )
        return document

    def remove_version(self, version_id: str) -> bool:
        """
        Soft-delete the vector document of a deleted version.

        Returns:
            True if a live document was deleted
        """
        with DocumentContext(version_id=version_id, operation="remove_version"):
            deleted = self._with_retry(
                lambda: self.store.soft_delete(version_id),
                operation_name=f"soft_delete {version_id}",
            )
            if not deleted:
                log_with_context(logger, logging.DEBUG, "No live document to remove")
        return deleted
