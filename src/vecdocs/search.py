"""
Semantic search over recipe vector documents.

The caller supplies the embedding function (the same model that produced
the stored vectors); this module only turns query text into a similarity
search.
"""

import logging
from typing import Callable, List, Optional, Sequence

from .contracts.models import SearchHit
from .store.base import DEFAULT_LIMIT, DEFAULT_THRESHOLD, VectorDocumentStore


logger = logging.getLogger(__name__)


def semantic_search(
    store: VectorDocumentStore,
    embed: Callable[[str], Sequence[float]],
    query: str,
    limit: int = DEFAULT_LIMIT,
    threshold: float = DEFAULT_THRESHOLD,
    project_ids: Optional[Sequence[str]] = None,
) -> List[SearchHit]:
    """
    Search current recipe documents by query text.

    Args:
        store: Vector document store
        embed: Function returning the embedding for a text
        query: Search text; blank text returns no hits without embedding
        limit: Maximum number of hits
        threshold: Minimum similarity (exclusive)
        project_ids: Optional project scope

    Returns:
        SearchHits ordered closest first
    """
    if not query or not query.strip():
        return []

    query_embedding = embed(query.strip())
    hits = store.similarity_search(
        query_embedding,
        limit=limit,
        threshold=threshold,
        project_ids=project_ids,
    )

    logger.info(f"Search returned {len(hits)} hits (query: {query[:50]})")
    return hits
