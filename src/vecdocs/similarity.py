"""
Cosine similarity and ranking for backends without a native vector type.

Implements:
- Cosine similarity / distance scoring
- Strict threshold filtering (similarity > threshold)
- Closest-first ordering with id tie-breaks
- Result truncation to a limit
"""

import logging
import math
from typing import Any, Dict, Iterable, List, Sequence

from .contracts.models import SearchHit


logger = logging.getLogger(__name__)


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """
    Compute cosine similarity between two vectors.

    Args:
        vec_a: First vector
        vec_b: Second vector

    Returns:
        Cosine similarity score between -1 and 1

    Raises:
        ValueError: If vectors have different dimensions or are empty
    """
    if not vec_a or not vec_b:
        raise ValueError("Vectors cannot be empty")

    if len(vec_a) != len(vec_b):
        raise ValueError(f"Vector dimensions must match: {len(vec_a)} != {len(vec_b)}")

    dot_product = sum(a * b for a, b in zip(vec_a, vec_b))
    magnitude_a = math.sqrt(sum(a * a for a in vec_a))
    magnitude_b = math.sqrt(sum(b * b for b in vec_b))

    # Zero vectors have no direction
    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0

    similarity = dot_product / (magnitude_a * magnitude_b)
    # Clamp rounding drift so distance stays within [0, 2]
    return max(-1.0, min(1.0, similarity))


def cosine_distance(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Cosine distance in [0, 2]; 0 means identical direction."""
    return 1.0 - cosine_similarity(vec_a, vec_b)


def rank_candidates(
    query_embedding: Sequence[float],
    candidates: Iterable[Dict[str, Any]],
    limit: int = 10,
    threshold: float = 0.3,
) -> List[SearchHit]:
    """
    Score, filter, order and truncate candidate documents.

    Candidates must already be restricted to live, current (and, if
    requested, project-scoped) rows.

    Args:
        query_embedding: Query vector
        candidates: Dicts with 'id', 'title', 'short_id', 'version_id',
            'recipe_id' and 'embedding'
        limit: Maximum number of hits
        threshold: Hits must have similarity strictly greater than this

    Returns:
        SearchHits ordered by ascending distance, then ascending id
    """
    if limit <= 0:
        return []

    scored = []
    total = 0
    for candidate in candidates:
        total += 1
        similarity = cosine_similarity(query_embedding, candidate["embedding"])
        if similarity <= threshold:
            continue
        scored.append((1.0 - similarity, candidate["id"], similarity, candidate))

    scored.sort(key=lambda item: (item[0], item[1]))

    hits = [
        SearchHit(
            id=candidate["id"],
            title=candidate["title"],
            short_id=candidate["short_id"],
            version_id=candidate["version_id"],
            recipe_id=candidate["recipe_id"],
            similarity=similarity,
        )
        for _, _, similarity, candidate in scored[:limit]
    ]

    logger.debug(
        f"Ranked {total} candidates: {len(scored)} above threshold {threshold}, "
        f"returning {len(hits)}"
    )
    return hits
