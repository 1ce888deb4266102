"""Top-K retrieval over knowledge items by cosine similarity."""

from collections.abc import Sequence

import numpy as np

from backend.app.knowledge.types import KnowledgeItem, RetrievedItem
from backend.app.models.assistant import ReferencedTransaction
from backend.app.utils.formatting import round_score


def cosine_similarity(vector_a: Sequence[float] | None, vector_b: Sequence[float] | None) -> float:
    """Compute cosine similarity between two vectors.

    Returns 0.0 for empty vectors, mismatched dimensions or a zero norm
    instead of raising.
    """
    if not vector_a or not vector_b or len(vector_a) != len(vector_b):
        return 0.0

    a = np.asarray(vector_a, dtype=np.float64)
    b = np.asarray(vector_b, dtype=np.float64)

    norm_a = float(np.dot(a, a))
    norm_b = float(np.dot(b, b))
    if norm_a == 0 or norm_b == 0:
        return 0.0

    score = float(np.dot(a, b)) / (np.sqrt(norm_a) * np.sqrt(norm_b))
    return max(-1.0, min(1.0, score))


def select_top_k(
    query_embedding: Sequence[float],
    items: Sequence[KnowledgeItem],
    top_k: int,
) -> list[RetrievedItem]:
    """Score every item against the query and keep the best top_k.

    Equal scores keep their input order.

    Args:
        query_embedding: Question vector
        items: Knowledge items with embeddings assigned
        top_k: Maximum number of items to return; below 1 returns nothing

    Returns:
        Retrieved items sorted by descending similarity
    """
    if top_k < 1:
        return []

    ranked = [
        RetrievedItem(item=item, score=cosine_similarity(query_embedding, item.embedding))
        for item in items
    ]
    ranked.sort(key=lambda retrieved: retrieved.score, reverse=True)

    return ranked[:top_k]


def build_references(
    retrieved_items: Sequence[RetrievedItem], max_count: int
) -> list[ReferencedTransaction]:
    """Turn the best retrieved items into citations with rounded scores."""
    if max_count < 1:
        return []

    return [
        retrieved.item.reference.model_copy(
            update={"similarity_score": round_score(retrieved.score)}
        )
        for retrieved in retrieved_items[:max_count]
    ]
