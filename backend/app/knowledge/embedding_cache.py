"""Content-hash gated embedding cache over the persisted store."""

import json
import logging
import math
import time
from collections.abc import Sequence
from typing import Protocol

from backend.app.assistant.exceptions import DecodeError, RemoteAPIError
from backend.app.config import Settings, get_openai_embedding_model
from backend.app.db.embedding_store import CachedEmbedding, EmbeddingStore
from backend.app.knowledge.types import KnowledgeItem
from backend.app.metrics.core import record_embedding_resolve

logger = logging.getLogger(__name__)


class EmbeddingClient(Protocol):
    """Remote batch-embed operation."""

    def embed(self, texts: Sequence[str]) -> list[list[float]]: ...


def encode_vector(vector: Sequence[float]) -> str:
    """Encode a vector as a JSON array for storage."""
    return json.dumps([float(value) for value in vector])


def decode_vector(vector_data: str) -> list[float]:
    """Decode a stored JSON vector.

    Raises:
        DecodeError: If the data is not a non-empty array of finite numbers
    """
    try:
        values = json.loads(vector_data)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"invalid vector data: {e}") from e

    if not isinstance(values, list) or not values:
        raise DecodeError("vector data must be a non-empty array")

    vector: list[float] = []
    for value in values:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise DecodeError("vector data must only contain numbers")
        if not math.isfinite(value):
            raise DecodeError("vector data must only contain finite numbers")
        vector.append(float(value))

    return vector


class EmbeddingCache:
    """Reconciles knowledge items against cached embeddings for one user.

    Each resolve garbage-collects rows of transactions no longer present,
    reuses vectors whose content hash still matches and embeds the rest
    (together with the query) in sequential fixed-size batches.
    """

    def __init__(self, settings: Settings, store: EmbeddingStore, client: EmbeddingClient):
        self.settings = settings
        self.store = store
        self.client = client

    def resolve(self, uid: int, query_text: str, items: Sequence[KnowledgeItem]) -> list[float]:
        """Assign an embedding to every item and return the query vector.

        Args:
            uid: Owner of the knowledge base
            query_text: Text to embed as the retrieval query
            items: Knowledge items of the request; their ``embedding`` is set in place

        Returns:
            Embedding vector of the query text

        Raises:
            ConfigurationError: If the embedding model is not configured
            RemoteAPIError: If embedding fails or returns the wrong number of vectors
            PersistenceError: If the cache cannot be read or written
        """
        embedding_model = get_openai_embedding_model(self.settings)
        start = time.perf_counter()

        transaction_ids: list[int] = []
        seen_ids: set[int] = set()
        for item in items:
            if item.reference_id > 0 and item.reference_id not in seen_ids:
                seen_ids.add(item.reference_id)
                transaction_ids.append(item.reference_id)

        deleted = self.store.delete_not_in(uid, embedding_model, transaction_ids)
        cached = self.store.get_by_ids(uid, embedding_model, transaction_ids)

        misses: list[KnowledgeItem] = []
        for item in items:
            row = cached.get(item.reference_id)
            if row is None or row.content_hash != item.content_hash:
                misses.append(item)
                continue

            try:
                item.embedding = decode_vector(row.vector_data)
            except DecodeError as e:
                logger.warning(
                    f"Cached embedding of transaction \"id:{item.reference_id}\" "
                    f"for user \"uid:{uid}\" is unreadable, re-embedding: {e}"
                )
                misses.append(item)

        inputs = [query_text] + [item.text for item in misses]
        vectors = self._embed_in_batches(inputs)

        if len(vectors) != len(inputs):
            raise RemoteAPIError(
                f"embedding count mismatch: expected {len(inputs)}, got {len(vectors)}"
            )

        query_vector = vectors[0]
        entries: list[CachedEmbedding] = []
        for item, vector in zip(misses, vectors[1:]):
            item.embedding = vector
            if item.reference_id <= 0:
                continue
            previous = cached.get(item.reference_id)
            entries.append(
                CachedEmbedding(
                    uid=uid,
                    transaction_id=item.reference_id,
                    embedding_model=embedding_model,
                    content_hash=item.content_hash,
                    vector_data=encode_vector(vector),
                    created_unix_time=previous.created_unix_time if previous else 0,
                )
            )

        self.store.replace(entries)

        record_embedding_resolve(
            uid=uid,
            embedding_model=embedding_model,
            item_count=len(items),
            cache_hits=len(items) - len(misses),
            cache_misses=len(misses),
            deleted_stale=deleted,
            latency_ms=int((time.perf_counter() - start) * 1000),
        )

        return query_vector

    def _embed_in_batches(self, texts: list[str]) -> list[list[float]]:
        batch_size = max(self.settings.assistant_embedding_batch_size, 1)
        vectors: list[list[float]] = []

        for offset in range(0, len(texts), batch_size):
            batch = texts[offset : offset + batch_size]
            batch_vectors = self.client.embed(batch)

            if len(batch_vectors) != len(batch):
                raise RemoteAPIError(
                    f"embedding batch count mismatch: expected {len(batch)}, got {len(batch_vectors)}"
                )

            vectors.extend(batch_vectors)

        return vectors
