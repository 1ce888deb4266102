"""Metrics façade for assistant request tracking."""

import logging

logger = logging.getLogger(__name__)


def record_embedding_resolve(
    uid: int,
    embedding_model: str,
    item_count: int,
    cache_hits: int,
    cache_misses: int,
    deleted_stale: int,
    latency_ms: int,
) -> None:
    """Record metrics for one embedding cache resolution.

    This is a simple stub implementation that logs metrics.
    In production, this would emit to Prometheus/OpenTelemetry.

    Args:
        uid: User the knowledge base belongs to.
        embedding_model: Embedding model identifier.
        item_count: Number of knowledge items in the request.
        cache_hits: Items whose cached vector was reused.
        cache_misses: Items that had to be embedded again.
        deleted_stale: Cache rows removed because their transaction is gone.
        latency_ms: Total resolve time in milliseconds.
    """
    logger.info(
        "embedding_resolve_metric",
        extra={
            "uid": uid,
            "embedding_model": embedding_model,
            "item_count": item_count,
            "cache_hits": cache_hits,
            "cache_misses": cache_misses,
            "deleted_stale": deleted_stale,
            "latency_ms": latency_ms,
        },
    )


def record_stream_completed(
    mode: str,
    ok: bool,
    reply_chars: int,
    thinking_chars: int,
    reference_count: int,
    latency_ms: int,
) -> None:
    """Record metrics for one finished chat reply (streamed or not).

    Args:
        mode: Conversation mode of the request.
        ok: Whether a done chunk was produced.
        reply_chars: Length of the accumulated reply.
        thinking_chars: Length of the accumulated reasoning summary.
        reference_count: Number of referenced transactions returned.
        latency_ms: Time from request start to the final chunk.
    """
    logger.info(
        "assistant_reply_metric",
        extra={
            "mode": mode,
            "ok": ok,
            "reply_chars": reply_chars,
            "thinking_chars": thinking_chars,
            "reference_count": reference_count,
            "latency_ms": latency_ms,
        },
    )
