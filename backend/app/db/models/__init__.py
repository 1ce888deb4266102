"""ORM models for database tables."""

from .embedding import AssistantEmbedding

__all__ = [
    "AssistantEmbedding",
]
