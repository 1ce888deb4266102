"""Types for the transaction knowledge base."""

from pydantic import BaseModel, Field

from backend.app.models.assistant import ReferencedTransaction


class KnowledgeItem(BaseModel):
    """One retrievable transaction rendered as canonical text."""

    reference: ReferencedTransaction = Field(description="Source transaction view")
    text: str = Field(description="Canonical text that is embedded and hashed")
    content_hash: str = Field(description="SHA-256 hex digest of the canonical text")
    embedding: list[float] | None = Field(
        default=None, description="Embedding vector, assigned by the embedding cache"
    )

    @property
    def reference_id(self) -> int:
        """Transaction ID the item (and its cached embedding) is keyed by."""
        return self.reference.id


class RetrievedItem(BaseModel):
    """A knowledge item with its similarity to the question."""

    item: KnowledgeItem = Field(description="The retrieved item")
    score: float = Field(description="Cosine similarity in [-1, 1]")
