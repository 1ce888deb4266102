"""Cached transaction embedding ORM model."""

from sqlalchemy import BigInteger, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.db.base import Base


class AssistantEmbedding(Base):
    """One cached embedding vector per (user, embedding model, transaction).

    A row is reusable only while content_hash matches the hash of the
    transaction's current knowledge text.
    """

    __tablename__ = "assistant_embedding"

    uid: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    transaction_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    embedding_model: Mapped[str] = mapped_column(String(128), primary_key=True)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    vector_data: Mapped[str] = mapped_column(
        Text, nullable=False
    )  # JSON array of float64
    created_unix_time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_unix_time: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        Index(
            "idx_assistant_embedding_uid_model_updated",
            "uid",
            "embedding_model",
            "updated_unix_time",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<AssistantEmbedding(uid={self.uid}, transaction_id={self.transaction_id}, "
            f"embedding_model={self.embedding_model})>"
        )
