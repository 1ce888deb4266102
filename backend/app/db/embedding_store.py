"""Persistent embedding cache keyed by (user, embedding model, transaction)."""

import logging
import time
from collections.abc import Sequence

from pydantic import BaseModel, Field
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from backend.app.assistant.exceptions import EmbeddingModelInvalidError, PersistenceError
from backend.app.db.base import get_session
from backend.app.db.models.embedding import AssistantEmbedding

logger = logging.getLogger(__name__)


class CachedEmbedding(BaseModel):
    """Detached copy of one cache row."""

    uid: int
    transaction_id: int
    embedding_model: str
    content_hash: str
    vector_data: str = Field(description="JSON array of float64")
    created_unix_time: int = 0
    updated_unix_time: int = 0


def _check_owner(uid: int, embedding_model: str) -> None:
    if uid <= 0:
        raise PersistenceError(f"invalid user id {uid}")
    if not embedding_model:
        raise EmbeddingModelInvalidError("embedding model must not be blank")


def _to_cached(row: AssistantEmbedding) -> CachedEmbedding:
    return CachedEmbedding(
        uid=row.uid,
        transaction_id=row.transaction_id,
        embedding_model=row.embedding_model,
        content_hash=row.content_hash,
        vector_data=row.vector_data,
        created_unix_time=row.created_unix_time,
        updated_unix_time=row.updated_unix_time,
    )


class EmbeddingStore:
    """SQL-backed embedding cache.

    Every database failure is raised as PersistenceError.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def get_by_ids(
        self, uid: int, embedding_model: str, transaction_ids: Sequence[int]
    ) -> dict[int, CachedEmbedding]:
        """Fetch cached rows for the given transactions, keyed by transaction ID."""
        _check_owner(uid, embedding_model)

        if not transaction_ids:
            return {}

        stmt = (
            select(AssistantEmbedding)
            .where(AssistantEmbedding.uid == uid)
            .where(AssistantEmbedding.embedding_model == embedding_model)
            .where(AssistantEmbedding.transaction_id.in_(list(transaction_ids)))
        )

        try:
            with get_session(self._session_factory) as session:
                rows = session.execute(stmt).scalars().all()
                return {row.transaction_id: _to_cached(row) for row in rows}
        except SQLAlchemyError as e:
            logger.error(f"Failed to read embeddings for user \"uid:{uid}\": {e}")
            raise PersistenceError(f"failed to read embedding cache: {e}") from e

    def delete_not_in(
        self, uid: int, embedding_model: str, transaction_ids: Sequence[int]
    ) -> int:
        """Delete rows of this user and model whose transaction is not listed.

        An empty list deletes every row of the user and model.

        Returns:
            Number of deleted rows
        """
        _check_owner(uid, embedding_model)

        stmt = (
            delete(AssistantEmbedding)
            .where(AssistantEmbedding.uid == uid)
            .where(AssistantEmbedding.embedding_model == embedding_model)
        )
        if transaction_ids:
            stmt = stmt.where(AssistantEmbedding.transaction_id.not_in(list(transaction_ids)))

        try:
            with get_session(self._session_factory) as session:
                result = session.execute(stmt)
                return result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete stale embeddings for user \"uid:{uid}\": {e}")
            raise PersistenceError(f"failed to delete stale embeddings: {e}") from e

    def replace(self, entries: Sequence[CachedEmbedding]) -> None:
        """Overwrite cache rows by key in a single transaction.

        All entries must share one user and embedding model. Prior rows for
        the affected transactions are deleted and the new rows inserted; on
        any failure nothing is written.
        """
        if not entries:
            return

        uid = entries[0].uid
        embedding_model = entries[0].embedding_model
        _check_owner(uid, embedding_model)

        now = int(time.time())
        rows_by_id: dict[int, AssistantEmbedding] = {}

        for entry in entries:
            if entry.uid != uid or entry.embedding_model != embedding_model:
                raise PersistenceError("embedding entries must share one user and model")
            if entry.transaction_id <= 0 or not entry.vector_data or not entry.content_hash:
                raise PersistenceError(
                    f"invalid embedding entry for transaction {entry.transaction_id}"
                )

            rows_by_id[entry.transaction_id] = AssistantEmbedding(
                uid=uid,
                transaction_id=entry.transaction_id,
                embedding_model=embedding_model,
                content_hash=entry.content_hash,
                vector_data=entry.vector_data,
                created_unix_time=entry.created_unix_time or now,
                updated_unix_time=now,
            )

        stmt = (
            delete(AssistantEmbedding)
            .where(AssistantEmbedding.uid == uid)
            .where(AssistantEmbedding.embedding_model == embedding_model)
            .where(AssistantEmbedding.transaction_id.in_(list(rows_by_id)))
        )

        try:
            with get_session(self._session_factory) as session:
                session.execute(stmt)
                session.add_all(rows_by_id.values())
        except SQLAlchemyError as e:
            logger.error(f"Failed to save embeddings for user \"uid:{uid}\": {e}")
            raise PersistenceError(f"failed to save embeddings: {e}") from e

    def purge(self, uid: int, embedding_model: str | None = None) -> int:
        """Delete every cached row of a user, optionally for one model only."""
        if uid <= 0:
            raise PersistenceError(f"invalid user id {uid}")

        stmt = delete(AssistantEmbedding).where(AssistantEmbedding.uid == uid)
        if embedding_model:
            stmt = stmt.where(AssistantEmbedding.embedding_model == embedding_model)

        try:
            with get_session(self._session_factory) as session:
                result = session.execute(stmt)
                return result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error(f"Failed to purge embeddings for user \"uid:{uid}\": {e}")
            raise PersistenceError(f"failed to purge embeddings: {e}") from e
