"""Retrieval-augmented assistant over a user's bookkeeping data."""

import logging
import time
from collections.abc import Iterator
from datetime import tzinfo
from typing import Protocol

from pydantic import BaseModel, Field

from backend.app.assistant.exceptions import AssistantNotEnabledError, EmptyMessageError
from backend.app.assistant.knowledge_source import (
    TransactionSource,
    build_lookups,
    load_knowledge_transactions,
)
from backend.app.assistant.prompts import (
    build_embedding_query_text,
    build_retrieved_knowledge_text,
    build_system_prompt,
    build_user_prompt,
    no_data_reply,
    normalize_mode,
)
from backend.app.assistant.stream import StreamingResponseProcessor
from backend.app.config import Settings, get_openai_api_key, get_openai_model
from backend.app.db.embedding_store import EmbeddingStore
from backend.app.knowledge.builder import build_knowledge_items
from backend.app.knowledge.embedding_cache import EmbeddingCache, EmbeddingClient
from backend.app.knowledge.retrieval import build_references, select_top_k
from backend.app.knowledge.snapshot import build_financial_snapshot
from backend.app.metrics.core import record_stream_completed
from backend.app.models.assistant import (
    AssistantMode,
    ChatRequest,
    ChatResponse,
    ReferencedTransaction,
    StreamChunk,
    StreamChunkType,
)
from backend.app.utils.formatting import format_long_datetime

logger = logging.getLogger(__name__)


class AssistantClient(EmbeddingClient, Protocol):
    """Remote model operations used by the assistant."""

    def stream_generate(self, system_prompt: str, user_prompt: str) -> Iterator[str]: ...

    def generate(self, system_prompt: str, user_prompt: str) -> str: ...


class PreparedPromptContext(BaseModel):
    """Everything needed to ask the model, or the reply to give without asking."""

    mode: AssistantMode
    system_prompt: str = ""
    user_prompt: str = ""
    no_data_reply: str = Field(
        default="", description="Set when the user has no usable data; skips the model call"
    )
    references: list[ReferencedTransaction] = Field(default_factory=list)


class AssistantService:
    """Builds grounded prompts and produces assistant replies."""

    def __init__(
        self,
        settings: Settings,
        source: TransactionSource,
        store: EmbeddingStore,
        client: AssistantClient,
    ):
        self.settings = settings
        self.source = source
        self.store = store
        self.client = client
        self.embedding_cache = EmbeddingCache(settings, store, client)

    def prepare_context(
        self,
        uid: int,
        request: ChatRequest,
        tz: tzinfo,
        now: int | None = None,
    ) -> PreparedPromptContext:
        """Validate the request and assemble the prompts for it.

        Raises:
            AssistantNotEnabledError: If the assistant is switched off
            InvalidModeError: If the mode is unknown
            EmptyMessageError: If a chat request has no message
            ConfigurationError: If credentials or model ids are missing
            RemoteAPIError: If embedding the knowledge base fails
            PersistenceError: If the embedding cache is unavailable
        """
        if not self.settings.assistant_enabled:
            raise AssistantNotEnabledError("AI assistant is not enabled")

        mode = normalize_mode(request.mode)
        request = request.model_copy(update={"message": request.message.strip()})

        if mode == AssistantMode.chat and not request.message:
            raise EmptyMessageError("message must not be empty in chat mode")

        if now is None:
            now = int(time.time())

        transactions = load_knowledge_transactions(self.source, uid, tz, self.settings, now=now)
        if not transactions:
            return PreparedPromptContext(mode=mode, no_data_reply=no_data_reply(mode))

        lookups = build_lookups(self.source, uid, transactions)
        items = build_knowledge_items(transactions, lookups, tz)
        if not items:
            return PreparedPromptContext(mode=mode, no_data_reply=no_data_reply(mode))

        # generation credentials are checked before any network call
        get_openai_api_key(self.settings)
        get_openai_model(self.settings)

        query_text = build_embedding_query_text(
            request, mode, self.settings.assistant_max_history_messages
        )
        query_embedding = self.embedding_cache.resolve(uid, query_text, items)

        retrieved = select_top_k(query_embedding, items, self.settings.assistant_top_k)
        snapshot = build_financial_snapshot(items, tz, now=now)

        system_prompt = build_system_prompt(
            format_long_datetime(now, tz),
            mode,
            snapshot,
            build_retrieved_knowledge_text(retrieved),
        )

        logger.info(
            f"Prepared assistant context for user \"uid:{uid}\" with {len(items)} "
            f"knowledge items, {len(retrieved)} retrieved"
        )

        return PreparedPromptContext(
            mode=mode,
            system_prompt=system_prompt,
            user_prompt=build_user_prompt(
                request, mode, self.settings.assistant_max_history_messages
            ),
            references=build_references(retrieved, self.settings.assistant_max_references),
        )

    def chat(
        self,
        uid: int,
        request: ChatRequest,
        tz: tzinfo,
        now: int | None = None,
    ) -> ChatResponse:
        """Answer a request in one piece."""
        start = time.perf_counter()
        context = self.prepare_context(uid, request, tz, now)

        if context.no_data_reply:
            return ChatResponse(mode=context.mode, reply=context.no_data_reply)

        reply = self.client.generate(context.system_prompt, context.user_prompt)

        record_stream_completed(
            mode=context.mode.value,
            ok=True,
            reply_chars=len(reply),
            thinking_chars=0,
            reference_count=len(context.references),
            latency_ms=int((time.perf_counter() - start) * 1000),
        )

        return ChatResponse(mode=context.mode, reply=reply, references=context.references)

    def stream_chat(
        self,
        uid: int,
        request: ChatRequest,
        tz: tzinfo,
        now: int | None = None,
    ) -> Iterator[StreamChunk]:
        """Answer a request as a chunk stream.

        Request validation and context preparation happen eagerly, so their
        errors are raised here rather than from the returned iterator.
        """
        context = self.prepare_context(uid, request, tz, now)
        return self._stream_context(uid, context)

    def purge_embeddings(self, uid: int, embedding_model: str | None = None) -> int:
        """Delete the user's cached embeddings."""
        deleted = self.store.purge(uid, embedding_model)
        logger.info(f"Purged {deleted} cached embeddings for user \"uid:{uid}\"")
        return deleted

    def _stream_context(self, uid: int, context: PreparedPromptContext) -> Iterator[StreamChunk]:
        if context.no_data_reply:
            yield StreamChunk(type=StreamChunkType.reply_delta, delta=context.no_data_reply)
            yield StreamChunk(
                type=StreamChunkType.done, mode=context.mode, reply=context.no_data_reply
            )
            return

        start = time.perf_counter()
        processor = StreamingResponseProcessor(context.mode, context.references, uid=uid)
        lines = self.client.stream_generate(context.system_prompt, context.user_prompt)
        ok = False

        try:
            yield from processor.process(lines)
            ok = True
        finally:
            close = getattr(lines, "close", None)
            if close is not None:
                close()

            record_stream_completed(
                mode=context.mode.value,
                ok=ok,
                reply_chars=len(processor.state.reply),
                thinking_chars=len(processor.state.thinking),
                reference_count=len(context.references),
                latency_ms=int((time.perf_counter() - start) * 1000),
            )
