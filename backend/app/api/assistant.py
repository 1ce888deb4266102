"""AI assistant API endpoints."""

import json
import logging
from collections.abc import Iterator
from datetime import timezone, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from backend.app.assistant.exceptions import (
    AssistantError,
    ConfigurationError,
    InvalidRequestError,
    PersistenceError,
    RemoteAPIError,
)
from backend.app.assistant.knowledge_source import TransactionSource
from backend.app.assistant.service import AssistantClient, AssistantService
from backend.app.config import Settings, get_settings
from backend.app.db.embedding_store import EmbeddingStore
from backend.app.db.session import get_session_factory
from backend.app.llm.openai_client import OpenAIAssistantClient
from backend.app.models.assistant import ChatRequest, ChatResponse, StreamChunk

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assistant", tags=["assistant"])


class CurrentUser(BaseModel):
    """Authenticated caller."""

    uid: int = Field(description="User ID")


class PurgeEmbeddingsResponse(BaseModel):
    """Result of an embedding cache purge."""

    deleted: int = Field(description="Number of deleted cache rows")


def get_current_user() -> CurrentUser:
    """Resolve the caller; the host application overrides this dependency."""
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication is not configured",
    )


def get_transaction_source() -> TransactionSource:
    """Bookkeeping storage; the host application overrides this dependency."""
    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Transaction source is not configured",
    )


def get_settings_dependency() -> Settings:
    return get_settings()


def get_embedding_store() -> EmbeddingStore:
    return EmbeddingStore(get_session_factory())


def get_assistant_client(
    settings: Settings = Depends(get_settings_dependency),
) -> AssistantClient:
    return OpenAIAssistantClient(settings)


def get_assistant_service(
    settings: Settings = Depends(get_settings_dependency),
    source: TransactionSource = Depends(get_transaction_source),
    store: EmbeddingStore = Depends(get_embedding_store),
    client: AssistantClient = Depends(get_assistant_client),
) -> AssistantService:
    return AssistantService(settings, source, store, client)


def get_client_timezone(
    x_timezone: str | None = Header(default=None, description="IANA timezone name"),
) -> tzinfo:
    """Caller's timezone from the X-Timezone header, UTC when absent."""
    if not x_timezone or not x_timezone.strip():
        return timezone.utc

    try:
        return ZoneInfo(x_timezone.strip())
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid timezone: {x_timezone}",
        ) from e


def error_status_code(error: AssistantError) -> int:
    """HTTP status for an assistant error."""
    if isinstance(error, (InvalidRequestError, ConfigurationError)):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, RemoteAPIError):
        return status.HTTP_502_BAD_GATEWAY
    if isinstance(error, PersistenceError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _to_http_exception(error: AssistantError) -> HTTPException:
    return HTTPException(status_code=error_status_code(error), detail=str(error))


@router.post("/chat", response_model=ChatResponse)
def assistant_chat(
    request: ChatRequest,
    current_user: CurrentUser = Depends(get_current_user),
    tz: tzinfo = Depends(get_client_timezone),
    service: AssistantService = Depends(get_assistant_service),
) -> ChatResponse:
    """Answer a chat or summary request in one response.

    Raises:
        HTTPException: 400 on invalid requests or configuration, 502 when the
            model API fails, 500 when the embedding cache fails
    """
    try:
        return service.chat(current_user.uid, request, tz)
    except AssistantError as e:
        logger.error(f"Assistant chat failed for user \"uid:{current_user.uid}\": {e}")
        raise _to_http_exception(e) from e


@router.post("/chat/stream")
def assistant_chat_stream(
    request: ChatRequest,
    current_user: CurrentUser = Depends(get_current_user),
    tz: tzinfo = Depends(get_client_timezone),
    service: AssistantService = Depends(get_assistant_service),
) -> EventSourceResponse:
    """Stream the answer via Server-Sent Events (SSE).

    Each chunk is one ``message`` event whose data is the chunk JSON. Errors
    before streaming starts are regular HTTP errors; an error afterwards ends
    the stream with one ``error`` event and no done chunk.
    """
    try:
        chunks = service.stream_chat(current_user.uid, request, tz)
    except AssistantError as e:
        logger.error(f"Assistant stream failed for user \"uid:{current_user.uid}\": {e}")
        raise _to_http_exception(e) from e

    return EventSourceResponse(_event_generator(current_user.uid, chunks))


def _event_generator(uid: int, chunks: Iterator[StreamChunk]) -> Iterator[dict[str, Any]]:
    try:
        for chunk in chunks:
            yield {"event": "message", "data": chunk.model_dump_json(exclude_none=True)}
    except AssistantError as e:
        logger.error(f"Assistant stream broke off for user \"uid:{uid}\": {e}")
        yield {
            "event": "error",
            "data": json.dumps({"status": error_status_code(e), "detail": str(e)}),
        }


@router.delete("/embeddings", response_model=PurgeEmbeddingsResponse)
def purge_embeddings(
    embedding_model: str | None = Query(
        default=None, description="Only purge rows of this embedding model"
    ),
    current_user: CurrentUser = Depends(get_current_user),
    service: AssistantService = Depends(get_assistant_service),
) -> PurgeEmbeddingsResponse:
    """Delete the caller's cached embeddings."""
    try:
        deleted = service.purge_embeddings(current_user.uid, embedding_model)
    except AssistantError as e:
        raise _to_http_exception(e) from e

    return PurgeEmbeddingsResponse(deleted=deleted)
