"""Request and response payloads for the AI assistant."""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from backend.app.models.transaction import TransactionType


class AssistantMode(str, Enum):
    """Conversation mode."""

    chat = "chat"
    summary = "summary"


class HistoryItem(BaseModel):
    """One earlier message of the conversation."""

    role: Literal["user", "assistant"] = Field(description="Role: 'user' or 'assistant'")
    content: str = Field(max_length=2048, description="Message content")


class ChatRequest(BaseModel):
    """Assistant chat or summary request."""

    mode: str = Field(default="", description="chat (default) or summary")
    message: str = Field(default="", max_length=2048, description="User's message")
    history: list[HistoryItem] = Field(
        default_factory=list, max_length=20, description="Previous messages"
    )


class ReferencedTransaction(BaseModel):
    """A transaction cited as grounding for an assistant reply."""

    id: int = Field(description="Transaction ID (outbound leg for transfers)")
    time: int = Field(description="Transaction time as unix seconds")
    time_text: str = Field(default="", description="Formatted local time")
    type: TransactionType = Field(description="Transaction type")
    category_name: str = Field(default="")
    source_account_name: str = Field(default="")
    destination_account_name: str = Field(default="")
    source_amount: int = Field(description="Source amount in minor units")
    destination_amount: int = Field(
        default=0, description="Destination amount in minor units (transfers)"
    )
    currency: str = Field(default="", description="Source currency")
    destination_currency: str = Field(default="")
    tags: list[str] = Field(default_factory=list, description="Sorted tag names")
    comment: str = Field(default="")
    similarity_score: float | None = Field(
        default=None, description="Cosine similarity to the question, 4 decimals"
    )


class ChatResponse(BaseModel):
    """Non-streaming assistant response."""

    mode: AssistantMode
    reply: str
    references: list[ReferencedTransaction] = Field(default_factory=list)


class StreamChunkType(str, Enum):
    """Kinds of normalized stream chunks sent to the caller."""

    thinking_delta = "thinking_delta"
    reply_delta = "reply_delta"
    references = "references"
    done = "done"


class StreamChunk(BaseModel):
    """One normalized chunk of a streamed assistant response."""

    type: StreamChunkType
    mode: AssistantMode | None = None
    delta: str | None = None
    reply: str | None = None
    thinking: str | None = None
    references: list[ReferencedTransaction] | None = None
