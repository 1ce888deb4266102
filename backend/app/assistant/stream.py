"""Event-stream consumer for Responses API generation.

Raw ``data:`` lines are grouped into events (a blank line ends an event),
each event is decoded once into one of the typed variants below, and the
variants drive a small state machine that re-emits normalized StreamChunks.
"""

import json
import logging
from collections.abc import Iterable, Iterator
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from backend.app.assistant.exceptions import DecodeError, RemoteAPIError
from backend.app.models.assistant import (
    AssistantMode,
    ReferencedTransaction,
    StreamChunk,
    StreamChunkType,
)

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class ReasoningDeltaEvent(BaseModel):
    """Incremental reasoning summary text."""

    type: Literal["response.reasoning_summary_text.delta"]
    delta: str = ""


class OutputTextDeltaEvent(BaseModel):
    """Incremental reply text."""

    type: Literal["response.output_text.delta"]
    delta: str = ""


class CompletedEvent(BaseModel):
    """Final event carrying the whole response.

    The nested response is kept as loose JSON: a completed event always ends
    the stream, whatever shape its payload has.
    """

    type: Literal["response.completed"]
    response: dict[str, Any] | None = None

    @field_validator("response", mode="before")
    @classmethod
    def _ignore_non_object_response(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    def extract_text(self) -> str:
        """Return the flat output text, else all text content joined in order."""
        if not self.response:
            return ""

        output_text = self.response.get("output_text")
        if isinstance(output_text, str) and output_text:
            return output_text

        output = self.response.get("output")
        if not isinstance(output, list):
            return ""

        parts: list[str] = []
        for item in output:
            content = item.get("content") if isinstance(item, dict) else None
            if not isinstance(content, list):
                continue
            for entry in content:
                if not isinstance(entry, dict) or entry.get("type") not in ("output_text", "text"):
                    continue
                text = entry.get("text")
                if isinstance(text, str) and text:
                    parts.append(text)
        return "".join(parts)


class ErrorEvent(BaseModel):
    """Provider-side failure reported inside the stream."""

    type: Literal["error"]


class EndOfStreamEvent(BaseModel):
    """The literal ``[DONE]`` sentinel."""

    type: Literal["done"] = "done"


class UnknownEvent(BaseModel):
    """Any event type this consumer does not act on."""

    type: str = ""


StreamEvent = (
    ReasoningDeltaEvent
    | OutputTextDeltaEvent
    | CompletedEvent
    | ErrorEvent
    | EndOfStreamEvent
    | UnknownEvent
)

_EVENT_TYPES: dict[str, type[BaseModel]] = {
    "response.reasoning_summary_text.delta": ReasoningDeltaEvent,
    "response.output_text.delta": OutputTextDeltaEvent,
    "response.completed": CompletedEvent,
    "error": ErrorEvent,
}


def decode_event(data: str) -> StreamEvent:
    """Decode one event payload into its typed variant.

    Raises:
        DecodeError: If the payload is not a JSON object of the expected shape
    """
    if data == DONE_SENTINEL:
        return EndOfStreamEvent()

    try:
        payload = json.loads(data)
    except ValueError as e:
        raise DecodeError(f"event data is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise DecodeError("event data is not a JSON object")

    event_type = payload.get("type")
    model = _EVENT_TYPES.get(event_type) if isinstance(event_type, str) else None
    if model is None:
        return UnknownEvent(type=event_type if isinstance(event_type, str) else "")

    try:
        return model.model_validate(payload)  # type: ignore[return-value]
    except ValidationError as e:
        raise DecodeError(f"event \"{event_type}\" has an unexpected shape: {e}") from e


class StreamState(BaseModel):
    """Mutable accumulators of one streaming call."""

    reply: str = Field(default="", description="Reply text accumulated so far")
    thinking: str = Field(default="", description="Reasoning text accumulated so far")
    terminal: bool = Field(default=False, description="Whether a terminal event was seen")


class StreamingResponseProcessor:
    """Turns raw event-stream lines into normalized chunks.

    Deltas are yielded as soon as their event is complete. On success a
    references chunk (only when there are references) and a done chunk
    follow. A stream error event raises RemoteAPIError after the deltas
    already yielded; no references or done chunk is produced in that case.
    """

    def __init__(
        self,
        mode: AssistantMode,
        references: list[ReferencedTransaction] | None = None,
        uid: int = 0,
    ):
        self.mode = mode
        self.references = references or []
        self.uid = uid
        self.state = StreamState()

    def process(self, lines: Iterable[str]) -> Iterator[StreamChunk]:
        buffered: list[str] = []

        for raw_line in lines:
            line = raw_line.rstrip("\r\n")

            if not line:
                yield from self._flush(buffered)
                if self.state.terminal:
                    break
                continue

            if not line.startswith(DATA_PREFIX):
                continue

            buffered.append(line[len(DATA_PREFIX) :].strip())

        if not self.state.terminal:
            yield from self._flush(buffered)

        self.state.terminal = True

        if self.references:
            yield StreamChunk(type=StreamChunkType.references, references=self.references)

        yield StreamChunk(
            type=StreamChunkType.done,
            mode=self.mode,
            reply=self.state.reply,
            thinking=self.state.thinking,
        )

    def _flush(self, buffered: list[str]) -> Iterator[StreamChunk]:
        if not buffered:
            return

        data = "\n".join(buffered).strip()
        buffered.clear()

        if not data:
            return

        try:
            event = decode_event(data)
        except DecodeError as e:
            logger.warning(f"Failed to parse stream event for user \"uid:{self.uid}\": {e}")
            return

        yield from self._apply(event, data)

    def _apply(self, event: StreamEvent, data: str) -> Iterator[StreamChunk]:
        if isinstance(event, ReasoningDeltaEvent):
            if event.delta:
                self.state.thinking += event.delta
                yield StreamChunk(type=StreamChunkType.thinking_delta, delta=event.delta)

        elif isinstance(event, OutputTextDeltaEvent):
            if event.delta:
                self.state.reply += event.delta
                yield StreamChunk(type=StreamChunkType.reply_delta, delta=event.delta)

        elif isinstance(event, CompletedEvent):
            if not self.state.reply:
                text = event.extract_text()
                if text:
                    self.state.reply += text
                    yield StreamChunk(type=StreamChunkType.reply_delta, delta=text)
            self.state.terminal = True

        elif isinstance(event, ErrorEvent):
            self.state.terminal = True
            logger.error(f"Model stream returned an error for user \"uid:{self.uid}\", payload is {data}")
            raise RemoteAPIError("model stream returned an error event")

        elif isinstance(event, EndOfStreamEvent):
            self.state.terminal = True
