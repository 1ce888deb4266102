"""Retrieval-augmented personal finance assistant."""

from .exceptions import (
    AssistantError,
    AssistantNotEnabledError,
    ConfigurationError,
    DecodeError,
    EmbeddingModelInvalidError,
    EmptyMessageError,
    InvalidModeError,
    InvalidRequestError,
    MissingOpenAIKeyError,
    MissingOpenAIModelError,
    PersistenceError,
    RemoteAPIError,
)

__all__ = [
    "AssistantError",
    "AssistantNotEnabledError",
    "ConfigurationError",
    "DecodeError",
    "EmbeddingModelInvalidError",
    "EmptyMessageError",
    "InvalidModeError",
    "InvalidRequestError",
    "MissingOpenAIKeyError",
    "MissingOpenAIModelError",
    "PersistenceError",
    "RemoteAPIError",
]
