"""Assistant exceptions."""


class AssistantError(Exception):
    """Base exception for assistant errors."""
    pass


class ConfigurationError(AssistantError):
    """Raised when the assistant is not configured well enough to call the LLM API."""
    pass


class AssistantNotEnabledError(ConfigurationError):
    """Raised when the assistant feature is switched off."""
    pass


class MissingOpenAIKeyError(ConfigurationError):
    """Raised when an OpenAI API key is not configured."""
    pass


class MissingOpenAIModelError(ConfigurationError):
    """Raised when no generation model id is configured."""
    pass


class EmbeddingModelInvalidError(ConfigurationError):
    """Raised when the embedding model id is missing or blank."""
    pass


class RemoteAPIError(AssistantError):
    """Raised when the remote LLM API fails or returns an unusable response."""
    pass


class PersistenceError(AssistantError):
    """Raised when the embedding cache cannot be read or written."""
    pass


class DecodeError(AssistantError):
    """Raised when a cached vector or stream payload cannot be decoded.

    Always absorbed by callers: a decode failure is a cache miss or a skipped event.
    """
    pass


class InvalidRequestError(AssistantError):
    """Raised when an assistant request is malformed."""
    pass


class InvalidModeError(InvalidRequestError):
    """Raised when the conversation mode is not chat or summary."""
    pass


class EmptyMessageError(InvalidRequestError):
    """Raised when a chat request carries no message."""
    pass
