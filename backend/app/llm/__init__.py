"""Remote language model client."""

from backend.app.llm.openai_client import OpenAIAssistantClient

__all__ = ["OpenAIAssistantClient"]
