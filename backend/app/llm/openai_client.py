"""OpenAI-compatible client for embeddings and Responses API generation."""

import contextlib
import json
import logging
from collections.abc import Iterator, Sequence

import httpx
from openai import OpenAI, OpenAIError

from backend.app.assistant.exceptions import RemoteAPIError
from backend.app.config import (
    Settings,
    get_openai_api_key,
    get_openai_embedding_model,
    get_openai_model,
)

logger = logging.getLogger(__name__)

RESPONSES_PATH = "responses"

JSON_REPLY_INSTRUCTION = (
    'Respond with a JSON object of the form {"reply": "<your answer>"} and nothing else.'
)


class OpenAIAssistantClient:
    """Thin wrapper over the remote model API.

    Credentials and model ids are validated on every call, before any
    network traffic. Remote failures are raised as RemoteAPIError and are
    never retried here.
    """

    def __init__(self, settings: Settings, http_client: httpx.Client | None = None):
        self.settings = settings
        self._http_client = http_client

    def _create_sdk_client(self) -> OpenAI:
        return OpenAI(
            api_key=get_openai_api_key(self.settings),
            base_url=self.settings.get_openai_base_url(),
            timeout=self.settings.llm_request_timeout_s,
            max_retries=0,
            http_client=self._http_client,
        )

    def _open_http_client(self) -> contextlib.AbstractContextManager[httpx.Client]:
        if self._http_client is not None:
            return contextlib.nullcontext(self._http_client)
        return httpx.Client(timeout=self.settings.llm_request_timeout_s)

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed a batch of texts in one request.

        Args:
            texts: Input texts; the result is in the same order

        Returns:
            One vector per input text

        Raises:
            ConfigurationError: If the key or embedding model is missing
            RemoteAPIError: On request failure or a malformed response
        """
        if not texts:
            return []

        embedding_model = get_openai_embedding_model(self.settings)
        client = self._create_sdk_client()

        try:
            response = client.embeddings.create(
                model=embedding_model,
                input=list(texts),
                encoding_format="float",
            )
        except OpenAIError as e:
            logger.error(f"Failed to request embeddings: {e}")
            raise RemoteAPIError(f"embedding request failed: {e}") from e

        if len(response.data) != len(texts):
            logger.error(
                f"Embedding response count is invalid, expected {len(texts)}, got {len(response.data)}"
            )
            raise RemoteAPIError(
                f"embedding count mismatch: expected {len(texts)}, got {len(response.data)}"
            )

        vectors: list[list[float]] = []
        for item in sorted(response.data, key=lambda item: item.index):
            if not item.embedding:
                logger.error(f"Embedding item {item.index} is empty")
                raise RemoteAPIError(f"embedding item {item.index} is empty")
            vectors.append([float(value) for value in item.embedding])

        return vectors

    def stream_generate(self, system_prompt: str, user_prompt: str) -> Iterator[str]:
        """Request a streamed response and yield the raw event-stream lines.

        Raises:
            ConfigurationError: If the key or generation model is missing
            RemoteAPIError: On a non-200 status or a broken connection
        """
        api_key = get_openai_api_key(self.settings)
        model = get_openai_model(self.settings)

        body = {
            "model": model,
            "instructions": system_prompt,
            "input": user_prompt,
            "stream": True,
            "store": False,
            "reasoning": {"summary": self.settings.openai_reasoning_summary},
        }
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        url = self.settings.get_openai_endpoint_url(RESPONSES_PATH)

        try:
            with self._open_http_client() as http_client:
                with http_client.stream(
                    "POST",
                    url,
                    json=body,
                    headers=headers,
                    timeout=self.settings.llm_request_timeout_s,
                ) as response:
                    if response.status_code != httpx.codes.OK:
                        response_body = response.read().decode("utf-8", errors="replace")
                        logger.error(
                            f"Failed to request response stream, status code is "
                            f"{response.status_code}, response is {response_body}"
                        )
                        raise RemoteAPIError(
                            f"response stream request failed with status {response.status_code}"
                        )

                    yield from response.iter_lines()
        except httpx.HTTPError as e:
            logger.error(f"Failed to read response stream: {e}")
            raise RemoteAPIError(f"response stream failed: {e}") from e

    def generate(self, system_prompt: str, user_prompt: str) -> str:
        """Request a complete reply without streaming.

        The model is asked for a JSON object with a ``reply`` field; when the
        content is not such an object the trimmed raw text is returned.
        """
        model = get_openai_model(self.settings)
        client = self._create_sdk_client()

        try:
            response = client.responses.create(
                model=model,
                instructions=f"{system_prompt}\n\n{JSON_REPLY_INSTRUCTION}",
                input=user_prompt,
                store=False,
                text={"format": {"type": "json_object"}},
            )
        except OpenAIError as e:
            logger.error(f"Failed to request response: {e}")
            raise RemoteAPIError(f"response request failed: {e}") from e

        content = (response.output_text or "").strip()
        if not content:
            raise RemoteAPIError("response content is empty")

        return parse_json_reply(content)


def parse_json_reply(content: str) -> str:
    """Return the ``reply`` field of a JSON reply, or the trimmed content itself."""
    content = content.strip()

    try:
        data = json.loads(content)
    except ValueError:
        return content

    if isinstance(data, dict):
        reply = data.get("reply")
        if isinstance(reply, str) and reply.strip():
            return reply.strip()

    return content
