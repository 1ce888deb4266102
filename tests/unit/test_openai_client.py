"""Tests for the OpenAI-compatible model client."""

import json
from types import SimpleNamespace
from unittest.mock import patch

import httpx
import pytest

from backend.app.assistant.exceptions import (
    EmbeddingModelInvalidError,
    MissingOpenAIKeyError,
    MissingOpenAIModelError,
    RemoteAPIError,
)
from backend.app.llm.openai_client import OpenAIAssistantClient, parse_json_reply


def _client(settings, handler) -> OpenAIAssistantClient:
    return OpenAIAssistantClient(settings, http_client=httpx.Client(transport=httpx.MockTransport(handler)))


def _embedding_payload(vectors_by_index: dict[int, list[float]]) -> dict:
    return {
        "object": "list",
        "model": "test-embedding-model",
        "data": [
            {"object": "embedding", "index": index, "embedding": vector}
            for index, vector in vectors_by_index.items()
        ],
        "usage": {"prompt_tokens": 3, "total_tokens": 3},
    }


class TestEmbed:
    def test_vectors_are_returned_in_input_order(self, test_settings):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=_embedding_payload({1: [0.0, 1.0], 0: [1.0, 0.0]}))

        vectors = _client(test_settings, handler).embed(["first", "second"])

        assert vectors == [[1.0, 0.0], [0.0, 1.0]]
        assert str(requests[0].url) == "https://llm.example.com/v1/embeddings"
        body = json.loads(requests[0].content)
        assert body["model"] == "test-embedding-model"
        assert body["input"] == ["first", "second"]
        assert body["encoding_format"] == "float"
        assert requests[0].headers["authorization"] == "Bearer sk-test-key"

    def test_empty_input_makes_no_request(self, test_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        assert _client(test_settings, handler).embed([]) == []

    def test_count_mismatch_is_rejected(self, test_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_embedding_payload({0: [1.0]}))

        with pytest.raises(RemoteAPIError):
            _client(test_settings, handler).embed(["a", "b"])

    def test_empty_vector_is_rejected(self, test_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_embedding_payload({0: []}))

        with pytest.raises(RemoteAPIError):
            _client(test_settings, handler).embed(["a"])

    def test_server_error_is_not_retried(self, test_settings):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(500, json={"error": {"message": "boom"}})

        with pytest.raises(RemoteAPIError):
            _client(test_settings, handler).embed(["a"])

        assert len(calls) == 1

    def test_blank_embedding_model_fails_before_network(self, test_settings):
        settings = test_settings.model_copy(update={"openai_embedding_model": ""})

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        with pytest.raises(EmbeddingModelInvalidError):
            _client(settings, handler).embed(["a"])


class TestStreamGenerate:
    def test_request_shape_and_lines(self, test_settings):
        requests = []
        stream_body = (
            'data: {"type":"response.output_text.delta","delta":"Hi"}\n\n'
            "data: [DONE]\n\n"
        )

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200, content=stream_body.encode(), headers={"content-type": "text/event-stream"}
            )

        lines = list(_client(test_settings, handler).stream_generate("system text", "user text"))

        assert lines == [
            'data: {"type":"response.output_text.delta","delta":"Hi"}',
            "",
            "data: [DONE]",
            "",
        ]

        request = requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://llm.example.com/v1/responses"
        assert request.headers["authorization"] == "Bearer sk-test-key"
        assert request.headers["accept"] == "text/event-stream"
        assert json.loads(request.content) == {
            "model": "test-model",
            "instructions": "system text",
            "input": "user text",
            "stream": True,
            "store": False,
            "reasoning": {"summary": "auto"},
        }

    def test_non_200_status_is_a_remote_error(self, test_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, text="rate limited")

        with pytest.raises(RemoteAPIError, match="429"):
            list(_client(test_settings, handler).stream_generate("s", "u"))

    def test_transport_error_is_a_remote_error(self, test_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(RemoteAPIError):
            list(_client(test_settings, handler).stream_generate("s", "u"))

    def test_missing_key_fails_before_network(self, test_settings):
        settings = test_settings.model_copy(update={"openai_api_key": "   "})

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        with pytest.raises(MissingOpenAIKeyError):
            list(_client(settings, handler).stream_generate("s", "u"))

    def test_blank_model_fails_before_network(self, test_settings):
        settings = test_settings.model_copy(update={"openai_model": ""})

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        with pytest.raises(MissingOpenAIModelError):
            list(_client(settings, handler).stream_generate("s", "u"))


class TestGenerate:
    def test_reply_field_is_extracted(self, test_settings):
        with patch("backend.app.llm.openai_client.OpenAI") as mock_openai:
            create = mock_openai.return_value.responses.create
            create.return_value = SimpleNamespace(output_text='{"reply": "  Spent 42.00 USD. "}')

            reply = OpenAIAssistantClient(test_settings).generate("system", "user")

        assert reply == "Spent 42.00 USD."
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["input"] == "user"
        assert kwargs["store"] is False
        assert kwargs["text"] == {"format": {"type": "json_object"}}
        assert kwargs["instructions"].startswith("system\n\n")
        assert mock_openai.call_args.kwargs["max_retries"] == 0
        assert mock_openai.call_args.kwargs["base_url"] == "https://llm.example.com/v1"

    def test_empty_content_is_a_remote_error(self, test_settings):
        with patch("backend.app.llm.openai_client.OpenAI") as mock_openai:
            mock_openai.return_value.responses.create.return_value = SimpleNamespace(output_text="  ")

            with pytest.raises(RemoteAPIError):
                OpenAIAssistantClient(test_settings).generate("system", "user")

    def test_missing_key_fails_before_network(self, test_settings):
        settings = test_settings.model_copy(update={"openai_api_key": "dummy-openai-api-key-for-tests"})

        with patch("backend.app.llm.openai_client.OpenAI") as mock_openai:
            with pytest.raises(MissingOpenAIKeyError):
                OpenAIAssistantClient(settings).generate("system", "user")

        mock_openai.return_value.responses.create.assert_not_called()


@pytest.mark.parametrize(
    ("content", "expected"),
    [
        ('{"reply": "Hello"}', "Hello"),
        ('  {"reply": " padded "}  ', "padded"),
        ("plain text answer\n", "plain text answer"),
        ('{"answer": "other"}', '{"answer": "other"}'),
        ('{"reply": ""}', '{"reply": ""}'),
        ('["reply"]', '["reply"]'),
    ],
)
def test_parse_json_reply(content, expected):
    assert parse_json_reply(content) == expected
