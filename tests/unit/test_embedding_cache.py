"""Tests for the content-hash gated embedding cache."""

from unittest.mock import patch

import pytest

from backend.app.assistant.exceptions import (
    DecodeError,
    EmbeddingModelInvalidError,
    PersistenceError,
    RemoteAPIError,
)
from backend.app.db.embedding_store import CachedEmbedding
from backend.app.knowledge.builder import compute_content_hash
from backend.app.knowledge.embedding_cache import EmbeddingCache, decode_vector, encode_vector
from backend.app.knowledge.types import KnowledgeItem
from backend.app.models.assistant import ReferencedTransaction
from backend.app.models.transaction import TransactionType
from tests.assistant_test_helpers import FakeAssistantClient, fake_vector

UID = 7


def _item(item_id: int, text: str | None = None) -> KnowledgeItem:
    text = text or f"transaction_id: {item_id}\ncomment: item {item_id}"
    return KnowledgeItem(
        reference=ReferencedTransaction(
            id=item_id, time=0, type=TransactionType.expense, source_amount=100
        ),
        text=text,
        content_hash=compute_content_hash(text),
    )


@pytest.fixture
def cache(test_settings, embedding_store, fake_client) -> EmbeddingCache:
    return EmbeddingCache(test_settings, embedding_store, fake_client)


def test_first_resolve_embeds_query_and_all_items(cache, fake_client):
    items = [_item(1), _item(2)]

    query_vector = cache.resolve(UID, "groceries?", items)

    assert fake_client.embed_calls == [["groceries?", items[0].text, items[1].text]]
    assert query_vector == fake_vector("groceries?")
    assert items[0].embedding == fake_vector(items[0].text)
    assert items[1].embedding == fake_vector(items[1].text)


def test_second_resolve_without_changes_only_embeds_query(cache, fake_client):
    cache.resolve(UID, "first question", [_item(1), _item(2)])
    fake_client.embed_calls.clear()

    items = [_item(1), _item(2)]
    cache.resolve(UID, "second question", items)

    assert fake_client.embed_calls == [["second question"]]
    assert items[0].embedding == fake_vector(items[0].text)
    assert items[1].embedding == fake_vector(items[1].text)


def test_resolve_is_idempotent_for_items(cache, fake_client):
    cache.resolve(UID, "question", [_item(1), _item(2)])
    fake_client.embed_calls.clear()

    cache.resolve(UID, "question", [_item(1), _item(2)])

    # only the query text is embedded again
    assert fake_client.embedded_texts == ["question"]


def test_changed_content_is_reembedded(cache, fake_client):
    cache.resolve(UID, "q", [_item(1), _item(2)])
    fake_client.embed_calls.clear()

    edited = _item(2, text="transaction_id: 2\ncomment: edited")
    cache.resolve(UID, "q", [_item(1), edited])

    assert fake_client.embedded_texts == ["q", edited.text]


def test_stale_rows_are_garbage_collected(cache, embedding_store):
    cache.resolve(UID, "q", [_item(1), _item(2), _item(3)])

    cache.resolve(UID, "q", [_item(1), _item(3)])

    assert set(embedding_store.get_by_ids(UID, "test-embedding-model", [1, 2, 3])) == {1, 3}


def test_garbage_collection_runs_before_reconciling(cache, embedding_store):
    cache.resolve(UID, "q", [_item(1), _item(2), _item(3)])

    calls = []
    original_delete = embedding_store.delete_not_in
    original_get = embedding_store.get_by_ids

    def tracking_delete(*args):
        calls.append(("delete", args[2]))
        return original_delete(*args)

    def tracking_get(*args):
        calls.append(("get", args[2]))
        return original_get(*args)

    with (
        patch.object(embedding_store, "delete_not_in", side_effect=tracking_delete),
        patch.object(embedding_store, "get_by_ids", side_effect=tracking_get),
    ):
        cache.resolve(UID, "q", [_item(1), _item(3)])

    assert calls == [("delete", [1, 3]), ("get", [1, 3])]


def test_corrupt_cached_vector_is_a_miss(cache, embedding_store, fake_client):
    item = _item(1)
    embedding_store.replace(
        [
            CachedEmbedding(
                uid=UID,
                transaction_id=1,
                embedding_model="test-embedding-model",
                content_hash=item.content_hash,
                vector_data="not json",
            )
        ]
    )

    cache.resolve(UID, "q", [item])

    assert fake_client.embedded_texts == ["q", item.text]
    row = embedding_store.get_by_ids(UID, "test-embedding-model", [1])[1]
    assert decode_vector(row.vector_data) == fake_vector(item.text)


def test_items_without_valid_id_are_embedded_but_not_cached(cache, embedding_store, fake_client):
    item = _item(0)

    cache.resolve(UID, "q", [item])

    assert item.embedding == fake_vector(item.text)
    assert embedding_store.get_by_ids(UID, "test-embedding-model", [0]) == {}


def test_embeddings_are_batched_sequentially(test_settings, embedding_store, fake_client):
    settings = test_settings.model_copy(update={"assistant_embedding_batch_size": 2})
    cache = EmbeddingCache(settings, embedding_store, fake_client)
    items = [_item(i) for i in range(1, 5)]

    cache.resolve(UID, "q", items)

    assert [len(call) for call in fake_client.embed_calls] == [2, 2, 1]
    assert fake_client.embedded_texts == ["q"] + [item.text for item in items]
    assert all(item.embedding == fake_vector(item.text) for item in items)


class ShortClient(FakeAssistantClient):
    """Returns one vector fewer than requested."""

    def embed(self, texts):
        return super().embed(texts)[:-1]


def test_count_mismatch_is_an_error_without_cache_writes(test_settings, embedding_store):
    cache = EmbeddingCache(test_settings, embedding_store, ShortClient())

    with pytest.raises(RemoteAPIError):
        cache.resolve(UID, "q", [_item(1), _item(2)])

    assert embedding_store.get_by_ids(UID, "test-embedding-model", [1, 2]) == {}


class FailingSecondBatchClient(FakeAssistantClient):
    def embed(self, texts):
        if self.embed_calls:
            raise RemoteAPIError("rate limited")
        return super().embed(texts)


def test_failure_in_any_batch_aborts_resolve(test_settings, embedding_store):
    settings = test_settings.model_copy(update={"assistant_embedding_batch_size": 1})
    cache = EmbeddingCache(settings, embedding_store, FailingSecondBatchClient())

    with pytest.raises(RemoteAPIError):
        cache.resolve(UID, "q", [_item(1)])

    assert embedding_store.get_by_ids(UID, "test-embedding-model", [1]) == {}


def test_missing_embedding_model_fails_before_network(test_settings, embedding_store, fake_client):
    settings = test_settings.model_copy(update={"openai_embedding_model": "  "})
    cache = EmbeddingCache(settings, embedding_store, fake_client)

    with pytest.raises(EmbeddingModelInvalidError):
        cache.resolve(UID, "q", [_item(1)])

    assert fake_client.embed_calls == []


def test_persistence_failure_propagates(cache, embedding_store):
    with patch.object(embedding_store, "replace", side_effect=PersistenceError("disk full")):
        with pytest.raises(PersistenceError):
            cache.resolve(UID, "q", [_item(1)])


def test_models_are_isolated(test_settings, embedding_store, fake_client):
    first = EmbeddingCache(test_settings, embedding_store, fake_client)
    first.resolve(UID, "q", [_item(1)])
    fake_client.embed_calls.clear()

    other_settings = test_settings.model_copy(update={"openai_embedding_model": "other-model"})
    EmbeddingCache(other_settings, embedding_store, fake_client).resolve(UID, "q", [_item(1)])

    assert fake_client.embedded_texts == ["q", _item(1).text]
    assert set(embedding_store.get_by_ids(UID, "test-embedding-model", [1])) == {1}


def test_resolve_records_metrics(cache):
    cache.resolve(UID, "q", [_item(1)])

    with patch("backend.app.knowledge.embedding_cache.record_embedding_resolve") as mock_metrics:
        cache.resolve(UID, "q", [_item(1), _item(2)])

    call_kwargs = mock_metrics.call_args[1]
    assert call_kwargs["cache_hits"] == 1
    assert call_kwargs["cache_misses"] == 1
    assert call_kwargs["item_count"] == 2


def test_vector_encoding():
    assert decode_vector(encode_vector([0.5, 1, -2.25])) == [0.5, 1.0, -2.25]

    for bad in ("", "{}", "[]", '["a"]', "[true]", "[NaN]"):
        with pytest.raises(DecodeError):
            decode_vector(bad)
