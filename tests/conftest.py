"""Pytest configuration and fixtures for testing."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from backend.app.assistant.knowledge_source import InMemoryTransactionSource
from backend.app.config import Settings
from backend.app.db.base import Base, get_session_factory
from backend.app.db.embedding_store import EmbeddingStore
from backend.app.models.transaction import (
    Account,
    Transaction,
    TransactionCategory,
    TransactionDbType,
    TransactionTag,
)
from tests.assistant_test_helpers import NOW, TEST_UID, FakeAssistantClient


@pytest.fixture(scope="function")
def test_db_engine():
    """Create a test database engine with in-memory SQLite."""
    # StaticPool shares the single in-memory database across threads
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    Base.metadata.create_all(engine)

    yield engine

    # Cleanup
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def test_session_factory(test_db_engine):
    """Create a test session factory."""
    return get_session_factory(test_db_engine)


@pytest.fixture(scope="function")
def embedding_store(test_session_factory) -> EmbeddingStore:
    """Embedding cache store over the in-memory database."""
    return EmbeddingStore(test_session_factory)


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        postgres_url="sqlite:///:memory:",
        openai_api_key="sk-test-key",
        openai_base_url="https://llm.example.com/v1",
        openai_model="test-model",
        openai_embedding_model="test-embedding-model",
    )


@pytest.fixture
def fake_client() -> FakeAssistantClient:
    return FakeAssistantClient()


@pytest.fixture
def transaction_source() -> InMemoryTransactionSource:
    """A user with two accounts, a few categories and tags, and five transactions."""
    source = InMemoryTransactionSource()

    source.add_account(TEST_UID, Account(account_id=1, name="Checking", currency="USD"))
    source.add_account(TEST_UID, Account(account_id=2, name="Travel Card", currency="EUR"))

    source.add_category(TEST_UID, TransactionCategory(category_id=10, name="Salary"))
    source.add_category(TEST_UID, TransactionCategory(category_id=20, name="Groceries"))
    source.add_category(TEST_UID, TransactionCategory(category_id=30, name="Dining"))
    source.add_category(TEST_UID, TransactionCategory(category_id=40, name="Transfer"))

    source.add_tag(TEST_UID, TransactionTag(tag_id=100, name="weekly"))
    source.add_tag(TEST_UID, TransactionTag(tag_id=101, name="family"))

    source.add_transaction(
        TEST_UID,
        Transaction(
            transaction_id=1,
            db_type=TransactionDbType.income,
            transaction_time=NOW - 20 * 86400,
            account_id=1,
            amount=500000,
            category_id=10,
            comment="March salary",
        ),
    )
    source.add_transaction(
        TEST_UID,
        Transaction(
            transaction_id=2,
            db_type=TransactionDbType.expense,
            transaction_time=NOW - 3 * 86400,
            account_id=1,
            amount=8450,
            category_id=20,
        ),
        tag_ids=[101, 100],
    )
    source.add_transaction(
        TEST_UID,
        Transaction(
            transaction_id=3,
            db_type=TransactionDbType.expense,
            transaction_time=NOW - 2 * 86400,
            account_id=1,
            amount=4200,
            category_id=30,
            comment="Dinner with friends",
        ),
    )
    source.add_transaction(
        TEST_UID,
        Transaction(
            transaction_id=4,
            db_type=TransactionDbType.transfer_out,
            transaction_time=NOW - 86400,
            account_id=1,
            amount=10000,
            related_id=5,
            related_account_id=2,
            related_account_amount=9200,
            category_id=40,
        ),
    )
    source.add_transaction(
        TEST_UID,
        Transaction(
            transaction_id=5,
            db_type=TransactionDbType.transfer_in,
            transaction_time=NOW - 86400,
            account_id=2,
            amount=9200,
            related_id=4,
            related_account_id=1,
            related_account_amount=10000,
            category_id=40,
        ),
    )

    return source
