"""Convenient imports for all model types."""

# Assistant payloads
from .assistant import (
    AssistantMode,
    ChatRequest,
    ChatResponse,
    HistoryItem,
    ReferencedTransaction,
    StreamChunk,
    StreamChunkType,
)

# Bookkeeping records
from .transaction import (
    Account,
    KnowledgeLookups,
    Transaction,
    TransactionCategory,
    TransactionDbType,
    TransactionTag,
    TransactionType,
    to_transaction_type,
)

__all__ = [
    # Assistant
    "AssistantMode",
    "ChatRequest",
    "ChatResponse",
    "HistoryItem",
    "ReferencedTransaction",
    "StreamChunk",
    "StreamChunkType",
    # Transactions
    "Account",
    "KnowledgeLookups",
    "Transaction",
    "TransactionCategory",
    "TransactionDbType",
    "TransactionTag",
    "TransactionType",
    "to_transaction_type",
]
