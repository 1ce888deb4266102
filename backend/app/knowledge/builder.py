"""Turn bookkeeping records into hashed knowledge items."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from datetime import tzinfo

from backend.app.knowledge.types import KnowledgeItem
from backend.app.models.assistant import ReferencedTransaction
from backend.app.models.transaction import (
    KnowledgeLookups,
    Transaction,
    TransactionDbType,
    TransactionType,
    to_transaction_type,
)
from backend.app.utils.formatting import format_amount, format_long_datetime


def compute_content_hash(text: str) -> str:
    """Compute the SHA-256 hex digest of a knowledge item's canonical text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def transaction_type_text(transaction_type: TransactionType) -> str:
    """Return the word used for a transaction type in canonical text."""
    if transaction_type == TransactionType.expense:
        return "expense"
    if transaction_type == TransactionType.income:
        return "income"
    if transaction_type == TransactionType.transfer:
        return "transfer"
    return "unknown"


def build_knowledge_text(reference: ReferencedTransaction) -> str:
    """Render a referenced transaction as canonical knowledge text.

    Field order is fixed; any change here changes every content hash and
    invalidates the whole embedding cache.
    """
    lines = [
        f"transaction_id: {reference.id}",
        f"time: {reference.time_text}",
        f"type: {transaction_type_text(reference.type)}",
        f"source_account: {reference.source_account_name}",
        f"source_amount: {format_amount(reference.source_amount)}",
        f"source_currency: {reference.currency}",
        f"category: {reference.category_name}",
    ]

    if reference.type == TransactionType.transfer:
        lines.append(f"destination_account: {reference.destination_account_name}")
        lines.append(f"destination_amount: {format_amount(reference.destination_amount)}")
        lines.append(f"destination_currency: {reference.destination_currency}")

    if reference.tags:
        lines.append(f"tags: {', '.join(reference.tags)}")

    if reference.comment:
        lines.append(f"comment: {reference.comment}")

    return "\n".join(lines)


def build_reference(
    transaction: Transaction,
    transaction_type: TransactionType,
    lookups: KnowledgeLookups,
    tz: tzinfo,
) -> ReferencedTransaction:
    """Denormalize a transaction into the citation view."""
    source_account = lookups.accounts.get(transaction.account_id)
    destination_account = lookups.accounts.get(transaction.related_account_id)
    category = lookups.categories.get(transaction.category_id)

    tag_names = []
    for tag_id in lookups.transaction_tag_ids.get(transaction.transaction_id, []):
        tag = lookups.tags.get(tag_id)
        if tag is not None:
            tag_names.append(tag.name)
    tag_names.sort()

    destination_amount = 0
    if transaction.db_type == TransactionDbType.transfer_out:
        destination_amount = transaction.related_account_amount

    return ReferencedTransaction(
        id=transaction.transaction_id,
        time=transaction.transaction_time,
        time_text=format_long_datetime(transaction.transaction_time, tz),
        type=transaction_type,
        category_name=category.name if category else "",
        source_account_name=source_account.name if source_account else "",
        destination_account_name=destination_account.name if destination_account else "",
        source_amount=transaction.amount,
        destination_amount=destination_amount,
        currency=source_account.currency if source_account else "",
        destination_currency=destination_account.currency if destination_account else "",
        tags=tag_names,
        comment=transaction.comment,
    )


def build_knowledge_items(
    transactions: Iterable[Transaction],
    lookups: KnowledgeLookups,
    tz: tzinfo,
) -> list[KnowledgeItem]:
    """Build one knowledge item per classifiable transaction.

    Transfer-in rows are replaced by their outbound leg, so a transfer yields
    a single item keyed by the outbound transaction ID even when both legs are
    present. Rows whose type cannot be classified are skipped.

    Args:
        transactions: Transactions, newest first
        lookups: Accounts, categories and tags for this request
        tz: Caller's timezone for time text

    Returns:
        Knowledge items in input order
    """
    items: list[KnowledgeItem] = []
    seen_ids: set[int] = set()

    for transaction in transactions:
        transaction = transaction.to_outbound_leg()

        # both legs of a transfer may be present
        if transaction.transaction_id in seen_ids:
            continue

        try:
            transaction_type = to_transaction_type(transaction.db_type)
        except ValueError:
            continue

        seen_ids.add(transaction.transaction_id)
        reference = build_reference(transaction, transaction_type, lookups, tz)
        text = build_knowledge_text(reference)
        items.append(
            KnowledgeItem(
                reference=reference,
                text=text,
                content_hash=compute_content_hash(text),
            )
        )

    return items
