"""Loading a user's transactions and lookup records for the knowledge base."""

import logging
import time
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import datetime, tzinfo
from typing import Protocol

from backend.app.config import Settings
from backend.app.models.transaction import (
    Account,
    KnowledgeLookups,
    Transaction,
    TransactionCategory,
    TransactionTag,
)

logger = logging.getLogger(__name__)


class TransactionSource(Protocol):
    """Bookkeeping storage the assistant reads from.

    Implemented by the host application; every method is scoped to one user.
    """

    def get_transactions_by_max_time(
        self, uid: int, max_time: int, page: int, count: int
    ) -> list[Transaction]:
        """Return one page (1-based) of transactions at or before max_time, newest first."""
        ...

    def get_accounts(self, uid: int) -> list[Account]: ...

    def get_categories(
        self, uid: int, category_ids: Sequence[int]
    ) -> dict[int, TransactionCategory]: ...

    def get_transaction_tag_ids(
        self, uid: int, transaction_ids: Sequence[int]
    ) -> dict[int, list[int]]: ...

    def get_tags(self, uid: int, tag_ids: Sequence[int]) -> dict[int, TransactionTag]: ...


def get_coverage_start_unix_time(now: int, tz: tzinfo, history_years: int) -> int:
    """Unix time of Jan 1, 00:00 of (current year - history_years) in the caller's zone."""
    current_year = datetime.fromtimestamp(now, tz).year
    return int(datetime(current_year - history_years, 1, 1, tzinfo=tz).timestamp())


def load_knowledge_transactions(
    source: TransactionSource,
    uid: int,
    tz: tzinfo,
    settings: Settings,
    now: int | None = None,
) -> list[Transaction]:
    """Page through the newest transactions until the knowledge window is covered.

    Paging stops when the transaction cap is reached, a page comes back empty
    or short, or the oldest row of a page is at or before the coverage start.

    Returns:
        Transactions, newest first
    """
    if now is None:
        now = int(time.time())

    coverage_start = get_coverage_start_unix_time(now, tz, settings.assistant_history_years)
    max_count = settings.assistant_max_transactions
    transactions: list[Transaction] = []
    page_size = settings.assistant_page_size
    page = 1

    while len(transactions) < max_count:
        page_transactions = source.get_transactions_by_max_time(uid, now, page, page_size)

        if not page_transactions:
            break

        # every page is requested at full size; only the stored slice is capped
        transactions.extend(page_transactions[: max_count - len(transactions)])

        if page_transactions[-1].transaction_time <= coverage_start:
            break

        if len(page_transactions) < page_size:
            break

        page += 1

    logger.debug(f"Loaded {len(transactions)} transactions for user \"uid:{uid}\"")
    return transactions


def build_lookups(
    source: TransactionSource, uid: int, transactions: Sequence[Transaction]
) -> KnowledgeLookups:
    """Fetch the accounts, categories and tags referenced by the transactions.

    Tag ids are keyed by the outbound transaction id so that both legs of a
    transfer share one tag set.
    """
    accounts = {account.account_id: account for account in source.get_accounts(uid)}

    transaction_ids = _unique(t.to_outbound_leg().transaction_id for t in transactions)
    category_ids = _unique(t.category_id for t in transactions)

    categories = source.get_categories(uid, category_ids)
    transaction_tag_ids = source.get_transaction_tag_ids(uid, transaction_ids)

    tag_ids = _unique(tag_id for ids in transaction_tag_ids.values() for tag_id in ids)
    tags = source.get_tags(uid, tag_ids) if tag_ids else {}

    return KnowledgeLookups(
        accounts=accounts,
        categories=categories,
        transaction_tag_ids=transaction_tag_ids,
        tags=tags,
    )


def _unique(values: Iterable[int]) -> list[int]:
    return list(dict.fromkeys(values))


class InMemoryTransactionSource:
    """TransactionSource backed by in-process dictionaries."""

    def __init__(self) -> None:
        self.transactions: dict[int, list[Transaction]] = defaultdict(list)
        self.accounts: dict[int, list[Account]] = defaultdict(list)
        self.categories: dict[int, dict[int, TransactionCategory]] = defaultdict(dict)
        self.tags: dict[int, dict[int, TransactionTag]] = defaultdict(dict)
        self.transaction_tags: dict[int, dict[int, list[int]]] = defaultdict(dict)

    def add_transaction(self, uid: int, transaction: Transaction, tag_ids: Sequence[int] = ()) -> None:
        self.transactions[uid].append(transaction)
        if tag_ids:
            self.transaction_tags[uid][transaction.transaction_id] = list(tag_ids)

    def add_account(self, uid: int, account: Account) -> None:
        self.accounts[uid].append(account)

    def add_category(self, uid: int, category: TransactionCategory) -> None:
        self.categories[uid][category.category_id] = category

    def add_tag(self, uid: int, tag: TransactionTag) -> None:
        self.tags[uid][tag.tag_id] = tag

    def remove_transaction(self, uid: int, transaction_id: int) -> None:
        self.transactions[uid] = [
            t for t in self.transactions[uid] if t.transaction_id != transaction_id
        ]

    def get_transactions_by_max_time(
        self, uid: int, max_time: int, page: int, count: int
    ) -> list[Transaction]:
        if page < 1 or count < 1:
            return []

        rows = [t for t in self.transactions.get(uid, []) if t.transaction_time <= max_time]
        rows.sort(key=lambda t: (t.transaction_time, t.transaction_id), reverse=True)

        offset = (page - 1) * count
        return rows[offset : offset + count]

    def get_accounts(self, uid: int) -> list[Account]:
        return list(self.accounts.get(uid, []))

    def get_categories(
        self, uid: int, category_ids: Sequence[int]
    ) -> dict[int, TransactionCategory]:
        categories = self.categories.get(uid, {})
        return {cid: categories[cid] for cid in category_ids if cid in categories}

    def get_transaction_tag_ids(
        self, uid: int, transaction_ids: Sequence[int]
    ) -> dict[int, list[int]]:
        transaction_tags = self.transaction_tags.get(uid, {})
        return {
            tid: list(transaction_tags[tid]) for tid in transaction_ids if tid in transaction_tags
        }

    def get_tags(self, uid: int, tag_ids: Sequence[int]) -> dict[int, TransactionTag]:
        tags = self.tags.get(uid, {})
        return {tag_id: tags[tag_id] for tag_id in tag_ids if tag_id in tags}
