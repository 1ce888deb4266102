"""Financial snapshot over the whole knowledge base for prompt grounding."""

import time
from collections.abc import Sequence
from datetime import tzinfo

from pydantic import BaseModel

from backend.app.knowledge.types import KnowledgeItem
from backend.app.models.transaction import TransactionType
from backend.app.utils.formatting import (
    format_amount,
    format_long_datetime,
    format_year_month,
)

NO_DATA_SNAPSHOT = "No available bill data."
UNKNOWN_CURRENCY = "UNKNOWN"
UNCATEGORIZED = "Uncategorized"
TOP_EXPENSE_CATEGORY_COUNT = 5


class CurrencyOverview(BaseModel):
    """Cash flow totals for one currency, in minor units."""

    income: int = 0
    expense: int = 0
    transfer_out: int = 0
    transfer_in: int = 0

    @property
    def net(self) -> int:
        return self.income - self.expense


class ExpenseCategoryOverview(BaseModel):
    """Expense total for one (currency, category) pair."""

    category_name: str
    currency: str
    amount: int = 0


def build_financial_snapshot(
    items: Sequence[KnowledgeItem],
    tz: tzinfo,
    now: int | None = None,
) -> str:
    """Summarize cash flow and top expense categories over all items.

    Args:
        items: Every knowledge item of the request, not only retrieved ones
        tz: Caller's timezone; decides the current calendar month
        now: Current unix time (defaults to the wall clock)

    Returns:
        Deterministic multi-line summary, or a "no data" sentence when empty
    """
    if not items:
        return NO_DATA_SNAPSHOT

    if now is None:
        now = int(time.time())

    current_year_month = format_year_month(now, tz)
    overall: dict[str, CurrencyOverview] = {}
    this_month: dict[str, CurrencyOverview] = {}
    expense_categories: dict[tuple[str, str], ExpenseCategoryOverview] = {}

    oldest_time = min(item.reference.time for item in items)
    latest_time = max(item.reference.time for item in items)

    for item in items:
        reference = item.reference
        currency = reference.currency or UNKNOWN_CURRENCY
        in_current_month = format_year_month(reference.time, tz) == current_year_month

        overall_entry = overall.setdefault(currency, CurrencyOverview())
        month_entry = this_month.setdefault(currency, CurrencyOverview()) if in_current_month else None

        if reference.type == TransactionType.income:
            overall_entry.income += reference.source_amount
            if month_entry is not None:
                month_entry.income += reference.source_amount

        elif reference.type == TransactionType.expense:
            overall_entry.expense += reference.source_amount
            if month_entry is not None:
                month_entry.expense += reference.source_amount

            category_name = reference.category_name or UNCATEGORIZED
            category_entry = expense_categories.setdefault(
                (currency, category_name),
                ExpenseCategoryOverview(category_name=category_name, currency=currency),
            )
            category_entry.amount += reference.source_amount

        elif reference.type == TransactionType.transfer:
            overall_entry.transfer_out += reference.source_amount
            if month_entry is not None:
                month_entry.transfer_out += reference.source_amount

            destination_currency = reference.destination_currency
            if destination_currency:
                overall.setdefault(destination_currency, CurrencyOverview()).transfer_in += (
                    reference.destination_amount
                )
                if in_current_month:
                    this_month.setdefault(
                        destination_currency, CurrencyOverview()
                    ).transfer_in += reference.destination_amount

    lines = [
        f"Transaction count: {len(items)}",
        f"Date range: {format_long_datetime(oldest_time, tz)} ~ {format_long_datetime(latest_time, tz)}",
        "Overall cash flow by currency:",
        *_currency_overview_lines(overall),
        "This month cash flow by currency:",
        *_currency_overview_lines(this_month),
        "Top expense categories:",
        *_top_expense_category_lines(expense_categories, TOP_EXPENSE_CATEGORY_COUNT),
    ]
    return "\n".join(lines)


def _currency_overview_lines(overviews: dict[str, CurrencyOverview]) -> list[str]:
    if not overviews:
        return ["- No data"]

    return [
        f"- {currency}: income {format_amount(overview.income)}"
        f", expense {format_amount(overview.expense)}"
        f", net {format_amount(overview.net)}"
        f", transfer_out {format_amount(overview.transfer_out)}"
        f", transfer_in {format_amount(overview.transfer_in)}"
        for currency, overview in sorted(overviews.items())
    ]


def _top_expense_category_lines(
    categories: dict[tuple[str, str], ExpenseCategoryOverview], limit: int
) -> list[str]:
    if not categories:
        return ["- No expense data"]

    # sorted() is stable: ties keep first-occurrence order
    top = sorted(categories.values(), key=lambda c: c.amount, reverse=True)[:limit]
    return [
        f"- {category.category_name} ({category.currency}): {format_amount(category.amount)}"
        for category in top
    ]
