"""Bookkeeping records consumed by the assistant knowledge base."""

from __future__ import annotations

from enum import IntEnum

from pydantic import BaseModel, ConfigDict, Field


class TransactionDbType(IntEnum):
    """Transaction type as stored, with both legs of a transfer."""

    modify_balance = 1
    income = 2
    expense = 3
    transfer_out = 4
    transfer_in = 5


class TransactionType(IntEnum):
    """Economic transaction type; a transfer is one item regardless of legs."""

    modify_balance = 1
    income = 2
    expense = 3
    transfer = 4


_DB_TYPE_TO_TRANSACTION_TYPE = {
    TransactionDbType.modify_balance: TransactionType.modify_balance,
    TransactionDbType.income: TransactionType.income,
    TransactionDbType.expense: TransactionType.expense,
    TransactionDbType.transfer_out: TransactionType.transfer,
    TransactionDbType.transfer_in: TransactionType.transfer,
}


def to_transaction_type(db_type: int) -> TransactionType:
    """Classify a stored transaction type.

    Raises:
        ValueError: If the stored type is not a known transaction type
    """
    try:
        return _DB_TYPE_TO_TRANSACTION_TYPE[TransactionDbType(db_type)]
    except (KeyError, ValueError) as e:
        raise ValueError(f"unknown transaction db type: {db_type}") from e


class Transaction(BaseModel):
    """One stored transaction row.

    Amounts are integer minor units (cents) of the account currency.
    """

    transaction_id: int = Field(description="Transaction ID")
    db_type: int = Field(description="Stored transaction type (TransactionDbType)")
    transaction_time: int = Field(description="Transaction time as unix seconds")
    account_id: int = Field(description="Account the amount is booked on")
    amount: int = Field(description="Amount in minor units")
    related_id: int = Field(default=0, description="ID of the other transfer leg")
    related_account_id: int = Field(
        default=0, description="Account of the other transfer leg"
    )
    related_account_amount: int = Field(
        default=0, description="Amount of the other transfer leg in minor units"
    )
    category_id: int = Field(default=0, description="Category ID")
    comment: str = Field(default="", description="Free-text comment")

    def to_outbound_leg(self) -> Transaction:
        """Return the transfer-out leg for a transfer-in row, else self."""
        if self.db_type != TransactionDbType.transfer_in:
            return self

        return Transaction(
            transaction_id=self.related_id,
            db_type=TransactionDbType.transfer_out,
            transaction_time=self.transaction_time,
            account_id=self.related_account_id,
            amount=self.related_account_amount,
            related_id=self.transaction_id,
            related_account_id=self.account_id,
            related_account_amount=self.amount,
            category_id=self.category_id,
            comment=self.comment,
        )


class Account(BaseModel):
    """Account record."""

    account_id: int = Field(description="Account ID")
    name: str = Field(description="Account name")
    currency: str = Field(default="", description="ISO currency code")


class TransactionCategory(BaseModel):
    """Transaction category record."""

    category_id: int = Field(description="Category ID")
    name: str = Field(description="Category name")


class TransactionTag(BaseModel):
    """Transaction tag record."""

    tag_id: int = Field(description="Tag ID")
    name: str = Field(description="Tag name")


class KnowledgeLookups(BaseModel):
    """Read-only lookup tables used to describe transactions.

    Built fresh for each request; never shared between requests.
    """

    model_config = ConfigDict(frozen=True)

    accounts: dict[int, Account] = Field(default_factory=dict)
    categories: dict[int, TransactionCategory] = Field(default_factory=dict)
    transaction_tag_ids: dict[int, list[int]] = Field(
        default_factory=dict, description="Tag IDs keyed by (outbound) transaction ID"
    )
    tags: dict[int, TransactionTag] = Field(default_factory=dict)
