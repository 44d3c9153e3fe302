"""Bank transaction models for categorization and reconciliation."""
from datetime import date
from enum import Enum
from typing import Optional

from pydantic import Field, field_validator

from fincore.models.base import FCBaseModel


class ReconciliationStatus(str, Enum):
    PENDING = "pending"
    MATCHED = "matched"
    IGNORED = "ignored"


class BankTransaction(FCBaseModel):
    id: str = Field(..., min_length=1)
    amount: float
    description: str = ""
    counterparty_name: Optional[str] = None
    counterparty_iban: Optional[str] = None
    execution_date: date
    currency: str = Field(default="EUR", min_length=1, max_length=10)
    reconciliation_status: ReconciliationStatus = ReconciliationStatus.PENDING
    reconciled_invoice_id: Optional[str] = None
    suggested_category: Optional[str] = None
    # 0-100, as stored by the bank-sync subsystem
    confidence_score: Optional[float] = Field(default=None, ge=0, le=100)

    @field_validator("id")
    @classmethod
    def normalize_id(cls, value: str) -> str:
        return value.strip()

    @property
    def is_reconciled(self) -> bool:
        return self.reconciliation_status == ReconciliationStatus.MATCHED

    @property
    def is_ignored(self) -> bool:
        return self.reconciliation_status == ReconciliationStatus.IGNORED

    @property
    def is_expense(self) -> bool:
        return self.amount < 0


class TransactionData(FCBaseModel):
    """The subset of a transaction the categorization tiers look at."""

    description: str = ""
    amount: float = 0.0
    counterparty_name: Optional[str] = None
    counterparty_iban: Optional[str] = None
    execution_date: Optional[date] = None

    @classmethod
    def from_transaction(cls, transaction: BankTransaction) -> "TransactionData":
        return cls(
            description=transaction.description,
            amount=transaction.amount,
            counterparty_name=transaction.counterparty_name,
            counterparty_iban=transaction.counterparty_iban,
            execution_date=transaction.execution_date,
        )

    def match_text(self) -> str:
        return " ".join(part for part in (self.description, self.counterparty_name) if part)
