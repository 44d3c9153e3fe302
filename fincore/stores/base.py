"""Collaborator store interfaces consumed by the categorization and matching engines.

Stores raise on infrastructure failure; the engines turn those exceptions
into persistence failures. Lookups return ``None`` for unknown ids.
"""
from __future__ import annotations

from typing import List, Optional, Protocol

from fincore.models.feedback import FeedbackRecord
from fincore.models.invoices import Invoice
from fincore.models.matches import InvoiceTransactionMatch
from fincore.models.patterns import PatternRule
from fincore.models.transactions import BankTransaction


class DuplicateMatchError(Exception):
    """Raised by a match store when the (invoice_id, transaction_id) pair already exists."""

    def __init__(self, invoice_id: str, transaction_id: str) -> None:
        self.invoice_id = invoice_id
        self.transaction_id = transaction_id
        super().__init__(f"Match already exists for invoice {invoice_id} and transaction {transaction_id}")


class RuleStore(Protocol):
    async def get_active_rules_for_user(self, user_id: str) -> List[PatternRule]: ...

    async def find_by_id(self, rule_id: str) -> Optional[PatternRule]: ...

    async def save(self, rule: PatternRule) -> PatternRule: ...


class FeedbackStore(Protocol):
    async def get_recent_feedback(self, user_id: str, limit: Optional[int] = None) -> List[FeedbackRecord]: ...

    async def save(self, record: FeedbackRecord) -> FeedbackRecord: ...


class InvoiceStore(Protocol):
    async def find_by_id(self, invoice_id: str) -> Optional[Invoice]: ...

    async def update(self, invoice: Invoice) -> Invoice: ...


class TransactionStore(Protocol):
    async def find_by_id(self, transaction_id: str) -> Optional[BankTransaction]: ...

    async def save(self, transaction: BankTransaction) -> BankTransaction: ...


class MatchStore(Protocol):
    async def exists(self, invoice_id: str, transaction_id: str) -> bool: ...

    async def create(self, match: InvoiceTransactionMatch) -> InvoiceTransactionMatch: ...

    async def find_by_id(self, match_id: str) -> Optional[InvoiceTransactionMatch]: ...

    async def find_by_pair(self, invoice_id: str, transaction_id: str) -> Optional[InvoiceTransactionMatch]: ...

    async def find_by_invoice_id(self, invoice_id: str) -> List[InvoiceTransactionMatch]: ...

    async def find_by_transaction_id(self, transaction_id: str) -> List[InvoiceTransactionMatch]: ...

    async def delete(self, match_id: str) -> None: ...
