"""In-memory stores keyed by id. Used by tests and single-process callers."""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from fincore.models.feedback import FeedbackRecord
from fincore.models.invoices import Invoice
from fincore.models.matches import InvoiceTransactionMatch
from fincore.models.patterns import PatternRule
from fincore.models.transactions import BankTransaction
from fincore.stores.base import DuplicateMatchError


class InMemoryRuleStore:
    def __init__(self, rules: Iterable[PatternRule] = ()) -> None:
        self._rules: Dict[str, PatternRule] = {rule.id: rule for rule in rules}

    async def get_active_rules_for_user(self, user_id: str) -> List[PatternRule]:
        return [r for r in self._rules.values() if r.user_id == user_id and r.is_active]

    async def find_by_id(self, rule_id: str) -> Optional[PatternRule]:
        return self._rules.get(rule_id)

    async def save(self, rule: PatternRule) -> PatternRule:
        self._rules[rule.id] = rule
        return rule


class InMemoryFeedbackStore:
    def __init__(self, records: Iterable[FeedbackRecord] = ()) -> None:
        self._records: List[FeedbackRecord] = list(records)

    async def get_recent_feedback(self, user_id: str, limit: Optional[int] = None) -> List[FeedbackRecord]:
        mine = [r for r in self._records if r.user_id == user_id]
        mine.sort(key=lambda r: r.created_at, reverse=True)
        return mine[:limit] if limit is not None else mine

    async def save(self, record: FeedbackRecord) -> FeedbackRecord:
        self._records.append(record)
        return record


class InMemoryInvoiceStore:
    def __init__(self, invoices: Iterable[Invoice] = ()) -> None:
        self._invoices: Dict[str, Invoice] = {inv.id: inv for inv in invoices}

    async def find_by_id(self, invoice_id: str) -> Optional[Invoice]:
        return self._invoices.get(invoice_id)

    async def update(self, invoice: Invoice) -> Invoice:
        self._invoices[invoice.id] = invoice
        return invoice


class InMemoryTransactionStore:
    def __init__(self, transactions: Iterable[BankTransaction] = ()) -> None:
        self._transactions: Dict[str, BankTransaction] = {t.id: t for t in transactions}

    async def find_by_id(self, transaction_id: str) -> Optional[BankTransaction]:
        return self._transactions.get(transaction_id)

    async def save(self, transaction: BankTransaction) -> BankTransaction:
        self._transactions[transaction.id] = transaction
        return transaction


class InMemoryMatchStore:
    def __init__(self) -> None:
        self._matches: Dict[str, InvoiceTransactionMatch] = {}

    async def exists(self, invoice_id: str, transaction_id: str) -> bool:
        return await self.find_by_pair(invoice_id, transaction_id) is not None

    async def create(self, match: InvoiceTransactionMatch) -> InvoiceTransactionMatch:
        if await self.find_by_pair(match.invoice_id, match.transaction_id) is not None:
            raise DuplicateMatchError(match.invoice_id, match.transaction_id)
        self._matches[match.id] = match
        return match

    async def find_by_id(self, match_id: str) -> Optional[InvoiceTransactionMatch]:
        return self._matches.get(match_id)

    async def find_by_pair(self, invoice_id: str, transaction_id: str) -> Optional[InvoiceTransactionMatch]:
        for match in self._matches.values():
            if match.invoice_id == invoice_id and match.transaction_id == transaction_id:
                return match
        return None

    async def find_by_invoice_id(self, invoice_id: str) -> List[InvoiceTransactionMatch]:
        return [m for m in self._matches.values() if m.invoice_id == invoice_id]

    async def find_by_transaction_id(self, transaction_id: str) -> List[InvoiceTransactionMatch]:
        return [m for m in self._matches.values() if m.transaction_id == transaction_id]

    async def delete(self, match_id: str) -> None:
        self._matches.pop(match_id, None)
