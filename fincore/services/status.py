"""Invoice and bank-transaction status machines and transition helpers."""
from __future__ import annotations

from typing import Dict, Optional

from fincore.core.result import Result
from fincore.models.invoices import Invoice, InvoiceStatus
from fincore.models.transactions import BankTransaction, ReconciliationStatus
from fincore.services.errors import BusinessRuleError, ErrorCode


INVOICE_TRANSITIONS: Dict[InvoiceStatus, set[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: {InvoiceStatus.PENDING, InvoiceStatus.PAID, InvoiceStatus.CANCELLED},
    InvoiceStatus.PENDING: {InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED},
    InvoiceStatus.OVERDUE: {InvoiceStatus.PAID, InvoiceStatus.PENDING, InvoiceStatus.CANCELLED},
    InvoiceStatus.PAID: {InvoiceStatus.PENDING},  # reopened by unmatch
    InvoiceStatus.CANCELLED: set(),
}


TRANSACTION_TRANSITIONS: Dict[ReconciliationStatus, set[ReconciliationStatus]] = {
    ReconciliationStatus.PENDING: {ReconciliationStatus.MATCHED, ReconciliationStatus.IGNORED},
    ReconciliationStatus.MATCHED: {ReconciliationStatus.PENDING},
    ReconciliationStatus.IGNORED: {ReconciliationStatus.PENDING, ReconciliationStatus.MATCHED},
}


def can_transition_invoice(from_status: InvoiceStatus, to_status: InvoiceStatus) -> bool:
    if from_status == to_status:
        return True
    return to_status in INVOICE_TRANSITIONS.get(from_status, set())


def can_transition_transaction(from_status: ReconciliationStatus, to_status: ReconciliationStatus) -> bool:
    if from_status == to_status:
        return True
    return to_status in TRANSACTION_TRANSITIONS.get(from_status, set())


def _invalid(entity: str, entity_id: str, from_status: str, to_status: str) -> BusinessRuleError:
    return BusinessRuleError(
        ErrorCode.INVALID_TRANSITION,
        f"Invalid {entity} transition: {from_status} -> {to_status}",
        context={"id": entity_id, "from": from_status, "to": to_status},
    )


def transition_invoice(invoice: Invoice, to_status: InvoiceStatus) -> Result[Invoice]:
    if invoice.status == to_status:
        return Result.success(invoice)
    if not can_transition_invoice(invoice.status, to_status):
        return Result.failure(_invalid("invoice", invoice.id, invoice.status.value, to_status.value))
    return Result.success(invoice.model_copy(update={"status": to_status}))


def mark_invoice_paid(invoice: Invoice) -> Result[Invoice]:
    return transition_invoice(invoice, InvoiceStatus.PAID)


def mark_invoice_pending(invoice: Invoice) -> Result[Invoice]:
    return transition_invoice(invoice, InvoiceStatus.PENDING)


def _transition_transaction(
    transaction: BankTransaction,
    to_status: ReconciliationStatus,
    invoice_id: Optional[str] = None,
) -> Result[BankTransaction]:
    from_status = transaction.reconciliation_status
    if from_status != to_status and not can_transition_transaction(from_status, to_status):
        return Result.failure(
            _invalid("transaction", transaction.id, from_status.value, to_status.value)
        )
    if from_status == to_status and transaction.reconciled_invoice_id == invoice_id:
        return Result.success(transaction)
    return Result.success(
        transaction.model_copy(
            update={"reconciliation_status": to_status, "reconciled_invoice_id": invoice_id}
        )
    )


def reconcile_transaction(transaction: BankTransaction, invoice_id: str) -> Result[BankTransaction]:
    """pending/ignored -> matched, linked to ``invoice_id``."""
    return _transition_transaction(transaction, ReconciliationStatus.MATCHED, invoice_id)


def unreconcile_transaction(transaction: BankTransaction) -> Result[BankTransaction]:
    """matched -> pending, link cleared."""
    return _transition_transaction(transaction, ReconciliationStatus.PENDING)


def ignore_transaction(transaction: BankTransaction) -> Result[BankTransaction]:
    if transaction.is_reconciled:
        return Result.failure(
            BusinessRuleError(
                ErrorCode.TRANSACTION_IS_RECONCILED,
                "Cannot ignore a reconciled transaction",
                context={"transaction_id": transaction.id},
            )
        )
    return _transition_transaction(transaction, ReconciliationStatus.IGNORED)


def unignore_transaction(transaction: BankTransaction) -> Result[BankTransaction]:
    if transaction.is_reconciled:
        return Result.failure(
            BusinessRuleError(
                ErrorCode.TRANSACTION_IS_RECONCILED,
                "Transaction is reconciled, not ignored",
                context={"transaction_id": transaction.id},
            )
        )
    return _transition_transaction(transaction, ReconciliationStatus.PENDING)
