import asyncio
from datetime import date

from fincore.models.invoices import Invoice, InvoiceStatus
from fincore.models.transactions import BankTransaction, ReconciliationStatus
from fincore.services import status
from fincore.services.errors import ErrorCode
from fincore.services.saga import Saga


def _transaction(state=ReconciliationStatus.PENDING, invoice_id=None):
    return BankTransaction(
        id="tx_1",
        amount=10,
        execution_date=date(2025, 1, 1),
        reconciliation_status=state,
        reconciled_invoice_id=invoice_id,
    )


def test_invoice_transition_table():
    assert status.can_transition_invoice(InvoiceStatus.DRAFT, InvoiceStatus.PAID)
    assert status.can_transition_invoice(InvoiceStatus.OVERDUE, InvoiceStatus.PENDING)
    assert status.can_transition_invoice(InvoiceStatus.PAID, InvoiceStatus.PENDING)
    assert not status.can_transition_invoice(InvoiceStatus.PAID, InvoiceStatus.CANCELLED)
    for target in InvoiceStatus:
        if target != InvoiceStatus.CANCELLED:
            assert not status.can_transition_invoice(InvoiceStatus.CANCELLED, target)


def test_invalid_invoice_transition_is_business_failure():
    invoice = Invoice(id="inv_1", status=InvoiceStatus.CANCELLED)
    result = status.mark_invoice_paid(invoice)
    assert result.error.code == ErrorCode.INVALID_TRANSITION
    assert invoice.status == InvoiceStatus.CANCELLED


def test_same_state_is_noop():
    invoice = Invoice(id="inv_1", status=InvoiceStatus.PAID)
    assert status.mark_invoice_paid(invoice).unwrap() is invoice


def test_transaction_reconcile_and_unreconcile():
    matched = status.reconcile_transaction(_transaction(), "inv_1").unwrap()
    assert matched.reconciliation_status == ReconciliationStatus.MATCHED
    assert matched.reconciled_invoice_id == "inv_1"

    pending = status.unreconcile_transaction(matched).unwrap()
    assert pending.reconciliation_status == ReconciliationStatus.PENDING
    assert pending.reconciled_invoice_id is None


def test_ignored_transaction_can_go_straight_to_matched():
    ignored = _transaction(ReconciliationStatus.IGNORED)
    assert status.reconcile_transaction(ignored, "inv_1").ok


def test_matched_cannot_be_ignored():
    matched = _transaction(ReconciliationStatus.MATCHED, "inv_1")
    assert status.ignore_transaction(matched).error.code == ErrorCode.TRANSACTION_IS_RECONCILED


def test_saga_compensates_in_reverse_and_survives_failures():
    calls = []

    async def undo(name):
        calls.append(name)

    async def broken():
        calls.append("broken")
        raise RuntimeError("cannot undo")

    saga = Saga("test")
    saga.committed("first", lambda: undo("first"))
    saga.committed("second", broken)
    saga.committed("third", lambda: undo("third"))

    failed = asyncio.run(saga.rollback(RuntimeError("boom")))

    assert calls == ["third", "broken", "first"]
    assert failed == ["second"]
    assert saga.steps == []
