"""
Invoice <-> bank transaction matching engine.

Confirming a match writes three records in order (match, invoice, transaction)
and unmatching reverses them (invoice, transaction, match). Each write that
succeeds is registered on a Saga so a later failure can put the earlier
records back before the error is returned.

Duplicate protection has two layers: a fast ``exists`` check here and the
match store's unique (invoice_id, transaction_id) constraint, which is the
one that holds under concurrent confirms.
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from fincore.core.event_bus import EventBus, EventType, publish_quietly
from fincore.core.result import Result
from fincore.models.invoices import Invoice
from fincore.models.matches import (
    AUTO_MATCH_MIN_SCORE,
    BatchItemError,
    BatchOutcome,
    InvoiceTransactionMatch,
    MatchedBy,
    MatchRequest,
)
from fincore.models.transactions import BankTransaction
from fincore.services import status
from fincore.services.errors import (
    BusinessRuleError,
    ErrorCode,
    FincoreError,
    NotFoundError,
    PersistenceError,
    ValidationError,
    from_pydantic,
)
from fincore.services.logging import log_error, log_event
from fincore.services.saga import Saga
from fincore.stores.base import DuplicateMatchError, InvoiceStore, MatchStore, TransactionStore

logger = logging.getLogger(__name__)


def _duplicate(invoice_id: str, transaction_id: str) -> BusinessRuleError:
    return BusinessRuleError(
        ErrorCode.DUPLICATE_MATCH,
        "Invoice and transaction are already matched",
        context={"invoice_id": invoice_id, "transaction_id": transaction_id},
    )


def _require(**fields: Optional[str]) -> Optional[ValidationError]:
    for name, value in fields.items():
        if not value or not str(value).strip():
            return ValidationError(field=name, detail=f"{name} is required", code=ErrorCode.MISSING_FIELD)
    return None


class MatchingEngine:
    """
    Confirms and removes invoice/transaction matches and drives both status machines.

    Usage:
        engine = MatchingEngine(invoice_store, transaction_store, match_store, event_bus=get_event_bus())
        result = await engine.confirm_manual_match("inv_1", "tx_1", user_id="user_1")
        if result.failed:
            raise to_http_exception(result.error)
    """

    def __init__(
        self,
        invoices: InvoiceStore,
        transactions: TransactionStore,
        matches: MatchStore,
        event_bus: Optional[EventBus] = None,
    ) -> None:
        self.invoices = invoices
        self.transactions = transactions
        self.matches = matches
        self.event_bus = event_bus

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------

    async def _store_call(self, operation: str, call: Callable[[], Awaitable[Any]]) -> Result[Any]:
        try:
            return Result.success(await call())
        except Exception as exc:
            log_error(
                "store_call_failed",
                f"Store operation {operation} failed",
                context={"operation": operation},
                exception=exc,
            )
            return Result.failure(PersistenceError(operation, exc))

    async def _load_invoice(self, invoice_id: str) -> Result[Invoice]:
        loaded = await self._store_call("invoice.find_by_id", lambda: self.invoices.find_by_id(invoice_id))
        if loaded.ok and loaded.value is None:
            return Result.failure(NotFoundError("Invoice", invoice_id))
        return loaded

    async def _load_transaction(self, transaction_id: str) -> Result[BankTransaction]:
        loaded = await self._store_call(
            "transaction.find_by_id", lambda: self.transactions.find_by_id(transaction_id)
        )
        if loaded.ok and loaded.value is None:
            return Result.failure(NotFoundError("Transaction", transaction_id))
        return loaded

    # ------------------------------------------------------------------
    # Confirm
    # ------------------------------------------------------------------

    async def confirm_manual_match(
        self,
        invoice_id: str,
        transaction_id: str,
        notes: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Result[InvoiceTransactionMatch]:
        missing = _require(invoice_id=invoice_id, transaction_id=transaction_id)
        if missing:
            return Result.failure(missing)
        return await self._confirm(
            invoice_id,
            transaction_id,
            lambda: InvoiceTransactionMatch.manual(invoice_id, transaction_id, user_id=user_id, notes=notes),
            EventType.INVOICE_MATCHED,
            user_id,
        )

    async def confirm_auto_match(
        self,
        invoice_id: str,
        transaction_id: str,
        match_score: float,
    ) -> Result[InvoiceTransactionMatch]:
        missing = _require(invoice_id=invoice_id, transaction_id=transaction_id)
        if missing:
            return Result.failure(missing)
        if match_score is None or not (0 <= match_score <= 100):
            return Result.failure(
                ValidationError(
                    field="match_score",
                    detail="Match score must be between 0 and 100",
                    code=ErrorCode.INVALID_MATCH_SCORE,
                )
            )
        if match_score < AUTO_MATCH_MIN_SCORE:
            return Result.failure(
                BusinessRuleError(
                    ErrorCode.LOW_CONFIDENCE_SCORE,
                    f"Auto-match requires a score of at least {AUTO_MATCH_MIN_SCORE:g}",
                    context={"match_score": match_score},
                )
            )
        return await self._confirm(
            invoice_id,
            transaction_id,
            lambda: InvoiceTransactionMatch.auto(invoice_id, transaction_id, match_score),
            EventType.INVOICE_AUTO_MATCHED,
            None,
        )

    async def _confirm(
        self,
        invoice_id: str,
        transaction_id: str,
        build_match: Callable[[], InvoiceTransactionMatch],
        event_type: EventType,
        user_id: Optional[str],
    ) -> Result[InvoiceTransactionMatch]:
        loaded_invoice = await self._load_invoice(invoice_id)
        if loaded_invoice.failed:
            return Result.failure(loaded_invoice.error)
        invoice = loaded_invoice.value
        if invoice.is_cancelled:
            return Result.failure(
                BusinessRuleError(
                    ErrorCode.INVOICE_CANCELLED,
                    "Cannot match a cancelled invoice",
                    context={"invoice_id": invoice_id},
                )
            )

        loaded_transaction = await self._load_transaction(transaction_id)
        if loaded_transaction.failed:
            return Result.failure(loaded_transaction.error)
        transaction = loaded_transaction.value
        if transaction.is_reconciled:
            return Result.failure(
                BusinessRuleError(
                    ErrorCode.TRANSACTION_ALREADY_MATCHED,
                    "Transaction is already matched to an invoice",
                    context={
                        "transaction_id": transaction_id,
                        "reconciled_invoice_id": transaction.reconciled_invoice_id,
                    },
                )
            )

        exists = await self._store_call("match.exists", lambda: self.matches.exists(invoice_id, transaction_id))
        if exists.failed:
            return Result.failure(exists.error)
        if exists.value:
            return Result.failure(_duplicate(invoice_id, transaction_id))

        try:
            match = build_match()
        except PydanticValidationError as exc:
            return Result.failure(from_pydantic(exc, default_field="match"))

        paid = status.mark_invoice_paid(invoice)
        if paid.failed:
            return Result.failure(paid.error)
        reconciled = status.reconcile_transaction(transaction, invoice_id)
        if reconciled.failed:
            return Result.failure(reconciled.error)

        saga = Saga("confirm_match", context={"invoice_id": invoice_id, "transaction_id": transaction_id})

        try:
            created = await self.matches.create(match) or match
        except DuplicateMatchError:
            logger.info(f"Unique constraint rejected match {invoice_id}/{transaction_id}")
            return Result.failure(_duplicate(invoice_id, transaction_id))
        except Exception as exc:
            log_error("match_create_failed", "Failed to persist match", context=saga.context, exception=exc)
            return Result.failure(PersistenceError("match.create", exc))
        saga.committed("match.create", lambda: self.matches.delete(created.id))

        written = await self._store_call("invoice.update", lambda: self.invoices.update(paid.value))
        if written.failed:
            await saga.rollback(written.error)
            return Result.failure(written.error)
        saga.committed("invoice.update", lambda: self.invoices.update(invoice))

        written = await self._store_call("transaction.save", lambda: self.transactions.save(reconciled.value))
        if written.failed:
            await saga.rollback(written.error)
            return Result.failure(written.error)

        log_event(
            "match_confirmed",
            f"Matched invoice {invoice_id} to transaction {transaction_id}",
            invoice_id=invoice_id,
            transaction_id=transaction_id,
            match_id=created.id,
            matched_by=created.matched_by.value,
            match_score=created.match_score,
        )
        await publish_quietly(
            self.event_bus,
            event_type,
            {
                "invoice_id": invoice_id,
                "transaction_id": transaction_id,
                "match_id": created.id,
                "match_score": created.match_score,
                "match_confidence": created.match_confidence.value,
                "matched_by": created.matched_by.value,
                "matched_at": created.matched_at.isoformat(),
            },
            user_id=user_id,
        )
        return Result.success(created)

    async def confirm_batch(self, items: Iterable[Union[MatchRequest, Dict[str, Any]]]) -> Result[BatchOutcome]:
        """Confirm each item independently. One failing item never stops the batch."""
        outcome = BatchOutcome()
        for raw in items:
            if isinstance(raw, MatchRequest):
                request = raw
            else:
                try:
                    request = MatchRequest.model_validate(raw)
                except PydanticValidationError as exc:
                    if isinstance(raw, dict):
                        label = f"{raw.get('invoice_id')}/{raw.get('transaction_id')}"
                    else:
                        label = repr(raw)
                    outcome = _tally(outcome, label, Result.failure(from_pydantic(exc, default_field="item")))
                    continue

            if request.matched_by == MatchedBy.SYSTEM:
                result = await self.confirm_auto_match(
                    request.invoice_id, request.transaction_id, request.match_score
                )
            else:
                result = await self.confirm_manual_match(
                    request.invoice_id, request.transaction_id, notes=request.notes, user_id=request.user_id
                )
            outcome = _tally(outcome, f"{request.invoice_id}/{request.transaction_id}", result)

        logger.info(f"Batch confirm: {outcome.succeeded} succeeded, {outcome.failed} failed")
        return Result.success(outcome)

    # ------------------------------------------------------------------
    # Unmatch
    # ------------------------------------------------------------------

    async def unmatch(self, invoice_id: str, transaction_id: str) -> Result[InvoiceTransactionMatch]:
        """Remove a match and return both records to pending. Returns the removed match."""
        missing = _require(invoice_id=invoice_id, transaction_id=transaction_id)
        if missing:
            return Result.failure(missing)

        found = await self._store_call(
            "match.find_by_pair", lambda: self.matches.find_by_pair(invoice_id, transaction_id)
        )
        if found.failed:
            return Result.failure(found.error)
        match = found.value
        if match is None:
            return Result.failure(NotFoundError("Match", f"{invoice_id}/{transaction_id}"))

        loaded_invoice = await self._load_invoice(invoice_id)
        if loaded_invoice.failed:
            return Result.failure(loaded_invoice.error)
        invoice = loaded_invoice.value

        loaded_transaction = await self._load_transaction(transaction_id)
        if loaded_transaction.failed:
            return Result.failure(loaded_transaction.error)
        transaction = loaded_transaction.value

        pending_invoice = status.mark_invoice_pending(invoice)
        if pending_invoice.failed:
            return Result.failure(pending_invoice.error)
        pending_transaction = status.unreconcile_transaction(transaction)
        if pending_transaction.failed:
            return Result.failure(pending_transaction.error)

        saga = Saga("unmatch", context={"invoice_id": invoice_id, "transaction_id": transaction_id})

        written = await self._store_call("invoice.update", lambda: self.invoices.update(pending_invoice.value))
        if written.failed:
            return Result.failure(written.error)
        saga.committed("invoice.update", lambda: self.invoices.update(invoice))

        written = await self._store_call(
            "transaction.save", lambda: self.transactions.save(pending_transaction.value)
        )
        if written.failed:
            await saga.rollback(written.error)
            return Result.failure(written.error)
        saga.committed("transaction.save", lambda: self.transactions.save(transaction))

        deleted = await self._store_call("match.delete", lambda: self.matches.delete(match.id))
        if deleted.failed:
            await saga.rollback(deleted.error)
            return Result.failure(deleted.error)

        log_event(
            "match_removed",
            f"Unmatched invoice {invoice_id} from transaction {transaction_id}",
            invoice_id=invoice_id,
            transaction_id=transaction_id,
            match_id=match.id,
        )
        await publish_quietly(
            self.event_bus,
            EventType.INVOICE_UNMATCHED,
            {"invoice_id": invoice_id, "transaction_id": transaction_id, "match_id": match.id},
        )
        return Result.success(match)

    async def unmatch_by_id(self, match_id: str) -> Result[InvoiceTransactionMatch]:
        missing = _require(match_id=match_id)
        if missing:
            return Result.failure(missing)
        found = await self._store_call("match.find_by_id", lambda: self.matches.find_by_id(match_id))
        if found.failed:
            return Result.failure(found.error)
        if found.value is None:
            return Result.failure(NotFoundError("Match", match_id))
        return await self.unmatch(found.value.invoice_id, found.value.transaction_id)

    async def unmatch_all_for_invoice(self, invoice_id: str) -> Result[BatchOutcome]:
        found = await self._store_call(
            "match.find_by_invoice_id", lambda: self.matches.find_by_invoice_id(invoice_id)
        )
        if found.failed:
            return Result.failure(found.error)
        return Result.success(await self._unmatch_each(found.value))

    async def unmatch_all_for_transaction(self, transaction_id: str) -> Result[BatchOutcome]:
        found = await self._store_call(
            "match.find_by_transaction_id", lambda: self.matches.find_by_transaction_id(transaction_id)
        )
        if found.failed:
            return Result.failure(found.error)
        return Result.success(await self._unmatch_each(found.value))

    async def unmatch_batch(self, match_ids: Iterable[str]) -> Result[BatchOutcome]:
        outcome = BatchOutcome()
        for match_id in match_ids:
            outcome = _tally(outcome, match_id, await self.unmatch_by_id(match_id))
        logger.info(f"Batch unmatch: {outcome.succeeded} succeeded, {outcome.failed} failed")
        return Result.success(outcome)

    async def _unmatch_each(self, found: Iterable[InvoiceTransactionMatch]) -> BatchOutcome:
        outcome = BatchOutcome()
        for match in list(found):
            result = await self.unmatch(match.invoice_id, match.transaction_id)
            outcome = _tally(outcome, match.id, result)
        return outcome

    # ------------------------------------------------------------------
    # Ignore
    # ------------------------------------------------------------------

    async def ignore_transaction(self, transaction_id: str) -> Result[BankTransaction]:
        """Exclude a pending transaction from reconciliation."""
        return await self._set_ignored(transaction_id, status.ignore_transaction, EventType.TRANSACTION_IGNORED)

    async def unignore_transaction(self, transaction_id: str) -> Result[BankTransaction]:
        return await self._set_ignored(
            transaction_id, status.unignore_transaction, EventType.TRANSACTION_UNIGNORED
        )

    async def _set_ignored(
        self,
        transaction_id: str,
        transition: Callable[[BankTransaction], Result[BankTransaction]],
        event_type: EventType,
    ) -> Result[BankTransaction]:
        missing = _require(transaction_id=transaction_id)
        if missing:
            return Result.failure(missing)
        loaded = await self._load_transaction(transaction_id)
        if loaded.failed:
            return Result.failure(loaded.error)

        moved = transition(loaded.value)
        if moved.failed or moved.value is loaded.value:
            return moved

        saved = await self._store_call("transaction.save", lambda: self.transactions.save(moved.value))
        if saved.failed:
            return Result.failure(saved.error)

        logger.info(f"Transaction {transaction_id} is now {moved.value.reconciliation_status.value}")
        await publish_quietly(self.event_bus, event_type, {"transaction_id": transaction_id})
        return Result.success(saved.value or moved.value)


def _tally(outcome: BatchOutcome, item: str, result: Result[Any]) -> BatchOutcome:
    if result.ok:
        return outcome.model_copy(update={"succeeded": outcome.succeeded + 1})
    error: FincoreError = result.error
    logger.warning(f"Batch item {item} failed: {error.code.value} {error.message}")
    return outcome.model_copy(
        update={
            "failed": outcome.failed + 1,
            "errors": [
                *outcome.errors,
                BatchItemError(item=item, code=error.code.value, message=error.message),
            ],
        }
    )
