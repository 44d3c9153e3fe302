from fincore.models.base import FCBaseModel
from fincore.models.patterns import PatternKind, PatternRule, RuleSource
from fincore.models.feedback import FeedbackKind, FeedbackRecord
from fincore.models.transactions import BankTransaction, ReconciliationStatus, TransactionData
from fincore.models.invoices import Invoice, InvoiceStatus
from fincore.models.matches import (
    BatchItemError,
    BatchOutcome,
    InvoiceTransactionMatch,
    MatchConfidence,
    MatchedBy,
    MatchRequest,
)
from fincore.models.categorization import Suggestion, SuggestionSource, TrainingSummary

__all__ = [
    "BankTransaction",
    "BatchItemError",
    "BatchOutcome",
    "FCBaseModel",
    "FeedbackKind",
    "FeedbackRecord",
    "Invoice",
    "InvoiceStatus",
    "InvoiceTransactionMatch",
    "MatchConfidence",
    "MatchedBy",
    "MatchRequest",
    "PatternKind",
    "PatternRule",
    "ReconciliationStatus",
    "RuleSource",
    "Suggestion",
    "SuggestionSource",
    "TrainingSummary",
    "TransactionData",
]
