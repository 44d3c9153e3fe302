from fincore.stores.base import (
    DuplicateMatchError,
    FeedbackStore,
    InvoiceStore,
    MatchStore,
    RuleStore,
    TransactionStore,
)
from fincore.stores.memory import (
    InMemoryFeedbackStore,
    InMemoryInvoiceStore,
    InMemoryMatchStore,
    InMemoryRuleStore,
    InMemoryTransactionStore,
)

__all__ = [
    "DuplicateMatchError",
    "FeedbackStore",
    "InMemoryFeedbackStore",
    "InMemoryInvoiceStore",
    "InMemoryMatchStore",
    "InMemoryRuleStore",
    "InMemoryTransactionStore",
    "InvoiceStore",
    "MatchStore",
    "RuleStore",
    "TransactionStore",
]
