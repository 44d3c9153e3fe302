import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest

from fincore.models.feedback import FeedbackKind, FeedbackRecord
from fincore.models.invoices import Invoice, InvoiceStatus
from fincore.models.matches import InvoiceTransactionMatch
from fincore.models.patterns import PatternKind, PatternRule
from fincore.models.transactions import BankTransaction
from fincore.services.errors import ErrorCode
from fincore.services.matching import MatchingEngine
from fincore.services.rule_matcher import deactivate_rule
from fincore.stores.base import DuplicateMatchError
from fincore.stores.memory import InMemoryInvoiceStore, InMemoryTransactionStore
from fincore.stores.sqlite import SQLiteFeedbackStore, SQLiteMatchStore, SQLiteRuleStore


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "fincore.sqlite3")


def test_rule_store_round_trip_and_active_filter(db_path):
    store = SQLiteRuleStore(db_path)
    rule = PatternRule(
        user_id="user_1",
        pattern="netflix",
        pattern_kind=PatternKind.CONTAINS,
        category="entertainment",
        confidence=0.8,
        priority=3,
        metadata={"origin": "import"},
    )
    other = PatternRule(user_id="user_1", pattern="rent", pattern_kind="exact", category="housing")
    asyncio.run(store.save(rule))
    asyncio.run(store.save(other))

    loaded = asyncio.run(store.find_by_id(rule.id))
    assert loaded == rule

    asyncio.run(store.save(deactivate_rule(other).unwrap()))
    active = asyncio.run(store.get_active_rules_for_user("user_1"))
    assert [r.id for r in active] == [rule.id]
    assert asyncio.run(store.get_active_rules_for_user("user_2")) == []


def test_feedback_store_returns_most_recent_first(db_path):
    store = SQLiteFeedbackStore(db_path)
    base = datetime(2025, 1, 1, tzinfo=timezone.utc)
    for i in range(5):
        asyncio.run(
            store.save(
                FeedbackRecord(
                    user_id="user_1",
                    transaction_id=f"tx_{i}",
                    actual_category=f"cat_{i}",
                    feedback_kind=FeedbackKind.REJECTED,
                    created_at=base + timedelta(hours=i),
                )
            )
        )

    recent = asyncio.run(store.get_recent_feedback("user_1", limit=2))
    assert [r.actual_category for r in recent] == ["cat_4", "cat_3"]
    assert len(asyncio.run(store.get_recent_feedback("user_1"))) == 5


def test_match_store_unique_pair(db_path):
    store = SQLiteMatchStore(db_path)
    first = InvoiceTransactionMatch.manual("inv_1", "tx_1", user_id="user_1")
    asyncio.run(store.create(first))

    with pytest.raises(DuplicateMatchError):
        asyncio.run(store.create(InvoiceTransactionMatch.auto("inv_1", "tx_1", 95)))

    assert asyncio.run(store.exists("inv_1", "tx_1"))
    assert asyncio.run(store.find_by_id(first.id)) == first
    assert [m.id for m in asyncio.run(store.find_by_invoice_id("inv_1"))] == [first.id]
    assert [m.id for m in asyncio.run(store.find_by_transaction_id("tx_1"))] == [first.id]

    asyncio.run(store.delete(first.id))
    assert asyncio.run(store.find_by_pair("inv_1", "tx_1")) is None


def test_failed_insert_does_not_lock_the_database(db_path):
    store = SQLiteMatchStore(db_path)
    asyncio.run(store.create(InvoiceTransactionMatch.manual("inv_1", "tx_1")))

    with pytest.raises(DuplicateMatchError) as held:
        asyncio.run(store.create(InvoiceTransactionMatch.manual("inv_1", "tx_1")))

    # keep the exception (and its traceback) alive while writing again
    assert held.value.invoice_id == "inv_1"
    second = InvoiceTransactionMatch.manual("inv_2", "tx_2")
    asyncio.run(store.create(second))
    asyncio.run(store.delete(second.id))
    assert asyncio.run(store.find_by_pair("inv_2", "tx_2")) is None


def test_engine_on_sqlite_matches(db_path):
    engine = MatchingEngine(
        InMemoryInvoiceStore([Invoice(id="inv_1", status=InvoiceStatus.PENDING)]),
        InMemoryTransactionStore(
            [BankTransaction(id="tx_1", amount=-50, execution_date=date(2025, 3, 1))]
        ),
        SQLiteMatchStore(db_path),
    )
    assert asyncio.run(engine.confirm_auto_match("inv_1", "tx_1", 97.5)).ok
    again = asyncio.run(engine.unmatch("inv_1", "tx_1"))
    assert again.ok
    assert asyncio.run(engine.unmatch("inv_1", "tx_1")).error.code == ErrorCode.NOT_FOUND
