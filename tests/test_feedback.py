import asyncio

import pytest

from fincore.core.event_bus import EventBus, EventType
from fincore.models.feedback import FeedbackKind
from fincore.services.errors import ErrorKind
from fincore.services.feedback import (
    FeedbackRecorder,
    classify_feedback,
    confidence_tier,
    create_confirmed,
    create_corrected,
    create_rejected,
    is_high_value,
    training_weight,
)
from fincore.stores.memory import InMemoryFeedbackStore


class _FailingFeedbackStore:
    async def get_recent_feedback(self, user_id, limit=None):
        return []

    async def save(self, record):
        raise RuntimeError("disk full")


class _ExplodingBus(EventBus):
    async def publish(self, event):
        raise RuntimeError("sink down")


def test_classification_examples():
    assert classify_feedback(None, "groceries") == FeedbackKind.REJECTED
    assert classify_feedback("", "groceries") == FeedbackKind.REJECTED
    assert classify_feedback("groceries", "groceries") == FeedbackKind.CONFIRMED
    assert classify_feedback("dining", "groceries") == FeedbackKind.CORRECTED
    assert classify_feedback("dining ", " dining") == FeedbackKind.CONFIRMED
    assert classify_feedback("   ", "dining") == FeedbackKind.REJECTED


def test_training_weights():
    confirmed = create_confirmed("u", "t", "groceries", confidence=0.1).unwrap()
    corrected = create_corrected("u", "t", "dining", "groceries", confidence=0.8).unwrap()
    rejected = create_rejected("u", "t", "groceries", confidence=0.9).unwrap()
    no_confidence = create_confirmed("u", "t", "groceries").unwrap()

    assert training_weight(confirmed) == pytest.approx(1.9)
    assert training_weight(corrected) == pytest.approx(1.8)
    assert training_weight(rejected) == 1.0
    assert training_weight(no_confidence) == 1.0


@pytest.mark.parametrize(
    "record, weight",
    [
        (create_corrected("u", "t", "dining", "groceries", confidence=0.9).unwrap(), 1.9),
        (create_confirmed("u", "t", "groceries", confidence=0.2).unwrap(), 1.8),
    ],
)
def test_training_weight_reference_values(record, weight):
    assert training_weight(record) == pytest.approx(weight)


def test_zero_confidence_counts_as_a_confidence():
    confirmed = create_confirmed("u", "t", "groceries", confidence=0.0).unwrap()
    assert training_weight(confirmed) == pytest.approx(2.0)
    assert confidence_tier(confirmed) == "low"


def test_high_value_flag():
    assert is_high_value(create_corrected("u", "t", "dining", "groceries", confidence=0.85).unwrap())
    assert is_high_value(create_confirmed("u", "t", "groceries", confidence=0.4).unwrap())
    assert not is_high_value(create_confirmed("u", "t", "groceries", confidence=0.9).unwrap())
    assert not is_high_value(create_corrected("u", "t", "dining", "groceries", confidence=0.7).unwrap())
    assert not is_high_value(create_rejected("u", "t", "groceries").unwrap())


def test_confidence_tiers():
    assert confidence_tier(create_confirmed("u", "t", "x", confidence=0.8).unwrap()) == "high"
    assert confidence_tier(create_confirmed("u", "t", "x", confidence=0.5).unwrap()) == "medium"
    assert confidence_tier(create_confirmed("u", "t", "x").unwrap()) == "none"


def test_factories_enforce_kind_invariants():
    assert create_corrected("u", "t", "groceries", "groceries").failed
    assert create_confirmed("u", "t", "groceries", confidence=1.2).failed
    failed = create_rejected("u", "t", "groceries", confidence=-0.5)
    assert failed.error.kind == ErrorKind.VALIDATION


class TestFeedbackRecorder:
    def test_records_and_publishes(self):
        store = InMemoryFeedbackStore()
        bus = EventBus()
        seen = []

        async def handler(event):
            seen.append(event)

        bus.subscribe(EventType.FEEDBACK_PROVIDED, handler)
        recorder = FeedbackRecorder(store, event_bus=bus)

        result = asyncio.run(recorder.record_feedback("user_1", "tx_1", "dining", "groceries", 0.9))

        assert result.ok
        assert result.value.feedback_kind == FeedbackKind.CORRECTED
        stored = asyncio.run(store.get_recent_feedback("user_1"))
        assert [r.id for r in stored] == [result.value.id]
        assert len(seen) == 1
        assert seen[0].data["feedback_kind"] == "corrected"
        assert seen[0].data["is_high_value"] is True

    def test_missing_suggestion_is_rejected_kind(self):
        recorder = FeedbackRecorder(InMemoryFeedbackStore())
        result = asyncio.run(recorder.record_feedback("user_1", "tx_1", None, "groceries"))
        assert result.value.feedback_kind == FeedbackKind.REJECTED
        assert result.value.suggested_category is None

    def test_padded_suggestion_is_confirmed(self):
        recorder = FeedbackRecorder(InMemoryFeedbackStore())
        result = asyncio.run(recorder.record_feedback("user_1", "tx_1", "dining ", "dining", 0.9))
        assert result.ok
        assert result.value.feedback_kind == FeedbackKind.CONFIRMED
        assert result.value.suggested_category == "dining"

    def test_blank_suggestion_is_rejected_kind(self):
        recorder = FeedbackRecorder(InMemoryFeedbackStore())
        result = asyncio.run(recorder.record_feedback("user_1", "tx_1", "   ", "dining"))
        assert result.ok
        assert result.value.feedback_kind == FeedbackKind.REJECTED
        assert result.value.suggested_category is None

    def test_missing_actual_category_is_validation_failure(self):
        recorder = FeedbackRecorder(InMemoryFeedbackStore())
        result = asyncio.run(recorder.record_feedback("user_1", "tx_1", "dining", ""))
        assert result.failed
        assert result.error.context["field"] == "actual_category"

    def test_save_failure_is_persistence_failure(self):
        recorder = FeedbackRecorder(_FailingFeedbackStore())
        result = asyncio.run(recorder.record_feedback("user_1", "tx_1", "groceries", "groceries"))
        assert result.failed
        assert result.error.kind == ErrorKind.PERSISTENCE
        assert isinstance(result.error.__cause__, RuntimeError)

    def test_publish_failure_does_not_fail_recording(self):
        store = InMemoryFeedbackStore()
        recorder = FeedbackRecorder(store, event_bus=_ExplodingBus())
        result = asyncio.run(recorder.record_feedback("user_1", "tx_1", "groceries", "groceries", 0.95))
        assert result.ok
        assert len(asyncio.run(store.get_recent_feedback("user_1"))) == 1
