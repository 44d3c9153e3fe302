"""
Feedback Recorder

Turns a user's reaction to a category suggestion into training data:
- no suggestion was shown -> rejected
- suggestion kept -> confirmed
- suggestion changed -> corrected

The analytics below (training weight, high-value flag, confidence tier) are
computed on read and never persisted.
"""
from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from fincore.core.event_bus import EventBus, EventType, publish_quietly
from fincore.core.result import Result
from fincore.models.feedback import FeedbackKind, FeedbackRecord
from fincore.services.errors import PersistenceError, ValidationError, from_pydantic
from fincore.services.logging import log_error
from fincore.stores.base import FeedbackStore

logger = logging.getLogger(__name__)

HIGH_VALUE_CONFIDENCE = 0.8
LOW_VALUE_CONFIDENCE = 0.6


def _clean(category: Optional[str]) -> Optional[str]:
    if category is None:
        return None
    return category.strip() or None


def classify_feedback(suggested_category: Optional[str], actual_category: str) -> FeedbackKind:
    suggested_category = _clean(suggested_category)
    actual_category = _clean(actual_category)
    if not suggested_category:
        return FeedbackKind.REJECTED
    if suggested_category == actual_category:
        return FeedbackKind.CONFIRMED
    return FeedbackKind.CORRECTED


def _build(**fields) -> Result[FeedbackRecord]:
    try:
        return Result.success(FeedbackRecord(**fields))
    except PydanticValidationError as exc:
        return Result.failure(from_pydantic(exc, default_field="feedback"))


def create_confirmed(
    user_id: str, transaction_id: str, category: str, confidence: Optional[float] = None
) -> Result[FeedbackRecord]:
    return _build(
        user_id=user_id,
        transaction_id=transaction_id,
        suggested_category=category,
        actual_category=category,
        confidence=confidence,
        feedback_kind=FeedbackKind.CONFIRMED,
    )


def create_corrected(
    user_id: str,
    transaction_id: str,
    suggested_category: str,
    actual_category: str,
    confidence: Optional[float] = None,
) -> Result[FeedbackRecord]:
    return _build(
        user_id=user_id,
        transaction_id=transaction_id,
        suggested_category=suggested_category,
        actual_category=actual_category,
        confidence=confidence,
        feedback_kind=FeedbackKind.CORRECTED,
    )


def create_rejected(
    user_id: str,
    transaction_id: str,
    actual_category: str,
    suggested_category: Optional[str] = None,
    confidence: Optional[float] = None,
) -> Result[FeedbackRecord]:
    return _build(
        user_id=user_id,
        transaction_id=transaction_id,
        suggested_category=suggested_category,
        actual_category=actual_category,
        confidence=confidence,
        feedback_kind=FeedbackKind.REJECTED,
    )


def training_weight(record: FeedbackRecord) -> float:
    """
    Weight of a record for future heuristic improvement.

    Uncertain successes and confident mistakes are worth more than the rest.
    """
    if record.confidence is None:
        return 1.0
    if record.feedback_kind == FeedbackKind.CONFIRMED:
        return 1.0 + (1.0 - record.confidence)
    if record.feedback_kind == FeedbackKind.CORRECTED:
        return 1.0 + record.confidence
    return 1.0


def is_high_value(record: FeedbackRecord) -> bool:
    if record.confidence is None:
        return False
    if record.confidence > HIGH_VALUE_CONFIDENCE and record.feedback_kind != FeedbackKind.CONFIRMED:
        return True
    if record.confidence < LOW_VALUE_CONFIDENCE and record.feedback_kind == FeedbackKind.CONFIRMED:
        return True
    return False


def confidence_tier(record: FeedbackRecord) -> str:
    if record.confidence is None:
        return "none"
    if record.confidence >= 0.8:
        return "high"
    if record.confidence >= 0.5:
        return "medium"
    return "low"


class FeedbackRecorder:
    """Records categorization feedback in the append-only feedback store."""

    def __init__(self, store: FeedbackStore, event_bus: Optional[EventBus] = None) -> None:
        self.store = store
        self.event_bus = event_bus

    async def record_feedback(
        self,
        user_id: str,
        transaction_id: str,
        suggested_category: Optional[str],
        actual_category: str,
        confidence: Optional[float] = None,
    ) -> Result[FeedbackRecord]:
        # records are stored stripped, so classify on the stripped values
        suggested_category = _clean(suggested_category)
        actual_category = _clean(actual_category)
        for field_name, value in (
            ("user_id", user_id),
            ("transaction_id", transaction_id),
            ("actual_category", actual_category),
        ):
            if not value:
                return Result.failure(ValidationError(field=field_name, detail=f"{field_name} is required"))

        kind = classify_feedback(suggested_category, actual_category)
        if kind == FeedbackKind.REJECTED:
            built = create_rejected(user_id, transaction_id, actual_category, None, confidence)
        elif kind == FeedbackKind.CONFIRMED:
            built = create_confirmed(user_id, transaction_id, actual_category, confidence)
        else:
            built = create_corrected(user_id, transaction_id, suggested_category, actual_category, confidence)
        if built.failed:
            return built

        record = built.value
        try:
            saved = await self.store.save(record)
        except Exception as exc:
            log_error(
                "feedback_save_failed",
                "Failed to record categorization feedback",
                context={"user_id": user_id, "transaction_id": transaction_id},
                exception=exc,
            )
            return Result.failure(PersistenceError("feedback.save", exc))

        saved = saved or record
        logger.info(
            f"Recorded {saved.feedback_kind.value} feedback for transaction {transaction_id}: "
            f"{suggested_category or '-'} -> {actual_category}"
        )
        await publish_quietly(
            self.event_bus,
            EventType.FEEDBACK_PROVIDED,
            {
                "transaction_id": transaction_id,
                "suggested_category": suggested_category,
                "actual_category": actual_category,
                "feedback_kind": saved.feedback_kind.value,
                "is_high_value": is_high_value(saved),
            },
            user_id=user_id,
        )
        return Result.success(saved)
