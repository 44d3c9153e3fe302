"""
Categorization Service

Suggests a spending category for a bank transaction:
1. Rule tier - the user's active pattern rules, highest priority first
2. Heuristic tier - most frequent category in the user's recent feedback
3. Fallback - a fixed default category

A tier only runs when the previous one did not reach the medium threshold.
Confidence bands for callers:
- >= 0.8: auto-apply
- 0.5 - 0.8: suggest to the user
- < 0.5: ask the user
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Union

from fincore.core.config import CategorizationSettings, get_settings
from fincore.core.event_bus import EventBus, EventType, publish_quietly
from fincore.core.result import Result
from fincore.models.categorization import Suggestion, SuggestionSource, TrainingSummary
from fincore.models.feedback import FeedbackKind, FeedbackRecord
from fincore.models.patterns import PatternRule
from fincore.models.transactions import BankTransaction, TransactionData
from fincore.services.errors import (
    BusinessRuleError,
    CategorizationError,
    ErrorCode,
    FincoreError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from fincore.services.feedback import FeedbackRecorder, is_high_value, training_weight
from fincore.services.logging import log_error, log_event
from fincore.services.rule_matcher import matches
from fincore.stores.base import FeedbackStore, RuleStore, TransactionStore

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE_THRESHOLD = 0.8
MEDIUM_CONFIDENCE_THRESHOLD = 0.5
FALLBACK_CONFIDENCE = 0.3
HEURISTIC_CONFIDENCE_CAP = 0.6
FALLBACK_REASON = "no matching rules or heuristic available"


def confidence_band(confidence: float) -> str:
    if confidence >= HIGH_CONFIDENCE_THRESHOLD:
        return "high"
    if confidence >= MEDIUM_CONFIDENCE_THRESHOLD:
        return "medium"
    return "low"


def _as_transaction_data(transaction: Union[TransactionData, BankTransaction]) -> TransactionData:
    if isinstance(transaction, BankTransaction):
        return TransactionData.from_transaction(transaction)
    return transaction


class CategorizationService:
    """
    Three-tier category suggestions plus the feedback loop that feeds tier 2.

    Usage:
        service = CategorizationService(rule_store, feedback_store)
        result = await service.suggest_category("user_1", TransactionData(description="NETFLIX"))
        if result.ok and confidence_band(result.value.confidence) == "high":
            ...
    """

    def __init__(
        self,
        rules: RuleStore,
        feedback: FeedbackStore,
        transactions: Optional[TransactionStore] = None,
        event_bus: Optional[EventBus] = None,
        settings: Optional[CategorizationSettings] = None,
    ) -> None:
        self.rules = rules
        self.feedback = feedback
        self.transactions = transactions
        self.event_bus = event_bus
        self.settings = settings or get_settings().categorization
        self.recorder = FeedbackRecorder(feedback, event_bus=event_bus)

    async def suggest_category(
        self,
        user_id: str,
        transaction: Union[TransactionData, BankTransaction],
    ) -> Result[Suggestion]:
        if not user_id:
            return Result.failure(ValidationError(field="user_id", detail="user_id is required"))
        data = _as_transaction_data(transaction)

        try:
            rule_suggestion = await self._match_by_rules(user_id, data)
            if rule_suggestion and rule_suggestion.confidence >= MEDIUM_CONFIDENCE_THRESHOLD:
                return Result.success(rule_suggestion)

            heuristic_suggestion = await self._predict_by_history(user_id)
            if heuristic_suggestion and heuristic_suggestion.confidence >= MEDIUM_CONFIDENCE_THRESHOLD:
                return Result.success(heuristic_suggestion)
        except Exception as exc:
            log_error(
                "categorization_failed",
                "Failed to load rules or feedback for categorization",
                context={"user_id": user_id},
                exception=exc,
            )
            return Result.failure(CategorizationError(str(exc), cause=exc))

        return Result.success(self._select_best(rule_suggestion, heuristic_suggestion))

    async def _match_by_rules(self, user_id: str, data: TransactionData) -> Optional[Suggestion]:
        rules = await self.rules.get_active_rules_for_user(user_id)
        # sorted() is stable: equal priorities keep retrieval order
        ordered: List[PatternRule] = sorted(
            (rule for rule in rules if rule.is_active), key=lambda rule: rule.priority, reverse=True
        )
        text = data.match_text()
        for rule in ordered:
            if matches(rule, text, data.counterparty_iban):
                return Suggestion(
                    category=rule.category,
                    confidence=rule.confidence,
                    reason=f'Matched rule: "{rule.pattern}" ({rule.pattern_kind.value})',
                    source=SuggestionSource.RULE,
                )
        return None

    async def _predict_by_history(self, user_id: str) -> Optional[Suggestion]:
        records = await self.feedback.get_recent_feedback(user_id, limit=self.settings.feedback_window)
        if len(records) < self.settings.min_feedback_records:
            logger.debug(f"Heuristic skipped for {user_id}: {len(records)} feedback records")
            return None

        frequency: Dict[str, int] = {}
        for record in records:
            frequency[record.actual_category] = frequency.get(record.actual_category, 0) + 1

        best_category, best_count = None, 0
        for category, count in frequency.items():
            if count > best_count:
                best_category, best_count = category, count

        return Suggestion(
            category=best_category,
            confidence=min(HEURISTIC_CONFIDENCE_CAP, best_count / len(records)),
            reason=f"Most frequent category across {len(records)} recent feedback records",
            source=SuggestionSource.HEURISTIC,
        )

    def _select_best(
        self,
        rule_suggestion: Optional[Suggestion],
        heuristic_suggestion: Optional[Suggestion],
    ) -> Suggestion:
        if rule_suggestion and heuristic_suggestion:
            if rule_suggestion.confidence >= heuristic_suggestion.confidence:
                return rule_suggestion
            return heuristic_suggestion
        if rule_suggestion:
            return rule_suggestion
        if heuristic_suggestion:
            return heuristic_suggestion
        return Suggestion(
            category=self.settings.fallback_category,
            confidence=FALLBACK_CONFIDENCE,
            reason=FALLBACK_REASON,
            source=SuggestionSource.FALLBACK,
        )

    async def record_feedback(
        self,
        user_id: str,
        transaction_id: str,
        suggested_category: Optional[str],
        actual_category: str,
        confidence: Optional[float] = None,
    ) -> Result[FeedbackRecord]:
        return await self.recorder.record_feedback(
            user_id, transaction_id, suggested_category, actual_category, confidence
        )

    async def categorize_transaction(self, user_id: str, transaction_id: str) -> Result[BankTransaction]:
        """Suggest a category for a stored transaction and write it back as its suggestion."""
        if self.transactions is None:
            return Result.failure(
                FincoreError(
                    code=ErrorCode.NOT_CONFIGURED,
                    message="No transaction store configured",
                    detail="CategorizationService was built without a transaction store",
                )
            )

        try:
            transaction = await self.transactions.find_by_id(transaction_id)
        except Exception as exc:
            return Result.failure(PersistenceError("transaction.find_by_id", exc))
        if transaction is None:
            return Result.failure(NotFoundError("Transaction", transaction_id))

        suggested = await self.suggest_category(user_id, transaction)
        if suggested.failed:
            return Result.failure(suggested.error)
        suggestion = suggested.value

        updated = transaction.model_copy(
            update={
                "suggested_category": suggestion.category,
                "confidence_score": round(suggestion.confidence * 100, 2),
            }
        )
        try:
            saved = await self.transactions.save(updated) or updated
        except Exception as exc:
            log_error(
                "categorization_save_failed",
                "Failed to store category suggestion",
                context={"transaction_id": transaction_id},
                exception=exc,
            )
            return Result.failure(PersistenceError("transaction.save", exc))

        log_event(
            "transaction_categorized",
            f"Suggested {suggestion.category} for transaction {transaction_id}",
            transaction_id=transaction_id,
            source=suggestion.source.value,
            confidence=suggestion.confidence,
        )
        await publish_quietly(
            self.event_bus,
            EventType.TRANSACTION_CATEGORIZED,
            {
                "transaction_id": transaction_id,
                "category": suggestion.category,
                "confidence": suggestion.confidence,
                "band": confidence_band(suggestion.confidence),
                "source": suggestion.source.value,
            },
            user_id=user_id,
        )
        return Result.success(saved)

    async def training_summary(self, user_id: str) -> Result[TrainingSummary]:
        """
        Summarize the feedback a user has accumulated.

        Refused below the configured minimum number of records. Nothing is
        trained; the summary tells callers what a training run would see.
        """
        try:
            records = await self.feedback.get_recent_feedback(user_id)
        except Exception as exc:
            return Result.failure(PersistenceError("feedback.get_recent_feedback", exc))

        minimum = self.settings.min_training_records
        if len(records) < minimum:
            return Result.failure(
                BusinessRuleError(
                    ErrorCode.INSUFFICIENT_TRAINING_DATA,
                    f"At least {minimum} feedback records required for training",
                    context={"user_id": user_id, "records": len(records)},
                )
            )

        counts = {kind: 0 for kind in FeedbackKind}
        weights: Dict[str, float] = {}
        high_value = 0
        for record in records:
            counts[record.feedback_kind] += 1
            weights[record.actual_category] = weights.get(record.actual_category, 0.0) + training_weight(record)
            if is_high_value(record):
                high_value += 1

        judged = counts[FeedbackKind.CONFIRMED] + counts[FeedbackKind.CORRECTED]
        accuracy = counts[FeedbackKind.CONFIRMED] / judged if judged else 0.0

        return Result.success(
            TrainingSummary(
                total_records=len(records),
                confirmed=counts[FeedbackKind.CONFIRMED],
                corrected=counts[FeedbackKind.CORRECTED],
                rejected=counts[FeedbackKind.REJECTED],
                high_value=high_value,
                accuracy_rate=accuracy,
                category_weights=weights,
            )
        )
