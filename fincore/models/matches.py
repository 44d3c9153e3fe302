"""Invoice <-> bank transaction match models."""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from pydantic import Field, model_validator

from fincore.models.base import FCBaseModel

AUTO_MATCH_MIN_SCORE = 90.0
MEDIUM_MATCH_MIN_SCORE = 50.0


class MatchConfidence(str, Enum):
    HIGH = "high"        # score >= 90, eligible for auto-match
    MEDIUM = "medium"    # score 50-89, suggest to user
    LOW = "low"          # score < 50, manual review
    MANUAL = "manual"    # created by a user


class MatchedBy(str, Enum):
    USER = "user"
    SYSTEM = "system"


def confidence_for_score(score: float) -> MatchConfidence:
    if score >= AUTO_MATCH_MIN_SCORE:
        return MatchConfidence.HIGH
    if score >= MEDIUM_MATCH_MIN_SCORE:
        return MatchConfidence.MEDIUM
    return MatchConfidence.LOW


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InvoiceTransactionMatch(FCBaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    invoice_id: str = Field(..., min_length=1)
    transaction_id: str = Field(..., min_length=1)
    match_score: float = Field(..., ge=0, le=100)
    match_confidence: MatchConfidence
    matched_by: MatchedBy
    matched_by_user_id: Optional[str] = None
    notes: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    matched_at: datetime = Field(default_factory=_utcnow)
    created_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def system_matches_need_high_score(self) -> "InvoiceTransactionMatch":
        if self.matched_by == MatchedBy.SYSTEM and self.match_score < AUTO_MATCH_MIN_SCORE:
            raise ValueError("System matches require a match score of at least 90")
        return self

    @classmethod
    def auto(cls, invoice_id: str, transaction_id: str, match_score: float) -> "InvoiceTransactionMatch":
        return cls(
            invoice_id=invoice_id,
            transaction_id=transaction_id,
            match_score=match_score,
            match_confidence=confidence_for_score(match_score),
            matched_by=MatchedBy.SYSTEM,
        )

    @classmethod
    def manual(
        cls,
        invoice_id: str,
        transaction_id: str,
        user_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> "InvoiceTransactionMatch":
        # user-confirmed matches count as perfect
        return cls(
            invoice_id=invoice_id,
            transaction_id=transaction_id,
            match_score=100.0,
            match_confidence=MatchConfidence.MANUAL,
            matched_by=MatchedBy.USER,
            matched_by_user_id=user_id,
            notes=notes,
        )

    @property
    def is_auto_match(self) -> bool:
        return self.matched_by == MatchedBy.SYSTEM

    @property
    def is_manual_match(self) -> bool:
        return self.matched_by == MatchedBy.USER

    @property
    def has_high_confidence(self) -> bool:
        return self.match_confidence in (MatchConfidence.HIGH, MatchConfidence.MANUAL)

    @property
    def needs_review(self) -> bool:
        return self.match_confidence in (MatchConfidence.MEDIUM, MatchConfidence.LOW)

    def match_age_days(self, now: Optional[datetime] = None) -> int:
        now = now or _utcnow()
        return (now - self.matched_at).days


class MatchRequest(FCBaseModel):
    """One entry of a batch confirm."""

    invoice_id: str = Field(..., min_length=1)
    transaction_id: str = Field(..., min_length=1)
    match_score: float = Field(default=100.0, ge=0, le=100)
    matched_by: MatchedBy = MatchedBy.USER
    user_id: Optional[str] = None
    notes: Optional[str] = None


class BatchItemError(FCBaseModel):
    item: str
    code: str
    message: str


class BatchOutcome(FCBaseModel):
    succeeded: int = 0
    failed: int = 0
    errors: List[BatchItemError] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return self.succeeded + self.failed
