"""Categorization feedback (training data) model."""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
import uuid

from pydantic import Field, model_validator

from fincore.models.base import FCBaseModel


class FeedbackKind(str, Enum):
    CONFIRMED = "confirmed"  # suggestion accepted as-is
    CORRECTED = "corrected"  # suggestion replaced by a different category
    REJECTED = "rejected"    # no usable suggestion, category entered manually


class FeedbackRecord(FCBaseModel):
    """
    One user reaction to a category suggestion.

    Records are append-only: the feedback log is the training data read
    back by the frequency heuristic.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str = Field(..., min_length=1)
    transaction_id: str = Field(..., min_length=1)
    suggested_category: Optional[str] = None
    actual_category: str = Field(..., min_length=1)
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    feedback_kind: FeedbackKind
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def check_kind_consistency(self) -> "FeedbackRecord":
        if self.feedback_kind == FeedbackKind.CONFIRMED:
            if self.suggested_category != self.actual_category:
                raise ValueError("Confirmed feedback requires suggested and actual category to match")
        elif self.feedback_kind == FeedbackKind.CORRECTED:
            if not self.suggested_category:
                raise ValueError("Corrected feedback requires a suggested category")
            if self.suggested_category == self.actual_category:
                raise ValueError(
                    "Corrected feedback must have different suggested and actual categories"
                )
        return self
