"""Categorization suggestion models."""
from enum import Enum
from typing import Dict

from pydantic import Field

from fincore.models.base import FCBaseModel


class SuggestionSource(str, Enum):
    RULE = "rule"
    HEURISTIC = "heuristic"
    FALLBACK = "fallback"


class Suggestion(FCBaseModel):
    category: str
    confidence: float = Field(..., ge=0, le=1)
    reason: str
    source: SuggestionSource


class TrainingSummary(FCBaseModel):
    total_records: int = 0
    confirmed: int = 0
    corrected: int = 0
    rejected: int = 0
    high_value: int = 0
    accuracy_rate: float = Field(default=0.0, ge=0, le=1)
    category_weights: Dict[str, float] = Field(default_factory=dict)
