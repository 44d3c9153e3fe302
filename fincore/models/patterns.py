"""Categorization rule model."""
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict
import uuid

from pydantic import Field, field_validator, model_validator

from fincore.models.base import FCBaseModel

IBAN_SHAPE = re.compile(r"^[A-Z]{2}[0-9]{2}[A-Z0-9]+$")


class PatternKind(str, Enum):
    EXACT = "exact"
    CONTAINS = "contains"
    REGEX = "regex"
    IBAN = "iban"


class RuleSource(str, Enum):
    USER = "user"
    SYSTEM = "system"
    ML = "ml"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PatternRule(FCBaseModel):
    """
    A rule that assigns a spending category to transactions whose text
    (or counterparty IBAN) matches ``pattern``.

    Higher ``priority`` rules are evaluated first. Rules are deactivated
    rather than deleted.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str = Field(..., min_length=1)
    pattern: str
    pattern_kind: PatternKind
    category: str = Field(..., min_length=1)
    confidence: float = Field(default=1.0, ge=0, le=1)
    priority: int = 0
    is_active: bool = True
    source: RuleSource = RuleSource.USER
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="before")
    @classmethod
    def upper_case_iban(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("pattern_kind") in ("iban", PatternKind.IBAN):
            pattern = data.get("pattern")
            if isinstance(pattern, str):
                data = {**data, "pattern": pattern.strip().upper()}
        return data

    @field_validator("pattern")
    @classmethod
    def pattern_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("Pattern cannot be empty")
        return value

    @model_validator(mode="after")
    def check_pattern_for_kind(self) -> "PatternRule":
        if self.pattern_kind == PatternKind.REGEX:
            try:
                re.compile(self.pattern)
            except re.error as exc:
                raise ValueError(f"Invalid regex pattern: {exc}") from exc
        elif self.pattern_kind == PatternKind.IBAN and not IBAN_SHAPE.match(self.pattern):
            raise ValueError("Invalid IBAN pattern")
        return self

    @property
    def is_user_created(self) -> bool:
        return self.source == RuleSource.USER

    @property
    def is_system_rule(self) -> bool:
        return self.source == RuleSource.SYSTEM

    @property
    def is_ml_generated(self) -> bool:
        return self.source == RuleSource.ML
