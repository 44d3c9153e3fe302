"""
Pattern rule matching and rule lifecycle.

``matches`` is a pure function: same inputs, same output, never raises.
The lifecycle helpers return a new ``PatternRule`` inside a ``Result``;
invalid input comes back as a failed result instead of an exception.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from fincore.core.result import Result
from fincore.models.patterns import PatternKind, PatternRule, RuleSource
from fincore.services.errors import ValidationError, from_pydantic

UPDATABLE_FIELDS = {"pattern", "pattern_kind", "category", "confidence", "priority", "is_active", "metadata"}


def matches(rule: PatternRule, text: str, iban: Optional[str] = None) -> bool:
    """Return True if ``rule`` applies to the transaction text / counterparty IBAN."""
    if not rule.is_active:
        return False

    text = text or ""

    if rule.pattern_kind == PatternKind.EXACT:
        return text.lower() == rule.pattern.lower()

    if rule.pattern_kind == PatternKind.CONTAINS:
        return rule.pattern.lower() in text.lower()

    if rule.pattern_kind == PatternKind.REGEX:
        try:
            return re.search(rule.pattern, text, re.IGNORECASE) is not None
        except (re.error, TypeError, RecursionError):
            return False

    if rule.pattern_kind == PatternKind.IBAN:
        if not iban:
            return False
        return iban.strip().upper() == rule.pattern.upper()

    return False


def create_rule(
    user_id: str,
    pattern: str,
    pattern_kind: PatternKind | str,
    category: str,
    confidence: float = 1.0,
    priority: int = 0,
    is_active: bool = True,
    source: RuleSource | str = RuleSource.USER,
    metadata: Optional[Dict[str, Any]] = None,
) -> Result[PatternRule]:
    try:
        rule = PatternRule(
            user_id=user_id,
            pattern=pattern,
            pattern_kind=pattern_kind,
            category=category,
            confidence=confidence,
            priority=priority,
            is_active=is_active,
            source=source,
            metadata=metadata or {},
        )
    except PydanticValidationError as exc:
        return Result.failure(from_pydantic(exc, default_field="rule"))
    return Result.success(rule)


def update_rule(rule: PatternRule, **changes: Any) -> Result[PatternRule]:
    """
    Apply changes to a rule and re-validate it as a whole.

    Only pattern, pattern_kind, category, confidence, priority, is_active and
    metadata can change; id, owner, source and created_at are fixed.
    """
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        return Result.failure(
            ValidationError(field=sorted(unknown)[0], detail="Field cannot be updated")
        )

    data = rule.model_dump()
    data.update({key: value for key, value in changes.items() if value is not None})
    data["updated_at"] = datetime.now(timezone.utc)
    try:
        updated = PatternRule.model_validate(data)
    except PydanticValidationError as exc:
        return Result.failure(from_pydantic(exc, default_field="rule"))
    return Result.success(updated)


def activate_rule(rule: PatternRule) -> Result[PatternRule]:
    if rule.is_active:
        return Result.success(rule)
    return update_rule(rule, is_active=True)


def deactivate_rule(rule: PatternRule) -> Result[PatternRule]:
    if not rule.is_active:
        return Result.success(rule)
    return update_rule(rule, is_active=False)


def increase_priority(rule: PatternRule, amount: int = 1) -> Result[PatternRule]:
    return update_rule(rule, priority=rule.priority + amount)


def decrease_priority(rule: PatternRule, amount: int = 1) -> Result[PatternRule]:
    return update_rule(rule, priority=max(0, rule.priority - amount))
