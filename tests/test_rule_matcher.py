import pytest
from pydantic import ValidationError as PydanticValidationError

from fincore.models.patterns import PatternKind, PatternRule, RuleSource
from fincore.services.errors import ErrorCode, ErrorKind
from fincore.services.rule_matcher import (
    activate_rule,
    create_rule,
    deactivate_rule,
    decrease_priority,
    increase_priority,
    matches,
    update_rule,
)


def _rule(pattern="netflix", kind=PatternKind.CONTAINS, **overrides):
    return PatternRule(
        user_id="user_1",
        pattern=pattern,
        pattern_kind=kind,
        category=overrides.pop("category", "entertainment"),
        **overrides,
    )


def test_contains_is_case_insensitive():
    rule = _rule("Netflix")
    assert matches(rule, "NETFLIX.COM monthly")
    assert not matches(rule, "Spotify")


def test_exact_requires_full_equality():
    rule = _rule("Rent March", PatternKind.EXACT)
    assert matches(rule, "rent march")
    assert not matches(rule, "rent march 2024")


def test_regex_searches_case_insensitively():
    rule = _rule(r"^amzn\s+mktp", PatternKind.REGEX)
    assert matches(rule, "AMZN Mktp DE 123")
    assert not matches(rule, "paid AMZN Mktp")


def test_non_matching_regex_returns_false():
    rule = _rule(r"\d{5}", PatternKind.REGEX)
    assert matches(rule, "no digits here") is False


def test_iban_rule_needs_an_iban():
    rule = _rule("de89 3704 0044 0532 0130 00".replace(" ", ""), PatternKind.IBAN)
    assert rule.pattern == "DE89370400440532013000"
    assert matches(rule, "anything", iban=" de89370400440532013000 ")
    assert not matches(rule, "DE89370400440532013000")
    assert not matches(rule, "anything", iban="GB29NWBK60161331926819")


def test_inactive_rule_never_matches():
    for kind, pattern, text in (
        (PatternKind.EXACT, "rent", "rent"),
        (PatternKind.CONTAINS, "rent", "monthly rent"),
        (PatternKind.REGEX, "r.nt", "rent"),
    ):
        rule = _rule(pattern, kind, is_active=False)
        assert matches(rule, text) is False


def test_uncompilable_regex_rejected_at_creation():
    with pytest.raises(PydanticValidationError):
        _rule("([unclosed", PatternKind.REGEX)

    result = create_rule("user_1", "([unclosed", "regex", "groceries")
    assert result.failed
    assert result.error.kind == ErrorKind.VALIDATION


@pytest.mark.parametrize("confidence", [-0.1, 1.5])
def test_confidence_outside_unit_interval_rejected(confidence):
    result = create_rule("user_1", "lidl", PatternKind.CONTAINS, "groceries", confidence=confidence)
    assert result.failed
    assert result.error.code == ErrorCode.VALIDATION_FAILED


def test_invalid_iban_shape_rejected():
    result = create_rule("user_1", "not-an-iban", PatternKind.IBAN, "rent")
    assert result.failed


def test_empty_pattern_rejected():
    result = create_rule("user_1", "   ", PatternKind.CONTAINS, "rent")
    assert result.failed


def test_create_rule_defaults():
    rule = create_rule("user_1", "lidl", "contains", "groceries").unwrap()
    assert rule.confidence == 1.0
    assert rule.priority == 0
    assert rule.is_active
    assert rule.source == RuleSource.USER
    assert rule.is_user_created and not rule.is_ml_generated


class TestRuleLifecycle:
    def test_update_revalidates_and_refreshes_timestamp(self):
        rule = _rule()
        updated = update_rule(rule, category="streaming", confidence=0.7).unwrap()
        assert updated.id == rule.id
        assert updated.category == "streaming"
        assert updated.confidence == 0.7
        assert updated.updated_at >= rule.updated_at
        assert rule.category == "entertainment"

    def test_update_rejects_switch_to_invalid_regex(self):
        rule = _rule("a[b", PatternKind.CONTAINS)
        result = update_rule(rule, pattern_kind=PatternKind.REGEX)
        assert result.failed

    def test_update_rejects_fixed_fields(self):
        result = update_rule(_rule(), user_id="someone_else")
        assert result.failed
        assert result.error.context["field"] == "user_id"

    def test_activate_and_deactivate(self):
        rule = _rule()
        assert activate_rule(rule).unwrap() is rule

        inactive = deactivate_rule(rule).unwrap()
        assert inactive.is_active is False
        assert deactivate_rule(inactive).unwrap() is inactive
        assert activate_rule(inactive).unwrap().is_active

    def test_priority_changes_floor_at_zero(self):
        rule = _rule(priority=1)
        assert increase_priority(rule, 4).unwrap().priority == 5
        assert decrease_priority(rule, 3).unwrap().priority == 0
