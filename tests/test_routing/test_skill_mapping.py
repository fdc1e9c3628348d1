"""
Skill mapping and signal normalisation tests.
"""

import pytest
from pydantic import ValidationError

from supportdesk.config import UrgencyLevel
from supportdesk.routing.domain import (
    DEFAULT_CATEGORY_RULES,
    DEFAULT_INTENT_RULES,
    RoutingConfig,
    SkillMapper,
    SkillRule,
    merge_skills,
    normalize_urgency,
)


class TestSkillMapper:
    @pytest.mark.parametrize("intent,skills", [
        ("billing_question", ["billing"]),
        ("refund_request", ["billing", "retention"]),
        ("technical_issue", ["technical"]),
        ("API_QUESTION", ["integration", "api"]),
        ("onboarding_help", ["onboarding"]),
        ("general_inquiry", []),
    ])
    def test_intent_table(self, intent, skills):
        assert SkillMapper(DEFAULT_INTENT_RULES).map(intent) == skills

    def test_first_matching_rule_wins(self):
        assert SkillMapper(DEFAULT_INTENT_RULES).map("payment_api_error") == ["billing"]

    @pytest.mark.parametrize("category,skills", [
        ("Billing", ["billing"]),
        ("tech_support", ["technical"]),
        ("delivery", ["logistics"]),
        ("account settings", ["account"]),
        ("other", []),
    ])
    def test_category_table(self, category, skills):
        assert SkillMapper(DEFAULT_CATEGORY_RULES).map(category) == skills

    def test_empty_text(self):
        mapper = SkillMapper(DEFAULT_INTENT_RULES)
        assert mapper.map(None) == []
        assert mapper.map("") == []

    def test_result_is_a_copy(self):
        mapper = SkillMapper([SkillRule(pattern="vip", skills=["priority"])])
        mapper.map("vip").append("mutated")
        assert mapper.map("vip") == ["priority"]


class TestSkillRule:
    def test_invalid_pattern_is_rejected(self):
        with pytest.raises(ValidationError):
            SkillRule(pattern="billing(", skills=["billing"])

    def test_config_rejects_negative_weights(self):
        with pytest.raises(ValidationError):
            RoutingConfig.model_validate({"weights": {"capacity": -0.1}})


class TestMergeSkills:
    def test_dedup_keeps_first_seen_order(self):
        assert merge_skills(["billing", "api"], None, ["api", "retention", "billing"]) == [
            "billing", "api", "retention"
        ]

    def test_no_groups(self):
        assert merge_skills() == []


class TestNormalizeUrgency:
    @pytest.mark.parametrize("value,expected", [
        ("critical", UrgencyLevel.CRITICAL),
        (" HIGH ", UrgencyLevel.HIGH),
        ("low", UrgencyLevel.LOW),
        ("urgent", UrgencyLevel.MEDIUM),
        (None, UrgencyLevel.MEDIUM),
    ])
    def test_values(self, value, expected):
        assert normalize_urgency(value) is expected
