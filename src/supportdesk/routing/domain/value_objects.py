"""
Routing Value Objects
======================

Immutable configuration for agent routing.

RoutingConfig is loaded from YAML and hot-reloaded; every scoring call
reads the current value once and uses it throughout.
"""

import re
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from supportdesk.config import UrgencyLevel


class ScoringWeights(BaseModel):
    """
    Weight per routing feature.

    Also used for the additive VIP and urgency boosts.
    """
    model_config = ConfigDict(frozen=True)

    capacity: float = Field(default=0.0, ge=0)
    skills: float = Field(default=0.0, ge=0)
    language: float = Field(default=0.0, ge=0)
    team: float = Field(default=0.0, ge=0)
    performance: float = Field(default=0.0, ge=0)

    @property
    def total(self) -> float:
        return self.capacity + self.skills + self.language + self.team + self.performance

    def plus(self, boost: "ScoringWeights") -> "ScoringWeights":
        return ScoringWeights(
            capacity=self.capacity + boost.capacity,
            skills=self.skills + boost.skills,
            language=self.language + boost.language,
            team=self.team + boost.team,
            performance=self.performance + boost.performance,
        )

    def normalized(self) -> "ScoringWeights":
        """Scale so the weights sum to 1."""
        total = self.total
        if total <= 0:
            return self
        k = 1 / total
        return ScoringWeights(
            capacity=self.capacity * k,
            skills=self.skills * k,
            language=self.language * k,
            team=self.team * k,
            performance=self.performance * k,
        )


class SkillRule(BaseModel):
    """Keyword pattern mapped to the skills it implies."""
    model_config = ConfigDict(frozen=True)

    pattern: str = Field(..., min_length=1, description="Regular expression, matched case-insensitively")
    skills: List[str] = Field(default_factory=list)

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid skill pattern {v!r}: {e}")
        return v

    def matches(self, text: str) -> bool:
        return re.search(self.pattern, text.lower()) is not None


def _rules(*pairs) -> List[SkillRule]:
    return [SkillRule(pattern=pattern, skills=list(skills)) for pattern, skills in pairs]


DEFAULT_INTENT_RULES = _rules(
    ("billing|invoice|payment", ["billing"]),
    ("integration|api|webhook", ["integration", "api"]),
    ("onboard|setup|getting started", ["onboarding"]),
    ("bug|error|technical|issue|login", ["technical"]),
    ("cancel|refund|downgrade", ["billing", "retention"]),
)

DEFAULT_CATEGORY_RULES = _rules(
    ("billing|payment|invoice", ["billing"]),
    ("technical|tech|integration", ["technical"]),
    ("shipping|delivery|logistics", ["logistics"]),
    ("product|catalog", ["product"]),
    ("account|profile|settings", ["account"]),
)


class RoutingConfig(BaseModel):
    """
    Routing configuration loaded from YAML.

    score = sum(weight_i * feature_i); VIP customers get vip_boost,
    otherwise boosted urgency levels get urgency_boost. Boosted weights
    are renormalised to sum to 1.
    """
    model_config = ConfigDict(frozen=True)

    weights: ScoringWeights = Field(
        default_factory=lambda: ScoringWeights(
            capacity=0.35, skills=0.35, language=0.10, team=0.10, performance=0.10
        )
    )
    vip_boost: ScoringWeights = Field(
        default_factory=lambda: ScoringWeights(capacity=0.05, skills=0.05, performance=0.05)
    )
    urgency_boost: ScoringWeights = Field(
        default_factory=lambda: ScoringWeights(capacity=0.10, skills=0.05)
    )
    boosted_urgency_levels: List[UrgencyLevel] = Field(
        default_factory=lambda: [UrgencyLevel.HIGH, UrgencyLevel.CRITICAL]
    )
    performance_score: float = Field(default=0.5, ge=0, le=1, description="Placeholder performance feature")
    intent_skills: List[SkillRule] = Field(default_factory=lambda: list(DEFAULT_INTENT_RULES))
    category_skills: List[SkillRule] = Field(default_factory=lambda: list(DEFAULT_CATEGORY_RULES))
