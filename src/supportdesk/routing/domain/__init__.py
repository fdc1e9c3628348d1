"""
Routing Domain Layer
====================

Domain layer for agent routing.

Contains:
- Entities: RoutingContext, AgentCandidate, AISignals, RoutingSuggestion
- Value Objects: RoutingConfig, ScoringWeights, SkillRule
- Domain Services: CandidateScorer, WeightPolicy, SkillMapper
"""

from supportdesk.routing.domain.entities import (
    AgentCandidate,
    AISignals,
    ContentAnalysis,
    ContentAnalysisPromptBuilder,
    RoutingContext,
    RoutingSuggestion,
    ScoreBreakdown,
)
from supportdesk.routing.domain.scoring import (
    CandidateScorer,
    SkillMapper,
    WeightPolicy,
    merge_skills,
    normalize_urgency,
)
from supportdesk.routing.domain.value_objects import (
    DEFAULT_CATEGORY_RULES,
    DEFAULT_INTENT_RULES,
    RoutingConfig,
    ScoringWeights,
    SkillRule,
)

__all__ = [
    # Entities
    "RoutingContext",
    "AgentCandidate",
    "AISignals",
    "ContentAnalysis",
    "ContentAnalysisPromptBuilder",
    "RoutingSuggestion",
    "ScoreBreakdown",
    # Value Objects
    "RoutingConfig",
    "ScoringWeights",
    "SkillRule",
    "DEFAULT_INTENT_RULES",
    "DEFAULT_CATEGORY_RULES",
    # Domain Services
    "CandidateScorer",
    "WeightPolicy",
    "SkillMapper",
    "merge_skills",
    "normalize_urgency",
]
