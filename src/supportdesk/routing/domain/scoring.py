"""
Agent Scoring
=============

Pure scoring logic for agent routing:
- SkillMapper: intent/category text to skills (first matching rule wins)
- WeightPolicy: base weights with VIP or urgency boosts
- CandidateScorer: eligibility filter and weighted multi-factor ranking
"""

from typing import Iterable, List, Optional, Sequence

from supportdesk.config import UrgencyLevel
from supportdesk.routing.domain.entities import AgentCandidate, RoutingSuggestion, ScoreBreakdown
from supportdesk.routing.domain.value_objects import RoutingConfig, ScoringWeights, SkillRule

NEUTRAL = 0.5


def merge_skills(*groups: Optional[Iterable[str]]) -> List[str]:
    """Concatenate skill lists, dropping duplicates and keeping first-seen order."""
    merged: List[str] = []
    for group in groups:
        for skill in group or ():
            if skill not in merged:
                merged.append(skill)
    return merged


def normalize_urgency(value: Optional[str]) -> UrgencyLevel:
    """Unknown or missing urgency is treated as medium."""
    if value is None:
        return UrgencyLevel.MEDIUM
    try:
        return UrgencyLevel(str(value).strip().lower())
    except ValueError:
        return UrgencyLevel.MEDIUM


class SkillMapper:
    """Ordered keyword table; the first rule whose pattern matches wins."""

    def __init__(self, rules: Sequence[SkillRule]):
        self._rules = list(rules)

    def map(self, text: Optional[str]) -> List[str]:
        if not text:
            return []
        for rule in self._rules:
            if rule.matches(text):
                return list(rule.skills)
        return []


class WeightPolicy:
    """Chooses feature weights for a request. VIP takes precedence over urgency."""

    def __init__(self, config: RoutingConfig):
        self._config = config

    def get_weights(self, is_vip: bool, urgency_level: UrgencyLevel) -> ScoringWeights:
        base = self._config.weights
        if is_vip:
            return base.plus(self._config.vip_boost).normalized()
        if urgency_level in self._config.boosted_urgency_levels:
            return base.plus(self._config.urgency_boost).normalized()
        return base


class CandidateScorer:
    """
    Ranks agents for a ticket.

    Agents outside the requested team or at capacity are dropped. The
    remaining ones are scored and sorted by score, highest first; ties
    keep the candidate order.
    """

    def __init__(self, config: RoutingConfig):
        self._config = config

    @staticmethod
    def eligible(candidates: Iterable[AgentCandidate], team_id: Optional[str] = None) -> List[AgentCandidate]:
        return [
            c for c in candidates
            if (not team_id or c.is_member_of(team_id)) and c.has_capacity
        ]

    def score_candidate(
        self,
        candidate: AgentCandidate,
        skills: Sequence[str],
        language: Optional[str],
        team_id: Optional[str],
        weights: ScoringWeights,
    ) -> RoutingSuggestion:
        current = candidate.current_load
        maximum = candidate.max_concurrent_tickets

        matched = [s for s in skills if s in candidate.skills]
        missing = [s for s in skills if s not in candidate.skills]

        if language:
            speaks = language in candidate.languages
            language_match = 1.0 if speaks else 0.0
            language_details = f"Speaks {language}" if speaks else f"Does not speak {language}"
        else:
            language_match, language_details = NEUTRAL, None

        if team_id:
            member = candidate.is_member_of(team_id)
            team_align = 1.0 if member else 0.0
            team_details = "Member of required team" if member else "Not a member of required team"
        else:
            team_align, team_details = NEUTRAL, None

        breakdown = ScoreBreakdown(
            capacity_score=1 - min(1.0, current / max(1, maximum)),
            skill_match=len(matched) / len(skills) if skills else 0.0,
            language_match=language_match,
            team_align=team_align,
            performance_score=self._config.performance_score,
        )
        score = (
            weights.capacity * breakdown.capacity_score
            + weights.skills * breakdown.skill_match
            + weights.language * breakdown.language_match
            + weights.team * breakdown.team_align
            + weights.performance * breakdown.performance_score
        )

        return RoutingSuggestion(
            agent_id=candidate.id,
            agent_name=candidate.name,
            score=score,
            breakdown=breakdown,
            matched_skills=matched,
            missing_skills=missing,
            current_load=current,
            max_capacity=maximum,
            language_match_details=language_details,
            team_match_details=team_details,
        )

    def rank(
        self,
        candidates: Iterable[AgentCandidate],
        skills: Sequence[str],
        language: Optional[str],
        team_id: Optional[str],
        weights: ScoringWeights,
    ) -> List[RoutingSuggestion]:
        scored = [
            self.score_candidate(c, skills, language, team_id, weights)
            for c in self.eligible(candidates, team_id)
        ]
        # sorted() is stable, so equal scores keep candidate order
        return sorted(scored, key=lambda s: s.score, reverse=True)
