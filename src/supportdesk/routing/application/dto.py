"""
Routing Application DTOs
=========================

Pydantic models for routing API requests and responses.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from supportdesk.routing.domain import RoutingContext, RoutingSuggestion


# ========== Request DTOs ==========

class RoutingContextDTO(BaseModel):
    """Ticket context for an agent suggestion. The tenant comes from the header."""
    customer_id: Optional[str] = None
    team_id: Optional[str] = Field(default=None, description="Only members of this team are eligible")
    priority: Optional[str] = None
    required_skills: List[str] = Field(default_factory=list)
    subject: Optional[str] = None
    description: Optional[str] = None
    channel_type: Optional[str] = Field(default=None, description="email, whatsapp, instagram, web, phone")
    language_hint: Optional[str] = Field(default=None, description="Pre-detected language code")

    def to_context(self, tenant_id: str) -> RoutingContext:
        fields = set(RoutingContextDTO.model_fields)
        return RoutingContext(tenant_id=tenant_id, **self.model_dump(include=fields))


class RoutingSuggestionsRequest(RoutingContextDTO):
    limit: int = Field(default=5, ge=1, le=50, description="Maximum number of agents returned")


class EntityDTO(BaseModel):
    type: str
    value: str


class RecommendAssignmentDTO(BaseModel):
    """Triage output used to recommend an assignee."""
    intent: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[str] = None
    urgency_level: Optional[str] = None
    language: Optional[str] = None
    entities: List[EntityDTO] = Field(default_factory=list)
    customer_id: Optional[str] = None
    team_id: Optional[str] = None


# ========== Response DTOs ==========

class AgentSuggestionResponse(BaseModel):
    agent_id: Optional[str] = Field(default=None, description="Suggested agent, null when none is eligible")


class RoutingReasoning(BaseModel):
    capacity_score: float
    skill_match: float
    language_match: float
    team_align: float
    performance_score: float
    matched_skills: List[str]
    missing_skills: List[str]
    current_load: int
    max_capacity: int
    language_match_details: Optional[str] = None
    team_match_details: Optional[str] = None


class RoutingSuggestionResponse(BaseModel):
    agent_id: str
    agent_name: Optional[str] = None
    score: float
    reasoning: RoutingReasoning

    @classmethod
    def from_domain(cls, suggestion: RoutingSuggestion) -> "RoutingSuggestionResponse":
        b = suggestion.breakdown
        return cls(
            agent_id=suggestion.agent_id,
            agent_name=suggestion.agent_name,
            score=round(suggestion.score, 4),
            reasoning=RoutingReasoning(
                capacity_score=b.capacity_score,
                skill_match=b.skill_match,
                language_match=b.language_match,
                team_align=b.team_align,
                performance_score=b.performance_score,
                matched_skills=suggestion.matched_skills,
                missing_skills=suggestion.missing_skills,
                current_load=suggestion.current_load,
                max_capacity=suggestion.max_capacity,
                language_match_details=suggestion.language_match_details,
                team_match_details=suggestion.team_match_details,
            ),
        )


class RoutingSuggestionListResponse(BaseModel):
    suggestions: List[RoutingSuggestionResponse]
    total: int
