"""
Routing Controllers (API Routes)
=================================

FastAPI routes for agent routing suggestions.

Routing never fails the request: when no agent can be suggested the
response carries a null agent or an empty list.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from supportdesk.infrastructure.database import get_session
from supportdesk.routing.application import (
    AgentSuggestionResponse,
    AISignalFuser,
    RecommendAssignmentDTO,
    RoutingContextDTO,
    RoutingService,
    RoutingSuggestionListResponse,
    RoutingSuggestionResponse,
    RoutingSuggestionsRequest,
)
from supportdesk.routing.infrastructure import (
    SQLAlchemyAgentDirectory,
    SQLAlchemyCustomerDirectory,
    get_content_analyzer,
    get_routing_config_manager,
)
from supportdesk.shared.api.dependencies import get_tenant_id
from supportdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/routing", tags=["Agent Routing"])


# ========== Example payloads for Swagger ==========

SUGGESTIONS_RESPONSE_EXAMPLE = {
    "suggestions": [
        {
            "agent_id": "agent-42",
            "agent_name": "Dana Fischer",
            "score": 0.8125,
            "reasoning": {
                "capacity_score": 0.8,
                "skill_match": 1.0,
                "language_match": 1.0,
                "team_align": 0.5,
                "performance_score": 0.5,
                "matched_skills": ["billing"],
                "missing_skills": [],
                "current_load": 1,
                "max_capacity": 5,
                "language_match_details": "Speaks de",
                "team_match_details": None
            }
        }
    ],
    "total": 1
}


# ========== Dependencies ==========

async def get_routing_service(session: AsyncSession = Depends(get_session)) -> RoutingService:
    config_provider = get_routing_config_manager()
    return RoutingService(
        SQLAlchemyAgentDirectory(session),
        SQLAlchemyCustomerDirectory(session),
        AISignalFuser(get_content_analyzer(), config_provider),
        config_provider,
    )


# ========== Route Handlers ==========

@router.post(
    "/suggest",
    response_model=AgentSuggestionResponse,
    summary="Suggest the best agent for a ticket",
    description="""
    Ranks active auto-assign agents of the tenant by capacity, skills,
    language, team alignment and performance. Agents at capacity or outside
    the requested team are not eligible.
    """
)
async def suggest_agent(
    dto: RoutingContextDTO,
    tenant_id: str = Depends(get_tenant_id),
    service: RoutingService = Depends(get_routing_service)
):
    return AgentSuggestionResponse(agent_id=await service.suggest_agent(dto.to_context(tenant_id)))


@router.post(
    "/suggestions",
    response_model=RoutingSuggestionListResponse,
    summary="Ranked agent suggestions with reasoning",
    responses={200: {"content": {"application/json": {"example": SUGGESTIONS_RESPONSE_EXAMPLE}}}}
)
async def get_routing_suggestions(
    dto: RoutingSuggestionsRequest,
    tenant_id: str = Depends(get_tenant_id),
    service: RoutingService = Depends(get_routing_service)
):
    suggestions = await service.get_routing_suggestions(dto.to_context(tenant_id), limit=dto.limit)
    return RoutingSuggestionListResponse(
        suggestions=[RoutingSuggestionResponse.from_domain(s) for s in suggestions],
        total=len(suggestions),
    )


@router.post(
    "/recommend",
    response_model=AgentSuggestionResponse,
    summary="Recommend an assignee from triage output",
    description="Maps intent and category to skills and suggests an agent."
)
async def recommend_assignment(
    dto: RecommendAssignmentDTO,
    tenant_id: str = Depends(get_tenant_id),
    service: RoutingService = Depends(get_routing_service)
):
    agent_id = await service.recommend_assignment(
        tenant_id,
        intent=dto.intent,
        category=dto.category,
        priority=dto.priority,
        urgency_level=dto.urgency_level,
        language=dto.language,
        entities=[e.model_dump() for e in dto.entities],
        customer_id=dto.customer_id,
        team_id=dto.team_id,
    )
    return AgentSuggestionResponse(agent_id=agent_id)


# Export router for inclusion in main app
routing_router = router
