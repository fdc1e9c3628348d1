"""
Routing Application Layer
==========================

Contains:
- Services: RoutingService, AISignalFuser
- DTOs: Routing API request/response models
- Ports: Agent and customer directories, content analyzer, config provider
"""

from supportdesk.routing.application.dto import (
    AgentSuggestionResponse,
    EntityDTO,
    RecommendAssignmentDTO,
    RoutingContextDTO,
    RoutingReasoning,
    RoutingSuggestionListResponse,
    RoutingSuggestionResponse,
    RoutingSuggestionsRequest,
)
from supportdesk.routing.application.services import (
    AISignalFuser,
    IAgentDirectory,
    IContentAnalyzer,
    ICustomerDirectory,
    IRoutingConfigProvider,
    RoutingService,
    StaticRoutingConfigProvider,
)

__all__ = [
    # DTOs
    "AgentSuggestionResponse",
    "EntityDTO",
    "RecommendAssignmentDTO",
    "RoutingContextDTO",
    "RoutingReasoning",
    "RoutingSuggestionListResponse",
    "RoutingSuggestionResponse",
    "RoutingSuggestionsRequest",
    # Services
    "RoutingService",
    "AISignalFuser",
    # Ports
    "IAgentDirectory",
    "ICustomerDirectory",
    "IContentAnalyzer",
    "IRoutingConfigProvider",
    "StaticRoutingConfigProvider",
]
