"""
Routing Infrastructure Layer
=============================

Contains:
- Repositories: Agent and customer directories over SQLAlchemy
- External: LLM content analyzer
- Config: YAML routing configuration with hot reload
"""

from supportdesk.routing.infrastructure.config import (
    ConfigFileHandler,
    RoutingConfigManager,
    get_routing_config_manager,
)
from supportdesk.routing.infrastructure.external import (
    LLMContentAnalyzer,
    extract_json,
    get_content_analyzer,
)
from supportdesk.routing.infrastructure.repositories import (
    SQLAlchemyAgentDirectory,
    SQLAlchemyCustomerDirectory,
)

__all__ = [
    "SQLAlchemyAgentDirectory",
    "SQLAlchemyCustomerDirectory",
    "LLMContentAnalyzer",
    "extract_json",
    "get_content_analyzer",
    "ConfigFileHandler",
    "RoutingConfigManager",
    "get_routing_config_manager",
]
