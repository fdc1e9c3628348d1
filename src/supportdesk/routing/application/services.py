"""
Routing Application Services
=============================

Application services for agent routing.

RoutingService gathers the inputs the scorer needs (candidates, VIP
status, AI signals, current configuration) and never lets a failure
reach the caller: routing degrades to "no suggestion".
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from supportdesk.config import UrgencyLevel
from supportdesk.routing.domain import (
    AgentCandidate,
    AISignals,
    CandidateScorer,
    ContentAnalysis,
    RoutingConfig,
    RoutingContext,
    RoutingSuggestion,
    SkillMapper,
    WeightPolicy,
    merge_skills,
    normalize_urgency,
)
from supportdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Interfaces (Dependency Inversion) ==========

class IAgentDirectory(ABC):
    """Read access to agents owned by the user service."""

    @abstractmethod
    async def list_candidates(self, tenant_id: str) -> List[AgentCandidate]:
        """Active auto-assign agents of a tenant, ordered by creation time then id."""


class ICustomerDirectory(ABC):
    """Read access to customer records."""

    @abstractmethod
    async def is_vip(self, tenant_id: str, customer_id: str) -> bool:
        """Whether the customer is flagged VIP."""


class IContentAnalyzer(ABC):
    """Detects language, urgency and intent of ticket text."""

    @abstractmethod
    async def analyze(
        self,
        content: str,
        tenant_id: str,
        channel_type: Optional[str] = None,
        language_hint: Optional[str] = None,
    ) -> ContentAnalysis:
        """
        Raises:
            LLMException: If the analysis cannot be produced
        """


class IRoutingConfigProvider(ABC):
    """Source of the current routing configuration."""

    @abstractmethod
    def get_config(self) -> RoutingConfig:
        """Current configuration snapshot."""


class StaticRoutingConfigProvider(IRoutingConfigProvider):
    def __init__(self, config: Optional[RoutingConfig] = None):
        self._config = config or RoutingConfig()

    def get_config(self) -> RoutingConfig:
        return self._config


# ========== Application Services ==========

class AISignalFuser:
    """
    Best-effort AI signals for a routing request.

    Returns None when no analyzer is configured, the ticket has no text,
    or the analysis fails.
    """

    def __init__(
        self,
        analyzer: Optional[IContentAnalyzer] = None,
        config_provider: Optional[IRoutingConfigProvider] = None,
    ):
        self._analyzer = analyzer
        self._config = config_provider or StaticRoutingConfigProvider()

    async def fuse(self, context: RoutingContext) -> Optional[AISignals]:
        if self._analyzer is None:
            return None
        content = context.content
        if not content:
            return None

        try:
            analysis = await self._analyzer.analyze(
                content,
                context.tenant_id,
                channel_type=context.channel_type,
                language_hint=context.language_hint,
            )
        except Exception as e:
            logger.debug(
                "AI signal fusion failed",
                extra={"tenant_id": context.tenant_id, "error": str(e)}
            )
            return None

        mapper = SkillMapper(self._config.get_config().intent_skills)
        return AISignals(
            language=analysis.language or None,
            urgency_level=normalize_urgency(analysis.urgency_level),
            inferred_skills=mapper.map(analysis.primary_intent),
            primary_intent=analysis.primary_intent,
        )


class RoutingService:
    """
    Agent suggestions for tickets.

    All public methods are total: errors are logged and turned into
    None or an empty list.
    """

    def __init__(
        self,
        agent_directory: IAgentDirectory,
        customer_directory: Optional[ICustomerDirectory] = None,
        signal_fuser: Optional[AISignalFuser] = None,
        config_provider: Optional[IRoutingConfigProvider] = None,
    ):
        self._agents = agent_directory
        self._customers = customer_directory
        self._config = config_provider or StaticRoutingConfigProvider()
        self._fuser = signal_fuser or AISignalFuser(config_provider=self._config)

    async def suggest_agent(self, context: RoutingContext) -> Optional[str]:
        """Best agent id for the ticket, or None."""
        try:
            ranked = await self.rank_agents(context)
        except Exception as e:
            logger.error(
                "Failed to suggest agent",
                extra={"tenant_id": context.tenant_id, "error": str(e)}
            )
            return None

        if not ranked:
            logger.debug("No eligible agents found", extra={"tenant_id": context.tenant_id})
            return None
        return ranked[0].agent_id

    async def get_routing_suggestions(self, context: RoutingContext, limit: int = 5) -> List[RoutingSuggestion]:
        """Top agents with per-feature reasoning."""
        try:
            ranked = await self.rank_agents(context)
        except Exception as e:
            logger.error(
                "Failed to get routing suggestions",
                extra={"tenant_id": context.tenant_id, "error": str(e)}
            )
            return []
        return ranked[:limit]

    async def recommend_assignment(
        self,
        tenant_id: str,
        intent: Optional[str] = None,
        category: Optional[str] = None,
        priority: Optional[str] = None,
        urgency_level: Optional[str] = None,
        language: Optional[str] = None,
        entities: Optional[List[dict]] = None,
        customer_id: Optional[str] = None,
        team_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Recommend an assignee from triage output.

        Intent and category are mapped to skills and the detected language
        becomes the language hint. urgency_level and entities are accepted
        for triage compatibility but do not affect the score.
        """
        try:
            config = self._config.get_config()
            skills = merge_skills(
                SkillMapper(config.intent_skills).map(intent),
                SkillMapper(config.category_skills).map(category),
            )
        except Exception as e:
            logger.error(
                "Failed to recommend assignment",
                extra={"tenant_id": tenant_id, "error": str(e)}
            )
            return None

        return await self.suggest_agent(RoutingContext(
            tenant_id=tenant_id,
            customer_id=customer_id,
            team_id=team_id,
            priority=priority,
            required_skills=skills,
            language_hint=language,
        ))

    async def rank_agents(self, context: RoutingContext) -> List[RoutingSuggestion]:
        """
        Full ranking without error suppression.

        Raises:
            Any error from the agent directory
        """
        config = self._config.get_config()

        signals = await self._fuser.fuse(context)
        language, urgency, skills = self._resolve_inputs(context, signals)
        is_vip = await self._is_vip(context)

        candidates = await self._agents.list_candidates(context.tenant_id)
        if not candidates:
            return []

        weights = WeightPolicy(config).get_weights(is_vip, urgency)
        ranked = CandidateScorer(config).rank(candidates, skills, language, context.team_id, weights)

        logger.debug(
            "Ranked routing candidates",
            extra={
                "tenant_id": context.tenant_id,
                "candidates": len(candidates),
                "eligible": len(ranked),
                "is_vip": is_vip,
                "urgency_level": urgency.value,
            }
        )
        return ranked

    @staticmethod
    def _resolve_inputs(
        context: RoutingContext, signals: Optional[AISignals]
    ) -> Tuple[Optional[str], UrgencyLevel, List[str]]:
        if signals is None:
            return context.language_hint or None, UrgencyLevel.MEDIUM, merge_skills(context.required_skills)
        return (
            signals.language or context.language_hint or None,
            signals.urgency_level,
            merge_skills(context.required_skills, signals.inferred_skills),
        )

    async def _is_vip(self, context: RoutingContext) -> bool:
        if not context.customer_id or self._customers is None:
            return False
        try:
            return await self._customers.is_vip(context.tenant_id, context.customer_id)
        except Exception as e:
            logger.debug(
                "VIP check failed",
                extra={"customer_id": context.customer_id, "error": str(e)}
            )
            return False
