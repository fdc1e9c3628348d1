"""
Routing Domain Entities
========================

Read projections and results of agent routing. Nothing here is
persisted by the routing module; agents and tickets are owned elsewhere.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from supportdesk.config import UrgencyLevel


@dataclass
class RoutingContext:
    """What is known about a ticket when asking for an agent."""

    tenant_id: str
    customer_id: Optional[str] = None
    team_id: Optional[str] = None
    priority: Optional[str] = None
    required_skills: List[str] = field(default_factory=list)
    subject: Optional[str] = None
    description: Optional[str] = None
    channel_type: Optional[str] = None
    language_hint: Optional[str] = None

    @property
    def content(self) -> str:
        return f"{self.subject or ''} {self.description or ''}".strip()


@dataclass
class AgentCandidate:
    """
    Agent as seen by the scorer.

    current_load counts the agent's tickets in an open status.
    """

    id: str
    max_concurrent_tickets: int
    name: Optional[str] = None
    skills: List[str] = field(default_factory=list)
    languages: List[str] = field(default_factory=list)
    team_ids: List[str] = field(default_factory=list)
    current_load: int = 0
    created_at: Optional[datetime] = None

    @property
    def has_capacity(self) -> bool:
        return self.current_load < self.max_concurrent_tickets

    def is_member_of(self, team_id: str) -> bool:
        return team_id in self.team_ids


@dataclass
class ContentAnalysis:
    """Raw output of a content analyzer; values are unvalidated."""

    language: Optional[str] = None
    urgency_level: Optional[str] = None
    primary_intent: Optional[str] = None


@dataclass
class AISignals:
    """Routing hints derived from ticket text."""

    language: Optional[str] = None
    urgency_level: UrgencyLevel = UrgencyLevel.MEDIUM
    inferred_skills: List[str] = field(default_factory=list)
    primary_intent: Optional[str] = None


@dataclass
class ScoreBreakdown:
    """Feature values in [0, 1] behind a score."""

    capacity_score: float
    skill_match: float
    language_match: float
    team_align: float
    performance_score: float


@dataclass
class RoutingSuggestion:
    """One ranked agent with the reasoning behind its score."""

    agent_id: str
    score: float
    breakdown: ScoreBreakdown
    matched_skills: List[str]
    missing_skills: List[str]
    current_load: int
    max_capacity: int
    agent_name: Optional[str] = None
    language_match_details: Optional[str] = None
    team_match_details: Optional[str] = None


class ContentAnalysisPromptBuilder:
    """Builds prompts for language, urgency and intent detection."""

    SYSTEM_PROMPT = """You analyze customer support messages for ticket routing.

Detect:
1. Language: ISO 639-1 code of the message (for example "en", "de", "fr")
2. Urgency: how time-critical the request is
3. Intent: a short snake_case label for what the customer wants

URGENCY LEVELS:
- critical: Production down, security incident, data loss
- high: Major feature broken, significant business impact
- medium: Minor issues, workarounds available
- low: Questions, feedback, nice-to-have

Typical intents: billing_question, refund_request, cancellation, technical_issue,
login_problem, integration_help, api_question, onboarding_help, general_inquiry.

Respond ONLY in JSON format:
{
    "language": "en",
    "urgency": "level",
    "intent": "label"
}"""

    @classmethod
    def build_prompt(cls, content: str, channel_type: Optional[str] = None,
                     language_hint: Optional[str] = None) -> str:
        lines = []
        if channel_type:
            lines.append(f"Channel: {channel_type}")
        if language_hint:
            lines.append(f"Language hint: {language_hint}")
        header = "\n".join(lines)
        return f"""{header}

Message:
{content}

Analyze this message (respond with JSON only):""".lstrip()

    @classmethod
    def get_system_prompt(cls) -> str:
        return cls.SYSTEM_PROMPT
