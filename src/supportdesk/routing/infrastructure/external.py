"""
Routing External Service Adapters
==================================

LLM-backed content analysis used for AI routing signals.

Implements the application layer IContentAnalyzer on top of the
infrastructure ILLMClient.
"""

import json
from typing import Optional

from supportdesk.config import settings
from supportdesk.core import LLMException
from supportdesk.infrastructure.llm import ILLMClient, create_llm_client
from supportdesk.routing.application import IContentAnalyzer
from supportdesk.routing.domain import ContentAnalysis, ContentAnalysisPromptBuilder
from supportdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def extract_json(text: str) -> dict:
    """Parse a JSON object, tolerating a surrounding markdown code fence."""
    if "```json" in text:
        text = text.split("```json")[1].split("```")[0]
    elif "```" in text:
        text = text.split("```")[1].split("```")[0]
    data = json.loads(text.strip())
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    return data


class LLMContentAnalyzer(IContentAnalyzer):
    """
    Detects language, urgency and intent with one chat completion.

    Raises LLMException on transport or parse failures; callers treat
    that as "no signal".
    """

    def __init__(self, llm_client: ILLMClient):
        self._llm = llm_client

    async def analyze(
        self,
        content: str,
        tenant_id: str,
        channel_type: Optional[str] = None,
        language_hint: Optional[str] = None,
    ) -> ContentAnalysis:
        messages = [
            {"role": "system", "content": ContentAnalysisPromptBuilder.get_system_prompt()},
            {"role": "user", "content": ContentAnalysisPromptBuilder.build_prompt(
                content, channel_type=channel_type, language_hint=language_hint
            )},
        ]

        try:
            response = await self._llm.chat_completion(
                messages=messages,
                temperature=settings.llm_temperature,
                max_tokens=settings.llm_max_tokens,
                operation="content_analysis"
            )
            data = extract_json(response.content)
        except LLMException:
            raise
        except (json.JSONDecodeError, ValueError) as e:
            raise LLMException(f"Failed to parse content analysis response: {e}")
        except Exception as e:
            raise LLMException(f"Content analysis failed: {e}")

        logger.debug(
            "Content analyzed",
            extra={"tenant_id": tenant_id, "intent": data.get("intent"), "urgency": data.get("urgency")}
        )
        return ContentAnalysis(
            language=_optional_str(data.get("language")),
            urgency_level=_optional_str(data.get("urgency")),
            primary_intent=_optional_str(data.get("intent")),
        )


def _optional_str(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


_analyzer: Optional[LLMContentAnalyzer] = None
_analyzer_resolved = False


def get_content_analyzer() -> Optional[LLMContentAnalyzer]:
    """Process-wide analyzer, or None when no LLM provider is configured."""
    global _analyzer, _analyzer_resolved
    if not _analyzer_resolved:
        client = create_llm_client()
        _analyzer = LLMContentAnalyzer(client) if client is not None else None
        _analyzer_resolved = True
    return _analyzer
