"""
LLM Client Infrastructure
=========================

Provider adapters used by routing content analysis.

ILLMClient.chat_completion owns timing, error wrapping and usage export;
each provider only implements _complete(). The routing module depends on
ILLMClient, never on an SDK.
"""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple

from openai import AsyncOpenAI
from zai import ZaiClient

from supportdesk.config import settings
from supportdesk.core import ConfigurationException, LLMException
from supportdesk.shared.infrastructure.grafana import get_grafana_exporter
from supportdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

# content, prompt_tokens, completion_tokens
Completion = Tuple[str, int, int]


@dataclass
class ChatCompletionResult:
    content: str
    model: str
    prompt_tokens: int
    completion_tokens: int
    latency_ms: int

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class ILLMClient(ABC):
    """Chat completion against one configured model."""

    model: str = "unknown"

    @abstractmethod
    async def _complete(self, messages: List[dict], temperature: float, max_tokens: int) -> Completion:
        """Provider call; may raise anything, chat_completion wraps it."""

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.1,
        max_tokens: int = 300,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """
        Raises:
            LLMException: If the provider call fails
        """
        started = time.perf_counter()
        try:
            content, prompt_tokens, completion_tokens = await self._complete(messages, temperature, max_tokens)
        except Exception as e:
            logger.warning("LLM call failed", extra={"model": self.model, "operation": operation, "error": str(e)})
            raise LLMException(f"Chat completion failed: {e}")

        result = ChatCompletionResult(
            content=content,
            model=self.model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            latency_ms=int((time.perf_counter() - started) * 1000),
        )
        exporter = get_grafana_exporter()
        if exporter.is_enabled():
            await exporter.export_llm_metrics(
                model=result.model,
                prompt_tokens=result.prompt_tokens,
                completion_tokens=result.completion_tokens,
                latency_ms=result.latency_ms,
                operation=operation,
            )
        return result


class ZAIILLMClient(ILLMClient):
    """
    GLM models through the Z.AI SDK.

    The SDK is synchronous; calls run in a worker thread.
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        api_key = api_key or settings.zai_api_key
        if not api_key:
            raise ConfigurationException("Z.AI API key not configured")
        self._client = ZaiClient(api_key=api_key)
        self.model = model or settings.llm_model

    async def _complete(self, messages: List[dict], temperature: float, max_tokens: int) -> Completion:
        response = await asyncio.to_thread(
            self._client.chat.completions.create,
            model=self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        content = response.choices[0].message.content or ""
        # usage is optional in Z.AI responses; fall back to character counts
        usage = getattr(response, "usage", None)
        return (
            content,
            getattr(usage, "prompt_tokens", None) or len(str(messages)),
            getattr(usage, "completion_tokens", None) or len(content),
        )


class OpenAILLMClient(ILLMClient):
    """OpenAI, or any OpenAI-compatible endpoint through base_url."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None
    ):
        api_key = api_key or settings.openai_api_key
        if not api_key:
            raise ConfigurationException("OpenAI API key not configured")
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url or settings.openai_base_url)
        self.model = model or settings.llm_model

    async def _complete(self, messages: List[dict], temperature: float, max_tokens: int) -> Completion:
        response = await self._client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        usage = response.usage
        return (
            response.choices[0].message.content or "",
            usage.prompt_tokens if usage else 0,
            usage.completion_tokens if usage else 0,
        )


class MockLLMClient(ILLMClient):
    """
    Keyword-driven analysis for local runs and tests.

    Answers in the same fenced-JSON shape real models tend to use.
    """

    model = "mock-model"
    _URGENT_MARKERS = ("urgent", "asap", "down", "outage", "immediately")
    _INTENT_MARKERS = (
        ("billing_question", ("invoice", "billing", "refund")),
        ("technical_issue", ("error", "login", "bug")),
    )

    async def _complete(self, messages: List[dict], temperature: float, max_tokens: int) -> Completion:
        text = str(messages[-1].get("content", "")).lower() if messages else ""

        urgency = "high" if any(marker in text for marker in self._URGENT_MARKERS) else "medium"
        intent = next(
            (name for name, markers in self._INTENT_MARKERS if any(m in text for m in markers)),
            "general_inquiry",
        )
        body = json.dumps({"language": "en", "urgency": urgency, "intent": intent})
        return f"```json\n{body}\n```", 100, len(body.split())


def create_llm_client(provider: Optional[str] = None) -> Optional[ILLMClient]:
    """
    Build the configured LLM client, or None when provider is "none".

    Raises:
        ConfigurationException: Unknown provider, or a provider without its API key
    """
    provider = provider or settings.llm_provider
    logger.info("Creating LLM client", extra={"provider": provider})

    factories = {
        "mock": MockLLMClient,
        "zai": ZAIILLMClient,
        "openai": OpenAILLMClient,
    }
    if provider == "none":
        return None
    if provider not in factories:
        raise ConfigurationException(f"Unknown LLM provider: {provider}")
    return factories[provider]()
