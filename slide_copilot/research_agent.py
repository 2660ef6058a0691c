"""Research boundary: topic in, researched text out (or a ResearchFailure)."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional, Protocol, runtime_checkable

from pydantic import BaseModel

from copilot_shared.config import Settings, get_settings
from copilot_shared.llm_client import LLMProviderError, UnifiedLLMClient, get_llm_client
from copilot_shared.models import ConversationMessage, LLMProvider, MessageRole

from .exceptions import ResearchFailure

logger = logging.getLogger(__name__)

# Declared minimum for the "research" action's topic argument
RESEARCH_TOPIC_MIN_LENGTH = 5


class ResearchResult(BaseModel):
    topic: str
    summary: str
    provider: Optional[str] = None
    duration_ms: int = 0


@runtime_checkable
class ResearchAdapter(Protocol):
    """Anything that can research a topic. May be slow; may fail transiently."""

    async def research(self, topic: str) -> ResearchResult:
        ...


class LLMResearchAdapter:
    """Research adapter backed by the unified LLM client.

    Args:
        llm_client: Client to use; defaults to the process-wide client, resolved lazily.
        preferred_provider: Provider to try first (e.g. Perplexity for web-grounded answers).
        model: Optional model override for the preferred provider.
        allow_fallback: Let the client try other providers after the first one fails.
            Off by default, so one research call makes one backend call.
    """

    SYSTEM_PROMPT = (
        "You are an expert researcher who provides comprehensive, well-structured "
        "research summaries that a presenter can turn into slides."
    )

    def __init__(
        self,
        llm_client: Optional[UnifiedLLMClient] = None,
        preferred_provider: Optional[LLMProvider] = None,
        model: Optional[str] = None,
        max_tokens: int = 2000,
        allow_fallback: bool = False,
    ) -> None:
        self._llm_client = llm_client
        self.preferred_provider = preferred_provider
        self.model = model
        self.max_tokens = max_tokens
        self.allow_fallback = allow_fallback

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "LLMResearchAdapter":
        settings = settings or get_settings()
        provider = LLMProvider(settings.research_provider) if settings.research_provider else None
        return cls(
            preferred_provider=provider,
            model=settings.research_model,
            allow_fallback=settings.research_allow_fallback,
        )

    @property
    def llm_client(self) -> UnifiedLLMClient:
        if self._llm_client is None:
            self._llm_client = get_llm_client()
        return self._llm_client

    async def research(self, topic: str) -> ResearchResult:
        research_prompt = f"""
Conduct focused research on: "{topic}"

Provide a well-structured research summary that includes:
1. Key concepts and definitions
2. Important facts, figures and examples
3. Common misconceptions or open challenges
4. Practical applications and real-world relevance

Research topic: {topic}
"""
        messages = [
            ConversationMessage(role=MessageRole.SYSTEM, content=self.SYSTEM_PROMPT),
            ConversationMessage(role=MessageRole.USER, content=research_prompt),
        ]

        start = time.time()
        logger.info(f"🔍 Researching topic: {topic}")
        try:
            summary, provider = await self.llm_client.generate_response(
                messages,
                preferred_provider=self.preferred_provider,
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=0.3,
                allow_fallback=self.allow_fallback,
            )
        except LLMProviderError as e:
            raise ResearchFailure(topic, e) from e

        if not summary or not summary.strip():
            raise ResearchFailure(topic, ValueError("research backend returned no text"))

        duration_ms = int((time.time() - start) * 1000)
        logger.info(f"✅ Research completed via {provider.value} in {duration_ms}ms")
        return ResearchResult(topic=topic, summary=summary.strip(), provider=provider.value, duration_ms=duration_ms)


async def research_with_timeout(adapter: ResearchAdapter, topic: str, timeout: Optional[float]) -> ResearchResult:
    """Run one research call under ``timeout`` seconds. Never retries.

    Timeouts and any adapter error surface as ResearchFailure.
    """
    try:
        result = await asyncio.wait_for(adapter.research(topic), timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.warning(f"⚠️ Research on {topic!r} timed out after {timeout}s")
        raise ResearchFailure(topic, e, timed_out=True) from e
    except ResearchFailure:
        raise
    except Exception as e:
        logger.warning(f"⚠️ Research on {topic!r} failed: {e}")
        raise ResearchFailure(topic, e) from e

    if isinstance(result, str):
        result = ResearchResult(topic=topic, summary=result)
    return result
