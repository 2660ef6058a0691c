import asyncio
from typing import List, Optional

import pytest

from copilot_shared.config import Settings
from copilot_shared.models import LLMProvider

from .document import Slide
from .research_agent import ResearchResult
from .session import CopilotSession


class FakeResearchAdapter:
    """Research backend double; can fail, stall, or wait for a release signal."""

    def __init__(
        self,
        summary: str = "Solar panels turn sunlight into electricity using photovoltaic cells.",
        error: Optional[BaseException] = None,
        delay: float = 0.0,
        block: bool = False,
    ) -> None:
        self.summary = summary
        self.error = error
        self.delay = delay
        self.block = block
        self.release = asyncio.Event()
        self.calls: List[str] = []

    async def research(self, topic: str) -> ResearchResult:
        self.calls.append(topic)
        if self.block:
            await self.release.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return ResearchResult(topic=topic, summary=self.summary, provider="fake")


class FakeComposer:
    def __init__(self, error: Optional[BaseException] = None) -> None:
        self.error = error
        self.calls: List[dict] = []

    async def compose(self, *, topic: str, research: str, presentation_topic: str) -> Slide:
        self.calls.append({"topic": topic, "research": research, "presentation_topic": presentation_topic})
        if self.error is not None:
            raise self.error
        return Slide(
            title="How solar panels work",
            content="Photovoltaic cells, inverters and the grid",
            background_image_description="rooftop solar panels",
            spoken_narration="Let's see how sunlight becomes power.",
        )


class FakeLLMClient:
    """Stands in for UnifiedLLMClient.generate_response."""

    def __init__(self, text: str = "", error: Optional[BaseException] = None) -> None:
        self.text = text
        self.error = error
        self.calls: List[dict] = []

    async def generate_response(self, messages, **kwargs):
        self.calls.append({"messages": messages, **kwargs})
        if self.error is not None:
            raise self.error
        return self.text, LLMProvider.OPENAI


@pytest.fixture
def settings() -> Settings:
    return Settings(research_timeout_seconds=1.0)


@pytest.fixture
def research_adapter() -> FakeResearchAdapter:
    return FakeResearchAdapter()


@pytest.fixture
def composer() -> FakeComposer:
    return FakeComposer()


@pytest.fixture
def make_session(settings, research_adapter, composer):
    def _make(session_id: Optional[str] = None, **kwargs) -> CopilotSession:
        kwargs.setdefault("research_adapter", research_adapter)
        kwargs.setdefault("composer", composer)
        kwargs.setdefault("settings", settings)
        return CopilotSession(session_id, **kwargs)

    return _make
