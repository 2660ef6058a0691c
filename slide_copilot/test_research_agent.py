import asyncio
from types import SimpleNamespace

import httpx
import openai
import pytest

from copilot_shared.config import Settings
from copilot_shared.llm_client import LLMProviderError, OpenAIClient, UnifiedLLMClient
from copilot_shared.models import LLMProvider

from .conftest import FakeLLMClient, FakeResearchAdapter
from .exceptions import ResearchFailure
from .research_agent import LLMResearchAdapter, ResearchAdapter, research_with_timeout


class StubProvider:
    def __init__(self, provider, text=None, error=None):
        self.provider = provider
        self.text = text
        self.error = error
        self.models = []

    async def generate_response(self, messages, max_tokens=1000, temperature=0.7, model=None):
        self.models.append(model)
        if self.error is not None:
            raise self.error
        return self.text


def unified_client(*stubs):
    client = UnifiedLLMClient(Settings(openai_api_key=None, anthropic_api_key=None, perplexity_api_key=None))
    client.clients = {stub.provider: stub for stub in stubs}
    return client


def test_fake_adapter_satisfies_protocol():
    assert isinstance(FakeResearchAdapter(), ResearchAdapter)
    assert isinstance(LLMResearchAdapter(llm_client=FakeLLMClient()), ResearchAdapter)


def test_llm_adapter_returns_summary():
    client = FakeLLMClient(text="  Solar panels are made of silicon cells.  ")
    adapter = LLMResearchAdapter(llm_client=client, preferred_provider=LLMProvider.PERPLEXITY, model="sonar")

    result = asyncio.run(adapter.research("solar panels"))

    assert result.summary == "Solar panels are made of silicon cells."
    assert result.provider == "openai"
    assert client.calls[0]["preferred_provider"] is LLMProvider.PERPLEXITY
    assert client.calls[0]["model"] == "sonar"
    assert client.calls[0]["allow_fallback"] is False
    assert "solar panels" in client.calls[0]["messages"][1].content


@pytest.mark.parametrize(
    "client",
    [FakeLLMClient(text="   "), FakeLLMClient(error=LLMProviderError("quota exceeded"))],
)
def test_llm_adapter_failures(client):
    adapter = LLMResearchAdapter(llm_client=client)

    with pytest.raises(ResearchFailure) as excinfo:
        asyncio.run(adapter.research("solar panels"))

    assert excinfo.value.topic == "solar panels"
    assert not excinfo.value.timed_out


def test_timeout_surfaces_as_research_failure():
    adapter = FakeResearchAdapter(delay=1.0)

    with pytest.raises(ResearchFailure) as excinfo:
        asyncio.run(research_with_timeout(adapter, "solar panels", 0.01))

    assert excinfo.value.timed_out
    assert excinfo.value.to_dict()["code"] == "research_failure"


def test_adapter_errors_are_wrapped_once():
    adapter = FakeResearchAdapter(error=ConnectionError("offline"))

    with pytest.raises(ResearchFailure) as excinfo:
        asyncio.run(research_with_timeout(adapter, "solar panels", 1.0))

    assert isinstance(excinfo.value.cause, ConnectionError)
    assert adapter.calls == ["solar panels"]


def test_plain_string_results_are_accepted():
    class StringAdapter:
        async def research(self, topic):
            return f"notes on {topic}"

    result = asyncio.run(research_with_timeout(StringAdapter(), "solar panels", None))

    assert result.summary == "notes on solar panels"


def test_unified_client_falls_back_to_next_provider():
    failing = StubProvider(LLMProvider.PERPLEXITY, error=LLMProviderError("down", LLMProvider.PERPLEXITY))
    backup = StubProvider(LLMProvider.OPENAI, text="from openai")
    client = unified_client(backup, failing)

    text, provider = asyncio.run(
        client.generate_response([], preferred_provider=LLMProvider.PERPLEXITY, model="sonar")
    )

    assert (text, provider) == ("from openai", LLMProvider.OPENAI)
    assert failing.models == ["sonar"]
    assert backup.models == [None]


def test_unified_client_without_fallback_or_providers():
    failing = StubProvider(LLMProvider.PERPLEXITY, error=LLMProviderError("down"))
    backup = StubProvider(LLMProvider.OPENAI, text="unused")

    with pytest.raises(LLMProviderError):
        asyncio.run(
            unified_client(failing, backup).generate_response(
                [], preferred_provider=LLMProvider.PERPLEXITY, allow_fallback=False
            )
        )
    with pytest.raises(LLMProviderError):
        asyncio.run(unified_client().generate_response([]))

    assert backup.models == []


def counting_providers():
    return (
        StubProvider(LLMProvider.PERPLEXITY, error=LLMProviderError("transient", LLMProvider.PERPLEXITY)),
        StubProvider(LLMProvider.OPENAI, error=LLMProviderError("transient", LLMProvider.OPENAI)),
        StubProvider(LLMProvider.ANTHROPIC, text="notes from anthropic"),
    )


def test_failing_research_backend_is_called_exactly_once():
    perplexity, openai_stub, anthropic_stub = providers = counting_providers()
    adapter = LLMResearchAdapter(llm_client=unified_client(*providers), preferred_provider=LLMProvider.PERPLEXITY)

    with pytest.raises(ResearchFailure) as excinfo:
        asyncio.run(research_with_timeout(adapter, "solar panels", 5))

    assert "transient" in str(excinfo.value)
    assert len(perplexity.models) == 1
    assert openai_stub.models == []
    assert anthropic_stub.models == []


def test_research_without_preferred_provider_still_makes_one_call():
    providers = counting_providers()
    adapter = LLMResearchAdapter(llm_client=unified_client(*providers))

    with pytest.raises(ResearchFailure):
        asyncio.run(adapter.research("solar panels"))

    assert sum(len(p.models) for p in providers) == 1


def test_research_fallback_is_opt_in():
    providers = counting_providers()
    adapter = LLMResearchAdapter(
        llm_client=unified_client(*providers), preferred_provider=LLMProvider.PERPLEXITY, allow_fallback=True
    )

    result = asyncio.run(adapter.research("solar panels"))

    assert result.summary == "notes from anthropic"
    assert result.provider == "anthropic"


def test_research_fallback_follows_settings():
    default = LLMResearchAdapter.from_settings(Settings())
    enabled = LLMResearchAdapter.from_settings(Settings(research_allow_fallback=True))

    assert default.allow_fallback is False
    assert enabled.allow_fallback is True


def test_openai_completion_token_switch_is_remembered_per_model():
    calls = []

    async def create(**kwargs):
        calls.append(kwargs)
        if "max_tokens" in kwargs:
            response = httpx.Response(400, request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))
            raise openai.BadRequestError("Unsupported parameter: 'max_tokens'", response=response, body=None)
        message = SimpleNamespace(content="ok")
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    client = OpenAIClient("sk-test", default_model="o1")
    client.client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))

    assert asyncio.run(client.generate_response([])) == "ok"
    assert asyncio.run(client.generate_response([])) == "ok"

    assert ["max_tokens" in call for call in calls] == [True, False, False]
