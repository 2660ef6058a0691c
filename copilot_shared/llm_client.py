"""
Unified LLM client for multiple providers.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import anthropic
import openai

from .config import Settings, get_settings
from .models import ConversationMessage, LLMProvider, MessageRole

logger = logging.getLogger(__name__)

PERPLEXITY_API_BASE = "https://api.perplexity.ai"


class LLMProviderError(Exception):
    """Raised when a provider call fails or no provider is configured."""

    def __init__(self, message: str, provider: Optional[LLMProvider] = None):
        self.provider = provider
        if provider:
            message = f"[{provider.value}] {message}"
        super().__init__(message)


class LLMClient(ABC):
    """Abstract base class for LLM clients."""

    provider: LLMProvider

    @abstractmethod
    async def generate_response(
        self,
        messages: List[ConversationMessage],
        max_tokens: int = 1000,
        temperature: float = 0.7,
        model: Optional[str] = None,
    ) -> str:
        """Generate a response from the LLM."""


def _to_chat_messages(messages: List[ConversationMessage]) -> List[Dict[str, str]]:
    return [{"role": msg.role.value, "content": msg.content} for msg in messages]


class OpenAIClient(LLMClient):
    """OpenAI API client."""

    provider = LLMProvider.OPENAI

    def __init__(self, api_key: str, organization: str | None = None, project: str | None = None, default_model: str = "gpt-4o"):
        client_kwargs = {"api_key": api_key}
        if organization:
            client_kwargs["organization"] = organization
        if project:
            client_kwargs["project"] = project
        self.client = openai.AsyncOpenAI(**client_kwargs)
        self.default_model = default_model or "gpt-4o"
        # Models that rejected 'max_tokens' once get 'max_completion_tokens' from then on
        self._completion_token_models: set[str] = set()
        logger.info(f"[LLM] OpenAI client initialized (model: {self.default_model})")

    async def generate_response(
        self,
        messages: List[ConversationMessage],
        max_tokens: int = 1000,
        temperature: float = 0.7,
        model: Optional[str] = None,
    ) -> str:
        """Generate response using the chat completions API."""
        selected_model = model or self.default_model
        chat_messages = _to_chat_messages(messages)
        if selected_model in self._completion_token_models:
            try:
                response = await self.client.chat.completions.create(
                    model=selected_model,
                    messages=chat_messages,
                    max_completion_tokens=max_tokens,
                )
            except openai.OpenAIError as e:
                raise LLMProviderError(str(e), self.provider) from e
            return response.choices[0].message.content or ""

        try:
            response = await self.client.chat.completions.create(
                model=selected_model,
                messages=chat_messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except openai.BadRequestError as e:
            # Newer models reject 'max_tokens' and expect 'max_completion_tokens'
            if "max_tokens" not in str(e):
                raise LLMProviderError(str(e), self.provider) from e
            logger.info("[OpenAI] Retrying with 'max_completion_tokens'...")
            self._completion_token_models.add(selected_model)
            try:
                response = await self.client.chat.completions.create(
                    model=selected_model,
                    messages=chat_messages,
                    max_completion_tokens=max_tokens,
                )
            except openai.OpenAIError as e2:
                raise LLMProviderError(str(e2), self.provider) from e2
        except openai.OpenAIError as e:
            raise LLMProviderError(str(e), self.provider) from e
        return response.choices[0].message.content or ""


class AnthropicClient(LLMClient):
    """Anthropic API client."""

    provider = LLMProvider.ANTHROPIC

    def __init__(self, api_key: str, default_model: str = "claude-sonnet-4-20250514"):
        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self.default_model = default_model

    async def generate_response(
        self,
        messages: List[ConversationMessage],
        max_tokens: int = 1000,
        temperature: float = 0.7,
        model: Optional[str] = None,
    ) -> str:
        """Generate response using Anthropic API."""
        # Separate system messages from conversation
        system_messages = [msg.content for msg in messages if msg.role == MessageRole.SYSTEM]
        conversation = [msg for msg in messages if msg.role != MessageRole.SYSTEM]

        request = {
            "model": model or self.default_model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": _to_chat_messages(conversation),
        }
        if system_messages:
            request["system"] = "\n".join(system_messages)

        try:
            response = await self.client.messages.create(**request)
        except anthropic.AnthropicError as e:
            raise LLMProviderError(str(e), self.provider) from e

        texts = [block.text for block in response.content if getattr(block, "type", None) == "text"]
        return "".join(texts)


class PerplexityClient(LLMClient):
    """Perplexity API client (OpenAI-compatible interface)."""

    provider = LLMProvider.PERPLEXITY

    def __init__(self, api_key: str, model: str = "sonar-reasoning"):
        self.client = openai.AsyncOpenAI(api_key=api_key, base_url=PERPLEXITY_API_BASE)
        self.model = model

    async def generate_response(
        self,
        messages: List[ConversationMessage],
        max_tokens: int = 1000,
        temperature: float = 0.7,
        model: Optional[str] = None,
    ) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=model or self.model,
                messages=_to_chat_messages(messages),
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except openai.OpenAIError as e:
            raise LLMProviderError(str(e), self.provider) from e
        return response.choices[0].message.content or ""


class UnifiedLLMClient:
    """
    Unified client that routes requests to the configured LLM providers.
    Falls back through the remaining providers when the preferred one fails.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.clients: Dict[LLMProvider, LLMClient] = {}

        if self.settings.openai_api_key:
            self.clients[LLMProvider.OPENAI] = OpenAIClient(
                self.settings.openai_api_key,
                self.settings.openai_organization,
                self.settings.openai_project,
                self.settings.openai_model,
            )
        if self.settings.anthropic_api_key:
            self.clients[LLMProvider.ANTHROPIC] = AnthropicClient(
                self.settings.anthropic_api_key, self.settings.anthropic_model
            )
        if self.settings.perplexity_api_key:
            self.clients[LLMProvider.PERPLEXITY] = PerplexityClient(
                self.settings.perplexity_api_key, self.settings.perplexity_model
            )

        logger.info(f"[LLM] Available providers: {[p.value for p in self.clients]}")

    def _providers_to_try(self, preferred_provider: Optional[LLMProvider], allow_fallback: bool) -> List[LLMProvider]:
        if preferred_provider in self.clients:
            ordered = [preferred_provider] + [p for p in self.clients if p != preferred_provider]
        else:
            ordered = list(self.clients)
        # Without fallback exactly one provider is called
        return ordered if allow_fallback else ordered[:1]

    async def generate_response(
        self,
        messages: List[ConversationMessage],
        preferred_provider: Optional[LLMProvider] = None,
        max_tokens: int = 1000,
        temperature: float = 0.7,
        model: Optional[str] = None,
        allow_fallback: bool = True,
    ) -> tuple[str, LLMProvider]:
        """
        Generate a response, trying providers in order of preference.

        A model override only applies to the preferred provider; fallbacks use
        their own default models.

        Returns:
            Tuple of (response_text, provider_used)
        """
        providers = self._providers_to_try(preferred_provider, allow_fallback)
        if not providers:
            raise LLMProviderError("No LLM providers configured")

        last_error: Optional[Exception] = None
        for provider in providers:
            client = self.clients[provider]
            provider_model = model if provider == preferred_provider else None
            try:
                logger.debug(f"[LLM] Trying provider: {provider.value}")
                text = await client.generate_response(messages, max_tokens, temperature, provider_model)
                return text, provider
            except LLMProviderError as e:
                logger.warning(f"[LLM] Provider {provider.value} failed: {e}")
                last_error = e

        raise LLMProviderError(f"All LLM providers failed. Last error: {last_error}")

    def get_available_providers(self) -> List[LLMProvider]:
        """Get list of available providers."""
        return list(self.clients.keys())


# Global client instance
_llm_client: Optional[UnifiedLLMClient] = None


def get_llm_client() -> UnifiedLLMClient:
    """Get the global LLM client instance."""
    global _llm_client
    if _llm_client is None:
        _llm_client = UnifiedLLMClient()
    return _llm_client
