"""Provider-agnostic text completion.

Every concrete provider implements ``AIProvider.chat``; ``complete`` is
a convenience that wraps a single prompt (plus optional system prompt)
into a message list.  ``FallbackProvider`` chains several providers in
priority order, and ``ProviderCache`` rebuilds the chain only when the
configured providers change.

Usage::

    cache = ProviderCache()
    provider = cache.get(config)
    if provider is not None:
        text = await provider.complete("Summarize ...", CompletionOptions(max_tokens=200))
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal, TypeVar

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from browsing_kg.config import EngineConfig, ProviderConfig, ProviderKind

logger = logging.getLogger(__name__)

GROQ_BASE_URL = "https://api.groq.com/openai/v1"

_T = TypeVar("_T")


class AIProviderError(RuntimeError):
    """A completion request failed or produced no text."""


@dataclass(frozen=True)
class CompletionOptions:
    max_tokens: int = 1000
    temperature: float = 0.7
    system_prompt: str | None = None


@dataclass(frozen=True)
class ChatMessage:
    role: Literal["system", "user", "assistant"]
    content: str


# =====================================================================
# Base class
# =====================================================================

class AIProvider(ABC):
    """Base class for completion providers."""

    name: str = "provider"

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether the provider has usable credentials."""
        ...

    @abstractmethod
    async def chat(
        self,
        messages: list[ChatMessage],
        options: CompletionOptions | None = None,
    ) -> str:
        """Run a chat completion and return the assistant text.

        Raises:
            AIProviderError: On any transport or API failure.
        """
        ...

    async def complete(
        self,
        prompt: str,
        options: CompletionOptions | None = None,
    ) -> str:
        options = options or CompletionOptions()
        messages: list[ChatMessage] = []
        if options.system_prompt:
            messages.append(ChatMessage("system", options.system_prompt))
        messages.append(ChatMessage("user", prompt))
        return await self.chat(messages, options)


# =====================================================================
# OpenAI-compatible providers
# =====================================================================

class OpenAIProvider(AIProvider):
    """Chat completions through the ``openai`` SDK."""

    name = "OpenAI"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url)

    def is_configured(self) -> bool:
        return self.api_key.startswith("sk-")

    async def chat(
        self,
        messages: list[ChatMessage],
        options: CompletionOptions | None = None,
    ) -> str:
        options = options or CompletionOptions()
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": m.role, "content": m.content} for m in messages],
                max_tokens=options.max_tokens,
                temperature=options.temperature,
            )
        except Exception as exc:
            raise AIProviderError(f"{self.name} API error: {exc}") from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise AIProviderError(f"{self.name} returned an empty completion")
        return content


class GroqProvider(OpenAIProvider):
    """Groq's OpenAI-compatible endpoint."""

    name = "Groq"

    def __init__(self, api_key: str, model: str = "llama-3.3-70b-versatile") -> None:
        super().__init__(api_key, model, base_url=GROQ_BASE_URL)

    def is_configured(self) -> bool:
        return len(self.api_key) > 10


# =====================================================================
# Anthropic
# =====================================================================

class AnthropicProvider(AIProvider):
    """Messages API through the ``anthropic`` SDK.

    The system prompt travels in its own parameter rather than as a
    message.
    """

    name = "Anthropic"

    def __init__(self, api_key: str, model: str = "claude-3-5-haiku-latest") -> None:
        self.api_key = api_key
        self.model = model
        self._client = AsyncAnthropic(api_key=api_key)

    def is_configured(self) -> bool:
        return len(self.api_key) > 10

    async def chat(
        self,
        messages: list[ChatMessage],
        options: CompletionOptions | None = None,
    ) -> str:
        options = options or CompletionOptions()
        system = next((m.content for m in messages if m.role == "system"), None)
        system = system or options.system_prompt

        kwargs: dict = {
            "model": self.model,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "messages": [
                {"role": m.role, "content": m.content}
                for m in messages if m.role != "system"
            ],
        }
        if system:
            kwargs["system"] = system

        try:
            response = await self._client.messages.create(**kwargs)
        except Exception as exc:
            raise AIProviderError(f"{self.name} API error: {exc}") from exc

        text = next((block.text for block in response.content if block.type == "text"), "")
        if not text:
            raise AIProviderError(f"{self.name} returned an empty completion")
        return text


# =====================================================================
# Fallback chain
# =====================================================================

class FallbackProvider(AIProvider):
    """Tries each configured provider in order until one succeeds."""

    name = "Fallback"

    def __init__(self, providers: list[AIProvider]) -> None:
        self.providers = [p for p in providers if p.is_configured()]

    def is_configured(self) -> bool:
        return bool(self.providers)

    async def chat(
        self,
        messages: list[ChatMessage],
        options: CompletionOptions | None = None,
    ) -> str:
        return await self._run_with_fallback(lambda p: p.chat(messages, options))

    async def _run_with_fallback(self, call: Callable[[AIProvider], Awaitable[_T]]) -> _T:
        last_error: Exception | None = None
        for provider in self.providers:
            try:
                return await call(provider)
            except Exception as exc:
                last_error = exc
                logger.warning("AI provider %s failed, trying next: %s", provider.name, exc)
        raise AIProviderError("No AI provider available") from last_error


# =====================================================================
# Factory
# =====================================================================

_PROVIDERS: dict[ProviderKind, Callable[[str, str], AIProvider]] = {
    ProviderKind.OPENAI: OpenAIProvider,
    ProviderKind.ANTHROPIC: AnthropicProvider,
    ProviderKind.GROQ: GroqProvider,
}


def create_provider(config: ProviderConfig) -> AIProvider:
    """Instantiate the provider named by ``config.provider``.

    Raises:
        ValueError: If the provider kind is unknown.
    """
    factory = _PROVIDERS.get(config.provider)
    if factory is None:
        raise ValueError(
            f"Unknown AI provider '{config.provider}'. "
            f"Choose from: {[k.value for k in _PROVIDERS]}"
        )
    return factory(config.api_key, config.effective_model)


class ProviderCache:
    """Memoizes the provider built from the current configuration.

    The cache key is the ordered list of configured-provider
    fingerprints, so a key rotation or model change rebuilds the chain.
    """

    def __init__(self) -> None:
        self._provider: AIProvider | None = None
        self._key: str = ""

    def get(self, config: EngineConfig) -> AIProvider | None:
        if not config.ai_enabled:
            return None

        configured = config.configured_providers()
        if not configured:
            return None

        key = "|".join(p.fingerprint() for p in configured)
        if self._provider is not None and key == self._key:
            return self._provider

        instances = [create_provider(p) for p in configured]
        provider = instances[0] if len(instances) == 1 else FallbackProvider(instances)
        self._provider, self._key = provider, key
        logger.info("Built AI provider %s (%d configured).", provider.name, len(instances))
        return provider

    def invalidate(self) -> None:
        self._provider = None
        self._key = ""


async def test_connection(provider: AIProvider | None) -> tuple[bool, str | None]:
    """Send a tiny prompt to check credentials and reachability.

    Returns:
        ``(connected, error_message)``.
    """
    if provider is None:
        return False, "AI is not configured"
    if not provider.is_configured():
        return False, "Provider is not properly configured"
    try:
        await provider.complete(
            'Respond with just the word "ok".',
            CompletionOptions(max_tokens=10, temperature=0),
        )
    except Exception as exc:
        return False, str(exc) or "Connection failed"
    return True, None
