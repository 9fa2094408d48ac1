"""Engine configuration — single entry point for all tunable settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ProviderKind(str, Enum):
    """Available AI completion providers."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GROQ = "groq"


# ── Default models per provider (first entry of each provider's list) ──
DEFAULT_MODELS: dict[ProviderKind, str] = {
    ProviderKind.OPENAI: "gpt-4o-mini",
    ProviderKind.ANTHROPIC: "claude-3-5-haiku-latest",
    ProviderKind.GROQ: "llama-3.3-70b-versatile",
}


@dataclass(frozen=True)
class ProviderConfig:
    """Credentials and model selection for a single AI provider.

    A list of these, in priority order, forms the fallback chain: the
    first entry is the primary provider, later entries are tried when
    an earlier one fails.
    """

    provider: ProviderKind
    api_key: str = ""
    model: str = ""
    custom_model: str = ""

    @property
    def effective_model(self) -> str:
        return self.custom_model or self.model or DEFAULT_MODELS[self.provider]

    @property
    def has_key(self) -> bool:
        return bool(self.api_key.strip())

    def fingerprint(self) -> str:
        """Cache key for this provider (never contains the full key)."""
        return f"{self.provider.value}:{self.api_key[:8]}:{self.effective_model}"


@dataclass
class EngineConfig:
    """Complete engine configuration.

    Attributes:
        topic_active_threshold: Member pages needed for a topic to be
            ``active`` rather than ``emerging``.
        topic_dormant_days: Days since the most recent member-page visit
            after which a topic is ``dormant``.
        engine_interval_seconds: Period of the deterministic knowledge pass.
        engine_initial_delay_seconds: Delay before the first knowledge pass.
        ai_interval_seconds: Period of the AI pass.
        ai_initial_delay_seconds: Delay before the first AI pass.
        summary_batch_size: Pages summarized per AI pass.
        matcher_lookback_hours: Candidate window for constellation matching
            when no cursor has been persisted yet.
        matcher_max_pages: Candidate page cap per matching prompt.
        matcher_max_topics: Recent topics offered per matching prompt.
        ai_enabled: Master switch for the AI pass.
        ai_providers: Provider chain in priority order.
    """

    # Topic lifecycle
    topic_active_threshold: int = 5
    topic_dormant_days: int = 14

    # Scheduling
    engine_interval_seconds: float = 5 * 60
    engine_initial_delay_seconds: float = 30
    ai_interval_seconds: float = 15 * 60
    ai_initial_delay_seconds: float = 60

    # AI pass
    summary_batch_size: int = 10
    matcher_lookback_hours: int = 24
    matcher_max_pages: int = 50
    matcher_max_topics: int = 50

    # Providers
    ai_enabled: bool = False
    ai_providers: list[ProviderConfig] = field(default_factory=list)

    def configured_providers(self) -> list[ProviderConfig]:
        """Providers that carry an API key, in priority order."""
        return [p for p in self.ai_providers if p.has_key]
