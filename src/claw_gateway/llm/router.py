from __future__ import annotations

from .errors import UnsupportedProvider
from .models import ProviderKind, RuntimeConfig

PROVIDER_ALIASES: dict[str, ProviderKind] = {
    "ollama": ProviderKind.OLLAMA,
    "openai": ProviderKind.OPENAI_COMPATIBLE,
    "openrouter": ProviderKind.OPENAI_COMPATIBLE,
    "copilot": ProviderKind.OPENAI_COMPATIBLE,
    "github-copilot": ProviderKind.OPENAI_COMPATIBLE,
    "anthropic": ProviderKind.ANTHROPIC,
    "gemini": ProviderKind.GEMINI,
    "google": ProviderKind.GEMINI,
    "google-gemini": ProviderKind.GEMINI,
}

COPILOT_ALIASES = frozenset({"copilot", "github-copilot"})


def is_copilot(config: RuntimeConfig) -> bool:
    return config.normalized_provider in COPILOT_ALIASES


class ProviderRouter:
    def __init__(self, aliases: dict[str, ProviderKind] | None = None) -> None:
        self.aliases = aliases or PROVIDER_ALIASES

    def resolve_provider(self, config: RuntimeConfig) -> ProviderKind:
        name = config.normalized_provider
        kind = self.aliases.get(name)
        if kind is None:
            raise UnsupportedProvider(name)
        # OpenAI subscription credentials go to the Codex responses endpoint
        if name == "openai" and config.uses_oauth:
            return ProviderKind.OPENAI_CODEX
        return kind
