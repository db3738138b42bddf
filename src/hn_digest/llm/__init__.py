"""Language model provider adapters."""

from hn_digest.llm.provider import (
    PROVIDER_PROFILES,
    ChatMessage,
    ChatProvider,
    OpenAICompatibleProvider,
    ProviderProfile,
    build_provider,
)

__all__ = [
    "PROVIDER_PROFILES",
    "ChatMessage",
    "ChatProvider",
    "OpenAICompatibleProvider",
    "ProviderProfile",
    "build_provider",
]
