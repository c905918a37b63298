"""Embedding provider implementations and the provider registry.

Two built-in implementations of :class:`IEmbeddingProvider`:

    1. OpenAIEmbeddingProvider: text-embedding-3-small (1536 dims) and
       friends; requires an API key and is billed per token.
    2. OllamaEmbeddingProvider: nomic-embed-text (768 dims) served by a
       local Ollama instance; free, no key.

Providers are created from configuration through
:func:`create_embedding_provider`, which dispatches on the config's
``type``.  Additional provider types are added with
:func:`register_embedding_provider` at startup; registration is
append-only.
"""

from __future__ import annotations

from typing import Callable

import structlog

from stack_rag.config.settings import Settings
from stack_rag.interfaces.embedding_provider import IEmbeddingProvider
from stack_rag.models.config import (
    EmbeddingProviderConfig,
    OllamaEmbeddingConfig,
    OpenAIEmbeddingConfig,
)
from stack_rag.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider
from stack_rag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from stack_rag.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)

ProviderFactory = Callable[[EmbeddingProviderConfig], IEmbeddingProvider]

_PROVIDER_FACTORIES: dict[str, ProviderFactory] = {
    "openai": lambda config: OpenAIEmbeddingProvider(config),  # type: ignore[arg-type]
    "ollama": lambda config: OllamaEmbeddingProvider(config),  # type: ignore[arg-type]
}


def register_embedding_provider(provider_type: str, factory: ProviderFactory) -> None:
    """Register a factory for a custom provider type.

    Raises
    ------
    ConfigurationError
        If *provider_type* is already registered.
    """
    if provider_type in _PROVIDER_FACTORIES:
        raise ConfigurationError(
            message=f"Embedding provider type '{provider_type}' is already registered"
        )
    _PROVIDER_FACTORIES[provider_type] = factory
    logger.info("embedding_provider_registered", provider_type=provider_type)


def available_embedding_providers() -> list[str]:
    return sorted(_PROVIDER_FACTORIES)


def create_embedding_provider(config: EmbeddingProviderConfig) -> IEmbeddingProvider:
    """Instantiate the provider registered for ``config.type``.

    Raises
    ------
    ConfigurationError
        If no factory is registered for the type.
    """
    factory = _PROVIDER_FACTORIES.get(config.type)
    if factory is None:
        raise ConfigurationError(
            message=(
                f"Unknown embedding provider type: {config.type}. "
                f"Available providers: {', '.join(available_embedding_providers())}"
            )
        )
    return factory(config)


def create_provider_from_settings(settings: Settings | None = None) -> IEmbeddingProvider:
    """Build a provider from environment settings alone.

    Reads ``EMBEDDING_PROVIDER`` (default ``openai``), ``OPENAI_API_KEY``,
    ``OPENAI_BASE_URL``, ``OLLAMA_BASE_URL`` and ``EMBEDDING_MODEL``.

    Raises
    ------
    ConfigurationError
        If OpenAI is selected without an API key, or the provider type is
        not one of the built-ins.
    """
    settings = settings or Settings()
    provider_type = settings.embedding_provider

    config: EmbeddingProviderConfig
    if provider_type == "openai":
        if not settings.openai_api_key:
            raise ConfigurationError(
                message="OPENAI_API_KEY environment variable is required when using OpenAI provider",
                provider_name="openai",
            )
        config = OpenAIEmbeddingConfig(
            api_key=settings.openai_api_key,
            model=settings.embedding_model or "text-embedding-3-small",
            base_url=settings.openai_base_url or None,
            organization=settings.openai_organization or None,
        )
    elif provider_type == "ollama":
        config = OllamaEmbeddingConfig(
            base_url=settings.ollama_base_url,
            model=settings.embedding_model or "nomic-embed-text",
        )
    else:
        raise ConfigurationError(
            message=f"Unknown provider type: {provider_type}. Supported: openai, ollama"
        )
    return create_embedding_provider(config)


__all__ = [
    "OllamaEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "available_embedding_providers",
    "create_embedding_provider",
    "create_provider_from_settings",
    "register_embedding_provider",
]
