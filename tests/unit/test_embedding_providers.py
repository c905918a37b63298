"""Unit tests for embedding provider adapters: OpenAI, Ollama and the registry."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from stack_rag.config.settings import Settings
from stack_rag.models.config import CustomEmbeddingConfig, OllamaEmbeddingConfig, OpenAIEmbeddingConfig
from stack_rag.utils.errors import ConfigurationError, EmbeddingProviderError, RateLimitError


def _settings(**overrides) -> Settings:
    defaults = {
        "embedding_provider": "openai",
        "openai_api_key": "sk-test",
        "openai_base_url": "",
        "embedding_model": "",
        "ollama_base_url": "http://localhost:11434",
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


def _openai_response(vectors: list[list[float]]) -> MagicMock:
    response = MagicMock()
    response.data = [MagicMock(embedding=v) for v in vectors]
    response.usage = MagicMock(total_tokens=12)
    return response


# ======================================================================
# OpenAI Embedding Provider
# ======================================================================


class TestOpenAIEmbeddingProvider:
    @pytest.fixture()
    def config(self) -> OpenAIEmbeddingConfig:
        return OpenAIEmbeddingConfig(api_key="sk-test")

    def test_requires_api_key(self) -> None:
        from stack_rag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

        with pytest.raises(ConfigurationError):
            OpenAIEmbeddingProvider(OpenAIEmbeddingConfig(api_key=""))

    def test_known_model_dimensions(self, config: OpenAIEmbeddingConfig) -> None:
        from stack_rag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

        provider = OpenAIEmbeddingProvider(config)
        assert provider.type == "openai"
        assert provider.model == "text-embedding-3-small"
        assert provider.dimensions == 1536
        assert provider.is_available() is True

        large = OpenAIEmbeddingProvider(OpenAIEmbeddingConfig(api_key="k", model="text-embedding-3-large"))
        assert large.dimensions == 3072

    def test_client_receives_base_url_and_organization(self) -> None:
        from stack_rag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

        with patch(
            "stack_rag.providers.embedding.openai_embedding_provider.openai.AsyncOpenAI"
        ) as client_cls:
            OpenAIEmbeddingProvider(
                OpenAIEmbeddingConfig(api_key="k", base_url="http://gateway/v1", organization="org-1")
            )

        client_cls.assert_called_once_with(api_key="k", base_url="http://gateway/v1", organization="org-1")

    @pytest.mark.asyncio
    async def test_embed_batch(self, config: OpenAIEmbeddingConfig) -> None:
        from stack_rag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

        mock_client = AsyncMock()
        mock_client.embeddings.create = AsyncMock(return_value=_openai_response([[0.1] * 1536, [0.2] * 1536]))

        with patch(
            "stack_rag.providers.embedding.openai_embedding_provider.openai.AsyncOpenAI",
            return_value=mock_client,
        ):
            provider = OpenAIEmbeddingProvider(config)
            result = await provider.embed_batch(["hello", "world"])

        assert len(result) == 2
        assert result[1][0] == 0.2
        mock_client.embeddings.create.assert_awaited_once_with(
            input=["hello", "world"], model="text-embedding-3-small"
        )

    @pytest.mark.asyncio
    async def test_empty_texts_get_zero_vectors(self, config: OpenAIEmbeddingConfig) -> None:
        from stack_rag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

        mock_client = AsyncMock()
        mock_client.embeddings.create = AsyncMock(return_value=_openai_response([[0.5] * 1536]))

        with patch(
            "stack_rag.providers.embedding.openai_embedding_provider.openai.AsyncOpenAI",
            return_value=mock_client,
        ):
            provider = OpenAIEmbeddingProvider(config)
            result = await provider.embed_batch(["", "text", "  "])

        assert result[0] == [0.0] * 1536
        assert result[1] == [0.5] * 1536
        assert result[2] == [0.0] * 1536
        mock_client.embeddings.create.assert_awaited_once_with(input=["text"], model="text-embedding-3-small")

    @pytest.mark.asyncio
    async def test_empty_input_is_rejected(self, config: OpenAIEmbeddingConfig) -> None:
        from stack_rag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

        with patch("stack_rag.providers.embedding.openai_embedding_provider.openai.AsyncOpenAI"):
            provider = OpenAIEmbeddingProvider(config)
            with pytest.raises(ValueError):
                await provider.embed("")
            with pytest.raises(ValueError):
                await provider.embed_batch(["", " "])
            assert await provider.embed_batch([]) == []

    @pytest.mark.asyncio
    async def test_unknown_model_discovers_dimensions(self) -> None:
        from stack_rag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

        mock_client = AsyncMock()
        mock_client.embeddings.create = AsyncMock(return_value=_openai_response([[0.3] * 8]))

        with patch(
            "stack_rag.providers.embedding.openai_embedding_provider.openai.AsyncOpenAI",
            return_value=mock_client,
        ):
            provider = OpenAIEmbeddingProvider(OpenAIEmbeddingConfig(api_key="k", model="custom-embed"))
            assert provider.dimensions == 0
            await provider.embed("hello")

        assert provider.dimensions == 8

    @pytest.mark.asyncio
    async def test_api_error_is_wrapped(self, config: OpenAIEmbeddingConfig) -> None:
        import openai

        from stack_rag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

        mock_client = AsyncMock()
        mock_client.embeddings.create = AsyncMock(
            side_effect=openai.APIError(message="Server exploded", request=MagicMock(), body=None)
        )

        with patch(
            "stack_rag.providers.embedding.openai_embedding_provider.openai.AsyncOpenAI",
            return_value=mock_client,
        ):
            provider = OpenAIEmbeddingProvider(config)
            with pytest.raises(EmbeddingProviderError) as exc_info:
                await provider.embed("hello")

        assert exc_info.value.provider_name == "openai"
        assert not isinstance(exc_info.value, RateLimitError)

    @pytest.mark.asyncio
    async def test_rate_limit_is_mapped(self, config: OpenAIEmbeddingConfig) -> None:
        import openai

        from stack_rag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

        response = httpx.Response(429, request=httpx.Request("POST", "https://api.openai.com/v1/embeddings"))
        mock_client = AsyncMock()
        mock_client.embeddings.create = AsyncMock(
            side_effect=openai.RateLimitError("Too many requests", response=response, body=None)
        )

        with patch(
            "stack_rag.providers.embedding.openai_embedding_provider.openai.AsyncOpenAI",
            return_value=mock_client,
        ):
            provider = OpenAIEmbeddingProvider(config)
            with pytest.raises(RateLimitError):
                await provider.embed_batch(["hello"])


# ======================================================================
# Ollama Embedding Provider
# ======================================================================


def _ollama_response(status: int, payload: dict | None = None) -> httpx.Response:
    return httpx.Response(
        status,
        json=payload or {},
        request=httpx.Request("POST", "http://localhost:11434/api/embeddings"),
    )


class TestOllamaEmbeddingProvider:
    def test_defaults(self) -> None:
        from stack_rag.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider

        provider = OllamaEmbeddingProvider(OllamaEmbeddingConfig(), http_client=AsyncMock())
        assert provider.type == "ollama"
        assert provider.model == "nomic-embed-text"
        assert provider.dimensions == 768

    @pytest.mark.asyncio
    async def test_embed_posts_prompt(self) -> None:
        from stack_rag.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider

        http = AsyncMock()
        http.post = AsyncMock(return_value=_ollama_response(200, {"embedding": [0.1, 0.2, 0.3]}))
        provider = OllamaEmbeddingProvider(
            OllamaEmbeddingConfig(base_url="http://ollama:11434/", model="tiny-embed"), http_client=http
        )

        vector = await provider.embed("hello")

        assert vector == [0.1, 0.2, 0.3]
        assert provider.dimensions == 3
        http.post.assert_awaited_once_with(
            "http://ollama:11434/api/embeddings", json={"model": "tiny-embed", "prompt": "hello"}
        )

    @pytest.mark.asyncio
    async def test_embed_batch_keeps_order(self) -> None:
        from stack_rag.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider

        async def _post(url: str, json: dict) -> httpx.Response:
            return _ollama_response(200, {"embedding": [float(len(json["prompt"]))]})

        http = AsyncMock()
        http.post = AsyncMock(side_effect=_post)
        provider = OllamaEmbeddingProvider(OllamaEmbeddingConfig(model="tiny-embed"), http_client=http)

        result = await provider.embed_batch(["a", "bbb", "cc", "dddd", "e"])

        assert result == [[1.0], [3.0], [2.0], [4.0], [1.0]]
        assert http.post.await_count == 5

    @pytest.mark.asyncio
    async def test_http_errors_are_mapped(self) -> None:
        from stack_rag.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider

        http = AsyncMock()
        http.post = AsyncMock(return_value=_ollama_response(500, {"error": "model not loaded"}))
        provider = OllamaEmbeddingProvider(OllamaEmbeddingConfig(), http_client=http)
        with pytest.raises(EmbeddingProviderError):
            await provider.embed("hello")

        http.post = AsyncMock(return_value=_ollama_response(429))
        with pytest.raises(RateLimitError):
            await provider.embed("hello")

        http.post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with pytest.raises(EmbeddingProviderError):
            await provider.embed("hello")

    @pytest.mark.asyncio
    async def test_missing_embedding_in_response(self) -> None:
        from stack_rag.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider

        http = AsyncMock()
        http.post = AsyncMock(return_value=_ollama_response(200, {"embedding": []}))
        provider = OllamaEmbeddingProvider(OllamaEmbeddingConfig(), http_client=http)
        with pytest.raises(EmbeddingProviderError):
            await provider.embed("hello")

    @pytest.mark.asyncio
    async def test_batch_failure_propagates(self) -> None:
        from stack_rag.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider

        http = AsyncMock()
        http.post = AsyncMock(
            side_effect=[_ollama_response(200, {"embedding": [1.0]}), _ollama_response(500)]
        )
        provider = OllamaEmbeddingProvider(OllamaEmbeddingConfig(), http_client=http)
        with pytest.raises(EmbeddingProviderError):
            await provider.embed_batch(["a", "b"])


# ======================================================================
# Registry
# ======================================================================


class TestProviderRegistry:
    def test_creates_builtin_providers(self) -> None:
        from stack_rag.providers.embedding import create_embedding_provider
        from stack_rag.providers.embedding.ollama_embedding_provider import OllamaEmbeddingProvider

        provider = create_embedding_provider(OllamaEmbeddingConfig())
        assert isinstance(provider, OllamaEmbeddingProvider)

    def test_unknown_type_lists_available(self) -> None:
        from stack_rag.providers.embedding import create_embedding_provider

        with pytest.raises(ConfigurationError, match="openai"):
            create_embedding_provider(CustomEmbeddingConfig(type="does-not-exist"))

    def test_register_custom_provider(self) -> None:
        from stack_rag.providers.embedding import (
            available_embedding_providers,
            create_embedding_provider,
            register_embedding_provider,
        )
        from tests.conftest import MockEmbeddingProvider

        seen: list[dict] = []

        def _factory(config: CustomEmbeddingConfig) -> MockEmbeddingProvider:
            seen.append(config.options)
            return MockEmbeddingProvider(dimensions=int(config.options["dims"]))

        register_embedding_provider("test-registry-mock", _factory)
        provider = create_embedding_provider(
            CustomEmbeddingConfig(type="test-registry-mock", options={"dims": 3})
        )

        assert "test-registry-mock" in available_embedding_providers()
        assert provider.dimensions == 3
        assert seen == [{"dims": 3}]
        with pytest.raises(ConfigurationError):
            register_embedding_provider("test-registry-mock", _factory)

    def test_provider_from_settings(self) -> None:
        from stack_rag.providers.embedding import create_provider_from_settings

        with patch("stack_rag.providers.embedding.openai_embedding_provider.openai.AsyncOpenAI"):
            provider = create_provider_from_settings(_settings(embedding_model="text-embedding-3-large"))
        assert provider.type == "openai"
        assert provider.dimensions == 3072

        ollama = create_provider_from_settings(_settings(embedding_provider="ollama"))
        assert ollama.type == "ollama"
        assert ollama.model == "nomic-embed-text"

    def test_provider_from_settings_errors(self) -> None:
        from stack_rag.providers.embedding import create_provider_from_settings

        with pytest.raises(ConfigurationError):
            create_provider_from_settings(_settings(openai_api_key=""))
        with pytest.raises(ConfigurationError):
            create_provider_from_settings(_settings(embedding_provider="cohere"))
