"""OpenAI embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Works against api.openai.com or any OpenAI-compatible endpoint (Azure
proxies, TogetherAI, a local gateway) through ``base_url``.
"""

from __future__ import annotations

import openai
import structlog

from stack_rag.interfaces.embedding_provider import IEmbeddingProvider
from stack_rag.models.config import OpenAIEmbeddingConfig
from stack_rag.utils.errors import ConfigurationError, EmbeddingProviderError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

_OPENAI_BATCH_LIMIT = 2048

# Known embedding model dimensions.  Unknown models learn theirs from the
# first response.
_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by the OpenAI embeddings API.

    Uses ``text-embedding-3-small`` (1536 dims) by default.  Inputs larger
    than the per-call limit of 2048 texts are split into several requests.
    Empty strings inside a batch are not sent; they get a zero vector.
    """

    def __init__(self, config: OpenAIEmbeddingConfig) -> None:
        if not config.api_key:
            raise ConfigurationError(
                message="OpenAI API key is required", provider_name="openai"
            )
        self._config = config

        client_kwargs: dict = {"api_key": config.api_key}
        if config.base_url:
            client_kwargs["base_url"] = config.base_url
        if config.organization:
            client_kwargs["organization"] = config.organization

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = config.model
        self._dimensions = _MODEL_DIMENSIONS.get(self._model, 0)

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    @property
    def type(self) -> str:
        return "openai"

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def embed(self, text: str) -> list[float]:
        """Generate an embedding vector for a single non-empty text."""
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")
        result = await self._create([text])
        return result[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Empty texts are skipped and receive a zero vector in their slot.
        Raises ``ValueError`` when every text is empty.
        """
        if not texts:
            return []

        positions = [i for i, t in enumerate(texts) if t and t.strip()]
        if not positions:
            raise ValueError("Cannot embed a batch in which every text is empty")

        vectors = await self._create([texts[i] for i in positions])

        results: list[list[float]] = [[0.0] * self._dimensions for _ in texts]
        for position, vector in zip(positions, vectors, strict=True):
            results[position] = vector
        return results

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._config.api_key)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _create(self, texts: list[str]) -> list[list[float]]:
        try:
            all_embeddings: list[list[float]] = []
            for start in range(0, len(texts), _OPENAI_BATCH_LIMIT):
                batch = texts[start : start + _OPENAI_BATCH_LIMIT]
                response = await self._client.embeddings.create(
                    input=batch,
                    model=self._model,
                )
                all_embeddings.extend(list(item.embedding) for item in response.data)
                logger.info(
                    "openai_embedding_batch",
                    model=self._model,
                    batch_size=len(batch),
                    tokens=response.usage.total_tokens if response.usage else None,
                )
        except openai.RateLimitError as exc:
            raise RateLimitError(
                message=f"OpenAI rate limit exceeded: {exc}",
                provider_name=self.type,
            ) from exc
        except openai.AuthenticationError as exc:
            raise ConfigurationError(
                message=f"OpenAI rejected the API key: {exc}",
                provider_name=self.type,
            ) from exc
        except openai.APIError as exc:
            raise EmbeddingProviderError(
                message=f"OpenAI embedding API error: {exc}",
                provider_name=self.type,
            ) from exc

        if not self._dimensions and all_embeddings:
            self._dimensions = len(all_embeddings[0])
        return all_embeddings
