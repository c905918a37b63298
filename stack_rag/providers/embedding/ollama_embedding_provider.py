"""Ollama embedding provider adapter (local, no API key).

Calls the native ``POST /api/embeddings`` endpoint of an Ollama server,
one request per text.  Batches fan out through
:func:`~stack_rag.utils.concurrency.throttled_gather` so a large batch
never opens more than a handful of connections to the local server.
"""

from __future__ import annotations

import asyncio

import httpx
import structlog

from stack_rag.interfaces.embedding_provider import IEmbeddingProvider
from stack_rag.models.config import OllamaEmbeddingConfig
from stack_rag.utils.concurrency import throttled_gather
from stack_rag.utils.errors import EmbeddingProviderError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

_REQUEST_TIMEOUT = 60.0
_MAX_PARALLEL_REQUESTS = 4

_MODEL_DIMENSIONS: dict[str, int] = {
    "nomic-embed-text": 768,
    "mxbai-embed-large": 1024,
    "all-minilm": 384,
    "snowflake-arctic-embed": 1024,
}


class OllamaEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by a local Ollama server.

    Parameters
    ----------
    config:
        Base URL and model name.
    http_client:
        Injected ``httpx.AsyncClient`` for testability and connection
        pooling.  When omitted the provider creates and owns one.
    """

    def __init__(
        self,
        config: OllamaEmbeddingConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = config.base_url.rstrip("/")
        self._model = config.model
        self._dimensions = _MODEL_DIMENSIONS.get(self._model, 0)
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=_REQUEST_TIMEOUT)

    @property
    def type(self) -> str:
        return "ollama"

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        """Known model size, or the size of the first vector received (0 before that)."""
        return self._dimensions

    async def embed(self, text: str) -> list[float]:
        url = f"{self._base_url}/api/embeddings"
        try:
            response = await self._http.post(url, json={"model": self._model, "prompt": text})
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 429:
                raise RateLimitError(
                    message="Ollama server is rate limiting requests",
                    provider_name=self.type,
                ) from exc
            raise EmbeddingProviderError(
                message=f"Ollama API error: HTTP {exc.response.status_code} {exc.response.text}",
                provider_name=self.type,
            ) from exc
        except httpx.HTTPError as exc:
            raise EmbeddingProviderError(
                message=f"Ollama request to {url} failed: {exc}",
                provider_name=self.type,
            ) from exc

        embedding = payload.get("embedding")
        if not embedding:
            raise EmbeddingProviderError(
                message=f"Ollama returned no embedding for model {self._model}",
                provider_name=self.type,
            )
        if not self._dimensions:
            self._dimensions = len(embedding)
            logger.info("ollama_dimensions_discovered", model=self._model, dimensions=self._dimensions)
        return [float(v) for v in embedding]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed each text with its own request, at most four in flight."""
        if not texts:
            return []

        results = await throttled_gather(
            [self.embed(text) for text in texts],
            semaphore=asyncio.Semaphore(_MAX_PARALLEL_REQUESTS),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        logger.info("ollama_embedding_batch", model=self._model, batch_size=len(texts))
        return results  # type: ignore[return-value]

    def is_available(self) -> bool:
        return bool(self._base_url)

    async def aclose(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            await self._http.aclose()
