"""Abstract base class for text-embedding service providers.

Defines the contract for turning text into fixed-length vectors.
Implementations wrap a remote API (OpenAI) or a local model server
(Ollama); callers depend only on this interface so providers are
interchangeable and test doubles are trivial to write.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   OpenAIEmbeddingProvider: text-embedding-3-small / -3-large / ada-002
#   OllamaEmbeddingProvider: nomic-embed-text and friends via a local server
# Located in: stack_rag/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services.

    A provider instance is bound to exactly one model, so every vector it
    returns has :attr:`dimensions` components.
    """

    @property
    @abstractmethod
    def type(self) -> str:
        """Registry key of the provider, e.g. ``"openai"`` or ``"ollama"``."""

    @property
    @abstractmethod
    def model(self) -> str:
        """Name of the model vectors are generated with."""

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Length of every vector this provider returns.

        Providers that discover their dimensionality from the first
        response return ``0`` until then.
        """

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text.

        Parameters
        ----------
        text:
            The text to embed.  Must not be empty.

        Returns
        -------
        list[float]
            A vector of length :attr:`dimensions`.

        Raises
        ------
        stack_rag.utils.errors.EmbeddingProviderError
            If the embedding call fails.
        stack_rag.utils.errors.RateLimitError
            If the provider reports that its rate limit was exceeded.
        """

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for several texts.

        Parameters
        ----------
        texts:
            Texts to embed.  Implementations split the list internally if
            the underlying API has a per-call limit.

        Returns
        -------
        list[list[float]]
            One vector per input, in input order.
        """

    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured.

        Only checks local configuration (credentials, URLs); never makes a
        network call.
        """
        return True
