"""Shared pytest fixtures for the stack-rag test suite."""

from __future__ import annotations

from typing import Any

import pytest

from stack_rag.interfaces.embedding_provider import IEmbeddingProvider
from stack_rag.interfaces.record_store import AccessContext
from stack_rag.models.embedding import EmbeddingMetadata, StoredEmbedding
from stack_rag.providers.record_store.memory_record_store import InMemoryRecordStore

# ---------------------------------------------------------------------------
# Deterministic embedding provider
# ---------------------------------------------------------------------------

# One axis per topic; a text's vector counts its topic keywords.
_TOPICS: tuple[tuple[str, ...], ...] = (
    ("cat", "cats", "feline", "kitten", "kittens", "purr", "whiskers"),
    ("dog", "dogs", "canine", "puppy", "puppies", "bark", "leash"),
    ("star", "stars", "galaxy", "galaxies", "astrophysics", "planet", "orbit", "telescope"),
)


def topic_vector(text: str) -> list[float]:
    """Map *text* onto a 4-d vector: three topic axes plus a small bias axis."""
    words = [w.strip(".,!?;:").lower() for w in text.split()]
    vector = [float(sum(1 for w in words if w in topic)) for topic in _TOPICS]
    vector.append(0.1)
    return vector


class MockEmbeddingProvider(IEmbeddingProvider):
    """Keyword-topic provider that records every call it receives."""

    def __init__(self, dimensions: int = 4, model: str = "mock-embed-1") -> None:
        self._dimensions = dimensions
        self._model = model
        self.embed_calls: list[str] = []
        self.batch_calls: list[list[str]] = []

    @property
    def type(self) -> str:
        return "mock"

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def embed(self, text: str) -> list[float]:
        self.embed_calls.append(text)
        return self._vector(text)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.batch_calls.append(list(texts))
        return [self._vector(t) for t in texts]

    def _vector(self, text: str) -> list[float]:
        vector = topic_vector(text)
        return (vector + [0.0] * self._dimensions)[: self._dimensions]


def stored(text: str, model: str = "mock-embed-1") -> dict[str, Any]:
    """Return the record value of a StoredEmbedding for *text*."""
    vector = topic_vector(text)
    return StoredEmbedding(
        vector=vector,
        metadata=EmbeddingMetadata(model=model, provider="mock", dimensions=len(vector)),
    ).to_record_value()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

ARTICLES: list[dict[str, Any]] = [
    {"id": "a1", "title": "Cats", "status": "published", "body": "Cats purr and cats have whiskers"},
    {"id": "a2", "title": "Dogs", "status": "published", "body": "Dogs bark on a leash"},
    {"id": "a3", "title": "Space", "status": "published", "body": "Astrophysics studies stars and galaxies"},
    {"id": "a4", "title": "Kittens", "status": "draft", "body": "A kitten is a young feline cat"},
]


@pytest.fixture()
def provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


@pytest.fixture()
def article_store() -> InMemoryRecordStore:
    records = [{**article, "embedding": stored(article["body"])} for article in ARTICLES]
    records.append({"id": "a5", "title": "Untitled", "status": "published", "body": "", "embedding": None})
    return InMemoryRecordStore("Article", records)


@pytest.fixture()
def context(article_store: InMemoryRecordStore) -> AccessContext:
    return AccessContext(db={"article": article_store})
