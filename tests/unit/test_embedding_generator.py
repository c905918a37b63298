"""Unit tests for the embedding generator: metadata, hashing, merge and checks."""

from __future__ import annotations

import hashlib

import pytest

from stack_rag.models.embedding import EmbeddingMetadata, StoredEmbedding
from stack_rag.services.chunker import ChunkingOptions
from stack_rag.services.embedding_generator import (
    build_stored_embedding,
    generate_embedding,
    generate_embeddings,
    hash_text,
    merge_embeddings,
    should_regenerate_embedding,
    validate_embedding_dimensions,
)
from stack_rag.utils.errors import ConfigurationError, DimensionMismatchError
from tests.conftest import MockEmbeddingProvider


def _embedding(vector: list[float], **meta) -> StoredEmbedding:
    fields = {"model": "m", "provider": "mock", "dimensions": len(vector), **meta}
    return StoredEmbedding(vector=vector, metadata=EmbeddingMetadata.model_validate(fields))


class TestHashText:
    def test_sha256_hex_of_utf8(self) -> None:
        assert hash_text("héllo") == hashlib.sha256("héllo".encode("utf-8")).hexdigest()
        assert len(hash_text("")) == 64


class TestGenerateEmbedding:
    @pytest.mark.asyncio
    async def test_single_embedding_metadata(self, provider: MockEmbeddingProvider) -> None:
        result = await generate_embedding(provider, "cats purr")

        assert isinstance(result, StoredEmbedding)
        assert len(result.vector) == provider.dimensions
        assert result.metadata.model == "mock-embed-1"
        assert result.metadata.provider == "mock"
        assert result.metadata.dimensions == 4
        assert result.metadata.source_hash == hash_text("cats purr")
        assert provider.embed_calls == ["cats purr"]

    @pytest.mark.asyncio
    async def test_source_hash_can_be_omitted(self, provider: MockEmbeddingProvider) -> None:
        result = await generate_embedding(provider, "cats", include_source_hash=False)
        assert result.metadata.source_hash is None
        assert "sourceHash" not in result.to_record_value()["metadata"]

    @pytest.mark.asyncio
    async def test_extra_metadata_is_preserved(self, provider: MockEmbeddingProvider) -> None:
        result = await generate_embedding(provider, "dogs", metadata={"listKey": "Post"})
        assert result.metadata.extras == {"listKey": "Post"}
        assert result.to_record_value()["metadata"]["listKey"] == "Post"

    @pytest.mark.asyncio
    async def test_chunked_embedding_uses_one_batch_call(self, provider: MockEmbeddingProvider) -> None:
        text = "cats purr. " * 20
        options = ChunkingOptions(strategy="sliding-window", chunk_size=50, chunk_overlap=10)

        results = await generate_embedding(provider, text, enable_chunking=True, chunking=options)

        assert len(results) > 1
        assert len(provider.batch_calls) == 1
        assert provider.batch_calls[0] == [r.chunk.text for r in results]
        for position, item in enumerate(results):
            extras = item.embedding.metadata.extras
            assert extras["chunkIndex"] == position
            assert extras["chunkStart"] == item.chunk.start
            assert extras["chunkEnd"] == item.chunk.end
            assert item.embedding.metadata.source_hash == hash_text(item.chunk.text)

    @pytest.mark.asyncio
    async def test_chunking_blank_text_returns_empty_list(self, provider: MockEmbeddingProvider) -> None:
        assert await generate_embedding(provider, "  ", enable_chunking=True) == []
        assert provider.batch_calls == []

    @pytest.mark.asyncio
    async def test_dimension_mismatch_is_a_configuration_error(self) -> None:
        provider = MockEmbeddingProvider(dimensions=4)
        with pytest.raises(ConfigurationError):
            build_stored_embedding(provider, "x", [0.1, 0.2])


class TestGenerateEmbeddings:
    @pytest.mark.asyncio
    async def test_groups_by_batch_size_in_order(self, provider: MockEmbeddingProvider) -> None:
        texts = ["cat", "dog", "star", "kitten", "puppy"]
        results = await generate_embeddings(provider, texts, batch_size=2)

        assert [len(call) for call in provider.batch_calls] == [2, 2, 1]
        assert [r.metadata.source_hash for r in results] == [hash_text(t) for t in texts]

    @pytest.mark.asyncio
    async def test_rejects_invalid_batch_size(self, provider: MockEmbeddingProvider) -> None:
        with pytest.raises(ValueError):
            await generate_embeddings(provider, ["a"], batch_size=0)


class TestShouldRegenerate:
    def test_missing_embedding_needs_generation(self) -> None:
        assert should_regenerate_embedding("text", None) is True

    def test_matching_hash_is_kept(self) -> None:
        current = _embedding([1.0], sourceHash=hash_text("text"))
        assert should_regenerate_embedding("text", current) is False

    def test_changed_text_is_regenerated(self) -> None:
        current = _embedding([1.0], sourceHash=hash_text("old text"))
        assert should_regenerate_embedding("new text", current) is True

    def test_unhashed_embedding_is_kept_by_default(self) -> None:
        current = _embedding([1.0])
        assert should_regenerate_embedding("text", current) is False
        assert should_regenerate_embedding("text", current, regenerate_unhashed=True) is True

    def test_accepts_record_values(self) -> None:
        value = _embedding([1.0], sourceHash=hash_text("text")).to_record_value()
        assert should_regenerate_embedding("text", value) is False
        assert should_regenerate_embedding("other", value) is True


class TestMergeEmbeddings:
    def test_average(self) -> None:
        merged = merge_embeddings([_embedding([1.0, 3.0]), _embedding([3.0, 5.0])])
        assert merged.vector == [2.0, 4.0]
        assert merged.metadata.extras["mergedFrom"] == 2
        assert merged.metadata.extras["mergeMethod"] == "average"

    def test_max(self) -> None:
        merged = merge_embeddings([_embedding([1.0, 5.0]), _embedding([3.0, 2.0])], method="max")
        assert merged.vector == [3.0, 5.0]

    def test_single_embedding_is_returned_unchanged(self) -> None:
        only = _embedding([1.0, 2.0])
        assert merge_embeddings([only]) is only

    def test_errors(self) -> None:
        with pytest.raises(ValueError):
            merge_embeddings([])
        with pytest.raises(DimensionMismatchError):
            merge_embeddings([_embedding([1.0]), _embedding([1.0, 2.0])])


class TestValidateDimensions:
    def test_accepts_matching(self) -> None:
        validate_embedding_dimensions(_embedding([0.1, 0.2, 0.3]), 3)

    def test_rejects_wrong_length(self) -> None:
        with pytest.raises(DimensionMismatchError) as exc_info:
            validate_embedding_dimensions(_embedding([0.1, 0.2]), 3)
        assert exc_info.value.expected == 3
        assert exc_info.value.actual == 2

    def test_rejects_inconsistent_metadata(self) -> None:
        # Built without validation, as an instance restored by model_construct would be.
        embedding = StoredEmbedding.model_construct(
            vector=[0.1, 0.2],
            metadata=EmbeddingMetadata(model="m", provider="mock", dimensions=5),
        )
        with pytest.raises(DimensionMismatchError):
            validate_embedding_dimensions(embedding, 2)
