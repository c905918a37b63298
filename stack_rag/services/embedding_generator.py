"""Turn text into :class:`StoredEmbedding` values.

The generator wraps an :class:`IEmbeddingProvider` call with the metadata
every persisted vector carries: model, provider type, dimensions,
generation time and the SHA-256 digest of the exact text embedded.  The
digest lets :func:`should_regenerate_embedding` skip texts that have not
changed since they were last embedded.

Nothing here rate-limits or retries; use
:func:`~stack_rag.services.batch_processor.batch_process` for bulk work
against a metered API.
"""

from __future__ import annotations

import hashlib
from typing import Any, Literal, Mapping, overload

import numpy as np
import structlog

from stack_rag.interfaces.embedding_provider import IEmbeddingProvider
from stack_rag.models.embedding import (
    ChunkedEmbedding,
    EmbeddingMetadata,
    StoredEmbedding,
    utc_now,
)
from stack_rag.services.chunker import ChunkingOptions, TextChunker
from stack_rag.utils.errors import DimensionMismatchError

logger = structlog.get_logger(logger_name=__name__)


def hash_text(text: str) -> str:
    """Return the SHA-256 hex digest of *text* encoded as UTF-8."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _check_dimensions(provider: IEmbeddingProvider, vector: list[float]) -> None:
    # Providers that discover their size report 0 until the first response.
    expected = provider.dimensions
    if expected and len(vector) != expected:
        raise DimensionMismatchError(
            message=(
                f"Provider returned {len(vector)}-dimensional vector, "
                f"expected {expected} for model {provider.model}"
            ),
            provider_name=provider.type,
            expected=expected,
            actual=len(vector),
        )


def build_stored_embedding(
    provider: IEmbeddingProvider,
    text: str,
    vector: list[float],
    *,
    include_source_hash: bool = True,
    metadata: Mapping[str, Any] | None = None,
) -> StoredEmbedding:
    """Wrap a raw provider vector with provenance metadata.

    Raises
    ------
    DimensionMismatchError
        If the vector's length disagrees with ``provider.dimensions``.
    """
    _check_dimensions(provider, vector)
    fields: dict[str, Any] = {
        **dict(metadata or {}),
        "model": provider.model,
        "provider": provider.type,
        "dimensions": len(vector),
        "generatedAt": utc_now(),
        "sourceHash": hash_text(text) if include_source_hash else None,
    }
    meta = EmbeddingMetadata.model_validate(fields)
    return StoredEmbedding(vector=list(vector), metadata=meta)


@overload
async def generate_embedding(
    provider: IEmbeddingProvider,
    text: str,
    *,
    enable_chunking: Literal[False] = ...,
    chunking: ChunkingOptions | None = ...,
    include_source_hash: bool = ...,
    metadata: Mapping[str, Any] | None = ...,
) -> StoredEmbedding: ...


@overload
async def generate_embedding(
    provider: IEmbeddingProvider,
    text: str,
    *,
    enable_chunking: Literal[True],
    chunking: ChunkingOptions | None = ...,
    include_source_hash: bool = ...,
    metadata: Mapping[str, Any] | None = ...,
) -> list[ChunkedEmbedding]: ...


async def generate_embedding(
    provider: IEmbeddingProvider,
    text: str,
    *,
    enable_chunking: bool = False,
    chunking: ChunkingOptions | None = None,
    include_source_hash: bool = True,
    metadata: Mapping[str, Any] | None = None,
) -> StoredEmbedding | list[ChunkedEmbedding]:
    """Embed *text*, optionally after splitting it into chunks.

    Parameters
    ----------
    provider:
        The embedding provider to call.
    text:
        Source text.
    enable_chunking:
        When ``True`` the text is chunked and every chunk is embedded in a
        single ``embed_batch`` call.
    chunking:
        Chunking options; defaults to :class:`ChunkingOptions` defaults.
    include_source_hash:
        Record the SHA-256 of the embedded text (the chunk text when
        chunking) in the metadata.
    metadata:
        Extra metadata fields copied onto every embedding.

    Returns
    -------
    StoredEmbedding | list[ChunkedEmbedding]
        One embedding, or one entry per chunk in chunk order.  Chunk
        metadata additionally records ``chunkIndex``, ``chunkStart`` and
        ``chunkEnd``.
    """
    if not enable_chunking:
        vector = await provider.embed(text)
        return build_stored_embedding(
            provider, text, vector, include_source_hash=include_source_hash, metadata=metadata
        )

    chunks = TextChunker(chunking).chunk(text)
    if not chunks:
        return []

    vectors = await provider.embed_batch([c.text for c in chunks])
    results = [
        ChunkedEmbedding(
            chunk=chunk,
            embedding=build_stored_embedding(
                provider,
                chunk.text,
                vector,
                include_source_hash=include_source_hash,
                metadata={
                    **dict(metadata or {}),
                    "chunkIndex": chunk.index,
                    "chunkStart": chunk.start,
                    "chunkEnd": chunk.end,
                },
            ),
        )
        for chunk, vector in zip(chunks, vectors, strict=True)
    ]
    logger.debug(
        "chunked_embedding_generated",
        provider=provider.type,
        model=provider.model,
        num_chunks=len(results),
    )
    return results


async def generate_embeddings(
    provider: IEmbeddingProvider,
    texts: list[str],
    *,
    batch_size: int = 10,
    include_source_hash: bool = True,
    metadata: Mapping[str, Any] | None = None,
) -> list[StoredEmbedding]:
    """Embed many texts in fixed-size groups, one ``embed_batch`` call per group.

    No rate limiting or retry is applied.  Results are in input order.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    results: list[StoredEmbedding] = []
    for start in range(0, len(texts), batch_size):
        group = texts[start : start + batch_size]
        vectors = await provider.embed_batch(group)
        results.extend(
            build_stored_embedding(
                provider, text, vector, include_source_hash=include_source_hash, metadata=metadata
            )
            for text, vector in zip(group, vectors, strict=True)
        )
    return results


def _source_hash_of(embedding: StoredEmbedding | Mapping[str, Any]) -> str | None:
    if isinstance(embedding, StoredEmbedding):
        return embedding.metadata.source_hash
    meta = embedding.get("metadata") or {}
    return meta.get("sourceHash") or meta.get("source_hash")


def should_regenerate_embedding(
    source_text: str,
    current_embedding: StoredEmbedding | Mapping[str, Any] | None,
    *,
    regenerate_unhashed: bool = False,
) -> bool:
    """Decide whether *source_text* needs a fresh embedding.

    Returns ``True`` when there is no embedding yet or when the stored
    source hash differs from the hash of *source_text*.  An embedding
    without a source hash cannot be checked; it is kept unless
    ``regenerate_unhashed`` is set (useful for a one-off migration of
    vectors written before hashing was enabled).
    """
    if current_embedding is None:
        return True
    stored_hash = _source_hash_of(current_embedding)
    if not stored_hash:
        return regenerate_unhashed
    return stored_hash != hash_text(source_text)


def merge_embeddings(
    embeddings: list[StoredEmbedding],
    method: Literal["average", "max"] = "average",
) -> StoredEmbedding:
    """Combine several embeddings into one, component-wise.

    Parameters
    ----------
    embeddings:
        Embeddings of equal dimensionality.
    method:
        ``"average"`` for the component-wise mean, ``"max"`` for the
        component-wise maximum.

    Returns
    -------
    StoredEmbedding
        The input itself when only one embedding is given; otherwise a new
        embedding whose metadata is the first input's metadata with a new
        ``generatedAt`` plus ``mergedFrom`` (count) and ``mergeMethod``.

    Raises
    ------
    ValueError
        If *embeddings* is empty or *method* is unknown.
    DimensionMismatchError
        If the embeddings differ in dimensionality.
    """
    if not embeddings:
        raise ValueError("Cannot merge an empty list of embeddings")
    if len(embeddings) == 1:
        return embeddings[0]
    if method not in ("average", "max"):
        raise ValueError(f"Unknown merge method: {method}")

    dims = len(embeddings[0].vector)
    for embedding in embeddings[1:]:
        if len(embedding.vector) != dims:
            raise DimensionMismatchError(
                message="All embeddings must have the same dimensions",
                expected=dims,
                actual=len(embedding.vector),
            )

    matrix = np.asarray([e.vector for e in embeddings], dtype=np.float64)
    combined = matrix.mean(axis=0) if method == "average" else matrix.max(axis=0)

    first_meta = embeddings[0].metadata.model_dump(by_alias=True)
    first_meta.update(generatedAt=utc_now(), mergedFrom=len(embeddings), mergeMethod=method)
    return StoredEmbedding(
        vector=combined.tolist(),
        metadata=EmbeddingMetadata.model_validate(first_meta),
    )


def validate_embedding_dimensions(embedding: StoredEmbedding, expected: int) -> None:
    """Check a stored embedding against an expected dimensionality.

    Raises
    ------
    DimensionMismatchError
        If the vector length differs from *expected*, or from the
        dimensionality recorded in its own metadata.
    """
    actual = len(embedding.vector)
    if actual != expected:
        raise DimensionMismatchError(
            message=f"Embedding dimension mismatch: expected {expected}, got {actual}",
            provider_name=embedding.metadata.provider,
            expected=expected,
            actual=actual,
        )
    if embedding.metadata.dimensions != actual:
        raise DimensionMismatchError(
            message=(
                f"Embedding metadata dimension mismatch: metadata says "
                f"{embedding.metadata.dimensions}, vector has {actual}"
            ),
            provider_name=embedding.metadata.provider,
            expected=embedding.metadata.dimensions,
            actual=actual,
        )


__all__ = [
    "build_stored_embedding",
    "generate_embedding",
    "generate_embeddings",
    "hash_text",
    "merge_embeddings",
    "should_regenerate_embedding",
    "validate_embedding_dimensions",
]
