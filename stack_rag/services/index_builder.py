"""Build-time embeddings index generation.

Produces the :class:`EmbeddingsIndex` file that
:class:`~stack_rag.providers.vector_storage.json_file_storage.JsonFileStorage`
searches at runtime.  Each document becomes an optional title chunk plus
fixed sliding-window content chunks; all of a document's chunks are
embedded in one ``embed_batch`` call.

Rebuilds are differential: a document whose content hash matches the one
recorded in the previous index is copied over instead of re-embedded.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Mapping

import structlog
from pydantic import ValidationError

from stack_rag.interfaces.embedding_provider import IEmbeddingProvider
from stack_rag.models.embedding import EmbeddingMetadata, utc_now
from stack_rag.models.index import (
    EmbeddedDocument,
    EmbeddingChunk,
    EmbeddingsIndex,
    IndexConfig,
    SourceDocument,
)
from stack_rag.services.chunker import ChunkingOptions, TextChunker
from stack_rag.services.embedding_generator import hash_text
from stack_rag.utils.markdown import extract_markdown_text

logger = structlog.get_logger(logger_name=__name__)


def load_existing_index(path: str | Path) -> EmbeddingsIndex | None:
    """Read a previously written index; ``None`` if missing or unreadable."""
    index_path = Path(path)
    if not index_path.exists():
        return None
    try:
        return EmbeddingsIndex.model_validate_json(index_path.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as exc:
        logger.warning("embeddings_index_unreadable", path=str(index_path), error=str(exc))
        return None


def save_index(index: EmbeddingsIndex, path: str | Path) -> Path:
    """Write *index* as pretty-printed JSON, creating parent directories."""
    index_path = Path(path)
    index_path.parent.mkdir(parents=True, exist_ok=True)
    index_path.write_text(index.to_json(), encoding="utf-8")
    logger.info("embeddings_index_saved", path=str(index_path), documents=len(index.documents))
    return index_path


async def generate_document_embeddings(
    document_id: str,
    content: str,
    provider: IEmbeddingProvider,
    *,
    title: str | None = None,
    chunk_size: int = 500,
    chunk_overlap: int = 50,
    metadata: Mapping[str, Any] | None = None,
    fields: Mapping[str, Any] | None = None,
) -> EmbeddedDocument:
    """Chunk and embed one document.

    Parameters
    ----------
    document_id:
        Key of the document in the index.
    content:
        Text to chunk.  Its SHA-256 becomes the document's ``content_hash``.
    provider:
        Embedding provider; called once with every chunk text.
    title:
        When given, embedded as an extra leading chunk with
        ``chunkIndex == -1`` and ``isTitle == True``.
    chunk_size, chunk_overlap:
        Sliding-window size and overlap in characters.
    metadata:
        Extra keys merged into every chunk's metadata.
    fields:
        Document attributes stored on the entry for ``where`` filtering.
    """
    chunker = TextChunker(
        ChunkingOptions(
            strategy="sliding-window",
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
        )
    )
    content_chunks = chunker.chunk(content)

    texts: list[str] = []
    chunk_metadata: list[dict[str, Any]] = []
    if title:
        texts.append(title)
        chunk_metadata.append(
            {"chunkIndex": -1, "startOffset": 0, "endOffset": 0, "isTitle": True, **dict(metadata or {})}
        )
    for chunk in content_chunks:
        texts.append(chunk.text)
        chunk_metadata.append(
            {
                "chunkIndex": chunk.index,
                "startOffset": chunk.start,
                "endOffset": chunk.end,
                **dict(metadata or {}),
            }
        )

    vectors = await provider.embed_batch(texts) if texts else []
    chunks = [
        EmbeddingChunk(text=text, embedding=vector, metadata=meta)
        for text, vector, meta in zip(texts, vectors, chunk_metadata, strict=True)
    ]
    dimensions = len(vectors[0]) if vectors else provider.dimensions

    logger.debug(
        "document_embedded",
        document_id=document_id,
        chunks=len(chunks),
        has_title=bool(title),
    )
    return EmbeddedDocument(
        id=document_id,
        title=title,
        chunks=chunks,
        embedding_metadata=EmbeddingMetadata(
            model=provider.model,
            provider=provider.type,
            dimensions=dimensions,
            generated_at=utc_now(),
        ),
        content_hash=hash_text(content),
        fields=dict(fields or {}),
    )


def _reusable(existing: EmbeddingsIndex | None, config: IndexConfig) -> dict[str, EmbeddedDocument]:
    if existing is None:
        return {}
    previous = existing.config
    # A different model or chunk geometry invalidates every stored vector.
    if (
        previous.provider != config.provider
        or previous.model != config.model
        or previous.chunk_size != config.chunk_size
        or previous.chunk_overlap != config.chunk_overlap
    ):
        logger.info(
            "embeddings_index_config_changed",
            previous_model=previous.model,
            model=config.model,
        )
        return {}
    return dict(existing.documents)


async def build_embeddings_index(
    documents: Iterable[SourceDocument],
    provider: IEmbeddingProvider,
    *,
    existing: EmbeddingsIndex | None = None,
    chunk_size: int = 500,
    chunk_overlap: int = 50,
    strip_markdown: bool = False,
) -> EmbeddingsIndex:
    """Embed *documents* into a fresh index, reusing unchanged entries.

    A document is reused from *existing* when its content hash and title
    are unchanged and the index was built with the same provider, model and chunk
    geometry.  Documents absent from *documents* are dropped.

    With ``strip_markdown`` the content is reduced to prose by
    :func:`~stack_rag.utils.markdown.extract_markdown_text` before hashing
    and chunking.
    """
    config = IndexConfig(
        provider=provider.type,
        model=provider.model,
        dimensions=provider.dimensions,
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
    )
    previous = _reusable(existing, config)

    built: dict[str, EmbeddedDocument] = {}
    reused = 0
    for document in documents:
        content = extract_markdown_text(document.content) if strip_markdown else document.content
        cached = previous.get(document.id)
        # The title is embedded as its own chunk; fields are only copied.
        if (
            cached is not None
            and cached.content_hash == hash_text(content)
            and cached.title == document.title
        ):
            if cached.fields != document.fields:
                cached = cached.model_copy(update={"fields": dict(document.fields)})
            built[document.id] = cached
            reused += 1
            continue
        built[document.id] = await generate_document_embeddings(
            document.id,
            content,
            provider,
            title=document.title,
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            fields=document.fields,
        )

    dimensions = next(
        (doc.embedding_metadata.dimensions for doc in built.values() if doc.chunks),
        provider.dimensions,
    )
    logger.info(
        "embeddings_index_built",
        documents=len(built),
        reused=reused,
        generated=len(built) - reused,
        dimensions=dimensions,
    )
    return EmbeddingsIndex(
        config=config.model_copy(update={"dimensions": dimensions}),
        documents=built,
    )


__all__ = [
    "build_embeddings_index",
    "generate_document_embeddings",
    "load_existing_index",
    "save_index",
]
