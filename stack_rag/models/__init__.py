"""Pydantic v2 data models for stack-rag.

- **embedding** -- StoredEmbedding and its metadata, text chunks, search results.
- **batch** -- progress snapshots, per-item errors and the batch run result.
- **config** -- provider/storage/chunking configuration sum types.
- **index** -- the build-time embeddings index file format.
"""

from stack_rag.models.batch import (
    BatchError,
    BatchProcessResult,
    BatchProgress,
    BatchStats,
    FailedItem,
)
from stack_rag.models.config import (
    BuildTimeConfig,
    ChunkingConfig,
    CustomEmbeddingConfig,
    CustomStorageConfig,
    EmbeddingProviderConfig,
    JsonFileStorageConfig,
    JsonStorageConfig,
    NormalizedRAGConfig,
    OllamaEmbeddingConfig,
    OpenAIEmbeddingConfig,
    PgVectorStorageConfig,
    RAGConfig,
    SqliteVssStorageConfig,
    VectorStorageConfig,
    normalize_rag_config,
    parse_provider_config,
    parse_storage_config,
)
from stack_rag.models.embedding import (
    ChunkedEmbedding,
    EmbeddingMetadata,
    SearchResult,
    StoredEmbedding,
    TextChunk,
)
from stack_rag.models.index import (
    INDEX_FORMAT_VERSION,
    EmbeddedDocument,
    EmbeddingChunk,
    EmbeddingsIndex,
    IndexConfig,
    SourceDocument,
)

__all__ = [
    "BatchError",
    "BatchProcessResult",
    "BatchProgress",
    "BatchStats",
    "BuildTimeConfig",
    "ChunkedEmbedding",
    "ChunkingConfig",
    "CustomEmbeddingConfig",
    "CustomStorageConfig",
    "EmbeddedDocument",
    "EmbeddingChunk",
    "EmbeddingMetadata",
    "EmbeddingProviderConfig",
    "EmbeddingsIndex",
    "FailedItem",
    "INDEX_FORMAT_VERSION",
    "IndexConfig",
    "SourceDocument",
    "JsonFileStorageConfig",
    "JsonStorageConfig",
    "NormalizedRAGConfig",
    "OllamaEmbeddingConfig",
    "OpenAIEmbeddingConfig",
    "PgVectorStorageConfig",
    "RAGConfig",
    "SearchResult",
    "SqliteVssStorageConfig",
    "StoredEmbedding",
    "TextChunk",
    "VectorStorageConfig",
    "normalize_rag_config",
    "parse_provider_config",
    "parse_storage_config",
]
