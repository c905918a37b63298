"""stack-rag: embeddings, vector storage and semantic search for record lists.

Typical use::

    from stack_rag import (
        AccessContext,
        InMemoryRecordStore,
        create_embedding_provider,
        create_vector_storage,
        semantic_search,
    )

The main entry points are re-exported here; everything else is importable
from its subpackage.
"""

from stack_rag.config import Settings, load_rag_config
from stack_rag.interfaces import AccessContext, IEmbeddingProvider, IRecordStore, IVectorStorage
from stack_rag.models import (
    BatchProcessResult,
    BatchProgress,
    SearchResult,
    StoredEmbedding,
    TextChunk,
)
from stack_rag.providers.embedding import (
    create_embedding_provider,
    create_provider_from_settings,
    register_embedding_provider,
)
from stack_rag.providers.record_store import InMemoryRecordStore
from stack_rag.providers.vector_storage import create_vector_storage, register_vector_storage
from stack_rag.services.batch_processor import batch_process
from stack_rag.services.chunker import ChunkingOptions, TextChunker, chunk_text
from stack_rag.services.embedding_generator import (
    generate_embedding,
    generate_embeddings,
    should_regenerate_embedding,
)
from stack_rag.services.search_service import find_similar, semantic_search
from stack_rag.utils.errors import StackRagError

__version__ = "0.1.0"

__all__ = [
    "AccessContext",
    "BatchProcessResult",
    "BatchProgress",
    "ChunkingOptions",
    "IEmbeddingProvider",
    "IRecordStore",
    "IVectorStorage",
    "InMemoryRecordStore",
    "SearchResult",
    "Settings",
    "StackRagError",
    "StoredEmbedding",
    "TextChunk",
    "TextChunker",
    "batch_process",
    "chunk_text",
    "create_embedding_provider",
    "create_provider_from_settings",
    "create_vector_storage",
    "find_similar",
    "generate_embedding",
    "generate_embeddings",
    "load_rag_config",
    "register_embedding_provider",
    "register_vector_storage",
    "semantic_search",
    "should_regenerate_embedding",
]
