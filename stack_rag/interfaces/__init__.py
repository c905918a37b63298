"""Abstract interfaces (ABCs) for the pluggable parts of stack-rag.

Concrete adapters live under ``stack_rag.providers``; services depend only
on these contracts.
"""

from stack_rag.interfaces.embedding_provider import IEmbeddingProvider
from stack_rag.interfaces.record_store import AccessContext, IRecordStore, get_db_key
from stack_rag.interfaces.vector_storage import IVectorStorage

__all__ = [
    "AccessContext",
    "IEmbeddingProvider",
    "IRecordStore",
    "IVectorStorage",
    "get_db_key",
]
